from __future__ import annotations

import pathlib
from typing import Any, TypeVar

from nodeharness.logging.models import Entry

from .logger_context import LoggerContext
from .logger_stream import LoggerStream

T = TypeVar("T", bound=Entry)


def split_log_path(path: str | None) -> tuple[str | None, str | None]:
    """
    A path with a suffix names a log file, anything else a directory.
    """
    if path is None:
        return None, None

    log_path = pathlib.Path(path).absolute()
    if log_path.suffix:
        return log_path.name, str(log_path.parent)

    return None, str(log_path)


class Logger:
    def __init__(self) -> None:
        self._streams: dict[str, LoggerStream] = {}

    def __getitem__(self, name: str) -> LoggerStream:
        return self._stream(name)

    def configure(
        self,
        name: str | None = None,
        template: str | None = None,
        path: str | None = None,
        models: dict[str, tuple[type[T], dict[str, Any]]] | None = None,
    ):
        name = name or "default"
        filename, directory = split_log_path(path)

        self._streams[name] = LoggerStream(
            name=name,
            template=template,
            filename=filename,
            directory=directory,
            models=models,
        )

    def context(
        self,
        name: str | None = None,
        nested: bool = False,
    ) -> LoggerContext:
        return LoggerContext(
            self._stream(name or "default"),
            nested=nested,
        )

    def _stream(self, name: str) -> LoggerStream:
        if name not in self._streams:
            self._streams[name] = LoggerStream(name=name)

        return self._streams[name]
