import asyncio
import os
import pathlib
import sys
from typing import Any, BinaryIO, TypeVar

import msgspec

from nodeharness.logging.config import LoggingConfig
from nodeharness.logging.models import Entry, LogLevel, LogRecord

T = TypeVar("T", bound=Entry)

DEFAULT_TEMPLATE = "{timestamp} - {level} - {thread_id} - {filename}:{function_name}.{line_number} - {message}"

_LOGGING_PACKAGE = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


class LoggerStream:
    """
    Writes the entries of one named logger.

    Every entry is rendered through the template to stdout or stderr.
    When a log file is configured, either directly or through the
    directory in LoggingConfig, it is also appended there as a JSON line.
    """

    def __init__(
        self,
        name: str | None = None,
        template: str | None = None,
        filename: str | None = None,
        directory: str | None = None,
        models: dict[str, tuple[type[T], dict[str, Any]]] | None = None,
    ) -> None:
        self.name = name or "default"
        self.template = template or DEFAULT_TEMPLATE
        self.filename = filename
        self.directory = directory

        self._config = LoggingConfig()
        self._encoder = msgspec.json.Encoder()
        self._models: dict[str, tuple[type[Entry], dict[str, Any]]] = {
            "default": (Entry, {"level": LogLevel.INFO}),
        }
        self._models.update(models or {})

        self._logfiles: dict[str, BinaryIO] = {}
        self._write_lock = asyncio.Lock()

    @property
    def logfile_path(self) -> str | None:
        directory = self.directory or self._config.directory
        if self.filename and directory:
            return os.path.join(directory, self.filename)

    async def log_prepared(
        self,
        message: str,
        name: str = "default",
        template: str | None = None,
        path: str | None = None,
    ):
        model, defaults = self._models.get(name, self._models["default"])

        await self.log(
            model(message=message, **defaults),
            template=template,
            path=path,
        )

    async def log(
        self,
        entry: T,
        template: str | None = None,
        path: str | None = None,
    ):
        if not self._config.enabled(self.name, entry.level):
            return

        filename, function_name, line_number = self._find_caller()
        record = LogRecord(
            logger=self.name,
            entry=entry,
            filename=filename,
            function_name=function_name,
            line_number=line_number,
        )

        self._write_console(record, template or self.template)

        logfile_path = path or self.logfile_path
        if logfile_path:
            await self._write_logfile(record, logfile_path)

    async def close(self):
        async with self._write_lock:
            logfiles = list(self._logfiles.values())
            self._logfiles.clear()

            if logfiles:
                loop = asyncio.get_running_loop()
                for logfile in logfiles:
                    await loop.run_in_executor(None, logfile.close)

    def _write_console(self, record: LogRecord, template: str):
        stream = sys.stdout if self._config.output == "stdout" else sys.stderr
        if stream.closed:
            return

        stream.write(record.entry.to_template(template, context=record.context()) + "\n")
        stream.flush()

    async def _write_logfile(self, record: LogRecord, logfile_path: str):
        loop = asyncio.get_running_loop()
        line = self._encoder.encode(record) + b"\n"

        async with self._write_lock:
            logfile = self._logfiles.get(logfile_path)
            if logfile is None:
                logfile = await loop.run_in_executor(None, self._open_logfile, logfile_path)
                self._logfiles[logfile_path] = logfile

            await loop.run_in_executor(None, self._append, logfile, line)

    def _open_logfile(self, logfile_path: str) -> BinaryIO:
        pathlib.Path(logfile_path).parent.mkdir(parents=True, exist_ok=True)
        return open(logfile_path, "ab")

    def _append(self, logfile: BinaryIO, line: bytes):
        logfile.write(line)
        logfile.flush()

    def _find_caller(self) -> tuple[str, str, int]:
        # First frame outside the logging package.
        frame = sys._getframe(1)
        while frame.f_back is not None and frame.f_code.co_filename.startswith(_LOGGING_PACKAGE):
            frame = frame.f_back

        return (
            frame.f_code.co_filename,
            frame.f_code.co_name,
            frame.f_lineno,
        )
