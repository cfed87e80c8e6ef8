from __future__ import annotations

from enum import Enum
from typing import Literal

LogLevelName = Literal[
    "trace",
    "debug",
    "info",
    "warn",
    "error",
    "fatal",
]


class LogLevel(Enum):
    TRACE = "TRACE"
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    FATAL = "FATAL"

    @property
    def rank(self) -> int:
        return _LEVEL_RANKS[self]

    @classmethod
    def to_level(cls, level_name: LogLevelName | str) -> LogLevel:
        normalized = level_name.strip().upper()
        if normalized == "WARNING":
            return LogLevel.WARN

        return cls.__members__.get(normalized, LogLevel.INFO)


_LEVEL_RANKS = {
    level: rank for rank, level in enumerate(LogLevel)
}
