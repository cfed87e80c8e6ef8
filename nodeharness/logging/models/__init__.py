from .entry import Entry as Entry
from .log_level import (
    LogLevel as LogLevel,
    LogLevelName as LogLevelName,
)
from .log_record import LogRecord as LogRecord
