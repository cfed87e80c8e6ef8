from .config import (
    LoggingConfig as LoggingConfig,
    LogOutput as LogOutput,
)
from .models import (
    Entry as Entry,
    LogLevel as LogLevel,
    LogLevelName as LogLevelName,
    LogRecord as LogRecord,
)
from .streams import (
    Logger as Logger,
    LoggerContext as LoggerContext,
    LoggerStream as LoggerStream,
)
