from .logger_stream import LoggerStream


class LoggerContext:
    """
    Scoped use of a logger stream. Leaving the context closes the
    stream's log files unless the context is nested inside a longer
    lived one.
    """

    __slots__ = (
        "stream",
        "nested",
    )

    def __init__(self, stream: LoggerStream, nested: bool = False) -> None:
        self.stream = stream
        self.nested = nested

    async def __aenter__(self) -> LoggerStream:
        return self.stream

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if not self.nested:
            await self.stream.close()
