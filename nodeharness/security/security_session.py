import asyncio

from nodeharness.errors import SecuritySessionError

from .security_handler import SecurityHandler
from .security_provider import SecurityProvider


class SecuritySession:
    """
    Handle on a security provider running as a background task.

    Teardown is cancel() followed by join(); join() re-raises whatever
    ended the refresh task.
    """

    def __init__(self, provider: SecurityProvider) -> None:
        self._provider = provider
        self._stop = asyncio.Event()
        self._task: asyncio.Task | None = None

    @property
    def provider(self) -> SecurityProvider:
        return self._provider

    @property
    def started(self) -> bool:
        return self._task is not None

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    def start(self):
        if self._task is not None:
            raise SecuritySessionError(
                f"Err. - security session for {self._provider.spiffe_id} already started"
            )

        self._task = asyncio.create_task(self._provider.run(self._stop))

    async def handler(self) -> SecurityHandler:
        if self._task is None:
            raise SecuritySessionError(
                f"Err. - security session for {self._provider.spiffe_id} has not been started"
            )

        return await self._provider.handler()

    def cancel(self):
        self._stop.set()

    async def join(self):
        if self._task is None:
            return

        try:
            await self._task

        except asyncio.CancelledError as err:
            if not self._task.cancelled():
                raise

            raise SecuritySessionError(
                f"Err. - credential refresh task for {self._provider.spiffe_id} was cancelled before it stopped"
            ) from err
