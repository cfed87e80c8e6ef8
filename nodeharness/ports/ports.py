from __future__ import annotations

import socket

from nodeharness.errors import NodeConfigurationError
from nodeharness.scope import TestScope


class Ports:
    """
    A set of TCP ports held open by listening sockets until freed.

    Holding the sockets keeps the kernel from handing the same port to
    anyone else, so every port of a reservation is distinct. Call free()
    right before the process that needs the ports binds them.
    """

    __slots__ = (
        "_host",
        "_sockets",
        "_ports",
        "_next",
        "_freed",
    )

    def __init__(self, count: int, host: str = "127.0.0.1") -> None:
        self._host = host
        self._sockets: list[socket.socket] = []
        self._ports: list[int] = []
        self._next = 0
        self._freed = False

        try:
            for _ in range(count):
                listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
                self._sockets.append(listener)

                listener.bind((host, 0))
                listener.listen()

                self._ports.append(listener.getsockname()[1])

        except OSError:
            self.free()
            raise

    @classmethod
    def reserve(
        cls,
        scope: TestScope,
        count: int,
        host: str = "127.0.0.1",
    ) -> Ports:
        ports = cls(count, host=host)
        scope.add_cleanup(ports.free)

        return ports

    @property
    def reserved(self) -> list[int]:
        return list(self._ports)

    @property
    def freed(self) -> bool:
        return self._freed

    def port(self) -> int:
        if self._next >= len(self._ports):
            raise NodeConfigurationError(
                f"Err. - all {len(self._ports)} reserved ports have already been handed out"
            )

        port = self._ports[self._next]
        self._next += 1

        return port

    def free(self):
        for listener in self._sockets:
            listener.close()

        self._sockets.clear()
        self._freed = True
