import threading


class RunState:
    __slots__ = (
        "_value",
        "_lock",
    )

    def __init__(self, value: bool = False) -> None:
        self._value = value
        self._lock = threading.Lock()

    @property
    def value(self) -> bool:
        return self._value

    def compare_and_swap(self, expected: bool, new: bool) -> bool:
        with self._lock:
            if self._value != expected:
                return False

            self._value = new
            return True
