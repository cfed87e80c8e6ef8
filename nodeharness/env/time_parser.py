import re
from datetime import timedelta


class TimeParser:
    def __init__(self, time_amount: str | int | float) -> None:
        self._units = {
            "ms": "milliseconds",
            "s": "seconds",
            "m": "minutes",
            "h": "hours",
            "d": "days",
            "w": "weeks",
        }

        if isinstance(time_amount, (int, float)):
            self.time = float(time_amount)

        else:
            self.time = self.parse(time_amount)

    def parse(self, time_amount: str) -> float:
        matches = list(
            re.finditer(
                r"(?P<val>\d+(\.\d+)?)(?P<unit>ms|[smhdw]?)",
                time_amount.strip(),
                flags=re.I,
            )
        )

        if not matches:
            raise ValueError(f"Invalid duration - {time_amount}")

        parts: dict[str, float] = {}
        for match in matches:
            unit = self._units.get(match.group("unit").lower(), "seconds")
            parts[unit] = parts.get(unit, 0.0) + float(match.group("val"))

        return float(timedelta(**parts).total_seconds())
