from typing import Any

import msgspec

from .log_level import LogLevel


class Entry(msgspec.Struct, kw_only=True):
    """
    Base of every structured log entry. Subclasses add the fields a
    concern wants rendered, e.g. the node id or the supervised command.
    """

    message: str | None = None
    level: LogLevel

    def to_template(
        self,
        template: str,
        context: dict[str, Any] | None = None,
    ) -> str:
        fields: dict[str, Any] = {
            name: getattr(self, name) for name in self.__struct_fields__
        }
        fields["level"] = self.level.value
        fields.update(context or {})

        return template.format(**fields)
