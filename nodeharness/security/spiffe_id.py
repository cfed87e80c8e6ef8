from __future__ import annotations

import re
from dataclasses import dataclass

from nodeharness.errors import NodeConfigurationError

_TRUST_DOMAIN_PATTERN = re.compile(r"^[a-z0-9._-]+$")
_SEGMENT_PATTERN = re.compile(r"^[A-Za-z0-9._-]+$")


@dataclass(slots=True, frozen=True)
class SpiffeID:
    trust_domain: str
    path: str

    @classmethod
    def from_segments(cls, trust_domain: str, *segments: str) -> SpiffeID:
        if not _TRUST_DOMAIN_PATTERN.match(trust_domain):
            raise NodeConfigurationError(
                f"Err. - invalid SPIFFE trust domain {trust_domain!r}"
            )

        for segment in segments:
            if segment in ("", ".", "..") or not _SEGMENT_PATTERN.match(segment):
                raise NodeConfigurationError(
                    f"Err. - invalid SPIFFE path segment {segment!r}"
                )

        return cls(
            trust_domain=trust_domain,
            path="".join(f"/{segment}" for segment in segments),
        )

    @classmethod
    def parse(cls, uri: str) -> SpiffeID:
        if not uri.startswith("spiffe://"):
            raise NodeConfigurationError(
                f"Err. - {uri!r} is not a SPIFFE ID"
            )

        trust_domain, _, path = uri[len("spiffe://"):].partition("/")
        segments = path.split("/") if path else []

        return cls.from_segments(trust_domain, *segments)

    def __str__(self) -> str:
        return f"spiffe://{self.trust_domain}{self.path}"
