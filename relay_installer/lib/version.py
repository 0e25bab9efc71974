from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Version:
    """Release version without the leading ``v`` (``1.8.4``)."""

    value: str

    @classmethod
    def parse(cls, text: str) -> "Version":
        s = text.strip().lstrip("v")
        parts = s.split(".")
        if not s or not all(p.isdigit() for p in parts):
            raise ValueError(f"invalid version: {text!r}")
        return cls(s)

    @property
    def prefixed(self) -> str:
        return f"v{self.value}"

    def __str__(self) -> str:
        return self.value
