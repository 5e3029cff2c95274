"""Result wrapper distinguishing full success from a degraded fallback.

Fatal failures are exceptions; ``Outcome`` only covers paths that are allowed
to fall back (retrieval without embeddings, follow-ups that could not be made).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")

OK = "ok"
DEGRADED = "degraded"


@dataclass
class Outcome(Generic[T]):
    value: T
    kind: str = OK
    reason: str | None = None

    @classmethod
    def ok(cls, value: T) -> "Outcome[T]":
        return cls(value=value)

    @classmethod
    def degraded(cls, value: T, reason: str) -> "Outcome[T]":
        return cls(value=value, kind=DEGRADED, reason=reason)

    @property
    def is_degraded(self) -> bool:
        return self.kind == DEGRADED
