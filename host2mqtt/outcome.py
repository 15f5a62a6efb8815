"""Tagged results returned by the host collaborators."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class FailureKind(Enum):
    UNAVAILABLE = "unavailable"
    FAILED = "failed"


@dataclass(frozen=True)
class Outcome:
    """Result of a collaborator call.

    ``kind`` is ``None`` on success. ``UNAVAILABLE`` means the underlying tool or
    device is missing on this host; ``FAILED`` means it exists but the call errored.
    """

    value: Any = None
    kind: FailureKind | None = None
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.kind is None

    @classmethod
    def success(cls, value: Any = None) -> Outcome:
        return cls(value=value)

    @classmethod
    def unavailable(cls, detail: str) -> Outcome:
        return cls(kind=FailureKind.UNAVAILABLE, detail=detail)

    @classmethod
    def failed(cls, detail: str) -> Outcome:
        return cls(kind=FailureKind.FAILED, detail=detail)

    def __str__(self) -> str:
        if self.ok:
            return f"ok({self.value!r})"
        assert self.kind is not None
        return f"{self.kind.value}: {self.detail}"
