"""
Result values returned by aggregate operations.
"""
from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class ReviewRequired:
    """Soft warning: the operation was recorded but needs manual review."""
    reason: str
    event_code: str | None = None


@dataclass
class OperationResult:
    """Outcome of a webhook-style mutation.

    ``applied`` is False when the call was recognised as a duplicate or a
    stale delivery and left the order untouched.
    """
    applied: bool
    duplicate: bool = False
    warnings: list[ReviewRequired] = field(default_factory=list)

    @property
    def review_required(self) -> bool:
        return bool(self.warnings)

    @classmethod
    def noop(cls, duplicate: bool = True) -> OperationResult:
        return cls(applied=False, duplicate=duplicate)
