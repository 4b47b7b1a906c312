"""
Append-only status history.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from orders.domain.statuses import OrderStatus


@dataclass(frozen=True)
class StatusHistoryEntry:
    """One recorded order-status change."""
    status: OrderStatus
    changed_at: datetime
    remarks: str = ""
    actor_id: UUID | None = None


class StatusHistoryLedger:
    """Ordered record of every order-status change.

    Entries can only be appended; there is no API to edit or drop one.
    """

    def __init__(self, entries: list[StatusHistoryEntry] | None = None):
        self._entries: list[StatusHistoryEntry] = list(entries or [])

    def append(self, entry: StatusHistoryEntry) -> None:
        self._entries.append(entry)

    @property
    def entries(self) -> tuple[StatusHistoryEntry, ...]:
        return tuple(self._entries)

    def since(self, count: int) -> tuple[StatusHistoryEntry, ...]:
        """Entries appended after the first ``count`` ones."""
        return tuple(self._entries[count:])

    @property
    def last(self) -> StatusHistoryEntry | None:
        return self._entries[-1] if self._entries else None

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(tuple(self._entries))
