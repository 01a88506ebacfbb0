"""
In-memory snapshot of an event's resolved registrations, indexed by user id.

The resolution engine mutates the arena as it decides each intent, so later
intents in the same pass see seats taken and swaps made earlier without
re-querying the database.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from app.core.clock import as_utc
from app.models.registration import Registration, RegistrationStatus


@dataclass
class ArenaEntry:
    user_id: int
    status: RegistrationStatus
    requested_at: datetime
    waitlist_position: Optional[int] = None


class RegistrationArena:
    def __init__(self, event_id: int, entries: Iterable[ArenaEntry] = ()):
        self.event_id = event_id
        self._entries: dict[int, ArenaEntry] = {}
        for entry in entries:
            self._entries[entry.user_id] = entry

    @classmethod
    def from_registrations(cls, event_id: int, rows: Iterable[Registration]) -> "RegistrationArena":
        return cls(
            event_id,
            (
                ArenaEntry(
                    user_id=row.user_id,
                    status=RegistrationStatus(row.status),
                    requested_at=as_utc(row.created_at),
                    waitlist_position=row.waitlist_position,
                )
                for row in rows
                if row.status != RegistrationStatus.PENDING.value
            ),
        )

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, user_id: int) -> bool:
        return user_id in self._entries

    def get(self, user_id: int) -> Optional[ArenaEntry]:
        return self._entries.get(user_id)

    def put(self, user_id: int, status: RegistrationStatus, requested_at: datetime) -> ArenaEntry:
        entry = ArenaEntry(user_id=user_id, status=status, requested_at=as_utc(requested_at))
        self._entries[user_id] = entry
        return entry

    def demote(self, user_id: int) -> ArenaEntry:
        """Move a registered entry to the waitlist; its position is assigned by the next ranking."""
        entry = self._entries.get(user_id)
        if entry is None or entry.status != RegistrationStatus.REGISTERED:
            raise ValueError(f"User {user_id} holds no seat for event {self.event_id}")
        entry.status = RegistrationStatus.WAITLISTED
        entry.waitlist_position = None
        return entry

    def with_status(self, status: RegistrationStatus) -> list[ArenaEntry]:
        return [e for e in self._entries.values() if e.status == status]

    def registered(self) -> list[ArenaEntry]:
        return self.with_status(RegistrationStatus.REGISTERED)

    def waitlisted(self) -> list[ArenaEntry]:
        return self.with_status(RegistrationStatus.WAITLISTED)

    @property
    def registered_count(self) -> int:
        return len(self.registered())

    def apply_positions(self, positions: dict[int, int]) -> dict[int, int]:
        """Store new waitlist positions; returns only those that changed."""
        changed = {}
        for user_id, position in positions.items():
            entry = self._entries[user_id]
            if entry.waitlist_position != position:
                entry.waitlist_position = position
                changed[user_id] = position
        return changed
