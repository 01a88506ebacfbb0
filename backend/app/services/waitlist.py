"""
Waitlist ranking: prioritized users first, then first-come-first-served.

Positions are 1-based and contiguous. Ranking is recomputed from scratch over
the whole waitlist, so a late prioritized arrival or a swapped-out user
slots in without leaving gaps or duplicates.
"""

from datetime import datetime
from typing import Iterable, Protocol


class Rankable(Protocol):
    user_id: int
    requested_at: datetime


def rank_waitlist(entries: Iterable[Rankable], prioritized_user_ids: set[int]) -> dict[int, int]:
    ordered = sorted(
        entries,
        key=lambda e: (e.user_id not in prioritized_user_ids, e.requested_at, e.user_id),
    )
    return {entry.user_id: position for position, entry in enumerate(ordered, start=1)}
