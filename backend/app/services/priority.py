"""
Priority pools: who may jump the queue, and whom they may displace.

A user is prioritized when they belong to *every* group of at least one pool
(an empty pool matches nobody). Events that enforce previous strikes strip
priority from users at or above PRIORITY_STRIKE_LIMIT strikes.
"""

from dataclasses import dataclass
from typing import Iterable, Literal, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.models.user import GroupMembership
from app.services.registration_arena import ArenaEntry
from app.services.strikes import get_user_strike_count

PRIORITY_STRIKE_LIMIT = get_settings().PRIORITY_STRIKE_LIMIT

SwapOrder = Literal["earliest_first", "latest_first"]


def is_user_prioritized(
    user_group_slugs: Iterable[str],
    pool_requirements: Sequence[frozenset[str]],
    strike_count: int,
    enforces_previous_strikes: bool,
    strike_limit: int = PRIORITY_STRIKE_LIMIT,
) -> bool:
    if enforces_previous_strikes and strike_count >= strike_limit:
        return False

    groups = set(user_group_slugs)
    return any(required and required <= groups for required in pool_requirements)


async def get_user_group_slugs(db: AsyncSession, user_id: int) -> frozenset[str]:
    result = await db.execute(
        select(GroupMembership.group_slug).where(GroupMembership.user_id == user_id)
    )
    return frozenset(result.scalars())


@dataclass(frozen=True)
class UserProfile:
    group_slugs: frozenset[str]
    strike_count: int


class PrioritizationCache:
    """
    Per-pass memo of group memberships, strike totals and priority verdicts.
    Memberships and strikes do not change during a pass, so each user is
    loaded at most once.
    """

    def __init__(
        self,
        db: AsyncSession,
        pool_requirements: Sequence[frozenset[str]],
        enforces_previous_strikes: bool,
        strike_limit: Optional[int] = None,
    ):
        self.db = db
        self.pool_requirements = list(pool_requirements)
        self.enforces_previous_strikes = enforces_previous_strikes
        self.strike_limit = strike_limit if strike_limit is not None else get_settings().PRIORITY_STRIKE_LIMIT
        self._profiles: dict[int, UserProfile] = {}

    async def profile(self, user_id: int) -> UserProfile:
        if user_id not in self._profiles:
            self._profiles[user_id] = UserProfile(
                group_slugs=await get_user_group_slugs(self.db, user_id),
                strike_count=await get_user_strike_count(self.db, user_id),
            )
        return self._profiles[user_id]

    async def is_prioritized(self, user_id: int) -> bool:
        profile = await self.profile(user_id)
        return is_user_prioritized(
            profile.group_slugs,
            self.pool_requirements,
            profile.strike_count,
            self.enforces_previous_strikes,
            self.strike_limit,
        )

    async def prioritized_among(self, user_ids: Iterable[int]) -> set[int]:
        return {uid for uid in user_ids if await self.is_prioritized(uid)}


async def find_swap_target(
    registered: Iterable[ArenaEntry],
    cache: PrioritizationCache,
    order: SwapOrder = "earliest_first",
) -> Optional[ArenaEntry]:
    """
    First non-prioritized registered entry in the given order.
    Ties on request time are broken by user id so the choice is deterministic.
    """
    candidates = sorted(registered, key=lambda e: (e.requested_at, e.user_id))
    if order == "latest_first":
        candidates.reverse()

    for entry in candidates:
        if not await cache.is_prioritized(entry.user_id):
            return entry
    return None
