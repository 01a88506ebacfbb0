"""
Strike gate: delays sign-ups from users with previous strikes.

Policy, measured from the event's registration start:
  - 0 strikes: no delay
  - 1 strike:  3 hours
  - 2+ strikes: 12 hours

The gate is evaluated against the instant the user originally asked to join,
never the time the resolution pass happens to run.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import as_utc
from app.models.strike import Strike

ONE_STRIKE_DELAY = timedelta(hours=3)
MULTIPLE_STRIKES_DELAY = timedelta(hours=12)


@dataclass(frozen=True)
class StrikeGateResult:
    allowed: bool
    reason: Optional[str] = None


def strike_delay(strike_count: int) -> timedelta:
    if strike_count <= 0:
        return timedelta(0)
    if strike_count == 1:
        return ONE_STRIKE_DELAY
    return MULTIPLE_STRIKES_DELAY


def can_register_based_on_strikes(
    strike_count: int,
    registration_start: Optional[datetime],
    request_instant: datetime,
) -> StrikeGateResult:
    if strike_count <= 0 or registration_start is None:
        return StrikeGateResult(allowed=True)

    delay = strike_delay(strike_count)
    allowed_from = as_utc(registration_start) + delay

    if as_utc(request_instant) < allowed_from:
        hours = int(delay.total_seconds() // 3600)
        plural = "s" if strike_count > 1 else ""
        return StrikeGateResult(
            allowed=False,
            reason=(
                f"You have {strike_count} strike{plural} and must wait {hours} hours "
                f"after registration opens before signing up."
            ),
        )

    return StrikeGateResult(allowed=True)


async def get_user_strike_count(db: AsyncSession, user_id: int) -> int:
    """Total strikes a user has accumulated across all events."""
    result = await db.execute(
        select(func.coalesce(func.sum(Strike.count), 0)).where(Strike.user_id == user_id)
    )
    return int(result.scalar_one())
