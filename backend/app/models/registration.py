"""
Registration model: one row per (event, user).

Key design decisions:
- Composite primary key (event_id, user_id) makes double sign-up impossible
- `created_at` is the original request instant and drives FIFO ordering
- CHECK constraint keeps `waitlist_position` set exactly when waitlisted
"""

import enum

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, String, func

from app.db.base import Base


class RegistrationStatus(str, enum.Enum):
    PENDING = "pending"
    REGISTERED = "registered"
    WAITLISTED = "waitlisted"
    CANCELLED = "cancelled"
    ATTENDED = "attended"
    NO_SHOW = "no_show"


_STATUS_VALUES = ", ".join(f"'{s.value}'" for s in RegistrationStatus)


class Registration(Base):
    __tablename__ = "event_registrations"

    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    status = Column(String(20), nullable=False, default=RegistrationStatus.PENDING.value)
    waitlist_position = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
    attended_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(f"status IN ({_STATUS_VALUES})", name="check_registration_status"),
        CheckConstraint(
            "(status = 'waitlisted') = (waitlist_position IS NOT NULL)",
            name="check_waitlist_position_iff_waitlisted",
        ),
        # Scheduler and listing queries filter by status within an event
        Index("ix_event_registrations_event_status", "event_id", "status"),
    )

    def __repr__(self) -> str:
        return (
            f"<Registration(event={self.event_id}, user={self.user_id}, "
            f"status={self.status}, position={self.waitlist_position})>"
        )
