"""
Event model and its priority pools.

Key design decisions:
- `capacity` NULL means unlimited seats
- `registration_start` anchors the strike-based waiting periods
- Pools and their group requirements are eagerly loaded (selectin) because
  every resolution pass needs all of them
"""

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from app.db.base import Base, TimestampMixin


class Event(Base, TimestampMixin):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    slug = Column(String(255), unique=True, nullable=False)
    capacity = Column(Integer, nullable=True)
    requires_signing_up = Column(Boolean, nullable=False, default=True)
    is_registration_closed = Column(Boolean, nullable=False, default=False)
    registration_start = Column(DateTime(timezone=True), nullable=True)
    enforces_previous_strikes = Column(Boolean, nullable=False, default=True)

    pools = relationship(
        "PriorityPool",
        back_populates="event",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint("capacity IS NULL OR capacity >= 0", name="check_event_capacity_non_negative"),
    )

    @property
    def has_unlimited_capacity(self) -> bool:
        return self.capacity is None

    def __repr__(self) -> str:
        return f"<Event(id={self.id}, title={self.title}, capacity={self.capacity})>"


class PriorityPool(Base):
    __tablename__ = "event_priority_pools"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    priority_score = Column(Integer, nullable=False, default=0)

    event = relationship("Event", back_populates="pools")
    groups = relationship(
        "PriorityPoolGroup",
        back_populates="pool",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    @property
    def required_group_slugs(self) -> frozenset[str]:
        return frozenset(g.group_slug for g in self.groups)

    def __repr__(self) -> str:
        return f"<PriorityPool(id={self.id}, event={self.event_id}, groups={sorted(self.required_group_slugs)})>"


class PriorityPoolGroup(Base):
    __tablename__ = "event_priority_pool_groups"

    pool_id = Column(
        Integer,
        ForeignKey("event_priority_pools.id", ondelete="CASCADE"),
        primary_key=True,
    )
    group_slug = Column(String(100), primary_key=True)

    pool = relationship("PriorityPool", back_populates="groups")
