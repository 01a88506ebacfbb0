"""
Strike model: penalty points a user received at an event.

A user may hold several rows; policy consumes the sum of `count`.
"""

from sqlalchemy import CheckConstraint, Column, ForeignKey, Integer, String

from app.db.base import Base, TimestampMixin


class Strike(Base, TimestampMixin):
    __tablename__ = "event_strikes"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    count = Column(Integer, nullable=False, default=1)
    reason = Column(String(500), nullable=False)

    __table_args__ = (
        CheckConstraint("count > 0", name="check_strike_count_positive"),
    )

    def __repr__(self) -> str:
        return f"<Strike(user={self.user_id}, event={self.event_id}, count={self.count})>"
