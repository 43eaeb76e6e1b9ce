"""Incident model - contiguous spans of unavailability."""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index, text
from sqlalchemy.orm import relationship

from ..database import Base
from ..utils import utcnow


class Incident(Base):
    """An outage, open while ``resolved_at`` is NULL."""

    __tablename__ = "incidents"
    __table_args__ = (
        Index("ix_incidents_monitor_started", "monitor_id", "started_at"),
        # At most one open incident per monitor
        Index(
            "uq_incidents_open_monitor",
            "monitor_id",
            unique=True,
            sqlite_where=text("resolved_at IS NULL"),
            postgresql_where=text("resolved_at IS NULL"),
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    monitor_id = Column(Integer, ForeignKey("monitors.id", ondelete="CASCADE"), nullable=False)
    reason = Column(String, nullable=False)
    started_at = Column(DateTime, nullable=False, default=utcnow)
    resolved_at = Column(DateTime, nullable=True)
    last_alert_sent_at = Column(DateTime, nullable=True)  # Throttles "still down" re-alerts

    # Relationships
    monitor = relationship("Monitor", back_populates="incidents")
    alerts = relationship("Alert", back_populates="incident")

    @property
    def is_open(self) -> bool:
        return self.resolved_at is None
