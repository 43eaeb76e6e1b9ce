"""Check model - one recorded probe attempt."""
from sqlalchemy import Boolean, Column, Integer, String, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship

from ..database import Base
from ..utils import utcnow


class Check(Base):
    """Immutable outcome of a single probe, written after every attempt."""

    __tablename__ = "checks"
    __table_args__ = (Index("ix_checks_monitor_created", "monitor_id", "created_at"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    monitor_id = Column(Integer, ForeignKey("monitors.id", ondelete="CASCADE"), nullable=False)
    ok = Column(Boolean, nullable=False)
    status_code = Column(Integer, nullable=True)  # NULL when the endpoint was unreachable
    latency_ms = Column(Integer, nullable=True)
    error = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    # Relationship
    monitor = relationship("Monitor", back_populates="checks")
