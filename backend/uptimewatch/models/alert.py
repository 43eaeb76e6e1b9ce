"""Alert model - audit log of notification dispatches."""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index, Text
from sqlalchemy.orm import relationship

from ..database import Base
from ..utils import utcnow


class Alert(Base):
    """Terminal outcome of one dispatch call (retries collapse into one row)."""

    __tablename__ = "alerts"
    __table_args__ = (Index("ix_alerts_monitor_sent", "monitor_id", "sent_at"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    monitor_id = Column(Integer, ForeignKey("monitors.id", ondelete="CASCADE"), nullable=False)
    incident_id = Column(Integer, ForeignKey("incidents.id", ondelete="SET NULL"), nullable=True)
    alert_type = Column(String, nullable=False)  # down, recovery, periodic
    channel = Column(String, nullable=False, default="webhook")  # webhook, slack, none
    status = Column(String, nullable=False)  # sent, failed
    message = Column(Text, nullable=False)
    sent_at = Column(DateTime, default=utcnow)
    error = Column(String, nullable=True)

    # Relationships
    monitor = relationship("Monitor", back_populates="alerts")
    incident = relationship("Incident", back_populates="alerts")
