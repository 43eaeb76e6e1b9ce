"""Monitor model - HTTP endpoints being observed."""
from sqlalchemy import Boolean, Column, Integer, String, DateTime, Text
from sqlalchemy.orm import relationship

from ..database import Base
from ..utils import utcnow


class Monitor(Base):
    """A monitored HTTP endpoint.

    Rows are owned and edited by the CRUD layer; the monitoring engine only
    reads them and advances ``last_checked``.
    """

    __tablename__ = "monitors"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, nullable=True, index=True)  # Owner, enforced outside the engine
    name = Column(String, nullable=False)
    url = Column(String, nullable=False)
    method = Column(String, nullable=False, default="GET")
    headers_json = Column(Text, nullable=True)  # JSON object of request headers
    body = Column(Text, nullable=True)
    timeout_ms = Column(Integer, nullable=False, default=10000)
    interval_sec = Column(Integer, nullable=False, default=60)
    is_paused = Column(Boolean, nullable=False, default=False)
    last_checked = Column(DateTime, nullable=True)
    webhook_url = Column(String, nullable=True)
    alert_channel_enabled = Column(Boolean, nullable=False, default=False)
    alert_channel_url = Column(String, nullable=True)  # Slack incoming webhook
    created_at = Column(DateTime, default=utcnow)

    # Relationships
    checks = relationship("Check", back_populates="monitor", cascade="all, delete-orphan")
    incidents = relationship("Incident", back_populates="monitor", cascade="all, delete-orphan")
    alerts = relationship("Alert", back_populates="monitor", cascade="all, delete-orphan")
