"""Database models."""
from .monitor import Monitor
from .check import Check
from .incident import Incident
from .alert import Alert

__all__ = ["Monitor", "Check", "Incident", "Alert"]
