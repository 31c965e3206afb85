"""
ccbell integration - the alert pipeline and its event/error plumbing.
"""

from .alert_pipeline import AlertDecision, AlertGate, AlertPipeline
from .core.error_handler import ErrorCategory, ErrorHandler, ErrorSeverity
from .core.event_bus import EventBus, EventPriority

__all__ = [
    "AlertDecision",
    "AlertGate",
    "AlertPipeline",
    "ErrorCategory",
    "ErrorHandler",
    "ErrorSeverity",
    "EventBus",
    "EventPriority",
]
