"""
ErrorHandler - records and reports alert-path failures

Nothing on the alert path is process-fatal: failures are logged at a level
derived from their severity, kept in a bounded history and published as
error.occurred.
"""

import logging
import time
from enum import Enum
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class ErrorSeverity(Enum):
    LOW = 1
    MEDIUM = 2
    HIGH = 3
    CRITICAL = 4


class ErrorCategory(Enum):
    CONFIGURATION = "configuration"
    RESOLUTION = "resolution"
    PLAYBACK = "playback"
    CHAIN = "chain"
    RUNTIME = "runtime"


class ErrorHandler:
    """Bounded error registry with EventBus reporting"""

    def __init__(self, event_bus=None, max_history: int = 1000):
        self.event_bus = event_bus
        self.error_history: List[Dict[str, Any]] = []
        self.max_history = max_history

    async def handle_error(self, severity: ErrorSeverity, category: ErrorCategory,
                           message: str, context: Optional[Dict[str, Any]] = None):
        error = {
            "severity": severity,
            "category": category,
            "message": message,
            "context": context or {},
            "timestamp": time.time(),
        }

        self.error_history.append(error)
        if len(self.error_history) > self.max_history:
            self.error_history.pop(0)

        logger.log(self._get_log_level(severity), f"{category.value.upper()}: {message}")

        if self.event_bus:
            await self.event_bus.publish("error.occurred", {
                "severity": severity.value,
                "category": category.value,
                "message": message,
                "context": error["context"],
            })

    def _get_log_level(self, severity: ErrorSeverity) -> int:
        levels = {
            ErrorSeverity.LOW: logging.DEBUG,
            ErrorSeverity.MEDIUM: logging.INFO,
            ErrorSeverity.HIGH: logging.WARNING,
            ErrorSeverity.CRITICAL: logging.ERROR,
        }
        return levels.get(severity, logging.ERROR)

    def get_error_history(self, severity: Optional[ErrorSeverity] = None,
                          category: Optional[ErrorCategory] = None, limit: int = 100) -> list:
        filtered_history = self.error_history
        if severity:
            filtered_history = [e for e in filtered_history if e["severity"] == severity]
        if category:
            filtered_history = [e for e in filtered_history if e["category"] == category]
        return filtered_history[-limit:]

    def get_status(self) -> Dict[str, Any]:
        return {
            "error_history_size": len(self.error_history),
            "max_history": self.max_history,
            "has_event_bus": self.event_bus is not None,
        }
