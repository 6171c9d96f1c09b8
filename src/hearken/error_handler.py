"""
Hearken error handling and exception hierarchy
"""
import time
import traceback
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from .logging_utils import setup_logger

logger = setup_logger("hearken.error_handler")


class ErrorSeverity(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass
class ErrorContext:
    """Context information for error tracking"""
    component: str
    operation: str
    timestamp: datetime = field(default_factory=datetime.now)
    metadata: Dict[str, Any] = field(default_factory=dict)


class ErrorHandler:
    """Records handled errors and logs them at a level matching their severity"""

    def __init__(self, max_history_size: int = 200):
        self.error_count = 0
        self.error_history: List[Dict[str, Any]] = []
        self.max_history_size = max_history_size

    def handle_error(self, error: Exception, context: ErrorContext,
                     severity: ErrorSeverity = ErrorSeverity.MEDIUM) -> Dict[str, Any]:
        error_id = f"ERR_{int(time.time() * 1000000)}"
        self.error_count += 1

        error_details = {
            'error_id': error_id,
            'type': error.__class__.__name__,
            'message': str(error),
            'traceback': ''.join(traceback.format_exception(type(error), error, error.__traceback__)),
            'context': {
                'component': context.component,
                'operation': context.operation,
                'metadata': context.metadata,
            },
            'severity': severity.value,
            'timestamp': context.timestamp.isoformat(),
            'count': self.error_count,
        }

        self._log_error(error_details, severity)
        self._add_to_history(error_details)
        return error_details

    def _log_error(self, error_details: Dict[str, Any], severity: ErrorSeverity) -> None:
        log_message = (f"[{error_details['error_id']}] {error_details['context']['component']}."
                       f"{error_details['context']['operation']} {error_details['type']}: "
                       f"{error_details['message']}")

        if severity == ErrorSeverity.CRITICAL:
            logger.critical(log_message)
        elif severity == ErrorSeverity.HIGH:
            logger.error(log_message)
        elif severity == ErrorSeverity.MEDIUM:
            logger.warning(log_message)
        else:
            logger.info(log_message)

    def _add_to_history(self, error_details: Dict[str, Any]) -> None:
        self.error_history.append(error_details)
        if len(self.error_history) > self.max_history_size:
            self.error_history = self.error_history[-self.max_history_size:]

    def get_error_stats(self) -> Dict[str, Any]:
        counts: Dict[str, int] = {}
        for error in self.error_history:
            counts[error['type']] = counts.get(error['type'], 0) + 1
        return {
            'total_errors': self.error_count,
            'recent_errors': len(self.error_history),
            'error_types': counts,
        }


def get_error_handler() -> ErrorHandler:
    """Get or create error handler instance"""
    if not hasattr(get_error_handler, '_instance'):
        get_error_handler._instance = ErrorHandler()
    return get_error_handler._instance


def handle_error(error: Exception, component: str, operation: str,
                 severity: ErrorSeverity = ErrorSeverity.MEDIUM, **metadata) -> Dict[str, Any]:
    """Convenience function to handle errors"""
    context = ErrorContext(component=component, operation=operation, metadata=metadata)
    return get_error_handler().handle_error(error, context, severity)


@contextmanager
def error_context(component: str, operation: str, severity: ErrorSeverity = ErrorSeverity.MEDIUM):
    """Record any exception raised inside the block, then re-raise it"""
    try:
        yield
    except Exception as e:
        handle_error(e, component, operation, severity)
        raise


class HearkenException(Exception):
    """Base exception for Hearken-specific errors"""

    def __init__(self, message: str, component: str = "unknown", operation: str = "unknown",
                 **kwargs):
        super().__init__(message)
        self.component = component
        self.operation = operation
        self.context = kwargs


class ConfigurationError(HearkenException):
    """Configuration file missing, unreadable or invalid"""
    pass


class ModelLoadError(HearkenException):
    """Speech recognition or synthesis model could not be loaded"""
    pass


class TransportError(HearkenException):
    """Chat-completion request could not be built, sent or decoded"""

    def __init__(self, message: str, status_code: Optional[int] = None, operation: str = "send",
                 **kwargs):
        super().__init__(message, component="dialogue", operation=operation, **kwargs)
        self.status_code = status_code
