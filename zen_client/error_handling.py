"""
Error boundary for user-triggered operations.

This module runs fallible asynchronous actions, tracks whether an operation
is in progress, and decides per failure whether to run a recovery action
(unauthenticated calls) or to report the error to the notification sink.
"""

import logging
import sys
from datetime import datetime
from typing import Optional, Dict, Any, Callable, Awaitable, List, TypeVar

from zen_shared.exceptions import ConnectError, StatusCode
from zen_shared.interfaces import INotificationSink
from zen_shared.logging_config import AuditLogger, log_structured_error

logger = logging.getLogger(__name__)

T = TypeVar('T')

Action = Callable[[], Awaitable[T]]
Recovery = Callable[[], Awaitable[Any]]
ProcessingCallback = Callable[[bool], None]


class LoggingNotificationSink(INotificationSink):
    """Sink that writes notifications to the log only."""

    def __init__(self, logger_name: str = "zen_client.notifications"):
        self.logger = logging.getLogger(logger_name)

    def notify_error(self, title: str, description: Optional[str] = None) -> None:
        self.logger.error(f"{title}: {description}" if description else title)


class ConsoleNotificationSink(INotificationSink):
    """Sink that prints notifications to a terminal stream."""

    def __init__(self, stream=None):
        self.stream = stream or sys.stderr

    def notify_error(self, title: str, description: Optional[str] = None) -> None:
        line = f"✗ {title}"
        if description:
            line += f": {description}"
        print(line, file=self.stream)


class ErrorBoundary:
    """
    Designated error boundary for UI-triggered operations.

    Errors raised by an action never escape ``exec``. Unauthenticated
    failures go to the caller's recovery action when one is supplied; all
    other failures produce exactly one notification.
    """

    def __init__(
        self,
        sink: Optional[INotificationSink] = None,
        max_history: int = 50,
        audit_logger: Optional[AuditLogger] = None
    ):
        self.sink = sink or LoggingNotificationSink()
        self._audit_logger = audit_logger or AuditLogger()
        self.max_history = max_history
        self._error_history: List[Dict[str, Any]] = []

    async def exec(
        self,
        action: Action,
        recovery: Optional[Recovery] = None,
        on_processing_change: Optional[ProcessingCallback] = None
    ) -> Optional[T]:
        """
        Run an action inside the boundary.

        Args:
            action: Coroutine function to run
            recovery: Coroutine function run instead of reporting when the
                action fails as unauthenticated
            on_processing_change: Called with True before the action and with
                False once the operation settled, on every path

        Returns:
            The action's result, or None if it failed
        """
        try:
            try:
                self._signal(on_processing_change, True)
                return await action()
            except Exception as e:
                error = ConnectError.from_exception(e)

            if recovery is not None and error.code == StatusCode.UNAUTHENTICATED:
                logger.info(f"Unauthenticated failure, running recovery: {error.message}")
                # failures inside the recovery action propagate to the caller
                await recovery()
            else:
                self._report(error)
            return None
        finally:
            self._signal(on_processing_change, False)

    def _signal(self, callback: Optional[ProcessingCallback], processing: bool) -> None:
        if callback is None:
            return
        try:
            callback(processing)
        except Exception as e:
            logger.error(f"Error in processing callback: {e}")

    def _report(self, error: ConnectError) -> None:
        log_structured_error(logger, error, level=logging.WARNING)
        self._audit_logger.log_error(error)

        self._error_history.append({
            'timestamp': datetime.now().isoformat(),
            'name': error.name,
            'code': error.code.wire_name,
            'message': error.message,
        })
        if len(self._error_history) > self.max_history:
            self._error_history = self._error_history[-self.max_history:]

        try:
            self.sink.notify_error(error.name, error.message)
        except Exception as e:
            logger.error(f"Error in notification sink: {e}")

    def get_error_history(self) -> List[Dict[str, Any]]:
        """Get reported errors, oldest first."""
        return list(self._error_history)

    def clear_error_history(self) -> None:
        self._error_history.clear()
