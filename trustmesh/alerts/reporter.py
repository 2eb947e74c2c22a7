"""
Error Reporting

Turns classified errors into user-facing notifications:

| Error                     | Message                                   | Duration |
|---------------------------|-------------------------------------------|----------|
| IntegrityFailure          | "QUANTUM SECURITY BREACH: <message>"      | 15000 ms |
| ProtocolGenerationFailure | "Quantum AI Error: <message>"             | 10000 ms |
| PermissionDenied          | pointer to the store console              | 10000 ms |
| anything else             | caller's message, else the raw message    |  5000 ms |

Every report is also logged at ERROR with the serialized error.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Deque, List, Optional, Protocol, runtime_checkable

from trustmesh.core import constants as C
from trustmesh.core.config import NotificationConfig
from trustmesh.core.errors import (
    IntegrityFailure,
    PermissionDenied,
    ProtocolGenerationFailure,
    TrustMeshError,
    classify,
)
from trustmesh.observability.logging import StructuredLogger

logger = StructuredLogger(__name__)


@dataclass(frozen=True, slots=True)
class Notification:
    message: str
    action_label: str
    duration_ms: int


@runtime_checkable
class NotificationSink(Protocol):
    """Transient user-facing message display."""

    def show(self, message: str, action_label: str, duration_ms: int) -> None:
        ...


class LoggingNotificationSink:
    """Writes notifications to the log and keeps them for inspection."""

    def __init__(self, history_limit: int = C.REPORT_HISTORY_LIMIT) -> None:
        self.shown: Deque[Notification] = deque(maxlen=history_limit)

    def show(self, message: str, action_label: str, duration_ms: int) -> None:
        self.shown.append(Notification(message, action_label, duration_ms))
        logger.warning(message, action_label=action_label, duration_ms=duration_ms)


class ErrorReporter:
    """
    Reports errors to the notification sink.

    Example:
        reporter = ErrorReporter(LoggingNotificationSink(), console_url=url)
        reporter.report(error, "Error updating quantum session")
    """

    __slots__ = ("_sink", "_config", "_console_url", "_reported")

    def __init__(
        self,
        sink: Optional[NotificationSink] = None,
        config: Optional[NotificationConfig] = None,
        console_url: str = "",
        history_limit: int = C.REPORT_HISTORY_LIMIT,
    ) -> None:
        self._sink = sink or LoggingNotificationSink()
        self._config = config or NotificationConfig()
        self._console_url = console_url
        self._reported: Deque[TrustMeshError] = deque(maxlen=history_limit)

    @property
    def sink(self) -> NotificationSink:
        return self._sink

    @property
    def reported(self) -> List[TrustMeshError]:
        """Most recent reported errors, oldest first."""
        return list(self._reported)

    def compose(
        self,
        error: TrustMeshError,
        user_message: Optional[str] = None,
        duration_ms: Optional[int] = None,
    ) -> Notification:
        """Notification for error without showing it."""
        duration = duration_ms if duration_ms is not None else self._config.default_duration_ms
        message = user_message

        if isinstance(error, ProtocolGenerationFailure):
            message = f"Quantum AI Error: {error.message}"
            duration = C.NOTIFICATION_PROTOCOL_MS
        if isinstance(error, IntegrityFailure):
            message = f"QUANTUM SECURITY BREACH: {error.message}"
            duration = C.NOTIFICATION_INTEGRITY_MS
        if isinstance(error, PermissionDenied):
            message = (
                "Error communicating with the document store. "
                f"Please check status at {self._console_url}"
            )
            duration = C.NOTIFICATION_PERMISSION_MS

        return Notification(
            message=message or error.message,
            action_label=self._config.action_label,
            duration_ms=duration,
        )

    def report(
        self,
        error: BaseException,
        user_message: Optional[str] = None,
        duration_ms: Optional[int] = None,
    ) -> Notification:
        classified = classify(error)
        notification = self.compose(classified, user_message, duration_ms)

        logger.error("Quantum security error", error=classified.to_dict())
        self._reported.append(classified)
        self._sink.show(notification.message, notification.action_label, notification.duration_ms)
        return notification
