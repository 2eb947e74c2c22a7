"""
Alerts module: error reporting and notification sinks.
"""

from trustmesh.alerts.reporter import (
    ErrorReporter,
    LoggingNotificationSink,
    Notification,
    NotificationSink,
)

__all__ = [
    "ErrorReporter",
    "LoggingNotificationSink",
    "Notification",
    "NotificationSink",
]
