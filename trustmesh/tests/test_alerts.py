"""
Unit Tests: Error Reporting

Tests:
    - Message and duration per error kind
    - Classification of raw exceptions
    - Sink delivery and report history
"""

import pytest

from trustmesh.alerts.reporter import ErrorReporter, LoggingNotificationSink, NotificationSink
from trustmesh.core.config import NotificationConfig
from trustmesh.core.errors import (
    IntegrityFailure,
    PermissionDenied,
    ProtocolGenerationFailure,
    StoreUnavailable,
    Unclassified,
)

CONSOLE = "https://console.example/p"


@pytest.fixture
def reporter():
    return ErrorReporter(LoggingNotificationSink(), console_url=CONSOLE)


class TestCompose:
    """Tests for notification composition."""

    def test_integrity_failure(self, reporter):
        error = IntegrityFailure.fingerprint_mismatch("session update", 0.162494, 0.16275)
        note = reporter.compose(error, "ignored")

        assert note.message == f"QUANTUM SECURITY BREACH: {error.message}"
        assert note.duration_ms == 15000
        assert note.action_label == "Secure Close"

    def test_protocol_failure(self, reporter):
        error = ProtocolGenerationFailure.malformed_response("bad shape", "{}")
        note = reporter.compose(error)

        assert note.message.startswith("Quantum AI Error: ")
        assert note.duration_ms == 10000

    def test_permission_denied_points_at_console(self, reporter):
        note = reporter.compose(PermissionDenied.rejected("count"), "Error updating quantum session")

        assert note.message == (
            "Error communicating with the document store. "
            f"Please check status at {CONSOLE}"
        )
        assert note.duration_ms == 10000

    def test_caller_message_wins_for_other_errors(self, reporter):
        note = reporter.compose(StoreUnavailable.not_connected("set"), "Error updating quantum session")

        assert note.message == "Error updating quantum session"
        assert note.duration_ms == 5000

    def test_falls_back_to_error_message(self, reporter):
        error = StoreUnavailable.not_connected("set")
        assert reporter.compose(error).message == error.message

    def test_explicit_duration(self, reporter):
        note = reporter.compose(StoreUnavailable.not_connected("set"), duration_ms=1234)
        assert note.duration_ms == 1234

    def test_custom_config(self):
        config = NotificationConfig(action_label="Dismiss", default_duration_ms=2000)
        note = ErrorReporter(config=config).compose(Unclassified.wrap(ValueError("odd")))

        assert note.action_label == "Dismiss"
        assert note.duration_ms == 2000


class TestReport:
    """Tests for report delivery."""

    def test_raw_exception_is_classified(self, reporter):
        reporter.report(Exception("Missing or insufficient permissions."))

        assert isinstance(reporter.reported[0], PermissionDenied)
        assert reporter.sink.shown[0].duration_ms == 10000

    def test_connection_error_is_unavailable(self, reporter):
        note = reporter.report(ConnectionError("reset"), "Error adding quantum session")

        assert isinstance(reporter.reported[0], StoreUnavailable)
        assert note.message == "Error adding quantum session"

    def test_history_is_a_copy(self, reporter):
        reporter.report(ValueError("x"))
        history = reporter.reported
        history.clear()

        assert len(reporter.reported) == 1

    def test_history_is_bounded(self):
        reporter = ErrorReporter(LoggingNotificationSink(history_limit=3), history_limit=3)
        for i in range(5):
            reporter.report(ValueError(f"error {i}"))

        assert [e.message for e in reporter.reported] == ["error 2", "error 3", "error 4"]
        assert len(reporter.sink.shown) == 3

    def test_sink_protocol(self):
        assert isinstance(LoggingNotificationSink(), NotificationSink)

    def test_custom_sink_receives_notification(self):
        received = []

        class Collector:
            def show(self, message, action_label, duration_ms):
                received.append((message, action_label, duration_ms))

        ErrorReporter(Collector()).report(ValueError("boom"), "Something failed")

        assert received == [("Something failed", "Secure Close", 5000)]
