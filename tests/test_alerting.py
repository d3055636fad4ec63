# -*- coding: utf-8 -*-
"""Tests for AlertDispatcher and LoggingAlertSender."""

import pytest

from tests.conftest import RecordingAlertSender
from trustchain.exceptions import AlertDeliveryError
from trustchain.ledger_watchdog.alerting import AlertDispatcher, LoggingAlertSender
from trustchain.ledger_watchdog.models import (
    AlertKind,
    AuditReport,
    SyncDiscrepancy,
    SyncDiscrepancyStatus,
    SyncReport,
    TamperedSummary,
)


def _audit_report(**overrides):
    data = dict(
        total_checked=3,
        verified=2,
        auto_heal=True,
        restored=1,
        tampered=[TamperedSummary(
            vin="NCR7654321", vehicle_id="veh-2", owner_email="maria@example.com",
            mismatched_fields=["Plate Number"], restoration_attempted=True, restored=True,
        )],
    )
    data.update(overrides)
    return AuditReport(**data)


class TestAuditAlerts:
    """Audit alert policy and content."""

    def test_summary_content(self):
        """The summary lists counts and each tampered record."""
        dispatcher = AlertDispatcher(RecordingAlertSender(), alert_email="ops@example.com")
        summary = dispatcher.build_audit_summary(_audit_report())
        assert summary.kind == AlertKind.WATCHDOG
        assert summary.subject == "[TrustChain] Integrity Watchdog Alert - 1 tampered, 0 errors"
        assert summary.destination == "ops@example.com"
        assert "- Auto-Heal: ENABLED" in summary.body
        assert "NCR7654321 | owner: maria@example.com | mismatches: Plate Number | restored: YES" in summary.body
        assert summary.counts["restored"] == 1

    def test_clean_report_not_alerted(self):
        """Reports without tampering or errors do not alert."""
        sender = RecordingAlertSender()
        dispatcher = AlertDispatcher(sender)
        assert dispatcher.alert_audit(_audit_report(tampered=[], restored=0)) is False
        assert sender.alerts == []

    def test_errors_alone_alert(self):
        """Errors without tampering still alert."""
        sender = RecordingAlertSender()
        dispatcher = AlertDispatcher(sender)
        assert dispatcher.alert_audit(_audit_report(tampered=[], restored=0, errors=2)) is True
        assert "0 tampered, 2 errors" in sender.alerts[0]["subject"]

    def test_delivery_failure_never_raises(self):
        """A failing sender is counted, not raised."""
        dispatcher = AlertDispatcher(RecordingAlertSender(fail=True))
        assert dispatcher.alert_audit(_audit_report()) is False
        assert dispatcher.get_statistics() == {"sent": 0, "failed": 1}

    def test_delivery_failure_recorded(self):
        """The last failure is kept as an AlertDeliveryError."""
        dispatcher = AlertDispatcher(RecordingAlertSender(fail=True), alert_email="ops@example.com")
        assert dispatcher.last_error is None
        dispatcher.alert_audit(_audit_report())
        error = dispatcher.last_error
        assert isinstance(error, AlertDeliveryError)
        assert "smtp unavailable" in error.message
        assert error.context == {"kind": "watchdog", "destination": "ops@example.com"}


class TestSyncAlerts:
    """Sync alert policy and content."""

    def test_sync_destination_falls_back(self):
        """The sync destination defaults to the watchdog destination."""
        dispatcher = AlertDispatcher(RecordingAlertSender(), alert_email="ops@example.com")
        assert dispatcher.sync_alert_email == "ops@example.com"

    def test_summary_content(self):
        """The summary lists each discrepancy."""
        dispatcher = AlertDispatcher(
            RecordingAlertSender(), alert_email="ops@example.com", sync_alert_email="data@example.com",
        )
        report = SyncReport(
            total_records=5, matched=4, mismatched=1,
            discrepancies=[SyncDiscrepancy(
                vin="NCR7654321", vehicle_id="veh-2", status=SyncDiscrepancyStatus.TAMPERED,
                record_status="REGISTERED", mismatched_fields=["Plate Number"],
            )],
        )
        summary = dispatcher.build_sync_summary(report)
        assert summary.kind == AlertKind.SYNC
        assert summary.destination == "data@example.com"
        assert summary.subject == "[TrustChain] Data Discrepancy Alert - 1 issues found"
        assert "- NCR7654321 | TAMPERED | Plate Number" in summary.body

    def test_no_discrepancies_not_alerted(self):
        """A fully matched sync does not alert."""
        dispatcher = AlertDispatcher(RecordingAlertSender())
        assert dispatcher.alert_sync(SyncReport(total_records=2, matched=2)) is False


class TestLoggingAlertSender:
    """Tests for the default sender."""

    def test_keeps_recent_alerts(self):
        """Only the most recent alerts are retained."""
        sender = LoggingAlertSender(keep=2)
        for i in range(3):
            sender.send_alert(f"subject {i}", {"body": "x"})
        assert [a["subject"] for a in sender.sent] == ["subject 1", "subject 2"]

    @pytest.mark.parametrize("keep", [0, -1])
    def test_keep_must_be_positive(self, keep):
        """A non-positive retention size is rejected."""
        with pytest.raises(ValueError, match="keep must be >= 1"):
            LoggingAlertSender(keep=keep)
