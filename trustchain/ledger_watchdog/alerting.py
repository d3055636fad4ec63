# -*- coding: utf-8 -*-
"""
Alert Dispatching for the Ledger Consistency Watchdog

Decides whether a completed audit or sync warrants an alert, composes a
plain-data ``AlertSummary`` and hands it to the ``AlertSender`` port.
How the alert is delivered (e-mail, chat, pager) belongs to the sender.

Delivery is best effort: a sender exception is logged and counted, never
raised and never retried.

Alert policy:
    - Audit: alert when the report has tampered records or errors.
    - Sync: alert when mismatched or not-on-ledger records were found.

Author: TrustChain Platform Team
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, List, Optional

from trustchain.exceptions import AlertDeliveryError
from trustchain.ledger_watchdog import metrics
from trustchain.ledger_watchdog.models import AlertKind, AlertSummary, AuditReport, SyncReport
from trustchain.ledger_watchdog.ports import AlertSender

logger = logging.getLogger(__name__)

SUBJECT_PREFIX = "[TrustChain]"


class LoggingAlertSender:
    """Default sender: writes alerts to the log and keeps the last few."""

    def __init__(self, keep: int = 100) -> None:
        if keep < 1:
            raise ValueError(f"keep must be >= 1, got {keep}")
        self.keep = keep
        self.sent: List[Dict[str, Any]] = []
        self._lock = threading.Lock()

    def send_alert(self, subject: str, summary: Dict[str, Any]) -> None:
        logger.warning(
            "ALERT to %s: %s\n%s",
            summary.get("destination") or "<unset>", subject, summary.get("body", ""),
        )
        with self._lock:
            self.sent.append({"subject": subject, "summary": summary})
            del self.sent[:-self.keep]


class AlertDispatcher:
    """Composes alert summaries and delivers them through a sender."""

    def __init__(
        self,
        sender: AlertSender,
        alert_email: str = "",
        sync_alert_email: str = "",
    ) -> None:
        self._sender = sender
        self.alert_email = alert_email
        self.sync_alert_email = sync_alert_email or alert_email
        self._lock = threading.Lock()
        self._statistics = {"sent": 0, "failed": 0}
        self.last_error: Optional[AlertDeliveryError] = None

    # ------------------------------------------------------------------
    # Audit alerts
    # ------------------------------------------------------------------

    @staticmethod
    def should_alert_audit(report: AuditReport) -> bool:
        return report.needs_attention

    def build_audit_summary(self, report: AuditReport) -> AlertSummary:
        subject = (
            f"{SUBJECT_PREFIX} Integrity Watchdog Alert - "
            f"{report.tampered_count} tampered, {report.errors} errors"
        )
        lines = [
            "Integrity Watchdog Alert",
            "",
            "Summary:",
            f"- Checked: {report.total_checked}",
            f"- Verified: {report.verified}",
            f"- Tampered: {report.tampered_count}",
            f"- Restored: {report.restored}",
            f"- Errors: {report.errors}",
            f"- Auto-Heal: {'ENABLED' if report.auto_heal else 'DISABLED'}",
            f"- Duration: {report.duration_seconds:.2f}s",
        ]
        if report.tampered:
            lines += ["", "Tampered records:"]
            for t in report.tampered:
                lines.append(
                    f"- {t.vin} | owner: {t.owner_email or t.owner_name or 'N/A'} | "
                    f"mismatches: {', '.join(t.mismatched_fields) or 'N/A'} | "
                    f"restored: {'YES' if t.restored else 'NO'}"
                )
        return AlertSummary(
            kind=AlertKind.WATCHDOG,
            subject=subject,
            body="\n".join(lines),
            destination=self.alert_email,
            counts={
                "checked": report.total_checked,
                "verified": report.verified,
                "tampered": report.tampered_count,
                "restored": report.restored,
                "restoration_failures": report.restoration_failures,
                "errors": report.errors,
            },
        )

    def alert_audit(self, report: AuditReport) -> bool:
        """Alert on an audit report if it needs attention.

        Returns:
            True if an alert was delivered.
        """
        if not self.should_alert_audit(report):
            return False
        return self.dispatch(self.build_audit_summary(report))

    # ------------------------------------------------------------------
    # Sync alerts
    # ------------------------------------------------------------------

    @staticmethod
    def should_alert_sync(report: SyncReport) -> bool:
        return report.has_discrepancies

    def build_sync_summary(self, report: SyncReport) -> AlertSummary:
        subject = (
            f"{SUBJECT_PREFIX} Data Discrepancy Alert - "
            f"{report.total_discrepancies} issues found"
        )
        lines = [
            "Data Discrepancy Alert",
            "",
            "Summary:",
            f"- Total records: {report.total_records}",
            f"- Matched: {report.matched}",
            f"- Mismatched: {report.mismatched}",
            f"- Not on ledger: {report.not_on_ledger}",
            f"- Errors: {report.errors}",
        ]
        if report.discrepancies:
            lines += ["", "Discrepancies:"]
            for d in report.discrepancies:
                detail = ", ".join(d.mismatched_fields) or d.message or "-"
                lines.append(f"- {d.vin} | {d.status.value} | {detail}")
            if report.discrepancies_truncated:
                hidden = report.total_discrepancies - len(report.discrepancies)
                lines.append(f"... and {hidden} more")
        return AlertSummary(
            kind=AlertKind.SYNC,
            subject=subject,
            body="\n".join(lines),
            destination=self.sync_alert_email,
            counts={
                "total_records": report.total_records,
                "matched": report.matched,
                "mismatched": report.mismatched,
                "not_on_ledger": report.not_on_ledger,
                "errors": report.errors,
            },
        )

    def alert_sync(self, report: SyncReport) -> bool:
        if not self.should_alert_sync(report):
            return False
        return self.dispatch(self.build_sync_summary(report))

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    def dispatch(self, summary: AlertSummary) -> bool:
        """Hand a summary to the sender. Never raises."""
        try:
            self._sender.send_alert(summary.subject, summary.model_dump(mode="json"))
        except Exception as e:
            error = AlertDeliveryError(
                f"Alert delivery failed: {e}",
                context={"kind": summary.kind.value, "destination": summary.destination},
            )
            with self._lock:
                self._statistics["failed"] += 1
                self.last_error = error
            metrics.record_alert(summary.kind.value, "failed")
            logger.warning("%s", error)
            return False
        with self._lock:
            self._statistics["sent"] += 1
        metrics.record_alert(summary.kind.value, "sent")
        logger.info("Alert sent (%s) to %s", summary.kind.value, summary.destination or "<unset>")
        return True

    def get_statistics(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._statistics)


__all__ = ["AlertDispatcher", "LoggingAlertSender", "SUBJECT_PREFIX"]
