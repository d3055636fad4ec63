# -*- coding: utf-8 -*-
"""
Record Comparator - field-by-field relational vs ledger comparison

Pure, deterministic comparison of one RelationalRecord against one
LedgerRecord over a FieldMapping table. Values are normalized before
comparison (None and "" become the empty string, surrounding whitespace
is stripped). Critical fields compare case-insensitively; informational
fields compare case-sensitively.

Classification:
    - every field matches            -> VERIFIED
    - any critical field mismatches  -> TAMPERED
    - only informational mismatches  -> MISMATCH

Example:
    >>> from trustchain.ledger_watchdog.comparator import RecordComparator
    >>> comparator = RecordComparator()
    >>> results = comparator.compare(relational, ledger)
    >>> comparator.classify(results)
    <IntegrityStatus.VERIFIED: 'VERIFIED'>

Author: TrustChain Platform Team
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional, Sequence

from trustchain.ledger_watchdog.field_mapping import VEHICLE_FIELD_MAP, FieldMapping
from trustchain.ledger_watchdog.models import (
    ComparisonResult,
    FieldStatus,
    IntegrityStatus,
    LedgerRecord,
    RelationalRecord,
)

logger = logging.getLogger(__name__)


def normalize_value(value: Any, critical: bool = False) -> str:
    """Normalize a field value for comparison.

    Args:
        value: Raw value from either store.
        critical: Uppercase the result (case-insensitive comparison).

    Returns:
        Normalized string.
    """
    if value is None:
        return ""
    text = str(value).strip()
    return text.upper() if critical else text


class RecordComparator:
    """Compares relational and ledger snapshots over a mapping table."""

    def __init__(self, mapping: Optional[Sequence[FieldMapping]] = None) -> None:
        self._mapping = tuple(mapping) if mapping is not None else VEHICLE_FIELD_MAP

    @property
    def mapping(self) -> Sequence[FieldMapping]:
        return self._mapping

    def compare_field(
        self,
        mapping: FieldMapping,
        relational: RelationalRecord,
        ledger: LedgerRecord,
    ) -> ComparisonResult:
        """Compare one mapped field."""
        rel_value = normalize_value(mapping.relational_accessor(relational), mapping.critical)
        led_value = normalize_value(mapping.ledger_accessor(ledger), mapping.critical)
        matches = rel_value == led_value

        if matches:
            status = FieldStatus.MATCH
        elif mapping.critical:
            status = FieldStatus.TAMPERED
        else:
            status = FieldStatus.MISMATCH

        if not matches:
            logger.debug(
                "Field %s differs for %s: relational=%r ledger=%r",
                mapping.relational_key, relational.vin, rel_value, led_value,
            )

        return ComparisonResult(
            field=mapping.relational_key,
            label=mapping.label,
            relational_value=rel_value,
            ledger_value=led_value,
            matches=matches,
            is_critical=mapping.critical,
            status=status,
        )

    def compare(
        self,
        relational: RelationalRecord,
        ledger: LedgerRecord,
    ) -> List[ComparisonResult]:
        """Compare every mapped field, in mapping order."""
        return [self.compare_field(m, relational, ledger) for m in self._mapping]

    @staticmethod
    def classify(results: Sequence[ComparisonResult]) -> IntegrityStatus:
        """Overall classification of a comparison list."""
        if any(not r.matches and r.is_critical for r in results):
            return IntegrityStatus.TAMPERED
        if any(not r.matches for r in results):
            return IntegrityStatus.MISMATCH
        return IntegrityStatus.VERIFIED


__all__ = ["RecordComparator", "normalize_value"]
