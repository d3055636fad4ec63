# -*- coding: utf-8 -*-
"""Tests for the field mapping and RecordComparator."""

import pytest

from trustchain.ledger_watchdog.comparator import RecordComparator, normalize_value
from trustchain.ledger_watchdog.field_mapping import (
    VEHICLE_FIELD_MAP,
    FieldMapping,
    get_mapping,
    restorable_values,
)
from trustchain.ledger_watchdog.models import (
    FieldStatus,
    IntegrityStatus,
    LedgerRecord,
    RelationalRecord,
)


def _relational(**overrides):
    data = dict(
        id="veh-1", vin="NCR1234567", plate_number="NCR-123", engine_number="EN001",
        chassis_number="CH001", make="Toyota", model="Vios", year=2020,
        owner_id="usr-1", owner_email="juan@example.com", status="REGISTERED",
    )
    data.update(overrides)
    return RelationalRecord(**data)


def _ledger(**overrides):
    data = dict(
        vin="NCR1234567", plateNumber="NCR-123", engineNumber="EN001",
        chassisNumber="CH001", make="Toyota", model="Vios", year=2020,
        owner={"email": "juan@example.com"},
    )
    data.update(overrides)
    return LedgerRecord.model_validate(data)


class TestNormalizeValue:
    """Tests for value normalization."""

    def test_none_is_empty(self):
        """None normalizes to the empty string."""
        assert normalize_value(None) == ""
        assert normalize_value(None, critical=True) == ""

    def test_strips_whitespace(self):
        """Surrounding whitespace is ignored."""
        assert normalize_value("  Vios ") == "Vios"

    def test_critical_is_uppercased(self):
        """Critical values compare case-insensitively."""
        assert normalize_value(" en001 ", critical=True) == "EN001"

    def test_non_critical_keeps_case(self):
        """Non-critical values keep their case."""
        assert normalize_value("toyota") == "toyota"

    def test_numbers_are_stringified(self):
        """Ints compare as their decimal text."""
        assert normalize_value(2020) == "2020"


class TestFieldMapping:
    """Tests for the vehicle field map."""

    def test_critical_fields(self):
        """Plate, engine, chassis and owner e-mail are critical."""
        critical = {m.label for m in VEHICLE_FIELD_MAP if m.critical}
        assert critical == {"Plate Number", "Engine Number", "Chassis Number", "Owner Email"}

    def test_owner_is_not_directly_restorable(self):
        """The owner reference is resolved, never copied."""
        owner = get_mapping("owner_email")
        assert owner is not None
        assert owner.restorable is False

    def test_accessor_reads_nested_owner(self):
        """The owner accessor reads the embedded ledger owner e-mail."""
        owner = get_mapping("owner_email")
        assert owner.ledger_accessor(_ledger()) == "juan@example.com"
        assert owner.ledger_accessor(_ledger(owner=None)) is None

    def test_restorable_values_excludes_owner(self):
        """Restorable values are the mutable vehicle columns."""
        values = restorable_values(_ledger(plateNumber="ABC-999"))
        assert values["plate_number"] == "ABC-999"
        assert values["year"] == 2020
        assert "owner_email" not in values


class TestRecordComparator:
    """Tests for compare and classify."""

    def test_identical_records_verified(self):
        """All fields matching classifies VERIFIED."""
        comparator = RecordComparator()
        results = comparator.compare(_relational(), _ledger())
        assert len(results) == len(VEHICLE_FIELD_MAP)
        assert all(r.matches for r in results)
        assert comparator.classify(results) == IntegrityStatus.VERIFIED

    @pytest.mark.parametrize("ledger_value", ["en001", " EN001 ", "En001"])
    def test_critical_case_and_whitespace_insensitive(self, ledger_value):
        """Critical fields differing only in case or whitespace match."""
        comparator = RecordComparator()
        results = comparator.compare(_relational(), _ledger(engineNumber=ledger_value))
        assert comparator.classify(results) == IntegrityStatus.VERIFIED

    def test_critical_difference_is_tampered(self):
        """A differing critical field classifies TAMPERED."""
        comparator = RecordComparator()
        results = comparator.compare(
            _relational(plate_number="ABC-111"), _ledger(plateNumber="ABC-999"),
        )
        plate = next(r for r in results if r.field == "plate_number")
        assert plate.matches is False
        assert plate.status == FieldStatus.TAMPERED
        assert comparator.classify(results) == IntegrityStatus.TAMPERED

    def test_non_critical_difference_is_mismatch(self):
        """Only non-critical differences classify MISMATCH."""
        comparator = RecordComparator()
        results = comparator.compare(_relational(model="vios"), _ledger(model="Vios"))
        model = next(r for r in results if r.field == "model")
        assert model.status == FieldStatus.MISMATCH
        assert comparator.classify(results) == IntegrityStatus.MISMATCH

    def test_tampered_wins_over_mismatch(self):
        """Mixed critical and non-critical differences classify TAMPERED."""
        comparator = RecordComparator()
        results = comparator.compare(
            _relational(model="City", chassis_number="X"), _ledger(),
        )
        assert comparator.classify(results) == IntegrityStatus.TAMPERED

    def test_owner_email_difference_is_tampered(self):
        """A different owner identity is a critical divergence."""
        comparator = RecordComparator()
        results = comparator.compare(
            _relational(owner_email="thief@example.com"), _ledger(),
        )
        assert comparator.classify(results) == IntegrityStatus.TAMPERED

    def test_empty_comparison_list_verified(self):
        """No comparisons means nothing diverged."""
        assert RecordComparator.classify([]) == IntegrityStatus.VERIFIED

    def test_custom_mapping(self):
        """A comparator can run over a reduced mapping."""
        mapping = [
            FieldMapping(
                relational_key="make", ledger_key_path="make", label="Make",
                critical=False,
                relational_accessor=lambda r: r.make,
                ledger_accessor=lambda l: l.make,
            )
        ]
        comparator = RecordComparator(mapping)
        results = comparator.compare(_relational(plate_number="ZZZ"), _ledger())
        assert [r.field for r in results] == ["make"]
        assert comparator.classify(results) == IntegrityStatus.VERIFIED
