"""
NominaHub - Audit Trail Tests
"""

import pytest

from nominahub.services.payroll_engine.audit_trail import AuditTrail
from nominahub.utils.error_handling import UnrecognizedIncidentTypeWarning


class TestAuditTrail:
    """Test the per-calculation audit log."""

    def test_entries_in_order_with_monotonic_timestamps(self):
        audit = AuditTrail()
        for i in range(20):
            audit.record("phase", f"step {i}")

        timestamps = [entry.timestamp for entry in audit.entries]
        assert timestamps == sorted(timestamps)
        assert [entry.action for entry in audit.entries][:2] == ["step 0", "step 1"]

    def test_phase_records_duration(self):
        audit = AuditTrail()
        with audit.phase("earnings_evaluation", "Earnings evaluated") as info:
            info["concepts"] = 3

        entry = audit.entries[0]
        assert entry.phase == "earnings_evaluation"
        assert entry.duration_ms is not None and entry.duration_ms >= 0
        assert entry.details == {"concepts": 3}

    def test_phase_records_error_and_reraises(self):
        audit = AuditTrail()
        with pytest.raises(ZeroDivisionError):
            with audit.phase("totals"):
                1 / 0

        assert audit.entries[0].level == "error"

    def test_warning_category(self):
        audit = AuditTrail()
        audit.warn("incident_processing", "ignored", category=UnrecognizedIncidentTypeWarning)

        assert audit.warnings()[0].details["warning"] == "UnrecognizedIncidentTypeWarning"

    def test_frozen_trail_rejects_entries(self):
        audit = AuditTrail()
        audit.record("a", "b")
        entries = audit.freeze()

        assert len(entries) == 1
        with pytest.raises(RuntimeError):
            audit.record("a", "c")

    def test_entry_serialization(self):
        audit = AuditTrail()
        entry = audit.record("totals", "done", duration_ms=1.5, details={"netoPagar": "10.00"})

        data = entry.to_dict()
        assert data["phase"] == "totals"
        assert data["duration"] == 1.5
        assert data["details"] == {"netoPagar": "10.00"}
        assert "T" in data["timestamp"]
