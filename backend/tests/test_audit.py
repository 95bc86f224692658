"""Tests for the audit recorder: diffs, ordering and failed-write handling."""
from datetime import datetime, timedelta

import pytest

from medchart import schemas
from medchart.core.permissions import authorize_pin
from medchart.core.config import settings
from medchart.services.audit import AuditRecorder, MonotonicClock, diff_changes
from medchart.services.audit_queue import AuditRetryQueue
from medchart.services.charting import ChartingService
from medchart.storage.memory import MemStorage


def _patient_in(**overrides):
    data = dict(name="Ada Park", dob="1980-02-02", age=45, sex="Female", mrn="MRN-1")
    data.update(overrides)
    return schemas.PatientCreate(**data)


class FlakyAuditStorage(MemStorage):
    """Audit writes fail until `healthy` is switched on."""

    def __init__(self):
        super().__init__()
        self.healthy = False

    def create_audit_log(self, *args, **kwargs):
        if not self.healthy:
            raise RuntimeError("audit table unavailable")
        return super().create_audit_log(*args, **kwargs)


def test_diff_changes_reports_only_payload_keys():
    before = {"dosage": "5mg", "periodicity": "Once daily", "duration": None}
    after = {"dosage": "10mg", "periodicity": "Once daily", "duration": None}
    assert diff_changes(before, after, ["dosage", "periodicity"]) == {
        "dosage": {"from": "5mg", "to": "10mg"},
        "periodicity": {"from": "Once daily", "to": "Once daily"},
    }


def test_monotonic_clock_never_repeats():
    fixed = datetime(2025, 1, 1, 12, 0, 0)
    clock = MonotonicClock(source=lambda: fixed)
    stamps = [clock.now() for _ in range(5)]
    assert stamps == sorted(stamps)
    assert len(set(stamps)) == 5
    assert stamps[-1] - stamps[0] == timedelta(microseconds=4)


class TestAuditRecorder:
    def setup_method(self):
        self.storage = MemStorage()
        self.queue = AuditRetryQueue(max_attempts=2)
        self.audit = AuditRecorder(self.storage, retry_queue=self.queue, clock=MonotonicClock())

    def test_query_returns_newest_first(self):
        for n in range(5):
            self.audit.record("patient", "p1", "update", {"bed": {"from": n, "to": n + 1}})
        logs = self.audit.query("patient", "p1")
        assert len(logs) == 5
        assert [log.changes["bed"]["to"] for log in logs] == [5, 4, 3, 2, 1]
        timestamps = [log.timestamp for log in logs]
        assert all(a > b for a, b in zip(timestamps, timestamps[1:]))

    def test_query_is_scoped_to_one_entity(self):
        self.audit.record("patient", "p1", "update", {})
        self.audit.record("patient", "p2", "update", {})
        self.audit.record("prescription", "p1", "delete", {})
        assert len(self.audit.query("patient", "p1")) == 1

    def test_rejects_untracked_entity_type(self):
        with pytest.raises(ValueError):
            self.audit.record("medicine", "319084", "create", {})

    def test_rejects_unknown_action(self):
        with pytest.raises(ValueError):
            self.audit.record("patient", "p1", "archive", {})

    def test_user_id_is_stored(self):
        entry = self.audit.record("patient", "p1", "delete", {"name": "x"}, user_id="nurse-7")
        assert entry.user_id == "nurse-7"


class TestAuditWriteFailure:
    def setup_method(self):
        self.storage = FlakyAuditStorage()
        self.queue = AuditRetryQueue(max_attempts=2)
        self.audit = AuditRecorder(self.storage, retry_queue=self.queue)
        self.service = ChartingService(self.storage, self.audit)

    def test_primary_write_survives_audit_failure(self, caplog):
        patient = self.service.register_patient(_patient_in(id="100000000001"))
        with caplog.at_level("WARNING"):
            updated = self.service.update_patient(patient.id, schemas.PatientUpdate(bed="B-2"))
        assert updated.bed == "B-2"
        assert self.storage.get_patient(patient.id).bed == "B-2"
        assert "Audit log write failed" in caplog.text
        assert len(self.queue.get_pending()) == 1

    def test_flush_pending_replays_with_original_timestamp(self):
        patient = self.service.register_patient(_patient_in(id="100000000002"))
        self.service.update_patient(patient.id, schemas.PatientUpdate(status="Stable"))
        queued = self.queue.get_pending()[0]

        self.storage.healthy = True
        result = self.audit.flush_pending()

        assert result == {"written": 1, "failed": 0, "total": 1}
        logs = self.audit.query("patient", patient.id)
        assert len(logs) == 1
        assert logs[0].timestamp == queued.timestamp
        assert logs[0].changes == {"status": {"from": "", "to": "Stable"}}

    def test_flush_pending_gives_up_after_max_attempts(self):
        patient = self.service.register_patient(_patient_in(id="100000000003"))
        self.service.update_patient(patient.id, schemas.PatientUpdate(notes="n"))

        result = self.audit.flush_pending()
        assert result == {"written": 0, "failed": 1, "total": 1}
        assert self.queue.get_pending() == []
        assert len(self.queue.get_failed()) == 1


def test_charting_mutations_leave_expected_audit_entries():
    storage = MemStorage()
    audit = AuditRecorder(storage, retry_queue=AuditRetryQueue())
    service = ChartingService(storage, audit)
    caller = authorize_pin(settings.ACCESS_PIN, "dr-lee")

    patient = service.register_patient(_patient_in(id="100000000004"))
    service.create_medicine(schemas.MedicineCreate(id="12345", name="Heparin"))
    rx = service.create_prescription(
        caller,
        schemas.PrescriptionCreate(patient_id=patient.id, medicine_id="12345", dosage="5000 units", periodicity="Every 8 hours"),
    )
    service.update_prescription(caller, rx.id, schemas.PrescriptionUpdate(dosage="7500 units"))
    service.delete_prescription(caller, rx.id)

    logs = audit.query("prescription", rx.id)
    assert [log.action for log in logs] == ["delete", "update", "create"]
    assert all(log.user_id == "dr-lee" for log in logs)
    assert logs[1].changes == {"dosage": {"from": "5000 units", "to": "7500 units"}}
    assert logs[2].changes["medicine_id"] == "12345"
    assert logs[0].changes["medicine_name"] == "Heparin"
    # Registration is not audited
    assert audit.query("patient", patient.id) == []
