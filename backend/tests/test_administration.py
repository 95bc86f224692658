"""Tests for barcode scan verification and medication progress."""
from datetime import datetime, timedelta

import pytest

from medchart import schemas
from medchart.core.config import settings
from medchart.core.exceptions import UnknownPatientError
from medchart.core.permissions import authorize_pin
from medchart.models.base import utcnow
from medchart.services.administration import (
    AdministrationVerifier,
    PatientLockRegistry,
    ScanOutcome,
    progress_percentage,
)
from medchart.services.audit import AuditRecorder
from medchart.services.audit_queue import AuditRetryQueue
from medchart.services.charting import ChartingService
from medchart.storage.memory import MemStorage

PATIENT_ID = "999999999999"


def _patient_in(patient_id=PATIENT_ID):
    return schemas.PatientCreate(
        id=patient_id, name="Test Patient", dob="1990-01-01", age=35, sex="Male", mrn="MRN-999"
    )


class ChartFixture:
    """A patient with a catalog of medicines, some prescribed."""

    def __init__(self, storage=None):
        self.storage = storage or MemStorage()
        self.audit = AuditRecorder(self.storage, retry_queue=AuditRetryQueue())
        self.charting = ChartingService(self.storage, self.audit)
        self.verifier = AdministrationVerifier(self.storage, self.audit, locks=PatientLockRegistry())
        self.caller = authorize_pin(settings.ACCESS_PIN, "rn-1")
        self.patient = self.charting.register_patient(_patient_in())

    def medicine(self, medicine_id, name):
        return self.charting.create_medicine(schemas.MedicineCreate(id=medicine_id, name=name))

    def prescribe(self, medicine_id, **window):
        return self.charting.create_prescription(
            self.caller,
            schemas.PrescriptionCreate(
                patient_id=self.patient.id,
                medicine_id=medicine_id,
                dosage="10mg",
                periodicity="Once daily",
                **window,
            ),
        )


@pytest.fixture()
def chart():
    return ChartFixture()


def test_end_to_end_scan_scenario(chart):
    chart.medicine("55555", "TestDrug")
    rx = chart.prescribe("55555")

    first = chart.verifier.verify_scan(PATIENT_ID, "55555")
    assert first.administration.status == "success"
    assert first.classification.outcome == ScanOutcome.SUCCESS
    assert first.administration.message == "SUCCESS: Administered 'TestDrug'."

    assert chart.audit.query("patient", PATIENT_ID) == []
    rx_logs = chart.audit.query("prescription", rx.id)
    assert [log.action for log in rx_logs] == ["create"]
    admin_logs = chart.audit.query("administration", first.administration.id)
    assert [log.action for log in admin_logs] == ["administer"]
    assert admin_logs[0].changes["status"] == "success"
    assert admin_logs[0].changes["administered_at"] is not None

    second = chart.verifier.verify_scan(PATIENT_ID, "55555")
    assert second.administration.status == "warning"
    assert second.prior_success.id == first.administration.id
    assert second.administration.message == "WARNING: 'TestDrug' has already been administered."


class TestClassification:
    def test_unknown_medicine_is_error_mentioning_barcode(self, chart):
        result = chart.verifier.verify_scan(PATIENT_ID, "000111")
        assert result.status == "error"
        assert "000111" in result.administration.message
        assert result.administration.message.startswith("ERROR:")
        assert len(chart.storage.list_administrations(PATIENT_ID)) == 1

    def test_not_prescribed_is_error(self, chart):
        chart.medicine("222", "Warfarin")
        result = chart.verifier.verify_scan(PATIENT_ID, "222")
        assert result.classification.outcome == ScanOutcome.NOT_PRESCRIBED
        assert result.status == "error"
        assert "NOT prescribed" in result.administration.message

    def test_not_prescribed_takes_precedence_over_duplicate(self, chart):
        chart.medicine("333", "Insulin")
        rx = chart.prescribe("333")
        assert chart.verifier.verify_scan(PATIENT_ID, "333").status == "success"
        chart.charting.delete_prescription(chart.caller, rx.id)

        result = chart.verifier.verify_scan(PATIENT_ID, "333")
        assert result.classification.outcome == ScanOutcome.NOT_PRESCRIBED

    def test_expired_prescription_is_not_active(self, chart):
        chart.medicine("444", "Cefazolin")
        chart.prescribe("444", end_date=utcnow() - timedelta(days=1))
        assert chart.verifier.verify_scan(PATIENT_ID, "444").classification.outcome == ScanOutcome.NOT_PRESCRIBED

    def test_future_prescription_is_not_active(self, chart):
        chart.medicine("445", "Ceftriaxone")
        chart.prescribe("445", start_date=utcnow() + timedelta(days=1))
        assert chart.verifier.verify_scan(PATIENT_ID, "445").status == "error"

    def test_scan_input_is_trimmed(self, chart):
        chart.medicine("555", "Ondansetron")
        chart.prescribe("555")
        result = chart.verifier.verify_scan(PATIENT_ID, "  555 \n")
        assert result.status == "success"
        assert result.administration.medicine_id == "555"

    def test_empty_scan_is_ignored(self, chart):
        assert chart.verifier.verify_scan(PATIENT_ID, "   ") is None
        assert chart.storage.list_administrations(PATIENT_ID) == []

    def test_unknown_patient_raises(self, chart):
        with pytest.raises(UnknownPatientError):
            chart.verifier.verify_scan("123123123123", "555")

    def test_classify_does_not_write(self, chart):
        chart.medicine("666", "Morphine")
        chart.prescribe("666")
        assert chart.verifier.check_scan(PATIENT_ID, "666").outcome == ScanOutcome.SUCCESS
        assert chart.storage.list_administrations(PATIENT_ID) == []


class TestDuplicates:
    def test_never_two_successes(self, chart):
        chart.medicine("777", "Enoxaparin")
        chart.prescribe("777")
        statuses = [chart.verifier.verify_scan(PATIENT_ID, "777").status for _ in range(4)]
        assert statuses == ["success", "warning", "warning", "warning"]

    def test_confirm_gated_duplicate_is_not_recorded(self, chart):
        chart.medicine("888", "Oxytocin")
        chart.prescribe("888")
        chart.verifier.verify_scan(PATIENT_ID, "888")

        pending = chart.verifier.verify_scan(PATIENT_ID, "888", require_confirmation=True)
        assert pending.requires_confirmation
        assert pending.administration is None
        assert pending.prior_success is not None
        assert len(chart.storage.list_administrations(PATIENT_ID)) == 1

        confirmed = chart.verifier.confirm_duplicate_administration(PATIENT_ID, "888", user_id="rn-2")
        assert confirmed.administration.status == "warning"
        assert len(chart.storage.list_administrations(PATIENT_ID)) == 2
        logs = chart.audit.query("administration", confirmed.administration.id)
        assert logs[0].user_id == "rn-2"

    def test_require_confirmation_records_first_success(self, chart):
        chart.medicine("889", "Magnesium Sulfate")
        chart.prescribe("889")
        result = chart.verifier.verify_scan(PATIENT_ID, "889", require_confirmation=True)
        assert not result.requires_confirmation
        assert result.status == "success"

    def test_detect_duplicate(self, chart):
        chart.medicine("999", "Labetalol")
        chart.prescribe("999")
        assert chart.verifier.detect_duplicate(PATIENT_ID, "999") is None
        first = chart.verifier.create_administration(PATIENT_ID, "999")
        assert chart.verifier.detect_duplicate(PATIENT_ID, "999").id == first.id

    def test_lost_race_is_recorded_as_warning(self):
        class RacingStorage(MemStorage):
            """Another writer records the same success just before ours lands."""

            raced = False

            def create_administration(self, patient_id, medicine_id, status, message):
                if status == "success" and not self.raced:
                    self.raced = True
                    super().create_administration(patient_id, medicine_id, status, "other terminal")
                return super().create_administration(patient_id, medicine_id, status, message)

        chart = ChartFixture(RacingStorage())
        chart.medicine("1212", "Nifedipine")
        chart.prescribe("1212")

        result = chart.verifier.verify_scan(PATIENT_ID, "1212")
        assert result.status == "warning"
        assert result.prior_success.message == "other terminal"
        successes = [a for a in chart.storage.list_administrations(PATIENT_ID) if a.status == "success"]
        assert len(successes) == 1


class TestProgress:
    def test_no_prescriptions_is_zero_percent(self, chart):
        progress = chart.verifier.progress(PATIENT_ID)
        assert (progress.administered_count, progress.total_count, progress.percentage) == (0, 0, 0)

    def test_two_of_four(self, chart):
        for n in range(4):
            chart.medicine(f"10{n}", f"Drug {n}")
            chart.prescribe(f"10{n}")
        chart.verifier.verify_scan(PATIENT_ID, "100")
        chart.verifier.verify_scan(PATIENT_ID, "101")
        chart.verifier.verify_scan(PATIENT_ID, "101")
        progress = chart.verifier.progress(PATIENT_ID)
        assert (progress.administered_count, progress.total_count, progress.percentage) == (2, 4, 50)

    def test_errors_do_not_count(self, chart):
        chart.medicine("200", "Drug")
        chart.prescribe("200")
        chart.verifier.verify_scan(PATIENT_ID, "404404")
        assert chart.verifier.progress(PATIENT_ID).administered_count == 0

    @pytest.mark.parametrize(
        "administered,total,expected",
        [(0, 0, 0), (1, 3, 33), (2, 3, 67), (1, 8, 13), (3, 3, 100)],
    )
    def test_progress_percentage_rounds_half_up(self, administered, total, expected):
        assert progress_percentage(administered, total) == expected
