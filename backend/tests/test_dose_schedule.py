from datetime import date, datetime, timedelta

import pytest

from medchart import schemas
from medchart.services.dose_schedule import dose_interval, medication_schedule, next_dose_due
from medchart.storage.memory import MemStorage

GIVEN = datetime(2025, 8, 23, 6, 0)


@pytest.mark.parametrize(
    "periodicity,hours",
    [
        ("Every 6 hours", 6),
        ("every 4 hours as tolerated", 4),
        ("Every 1 hour", 1),
        ("Once daily", 24),
        ("Twice daily", 12),
        ("Three times daily", 8),
        ("Four times daily", 6),
        ("At bedtime", 6),
    ],
)
def test_next_dose_due(periodicity, hours):
    assert next_dose_due(GIVEN, periodicity) == GIVEN + timedelta(hours=hours)


def test_as_needed_has_no_schedule():
    assert dose_interval("Every 4 hours as needed") is None
    assert next_dose_due(GIVEN, "As needed for pain") is None


def test_medication_schedule():
    storage = MemStorage()
    storage.create_patient(
        "121212121212",
        schemas.PatientFields(name="Sched", dob=date(2000, 1, 1), age=25, sex="Female", mrn="M"),
    )
    for medicine_id, name in (("1", "Acetaminophen"), ("2", "Ibuprofen"), ("3", "Oxycodone")):
        storage.create_medicine(schemas.MedicineCreate(id=medicine_id, name=name))
    storage.create_prescription(schemas.PrescriptionCreate(
        patient_id="121212121212", medicine_id="1", dosage="500mg", periodicity="Every 6 hours"))
    storage.create_prescription(schemas.PrescriptionCreate(
        patient_id="121212121212", medicine_id="2", dosage="400mg", periodicity="Once daily"))
    storage.create_prescription(schemas.PrescriptionCreate(
        patient_id="121212121212", medicine_id="3", dosage="5mg", periodicity="As needed"))
    given = storage.create_administration("121212121212", "1", "success", "SUCCESS: Administered 'Acetaminophen'.")
    storage.create_administration("121212121212", "2", "error", "DANGER")

    now = given.administered_at + timedelta(hours=7)
    schedule = {s.medicine_id: s for s in medication_schedule(storage, "121212121212", now=now)}

    assert schedule["1"].medicine_name == "Acetaminophen"
    assert schedule["1"].last_administered_at == given.administered_at
    assert schedule["1"].next_due_at == given.administered_at + timedelta(hours=6)
    assert schedule["1"].overdue

    # Failed scans do not count as a dose
    assert schedule["2"].last_administered_at is None
    assert schedule["2"].next_due_at is None
    assert not schedule["2"].overdue

    assert schedule["3"].as_needed
    assert schedule["3"].next_due_at is None
