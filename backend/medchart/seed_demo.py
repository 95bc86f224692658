"""
Demo data seeder for MedChart.

Creates four demo patients across labor & delivery, medical, postpartum and
newborn units, the barcoded medicines on the demo ward cart, and a starter set
of prescriptions so the scan walkthrough works immediately after a fresh start.

Medicine barcodes:
  319084         Acetaminophen
  95283134       Ibuprofen
  6032924        Amoxicillin
  09509828942    Metformin
  2094434849303  Lisinopril

This seeder is idempotent; it is safe to call on every startup.
"""
import logging
from datetime import date

from . import schemas
from .storage.base import Storage

logger = logging.getLogger(__name__)

PLACEHOLDER = "Place holder"

PLACEHOLDER_CHART = schemas.ChartData(
    background=PLACEHOLDER,
    summary=PLACEHOLDER,
    discharge=PLACEHOLDER,
    handoff=PLACEHOLDER,
)

DEMO_PATIENTS = {
    "112233445566": dict(
        name="Olivia Chen", dob=date(1988, 5, 21), age=37, dose_weight="68 kg", sex="Female",
        admitted=date(2025, 8, 22), code_status="Full Code", isolation="None", bed="LD-102",
        allergies="None", status="Stable", department="Labor & Delivery",
    ),
    "223344556677": dict(
        name="Benjamin Carter", dob=date(1954, 11, 10), age=70, dose_weight="85 kg", sex="Male",
        admitted=date(2025, 8, 20), code_status="DNR/DNI", isolation="Contact Precautions (MRSA)",
        bed="ICU-205", allergies="Penicillin", status="Improving", department="Medical",
    ),
    "334455667788": dict(
        name="Maria Rodriguez", dob=date(1995, 3, 15), age=29, dose_weight="62 kg", sex="Female",
        admitted=date(2025, 8, 23), code_status="Full Code", isolation="None", bed="PP-108",
        allergies="Latex, Shellfish", status="Good", department="Postpartum",
    ),
    "445566778899": dict(
        name="Baby Rodriguez", dob=date(2025, 8, 23), age=0, dose_weight="3.2 kg", sex="Female",
        admitted=date(2025, 8, 23), code_status="Full Code", isolation="None", bed="NB-201",
        allergies="None known", status="Healthy", department="Newborn",
    ),
}

DEMO_MEDICINES = {
    "319084": "Acetaminophen",
    "95283134": "Ibuprofen",
    "6032924": "Amoxicillin",
    "09509828942": "Metformin",
    "2094434849303": "Lisinopril",
}

# (patient_id, medicine_id, dosage, periodicity)
DEMO_PRESCRIPTIONS = [
    ("112233445566", "319084", "500mg", "Every 6 hours"),
    ("112233445566", "95283134", "25mg", "Once daily"),
    ("112233445566", "6032924", "250mg", "Twice daily"),
    ("223344556677", "09509828942", "500mg", "Twice daily"),
    ("223344556677", "319084", "1000mg", "Once daily"),
    ("223344556677", "2094434849303", "10mg", "Once daily"),
]


def seed_demo_data(storage: Storage) -> None:
    """Create demo patients, medicines and prescriptions if they do not already exist."""
    _seed_patients(storage)
    _seed_medicines(storage)
    _seed_prescriptions(storage)


# ── helpers ──────────────────────────────────────────────────────────────────

def _seed_patients(storage: Storage) -> None:
    for patient_id, fields in DEMO_PATIENTS.items():
        if storage.get_patient(patient_id):
            continue
        storage.create_patient(
            patient_id,
            schemas.PatientFields(
                mrn=PLACEHOLDER,
                fin=PLACEHOLDER,
                provider=PLACEHOLDER,
                notes=PLACEHOLDER,
                chart_data=PLACEHOLDER_CHART,
                **fields,
            ),
        )
        logger.info("[seed] Created demo patient: %s (%s)", fields["name"], patient_id)


def _seed_medicines(storage: Storage) -> None:
    for medicine_id, name in DEMO_MEDICINES.items():
        if storage.get_medicine(medicine_id):
            continue
        storage.create_medicine(schemas.MedicineCreate(id=medicine_id, name=name))
        logger.info("[seed] Created demo medicine: %s (%s)", name, medicine_id)


def _seed_prescriptions(storage: Storage) -> None:
    for patient_id, medicine_id, dosage, periodicity in DEMO_PRESCRIPTIONS:
        existing = {p.medicine_id for p in storage.list_prescriptions(patient_id)}
        if medicine_id in existing:
            continue
        storage.create_prescription(
            schemas.PrescriptionCreate(
                patient_id=patient_id,
                medicine_id=medicine_id,
                dosage=dosage,
                periodicity=periodicity,
            )
        )
    logger.info("[seed] Demo prescriptions in place")
