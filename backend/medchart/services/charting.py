"""
Charting service: patient, medicine and prescription lifecycle.

Mutations on patients and prescriptions write the record first and then the
matching audit entry. Prescribing and deleting require an AuthorizedCaller.
"""
import logging
import secrets
from typing import List, Optional

from .. import schemas
from ..core.config import settings
from ..core.exceptions import (
    DuplicatePrescriptionError,
    PatientIdConflictError,
    PatientIdExhaustedError,
    UnknownMedicineError,
    UnknownPatientError,
)
from ..core.permissions import (
    PERM_DELETE_PATIENTS,
    PERM_MANAGE_PRESCRIPTIONS,
    AuthorizedCaller,
    require_permission,
)
from ..models.audit import AuditEntityType
from ..storage.base import Storage
from .audit import AuditRecorder

logger = logging.getLogger(__name__)

PATIENT_ID_DIGITS = 12


def generate_patient_id() -> str:
    """Random 12-digit numeric ID without a leading zero."""
    low = 10 ** (PATIENT_ID_DIGITS - 1)
    return str(low + secrets.randbelow(9 * low))


class ChartingService:
    def __init__(self, storage: Storage, audit: Optional[AuditRecorder] = None):
        self.storage = storage
        self.audit = audit if audit is not None else AuditRecorder(storage)

    # ── Patients ─────────────────────────────────────────────────────────

    def get_patient(self, patient_id: str) -> Optional[schemas.Patient]:
        return self.storage.get_patient(patient_id)

    def list_patients(self) -> List[schemas.Patient]:
        return self.storage.list_patients()

    def register_patient(self, patient_in: schemas.PatientCreate) -> schemas.Patient:
        if patient_in.id:
            return self.storage.create_patient(patient_in.id, patient_in)

        for _ in range(settings.PATIENT_ID_MAX_ATTEMPTS):
            candidate = generate_patient_id()
            try:
                return self.storage.create_patient(candidate, patient_in)
            except PatientIdConflictError:
                logger.info("Generated patient ID %s collided, retrying", candidate)
        raise PatientIdExhaustedError(
            f"Could not allocate a free patient ID after {settings.PATIENT_ID_MAX_ATTEMPTS} attempts"
        )

    def update_patient(self, patient_id: str, update: schemas.PatientUpdate) -> Optional[schemas.Patient]:
        payload = update.model_dump(exclude_unset=True)
        before = self.storage.get_patient(patient_id)
        if before is None:
            return None
        after = self.storage.update_patient(patient_id, payload)
        if after is None:
            return None
        self.audit.record_update(AuditEntityType.PATIENT, before, after, payload.keys())
        return after

    def delete_patient(self, caller: AuthorizedCaller, patient_id: str) -> bool:
        require_permission(caller, PERM_DELETE_PATIENTS)
        patient = self.storage.get_patient(patient_id)
        if patient is None:
            return False

        summary = {
            "name": patient.name,
            "mrn": patient.mrn,
            "removed_prescriptions": len(self.storage.list_prescriptions(patient_id)),
            "removed_administrations": len(self.storage.list_administrations(patient_id)),
            "removed_lab_results": len(self.storage.list_lab_results(patient_id)),
        }
        if not self.storage.delete_patient(patient_id):
            return False
        logger.info("Deleted patient %s with dependents %s", patient_id, summary)
        self.audit.record_delete(AuditEntityType.PATIENT, patient_id, summary, caller.user_id)
        return True

    # ── Medicines ────────────────────────────────────────────────────────

    def get_medicine(self, medicine_id: str) -> Optional[schemas.Medicine]:
        return self.storage.get_medicine(medicine_id)

    def list_medicines(self) -> List[schemas.Medicine]:
        return self.storage.list_medicines()

    def create_medicine(self, medicine_in: schemas.MedicineCreate) -> schemas.Medicine:
        return self.storage.create_medicine(medicine_in)

    # ── Prescriptions ────────────────────────────────────────────────────

    def list_prescriptions(self, patient_id: str) -> List[schemas.Prescription]:
        return self.storage.list_prescriptions(patient_id)

    def create_prescription(
        self, caller: AuthorizedCaller, prescription_in: schemas.PrescriptionCreate
    ) -> schemas.Prescription:
        require_permission(caller, PERM_MANAGE_PRESCRIPTIONS)
        if self.storage.get_patient(prescription_in.patient_id) is None:
            raise UnknownPatientError(prescription_in.patient_id)
        if self.storage.get_medicine(prescription_in.medicine_id) is None:
            raise UnknownMedicineError(prescription_in.medicine_id)
        if any(
            p.medicine_id == prescription_in.medicine_id
            for p in self.storage.list_prescriptions(prescription_in.patient_id)
        ):
            raise DuplicatePrescriptionError(
                f"Medicine {prescription_in.medicine_id} is already prescribed for patient {prescription_in.patient_id}"
            )

        prescription = self.storage.create_prescription(prescription_in)
        self.audit.record_create(AuditEntityType.PRESCRIPTION, prescription, caller.user_id)
        return prescription

    def update_prescription(
        self, caller: AuthorizedCaller, prescription_id: str, update: schemas.PrescriptionUpdate
    ) -> Optional[schemas.Prescription]:
        require_permission(caller, PERM_MANAGE_PRESCRIPTIONS)
        payload = update.model_dump(exclude_unset=True)
        before = self.storage.get_prescription(prescription_id)
        if before is None:
            return None
        after = self.storage.update_prescription(prescription_id, payload)
        if after is None:
            return None
        self.audit.record_update(AuditEntityType.PRESCRIPTION, before, after, payload.keys(), caller.user_id)
        return after

    def delete_prescription(self, caller: AuthorizedCaller, prescription_id: str) -> bool:
        require_permission(caller, PERM_MANAGE_PRESCRIPTIONS)
        prescription = self.storage.get_prescription(prescription_id)
        if prescription is None:
            return False
        if not self.storage.delete_prescription(prescription_id):
            return False

        medicine = self.storage.get_medicine(prescription.medicine_id)
        summary = {
            "patient_id": prescription.patient_id,
            "medicine_id": prescription.medicine_id,
            "medicine_name": medicine.name if medicine else None,
            "dosage": prescription.dosage,
            "periodicity": prescription.periodicity,
        }
        self.audit.record_delete(AuditEntityType.PRESCRIPTION, prescription_id, summary, caller.user_id)
        return True

    # ── Audit ────────────────────────────────────────────────────────────

    def list_audit_logs(self, entity_type: str, entity_id: str) -> List[schemas.AuditLog]:
        return self.audit.query(entity_type, entity_id)
