"""
In-memory storage backend.

Holds every entity in per-instance dictionaries; state is lost when the
instance goes away. Used for demos without a database and throughout the tests.
"""
import threading
from datetime import datetime
from typing import Any, Dict, List, Optional

from .. import schemas
from ..core.exceptions import (
    DuplicateAdministrationError,
    DuplicatePrescriptionError,
    MedicineIdConflictError,
    PatientIdConflictError,
)
from ..models.base import generate_uuid, utcnow
from ..models.medication import AdministrationStatus
from .base import Storage


class MemStorage(Storage):
    def __init__(self):
        self._lock = threading.RLock()
        self._patients: Dict[str, schemas.Patient] = {}
        self._medicines: Dict[str, schemas.Medicine] = {}
        self._prescriptions: Dict[str, schemas.Prescription] = {}
        self._administrations: Dict[str, schemas.Administration] = {}
        self._audit_logs: List[schemas.AuditLog] = []
        self._lab_results: Dict[str, schemas.LabResult] = {}

    # ── Patients ─────────────────────────────────────────────────────────

    def get_patient(self, patient_id: str) -> Optional[schemas.Patient]:
        return self._patients.get(patient_id)

    def list_patients(self) -> List[schemas.Patient]:
        return list(self._patients.values())

    def create_patient(self, patient_id: str, fields: schemas.PatientFields) -> schemas.Patient:
        with self._lock:
            if patient_id in self._patients:
                raise PatientIdConflictError(f"Patient ID {patient_id} already exists")
            patient = schemas.Patient(id=patient_id, created_at=utcnow(), **fields.model_dump(exclude={"id"}))
            self._patients[patient_id] = patient
            return patient

    def update_patient(self, patient_id: str, fields: Dict[str, Any]) -> Optional[schemas.Patient]:
        with self._lock:
            current = self._patients.get(patient_id)
            if current is None:
                return None
            updated = schemas.Patient.model_validate({**current.model_dump(), **fields})
            self._patients[patient_id] = updated
            return updated

    def delete_patient(self, patient_id: str) -> bool:
        with self._lock:
            if patient_id not in self._patients:
                return False
            for table in (self._lab_results, self._administrations, self._prescriptions):
                for key in [k for k, v in table.items() if v.patient_id == patient_id]:
                    del table[key]
            del self._patients[patient_id]
            return True

    # ── Medicines ────────────────────────────────────────────────────────

    def get_medicine(self, medicine_id: str) -> Optional[schemas.Medicine]:
        return self._medicines.get(medicine_id)

    def list_medicines(self) -> List[schemas.Medicine]:
        return list(self._medicines.values())

    def create_medicine(self, medicine: schemas.MedicineCreate) -> schemas.Medicine:
        with self._lock:
            if medicine.id in self._medicines:
                raise MedicineIdConflictError(f"Medicine ID {medicine.id} already exists")
            record = schemas.Medicine(**medicine.model_dump())
            self._medicines[record.id] = record
            return record

    # ── Prescriptions ────────────────────────────────────────────────────

    def get_prescription(self, prescription_id: str) -> Optional[schemas.Prescription]:
        return self._prescriptions.get(prescription_id)

    def list_prescriptions(self, patient_id: Optional[str] = None) -> List[schemas.Prescription]:
        return [
            p for p in self._prescriptions.values()
            if patient_id is None or p.patient_id == patient_id
        ]

    def create_prescription(self, prescription: schemas.PrescriptionCreate) -> schemas.Prescription:
        with self._lock:
            for existing in self._prescriptions.values():
                if (existing.patient_id, existing.medicine_id) == (prescription.patient_id, prescription.medicine_id):
                    raise DuplicatePrescriptionError(
                        f"Medicine {prescription.medicine_id} is already prescribed for patient {prescription.patient_id}"
                    )
            record = schemas.Prescription(id=generate_uuid(), **prescription.model_dump())
            self._prescriptions[record.id] = record
            return record

    def update_prescription(self, prescription_id: str, fields: Dict[str, Any]) -> Optional[schemas.Prescription]:
        with self._lock:
            current = self._prescriptions.get(prescription_id)
            if current is None:
                return None
            updated = schemas.Prescription.model_validate({**current.model_dump(), **fields})
            self._prescriptions[prescription_id] = updated
            return updated

    def delete_prescription(self, prescription_id: str) -> bool:
        with self._lock:
            return self._prescriptions.pop(prescription_id, None) is not None

    # ── Administrations ──────────────────────────────────────────────────

    def get_administration(self, administration_id: str) -> Optional[schemas.Administration]:
        return self._administrations.get(administration_id)

    def list_administrations(self, patient_id: Optional[str] = None) -> List[schemas.Administration]:
        return [
            a for a in self._administrations.values()
            if patient_id is None or a.patient_id == patient_id
        ]

    def create_administration(
        self, patient_id: str, medicine_id: str, status: str, message: str
    ) -> schemas.Administration:
        with self._lock:
            if status == AdministrationStatus.SUCCESS and any(
                a.patient_id == patient_id
                and a.medicine_id == medicine_id
                and a.status == AdministrationStatus.SUCCESS
                for a in self._administrations.values()
            ):
                raise DuplicateAdministrationError(
                    f"Medicine {medicine_id} already administered to patient {patient_id}"
                )
            record = schemas.Administration(
                id=generate_uuid(),
                patient_id=patient_id,
                medicine_id=medicine_id,
                administered_at=utcnow(),
                status=status,
                message=message,
            )
            self._administrations[record.id] = record
            return record

    # ── Audit ────────────────────────────────────────────────────────────

    def create_audit_log(
        self,
        entity_type: str,
        entity_id: str,
        action: str,
        changes: Optional[Dict[str, Any]],
        timestamp: datetime,
        user_id: Optional[str] = None,
    ) -> schemas.AuditLog:
        entry = schemas.AuditLog(
            id=generate_uuid(),
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            changes=changes,
            timestamp=timestamp,
            user_id=user_id,
        )
        with self._lock:
            self._audit_logs.append(entry)
        return entry

    def list_audit_logs(self, entity_type: str, entity_id: str) -> List[schemas.AuditLog]:
        matches = [
            e for e in self._audit_logs
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return sorted(matches, key=lambda e: e.timestamp, reverse=True)

    # ── Labs ─────────────────────────────────────────────────────────────

    def create_lab_results(self, results: List[schemas.LabResultCreate]) -> List[schemas.LabResult]:
        created = []
        with self._lock:
            for result in results:
                record = schemas.LabResult(id=generate_uuid(), created_at=utcnow(), **result.model_dump())
                self._lab_results[record.id] = record
                created.append(record)
        return created

    def list_lab_results(self, patient_id: Optional[str] = None) -> List[schemas.LabResult]:
        return [
            r for r in self._lab_results.values()
            if patient_id is None or r.patient_id == patient_id
        ]
