"""
Relational storage backend (SQLAlchemy ORM).

Each operation runs in its own session and commits before returning.
Uniqueness rules are enforced by table constraints and surfaced as domain errors.
"""
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from .. import schemas
from ..core.exceptions import (
    DuplicateAdministrationError,
    DuplicatePrescriptionError,
    MedicineIdConflictError,
    PatientIdConflictError,
)
from ..models.audit import AuditLog
from ..models.base import generate_uuid
from ..models.lab import LabResult
from ..models.medication import Administration, Medicine, Prescription
from ..models.patient import Patient
from .base import Storage

logger = logging.getLogger(__name__)


class DatabaseStorage(Storage):
    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    @contextmanager
    def _session(self):
        db: Session = self._session_factory()
        try:
            yield db
        finally:
            db.close()

    def _insert(self, db: Session, row, conflict: Exception):
        db.add(row)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise conflict
        db.refresh(row)
        return row

    # ── Patients ─────────────────────────────────────────────────────────

    def get_patient(self, patient_id: str) -> Optional[schemas.Patient]:
        with self._session() as db:
            row = db.get(Patient, patient_id)
            return schemas.Patient.model_validate(row) if row else None

    def list_patients(self) -> List[schemas.Patient]:
        with self._session() as db:
            return [schemas.Patient.model_validate(r) for r in db.query(Patient).order_by(Patient.name).all()]

    def create_patient(self, patient_id: str, fields: schemas.PatientFields) -> schemas.Patient:
        conflict = PatientIdConflictError(f"Patient ID {patient_id} already exists")
        with self._session() as db:
            if db.get(Patient, patient_id) is not None:
                raise conflict
            row = Patient(id=patient_id, **fields.model_dump(exclude={"id"}))
            return schemas.Patient.model_validate(self._insert(db, row, conflict))

    def update_patient(self, patient_id: str, fields: Dict[str, Any]) -> Optional[schemas.Patient]:
        with self._session() as db:
            row = db.get(Patient, patient_id)
            if row is None:
                return None
            for key, value in fields.items():
                setattr(row, key, value)
            db.commit()
            db.refresh(row)
            return schemas.Patient.model_validate(row)

    def delete_patient(self, patient_id: str) -> bool:
        with self._session() as db:
            row = db.get(Patient, patient_id)
            if row is None:
                return False
            try:
                db.query(LabResult).filter(LabResult.patient_id == patient_id).delete(synchronize_session=False)
                db.query(Administration).filter(Administration.patient_id == patient_id).delete(synchronize_session=False)
                db.query(Prescription).filter(Prescription.patient_id == patient_id).delete(synchronize_session=False)
                db.delete(row)
                db.commit()
            except Exception:
                db.rollback()
                logger.exception("Cascade delete failed for patient %s; nothing was removed", patient_id)
                raise
            return True

    # ── Medicines ────────────────────────────────────────────────────────

    def get_medicine(self, medicine_id: str) -> Optional[schemas.Medicine]:
        with self._session() as db:
            row = db.get(Medicine, medicine_id)
            return schemas.Medicine.model_validate(row) if row else None

    def list_medicines(self) -> List[schemas.Medicine]:
        with self._session() as db:
            return [schemas.Medicine.model_validate(r) for r in db.query(Medicine).order_by(Medicine.name).all()]

    def create_medicine(self, medicine: schemas.MedicineCreate) -> schemas.Medicine:
        conflict = MedicineIdConflictError(f"Medicine ID {medicine.id} already exists")
        with self._session() as db:
            if db.get(Medicine, medicine.id) is not None:
                raise conflict
            row = Medicine(**medicine.model_dump())
            return schemas.Medicine.model_validate(self._insert(db, row, conflict))

    # ── Prescriptions ────────────────────────────────────────────────────

    def get_prescription(self, prescription_id: str) -> Optional[schemas.Prescription]:
        with self._session() as db:
            row = db.get(Prescription, prescription_id)
            return schemas.Prescription.model_validate(row) if row else None

    def list_prescriptions(self, patient_id: Optional[str] = None) -> List[schemas.Prescription]:
        with self._session() as db:
            q = db.query(Prescription)
            if patient_id is not None:
                q = q.filter(Prescription.patient_id == patient_id)
            return [schemas.Prescription.model_validate(r) for r in q.all()]

    def create_prescription(self, prescription: schemas.PrescriptionCreate) -> schemas.Prescription:
        conflict = DuplicatePrescriptionError(
            f"Medicine {prescription.medicine_id} is already prescribed for patient {prescription.patient_id}"
        )
        with self._session() as db:
            row = Prescription(id=generate_uuid(), **prescription.model_dump())
            return schemas.Prescription.model_validate(self._insert(db, row, conflict))

    def update_prescription(self, prescription_id: str, fields: Dict[str, Any]) -> Optional[schemas.Prescription]:
        with self._session() as db:
            row = db.get(Prescription, prescription_id)
            if row is None:
                return None
            for key, value in fields.items():
                setattr(row, key, value)
            db.commit()
            db.refresh(row)
            return schemas.Prescription.model_validate(row)

    def delete_prescription(self, prescription_id: str) -> bool:
        with self._session() as db:
            row = db.get(Prescription, prescription_id)
            if row is None:
                return False
            db.delete(row)
            db.commit()
            return True

    # ── Administrations ──────────────────────────────────────────────────

    def get_administration(self, administration_id: str) -> Optional[schemas.Administration]:
        with self._session() as db:
            row = db.get(Administration, administration_id)
            return schemas.Administration.model_validate(row) if row else None

    def list_administrations(self, patient_id: Optional[str] = None) -> List[schemas.Administration]:
        with self._session() as db:
            q = db.query(Administration)
            if patient_id is not None:
                q = q.filter(Administration.patient_id == patient_id)
            rows = q.order_by(Administration.administered_at).all()
            return [schemas.Administration.model_validate(r) for r in rows]

    def create_administration(
        self, patient_id: str, medicine_id: str, status: str, message: str
    ) -> schemas.Administration:
        conflict = DuplicateAdministrationError(
            f"Medicine {medicine_id} already administered to patient {patient_id}"
        )
        with self._session() as db:
            row = Administration(
                id=generate_uuid(),
                patient_id=patient_id,
                medicine_id=medicine_id,
                status=status,
                message=message,
            )
            return schemas.Administration.model_validate(self._insert(db, row, conflict))

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
        with self._session() as db:
            row = AuditLog(
                id=generate_uuid(),
                entity_type=entity_type,
                entity_id=entity_id,
                action=action,
                changes=changes,
                timestamp=timestamp,
                user_id=user_id,
            )
            db.add(row)
            db.commit()
            db.refresh(row)
            return schemas.AuditLog.model_validate(row)

    def list_audit_logs(self, entity_type: str, entity_id: str) -> List[schemas.AuditLog]:
        with self._session() as db:
            rows = (
                db.query(AuditLog)
                .filter(AuditLog.entity_type == entity_type, AuditLog.entity_id == entity_id)
                .order_by(AuditLog.timestamp.desc())
                .all()
            )
            return [schemas.AuditLog.model_validate(r) for r in rows]

    # ── Labs ─────────────────────────────────────────────────────────────

    def create_lab_results(self, results: List[schemas.LabResultCreate]) -> List[schemas.LabResult]:
        with self._session() as db:
            rows = [LabResult(id=generate_uuid(), **r.model_dump()) for r in results]
            db.add_all(rows)
            db.commit()
            for row in rows:
                db.refresh(row)
            return [schemas.LabResult.model_validate(r) for r in rows]

    def list_lab_results(self, patient_id: Optional[str] = None) -> List[schemas.LabResult]:
        with self._session() as db:
            q = db.query(LabResult)
            if patient_id is not None:
                q = q.filter(LabResult.patient_id == patient_id)
            return [schemas.LabResult.model_validate(r) for r in q.order_by(LabResult.taken_at.desc()).all()]
