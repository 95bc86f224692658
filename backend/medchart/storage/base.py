"""
Storage capability for chart entities.

Two interchangeable implementations exist: MemStorage (process-local maps)
and DatabaseStorage (SQLAlchemy). Services receive one of them explicitly.
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

from .. import schemas


class Storage(ABC):
    # ── Patients ─────────────────────────────────────────────────────────

    @abstractmethod
    def get_patient(self, patient_id: str) -> Optional[schemas.Patient]:
        ...

    @abstractmethod
    def list_patients(self) -> List[schemas.Patient]:
        ...

    @abstractmethod
    def create_patient(self, patient_id: str, fields: schemas.PatientFields) -> schemas.Patient:
        """Insert a patient under a caller-chosen ID. Raises PatientIdConflictError if taken."""

    @abstractmethod
    def update_patient(self, patient_id: str, fields: Dict[str, Any]) -> Optional[schemas.Patient]:
        ...

    @abstractmethod
    def delete_patient(self, patient_id: str) -> bool:
        """Delete a patient together with its lab results, administrations and prescriptions.

        The cascade is a single unit of work: either everything is removed or nothing is.
        """

    # ── Medicines ────────────────────────────────────────────────────────

    @abstractmethod
    def get_medicine(self, medicine_id: str) -> Optional[schemas.Medicine]:
        ...

    @abstractmethod
    def list_medicines(self) -> List[schemas.Medicine]:
        ...

    @abstractmethod
    def create_medicine(self, medicine: schemas.MedicineCreate) -> schemas.Medicine:
        ...

    # ── Prescriptions ────────────────────────────────────────────────────

    @abstractmethod
    def get_prescription(self, prescription_id: str) -> Optional[schemas.Prescription]:
        ...

    @abstractmethod
    def list_prescriptions(self, patient_id: Optional[str] = None) -> List[schemas.Prescription]:
        ...

    @abstractmethod
    def create_prescription(self, prescription: schemas.PrescriptionCreate) -> schemas.Prescription:
        """Raises DuplicatePrescriptionError if the patient already has this medicine prescribed."""

    @abstractmethod
    def update_prescription(self, prescription_id: str, fields: Dict[str, Any]) -> Optional[schemas.Prescription]:
        ...

    @abstractmethod
    def delete_prescription(self, prescription_id: str) -> bool:
        ...

    # ── Administrations ──────────────────────────────────────────────────

    @abstractmethod
    def get_administration(self, administration_id: str) -> Optional[schemas.Administration]:
        ...

    @abstractmethod
    def list_administrations(self, patient_id: Optional[str] = None) -> List[schemas.Administration]:
        """Administrations in the order they were recorded."""

    @abstractmethod
    def create_administration(
        self, patient_id: str, medicine_id: str, status: str, message: str
    ) -> schemas.Administration:
        """Raises DuplicateAdministrationError for a second success on the same pair."""

    # ── Audit ────────────────────────────────────────────────────────────

    @abstractmethod
    def create_audit_log(
        self,
        entity_type: str,
        entity_id: str,
        action: str,
        changes: Optional[Dict[str, Any]],
        timestamp: datetime,
        user_id: Optional[str] = None,
    ) -> schemas.AuditLog:
        ...

    @abstractmethod
    def list_audit_logs(self, entity_type: str, entity_id: str) -> List[schemas.AuditLog]:
        """Entries for one entity, newest first."""

    # ── Labs ─────────────────────────────────────────────────────────────

    @abstractmethod
    def create_lab_results(self, results: List[schemas.LabResultCreate]) -> List[schemas.LabResult]:
        ...

    @abstractmethod
    def list_lab_results(self, patient_id: Optional[str] = None) -> List[schemas.LabResult]:
        ...
