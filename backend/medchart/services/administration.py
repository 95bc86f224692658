"""
Medication administration verification.

A scanned medicine barcode is matched against the medicine catalog, the
patient's active prescriptions and the patient's administration history.
Every outcome (including the dangerous ones) is written as an Administration
record and mirrored into the audit trail; outcomes are never raised as errors.
"""
import logging
import math
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional

from .. import schemas
from ..core.exceptions import DuplicateAdministrationError, UnknownPatientError
from ..models.base import utcnow
from ..models.medication import AdministrationStatus
from ..storage.base import Storage
from .audit import AuditRecorder

logger = logging.getLogger(__name__)


class ScanOutcome:
    UNKNOWN_MEDICINE = "unknown_medicine"
    NOT_PRESCRIBED = "not_prescribed"
    DUPLICATE = "duplicate"
    SUCCESS = "success"


@dataclass
class ScanClassification:
    outcome: str  # ScanOutcome
    status: str  # AdministrationStatus
    message: str
    patient_id: str
    medicine_id: str
    medicine: Optional[schemas.Medicine] = None
    prior_success: Optional[schemas.Administration] = None


@dataclass
class VerificationResult:
    classification: ScanClassification
    # None while a duplicate is waiting for the caller's confirmation
    administration: Optional[schemas.Administration] = None

    @property
    def requires_confirmation(self) -> bool:
        return self.administration is None

    @property
    def status(self) -> str:
        return self.classification.status

    @property
    def prior_success(self) -> Optional[schemas.Administration]:
        return self.classification.prior_success


@dataclass
class MedicationProgress:
    administered_count: int
    total_count: int
    percentage: int


def progress_percentage(administered_count: int, total_count: int) -> int:
    """Whole-number percentage, rounded half up; 0 when nothing is prescribed."""
    if total_count <= 0:
        return 0
    return int(math.floor(administered_count * 100 / total_count + 0.5))


class PatientLockRegistry:
    """One lock per patient so a scan's read-classify-write runs alone."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}

    def lock_for(self, patient_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(patient_id)
            if lock is None:
                lock = self._locks[patient_id] = threading.Lock()
            return lock


class AdministrationVerifier:
    def __init__(
        self,
        storage: Storage,
        audit: Optional[AuditRecorder] = None,
        locks: Optional[PatientLockRegistry] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.storage = storage
        self.audit = audit if audit is not None else AuditRecorder(storage)
        self.locks = locks if locks is not None else patient_locks
        self.clock = clock

    def _require_patient(self, patient_id: str) -> schemas.Patient:
        patient = self.storage.get_patient(patient_id)
        if patient is None:
            raise UnknownPatientError(patient_id)
        return patient

    def active_prescriptions(self, patient_id: str, at: Optional[datetime] = None) -> List[schemas.Prescription]:
        at = at or self.clock()
        return [p for p in self.storage.list_prescriptions(patient_id) if p.is_active(at)]

    def list_administrations(self, patient_id: str) -> List[schemas.Administration]:
        return self.storage.list_administrations(patient_id)

    def detect_duplicate(self, patient_id: str, medicine_id: str) -> Optional[schemas.Administration]:
        """Earliest successful administration of this medicine to this patient, if any."""
        for administration in self.storage.list_administrations(patient_id):
            if administration.medicine_id == medicine_id and administration.status == AdministrationStatus.SUCCESS:
                return administration
        return None

    def classify(self, patient_id: str, medicine_id: str) -> ScanClassification:
        medicine = self.storage.get_medicine(medicine_id)
        if medicine is None:
            return ScanClassification(
                outcome=ScanOutcome.UNKNOWN_MEDICINE,
                status=AdministrationStatus.ERROR,
                message=f"ERROR: Scanned barcode {medicine_id} is not a known medicine.",
                patient_id=patient_id,
                medicine_id=medicine_id,
            )

        prescribed_ids = {p.medicine_id for p in self.active_prescriptions(patient_id)}
        if medicine_id not in prescribed_ids:
            return ScanClassification(
                outcome=ScanOutcome.NOT_PRESCRIBED,
                status=AdministrationStatus.ERROR,
                message=f"DANGER: Scanned medicine '{medicine.name}' is NOT prescribed for this patient.",
                patient_id=patient_id,
                medicine_id=medicine_id,
                medicine=medicine,
            )

        prior = self.detect_duplicate(patient_id, medicine_id)
        if prior is not None:
            return self._duplicate(patient_id, medicine, prior)

        return ScanClassification(
            outcome=ScanOutcome.SUCCESS,
            status=AdministrationStatus.SUCCESS,
            message=f"SUCCESS: Administered '{medicine.name}'.",
            patient_id=patient_id,
            medicine_id=medicine_id,
            medicine=medicine,
        )

    @staticmethod
    def _duplicate(
        patient_id: str, medicine: schemas.Medicine, prior: Optional[schemas.Administration]
    ) -> ScanClassification:
        return ScanClassification(
            outcome=ScanOutcome.DUPLICATE,
            status=AdministrationStatus.WARNING,
            message=f"WARNING: '{medicine.name}' has already been administered.",
            patient_id=patient_id,
            medicine_id=medicine.id,
            medicine=medicine,
            prior_success=prior,
        )

    def check_scan(self, patient_id: str, scanned_id: str) -> Optional[ScanClassification]:
        """Classify a scan without recording it. Empty scans return None."""
        medicine_id = (scanned_id or "").strip()
        if not medicine_id:
            return None
        self._require_patient(patient_id)
        return self.classify(patient_id, medicine_id)

    def verify_scan(
        self,
        patient_id: str,
        scanned_id: str,
        user_id: Optional[str] = None,
        require_confirmation: bool = False,
    ) -> Optional[VerificationResult]:
        """
        Classify a scan and record the outcome.

        With require_confirmation, a duplicate is returned unrecorded so the
        caller can ask the user and then call confirm_duplicate_administration.
        Empty scans are ignored and return None.
        """
        medicine_id = (scanned_id or "").strip()
        if not medicine_id:
            return None
        self._require_patient(patient_id)
        return self._record(patient_id, medicine_id, user_id, allow_duplicate=not require_confirmation)

    def create_administration(
        self, patient_id: str, medicine_id: str, user_id: Optional[str] = None
    ) -> Optional[schemas.Administration]:
        result = self.verify_scan(patient_id, medicine_id, user_id=user_id)
        return result.administration if result else None

    def confirm_duplicate_administration(
        self, patient_id: str, medicine_id: str, user_id: Optional[str] = None
    ) -> Optional[VerificationResult]:
        """Second phase of the confirm-gated flow: the user accepted the duplicate, record it."""
        return self.verify_scan(patient_id, medicine_id, user_id=user_id, require_confirmation=False)

    def _record(
        self, patient_id: str, medicine_id: str, user_id: Optional[str], allow_duplicate: bool
    ) -> VerificationResult:
        with self.locks.lock_for(patient_id):
            classification = self.classify(patient_id, medicine_id)
            if classification.outcome == ScanOutcome.DUPLICATE and not allow_duplicate:
                return VerificationResult(classification=classification)

            try:
                administration = self._write(classification)
            except DuplicateAdministrationError:
                # Another writer recorded the success between our read and write
                classification = self._duplicate(
                    patient_id, classification.medicine, self.detect_duplicate(patient_id, medicine_id)
                )
                if not allow_duplicate:
                    return VerificationResult(classification=classification)
                administration = self._write(classification)

        self.audit.record_administration(administration, user_id)
        if classification.status == AdministrationStatus.SUCCESS:
            logger.info("Administered %s to patient %s", medicine_id, patient_id)
        else:
            logger.warning("Scan for patient %s: %s", patient_id, classification.message)
        return VerificationResult(classification=classification, administration=administration)

    def _write(self, classification: ScanClassification) -> schemas.Administration:
        return self.storage.create_administration(
            patient_id=classification.patient_id,
            medicine_id=classification.medicine_id,
            status=classification.status,
            message=classification.message,
        )

    def progress(self, patient_id: str) -> MedicationProgress:
        active_ids = {p.medicine_id for p in self.active_prescriptions(patient_id)}
        administered_ids = {
            a.medicine_id
            for a in self.storage.list_administrations(patient_id)
            if a.status == AdministrationStatus.SUCCESS and a.medicine_id in active_ids
        }
        return MedicationProgress(
            administered_count=len(administered_ids),
            total_count=len(active_ids),
            percentage=progress_percentage(len(administered_ids), len(active_ids)),
        )


patient_locks = PatientLockRegistry()
