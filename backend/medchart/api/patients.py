from fastapi import APIRouter, Depends, HTTPException, status
from typing import List, Optional
from pydantic import BaseModel, Field
from datetime import datetime
from .. import schemas
from ..core.exceptions import ConflictError, UnknownMedicineError, UnknownPatientError
from ..core.permissions import AuthorizedCaller
from ..dependencies import get_charting_service, get_storage, require_authorized_caller
from ..services.charting import ChartingService
from ..services.dose_schedule import medication_schedule
from ..storage.base import Storage

router = APIRouter(prefix="/patients", tags=["patients"])


class DoseStatusResponse(BaseModel):
    prescription_id: str
    medicine_id: str
    medicine_name: Optional[str]
    dosage: str
    periodicity: str
    last_administered_at: Optional[datetime]
    next_due_at: Optional[datetime]
    overdue: bool
    as_needed: bool


def _require_patient(service: ChartingService, patient_id: str) -> schemas.Patient:
    patient = service.get_patient(patient_id)
    if not patient:
        raise HTTPException(status_code=404, detail="Patient not found")
    return patient


@router.post("/", response_model=schemas.Patient, status_code=status.HTTP_201_CREATED)
def create_patient(
    patient_in: schemas.PatientCreate,
    service: ChartingService = Depends(get_charting_service),
):
    try:
        return service.register_patient(patient_in)
    except ConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.get("/", response_model=List[schemas.Patient])
def list_patients(service: ChartingService = Depends(get_charting_service)):
    return service.list_patients()


@router.get("/{patient_id}", response_model=schemas.Patient)
def get_patient(patient_id: str, service: ChartingService = Depends(get_charting_service)):
    return _require_patient(service, patient_id)


@router.patch("/{patient_id}", response_model=schemas.Patient)
def update_patient(
    patient_id: str,
    update: schemas.PatientUpdate,
    service: ChartingService = Depends(get_charting_service),
):
    """Partial update; each call leaves a field-by-field diff in the audit trail."""
    patient = service.update_patient(patient_id, update)
    if not patient:
        raise HTTPException(status_code=404, detail="Patient not found")
    return patient


@router.delete("/{patient_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_patient(
    patient_id: str,
    service: ChartingService = Depends(get_charting_service),
    caller: AuthorizedCaller = Depends(require_authorized_caller),
):
    """Delete a patient along with prescriptions, administrations and lab results."""
    if not service.delete_patient(caller, patient_id):
        raise HTTPException(status_code=404, detail="Patient not found")


# ── Prescriptions ────────────────────────────────────────────────────────────

class PrescriptionRequest(BaseModel):
    medicine_id: str
    dosage: str = Field(min_length=1)
    periodicity: str = Field(min_length=1)
    duration: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


@router.get("/{patient_id}/prescriptions", response_model=List[schemas.Prescription])
def list_prescriptions(patient_id: str, service: ChartingService = Depends(get_charting_service)):
    return service.list_prescriptions(patient_id)


@router.post(
    "/{patient_id}/prescriptions",
    response_model=schemas.Prescription,
    status_code=status.HTTP_201_CREATED,
)
def create_prescription(
    patient_id: str,
    req: PrescriptionRequest,
    service: ChartingService = Depends(get_charting_service),
    caller: AuthorizedCaller = Depends(require_authorized_caller),
):
    prescription_in = schemas.PrescriptionCreate(patient_id=patient_id, **req.model_dump())
    try:
        return service.create_prescription(caller, prescription_in)
    except (UnknownPatientError, UnknownMedicineError) as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.patch("/{patient_id}/prescriptions/{prescription_id}", response_model=schemas.Prescription)
def update_prescription(
    patient_id: str,
    prescription_id: str,
    update: schemas.PrescriptionUpdate,
    service: ChartingService = Depends(get_charting_service),
    caller: AuthorizedCaller = Depends(require_authorized_caller),
):
    existing = service.storage.get_prescription(prescription_id)
    if not existing or existing.patient_id != patient_id:
        raise HTTPException(status_code=404, detail="Prescription not found")
    return service.update_prescription(caller, prescription_id, update)


@router.delete("/{patient_id}/prescriptions/{prescription_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_prescription(
    patient_id: str,
    prescription_id: str,
    service: ChartingService = Depends(get_charting_service),
    caller: AuthorizedCaller = Depends(require_authorized_caller),
):
    existing = service.storage.get_prescription(prescription_id)
    if not existing or existing.patient_id != patient_id:
        raise HTTPException(status_code=404, detail="Prescription not found")
    service.delete_prescription(caller, prescription_id)


# ── Medication timeline ──────────────────────────────────────────────────────

@router.get("/{patient_id}/medication-schedule", response_model=List[DoseStatusResponse])
def get_medication_schedule(
    patient_id: str,
    service: ChartingService = Depends(get_charting_service),
    storage: Storage = Depends(get_storage),
):
    """Last dose, next due time and overdue flag for each active prescription."""
    _require_patient(service, patient_id)
    return [DoseStatusResponse(**vars(s)) for s in medication_schedule(storage, patient_id)]
