from fastapi import APIRouter, Depends, HTTPException, Response, status
from typing import List, Optional
from pydantic import BaseModel
import logging
from .. import schemas
from ..core.exceptions import UnknownPatientError
from ..dependencies import get_verifier
from ..services.administration import AdministrationVerifier, ScanClassification, VerificationResult

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/administrations", tags=["administrations"])


class ScanRequest(BaseModel):
    patient_id: str
    medicine_id: str
    # Hold duplicate scans back until the user confirms them
    require_confirmation: bool = False
    user_id: Optional[str] = None


class ConfirmDuplicateRequest(BaseModel):
    patient_id: str
    medicine_id: str
    user_id: Optional[str] = None


class ScanCheckResponse(BaseModel):
    outcome: str
    status: str
    message: str
    medicine_id: str
    medicine_name: Optional[str]
    prior_success: Optional[schemas.Administration]


class ScanResponse(ScanCheckResponse):
    requires_confirmation: bool
    administration: Optional[schemas.Administration]


class ProgressResponse(BaseModel):
    administered_count: int
    total_count: int
    percentage: int


def _check_response(c: ScanClassification) -> ScanCheckResponse:
    return ScanCheckResponse(
        outcome=c.outcome,
        status=c.status,
        message=c.message,
        medicine_id=c.medicine_id,
        medicine_name=c.medicine.name if c.medicine else None,
        prior_success=c.prior_success,
    )


def _scan_response(result: VerificationResult, response: Response) -> ScanResponse:
    if result.requires_confirmation:
        response.status_code = status.HTTP_200_OK
    return ScanResponse(
        **_check_response(result.classification).model_dump(),
        requires_confirmation=result.requires_confirmation,
        administration=result.administration,
    )


@router.post("/", response_model=ScanResponse, status_code=status.HTTP_201_CREATED)
def scan_medicine(
    req: ScanRequest,
    response: Response,
    verifier: AdministrationVerifier = Depends(get_verifier),
):
    """
    Verify a scanned medicine barcode for a patient and record the outcome.
    Unknown, unprescribed and repeated medicines are recorded with error/warning
    status rather than rejected. An empty scan is ignored.
    """
    try:
        result = verifier.verify_scan(
            req.patient_id,
            req.medicine_id,
            user_id=req.user_id,
            require_confirmation=req.require_confirmation,
        )
    except UnknownPatientError:
        raise HTTPException(status_code=404, detail="Patient not found")
    if result is None:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return _scan_response(result, response)


@router.post("/check", response_model=ScanCheckResponse)
def check_scan(
    req: ScanRequest,
    verifier: AdministrationVerifier = Depends(get_verifier),
):
    """Classify a scan without recording anything."""
    try:
        classification = verifier.check_scan(req.patient_id, req.medicine_id)
    except UnknownPatientError:
        raise HTTPException(status_code=404, detail="Patient not found")
    if classification is None:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return _check_response(classification)


@router.post("/confirm-duplicate", response_model=ScanResponse, status_code=status.HTTP_201_CREATED)
def confirm_duplicate(
    req: ConfirmDuplicateRequest,
    response: Response,
    verifier: AdministrationVerifier = Depends(get_verifier),
):
    """Record a repeated administration after the user confirmed it."""
    try:
        result = verifier.confirm_duplicate_administration(req.patient_id, req.medicine_id, user_id=req.user_id)
    except UnknownPatientError:
        raise HTTPException(status_code=404, detail="Patient not found")
    if result is None:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    logger.info("Duplicate administration of %s confirmed for patient %s", req.medicine_id, req.patient_id)
    return _scan_response(result, response)


@router.get("/patient/{patient_id}", response_model=List[schemas.Administration])
def get_patient_administrations(
    patient_id: str,
    verifier: AdministrationVerifier = Depends(get_verifier),
):
    """Administration history for a patient, oldest first."""
    return verifier.list_administrations(patient_id)


@router.get("/patient/{patient_id}/progress", response_model=ProgressResponse)
def get_patient_progress(
    patient_id: str,
    verifier: AdministrationVerifier = Depends(get_verifier),
):
    """How many of the patient's active prescriptions have been given."""
    if verifier.storage.get_patient(patient_id) is None:
        raise HTTPException(status_code=404, detail="Patient not found")
    return ProgressResponse(**vars(verifier.progress(patient_id)))
