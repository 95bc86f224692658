from fastapi import APIRouter, Depends, HTTPException, status
from typing import List
from pydantic import BaseModel, Field
from datetime import date
from .. import schemas
from ..core.exceptions import UnknownPatientError
from ..core.permissions import AuthorizedCaller
from ..dependencies import get_lab_generator, require_authorized_caller
from ..services.lab_orders import LabOrderGenerator, lab_test_types

router = APIRouter(tags=["labs"])


class LabTestTypeResponse(BaseModel):
    code: str
    name: str
    unit: str
    reference_range: str


class LabOrderRequest(BaseModel):
    patient_id: str
    tests: List[str] = Field(min_length=1)
    order_date: date


class LabOrderResponse(BaseModel):
    results_created: int


@router.get("/lab-test-types", response_model=List[LabTestTypeResponse])
def list_lab_test_types():
    return [
        LabTestTypeResponse(code=t.code, name=t.name, unit=t.unit, reference_range=t.reference_range)
        for t in lab_test_types()
    ]


@router.post("/lab-orders", response_model=LabOrderResponse, status_code=status.HTTP_201_CREATED)
def create_lab_orders(
    req: LabOrderRequest,
    generator: LabOrderGenerator = Depends(get_lab_generator),
    caller: AuthorizedCaller = Depends(require_authorized_caller),
):
    """Order tests for a patient; results are generated immediately."""
    try:
        count = generator.create_lab_orders(caller, req.patient_id, req.tests, req.order_date)
    except UnknownPatientError:
        raise HTTPException(status_code=404, detail="Patient not found")
    return LabOrderResponse(results_created=count)


@router.get("/lab-results/patient/{patient_id}", response_model=List[schemas.LabResult])
def get_patient_lab_results(
    patient_id: str,
    generator: LabOrderGenerator = Depends(get_lab_generator),
):
    return generator.list_results(patient_id)
