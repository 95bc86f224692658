from fastapi import APIRouter, Depends, HTTPException, status
from typing import List
from .. import schemas
from ..core.exceptions import ConflictError
from ..dependencies import get_charting_service
from ..services.charting import ChartingService

router = APIRouter(prefix="/medicines", tags=["medicines"])


@router.post("/", response_model=schemas.Medicine, status_code=status.HTTP_201_CREATED)
def create_medicine(
    medicine_in: schemas.MedicineCreate,
    service: ChartingService = Depends(get_charting_service),
):
    try:
        return service.create_medicine(medicine_in)
    except ConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.get("/", response_model=List[schemas.Medicine])
def list_medicines(service: ChartingService = Depends(get_charting_service)):
    return service.list_medicines()


@router.get("/{medicine_id}", response_model=schemas.Medicine)
def get_medicine(medicine_id: str, service: ChartingService = Depends(get_charting_service)):
    medicine = service.get_medicine(medicine_id)
    if not medicine:
        raise HTTPException(status_code=404, detail="Medicine not found")
    return medicine
