"""
Record and request schemas shared by the storage backends, services and API.

Records are what storage returns (validated from ORM rows or built in memory).
*Create / *Update models validate caller input before anything is written.
"""
from datetime import date, datetime, timezone
from typing import Any, ClassVar, Dict, FrozenSet, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

PATIENT_ID_PATTERN = r"^\d{12}$"
MEDICINE_ID_PATTERN = r"^\d+$"


def naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Stored datetimes are naive UTC; convert aware input on the way in."""
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class ChartData(BaseModel):
    background: str = ""
    summary: str = ""
    discharge: str = ""
    handoff: str = ""


# ── Patients ─────────────────────────────────────────────────────────────────

class PatientFields(BaseModel):
    name: str = Field(min_length=1)
    dob: date
    age: int = Field(ge=0)
    dose_weight: str = ""
    sex: str = Field(min_length=1)
    mrn: str = Field(min_length=1)
    fin: str = ""
    admitted: Optional[date] = None
    code_status: str = ""
    isolation: str = ""
    bed: str = ""
    allergies: str = ""
    status: str = ""
    provider: str = ""
    notes: str = ""
    department: str = ""
    chart_data: Optional[ChartData] = None


class PatientCreate(PatientFields):
    # Assigned server-side when omitted
    id: Optional[str] = Field(default=None, pattern=PATIENT_ID_PATTERN)


class PartialUpdate(BaseModel):
    """Partial payload; only fields the caller sent are applied."""
    model_config = ConfigDict(extra="forbid")

    NULLABLE_FIELDS: ClassVar[FrozenSet[str]] = frozenset()

    @model_validator(mode="after")
    def _reject_nulls(self):
        for name in self.model_fields_set:
            if getattr(self, name) is None and name not in self.NULLABLE_FIELDS:
                raise ValueError(f"{name} cannot be null")
        return self


class PatientUpdate(PartialUpdate):
    NULLABLE_FIELDS: ClassVar[FrozenSet[str]] = frozenset({"admitted", "chart_data"})

    name: Optional[str] = Field(default=None, min_length=1)
    dob: Optional[date] = None
    age: Optional[int] = Field(default=None, ge=0)
    dose_weight: Optional[str] = None
    sex: Optional[str] = Field(default=None, min_length=1)
    mrn: Optional[str] = Field(default=None, min_length=1)
    fin: Optional[str] = None
    admitted: Optional[date] = None
    code_status: Optional[str] = None
    isolation: Optional[str] = None
    bed: Optional[str] = None
    allergies: Optional[str] = None
    status: Optional[str] = None
    provider: Optional[str] = None
    notes: Optional[str] = None
    department: Optional[str] = None
    chart_data: Optional[ChartData] = None


class Patient(PatientFields):
    model_config = ConfigDict(from_attributes=True)

    id: str
    created_at: Optional[datetime] = None


# ── Medicines ────────────────────────────────────────────────────────────────

class MedicineCreate(BaseModel):
    id: str = Field(pattern=MEDICINE_ID_PATTERN)
    name: str = Field(min_length=1)


class Medicine(MedicineCreate):
    model_config = ConfigDict(from_attributes=True)


# ── Prescriptions ────────────────────────────────────────────────────────────

class PrescriptionCreate(BaseModel):
    patient_id: str
    medicine_id: str
    dosage: str = Field(min_length=1)
    periodicity: str = Field(min_length=1)
    duration: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    @field_validator("start_date", "end_date")
    @classmethod
    def _window_naive_utc(cls, value):
        return naive_utc(value)


class PrescriptionUpdate(PartialUpdate):
    NULLABLE_FIELDS: ClassVar[FrozenSet[str]] = frozenset({"duration", "start_date", "end_date"})

    dosage: Optional[str] = Field(default=None, min_length=1)
    periodicity: Optional[str] = Field(default=None, min_length=1)
    duration: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    @field_validator("start_date", "end_date")
    @classmethod
    def _window_naive_utc(cls, value):
        return naive_utc(value)


class Prescription(PrescriptionCreate):
    model_config = ConfigDict(from_attributes=True)

    id: str

    def is_active(self, at: datetime) -> bool:
        if self.start_date is not None and self.start_date > at:
            return False
        if self.end_date is not None and self.end_date < at:
            return False
        return True


# ── Administrations ──────────────────────────────────────────────────────────

class Administration(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    patient_id: str
    medicine_id: str
    administered_at: datetime
    status: str
    message: str


# ── Audit ────────────────────────────────────────────────────────────────────

class AuditLog(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    entity_type: str
    entity_id: str
    action: str
    changes: Optional[Dict[str, Any]] = None
    timestamp: datetime
    user_id: Optional[str] = None


# ── Labs ─────────────────────────────────────────────────────────────────────

class LabResultCreate(BaseModel):
    patient_id: str
    test_name: str
    test_code: Optional[str] = None
    value: str
    unit: Optional[str] = None
    reference_range: Optional[str] = None
    status: str
    taken_at: datetime
    resulted_at: Optional[datetime] = None
    notes: Optional[str] = None


class LabResult(LabResultCreate):
    model_config = ConfigDict(from_attributes=True)

    id: str
    created_at: Optional[datetime] = None
