"""
Lab Order Generator.

Turns a set of requested test codes into simulated lab results. Values are
drawn from each test's normal range, with a fixed share forced just outside
it so charts show abnormal results too.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

import numpy as np

from .. import schemas
from ..core.config import settings
from ..core.exceptions import UnknownPatientError
from ..core.permissions import PERM_ORDER_LABS, AuthorizedCaller, require_permission
from ..models.lab import LabStatus
from ..storage.base import Storage

logger = logging.getLogger(__name__)

CRITICAL_LOW_FACTOR = 0.7
CRITICAL_HIGH_FACTOR = 1.5
FORCED_LOW_FACTOR = 0.8
FORCED_HIGH_FACTOR = 1.2

STATUS_NOTES = {
    LabStatus.NORMAL: "Within normal limits.",
    LabStatus.ABNORMAL: "Result outside reference range. Clinical correlation recommended.",
    LabStatus.CRITICAL: "CRITICAL VALUE. Provider notified immediately.",
}


@dataclass(frozen=True)
class LabTestType:
    code: str
    name: str
    unit: str
    reference_range: str
    low: float
    high: float
    decimals: int = 1


LAB_TEST_TYPES: Dict[str, LabTestType] = {
    t.code: t
    for t in (
        LabTestType("WBC", "White Blood Cell Count", "K/uL", "4.5-11.0", 4.5, 11.0),
        LabTestType("HGB", "Hemoglobin", "g/dL", "12.0-17.5", 12.0, 17.5),
        LabTestType("PLT", "Platelet Count", "K/uL", "150-450", 150, 450, decimals=0),
        LabTestType("NA", "Sodium", "mEq/L", "135-145", 135, 145, decimals=0),
        LabTestType("K", "Potassium", "mEq/L", "3.5-5.0", 3.5, 5.0),
        LabTestType("GLU", "Glucose", "mg/dL", "70-100", 70, 100, decimals=0),
        LabTestType("BUN", "Blood Urea Nitrogen", "mg/dL", "7-20", 7, 20, decimals=0),
        LabTestType("CREAT", "Creatinine", "mg/dL", "0.6-1.2", 0.6, 1.2, decimals=2),
        LabTestType("ALT", "Alanine Aminotransferase", "U/L", "7-56", 7, 56, decimals=0),
        LabTestType("HBA1C", "Hemoglobin A1c", "%", "4.0-5.6", 4.0, 5.6),
        LabTestType("TSH", "Thyroid Stimulating Hormone", "mIU/L", "0.4-4.0", 0.4, 4.0, decimals=2),
        LabTestType("INR", "International Normalized Ratio", "", "0.8-1.2", 0.8, 1.2),
        LabTestType("MG", "Magnesium", "mg/dL", "1.7-2.2", 1.7, 2.2),
    )
}


def classify_value(value: float, low: float, high: float) -> str:
    if value < low * CRITICAL_LOW_FACTOR or value > high * CRITICAL_HIGH_FACTOR:
        return LabStatus.CRITICAL
    if value < low or value > high:
        return LabStatus.ABNORMAL
    return LabStatus.NORMAL


def collection_times(order_date: date) -> Tuple[datetime, datetime]:
    """(taken_at, resulted_at) in naive UTC for an order placed on order_date."""
    taken_at = datetime.combine(order_date, time(hour=settings.LAB_COLLECTION_HOUR))
    return taken_at, taken_at + timedelta(hours=settings.LAB_TURNAROUND_HOURS)


class LabOrderGenerator:
    def __init__(
        self,
        storage: Storage,
        rng: Optional[np.random.Generator] = None,
        abnormal_probability: Optional[float] = None,
    ):
        self.storage = storage
        self.rng = rng if rng is not None else np.random.default_rng()
        self.abnormal_probability = (
            settings.LAB_ABNORMAL_PROBABILITY if abnormal_probability is None else abnormal_probability
        )

    def simulate_value(self, test: LabTestType) -> float:
        if self.rng.random() < self.abnormal_probability:
            if self.rng.random() < 0.5:
                return test.low * FORCED_LOW_FACTOR
            return test.high * FORCED_HIGH_FACTOR
        return float(self.rng.uniform(test.low, test.high))

    def build_result(self, patient_id: str, test: LabTestType, order_date: date) -> schemas.LabResultCreate:
        value = round(self.simulate_value(test), test.decimals)
        status = classify_value(value, test.low, test.high)
        taken_at, resulted_at = collection_times(order_date)
        return schemas.LabResultCreate(
            patient_id=patient_id,
            test_name=test.name,
            test_code=test.code,
            value=f"{value:.{test.decimals}f}",
            unit=test.unit,
            reference_range=test.reference_range,
            status=status,
            taken_at=taken_at,
            resulted_at=resulted_at,
            notes=STATUS_NOTES[status],
        )

    def create_lab_orders(
        self,
        caller: AuthorizedCaller,
        patient_id: str,
        test_codes: Iterable[str],
        order_date: date,
    ) -> int:
        """Generate one result per known test code; unknown codes are skipped. Returns the count created."""
        require_permission(caller, PERM_ORDER_LABS)
        if self.storage.get_patient(patient_id) is None:
            raise UnknownPatientError(patient_id)

        results = []
        for code in test_codes:
            test = LAB_TEST_TYPES.get(code.strip().upper())
            if test is None:
                logger.info("Skipping unknown lab test code %r for patient %s", code, patient_id)
                continue
            results.append(self.build_result(patient_id, test, order_date))

        if not results:
            return 0
        created = self.storage.create_lab_results(results)
        logger.info("Created %d lab results for patient %s", len(created), patient_id)
        return len(created)

    def list_results(self, patient_id: str) -> List[schemas.LabResult]:
        return self.storage.list_lab_results(patient_id)


def lab_test_types() -> List[LabTestType]:
    return list(LAB_TEST_TYPES.values())
