"""
Next-dose timing derived from a prescription's free-text frequency.
"""
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional

from ..core.config import settings
from ..models.base import utcnow
from ..models.medication import AdministrationStatus
from ..storage.base import Storage

EVERY_N_HOURS = re.compile(r"every\s+(\d+)\s+hours?")

# Checked in order; "twice daily" must not match "once daily" etc.
DAILY_FREQUENCIES = (
    ("four times daily", 6),
    ("three times daily", 8),
    ("twice daily", 12),
    ("once daily", 24),
)


@dataclass
class DoseStatus:
    prescription_id: str
    medicine_id: str
    medicine_name: Optional[str]
    dosage: str
    periodicity: str
    last_administered_at: Optional[datetime]
    next_due_at: Optional[datetime]
    overdue: bool
    as_needed: bool


def is_as_needed(periodicity: str) -> bool:
    return "as needed" in periodicity.lower()


def dose_interval(periodicity: str) -> Optional[timedelta]:
    """Interval between doses, or None for as-needed (PRN) medication."""
    text = periodicity.lower()
    if is_as_needed(text):
        return None
    match = EVERY_N_HOURS.search(text)
    if match:
        return timedelta(hours=int(match.group(1)))
    for phrase, hours in DAILY_FREQUENCIES:
        if phrase in text:
            return timedelta(hours=hours)
    return timedelta(hours=settings.DEFAULT_DOSE_INTERVAL_HOURS)


def next_dose_due(last_administered_at: datetime, periodicity: str) -> Optional[datetime]:
    interval = dose_interval(periodicity)
    if interval is None:
        return None
    return last_administered_at + interval


def medication_schedule(storage: Storage, patient_id: str, now: Optional[datetime] = None) -> List[DoseStatus]:
    """Dose timing for each active prescription of a patient."""
    now = now or utcnow()
    last_success = {}
    for administration in storage.list_administrations(patient_id):
        if administration.status != AdministrationStatus.SUCCESS:
            continue
        previous = last_success.get(administration.medicine_id)
        if previous is None or administration.administered_at > previous:
            last_success[administration.medicine_id] = administration.administered_at

    schedule = []
    for prescription in storage.list_prescriptions(patient_id):
        if not prescription.is_active(now):
            continue
        medicine = storage.get_medicine(prescription.medicine_id)
        last = last_success.get(prescription.medicine_id)
        due = next_dose_due(last, prescription.periodicity) if last else None
        schedule.append(
            DoseStatus(
                prescription_id=prescription.id,
                medicine_id=prescription.medicine_id,
                medicine_name=medicine.name if medicine else None,
                dosage=prescription.dosage,
                periodicity=prescription.periodicity,
                last_administered_at=last,
                next_due_at=due,
                overdue=due is not None and due <= now,
                as_needed=is_as_needed(prescription.periodicity),
            )
        )
    return schedule
