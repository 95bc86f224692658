from sqlalchemy import Column, String, Text, ForeignKey, DateTime
from .base import Base, TimestampMixin, generate_uuid


class LabStatus:
    NORMAL = "normal"
    ABNORMAL = "abnormal"
    CRITICAL = "critical"
    PENDING = "pending"

    ALL = [NORMAL, ABNORMAL, CRITICAL, PENDING]


class LabResult(Base, TimestampMixin):
    __tablename__ = "lab_results"

    id = Column(String, primary_key=True, default=generate_uuid)
    patient_id = Column(String(12), ForeignKey("patients.id"), nullable=False, index=True)
    test_name = Column(String(200), nullable=False)  # "Thyroid Stimulating Hormone"
    test_code = Column(String(20), nullable=True)  # "TSH"
    value = Column(String(50), nullable=False)
    unit = Column(String(30), nullable=True)
    reference_range = Column(String(50), nullable=True)
    status = Column(String(20), nullable=False, default=LabStatus.PENDING)
    taken_at = Column(DateTime, nullable=False)
    resulted_at = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)
