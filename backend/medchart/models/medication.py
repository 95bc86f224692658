from sqlalchemy import Column, String, Text, ForeignKey, DateTime, Index, UniqueConstraint, text
from sqlalchemy.orm import relationship
from .base import Base, generate_uuid, utcnow


class AdministrationStatus:
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"

    ALL = [SUCCESS, WARNING, ERROR]


class Medicine(Base):
    __tablename__ = "medicines"

    # Barcode payload
    id = Column(String(32), primary_key=True)
    name = Column(String(200), nullable=False)


class Prescription(Base):
    __tablename__ = "prescriptions"
    __table_args__ = (
        UniqueConstraint("patient_id", "medicine_id", name="uq_prescription_patient_medicine"),
    )

    id = Column(String, primary_key=True, default=generate_uuid)
    patient_id = Column(String(12), ForeignKey("patients.id"), nullable=False, index=True)
    medicine_id = Column(String(32), ForeignKey("medicines.id"), nullable=False)
    dosage = Column(String(100), nullable=False)  # "10mg", "2 tablets"
    periodicity = Column(String(100), nullable=False)  # "Every 4 hours", "As needed"
    duration = Column(String(100), nullable=True)  # "5 days", "Ongoing"
    start_date = Column(DateTime, nullable=True)
    end_date = Column(DateTime, nullable=True)

    patient = relationship("Patient", back_populates="prescriptions")
    medicine = relationship("Medicine")


class Administration(Base):
    """Append-only record of every scan outcome."""
    __tablename__ = "administrations"
    __table_args__ = (
        # One successful administration per patient and medicine
        Index(
            "uq_administration_success",
            "patient_id",
            "medicine_id",
            unique=True,
            sqlite_where=text("status = 'success'"),
            postgresql_where=text("status = 'success'"),
        ),
    )

    id = Column(String, primary_key=True, default=generate_uuid)
    patient_id = Column(String(12), ForeignKey("patients.id"), nullable=False, index=True)
    # Not a foreign key: unknown barcodes are recorded as error outcomes
    medicine_id = Column(String(32), nullable=False, index=True)
    administered_at = Column(DateTime, nullable=False, default=utcnow)
    status = Column(String(10), nullable=False)
    message = Column(Text, nullable=False)
