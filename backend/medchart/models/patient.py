from sqlalchemy import Column, String, Date, Text, Integer, JSON
from sqlalchemy.orm import relationship
from .base import Base, TimestampMixin


class Patient(Base, TimestampMixin):
    __tablename__ = "patients"

    # 12-digit numeric ID, also printed on the wristband barcode
    id = Column(String(12), primary_key=True)
    name = Column(String(200), nullable=False)
    dob = Column(Date, nullable=False)
    age = Column(Integer, nullable=False)
    dose_weight = Column(String(20), nullable=False, default="")
    sex = Column(String(20), nullable=False)
    mrn = Column(String(50), nullable=False, index=True)  # Medical Record Number
    fin = Column(String(50), nullable=False, default="")  # Financial Number
    admitted = Column(Date, nullable=True)
    code_status = Column(String(50), nullable=False, default="")
    isolation = Column(String(100), nullable=False, default="")
    bed = Column(String(20), nullable=False, default="")
    allergies = Column(Text, nullable=False, default="")
    status = Column(String(50), nullable=False, default="")
    provider = Column(String(200), nullable=False, default="")
    notes = Column(Text, nullable=False, default="")
    department = Column(String(100), nullable=False, default="")
    # {background, summary, discharge, handoff} narrative HTML
    chart_data = Column(JSON, nullable=True)

    prescriptions = relationship("Prescription", back_populates="patient")
