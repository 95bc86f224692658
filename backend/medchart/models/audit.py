from sqlalchemy import Column, String, DateTime, JSON, Index
from .base import Base, generate_uuid, utcnow


class AuditAction:
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    ADMINISTER = "administer"

    ALL = [CREATE, UPDATE, DELETE, ADMINISTER]


class AuditEntityType:
    PATIENT = "patient"
    PRESCRIPTION = "prescription"
    ADMINISTRATION = "administration"

    ALL = [PATIENT, PRESCRIPTION, ADMINISTRATION]


class AuditLog(Base):
    """Append-only change trail for patients, prescriptions and administrations."""
    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("ix_audit_logs_entity", "entity_type", "entity_id", "timestamp"),
    )

    id = Column(String, primary_key=True, default=generate_uuid)
    entity_type = Column(String(20), nullable=False)
    # No foreign key: entries outlive the entity they describe
    entity_id = Column(String, nullable=False)
    action = Column(String(20), nullable=False)
    changes = Column(JSON, nullable=True)
    timestamp = Column(DateTime, nullable=False, default=utcnow)
    user_id = Column(String(100), nullable=True)
