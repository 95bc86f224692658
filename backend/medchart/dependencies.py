"""FastAPI dependencies: the storage backend, services and the PIN-gated caller."""
from typing import Optional

from fastapi import Depends, Header, HTTPException

from .core.config import settings
from .core.exceptions import AuthorizationError
from .core.permissions import AuthorizedCaller, authorize_pin
from .services.administration import AdministrationVerifier
from .services.audit import AuditRecorder
from .services.charting import ChartingService
from .services.lab_orders import LabOrderGenerator
from .storage.base import Storage
from .storage.database import DatabaseStorage
from .storage.memory import MemStorage

_storage: Optional[Storage] = None


def build_storage(backend: str) -> Storage:
    if backend == "memory":
        return MemStorage()
    if backend == "database":
        from .models import base as db_base
        return DatabaseStorage(db_base.SessionLocal)
    raise ValueError(f"Unknown storage backend: {backend}")


def get_storage() -> Storage:
    global _storage
    if _storage is None:
        _storage = build_storage(settings.STORAGE_BACKEND)
    return _storage


def get_audit_recorder(storage: Storage = Depends(get_storage)) -> AuditRecorder:
    return AuditRecorder(storage)


def get_charting_service(
    storage: Storage = Depends(get_storage),
    audit: AuditRecorder = Depends(get_audit_recorder),
) -> ChartingService:
    return ChartingService(storage, audit)


def get_verifier(
    storage: Storage = Depends(get_storage),
    audit: AuditRecorder = Depends(get_audit_recorder),
) -> AdministrationVerifier:
    return AdministrationVerifier(storage, audit)


def get_lab_generator(storage: Storage = Depends(get_storage)) -> LabOrderGenerator:
    return LabOrderGenerator(storage)


def require_authorized_caller(
    x_access_pin: Optional[str] = Header(None),
    x_user_id: Optional[str] = Header(None),
) -> AuthorizedCaller:
    try:
        return authorize_pin(x_access_pin, x_user_id)
    except AuthorizationError as e:
        raise HTTPException(status_code=403, detail=str(e))
