"""Audit trail viewer."""
from fastapi import APIRouter, Depends, HTTPException
from typing import List

from .. import schemas
from ..dependencies import get_audit_recorder
from ..models.audit import AuditEntityType
from ..services.audit import AuditRecorder

router = APIRouter(prefix="/audit", tags=["audit"])


@router.get("/{entity_type}/{entity_id}", response_model=List[schemas.AuditLog])
def get_audit_logs(
    entity_type: str,
    entity_id: str,
    audit: AuditRecorder = Depends(get_audit_recorder),
):
    """Change history for one patient, prescription or administration, newest first."""
    if entity_type not in AuditEntityType.ALL:
        raise HTTPException(status_code=400, detail=f"Invalid entity type. Choose from: {AuditEntityType.ALL}")
    return audit.query(entity_type, entity_id)


@router.post("/retry-pending")
def retry_pending_audit_logs(audit: AuditRecorder = Depends(get_audit_recorder)):
    """Replay audit entries whose original write failed."""
    results = audit.flush_pending()
    audit.retry_queue.prune_written()
    results["still_failed"] = len(audit.retry_queue.get_failed())
    return results
