"""
Audit Recorder.

Every mutation on a patient, prescription or administration is followed by
exactly one audit entry. The primary write always happens first; if the audit
write then fails, the failure is logged, the entry is parked in the retry
queue, and the primary result still stands.
"""
import logging
import threading
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel

from .. import schemas
from ..core.config import settings
from ..models.audit import AuditAction, AuditEntityType
from ..models.base import utcnow
from ..storage.base import Storage
from .audit_queue import AuditRetryQueue

logger = logging.getLogger(__name__)


class MonotonicClock:
    """Wall-clock UTC timestamps that never repeat or go backwards within a process."""

    def __init__(self, source=utcnow):
        self._source = source
        self._lock = threading.Lock()
        self._last: Optional[datetime] = None

    def now(self) -> datetime:
        with self._lock:
            current = self._source()
            if self._last is not None and current <= self._last:
                current = self._last + timedelta(microseconds=1)
            self._last = current
            return current


def diff_changes(before: Dict[str, Any], after: Dict[str, Any], keys: Iterable[str]) -> Dict[str, Dict[str, Any]]:
    """{field: {"from": old, "to": new}} for each key of a partial update payload."""
    return {key: {"from": before.get(key), "to": after.get(key)} for key in keys}


def _as_json(record: BaseModel) -> Dict[str, Any]:
    return record.model_dump(mode="json")


class AuditRecorder:
    def __init__(
        self,
        storage: Storage,
        retry_queue: Optional[AuditRetryQueue] = None,
        clock: Optional[MonotonicClock] = None,
    ):
        self.storage = storage
        self.retry_queue = retry_queue if retry_queue is not None else audit_retry_queue
        self.clock = clock if clock is not None else audit_clock

    def record(
        self,
        entity_type: str,
        entity_id: str,
        action: str,
        changes: Optional[Dict[str, Any]],
        user_id: Optional[str] = None,
    ) -> Optional[schemas.AuditLog]:
        """Append one entry. Returns None when the write failed and was queued for retry."""
        if entity_type not in AuditEntityType.ALL:
            raise ValueError(f"Untracked entity type: {entity_type}")
        if action not in AuditAction.ALL:
            raise ValueError(f"Unknown audit action: {action}")

        timestamp = self.clock.now()
        try:
            return self.storage.create_audit_log(
                entity_type=entity_type,
                entity_id=entity_id,
                action=action,
                changes=changes,
                timestamp=timestamp,
                user_id=user_id,
            )
        except Exception as exc:
            logger.warning(
                "Audit log write failed for %s %s %s (user=%s): %s",
                action, entity_type, entity_id, user_id, exc,
            )
            self.retry_queue.enqueue(
                entity_type, entity_id, action, changes, timestamp, user_id, error=str(exc)
            )
            return None

    def record_create(self, entity_type: str, record: BaseModel, user_id: Optional[str] = None):
        data = _as_json(record)
        return self.record(entity_type, data["id"], AuditAction.CREATE, data, user_id)

    def record_update(
        self,
        entity_type: str,
        before: BaseModel,
        after: BaseModel,
        payload_keys: Iterable[str],
        user_id: Optional[str] = None,
    ):
        changes = diff_changes(_as_json(before), _as_json(after), payload_keys)
        return self.record(entity_type, after.id, AuditAction.UPDATE, changes, user_id)

    def record_delete(
        self, entity_type: str, entity_id: str, summary: Dict[str, Any], user_id: Optional[str] = None
    ):
        return self.record(entity_type, entity_id, AuditAction.DELETE, summary, user_id)

    def record_administration(self, administration: schemas.Administration, user_id: Optional[str] = None):
        return self.record(
            AuditEntityType.ADMINISTRATION,
            administration.id,
            AuditAction.ADMINISTER,
            _as_json(administration),
            user_id,
        )

    def query(self, entity_type: str, entity_id: str) -> List[schemas.AuditLog]:
        return self.storage.list_audit_logs(entity_type, entity_id)

    def flush_pending(self) -> Dict[str, int]:
        """Replay queued audit entries with their original timestamps."""
        pending = self.retry_queue.get_pending()
        results = {"written": 0, "failed": 0, "total": len(pending)}

        for entry in pending:
            try:
                self.storage.create_audit_log(
                    entity_type=entry.entity_type,
                    entity_id=entry.entity_id,
                    action=entry.action,
                    changes=entry.changes,
                    timestamp=entry.timestamp,
                    user_id=entry.user_id,
                )
                self.retry_queue.mark_written(entry.local_id)
                results["written"] += 1
            except Exception as e:
                self.retry_queue.mark_attempt_failed(entry.local_id, str(e))
                results["failed"] += 1

        if results["total"]:
            logger.info("Audit retry: %d written, %d failed", results["written"], results["failed"])
        return results


audit_clock = MonotonicClock()
audit_retry_queue = AuditRetryQueue(max_attempts=settings.AUDIT_RETRY_MAX_ATTEMPTS)
