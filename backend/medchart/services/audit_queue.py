"""
Retry queue for audit entries whose write failed.

The primary record is already committed when an audit write fails, so the
entry is parked here and replayed later instead of being lost.
"""
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from ..models.base import generate_uuid


class RetryStatus(str, Enum):
    PENDING = "pending"
    WRITTEN = "written"
    FAILED = "failed"


@dataclass
class PendingAuditEntry:
    """An audit entry waiting to be written."""
    local_id: str
    entity_type: str
    entity_id: str
    action: str
    changes: Optional[Dict[str, Any]]
    timestamp: datetime
    user_id: Optional[str] = None
    status: RetryStatus = RetryStatus.PENDING
    attempts: int = 1
    error_message: Optional[str] = None


class AuditRetryQueue:
    def __init__(self, max_attempts: int = 3):
        self.max_attempts = max_attempts
        self._lock = threading.Lock()
        self._queue: List[PendingAuditEntry] = []

    def enqueue(
        self,
        entity_type: str,
        entity_id: str,
        action: str,
        changes: Optional[Dict[str, Any]],
        timestamp: datetime,
        user_id: Optional[str],
        error: str,
    ) -> PendingAuditEntry:
        entry = PendingAuditEntry(
            local_id=generate_uuid(),
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            changes=changes,
            timestamp=timestamp,
            user_id=user_id,
            error_message=error,
        )
        with self._lock:
            self._queue.append(entry)
        return entry

    def get_pending(self) -> List[PendingAuditEntry]:
        with self._lock:
            return [e for e in self._queue if e.status == RetryStatus.PENDING]

    def get_failed(self) -> List[PendingAuditEntry]:
        with self._lock:
            return [e for e in self._queue if e.status == RetryStatus.FAILED]

    def _find(self, local_id: str) -> Optional[PendingAuditEntry]:
        for entry in self._queue:
            if entry.local_id == local_id:
                return entry
        return None

    def mark_written(self, local_id: str) -> None:
        with self._lock:
            entry = self._find(local_id)
            if entry is not None:
                entry.status = RetryStatus.WRITTEN

    def mark_attempt_failed(self, local_id: str, error: str) -> None:
        """Count a failed retry; give up once max_attempts is reached."""
        with self._lock:
            entry = self._find(local_id)
            if entry is None:
                return
            entry.attempts += 1
            entry.error_message = error
            if entry.attempts >= self.max_attempts:
                entry.status = RetryStatus.FAILED

    def prune_written(self) -> int:
        with self._lock:
            before = len(self._queue)
            self._queue = [e for e in self._queue if e.status != RetryStatus.WRITTEN]
            return before - len(self._queue)
