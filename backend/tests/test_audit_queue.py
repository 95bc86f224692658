import threading
from datetime import datetime

from medchart.services.audit_queue import AuditRetryQueue, RetryStatus

TS = datetime(2025, 1, 10, 8, 0, 0)


def _enqueue(queue, entity_id="rx-1"):
    return queue.enqueue("prescription", entity_id, "create", {"dosage": "5mg"}, TS, "nurse-1", error="disk full")


def test_enqueue_and_retrieve_entry():
    """Entries parked after a failed write should be retrievable as pending."""
    queue = AuditRetryQueue()
    entry = _enqueue(queue)
    pending = queue.get_pending()
    assert len(pending) == 1
    assert pending[0].local_id == entry.local_id
    assert pending[0].status == RetryStatus.PENDING
    assert pending[0].timestamp == TS
    assert pending[0].error_message == "disk full"


def test_mark_written():
    queue = AuditRetryQueue()
    entry = _enqueue(queue)
    queue.mark_written(entry.local_id)
    assert queue.get_pending() == []
    assert queue.get_failed() == []


def test_entry_fails_after_max_attempts():
    """The original failure counts as the first attempt."""
    queue = AuditRetryQueue(max_attempts=3)
    entry = _enqueue(queue)

    queue.mark_attempt_failed(entry.local_id, "still down")
    assert len(queue.get_pending()) == 1
    assert entry.attempts == 2

    queue.mark_attempt_failed(entry.local_id, "still down")
    assert queue.get_pending() == []
    failed = queue.get_failed()
    assert len(failed) == 1
    assert failed[0].error_message == "still down"


def test_prune_written_keeps_other_entries():
    queue = AuditRetryQueue()
    first = _enqueue(queue, "rx-1")
    _enqueue(queue, "rx-2")
    queue.mark_written(first.local_id)
    assert queue.prune_written() == 1
    assert [e.entity_id for e in queue.get_pending()] == ["rx-2"]


def test_multiple_entries_queue():
    queue = AuditRetryQueue()
    _enqueue(queue, "rx-1")
    _enqueue(queue, "rx-2")
    _enqueue(queue, "rx-3")
    assert len(queue.get_pending()) == 3


def test_concurrent_marking_and_pruning():
    """Writers, retries and pruning from several threads leave every entry accounted for."""
    queue = AuditRetryQueue(max_attempts=2)
    entries = [_enqueue(queue, f"rx-{n}") for n in range(200)]

    def mark(chunk, written):
        for entry in chunk:
            if written:
                queue.mark_written(entry.local_id)
            else:
                queue.mark_attempt_failed(entry.local_id, "timeout")
            queue.prune_written()

    threads = [
        threading.Thread(target=mark, args=(entries[0:100], True)),
        threading.Thread(target=mark, args=(entries[100:200], False)),
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    queue.prune_written()

    assert queue.get_pending() == []
    assert len(queue.get_failed()) == 100
    assert all(e.attempts == 2 for e in queue.get_failed())
