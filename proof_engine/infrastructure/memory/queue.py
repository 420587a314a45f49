# proof_engine/infrastructure/memory/queue.py

from datetime import timedelta
from threading import Lock
from typing import Optional

from proof_engine.core.models import new_id, utcnow
from proof_engine.core.queue import WorkItem, WorkQueue


class InMemoryWorkQueue(WorkQueue):
    """Process-local queue with lease-based redelivery."""

    def __init__(self):
        self._items: dict[str, WorkItem] = {}
        self._lock = Lock()

    def enqueue(self, deployment_id: str) -> WorkItem:
        with self._lock:
            item = WorkItem(item_id=new_id(), deployment_id=deployment_id)
            self._items[item.item_id] = item
            return item

    def claim(self, worker_id: str, lease_seconds: int) -> Optional[WorkItem]:
        with self._lock:
            now = utcnow()
            for item in sorted(self._items.values(), key=lambda i: i.enqueued_at):
                if item.lease_expires_at and item.lease_expires_at > now:
                    continue

                item.lease_owner = worker_id
                item.lease_expires_at = now + timedelta(seconds=lease_seconds)
                item.attempts += 1
                return WorkItem(**vars(item))
            return None

    def renew(self, item_id: str, worker_id: str, lease_seconds: int) -> bool:
        with self._lock:
            item = self._items.get(item_id)
            if not item:
                return False

            if item.lease_owner != worker_id:
                return False

            now = utcnow()
            if not item.lease_expires_at or item.lease_expires_at <= now:
                return False

            item.lease_expires_at = now + timedelta(seconds=lease_seconds)
            return True

    def ack(self, item_id: str) -> None:
        with self._lock:
            self._items.pop(item_id, None)

    def nack(self, item_id: str) -> None:
        with self._lock:
            item = self._items.get(item_id)
            if item:
                item.lease_owner = None
                item.lease_expires_at = None

    def size(self) -> int:
        with self._lock:
            return len(self._items)
