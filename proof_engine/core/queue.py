"""Work queue contract (at-least-once delivery of deployment ids)."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from proof_engine.core.models import utcnow


@dataclass
class WorkItem:
    """A queued `{deployment_id}` payload plus delivery bookkeeping."""

    item_id: str
    deployment_id: str
    enqueued_at: datetime = field(default_factory=utcnow)
    attempts: int = 0
    lease_owner: Optional[str] = None
    lease_expires_at: Optional[datetime] = None


class WorkQueue(ABC):
    """
    Named work channel.

    Delivery is at least once: a claimed item whose lease expires without
    an ack is handed out again, so a crashed worker's item is redelivered.
    """

    @abstractmethod
    def enqueue(self, deployment_id: str) -> WorkItem:
        raise NotImplementedError

    @abstractmethod
    def claim(self, worker_id: str, lease_seconds: int) -> Optional[WorkItem]:
        """
        Lease the oldest available item to worker_id.
        Returns None if nothing is available.
        """
        raise NotImplementedError

    @abstractmethod
    def renew(self, item_id: str, worker_id: str, lease_seconds: int) -> bool:
        """Extend a lease still held by worker_id."""
        raise NotImplementedError

    @abstractmethod
    def ack(self, item_id: str) -> None:
        """Remove a processed item."""
        raise NotImplementedError

    @abstractmethod
    def nack(self, item_id: str) -> None:
        """Release the lease so the item is delivered again."""
        raise NotImplementedError

    @abstractmethod
    def size(self) -> int:
        raise NotImplementedError
