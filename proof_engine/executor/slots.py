#proof_engine\executor\slots.py

"""Slot manager for controlling worker concurrency."""

import threading
from typing import List, Optional


class Slot:
    """Represents a single pipeline slot."""

    def __init__(self, slot_id: int):
        self.slot_id = slot_id
        self.item_id: Optional[str] = None
        self.deployment_id: Optional[str] = None

    def is_free(self) -> bool:
        """Check if slot is available."""
        return self.item_id is None

    def bind(self, item_id: str, deployment_id: str) -> None:
        """Bind a claimed work item to this slot."""
        if not self.is_free():
            raise ValueError(f"Slot {self.slot_id} already occupied")
        self.item_id = item_id
        self.deployment_id = deployment_id

    def release(self) -> None:
        """Release slot."""
        self.item_id = None
        self.deployment_id = None

    def __repr__(self) -> str:
        status = "free" if self.is_free() else f"occupied({self.deployment_id})"
        return f"<Slot(id={self.slot_id}, {status})>"


class SlotManager:
    """Manages pipeline slots for a worker. Thread-safe."""

    def __init__(self, max_slots: int):
        if max_slots < 1:
            raise ValueError("max_slots must be at least 1")

        self._slots = [Slot(i) for i in range(max_slots)]
        self._lock = threading.Lock()

    def acquire(self, item_id: str, deployment_id: str) -> Optional[Slot]:
        """Bind the item to a free slot, or return None if all are busy."""
        with self._lock:
            for slot in self._slots:
                if slot.is_free():
                    slot.bind(item_id, deployment_id)
                    return slot
        return None

    def release(self, item_id: str) -> bool:
        with self._lock:
            for slot in self._slots:
                if slot.item_id == item_id:
                    slot.release()
                    return True
        return False

    def has_free_slot(self) -> bool:
        with self._lock:
            return any(s.is_free() for s in self._slots)

    def active_slots(self) -> List[Slot]:
        """Get all occupied slots."""
        with self._lock:
            return [s for s in self._slots if not s.is_free()]

    def find_slot_by_item(self, item_id: str) -> Optional[Slot]:
        """Find slot holding given work item."""
        with self._lock:
            for slot in self._slots:
                if slot.item_id == item_id:
                    return slot
        return None

    def total_slots(self) -> int:
        """Get total number of slots."""
        return len(self._slots)

    def free_slots(self) -> int:
        """Get number of free slots."""
        with self._lock:
            return sum(1 for s in self._slots if s.is_free())

    def __repr__(self) -> str:
        return (
            f"<SlotManager(total={self.total_slots()}, "
            f"free={self.free_slots()}, "
            f"active={len(self.active_slots())})>"
        )
