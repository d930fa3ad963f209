# Per-group continuation tokens, held for the life of the process.

from typing import Any, Dict, Optional
import threading


class _Slot:
    __slots__ = ('lock', 'value')

    def __init__(self):
        self.lock = threading.Lock()
        self.value: Optional[str] = None


class CheckpointStore:
    """
    Thread-safe map of group id to checkpoint.

    Each group has its own lock; the registry lock is only held long enough
    to look up or create a slot, so reads and writes for unrelated groups
    never wait on each other. Nothing is persisted: after a restart every
    group resumes from the time window alone.
    """

    def __init__(self):
        self._slots: Dict[Any, _Slot] = {}
        self._registryLock = threading.Lock()

    def _slot(self, groupId: Any, create: bool) -> Optional[_Slot]:
        with self._registryLock:
            slot = self._slots.get(groupId)
            if slot is None and create:
                slot = _Slot()
                self._slots[groupId] = slot
            return slot

    def get(self, groupId: Any) -> Optional[str]:
        slot = self._slot(groupId, create=False)
        if slot is None:
            return None
        with slot.lock:
            return slot.value

    def set(self, groupId: Any, checkpoint: Optional[str]) -> None:
        slot = self._slot(groupId, create=True)
        with slot.lock:
            slot.value = checkpoint or None

    def snapshot(self) -> Dict[Any, Optional[str]]:
        with self._registryLock:
            slots = list(self._slots.items())
        result = {}
        for groupId, slot in slots:
            with slot.lock:
                result[groupId] = slot.value
        return result

    def __contains__(self, groupId: Any) -> bool:
        with self._registryLock:
            return groupId in self._slots

    def __len__(self) -> int:
        with self._registryLock:
            return len(self._slots)
