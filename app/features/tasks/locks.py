"""Per-template locks for generation and rule changes"""

import asyncio
from typing import Dict


class TemplateLockRegistry:
    """
    Hands out one asyncio.Lock per template ID.

    Generation and rule-change cleanup for the same template must never
    overlap in this process; across processes the row lock taken by
    TaskRepository.get_for_update serialises them.
    """

    def __init__(self):
        self._locks: Dict[int, asyncio.Lock] = {}

    def for_template(self, template_id: int) -> asyncio.Lock:
        lock = self._locks.get(template_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[template_id] = lock
        return lock

    def discard(self, template_id: int) -> None:
        """Forget the lock of a deleted template if nobody holds it"""
        lock = self._locks.get(template_id)
        if lock is not None and not lock.locked():
            del self._locks[template_id]


# Shared by the API and the scheduled generation job
template_locks = TemplateLockRegistry()
