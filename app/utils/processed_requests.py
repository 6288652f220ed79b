"""Bounded set of already-processed request identifiers"""
from collections import OrderedDict
from typing import Hashable


class ProcessedRequestSet:
    """
    Remembers stable external identifiers from an at-least-once source.

    Oldest identifiers are evicted first once more than `cap` are held.
    """

    def __init__(self, cap: int = 1000):
        if cap < 1:
            raise ValueError("cap must be >= 1")
        self._cap = cap
        self._seen: "OrderedDict[Hashable, None]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._seen)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._seen

    def seen(self, key: Hashable) -> bool:
        """Mark key as processed; return True if it already was"""
        if key in self._seen:
            return True
        self._seen[key] = None
        while len(self._seen) > self._cap:
            self._seen.popitem(last=False)
        return False
