from collections import OrderedDict
from typing import Any, Optional, Tuple


class IdempotencyCache:
    """
    Remembers the result of write operations by client-supplied key.

    A key is scoped to the operation name, so the same key sent to ``create``
    and to ``publish`` refers to two different writes. Only successful results
    are stored; a failed write can be retried with the same key. The oldest
    keys are evicted once ``max_entries`` is reached.
    """

    def __init__(self, max_entries: int = 1024):
        self.max_entries = max_entries
        self._entries: "OrderedDict[Tuple[str, str], Any]" = OrderedDict()

    def get(self, operation: str, key: Optional[str]) -> Optional[Any]:
        if key is None:
            return None
        return self._entries.get((operation, key))

    def remember(self, operation: str, key: Optional[str], result: Any) -> None:
        if key is None:
            return
        self._entries[(operation, key)] = result
        self._entries.move_to_end((operation, key))
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def __len__(self) -> int:
        return len(self._entries)
