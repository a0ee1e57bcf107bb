"""Bounded window of recently processed message ids."""

DEDUP_MAX_SIZE = 10_000


class DedupWindow:
    """
    Insertion-ordered set of message ids shared by every account.

    When full, the oldest half is evicted before the next id is added, so an
    id is remembered for at least ``capacity // 2`` later insertions.
    """

    def __init__(self, capacity: int = DEDUP_MAX_SIZE):
        if capacity < 2:
            raise ValueError("capacity must be at least 2")
        self.capacity = capacity
        self._ids: dict[str, None] = {}

    def check_and_add(self, message_id: str) -> bool:
        """Return True if message_id was already seen; otherwise record it."""
        if message_id in self._ids:
            return True
        if len(self._ids) >= self.capacity:
            keep = list(self._ids)[len(self._ids) // 2 :]
            self._ids = dict.fromkeys(keep)
        self._ids[message_id] = None
        return False

    def reset(self) -> None:
        self._ids.clear()

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)
