# shopmate/session_cache.py
import time
from typing import Any, Callable, Dict, Hashable, Optional, Tuple


class TTLCache:
    """In-memory key/value cache whose entries expire after ``ttl`` seconds."""

    def __init__(self, ttl: float = 3600.0, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._entries: Dict[Hashable, Tuple[float, Any]] = {}

    def set(self, key: Hashable, value: Any, ttl: Optional[float] = None) -> None:
        self.evict_expired()
        expires = self._clock() + (self.ttl if ttl is None else ttl)
        self._entries[key] = (expires, value)

    def get(self, key: Hashable, default: Any = None) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            return default
        expires, value = entry
        if expires <= self._clock():
            del self._entries[key]
            return default
        return value

    def delete(self, key: Hashable) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def evict_expired(self) -> int:
        now = self._clock()
        stale = [k for k, (expires, _) in self._entries.items() if expires <= now]
        for k in stale:
            del self._entries[k]
        return len(stale)

    def __len__(self) -> int:
        self.evict_expired()
        return len(self._entries)

    def stats(self) -> Dict[str, Any]:
        self.evict_expired()
        return {"size": len(self._entries), "keys": [str(k) for k in self._entries]}
