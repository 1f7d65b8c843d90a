import time
from typing import Any, Callable, Dict, Optional, Tuple

from .settings import CACHE_ROUND_DIGITS


def cache_key(lat: float, lng: float, digits: int = CACHE_ROUND_DIGITS) -> str:
    """Build a cache key from coordinates rounded to `digits` decimals.

    Four decimals is roughly 11 m at the equator, well below the scale at
    which current weather differs, so nearby properties share one entry.
    """

    # `+ 0.0` turns -0.0 into 0.0
    lat_r = round(lat, digits) + 0.0
    lng_r = round(lng, digits) + 0.0
    return f"{lat_r:.{digits}f},{lng_r:.{digits}f}"


class TTLCache:
    """Simple TTL-backed key-value cache.

    Parameters
    ----------
    ttl_seconds : int
        Default time-to-live in seconds. Items older than this are considered expired.
    clock : Callable[[], float]
        Monotonic time source, injectable for tests. Defaults to `time.monotonic`.

    Notes
    -----
    - Keys are typed as `str` in this implementation.
    - Operations are O(1) average time, except `purge_expired` which is O(n).
    - Expiration is lazy (on `get`); `purge_expired` is the periodic sweep.
    - Concurrent writers to one key simply overwrite each other (last write wins).
    """

    def __init__(self, ttl_seconds: int, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl_seconds
        self._clock = clock
        # key -> (expires_at, value)
        self._store: Dict[str, Tuple[float, Any]] = {}

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value for `key` if present and not expired.

        Parameters
        ----------
        key : str
            Cache key.

        Returns
        -------
        Optional[Any]
            The stored value, or `None` if the key is missing or the entry expired.

        Notes
        -----
        - Performs lazy eviction: if the entry is stale, it is removed and `None` is returned.
        """

        item = self._store.get(key)
        if not item:
            return None
        expires_at, value = item
        if self._clock() >= expires_at:
            self._store.pop(key, None)
            return None
        return value

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        """Insert or replace a value for `key`.

        Parameters
        ----------
        key : str
            Cache key.
        value : Any
            Arbitrary Python object to store.
        ttl : Optional[int]
            Per-entry TTL in seconds; falls back to the cache default.
        """

        seconds = self.ttl if ttl is None else ttl
        self._store[key] = (self._clock() + max(0, seconds), value)

    def purge_expired(self) -> int:
        """Drop every expired entry and return how many were removed."""

        now = self._clock()
        stale = [k for k, (expires_at, _) in self._store.items() if now >= expires_at]
        for k in stale:
            self._store.pop(k, None)
        return len(stale)

    def clear(self) -> None:
        """Remove all entries from the cache.

        Useful for tests or to force a full refresh of cached data.
        """

        self._store.clear()

    def __len__(self) -> int:
        return len(self._store)
