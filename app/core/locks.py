"""In-process write locks keyed by record id or route."""
import asyncio
import weakref


class KeyedLocks:
    """
    One asyncio.Lock per key. A lock lives only while someone holds or waits
    on it, so keys do not accumulate and no lock outlives its event loop's use.
    """

    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def __call__(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock
