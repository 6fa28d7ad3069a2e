"""
Page read-model cache with path revalidation.

Read endpoints cache their payload per (tenant_id, page path); mutations call
revalidate_path() for every page they affect so the next read is fresh.
"""

import threading
import time
import logging
from typing import Any, Callable, Dict, Optional, Tuple

from stockroom.config import settings

logger = logging.getLogger(__name__)


class PageCache:
    """Thread-safe TTL cache keyed by tenant and page path."""

    def __init__(self, ttl_seconds: Optional[int] = None):
        self._ttl = settings.PAGE_CACHE_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        self._entries: Dict[Tuple[str, str], Tuple[float, Any]] = {}
        self._lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return self._ttl > 0

    def get(self, tenant_id: str, path: str) -> Optional[Any]:
        if not self.enabled:
            return None
        key = (tenant_id, path)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, payload = entry
            if expires_at <= time.monotonic():
                del self._entries[key]
                return None
            return payload

    def set(self, tenant_id: str, path: str, payload: Any) -> None:
        if not self.enabled:
            return
        with self._lock:
            self._entries[(tenant_id, path)] = (time.monotonic() + self._ttl, payload)

    def get_or_load(self, tenant_id: str, path: str, loader: Callable[[], Any]) -> Any:
        """Return the cached payload for a page, loading and storing it on a miss."""
        cached = self.get(tenant_id, path)
        if cached is not None:
            logger.debug(f"Page cache HIT: {path}", extra={"tenant_id": tenant_id})
            return cached

        logger.debug(f"Page cache MISS: {path}", extra={"tenant_id": tenant_id})
        payload = loader()
        self.set(tenant_id, path, payload)
        return payload

    def revalidate_path(self, path: str) -> int:
        """Drop every tenant's cached entry for a page path."""
        with self._lock:
            stale = [key for key in self._entries if key[1] == path]
            for key in stale:
                del self._entries[key]
        if stale:
            logger.debug(f"Revalidated {path} ({len(stale)} entries)")
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


page_cache = PageCache()


def revalidate_path(*paths: str) -> None:
    """Invalidate the cached read models for the given page paths."""
    for path in paths:
        page_cache.revalidate_path(path)
