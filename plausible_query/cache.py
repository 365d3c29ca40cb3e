"""
Disk-backed response cache for Plausible queries.

Entries are keyed by the SHA-256 of the key-sorted query payload and stay
fresh for a fixed window (300 seconds by default). Stale entries are
removed lazily when a lookup sees them, or eagerly by prune().

Caching is best-effort: no method raises for storage problems, a failed
read is a miss and a failed write is logged and ignored.
"""
import hashlib
import logging
import os
import time
from typing import Any, Callable, Dict, Optional, Union

import diskcache as dc
from pydantic import ValidationError

from .config import DEFAULT_CACHE_DIR, DEFAULT_CACHE_TTL
from .query_models import Query, QueryResponse, canonical_json

logger = logging.getLogger(__name__)


def make_cache_key(query: Union[Query, Dict[str, Any]]) -> str:
    """Generate a stable cache key for a query payload"""
    payload = query.to_payload() if isinstance(query, Query) else query
    return hashlib.sha256(canonical_json(payload).encode()).hexdigest()


class ResponseCache:
    """Query response cache stored in a diskcache directory"""

    def __init__(self, directory: Optional[str] = None, ttl_seconds: int = DEFAULT_CACHE_TTL,
                 clock: Callable[[], float] = time.time):
        self.directory = directory or DEFAULT_CACHE_DIR
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._cache = None

        try:
            os.makedirs(self.directory, exist_ok=True)
            # Entries are stored as JSON, never pickled
            self._cache = dc.Cache(self.directory, disk=dc.JSONDisk)
        except Exception as e:
            logger.warning(f"Cache unavailable at {self.directory}, continuing without it: {e}")

    def _is_fresh(self, entry: Dict[str, Any]) -> bool:
        return self._clock() - float(entry["timestamp"]) < self.ttl_seconds

    def _delete(self, key: str) -> bool:
        try:
            return bool(self._cache.delete(key))
        except Exception as e:
            logger.warning(f"Cache delete failed for {str(key)[:12]}: {e}")
            return False

    def get(self, query: Union[Query, Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        """Return the cached response for a query, or None if absent, stale or malformed"""
        if self._cache is None:
            return None
        key = make_cache_key(query)

        try:
            entry = self._cache.get(key)
        except Exception as e:
            logger.warning(f"Cache read failed for {key[:12]}: {e}")
            return None

        if entry is None:
            return None

        try:
            fresh = self._is_fresh(entry)
            response = entry["response"]
            QueryResponse.model_validate(response)
        except (KeyError, TypeError, ValueError, ValidationError) as e:
            logger.warning(f"Discarding corrupt cache entry {key[:12]}: {e}")
            self._delete(key)
            return None

        if not fresh:
            logger.debug(f"Cache entry {key[:12]} expired, removing")
            self._delete(key)
            return None
        return response

    def set(self, query: Union[Query, Dict[str, Any]], response: Dict[str, Any]) -> None:
        """Store a response, replacing any existing entry for the same query"""
        if self._cache is None:
            return
        payload = query.to_payload() if isinstance(query, Query) else query
        key = make_cache_key(payload)
        entry = {
            "query": payload,
            "response": response,
            "timestamp": self._clock(),
            "query_hash": key,
        }
        try:
            self._cache.set(key, entry)
        except Exception as e:
            logger.warning(f"Cache write failed for {key[:12]}: {e}")

    def clear(self) -> None:
        """Remove every entry"""
        if self._cache is None:
            return
        try:
            self._cache.clear()
        except Exception as e:
            logger.warning(f"Cache clear failed: {e}")

    def prune(self) -> int:
        """Delete every stale entry and return how many were removed"""
        if self._cache is None:
            return 0
        removed = 0
        try:
            keys = list(self._cache.iterkeys())
        except Exception as e:
            logger.warning(f"Cache scan failed: {e}")
            return 0

        for key in keys:
            try:
                entry = self._cache.get(key)
                if entry is None:
                    continue
                stale = not self._is_fresh(entry)
            except (KeyError, TypeError, ValueError):
                stale = True
            except Exception as e:
                logger.warning(f"Cache read failed for {str(key)[:12]}: {e}")
                continue
            if stale and self._delete(key):
                removed += 1

        logger.debug(f"Pruned {removed} stale cache entries")
        return removed

    def info(self) -> Dict[str, Any]:
        """Entry count (stale entries included) and storage location"""
        total = 0
        if self._cache is not None:
            try:
                total = len(self._cache)
            except Exception as e:
                logger.warning(f"Cache size lookup failed: {e}")
        return {
            "total_entries": total,
            "location": self.directory,
            "ttl_seconds": self.ttl_seconds,
        }

    def close(self) -> None:
        if self._cache is not None:
            self._cache.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
