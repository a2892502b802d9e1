"""Filesystem cache for API responses with per-entry expiry.

Each entry is one JSON file holding a versioned record
``{"version", "data", "expiry"}`` where expiry is epoch milliseconds.
Expired or malformed entries are evicted lazily on read; there is no sweep.
Writes never raise: the cache is an optimisation only.
"""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
import threading
import time
from pathlib import Path
from typing import Any, Callable, Optional

from followgraph.models import CacheEntry

logger = logging.getLogger(__name__)

# Default cache directory
DEFAULT_CACHE_DIR = "~/.followgraph/cache"

# Namespace prepended to every key
DEFAULT_PREFIX = "bilibili_helper_"

# Default TTL: 1 day
DEFAULT_TTL_SECONDS = 24 * 60 * 60

# Entries larger than this are not persisted
DEFAULT_MAX_ENTRY_BYTES = 2 * 1024 * 1024

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


def common_followings_key(mid: int) -> str:
    return f"common_followings_{mid}"


class CacheStore:
    """Namespaced key/value store with TTL, backed by one file per key."""

    def __init__(
        self,
        cache_dir: str = DEFAULT_CACHE_DIR,
        *,
        prefix: str = DEFAULT_PREFIX,
        default_ttl: int = DEFAULT_TTL_SECONDS,
        max_entry_bytes: int = DEFAULT_MAX_ENTRY_BYTES,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._base_path = Path(cache_dir).expanduser()
        self._base_path.mkdir(parents=True, exist_ok=True)
        self._prefix = prefix
        self._default_ttl = default_ttl
        self._max_entry_bytes = max_entry_bytes
        self._clock = clock
        self._lock = threading.Lock()
        logger.info("Response cache initialized at %s", self._base_path)

    @property
    def prefix(self) -> str:
        return self._prefix

    def namespaced(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _data_path(self, key: str) -> Path:
        safe_key = _UNSAFE_CHARS.sub("_", self.namespaced(key))
        return self._base_path / f"{safe_key}.json"

    def get(self, key: str) -> Optional[Any]:
        """Return cached data if present, well-formed and not expired."""
        data_path = self._data_path(key)
        try:
            content = data_path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.warning("Cache read error for '%s': %s", key, exc)
            return None

        try:
            record = json.loads(content)
        except ValueError:
            record = None

        entry = CacheEntry.from_record(record)
        if entry is None:
            logger.debug("Discarding malformed cache entry '%s'", key)
            self._evict(key, data_path, content)
            return None

        if entry.is_expired(self._now_ms()):
            logger.debug("Cache expired for key '%s'", key)
            self._evict(key, data_path, content)
            return None

        return entry.data

    def _evict(self, key: str, data_path: Path, stale: bytes) -> None:
        # Only delete the file if a concurrent set() has not replaced it
        with self._lock:
            try:
                if data_path.read_bytes() == stale:
                    data_path.unlink()
            except FileNotFoundError:
                pass
            except OSError as exc:
                logger.debug("Cache delete error for '%s': %s", key, exc)

    def contains(self, key: str) -> bool:
        return self.get(key) is not None

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        """Store ``value`` for ``ttl`` seconds. Failures are swallowed."""
        effective_ttl = self._default_ttl if ttl is None else ttl
        entry = CacheEntry(data=value, expiry=self._now_ms() + int(effective_ttl * 1000))

        try:
            encoded = json.dumps(entry.to_record(), separators=(",", ":")).encode("utf-8")
        except (TypeError, ValueError) as exc:
            logger.debug("Cache value for '%s' is not serializable: %s", key, exc)
            return

        if len(encoded) > self._max_entry_bytes:
            logger.debug(
                "Cache value for '%s' is %d bytes, over the %d byte limit",
                key,
                len(encoded),
                self._max_entry_bytes,
            )
            return

        data_path = self._data_path(key)
        with self._lock:
            tmp_name = None
            try:
                fd, tmp_name = tempfile.mkstemp(
                    dir=self._base_path, prefix=".tmp-", suffix=".json"
                )
                with os.fdopen(fd, "wb") as handle:
                    handle.write(encoded)
                os.replace(tmp_name, data_path)
                tmp_name = None
            except OSError as exc:
                logger.debug("Cache write error for '%s': %s", key, exc)
            finally:
                if tmp_name is not None:
                    try:
                        os.unlink(tmp_name)
                    except OSError:
                        pass

    def remove(self, key: str) -> None:
        """Delete a cache entry."""
        try:
            self._data_path(key).unlink(missing_ok=True)
        except OSError as exc:
            logger.debug("Cache delete error for '%s': %s", key, exc)

    def clear(self) -> int:
        """Remove every entry in this namespace. Returns count of files removed."""
        safe_prefix = _UNSAFE_CHARS.sub("_", self._prefix)
        count = 0
        for path in self._base_path.glob(f"{safe_prefix}*.json"):
            try:
                path.unlink()
                count += 1
            except OSError:
                pass
        logger.info("Cleared %d cache files", count)
        return count
