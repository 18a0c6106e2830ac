"""
Cache store contract and the local backends.

Every backend keeps at most one entry per key (last write wins) and is
non-throwing: read problems are reported as a miss, write problems are
logged and dropped.
"""
import json
import logging
import os
import re
import tempfile
import threading
from pathlib import Path
from typing import Dict, Optional, Protocol

from peakplay.errors import CacheIOError

from .core import IDENTITY_CODEC, CacheEntry, PayloadCodec
from .freshness import Clock, utc_now

logger = logging.getLogger("cache.stores")


class CacheStore(Protocol):
    """
    Key/value persistence with a last-write timestamp.

    Implementations:
    - MemoryCacheStore: process-local, lost on restart
    - FileCacheStore: one JSON file per key (client tier)
    - SqlCacheStore: shared database table with absolute expiry (server tier)
    """

    def get(self, key: str) -> Optional[CacheEntry]:
        """Return the entry for `key`, or None if absent or unreadable."""
        ...

    def set(self, key: str, value) -> None:
        """Store `value` stamped with the current time. Never raises."""
        ...

    def delete(self, key: str) -> None:
        """Drop the entry for `key` if present. Never raises."""
        ...


def _log_cache_error(action: str, key: str, error: Exception) -> None:
    wrapped = CacheIOError(f"Cache {action} failed for {key}: {error}")
    logger.warning(str(wrapped))


class MemoryCacheStore:
    """
    Ephemeral store holding encoded records in a dict.

    Records are kept in their serialised form so a reader never shares
    mutable state with the writer.
    """

    def __init__(self, codec: PayloadCodec = IDENTITY_CODEC, clock: Clock = utc_now):
        self._codec = codec
        self._clock = clock
        self._records: Dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[CacheEntry]:
        with self._lock:
            raw = self._records.get(key)
        if raw is None:
            return None
        try:
            return CacheEntry.from_record(json.loads(raw), self._codec)
        except (ValueError, TypeError, KeyError, AttributeError) as e:
            _log_cache_error("read", key, e)
            self.delete(key)
            return None

    def set(self, key: str, value) -> None:
        try:
            entry = CacheEntry(data=value, cached_at=self._clock())
            raw = json.dumps(entry.to_record(self._codec))
        except (ValueError, TypeError, AttributeError) as e:
            _log_cache_error("write", key, e)
            return
        with self._lock:
            self._records[key] = raw

    def delete(self, key: str) -> None:
        with self._lock:
            self._records.pop(key, None)


_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


class FileCacheStore:
    """
    Local on-disk store, one JSON document per key.

    Writes go to a temporary file that is renamed into place, so a reader
    sees either the previous document or the new one.
    """

    def __init__(
        self,
        directory: Path,
        codec: PayloadCodec = IDENTITY_CODEC,
        clock: Clock = utc_now,
    ):
        self.directory = Path(directory)
        self._codec = codec
        self._clock = clock

    def _path_for(self, key: str) -> Path:
        return self.directory / f"{_UNSAFE_FILENAME_CHARS.sub('_', key)}.json"

    def get(self, key: str) -> Optional[CacheEntry]:
        path = self._path_for(key)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            _log_cache_error("read", key, e)
            return None

        try:
            return CacheEntry.from_record(json.loads(raw), self._codec)
        except (ValueError, TypeError, KeyError, AttributeError) as e:
            logger.warning(f"Dropping malformed cache file {path.name}: {e}")
            self.delete(key)
            return None

    def set(self, key: str, value) -> None:
        path = self._path_for(key)
        tmp_name = None
        try:
            entry = CacheEntry(data=value, cached_at=self._clock())
            document = json.dumps(entry.to_record(self._codec))
            self.directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.directory, suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(document)
            os.replace(tmp_name, path)
            tmp_name = None
            logger.debug(f"Cache file written: {path}")
        except (OSError, ValueError, TypeError, AttributeError) as e:
            _log_cache_error("write", key, e)
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    pass

    def delete(self, key: str) -> None:
        try:
            self._path_for(key).unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            _log_cache_error("delete", key, e)
