"""
Durable on-disk cache for Graph API responses.

One JSON file per key under `cache_dir`, named by the SHA-1 of the key and
holding `{"key": ..., "cached_at": ..., "data": [...]}`. Entries never expire;
they are removed explicitly by key, by key prefix, or wholesale.

Writes go through a temp file + fsync + os.replace, so two writers racing on
the same key leave one complete entry (last write wins) and never a torn file.
"""
from __future__ import annotations

import hashlib
import json
import os
import tempfile
import time
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional

from engine.utils.logging import get_logger

_log = get_logger("engine.cache")

# Params that must never end up in a cache key (or on disk).
_SECRET_PARAMS = {"access_token", "appsecret_proof"}


def make_cache_key(endpoint: str, params: Optional[Mapping[str, Any]] = None, suffix: str = "") -> str:
    """Deterministic key: endpoint, sorted params (minus credentials), suffix."""
    clean = {k: params[k] for k in sorted(params or {}) if k not in _SECRET_PARAMS}
    return f"{endpoint}?{json.dumps(clean, sort_keys=True, default=str, separators=(',', ':'))}_{suffix}"


class DiskCache:
    """Key -> item-list store persisted under a directory.

    Lifecycle is explicit: construct, `open()`, use, `close()`. Also usable as
    a context manager.
    """

    def __init__(self, cache_dir: str | os.PathLike = "api-cache") -> None:
        self.cache_dir = Path(cache_dir)
        self._open = False

    # lifecycle

    def open(self) -> "DiskCache":
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self._open = True
        _log.info("cache.open", extra={"data": {"dir": str(self.cache_dir.resolve())}})
        return self

    def close(self) -> None:
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    def __enter__(self) -> "DiskCache":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # internals

    def _require_open(self) -> None:
        if not self._open:
            raise RuntimeError("DiskCache is closed; call open() first")

    def _path_for(self, key: str) -> Path:
        digest = hashlib.sha1(key.encode("utf-8")).hexdigest()
        return self.cache_dir / f"{digest}.json"

    def _load(self, path: Path) -> Optional[Dict[str, Any]]:
        try:
            with path.open("r", encoding="utf-8") as f:
                entry = json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as exc:
            _log.warning("cache.unreadable", extra={"data": {"path": str(path), "error": str(exc)}})
            return None
        if not isinstance(entry, dict) or "key" not in entry:
            return None
        return entry

    def _entries(self) -> Iterator[tuple[Path, Dict[str, Any]]]:
        for path in sorted(self.cache_dir.glob("*.json")):
            entry = self._load(path)
            if entry is not None:
                yield path, entry

    # public API

    def get(self, key: str) -> Optional[List[Any]]:
        self._require_open()
        entry = self._load(self._path_for(key))
        if entry is None or entry.get("key") != key:
            return None
        data = entry.get("data")
        return data if isinstance(data, list) else None

    def set(self, key: str, items: List[Any]) -> None:
        """Replace the entry for `key` and persist it immediately."""
        self._require_open()
        path = self._path_for(key)
        payload = {"key": key, "cached_at": time.time(), "data": list(items)}
        # One temp file per write: concurrent writers never share a path.
        with tempfile.NamedTemporaryFile(
            "w", encoding="utf-8", dir=self.cache_dir, prefix=f"{path.name}.", suffix=".tmp", delete=False
        ) as f:
            tmp = Path(f.name)
            try:
                json.dump(payload, f, ensure_ascii=False)
                f.flush()
                os.fsync(f.fileno())
            except BaseException:
                f.close()
                tmp.unlink(missing_ok=True)
                raise
        os.replace(str(tmp), str(path))

    def delete(self, key: str) -> bool:
        self._require_open()
        path = self._path_for(key)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        return True

    def delete_prefix(self, prefix: str) -> int:
        self._require_open()
        removed = 0
        for path, entry in self._entries():
            if str(entry.get("key", "")).startswith(prefix):
                path.unlink(missing_ok=True)
                removed += 1
        _log.info("cache.delete_prefix", extra={"data": {"prefix": prefix, "removed": removed}})
        return removed

    def clear(self) -> int:
        self._require_open()
        removed = 0
        for path in self.cache_dir.glob("*.json"):
            path.unlink(missing_ok=True)
            removed += 1
        _log.info("cache.clear", extra={"data": {"removed": removed}})
        return removed

    def keys(self) -> List[str]:
        self._require_open()
        return [str(entry["key"]) for _, entry in self._entries()]

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None


__all__ = ["DiskCache", "make_cache_key"]
