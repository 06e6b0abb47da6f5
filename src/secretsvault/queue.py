"""
Pending-sync queue -- keys changed in the vault since the last sync.

Persisted as a sorted JSON array so that a restart does not forget
which keys still have to reach the env files.
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Iterable

from ._fs import atomic_write_text

logger = logging.getLogger("secretsvault.queue")


class SyncQueue:
    """Thread-safe, file-backed set of pending keys."""

    def __init__(self, path: Path):
        self.path = path
        self._lock = threading.Lock()
        self._keys: set[str] = self._load()

    def _load(self) -> set[str]:
        if not self.path.exists():
            return set()
        try:
            data = json.loads(self.path.read_text(encoding="utf-8") or "[]")
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning("Failed to load sync queue %s: %s", self.path, exc)
            return set()
        if not isinstance(data, list):
            return set()
        return {k for k in data if isinstance(k, str)}

    def _save(self) -> None:
        atomic_write_text(self.path, json.dumps(sorted(self._keys), indent=2) + "\n")

    def add(self, key: str) -> None:
        """Mark a key as needing sync."""
        with self._lock:
            if key in self._keys:
                return
            self._keys.add(key)
            self._save()

    def remove(self, keys: Iterable[str]) -> None:
        """Clear keys that have been synced (or deleted)."""
        with self._lock:
            before = len(self._keys)
            self._keys.difference_update(keys)
            if len(self._keys) != before:
                self._save()

    def list(self) -> list[str]:
        """Pending keys, sorted."""
        with self._lock:
            return sorted(self._keys)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._keys

    def __len__(self) -> int:
        with self._lock:
            return len(self._keys)
