"""
shield_store.py

Durable key-value stores for the shield state snapshot.

Every store follows the same contract: load() returns a dict or None,
save()/delete() return True/False. None of them raise; failures are
logged and the caller carries on with in-memory state.
"""

from __future__ import annotations

import copy
import json
import logging
import os
from typing import Protocol

import config
import supabase_store

logger = logging.getLogger(__name__)


class StateStore(Protocol):
    def load(self, key: str) -> dict | None:
        ...

    def save(self, key: str, snapshot: dict) -> bool:
        ...

    def delete(self, key: str) -> bool:
        ...


class MemoryStore:
    """Process-local store (tests, ephemeral sessions)."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def load(self, key: str) -> dict | None:
        raw = self._data.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError as e:
            logger.warning("Corrupt in-memory state %s: %s", key, e)
            return None

    def save(self, key: str, snapshot: dict) -> bool:
        try:
            self._data[key] = json.dumps(snapshot)
        except (TypeError, ValueError) as e:
            logger.error("Failed to serialize state %s: %s", key, e)
            return False
        return True

    def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None


class JsonFileStore:
    """
    One JSON file per key under *directory*.
    Written atomically (write tmp then rename) to avoid corruption.
    """

    def __init__(self, directory: str) -> None:
        self.directory = str(directory)

    def path_for(self, key: str) -> str:
        safe = "".join(ch if ch.isalnum() or ch in "-_." else "_" for ch in str(key))
        return os.path.join(self.directory, f"{safe}.json")

    def load(self, key: str) -> dict | None:
        path = self.path_for(key)
        if not os.path.exists(path):
            logger.info("No state file found at %s -- starting fresh", path)
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                snapshot = json.load(f)
        except Exception as e:
            logger.warning("Failed to read state file %s: %s -- starting fresh", path, e)
            return None
        if not isinstance(snapshot, dict):
            logger.warning("State file %s is not an object -- starting fresh", path)
            return None
        return snapshot

    def save(self, key: str, snapshot: dict) -> bool:
        path = self.path_for(key)
        tmp_path = path + ".tmp"
        try:
            os.makedirs(self.directory, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(snapshot, f, indent=2)
            os.replace(tmp_path, path)
            logger.debug("State saved to %s", path)
            return True
        except Exception as e:
            logger.error("Failed to save state: %s", e)
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            return False

    def delete(self, key: str) -> bool:
        path = self.path_for(key)
        try:
            os.remove(path)
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.error("Failed to delete state file %s: %s", path, e)
            return False


class SupabaseStore:
    """Remote store backed by supabase_store (no-op when unconfigured)."""

    def load(self, key: str) -> dict | None:
        return supabase_store.load_state(key) or None

    def save(self, key: str, snapshot: dict) -> bool:
        return supabase_store.save_state(key, snapshot)

    def delete(self, key: str) -> bool:
        return supabase_store.delete_state(key)


class MirroredStore:
    """
    Writes go to both stores; reads prefer the primary and fall back to
    the mirror when the primary has nothing.
    """

    def __init__(self, primary: StateStore, mirror: StateStore) -> None:
        self.primary = primary
        self.mirror = mirror

    def load(self, key: str) -> dict | None:
        snapshot = self.primary.load(key)
        if snapshot is not None:
            return snapshot
        snapshot = self.mirror.load(key)
        if snapshot is not None:
            logger.info("Restored shield state %s from mirror", key)
        return snapshot

    def save(self, key: str, snapshot: dict) -> bool:
        ok = self.primary.save(key, snapshot)
        mirrored = self.mirror.save(key, copy.deepcopy(snapshot))
        if not mirrored:
            logger.debug("Mirror save for %s did not complete", key)
        return ok

    def delete(self, key: str) -> bool:
        ok = self.primary.delete(key)
        self.mirror.delete(key)
        return ok


def build_store(directory: str | None = None) -> StateStore:
    """Local JSON file store, mirrored to Supabase when configured."""
    local = JsonFileStore(directory or config.SHIELD_STATE_DIR)
    if supabase_store._enabled():
        return MirroredStore(local, SupabaseStore())
    return local
