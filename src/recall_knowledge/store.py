"""
Per-user key-value storage used by the knowledge ledger and counters.

The host owns persistence; the engine only needs reads that return
immediately and writes that can be awaited. Values are plain JSON-compatible
structures. Two implementations are provided: an in-memory store for tests
and embedding, and a JSON-file store writing one document per user.
"""

import asyncio
import copy
import json
import logging
from pathlib import Path
from typing import Any, Iterable, Optional, Protocol, runtime_checkable

from .exceptions import PersistenceFailure

logger = logging.getLogger("recall-knowledge.store")


@runtime_checkable
class KeyValueStore(Protocol):
    """Per-user store: ``(user, namespace, key) -> value``."""

    def get(self, user_id: str, namespace: str, key: str, default: Any = None) -> Any:
        ...

    async def set(self, user_id: str, namespace: str, key: str, value: Any) -> None:
        ...

    def user_ids(self) -> Iterable[str]:
        ...


class InMemoryKeyValueStore:
    """Dictionary-backed store. Values are copied on read and write."""

    def __init__(self) -> None:
        self._data: dict[str, dict[str, dict[str, Any]]] = {}

    def get(self, user_id: str, namespace: str, key: str, default: Any = None) -> Any:
        value = self._data.get(user_id, {}).get(namespace, {}).get(key)
        if value is None:
            return default
        return copy.deepcopy(value)

    async def set(self, user_id: str, namespace: str, key: str, value: Any) -> None:
        self._data.setdefault(user_id, {}).setdefault(namespace, {})[key] = copy.deepcopy(value)

    def user_ids(self) -> list[str]:
        return list(self._data)


class JsonFileKeyValueStore:
    """
    Store persisting each user's data to ``<root>/<user_id>.json``.

    All user files are loaded at construction. Writes replace the whole user
    document; a failed write raises PersistenceFailure and leaves the
    in-memory state unchanged.

    Attributes:
        root: Directory holding the per-user JSON documents
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root)
        self._data: dict[str, dict[str, dict[str, Any]]] = {}
        self._lock = asyncio.Lock()
        self.root.mkdir(parents=True, exist_ok=True)
        self.load()

    def _user_path(self, user_id: str) -> Path:
        return self.root / f"{user_id}.json"

    def load(self) -> None:
        """Load every user document. Corrupt files are skipped with a warning."""
        self._data = {}
        for path in sorted(self.root.glob("*.json")):
            try:
                with open(path, "r", encoding="utf-8") as f:
                    data = json.load(f)
                if not isinstance(data, dict):
                    raise ValueError("user document must be an object")
                self._data[path.stem] = data
            except (json.JSONDecodeError, ValueError, OSError) as e:
                logger.error(f"Failed to load user store {path}: {e}")
                logger.warning(f"Starting with empty data for user '{path.stem}'")
        logger.info(f"Loaded {len(self._data)} user stores from {self.root}")

    def get(self, user_id: str, namespace: str, key: str, default: Any = None) -> Any:
        value = self._data.get(user_id, {}).get(namespace, {}).get(key)
        if value is None:
            return default
        return copy.deepcopy(value)

    async def set(self, user_id: str, namespace: str, key: str, value: Any) -> None:
        async with self._lock:
            document = copy.deepcopy(self._data.get(user_id, {}))
            document.setdefault(namespace, {})[key] = copy.deepcopy(value)
            self._write(user_id, namespace, document)
            self._data[user_id] = document

    def _write(self, user_id: str, namespace: str, document: dict[str, Any]) -> None:
        path = self._user_path(user_id)
        tmp_path = path.with_suffix(".json.tmp")
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(document, f, indent=2, ensure_ascii=False)
            tmp_path.replace(path)
        except (OSError, TypeError) as e:
            logger.error(f"Failed to write {namespace} for user '{user_id}' to {path}: {e}")
            raise PersistenceFailure(
                f"Could not save {namespace} for user '{user_id}'",
                namespace=namespace,
                user_id=user_id,
                details={"path": str(path), "error": str(e)},
            ) from e
        logger.debug(f"Saved {namespace} for user '{user_id}' to {path}")

    def user_ids(self) -> list[str]:
        return list(self._data)


def nested_get(
    store: KeyValueStore,
    user_id: str,
    namespace: str,
    outer_key: str,
    inner_key: str,
    default: Optional[Any] = None,
) -> Any:
    """Read ``namespace[outer_key][inner_key]`` from a two-level map."""
    outer = store.get(user_id, namespace, outer_key, {}) or {}
    value = outer.get(inner_key) if isinstance(outer, dict) else None
    return default if value is None else value


async def nested_set(
    store: KeyValueStore,
    user_id: str,
    namespace: str,
    outer_key: str,
    inner_key: str,
    value: Any,
) -> None:
    """Write ``namespace[outer_key][inner_key]``, keeping sibling entries."""
    outer = store.get(user_id, namespace, outer_key, {}) or {}
    if not isinstance(outer, dict):
        outer = {}
    outer[inner_key] = value
    await store.set(user_id, namespace, outer_key, outer)


__all__ = [
    "KeyValueStore",
    "InMemoryKeyValueStore",
    "JsonFileKeyValueStore",
    "nested_get",
    "nested_set",
]
