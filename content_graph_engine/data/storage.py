"""
Key-value storage contract for relationship records.

The host application injects its own store; records are plain dicts
keyed by relationship id and must carry `source_id`/`target_id`.
"""

from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Any, Dict, List, Optional


class KeyValueStore(ABC):
    """Abstract record store used by the GraphStore"""

    @abstractmethod
    def get(self, key: str) -> Optional[Dict[str, Any]]:
        ...

    @abstractmethod
    def put(self, key: str, record: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        ...

    @abstractmethod
    def list_by_source(self, node_id: str) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    def list_by_target(self, node_id: str) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    def list_all(self) -> List[Dict[str, Any]]:
        ...


class InMemoryKeyValueStore(KeyValueStore):
    """Dict-backed store with source/target indexes, in insertion order."""

    def __init__(self):
        self._records: Dict[str, Dict[str, Any]] = {}
        self._by_source: Dict[str, Dict[str, None]] = defaultdict(dict)
        self._by_target: Dict[str, Dict[str, None]] = defaultdict(dict)

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        record = self._records.get(key)
        return dict(record) if record is not None else None

    def put(self, key: str, record: Dict[str, Any]) -> None:
        previous = self._records.get(key)
        if previous is not None:
            self._unindex(key, previous)
        self._records[key] = dict(record)
        self._by_source[record["source_id"]][key] = None
        self._by_target[record["target_id"]][key] = None

    def delete(self, key: str) -> None:
        record = self._records.pop(key, None)
        if record is not None:
            self._unindex(key, record)

    def list_by_source(self, node_id: str) -> List[Dict[str, Any]]:
        return [dict(self._records[k]) for k in self._by_source.get(node_id, {})]

    def list_by_target(self, node_id: str) -> List[Dict[str, Any]]:
        return [dict(self._records[k]) for k in self._by_target.get(node_id, {})]

    def list_all(self) -> List[Dict[str, Any]]:
        return [dict(r) for r in self._records.values()]

    def _unindex(self, key: str, record: Dict[str, Any]):
        self._by_source.get(record["source_id"], {}).pop(key, None)
        self._by_target.get(record["target_id"], {}).pop(key, None)

    def __len__(self) -> int:
        return len(self._records)
