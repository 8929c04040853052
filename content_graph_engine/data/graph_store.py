"""
Graph Store

Owns the canonical set of relationship records and exposes link CRUD
plus indexed lookups by source and target node. Persistence goes
through an injected KeyValueStore.
"""

import logging
import uuid
from collections import defaultdict, deque
from datetime import datetime
from numbers import Real
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

import pandas as pd

from ..errors import NotFoundError, StorageError, ValidationError
from .catalog import ContentCatalog
from .schemas import (
    LinkAnalytics, LinkFilter, LinkMetadata, ORDERING_TYPES,
    Relationship, RelationshipType
)
from .storage import InMemoryKeyValueStore, KeyValueStore

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = {"strength", "type", "description", "automatic"}

# Reverse type used by create_bidirectional_link
REVERSE_TYPES = {
    RelationshipType.RELATED: RelationshipType.RELATED,
    RelationshipType.SIMILAR: RelationshipType.SIMILAR,
    RelationshipType.PREREQUISITE: RelationshipType.DEPENDENT,
}


def coerce_type(value: Union[str, RelationshipType]) -> RelationshipType:
    if isinstance(value, RelationshipType):
        return value
    try:
        return RelationshipType(value)
    except ValueError:
        raise ValidationError(f"Unknown relationship type: {value!r}", field="type")


def _validate_strength(strength: Any) -> float:
    if isinstance(strength, bool) or not isinstance(strength, Real):
        raise ValidationError(f"Strength must be a number, got {strength!r}", field="strength")
    if not 0.0 <= strength <= 1.0:
        raise ValidationError(f"Strength {strength} outside [0, 1]", field="strength")
    return float(strength)


class GraphStore:
    """
    Relationship collection with create/read/update/delete.

    Every successful mutation bumps `version`, which analyzers use as the
    key for memoized derived graphs.

    A GraphStore is the single writer of its backing store. Opening a new
    instance over existing records continues their creation order, but
    writes made behind an instance's back are not reflected in `version`,
    so analyzers built on it would keep serving old graphs. Hand the store
    over by discarding the old instance; do not write through two at once.
    """

    def __init__(self, catalog: ContentCatalog, store: Optional[KeyValueStore] = None):
        self.catalog = catalog
        self.store = store if store is not None else InMemoryKeyValueStore()
        self.version = 0

        existing = self._call("list_all", self.store.list_all)
        self._next_seq = max((int(r.get("seq", 0)) for r in existing), default=0) + 1

    def _call(self, operation: str, fn, *args):
        try:
            return fn(*args)
        except StorageError:
            raise
        except Exception as exc:
            raise StorageError(f"Store {operation} failed: {exc}", operation=operation) from exc

    def _bump(self):
        self.version += 1

    @staticmethod
    def _sorted(records: Iterable[Dict[str, Any]]) -> List[Relationship]:
        links = [Relationship.from_dict(r) for r in records]
        links.sort(key=lambda link: link.seq)
        return links

    # CRUD

    def create_link(
        self,
        source_id: str,
        target_id: str,
        link_type: Union[str, RelationshipType] = RelationshipType.RELATED,
        strength: float = 1.0,
        description: str = "",
        automatic: bool = False
    ) -> Relationship:
        """
        Create a relationship after validating it.

        Raises:
            ValidationError: self-loop, strength outside [0, 1], unknown
                node id, unknown type, or an identical link already exists
        """
        link_type = coerce_type(link_type)
        if source_id == target_id:
            raise ValidationError("Cannot create self-referential link", field="target_id")
        strength = _validate_strength(strength)
        for field_name, node_id in (("source_id", source_id), ("target_id", target_id)):
            if node_id not in self.catalog:
                raise ValidationError(f"Unknown content id: {node_id}", field=field_name)
        if self.find_link(source_id, target_id, link_type) is not None:
            raise ValidationError(
                f"{link_type.value} link {source_id} -> {target_id} already exists",
                field="type"
            )

        link = Relationship(
            id=uuid.uuid4().hex,
            source_id=source_id,
            target_id=target_id,
            type=link_type,
            strength=strength,
            metadata=LinkMetadata(
                created=datetime.now(),
                automatic=automatic,
                description=description or "",
                created_by="system" if automatic else "user"
            ),
            seq=self._next_seq
        )
        self._call("put", self.store.put, link.id, link.to_dict())
        self._next_seq += 1
        self._bump()

        logger.info(f"Created {link_type.value} link {source_id} -> {target_id} ({link.id})")
        return link

    def get_link(self, link_id: str) -> Optional[Relationship]:
        record = self._call("get", self.store.get, link_id)
        return Relationship.from_dict(record) if record is not None else None

    def update_link(self, link_id: str, **patch) -> Relationship:
        """
        Update strength, type, description or automatic flag of a link.

        Raises:
            NotFoundError: no relationship with this id
            ValidationError: unknown field or invalid value
        """
        unknown = set(patch) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Cannot update fields: {sorted(unknown)}", field=sorted(unknown)[0])

        link = self.get_link(link_id)
        if link is None:
            raise NotFoundError(link_id)

        if "strength" in patch:
            link.strength = _validate_strength(patch["strength"])
        if "type" in patch:
            new_type = coerce_type(patch["type"])
            if new_type != link.type:
                clash = self.find_link(link.source_id, link.target_id, new_type)
                if clash is not None:
                    raise ValidationError(
                        f"{new_type.value} link {link.source_id} -> {link.target_id} already exists",
                        field="type"
                    )
            link.type = new_type
        if "description" in patch:
            link.metadata.description = patch["description"] or ""
        if "automatic" in patch:
            link.metadata.automatic = bool(patch["automatic"])

        self._call("put", self.store.put, link.id, link.to_dict())
        self._bump()
        logger.info(f"Updated link {link_id}: {sorted(patch)}")
        return link

    def delete_link(self, link_id: str) -> bool:
        """Delete a link. Deleting an absent id is a no-op returning False."""
        if self._call("get", self.store.get, link_id) is None:
            logger.debug(f"Delete of absent link {link_id} ignored")
            return False
        self._call("delete", self.store.delete, link_id)
        self._bump()
        logger.info(f"Deleted link {link_id}")
        return True

    # Lookups

    def get_outgoing_links(self, node_id: str) -> List[Relationship]:
        return self._sorted(self._call("list_by_source", self.store.list_by_source, node_id))

    def get_incoming_links(self, node_id: str) -> List[Relationship]:
        return self._sorted(self._call("list_by_target", self.store.list_by_target, node_id))

    def all_links(self) -> List[Relationship]:
        return self._sorted(self._call("list_all", self.store.list_all))

    def find_link(
        self,
        source_id: str,
        target_id: str,
        link_type: RelationshipType
    ) -> Optional[Relationship]:
        for link in self.get_outgoing_links(source_id):
            if link.target_id == target_id and link.type == link_type:
                return link
        return None

    def find_links(self, link_filter: Optional[LinkFilter] = None) -> List[Relationship]:
        link_filter = link_filter or LinkFilter()
        return [link for link in self.all_links() if link_filter.matches(link)]

    # Batch and convenience operations

    def create_links_batch(self, records: Iterable[Dict[str, Any]]) -> List[Relationship]:
        """
        Create several links; invalid records are logged and skipped.

        Each record holds `source_id`, `target_id`, `type` and optionally
        `strength`, `description`, `automatic`.
        """
        created = []
        for record in records:
            try:
                created.append(self.create_link(
                    record["source_id"],
                    record["target_id"],
                    record.get("type", RelationshipType.RELATED),
                    record.get("strength", 1.0),
                    record.get("description", ""),
                    record.get("automatic", False)
                ))
            except (ValidationError, KeyError) as exc:
                logger.warning(f"Skipping link in batch {record!r}: {exc}")
        return created

    def create_bidirectional_link(
        self,
        source_id: str,
        target_id: str,
        link_type: Union[str, RelationshipType],
        strength: float = 1.0,
        description: str = ""
    ) -> Tuple[Relationship, Optional[Relationship]]:
        """Create a link and, for symmetric or prerequisite types, its reverse."""
        link_type = coerce_type(link_type)
        forward = self.create_link(source_id, target_id, link_type, strength, description)
        reverse_type = REVERSE_TYPES.get(link_type)
        reverse = None
        if reverse_type is not None and self.find_link(target_id, source_id, reverse_type) is None:
            reverse = self.create_link(target_id, source_id, reverse_type, strength, description)
        return forward, reverse

    def would_create_cycle(self, source_id: str, target_id: str) -> bool:
        """Whether an ordering link source -> target would close a cycle."""
        if source_id == target_id:
            return True
        seen = {target_id}
        queue = deque([target_id])
        while queue:
            node = queue.popleft()
            for link in self.get_outgoing_links(node):
                if link.type not in ORDERING_TYPES:
                    continue
                if link.target_id == source_id:
                    return True
                if link.target_id not in seen:
                    seen.add(link.target_id)
                    queue.append(link.target_id)
        return False

    # Analytics

    def get_analytics(self, top_k: int = 5) -> LinkAnalytics:
        links = self.all_links()
        by_type = {t: 0 for t in RelationshipType}
        connections: Dict[str, int] = defaultdict(int)
        automatic = 0
        for link in links:
            by_type[link.type] += 1
            connections[link.source_id] += 1
            connections[link.target_id] += 1
            if link.metadata.automatic:
                automatic += 1

        by_strength = sorted(links, key=lambda link: (link.strength, link.seq))
        most_connected = sorted(connections.items(), key=lambda item: (-item[1], item[0]))

        return LinkAnalytics(
            total_links=len(links),
            links_by_type=by_type,
            average_strength=sum(l.strength for l in links) / len(links) if links else 0.0,
            automatic_count=automatic,
            manual_count=len(links) - automatic,
            most_connected_nodes=most_connected[:10],
            weakest_links=by_strength[:top_k],
            strongest_links=list(reversed(by_strength[-top_k:])) if links else []
        )

    def to_dataframe(self) -> pd.DataFrame:
        rows = []
        for link in self.all_links():
            rows.append({
                "id": link.id,
                "source_id": link.source_id,
                "target_id": link.target_id,
                "type": link.type.value,
                "strength": link.strength,
                "automatic": link.metadata.automatic,
                "description": link.metadata.description,
                "created": link.metadata.created,
                "seq": link.seq
            })
        return pd.DataFrame(rows, columns=[
            "id", "source_id", "target_id", "type", "strength",
            "automatic", "description", "created", "seq"
        ])

    def __len__(self) -> int:
        return len(self.all_links())
