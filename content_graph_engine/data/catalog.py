"""
Content Catalog

Read-only (to the engine) lookup of content descriptors, with loaders
for host data in record, DataFrame, or CSV form.
"""

import logging
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Any

import pandas as pd

from .schemas import ContentDescriptor

logger = logging.getLogger(__name__)

LIST_SEPARATOR = ";"


def _split_list(value: Any) -> List[str]:
    """Normalize a list-valued cell (list, set, or ';'-separated string)."""
    if value is None:
        return []
    if isinstance(value, float) and pd.isna(value):
        return []
    if isinstance(value, str):
        return [item.strip() for item in value.split(LIST_SEPARATOR) if item.strip()]
    return [str(item).strip() for item in value if str(item).strip()]


class ContentCatalog:
    """
    Ordered id -> ContentDescriptor map.

    The host application populates the catalog; analyzers only read it.
    `version` increases on every host mutation so derived graphs can be
    memoized safely.
    """

    def __init__(self, descriptors: Optional[Iterable[ContentDescriptor]] = None):
        self._descriptors: Dict[str, ContentDescriptor] = {}
        self.version = 0
        if descriptors:
            self.extend(descriptors)

    def add(self, descriptor: ContentDescriptor):
        self._descriptors[descriptor.id] = descriptor
        self.version += 1

    def extend(self, descriptors: Iterable[ContentDescriptor]):
        for descriptor in descriptors:
            self._descriptors[descriptor.id] = descriptor
        self.version += 1

    def remove(self, content_id: str) -> bool:
        """Drop a descriptor; relationships referencing it become dangling."""
        if content_id not in self._descriptors:
            return False
        del self._descriptors[content_id]
        self.version += 1
        return True

    def get(self, content_id: str) -> Optional[ContentDescriptor]:
        return self._descriptors.get(content_id)

    def ids(self) -> List[str]:
        return list(self._descriptors)

    def difficulty_span(self) -> int:
        """Range of difficulty ranks in the catalog (at least 1)."""
        if not self._descriptors:
            return 1
        ranks = [d.difficulty_rank for d in self._descriptors.values()]
        return max(1, max(ranks) - min(ranks))

    def __contains__(self, content_id: object) -> bool:
        return content_id in self._descriptors

    def __iter__(self) -> Iterator[ContentDescriptor]:
        return iter(list(self._descriptors.values()))

    def __len__(self) -> int:
        return len(self._descriptors)

    # Loaders

    @classmethod
    def from_records(cls, records: Iterable[Dict[str, Any]]) -> "ContentCatalog":
        descriptors = []
        for record in records:
            descriptors.append(ContentDescriptor(
                id=str(record["id"]),
                title=str(record.get("title") or record["id"]),
                tags={t.lower() for t in _split_list(record.get("tags"))},
                difficulty_rank=int(record.get("difficulty_rank", 1) or 1),
                declared_prerequisites=_split_list(record.get("declared_prerequisites"))
            ))
        return cls(descriptors)

    @classmethod
    def from_dataframe(cls, df: pd.DataFrame) -> "ContentCatalog":
        """Build a catalog from a DataFrame with at least an `id` column."""
        if "id" not in df.columns:
            raise ValueError("Catalog DataFrame requires an 'id' column")
        df = df.astype(object).where(pd.notna(df), None)
        catalog = cls.from_records(df.to_dict(orient="records"))
        logger.info(f"Loaded {len(catalog)} content descriptors")
        return catalog

    @classmethod
    def from_csv(cls, path) -> "ContentCatalog":
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Catalog file not found: {path}")
        df = pd.read_csv(path, dtype={"id": str})
        return cls.from_dataframe(df)

    def to_dataframe(self) -> pd.DataFrame:
        rows = []
        for descriptor in self._descriptors.values():
            row = descriptor.to_dict()
            row["tags"] = LIST_SEPARATOR.join(row["tags"])
            row["declared_prerequisites"] = LIST_SEPARATOR.join(row["declared_prerequisites"])
            rows.append(row)
        return pd.DataFrame(rows, columns=["id", "title", "tags", "difficulty_rank", "declared_prerequisites"])
