"""Base storage class and helpers.

Contains initialization, collection management, and shared utilities.
Qdrant is used as a document store: every point carries a single zero
vector and all queries are payload filters.
"""

from __future__ import annotations

import hashlib
from collections.abc import Sequence
from datetime import datetime
from typing import Any

from qdrant_client import AsyncQdrantClient, models

from herald.config import settings
from herald.exceptions import PersistenceError
from herald.models import generate_id

from .retry import QDRANT_ERRORS, qdrant_retry

# Collection names by record type
COLLECTION_NAMES = {
    "deliveries": "deliveries",
    "endpoints": "endpoints",
    "activity": "activity",
}

# Points carry no embedding; Qdrant still requires a vector
VECTOR_SIZE = 1
ZERO_VECTOR = [0.0]

# Payload indexes per collection
PAYLOAD_INDEXES: dict[str, dict[str, models.PayloadSchemaType]] = {
    "deliveries": {
        "status": models.PayloadSchemaType.KEYWORD,
        "domain": models.PayloadSchemaType.KEYWORD,
        "revision": models.PayloadSchemaType.KEYWORD,
        "created_ts": models.PayloadSchemaType.FLOAT,
        "next_attempt_ts": models.PayloadSchemaType.FLOAT,
        "last_attempt_ts": models.PayloadSchemaType.FLOAT,
        "claimed_ts": models.PayloadSchemaType.FLOAT,
        "attempts_remaining": models.PayloadSchemaType.INTEGER,
    },
    "endpoints": {
        "domain": models.PayloadSchemaType.KEYWORD,
        "active": models.PayloadSchemaType.BOOL,
        "revision": models.PayloadSchemaType.KEYWORD,
    },
    "activity": {
        "domain": models.PayloadSchemaType.KEYWORD,
        "type": models.PayloadSchemaType.KEYWORD,
        "timestamp_ts": models.PayloadSchemaType.FLOAT,
    },
}


def to_ts(value: datetime | None) -> float | None:
    """Epoch seconds for range filters."""
    return value.timestamp() if value is not None else None


class StorageBase:
    """Base class for Herald storage with initialization and helpers.

    Provides:
    - Client initialization and lifecycle management
    - Collection creation and indexing
    - Point ID conversion and paged scrolling
    - Compare-and-swap updates keyed on a per-record revision
    """

    def __init__(
        self,
        url: str | None = None,
        api_key: str | None = None,
        prefix: str | None = None,
        page_size: int | None = None,
    ) -> None:
        """Initialize storage client.

        Args:
            url: Qdrant server URL. Defaults to settings.qdrant_url.
            api_key: Qdrant API key. Defaults to settings.qdrant_api_key.
            prefix: Collection name prefix. Defaults to settings.collection_prefix.
            page_size: Scroll page size. Defaults to settings.storage_scroll_page_size.
        """
        self._url = url or settings.qdrant_url
        self._api_key = api_key or settings.qdrant_api_key
        self._prefix = prefix or settings.collection_prefix
        self._page_size = page_size or settings.storage_scroll_page_size
        self._client: AsyncQdrantClient | None = None
        self._collections_initialized = False

    @property
    def client(self) -> AsyncQdrantClient:
        """Get the Qdrant client, raising if not initialized."""
        if self._client is None:
            raise RuntimeError("Storage not initialized. Call initialize() first.")
        return self._client

    async def initialize(self) -> None:
        """Initialize the storage client and ensure collections exist."""
        self._client = AsyncQdrantClient(
            url=self._url,
            api_key=self._api_key,
        )
        await self._ensure_collections()
        self._collections_initialized = True

    async def close(self) -> None:
        """Close the storage client connection."""
        if self._client is not None:
            await self._client.close()
            self._client = None
            self._collections_initialized = False

    async def __aenter__(self) -> StorageBase:
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()

    def _collection_name(self, record_type: str) -> str:
        """Get full collection name with prefix."""
        suffix = COLLECTION_NAMES.get(record_type, record_type)
        return f"{self._prefix}_{suffix}"

    @staticmethod
    def _key_to_point_id(key: str) -> str:
        """Convert a record key to a valid Qdrant point ID.

        Qdrant requires point IDs to be UUIDs or unsigned integers.
        We hash the key to create a deterministic UUID-format string.
        """
        h = hashlib.sha256(key.encode()).hexdigest()[:32]
        return f"{h[:8]}-{h[8:12]}-{h[12:16]}-{h[16:20]}-{h[20:32]}"

    async def _ensure_collections(self) -> None:
        """Ensure all required collections exist with proper schemas."""
        collections = await self.client.get_collections()
        existing = {c.name for c in collections.collections}

        for record_type in COLLECTION_NAMES:
            collection_name = self._collection_name(record_type)
            if collection_name in existing:
                continue
            await self.client.create_collection(
                collection_name=collection_name,
                vectors_config=models.VectorParams(
                    size=VECTOR_SIZE,
                    distance=models.Distance.DOT,
                ),
            )
            await self._create_indexes(record_type, collection_name)

    async def _create_indexes(self, record_type: str, collection_name: str) -> None:
        """Create payload indexes for efficient filtering."""
        for field_name, schema in PAYLOAD_INDEXES.get(record_type, {}).items():
            await self.client.create_payload_index(
                collection_name=collection_name,
                field_name=field_name,
                field_schema=schema,
            )

    async def _upsert_payloads(
        self,
        record_type: str,
        items: Sequence[tuple[str, dict[str, Any]]],
    ) -> None:
        """Write whole points, wrapping failures as PersistenceError.

        Args:
            record_type: Collection key.
            items: (record key, payload) pairs.
        """
        points = [
            models.PointStruct(
                id=self._key_to_point_id(key),
                vector=ZERO_VECTOR,
                payload=payload,
            )
            for key, payload in items
        ]
        try:
            await self._upsert_points(record_type, points)
        except QDRANT_ERRORS as e:
            raise PersistenceError(f"Failed to write {record_type}: {e}") from e

    @qdrant_retry
    async def _upsert_points(self, record_type: str, points: list[models.PointStruct]) -> None:
        await self.client.upsert(
            collection_name=self._collection_name(record_type),
            points=points,
            wait=True,
        )

    async def _retrieve_payload(self, record_type: str, key: str) -> dict[str, Any] | None:
        """Fetch the payload of a point by record key."""
        try:
            points = await self._retrieve_points(record_type, key)
        except QDRANT_ERRORS as e:
            raise PersistenceError(f"Failed to read {record_type} {key}: {e}") from e
        if not points or points[0].payload is None:
            return None
        return dict(points[0].payload)

    @qdrant_retry
    async def _retrieve_points(self, record_type: str, key: str) -> list[models.Record]:
        return await self.client.retrieve(
            collection_name=self._collection_name(record_type),
            ids=[self._key_to_point_id(key)],
            with_payload=True,
        )

    @qdrant_retry
    async def _scroll_page(
        self,
        record_type: str,
        scroll_filter: models.Filter | None,
        offset: Any,
    ) -> tuple[list[models.Record], Any]:
        return await self.client.scroll(
            collection_name=self._collection_name(record_type),
            scroll_filter=scroll_filter,
            limit=self._page_size,
            offset=offset,
            with_payload=True,
            with_vectors=False,
        )

    async def _scroll_all(
        self,
        record_type: str,
        scroll_filter: models.Filter | None = None,
    ) -> list[dict[str, Any]]:
        """Collect the payloads of every point matching a filter."""
        payloads: list[dict[str, Any]] = []
        offset = None
        while True:
            try:
                points, offset = await self._scroll_page(record_type, scroll_filter, offset)
            except QDRANT_ERRORS as e:
                raise PersistenceError(f"Failed to scan {record_type}: {e}") from e
            payloads.extend(dict(p.payload) for p in points if p.payload is not None)
            if offset is None:
                return payloads

    async def _count(self, record_type: str, count_filter: models.Filter | None = None) -> int:
        try:
            return await self._count_points(record_type, count_filter)
        except QDRANT_ERRORS as e:
            raise PersistenceError(f"Failed to count {record_type}: {e}") from e

    @qdrant_retry
    async def _count_points(self, record_type: str, count_filter: models.Filter | None) -> int:
        result = await self.client.count(
            collection_name=self._collection_name(record_type),
            count_filter=count_filter,
            exact=True,
        )
        return result.count

    async def _compare_and_swap(
        self,
        record_type: str,
        key: str,
        expected_revision: str,
        payload: dict[str, Any],
    ) -> bool:
        """Overwrite a point's payload only if its revision is unchanged.

        The filtered set_payload is applied atomically by Qdrant, so of
        two writers holding the same revision exactly one matches. The
        read-back tells the caller whether its write was the one applied.

        Args:
            record_type: Collection key.
            key: Record key.
            expected_revision: Revision the caller read.
            payload: Full replacement payload (its revision is replaced).

        Returns:
            True if this call's write was applied.

        Raises:
            PersistenceError: If Qdrant rejects the write.
        """
        revision = self._new_revision()
        point_id = self._key_to_point_id(key)
        try:
            await self._set_payload_where(
                record_type,
                {**payload, "revision": revision},
                models.Filter(
                    must=[
                        models.HasIdCondition(has_id=[point_id]),
                        models.FieldCondition(
                            key="revision",
                            match=models.MatchValue(value=expected_revision),
                        ),
                    ]
                ),
            )
        except QDRANT_ERRORS as e:
            raise PersistenceError(f"Failed to update {record_type} {key}: {e}") from e

        current = await self._retrieve_payload(record_type, key)
        return current is not None and current.get("revision") == revision

    @qdrant_retry
    async def _set_payload_where(
        self,
        record_type: str,
        payload: dict[str, Any],
        selector: models.Filter,
    ) -> None:
        await self.client.set_payload(
            collection_name=self._collection_name(record_type),
            payload=payload,
            points=models.FilterSelector(filter=selector),
            wait=True,
        )

    async def _delete_where(self, record_type: str, selector: models.Filter) -> None:
        try:
            await self._delete_points(record_type, selector)
        except QDRANT_ERRORS as e:
            raise PersistenceError(f"Failed to delete {record_type}: {e}") from e

    @qdrant_retry
    async def _delete_points(self, record_type: str, selector: models.Filter) -> None:
        await self.client.delete(
            collection_name=self._collection_name(record_type),
            points_selector=models.FilterSelector(filter=selector),
            wait=True,
        )

    @staticmethod
    def _new_revision() -> str:
        return generate_id("rev")


__all__ = [
    "COLLECTION_NAMES",
    "PAYLOAD_INDEXES",
    "VECTOR_SIZE",
    "ZERO_VECTOR",
    "StorageBase",
    "to_ts",
]
