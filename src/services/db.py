"""
Document store access.

This module provides the DocumentStore protocol the engines depend on, the
Firestore-backed implementation, and commit_in_batches, which splits large
write sets into commits the store accepts.
"""

import logging
from dataclasses import dataclass, field
from typing import (
    Any,
    Callable,
    Dict,
    List,
    NamedTuple,
    Optional,
    Protocol,
    Sequence,
    Tuple,
)

from google.api_core import exceptions as google_exceptions  # type: ignore
from google.cloud import firestore  # type: ignore

from src.errors import BatchSizeExceeded, DependencyUnavailable, QuotaExceeded
from src.services.retry import call_with_backoff

logger = logging.getLogger(__name__)

# Firestore batches are limited to 500 writes
DEFAULT_MAX_BATCH = 500

Filter = Tuple[str, str, Any]


class StoredDocument(NamedTuple):
    """A document id with its data."""

    id: str
    data: Dict[str, Any]


@dataclass
class WriteOperation:
    """One mutation inside an atomic batch."""

    action: str  # "set" | "delete"
    collection: str
    doc_id: str
    data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def set(cls, collection: str, doc_id: str, data: Dict[str, Any]) -> "WriteOperation":
        return cls("set", collection, doc_id, data)

    @classmethod
    def delete(cls, collection: str, doc_id: str) -> "WriteOperation":
        return cls("delete", collection, doc_id)


class DocumentStore(Protocol):
    """
    Protocol for the document-collection store.

    Collections are slash-separated paths such as "gurus/cooking/news".
    batch_commit applies every operation atomically and rejects batches
    larger than max_batch_size.
    """

    max_batch_size: int

    def ping(self) -> None:
        """Raises DependencyUnavailable when the store cannot be reached."""

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """Returns the document data, or None when it does not exist."""

    def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
        fields: Optional[Sequence[str]] = None,
    ) -> List[StoredDocument]:
        """Returns matching documents."""

    def batch_commit(self, operations: Sequence[WriteOperation]) -> None:
        """Atomically applies all operations."""


def chunked(items: Sequence[Any], size: int) -> List[Sequence[Any]]:
    """Splits a sequence into consecutive chunks of at most size items."""
    if size < 1:
        raise ValueError("chunk size must be positive")
    return [items[i : i + size] for i in range(0, len(items), size)]


def commit_in_batches(
    store: DocumentStore,
    operations: Sequence[WriteOperation],
    retry: Optional[Callable[..., Any]] = None,
) -> int:
    """
    Commits operations in sequential batches no larger than the store allows.

    Returns the number of commits issued: ceil(len(operations) / max_batch_size).
    """
    if not operations:
        return 0
    run = retry or call_with_backoff
    batches = chunked(list(operations), store.max_batch_size)
    for index, batch in enumerate(batches, start=1):
        run(
            lambda batch=batch: store.batch_commit(batch),
            label=f"batch commit {index}/{len(batches)}",
        )
    if len(batches) > 1:
        logger.info(
            "Committed %d operations in %d batches", len(operations), len(batches)
        )
    return len(batches)


_QUOTA_ERRORS = (google_exceptions.ResourceExhausted, google_exceptions.TooManyRequests)
_UNAVAILABLE_ERRORS = (
    google_exceptions.ServiceUnavailable,
    google_exceptions.DeadlineExceeded,
    google_exceptions.Unauthenticated,
    google_exceptions.PermissionDenied,
)


class FirestoreStore:
    """DocumentStore backed by Google Firestore."""

    def __init__(
        self,
        project_id: Optional[str],
        max_batch_size: int = DEFAULT_MAX_BATCH,
        client: Optional[Any] = None,
    ):
        self.max_batch_size = min(max_batch_size, DEFAULT_MAX_BATCH)
        self.db = client
        self._init_error: Optional[str] = None
        if self.db is not None:
            return

        if not project_id:
            logger.warning("GCP_PROJECT_ID not set. Content store unavailable.")
            self._init_error = "GCP_PROJECT_ID not set"
            return

        try:
            self.db = firestore.Client(project=project_id)
            logger.info("Connected to Firestore project %s.", project_id)
        except Exception as e:  # pylint: disable=broad-exception-caught
            logger.warning("Firestore connection failed: %s", e)
            self._init_error = str(e)
            self.db = None

    def _client(self) -> Any:
        if self.db is None:
            raise DependencyUnavailable(
                f"Firestore not initialized: {self._init_error or 'no client'}"
            )
        return self.db

    def ping(self) -> None:
        db = self._client()
        try:
            list(db.collection("backups").limit(1).stream())
        except _UNAVAILABLE_ERRORS as e:
            raise DependencyUnavailable(f"Firestore unreachable: {e}") from e
        except _QUOTA_ERRORS as e:
            raise QuotaExceeded(str(e)) from e

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        try:
            snap = self._client().collection(collection).document(doc_id).get()
        except _QUOTA_ERRORS as e:
            raise QuotaExceeded(str(e)) from e
        if not snap.exists:
            return None
        return snap.to_dict() or {}

    def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
        fields: Optional[Sequence[str]] = None,
    ) -> List[StoredDocument]:
        query = self._client().collection(collection)
        for field_path, op, value in filters:
            query = query.where(filter=firestore.FieldFilter(field_path, op, value))
        if order_by:
            direction = (
                firestore.Query.DESCENDING if descending else firestore.Query.ASCENDING
            )
            query = query.order_by(order_by, direction=direction)
        if limit is not None:
            query = query.limit(limit)
        if fields:
            query = query.select(list(fields))

        try:
            return [StoredDocument(snap.id, snap.to_dict() or {}) for snap in query.stream()]
        except _QUOTA_ERRORS as e:
            raise QuotaExceeded(str(e)) from e

    def batch_commit(self, operations: Sequence[WriteOperation]) -> None:
        if len(operations) > self.max_batch_size:
            raise BatchSizeExceeded(len(operations), self.max_batch_size)
        if not operations:
            return

        db = self._client()
        batch = db.batch()
        for op in operations:
            ref = db.collection(op.collection).document(op.doc_id)
            if op.action == "set":
                batch.set(ref, op.data)
            elif op.action == "delete":
                batch.delete(ref)
            else:
                raise ValueError(f"Unknown write action: {op.action}")

        try:
            batch.commit()
        except _QUOTA_ERRORS as e:
            raise QuotaExceeded(str(e)) from e
