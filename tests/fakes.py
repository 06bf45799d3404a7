"""Test doubles for the document store and generation providers."""

import copy
import datetime
import operator
from collections import defaultdict
from typing import Any, Dict, List, Optional, Sequence

from src.errors import BatchSizeExceeded, ProviderFailure
from src.models import Candidate
from src.services.db import StoredDocument, WriteOperation
from src.services.retry import call_with_backoff

_OPS = {
    "<": operator.lt,
    "<=": operator.le,
    "==": operator.eq,
    ">": operator.gt,
    ">=": operator.ge,
}


class InMemoryStore:
    """DocumentStore kept in dictionaries; records the size of every commit."""

    def __init__(self, max_batch_size: int = 500):
        self.max_batch_size = max_batch_size
        self.collections: Dict[str, Dict[str, Dict[str, Any]]] = defaultdict(dict)
        self.commits: List[int] = []
        self.ping_error: Optional[Exception] = None

    def put(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        self.collections[collection][doc_id] = copy.deepcopy(data)

    def docs(self, collection: str) -> Dict[str, Dict[str, Any]]:
        return copy.deepcopy(dict(self.collections.get(collection, {})))

    def ping(self) -> None:
        if self.ping_error:
            raise self.ping_error

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        data = self.collections.get(collection, {}).get(doc_id)
        return copy.deepcopy(data) if data is not None else None

    def query(
        self,
        collection: str,
        filters: Sequence = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
        fields: Optional[Sequence[str]] = None,
    ) -> List[StoredDocument]:
        items = list(self.collections.get(collection, {}).items())
        for field_path, op, value in filters:
            items = [
                (doc_id, data)
                for doc_id, data in items
                if field_path in data and _OPS[op](data[field_path], value)
            ]
        if order_by:
            items = [(doc_id, data) for doc_id, data in items if order_by in data]
            items.sort(key=lambda pair: pair[1][order_by], reverse=descending)
        if limit is not None:
            items = items[:limit]
        result = []
        for doc_id, data in items:
            if fields:
                data = {k: v for k, v in data.items() if k in fields}
            result.append(StoredDocument(doc_id, copy.deepcopy(data)))
        return result

    def batch_commit(self, operations: Sequence[WriteOperation]) -> None:
        if len(operations) > self.max_batch_size:
            raise BatchSizeExceeded(len(operations), self.max_batch_size)
        for op in operations:
            if op.action == "set":
                self.collections[op.collection][op.doc_id] = copy.deepcopy(op.data)
            else:
                self.collections[op.collection].pop(op.doc_id, None)
        self.commits.append(len(operations))


class FailingQueryStore(InMemoryStore):
    """Raises on reads of any collection starting with one of the given prefixes."""

    def __init__(self, failing_prefixes: Sequence[str], **kwargs: Any):
        super().__init__(**kwargs)
        self.failing_prefixes = tuple(failing_prefixes)

    def query(self, collection: str, *args: Any, **kwargs: Any) -> List[StoredDocument]:
        if collection.startswith(self.failing_prefixes):
            raise RuntimeError(f"read failed for {collection}")
        return super().query(collection, *args, **kwargs)


class FailingCommitStore(InMemoryStore):
    """Rejects commits touching any collection starting with one of the given prefixes."""

    def __init__(self, failing_prefixes: Sequence[str] = (), **kwargs: Any):
        super().__init__(**kwargs)
        self.failing_prefixes = tuple(failing_prefixes)

    def batch_commit(self, operations: Sequence[WriteOperation]) -> None:
        for op in operations:
            if self.failing_prefixes and op.collection.startswith(self.failing_prefixes):
                raise RuntimeError(f"commit failed for {op.collection}")
        super().batch_commit(operations)


class FakeProvider:
    """Returns fixed candidates (or raises) and records every call."""

    def __init__(self, name: str, candidates=None, error: Optional[Exception] = None):
        self.name = name
        self.candidates = candidates or []
        self.error = error
        self.calls: List[tuple] = []

    def generate(self, category: str, keywords: List[str], item_count: int) -> List[Candidate]:
        self.calls.append((category, list(keywords), item_count))
        if self.error:
            raise self.error
        return list(self.candidates)


def failing_provider(name: str) -> FakeProvider:
    return FakeProvider(name, error=ProviderFailure(name, "service unavailable"))


def make_candidates(
    scores: Sequence[float], published_at: datetime.datetime, prefix: str = "Story"
) -> List[Candidate]:
    return [
        Candidate(
            title=f"{prefix} {i}",
            summary=f"Summary of {prefix.lower()} {i}",
            source="Test Wire",
            published_at=published_at,
            relevance_score=score,
        )
        for i, score in enumerate(scores)
    ]


def no_sleep_retry(fn, attempts: int = 3, label: str = "", **_kwargs):
    """call_with_backoff without real sleeping."""
    return call_with_backoff(fn, attempts=attempts, sleep=lambda _s: None, label=label)
