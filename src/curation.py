"""
Content curation engine.

For every tenant, asks the provider chain for news briefs or long-form
articles, ranks the candidates, and atomically replaces the tenant's
previous set in the store.
"""

import datetime
import hashlib
import logging
import threading
from typing import Callable, Dict, List, Optional

from src.errors import AllProvidersExhausted, DegradedContentForbidden
from src.models import (
    MAX_ITEMS_PER_KIND,
    Candidate,
    ContentItem,
    ContentKind,
    CurationResult,
    CycleReport,
    Environment,
    TenantConfig,
)
from src.providers.base import ProviderChain
from src.providers.parsing import PLACEHOLDER_PREFIX
from src.services.db import DocumentStore, WriteOperation, commit_in_batches
from src.services.retry import call_with_backoff
from src.tenants import TenantRegistry

logger = logging.getLogger(__name__)

DEFAULT_SCORE = 0.5
# 0.0 makes recency a pure tie-breaker
DEFAULT_RECENCY_WEIGHT = 0.0
NEWS_FRESHNESS = datetime.timedelta(hours=24)
ARTICLE_RECENCY_WINDOW = datetime.timedelta(days=30)
REQUEST_KEYWORDS = 3


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def live_collection(tenant_key: str, kind: ContentKind) -> str:
    """Store collection holding a tenant's live items of one kind."""
    return f"gurus/{tenant_key}/{kind.value}"


def recency(
    published_at: Optional[datetime.datetime],
    now: datetime.datetime,
    window: datetime.timedelta,
) -> float:
    """1.0 for brand new items, falling linearly to 0.0 at the end of window."""
    if published_at is None:
        return 1.0
    age = max((now - published_at).total_seconds(), 0.0)
    return max(0.0, 1.0 - age / window.total_seconds())


def composite_score(
    candidate: Candidate,
    now: datetime.datetime,
    window: datetime.timedelta,
    recency_weight: float = DEFAULT_RECENCY_WEIGHT,
) -> float:
    score = DEFAULT_SCORE if candidate.relevance_score is None else candidate.relevance_score
    if not recency_weight:
        return score
    return score + recency_weight * recency(candidate.published_at, now, window)


def rank_candidates(
    candidates: List[Candidate],
    kind: ContentKind,
    now: datetime.datetime,
    limit: int = MAX_ITEMS_PER_KIND,
    freshness: datetime.timedelta = NEWS_FRESHNESS,
    recency_weight: float = DEFAULT_RECENCY_WEIGHT,
) -> List[Candidate]:
    """
    Filters and orders candidates, best first.

    News older than the freshness window is dropped; articles are not time
    filtered. Items are sorted by relevance with the publication time as the
    tie-breaker, so of two items with equal relevance the more recent one
    never ranks lower. A positive recency_weight additionally blends a linear
    recency bonus into the relevance. Items without a publication time are
    treated as published now.
    """
    window = freshness if kind is ContentKind.NEWS else ARTICLE_RECENCY_WINDOW
    pool = candidates
    if kind is ContentKind.NEWS:
        cutoff = now - freshness
        pool = [c for c in candidates if (c.published_at or now) >= cutoff]

    ranked = sorted(
        pool,
        key=lambda c: (composite_score(c, now, window, recency_weight), c.published_at or now),
        reverse=True,
    )
    return ranked[:limit]


def item_id(tenant_key: str, kind: ContentKind, cycle_at: datetime.datetime, index: int, title: str) -> str:
    """Deterministic document id for an item written in one cycle."""
    raw = f"{tenant_key}:{kind.label}:{int(cycle_at.timestamp() * 1000)}:{index}:{title}"
    return hashlib.md5(raw.encode("utf-8")).hexdigest()


def _humanize(keyword: str) -> str:
    return keyword.replace("-", " ").title()


class CurationEngine:
    """Curates news and article content for every tenant in the registry."""

    def __init__(
        self,
        store: DocumentStore,
        registry: TenantRegistry,
        chains: Dict[ContentKind, ProviderChain],
        environment: Environment,
        freshness_hours: float = 24.0,
        recency_weight: float = DEFAULT_RECENCY_WEIGHT,
        retry: Optional[Callable] = None,
        clock: Callable[[], datetime.datetime] = utcnow,
    ):
        self.store = store
        self.registry = registry
        self.chains = chains
        self.environment = environment
        self.freshness = datetime.timedelta(hours=freshness_hours)
        self.recency_weight = recency_weight
        self.retry = retry or call_with_backoff
        self.clock = clock
        self._cycle_locks = {kind: threading.Lock() for kind in ContentKind}

    def request_size(self, kind: ContentKind, keywords: List[str]) -> int:
        """Items asked from providers: 3 news briefs, or up to 3 articles per keyword."""
        if kind is ContentKind.NEWS:
            return MAX_ITEMS_PER_KIND
        return max(1, min(len(keywords), REQUEST_KEYWORDS)) * MAX_ITEMS_PER_KIND

    def placeholder_candidates(self, tenant: TenantConfig, kind: ContentKind) -> List[Candidate]:
        """Clearly labeled development content. Never allowed in production."""
        if self.environment.is_production:
            raise DegradedContentForbidden(
                f"Refusing to generate placeholder {kind.label} content for "
                f"{tenant.key} in production"
            )

        now = self.clock()
        candidates = []
        for index, keyword in enumerate(tenant.request_keywords(REQUEST_KEYWORDS)):
            skill = _humanize(keyword)
            if kind is ContentKind.NEWS:
                title = f"{PLACEHOLDER_PREFIX} New Advances in {skill}"
                summary = (
                    f"{PLACEHOLDER_PREFIX} Development placeholder about {skill.lower()} "
                    f"in {tenant.topic_category}. No provider produced real news."
                )
                body = ""
            else:
                title = f"{PLACEHOLDER_PREFIX} Master {skill}: A Complete Guide for Beginners"
                summary = (
                    f"{PLACEHOLDER_PREFIX} Development placeholder guide to {skill.lower()}."
                )
                body = (
                    f"# {PLACEHOLDER_PREFIX} Introduction to {skill}\n\n"
                    f"This is placeholder content for the {tenant.display_name} "
                    "section, generated because no content provider was available."
                )
            candidates.append(
                Candidate(
                    title=title,
                    summary=summary,
                    body=body,
                    source="Placeholder",
                    published_at=now - datetime.timedelta(hours=2 * index),
                    relevance_score=round(0.9 - index * 0.1, 2),
                    tags=[keyword, tenant.topic_category],
                    degraded=True,
                )
            )
        return candidates

    def _to_items(
        self,
        tenant: TenantConfig,
        kind: ContentKind,
        ranked: List[Candidate],
        provider: str,
        cycle_at: datetime.datetime,
        from_chain: bool,
    ) -> List[ContentItem]:
        items = []
        for index, candidate in enumerate(ranked):
            items.append(
                ContentItem(
                    id=item_id(tenant.key, kind, cycle_at, index, candidate.title),
                    tenant_key=tenant.key,
                    kind=kind,
                    title=candidate.title,
                    summary=candidate.summary,
                    body=candidate.body,
                    url=candidate.url,
                    source=candidate.source,
                    published_at=candidate.published_at or cycle_at,
                    curated_at=cycle_at,
                    relevance_score=(
                        DEFAULT_SCORE
                        if candidate.relevance_score is None
                        else candidate.relevance_score
                    ),
                    generated=from_chain,
                    degraded=candidate.degraded,
                    provider=provider,
                    tags=candidate.tags or list(tenant.request_keywords()),
                )
            )
        return items

    def _assert_publishable(self, tenant: TenantConfig, items: List[ContentItem]) -> None:
        if self.environment.is_production and any(item.degraded for item in items):
            raise DegradedContentForbidden(
                f"Degraded content for {tenant.key} blocked in production"
            )

    def replace_items(
        self, tenant: TenantConfig, kind: ContentKind, items: List[ContentItem]
    ) -> int:
        """Deletes the tenant's current set and writes items in one batch. Returns deletes."""
        collection = live_collection(tenant.key, kind)
        existing = self.retry(
            lambda: self.store.query(collection),
            label=f"read {collection}",
        )
        new_ids = {item.id for item in items}
        operations = [
            WriteOperation.delete(collection, doc.id)
            for doc in existing
            if doc.id not in new_ids
        ]
        operations.extend(
            WriteOperation.set(collection, item.id, item.to_document()) for item in items
        )
        commit_in_batches(self.store, operations, retry=self.retry)
        return len(operations) - len(items)

    def curate_tenant(
        self,
        tenant: TenantConfig,
        kind: ContentKind,
        cycle_at: Optional[datetime.datetime] = None,
    ) -> CurationResult:
        """
        Produces and persists a fresh content set for one tenant.

        Raises AllProvidersExhausted in production when no provider delivers;
        nothing is written in that case.
        """
        cycle_at = cycle_at or self.clock()
        keywords = tenant.request_keywords(REQUEST_KEYWORDS)
        chain = self.chains[kind]

        from_chain = True
        try:
            result = chain.generate(
                tenant.topic_category, keywords, self.request_size(kind, keywords)
            )
            provider, candidates = result.provider, result.candidates
        except AllProvidersExhausted as e:
            if self.environment.is_production:
                logger.error(
                    "tenant=%s kind=%s all providers failed, nothing written: %s",
                    tenant.key,
                    kind.label,
                    e,
                )
                raise
            logger.warning(
                "tenant=%s kind=%s all providers failed, using placeholders (%s)",
                tenant.key,
                kind.label,
                self.environment.value,
            )
            provider, candidates, from_chain = "placeholder", self.placeholder_candidates(tenant, kind), False

        ranked = rank_candidates(
            candidates,
            kind,
            cycle_at,
            freshness=self.freshness,
            recency_weight=self.recency_weight,
        )
        if not ranked:
            logger.warning(
                "tenant=%s kind=%s no candidates survived ranking; keeping current items",
                tenant.key,
                kind.label,
            )
            return CurationResult(tenant.key, kind, provider, written=0, deleted=0)

        items = self._to_items(tenant, kind, ranked, provider, cycle_at, from_chain)
        self._assert_publishable(tenant, items)
        deleted = self.replace_items(tenant, kind, items)

        logger.info(
            "tenant=%s kind=%s provider=%s curated %d items (replaced %d)",
            tenant.key,
            kind.label,
            provider,
            len(items),
            deleted,
        )
        return CurationResult(
            tenant_key=tenant.key,
            kind=kind,
            provider=provider,
            written=len(items),
            deleted=deleted,
            degraded=any(item.degraded for item in items),
        )

    def run_cycle(self, kind: ContentKind) -> Optional[CycleReport]:
        """
        Curates every tenant sequentially. Returns None if a cycle of this kind
        is already running.
        """
        lock = self._cycle_locks[kind]
        if not lock.acquire(blocking=False):
            logger.warning("%s curation already running, skipping...", kind.label)
            return None

        try:
            report = CycleReport(kind=kind, started_at=self.clock())
            tenants = self.registry.all()
            logger.info("Curating %s for %d tenants", kind.label, len(tenants))
            for tenant in tenants:
                try:
                    report.results.append(
                        self.curate_tenant(tenant, kind, cycle_at=report.started_at)
                    )
                except Exception as e:  # pylint: disable=broad-exception-caught
                    logger.error(
                        "tenant=%s kind=%s curation failed: %s",
                        tenant.key,
                        kind.label,
                        e,
                        exc_info=not isinstance(e, AllProvidersExhausted),
                    )
                    report.failed[tenant.key] = str(e)

            logger.info(
                "%s curation completed: %d succeeded, %d failed",
                kind.label,
                len(report.results),
                len(report.failed),
            )
            return report
        finally:
            lock.release()
