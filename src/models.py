"""
Data models for the content curation and backup agents.
"""

import datetime
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, TypedDict


class Environment(Enum):
    """Deployment environment tag; gates placeholder content."""

    PRODUCTION = "production"
    STAGING = "staging"
    DEVELOPMENT = "development"
    TEST = "test"

    @classmethod
    def from_value(cls, value: Optional[str]) -> "Environment":
        """Maps an environment string (e.g. APP_ENV) to a member."""
        normalized = (value or "").strip().lower()
        aliases = {"prod": "production", "dev": "development", "stage": "staging"}
        normalized = aliases.get(normalized, normalized)
        for member in cls:
            if member.value == normalized:
                return member
        return cls.DEVELOPMENT

    @property
    def is_production(self) -> bool:
        return self is Environment.PRODUCTION


class ContentKind(Enum):
    """Kinds of curated content; the value is the live collection name."""

    NEWS = "news"
    ARTICLE = "posts"

    @property
    def label(self) -> str:
        return "news" if self is ContentKind.NEWS else "article"


# Items actually persisted per tenant per kind and cycle
MAX_ITEMS_PER_KIND = 3


@dataclass(frozen=True)
class TenantConfig:
    """Static configuration for one tenant (a guru subdomain)."""

    key: str
    topic_category: str
    keywords: Tuple[str, ...]
    display_name: str

    def request_keywords(self, limit: int = 3) -> List[str]:
        """The leading keywords sent to generation providers."""
        return list(self.keywords[:limit])


@dataclass
class Candidate:
    """An unranked item returned by a generation provider."""

    title: str
    summary: str
    body: str = ""
    url: str = ""
    source: str = ""
    published_at: Optional[datetime.datetime] = None
    relevance_score: Optional[float] = None
    tags: List[str] = field(default_factory=list)
    degraded: bool = False


def slugify(text: str) -> str:
    """Lowercase, dash-separated slug used for article URLs."""
    slug = re.sub(r"[^a-z0-9]+", "-", text.lower())
    return slug.strip("-")[:200]


@dataclass
class ContentItem:
    """One curated unit stored under a tenant (news brief or article)."""

    id: str
    tenant_key: str
    kind: ContentKind
    title: str
    summary: str
    published_at: datetime.datetime
    curated_at: datetime.datetime
    body: str = ""
    url: str = ""
    source: str = ""
    relevance_score: float = 0.5
    generated: bool = True
    degraded: bool = False
    provider: str = ""
    tags: List[str] = field(default_factory=list)

    def to_document(self) -> Dict[str, Any]:
        """Serializes the item into its store document."""
        doc: Dict[str, Any] = {
            "id": self.id,
            "tenantKey": self.tenant_key,
            "kind": self.kind.label,
            "title": self.title,
            "summary": self.summary,
            "content": self.body,
            "url": self.url,
            "source": self.source,
            "publishedAt": self.published_at,
            "curatedAt": self.curated_at,
            "relevanceScore": self.relevance_score,
            "generated": self.generated,
            "degraded": self.degraded,
            "provider": self.provider,
            "tags": list(self.tags),
        }
        if self.kind is ContentKind.ARTICLE:
            words = len(self.body.split())
            doc.update(
                {
                    "slug": slugify(self.title),
                    "excerpt": self.summary,
                    "status": "published",
                    "featured": True,
                    "readTimeMinutes": max(1, -(-words // 200)),
                }
            )
        return doc


@dataclass
class CurationResult:
    """Outcome of curating one tenant for one kind."""

    tenant_key: str
    kind: ContentKind
    provider: str
    written: int
    deleted: int
    degraded: bool = False


@dataclass
class CycleReport:
    """Outcome of one curation cycle across all tenants."""

    kind: ContentKind
    started_at: datetime.datetime
    results: List[CurationResult] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)

    @property
    def succeeded(self) -> List[str]:
        return [result.tenant_key for result in self.results]


class SnapshotMetadata(TypedDict):
    """Aggregate counts stored on a snapshot's metadata document."""

    totalTenants: int
    totalNewsItems: int
    totalArticleItems: int
    formatVersion: str


class BackupSummary(TypedDict):
    """Projection returned by list_backups."""

    id: str
    date: str
    createdAt: int
    totalTenants: int
    totalNewsItems: int
    totalArticleItems: int


@dataclass
class BackupResult:
    """Outcome of create_backup."""

    snapshot_id: str
    metadata: SnapshotMetadata
    failed_tenants: List[str] = field(default_factory=list)
    blob_written: bool = False
    removed_snapshots: int = 0


@dataclass
class RestoreResult:
    """Outcome of restore_from_backup."""

    snapshot_id: str
    restored_news: int = 0
    restored_articles: int = 0
    failed_tenants: List[str] = field(default_factory=list)
