"""
Backup engine for curated tenant content.

Each backup is a snapshot: one metadata document under "backups/{id}" plus one
shard document per tenant under "backups/{id}/shards/{tenant}", so a snapshot
never has to fit in a single size-bounded document. The metadata document is
written as "pending" before the shards and marked "complete" after them, so
shards are always reachable from a metadata document. A consolidated JSON copy is
also written to a secondary blob sink for disaster recovery. Snapshots older
than the retention window are removed after every backup.
"""

import datetime
import json
import logging
import threading
from typing import Any, Callable, Dict, List, Optional

from src.errors import CuratorError, SnapshotNotFound
from src.models import (
    BackupResult,
    BackupSummary,
    ContentKind,
    RestoreResult,
    SnapshotMetadata,
)
from src.services.blob_sink import BlobSink
from src.services.db import DocumentStore, WriteOperation, commit_in_batches
from src.services.retry import call_with_backoff
from src.tenants import TenantRegistry

logger = logging.getLogger(__name__)

BACKUPS_COLLECTION = "backups"
FORMAT_VERSION = "2.0.0"
STATUS_PENDING = "pending"
STATUS_COMPLETE = "complete"
DAY_MS = 24 * 60 * 60 * 1000


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def shard_collection(snapshot_id: str) -> str:
    return f"{BACKUPS_COLLECTION}/{snapshot_id}/shards"


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime.datetime, datetime.date)):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _newest_first(items: List[Dict[str, Any]], field_name: str) -> List[Dict[str, Any]]:
    """Sorts by field_name descending; items without it keep their order at the end."""
    dated = [item for item in items if item.get(field_name) is not None]
    undated = [item for item in items if item.get(field_name) is None]
    dated.sort(key=lambda item: item[field_name], reverse=True)
    return dated + undated


class BackupEngine:
    """Creates, lists, restores and prunes content snapshots."""

    def __init__(
        self,
        store: DocumentStore,
        registry: TenantRegistry,
        sink: Optional[BlobSink] = None,
        retention_days: int = 30,
        retry: Optional[Callable] = None,
        clock: Callable[[], datetime.datetime] = utcnow,
    ):
        self.store = store
        self.registry = registry
        self.sink = sink
        self.retention_days = retention_days
        self.retry = retry or call_with_backoff
        self.clock = clock
        self.last_backup: Optional[int] = None
        self.total_backups = 0
        self._lock = threading.Lock()

    def stats(self) -> Dict[str, Any]:
        return {"lastBackup": self.last_backup, "totalBackups": self.total_backups}

    def _read(self, collection: str, **kwargs: Any) -> List[Dict[str, Any]]:
        docs = self.retry(
            lambda: self.store.query(collection, **kwargs), label=f"read {collection}"
        )
        return [{**doc.data, "id": doc.id} for doc in docs]

    def _build_shard(self, tenant_key: str) -> Dict[str, Any]:
        # Full reads: an order_by query would skip items lacking that field
        base = f"gurus/{tenant_key}"
        news = _newest_first(self._read(f"{base}/{ContentKind.NEWS.value}"), "curatedAt")
        articles = _newest_first(
            self._read(f"{base}/{ContentKind.ARTICLE.value}"), "publishedAt"
        )
        stats = self._read(f"{base}/stats", limit=1)
        return {
            "tenantKey": tenant_key,
            "news": news,
            "articles": articles,
            "stats": stats[0] if stats else None,
            "newsCount": len(news),
            "articleCount": len(articles),
        }

    def create_backup(self) -> Optional[BackupResult]:
        """
        Snapshots every tenant's live content.

        Returns None when a backup is already in progress. Tenants whose reads
        fail are skipped and listed in failed_tenants; the metadata counts only
        cover tenants that were captured.
        """
        if not self._lock.acquire(blocking=False):
            logger.warning("Backup already running, skipping...")
            return None
        try:
            return self._create_backup()
        finally:
            self._lock.release()

    def _create_backup(self) -> BackupResult:
        now = self.clock()
        timestamp = int(now.timestamp() * 1000)
        date_str = now.date().isoformat()
        snapshot_id = f"backup-{date_str}-{timestamp}"
        logger.info("Starting content backup %s...", snapshot_id)

        shards: Dict[str, Dict[str, Any]] = {}
        failed: List[str] = []
        for tenant_key in self.registry.keys():
            try:
                shard = self._build_shard(tenant_key)
            except Exception as e:  # pylint: disable=broad-exception-caught
                logger.error("tenant=%s backup failed: %s", tenant_key, e, exc_info=True)
                failed.append(tenant_key)
                continue
            shards[tenant_key] = shard
            logger.info(
                "  %s: %d news, %d articles",
                tenant_key,
                shard["newsCount"],
                shard["articleCount"],
            )

        metadata: SnapshotMetadata = {
            "totalTenants": len(shards),
            "totalNewsItems": sum(s["newsCount"] for s in shards.values()),
            "totalArticleItems": sum(s["articleCount"] for s in shards.values()),
            "formatVersion": FORMAT_VERSION,
        }
        metadata_doc = {
            "id": snapshot_id,
            "date": date_str,
            "createdAt": timestamp,
            "status": STATUS_COMPLETE,
            "tenantList": list(shards),
            "failedTenants": failed,
            "metadata": metadata,
        }
        pending_doc = {
            "id": snapshot_id,
            "date": date_str,
            "createdAt": timestamp,
            "status": STATUS_PENDING,
        }

        collection = shard_collection(snapshot_id)
        try:
            # Pending marker first, so retention cleanup can always find the shards
            self._set_metadata(snapshot_id, pending_doc)
            commit_in_batches(
                self.store,
                [WriteOperation.set(collection, key, shard) for key, shard in shards.items()],
                retry=self.retry,
            )
            # Marked complete last: a listed snapshot always has all of its shards
            self._set_metadata(snapshot_id, metadata_doc)
        except Exception:
            logger.error("Backup %s failed while writing to the store", snapshot_id)
            self._discard_partial(snapshot_id)
            raise

        blob_written = self._write_secondary_copy(snapshot_id, metadata_doc, shards)

        removed = 0
        try:
            removed = self.cleanup_old_backups()
        except Exception as e:  # pylint: disable=broad-exception-caught
            logger.warning("Failed to clean up old backups: %s", e)

        self.last_backup = timestamp
        self.total_backups += 1
        logger.info(
            "Backup completed: %s (%d tenants, %d news, %d articles)",
            snapshot_id,
            metadata["totalTenants"],
            metadata["totalNewsItems"],
            metadata["totalArticleItems"],
        )
        return BackupResult(
            snapshot_id=snapshot_id,
            metadata=metadata,
            failed_tenants=failed,
            blob_written=blob_written,
            removed_snapshots=removed,
        )

    def _write_secondary_copy(
        self,
        snapshot_id: str,
        metadata_doc: Dict[str, Any],
        shards: Dict[str, Dict[str, Any]],
    ) -> bool:
        if self.sink is None:
            return False
        try:
            payload = json.dumps(
                {**metadata_doc, "tenants": shards}, default=_json_default, indent=2
            ).encode("utf-8")
            self.sink.write_blob(f"{snapshot_id}.json", payload)
            return True
        except Exception as e:  # pylint: disable=broad-exception-caught
            logger.error("Secondary backup copy for %s failed: %s", snapshot_id, e)
            return False

    def _set_metadata(self, snapshot_id: str, data: Dict[str, Any]) -> None:
        commit_in_batches(
            self.store,
            [WriteOperation.set(BACKUPS_COLLECTION, snapshot_id, data)],
            retry=self.retry,
        )

    def _discard_partial(self, snapshot_id: str) -> None:
        try:
            self._delete_snapshot(snapshot_id)
        except Exception as e:  # pylint: disable=broad-exception-caught
            logger.warning(
                "Could not discard partial backup %s, left for retention cleanup: %s",
                snapshot_id,
                e,
            )

    def _delete_snapshot(self, snapshot_id: str) -> int:
        collection = shard_collection(snapshot_id)
        shards = self.retry(
            lambda: self.store.query(collection), label=f"read {collection}"
        )
        operations = [WriteOperation.delete(collection, doc.id) for doc in shards]
        operations.append(WriteOperation.delete(BACKUPS_COLLECTION, snapshot_id))
        commit_in_batches(self.store, operations, retry=self.retry)
        return len(shards)

    def cleanup_old_backups(self) -> int:
        """
        Deletes snapshots older than the retention window, pending ones included.

        Returns how many were removed. A snapshot that fails to delete is logged
        and retried on the next run.
        """
        cutoff = int(self.clock().timestamp() * 1000) - self.retention_days * DAY_MS
        old = self.retry(
            lambda: self.store.query(
                BACKUPS_COLLECTION, filters=[("createdAt", "<", cutoff)]
            ),
            label="query expired backups",
        )
        removed = 0
        for doc in old:
            try:
                shard_count = self._delete_snapshot(doc.id)
                removed += 1
                logger.info("Removed expired backup %s (%d shards)", doc.id, shard_count)
            except Exception as e:  # pylint: disable=broad-exception-caught
                logger.error("Failed to remove expired backup %s: %s", doc.id, e)
        if removed:
            logger.info("Cleaned up %d old backups", removed)
        return removed

    def delete_backup(self, snapshot_id: str) -> int:
        """Purges one snapshot and its shards. Returns the number of shards removed."""
        if self.retry(lambda: self.store.get(BACKUPS_COLLECTION, snapshot_id)) is None:
            raise SnapshotNotFound(snapshot_id)
        removed = self._delete_snapshot(snapshot_id)
        logger.info("Purged backup %s (%d shards)", snapshot_id, removed)
        return removed

    def restore_from_backup(self, snapshot_id: str) -> RestoreResult:
        """
        Writes a snapshot's items back into live storage, overwriting by item id.

        Live items not present in the snapshot are left untouched.
        """
        logger.info("Restoring from backup: %s", snapshot_id)
        metadata_doc = self.retry(
            lambda: self.store.get(BACKUPS_COLLECTION, snapshot_id),
            label=f"read backup {snapshot_id}",
        )
        if metadata_doc is None:
            raise SnapshotNotFound(snapshot_id)
        if metadata_doc.get("status") == STATUS_PENDING:
            raise CuratorError(f"Backup {snapshot_id} is incomplete")

        result = RestoreResult(snapshot_id=snapshot_id)
        collection = shard_collection(snapshot_id)
        for tenant_key in metadata_doc.get("tenantList", []):
            try:
                shard = self.retry(lambda key=tenant_key: self.store.get(collection, key))
                if shard is None:
                    raise CuratorError(f"shard {tenant_key} missing from {snapshot_id}")

                news = shard.get("news", [])
                articles = shard.get("articles", [])
                base = f"gurus/{tenant_key}"
                operations = [
                    WriteOperation.set(f"{base}/{ContentKind.NEWS.value}", item["id"], item)
                    for item in news
                ]
                operations.extend(
                    WriteOperation.set(f"{base}/{ContentKind.ARTICLE.value}", item["id"], item)
                    for item in articles
                )
                commit_in_batches(self.store, operations, retry=self.retry)

                result.restored_news += len(news)
                result.restored_articles += len(articles)
                logger.info(
                    "  %s: restored %d news, %d articles", tenant_key, len(news), len(articles)
                )
            except Exception as e:  # pylint: disable=broad-exception-caught
                logger.error("tenant=%s restore failed: %s", tenant_key, e)
                result.failed_tenants.append(tenant_key)

        logger.info(
            "Restore completed: %d news, %d articles",
            result.restored_news,
            result.restored_articles,
        )
        return result

    def list_backups(self, limit: int = 50) -> List[BackupSummary]:
        """Most recent complete snapshots first; shard bodies are never loaded."""
        docs = self.retry(
            lambda: self.store.query(
                BACKUPS_COLLECTION,
                order_by="createdAt",
                descending=True,
                limit=limit,
                fields=["date", "createdAt", "status", "metadata"],
            ),
            label="list backups",
        )
        summaries: List[BackupSummary] = []
        for doc in docs:
            if doc.data.get("status") == STATUS_PENDING:
                continue
            metadata = doc.data.get("metadata") or {}
            summaries.append(
                {
                    "id": doc.id,
                    "date": doc.data.get("date", ""),
                    "createdAt": doc.data.get("createdAt", 0),
                    "totalTenants": metadata.get("totalTenants", 0),
                    "totalNewsItems": metadata.get("totalNewsItems", 0),
                    "totalArticleItems": metadata.get("totalArticleItems", 0),
                }
            )
        return summaries
