"""
Content Curation & Backup Agents

Wires the Firestore store, tenant registry, provider chains, curation and
backup engines into a scheduler, and exposes the operator commands:

    python -m src.run_agents serve
    python -m src.run_agents status
    python -m src.run_agents trigger news_curation
    python -m src.run_agents backup | cleanup
    python -m src.run_agents list-backups --limit 10
    python -m src.run_agents restore <snapshot_id>
    python -m src.run_agents purge <snapshot_id>
"""

import argparse
import dataclasses
import functools
import json
import logging
import signal
import sys
from enum import Enum
from typing import Any, List, Optional

from src.backup import BackupEngine
from src.config import Settings
from src.curation import CurationEngine
from src.errors import AgentStartupError, CuratorError
from src.models import ContentKind
from src.providers.registry import build_provider_chain
from src.scheduler import Job, Scheduler, dependency_check
from src.services.blob_sink import LocalFileSink
from src.services.db import DocumentStore, FirestoreStore
from src.services.retry import call_with_backoff
from src.tenants import TenantRegistry

logger = logging.getLogger(__name__)

NEWS_JOB = "news_curation"
ARTICLE_JOB = "article_curation"
BACKUP_JOB = "content_backup"


def configure_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


@dataclasses.dataclass
class Agents:
    """The assembled services behind the operator surface."""

    settings: Settings
    curation: CurationEngine
    backup: BackupEngine
    scheduler: Scheduler


def build_agents(
    settings: Settings,
    store: Optional[DocumentStore] = None,
    registry: Optional[TenantRegistry] = None,
) -> Agents:
    store = store or FirestoreStore(settings.gcp_project_id, settings.max_batch_size)
    registry = registry or TenantRegistry.from_file(settings.tenants_file)
    retry = functools.partial(
        call_with_backoff,
        attempts=settings.retry_attempts,
        base_delay=settings.retry_base_delay,
        max_delay=settings.retry_max_delay,
    )

    curation = CurationEngine(
        store=store,
        registry=registry,
        chains={kind: build_provider_chain(settings, kind) for kind in ContentKind},
        environment=settings.environment,
        freshness_hours=settings.news_freshness_hours,
        recency_weight=settings.recency_weight,
        retry=retry,
    )
    backup = BackupEngine(
        store=store,
        registry=registry,
        sink=LocalFileSink(settings.backup_dir),
        retention_days=settings.retention_days,
        retry=retry,
    )

    schedules = settings.schedules
    curation_enabled = not settings.disable_curation_agents
    jobs: List[Job] = [
        Job(
            job_id=NEWS_JOB,
            description="News curation agent",
            interval=schedules[NEWS_JOB].interval_seconds,
            initial_delay=schedules[NEWS_JOB].initial_delay_seconds,
            run=lambda: curation.run_cycle(ContentKind.NEWS),
            validate=dependency_check(store, registry, "News curation agent"),
            enabled=curation_enabled,
        ),
        Job(
            job_id=ARTICLE_JOB,
            description="Article curation agent",
            interval=schedules[ARTICLE_JOB].interval_seconds,
            initial_delay=schedules[ARTICLE_JOB].initial_delay_seconds,
            run=lambda: curation.run_cycle(ContentKind.ARTICLE),
            validate=dependency_check(store, registry, "Article curation agent"),
            enabled=curation_enabled,
        ),
        Job(
            job_id=BACKUP_JOB,
            description="Backup agent",
            interval=schedules[BACKUP_JOB].interval_seconds,
            initial_delay=schedules[BACKUP_JOB].initial_delay_seconds,
            run=backup.create_backup,
            validate=dependency_check(store, registry, "Backup agent"),
            enabled=not settings.disable_backup_agent,
        ),
    ]
    return Agents(settings, curation, backup, Scheduler(settings, jobs))


def to_jsonable(value: Any) -> Any:
    """Converts results (dataclasses, enums, datetimes) for JSON output."""
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_jsonable(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Content curation and backup agents")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("serve", help="Start all scheduled jobs and block")
    sub.add_parser("status", help="Show job status")
    trigger = sub.add_parser("trigger", help="Run one job now")
    trigger.add_argument("job_id", choices=[NEWS_JOB, ARTICLE_JOB, BACKUP_JOB])
    sub.add_parser("backup", help="Create a backup now")
    sub.add_parser("cleanup", help="Delete backups past the retention window")
    listing = sub.add_parser("list-backups", help="List recent backups")
    listing.add_argument("--limit", type=int, default=50)
    restore = sub.add_parser("restore", help="Restore live content from a backup")
    restore.add_argument("snapshot_id")
    purge = sub.add_parser("purge", help="Delete one backup")
    purge.add_argument("snapshot_id")
    return parser


def _serve(agents: Agents) -> None:
    def handle_signal(signum, _frame):
        logger.info("Received signal %s, stopping agents...", signum)
        agents.scheduler.stop()

    signal.signal(signal.SIGTERM, handle_signal)
    agents.scheduler.start()
    try:
        agents.scheduler.wait()
    except KeyboardInterrupt:
        agents.scheduler.stop()


def main(argv: Optional[List[str]] = None) -> int:
    """Main execution entry point."""
    configure_logging()
    args = build_parser().parse_args(argv)
    try:
        agents = build_agents(Settings.from_env())
        if args.command == "serve":
            _serve(agents)
            return 0
        if args.command == "status":
            result: Any = {**agents.scheduler.status(), "backup": agents.backup.stats()}
        elif args.command == "trigger":
            result = agents.scheduler.trigger_manually(args.job_id)
        elif args.command == "backup":
            result = agents.scheduler.trigger_manually(BACKUP_JOB)
        elif args.command == "cleanup":
            result = {"removed": agents.backup.cleanup_old_backups()}
        elif args.command == "list-backups":
            result = agents.backup.list_backups(args.limit)
        elif args.command == "restore":
            result = agents.backup.restore_from_backup(args.snapshot_id)
        else:
            result = {"removedShards": agents.backup.delete_backup(args.snapshot_id)}
    except AgentStartupError as e:
        logger.error("Startup failed: %s", e)
        return 2
    except CuratorError as e:
        logger.error("Error: %s", e)
        return 1

    print(json.dumps(to_jsonable(result), indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
