"""
Configuration loading.

Non-secret settings (cadences, provider order, retention) come from
config.json next to this module; secrets and feature flags come from the
environment. Engines receive an explicit Settings object.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from src.models import Environment

logger = logging.getLogger(__name__)

DEFAULT_PROVIDER_ORDER: Dict[str, List[str]] = {
    "news": ["google_news_rss", "openrouter_perplexity", "openrouter_claude", "openai", "gemini"],
    "article": ["openrouter_claude", "openai", "gemini"],
}


def load_config(config_filename: str = "config.json") -> Dict[str, Any]:
    """Loads configuration from a JSON file."""
    # Build absolute path relative to this module
    base_dir = os.path.dirname(os.path.abspath(__file__))
    config_path = os.path.join(base_dir, config_filename)

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError:
        logger.warning("Config file not found at %s. Using empty config.", config_path)
        return {}


def _flag(environ: Mapping[str, str], name: str) -> bool:
    return environ.get(name, "").strip().lower() == "true"


@dataclass(frozen=True)
class JobSchedule:
    """Cadence of one scheduled job."""

    interval_hours: float
    initial_delay_seconds: Optional[float] = None

    @property
    def interval_seconds(self) -> float:
        return self.interval_hours * 3600


@dataclass(frozen=True)
class Settings:
    """Runtime settings passed explicitly into the engines and scheduler."""

    environment: Environment = Environment.DEVELOPMENT
    disable_all_agents: bool = False
    disable_curation_agents: bool = False
    disable_backup_agent: bool = False
    fail_on_agent_error: bool = False

    gcp_project_id: Optional[str] = None
    gemini_api_key: Optional[str] = None
    openrouter_api_key: Optional[str] = None
    openai_api_key: Optional[str] = None
    backup_dir: str = "backups"

    tenants_file: str = "tenants.json"
    max_batch_size: int = 500
    retention_days: int = 30
    news_freshness_hours: float = 24.0
    recency_weight: float = 0.0
    provider_timeout_seconds: float = 45.0
    retry_attempts: int = 3
    retry_base_delay: float = 1.0
    retry_max_delay: float = 8.0

    gemini_model: str = "gemini-2.0-flash"
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    openrouter_news_model: str = "perplexity/llama-3.1-sonar-large-128k-online"
    openrouter_writer_model: str = "anthropic/claude-3.5-sonnet"
    openai_base_url: str = "https://api.openai.com/v1"
    openai_model: str = "gpt-4o-mini"

    provider_order: Dict[str, List[str]] = field(
        default_factory=lambda: dict(DEFAULT_PROVIDER_ORDER)
    )
    schedules: Dict[str, JobSchedule] = field(
        default_factory=lambda: {
            "news_curation": JobSchedule(interval_hours=24),
            "article_curation": JobSchedule(interval_hours=24 * 14),
            "content_backup": JobSchedule(interval_hours=24, initial_delay_seconds=5),
        }
    )

    @classmethod
    def from_env(
        cls,
        config: Optional[Dict[str, Any]] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "Settings":
        """Builds settings from config.json contents and environment variables."""
        config = load_config() if config is None else config
        environ = os.environ if environ is None else environ

        defaults = cls()
        schedules = dict(defaults.schedules)
        for job_id, raw in config.get("schedules", {}).items():
            schedules[job_id] = JobSchedule(
                interval_hours=float(raw.get("interval_hours", 24)),
                initial_delay_seconds=raw.get("initial_delay_seconds"),
            )

        models = config.get("models", {})
        retry = config.get("retry", {})
        return cls(
            environment=Environment.from_value(environ.get("APP_ENV")),
            disable_all_agents=_flag(environ, "DISABLE_AGENTS"),
            disable_curation_agents=_flag(environ, "DISABLE_CURATION_AGENTS"),
            disable_backup_agent=_flag(environ, "DISABLE_BACKUP_AGENT"),
            fail_on_agent_error=_flag(environ, "FAIL_ON_AGENT_ERROR"),
            gcp_project_id=environ.get("GCP_PROJECT_ID"),
            gemini_api_key=environ.get("GEMINI_KEY"),
            openrouter_api_key=environ.get("OPENROUTER_API_KEY"),
            openai_api_key=environ.get("OPENAI_API_KEY"),
            backup_dir=environ.get("BACKUP_DIR", config.get("backup_dir", defaults.backup_dir)),
            tenants_file=config.get("tenants_file", defaults.tenants_file),
            max_batch_size=int(config.get("max_batch_size", defaults.max_batch_size)),
            retention_days=int(config.get("retention_days", defaults.retention_days)),
            news_freshness_hours=float(
                config.get("news_freshness_hours", defaults.news_freshness_hours)
            ),
            recency_weight=float(config.get("recency_weight", defaults.recency_weight)),
            provider_timeout_seconds=float(
                config.get("provider_timeout_seconds", defaults.provider_timeout_seconds)
            ),
            retry_attempts=int(retry.get("attempts", defaults.retry_attempts)),
            retry_base_delay=float(retry.get("base_delay_seconds", defaults.retry_base_delay)),
            retry_max_delay=float(retry.get("max_delay_seconds", defaults.retry_max_delay)),
            gemini_model=models.get("gemini", defaults.gemini_model),
            openrouter_news_model=models.get("openrouter_news", defaults.openrouter_news_model),
            openrouter_writer_model=models.get(
                "openrouter_writer", defaults.openrouter_writer_model
            ),
            openai_model=models.get("openai", defaults.openai_model),
            provider_order={**DEFAULT_PROVIDER_ORDER, **config.get("providers", {})},
            schedules=schedules,
        )
