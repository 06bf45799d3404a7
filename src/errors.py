"""
Exception types shared by the curation, backup and scheduling services.
"""

from typing import Dict, List, Optional


class CuratorError(Exception):
    """Base class for all errors raised by the content agents."""


class ConfigError(CuratorError):
    """Raised when configuration or the tenant registry is invalid."""


class DependencyUnavailable(CuratorError):
    """The store or the tenant registry is not ready for a job."""


class ProviderFailure(CuratorError):
    """A single generation provider failed; the chain moves on."""

    def __init__(self, provider: str, message: str):
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.message = message


class AllProvidersExhausted(CuratorError):
    """Every provider in the chain failed for one request."""

    def __init__(self, failures: Dict[str, str]):
        summary = "; ".join(f"{name}: {msg}" for name, msg in failures.items())
        super().__init__(f"All generation providers failed ({summary or 'none configured'})")
        self.failures = failures


class DegradedContentForbidden(CuratorError):
    """Placeholder content was requested or about to be written in production."""


class BatchSizeExceeded(CuratorError):
    """A single commit held more operations than the store allows."""

    def __init__(self, size: int, limit: int):
        super().__init__(f"Batch of {size} operations exceeds the limit of {limit}")
        self.size = size
        self.limit = limit


class QuotaExceeded(CuratorError):
    """The store reported resource exhaustion; safe to retry after a delay."""


class SnapshotNotFound(CuratorError):
    """No backup snapshot exists with the requested id."""

    def __init__(self, snapshot_id: str):
        super().__init__(f"Backup {snapshot_id} not found")
        self.snapshot_id = snapshot_id


class AgentStartupError(CuratorError):
    """One or more jobs failed dependency validation in strict mode."""

    def __init__(self, failures: Dict[str, str], message: Optional[str] = None):
        failed: List[str] = [f"{job_id} ({error})" for job_id, error in failures.items()]
        super().__init__(
            message
            or f"{len(failed)} agent(s) failed to start: {', '.join(failed)}"
        )
        self.failures = failures
