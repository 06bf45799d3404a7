"""
Job scheduler for the curation and backup agents.

Each job owns a daemon timer thread and a non-blocking lock, so a job never
overlaps with itself while different jobs may run concurrently. Manual
triggers go through the same lock.
"""

import datetime
import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from src.config import Settings
from src.errors import AgentStartupError, DependencyUnavailable
from src.services.db import DocumentStore
from src.tenants import TenantRegistry

logger = logging.getLogger(__name__)


class JobState(Enum):
    STOPPED = "stopped"
    RUNNING = "running"
    ERROR = "error"
    DISABLED = "disabled"


def _now_iso() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat(timespec="milliseconds")


def dependency_check(
    store: DocumentStore, registry: TenantRegistry, description: str
) -> Callable[[], None]:
    """Builds a validator: store reachable and at least one tenant configured."""

    def validate() -> None:
        try:
            store.ping()
            if len(registry) == 0:
                raise DependencyUnavailable("No tenants configured")
        except Exception as e:  # pylint: disable=broad-exception-caught
            raise DependencyUnavailable(
                f"{description} dependency validation failed: {e}"
            ) from e
        logger.info(
            "%s dependencies validated - %d tenants configured", description, len(registry)
        )

    return validate


@dataclass
class Job:
    """A periodic job: a cadence, a body and a dependency validator."""

    job_id: str
    description: str
    interval: float
    run: Callable[[], Any]
    validate: Callable[[], None] = lambda: None
    initial_delay: Optional[float] = None
    enabled: bool = True

    state: JobState = JobState.STOPPED
    last_error: Optional[str] = None
    last_started_at: Optional[str] = None
    last_run_at: Optional[str] = None
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)
    _stop: threading.Event = field(default_factory=threading.Event, repr=False)
    _thread: Optional[threading.Thread] = field(default=None, repr=False)

    @property
    def in_flight(self) -> bool:
        return self._lock.locked()

    @property
    def scheduled(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def execute(self, trigger: str) -> Any:
        """Runs the body unless it is already running. Returns None when skipped."""
        if not self._lock.acquire(blocking=False):
            logger.warning(
                "job=%s event=skipped trigger=%s reason=already-running", self.job_id, trigger
            )
            return None
        try:
            self.last_run_at = _now_iso()
            logger.info("job=%s event=started trigger=%s", self.job_id, trigger)
            result = self.run()
            logger.info("job=%s event=finished trigger=%s", self.job_id, trigger)
            return result
        except Exception as e:
            self.last_error = str(e)
            logger.error(
                "job=%s event=failed trigger=%s error=%s",
                self.job_id,
                trigger,
                e,
                exc_info=True,
            )
            raise
        finally:
            self._lock.release()

    def _loop(self) -> None:
        delay = self.interval if self.initial_delay is None else self.initial_delay
        while not self._stop.wait(delay):
            try:
                self.execute("schedule")
            except Exception:  # pylint: disable=broad-exception-caught
                pass  # already logged by execute; the schedule keeps running
            delay = self.interval

    def start_timer(self) -> None:
        if self.scheduled:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._loop, name=f"job-{self.job_id}", daemon=True
        )
        self._thread.start()

    def stop_timer(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None


class Scheduler:
    """Starts, stops, triggers and reports on a set of jobs."""

    def __init__(self, settings: Settings, jobs: List[Job]):
        self.settings = settings
        self.jobs: Dict[str, Job] = {job.job_id: job for job in jobs}
        self._shutdown = threading.Event()

    def start(self) -> Dict[str, str]:
        """
        Validates and schedules every enabled job.

        A job that fails validation is marked as errored and not scheduled;
        the others still start. Returns the failures; raises AgentStartupError
        instead when strict startup is configured.
        """
        if self.settings.disable_all_agents:
            for job in self.jobs.values():
                job.state = JobState.DISABLED
                logger.info("job=%s event=disabled reason=DISABLE_AGENTS", job.job_id)
            logger.info("All agents are disabled via DISABLE_AGENTS environment variable")
            return {}

        if not self.settings.environment.is_production:
            logger.info("Agents running in %s mode", self.settings.environment.value)

        failures: Dict[str, str] = {}
        for job in self.jobs.values():
            if not job.enabled:
                job.state = JobState.DISABLED
                logger.info("job=%s event=disabled", job.job_id)
                continue
            if job.scheduled:
                logger.info("job=%s event=already-scheduled", job.job_id)
                continue
            try:
                job.validate()
            except Exception as e:  # pylint: disable=broad-exception-caught
                job.state = JobState.ERROR
                job.last_error = str(e)
                failures[job.job_id] = str(e)
                logger.error("job=%s event=error phase=startup error=%s", job.job_id, e)
                continue

            job.state = JobState.RUNNING
            job.last_started_at = _now_iso()
            job.last_error = None
            job.start_timer()
            logger.info(
                "job=%s event=scheduled interval=%.0fs first_run_in=%.0fs",
                job.job_id,
                job.interval,
                job.interval if job.initial_delay is None else job.initial_delay,
            )

        if failures:
            error = AgentStartupError(failures)
            logger.error("Agent startup completed with errors: %s", error)
            if self.settings.fail_on_agent_error:
                raise error
        else:
            logger.info("All agents started successfully")
        return failures

    def trigger_manually(self, job_id: str) -> Any:
        """Runs a job now in the calling thread, honouring single-flight."""
        job = self.jobs[job_id]
        logger.info("Manually triggering %s...", job_id)
        return job.execute("manual")

    def status(self) -> Dict[str, Any]:
        return {
            "jobs": {
                job.job_id: {
                    "state": job.state.value,
                    "lastError": job.last_error,
                    "lastStartedAt": job.last_started_at,
                    "lastRunAt": job.last_run_at,
                    "inFlight": job.in_flight,
                }
                for job in self.jobs.values()
            },
            "environment": self.settings.environment.value,
            "timestamp": _now_iso(),
        }

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        for job in self.jobs.values():
            job.stop_timer(timeout)
            if job.state is JobState.RUNNING:
                job.state = JobState.STOPPED
                logger.info("job=%s event=stopped", job.job_id)
        self._shutdown.set()

    def wait(self) -> None:
        """Blocks until stop() is called."""
        while not self._shutdown.wait(1.0):
            pass
