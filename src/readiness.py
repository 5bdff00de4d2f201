"""Readiness checks for asynchronously provisioned resources.

The provider is only ever sampled, never observed: a state query returns
one value from a closed set, and poll_until_ready() decides whether to
stop, fail, or sleep and ask again. The helper knows nothing about the
resource being polled, so any resource with a state query can reuse it.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable

import requests

from common import run_command

logger = logging.getLogger(__name__)


class InstanceState(str, Enum):
    """Cloud SQL instance states as reported by `gcloud sql instances describe`."""
    RUNNABLE = 'RUNNABLE'
    PENDING_CREATE = 'PENDING_CREATE'
    MAINTENANCE = 'MAINTENANCE'
    FAILED = 'FAILED'
    SUSPENDED = 'SUSPENDED'
    STOPPED = 'STOPPED'
    UNKNOWN = 'UNKNOWN'
    NOT_FOUND = 'NOT_FOUND'

    @classmethod
    def parse(cls, value: str) -> 'InstanceState':
        """Map provider output to a state; empty output means not found."""
        value = value.strip().upper()
        if not value:
            return cls.NOT_FOUND
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


@dataclass
class PollResult:
    """Outcome of a bounded readiness poll."""
    status: object
    attempts: int
    ready: bool
    fatal: bool = False

    @property
    def timed_out(self) -> bool:
        """Attempt budget ran out without a ready or fatal status."""
        return not self.ready and not self.fatal


def poll_until_ready(
    query: Callable[[], object],
    ready: Callable[[object], bool],
    fatal: Callable[[object], bool] = lambda status: False,
    attempts: int = 15,
    interval: float = 60,
    backoff: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
    on_wait: Callable[[int, object], None] = None,
) -> PollResult:
    """Query a status until it is ready, fatal, or the attempt budget runs out.

    Sleeps only after a not-ready answer, so a resource that is ready on the
    third query costs exactly two sleeps. A fatal status returns at once
    without consuming further attempts.

    Args:
        query: Returns the current status
        ready: True for the terminal ready status
        fatal: True for statuses that must not be retried
        attempts: Maximum number of queries
        interval: Seconds to sleep after the first not-ready answer
        backoff: Multiplier applied to the interval after each sleep
        sleep: Sleep function (injectable for tests)
        on_wait: Called with (attempt, status) before each sleep
    """
    status = None
    delay = interval
    for attempt in range(1, attempts + 1):
        status = query()
        if ready(status):
            return PollResult(status=status, attempts=attempt, ready=True)
        if fatal(status):
            return PollResult(status=status, attempts=attempt, ready=False, fatal=True)
        if attempt == attempts:
            break
        if on_wait:
            on_wait(attempt, status)
        sleep(delay)
        delay *= backoff
    return PollResult(status=status, attempts=attempts, ready=False)


def get_sql_instance_state(project_id: str, instance: str, timeout: int = 60) -> InstanceState:
    """Sample the current state of a Cloud SQL instance."""
    rc, out, err = run_command(
        ['gcloud', 'sql', 'instances', 'describe', instance,
         f'--project={project_id}', '--format=value(state)'],
        timeout=timeout,
    )
    if rc != 0:
        logger.debug(f"describe {instance} failed: {err.strip()}")
        return InstanceState.NOT_FOUND
    return InstanceState.parse(out)


def wait_for_sql_instance(
    project_id: str,
    instance: str,
    attempts: int = 15,
    interval: float = 60,
    sleep: Callable[[float], None] = time.sleep,
) -> PollResult:
    """Wait for a Cloud SQL instance to become RUNNABLE."""

    def log_wait(attempt: int, status: object) -> None:
        logger.info(
            f"Cloud SQL instance status: {status.value} (attempt {attempt}/{attempts}), "
            f"waiting {interval:.0f}s for RUNNABLE"
        )

    return poll_until_ready(
        query=lambda: get_sql_instance_state(project_id, instance),
        ready=lambda status: status is InstanceState.RUNNABLE,
        fatal=lambda status: status is InstanceState.NOT_FOUND,
        attempts=attempts,
        interval=interval,
        sleep=sleep,
        on_wait=log_wait,
    )


def check_service_url(url: str, timeout: float = 30.0) -> tuple[bool, str]:
    """Check the deployed service answers HTTP requests.

    Cloud Run scales from zero, so the first request may be slow.

    Returns:
        (success, message) tuple
    """
    try:
        resp = requests.get(url, timeout=timeout, allow_redirects=True)
    except requests.exceptions.ConnectionError as e:
        return False, f"Cannot connect to {url}: {e}"
    except requests.exceptions.Timeout:
        return False, f"Timeout connecting to {url}"
    except requests.exceptions.RequestException as e:
        return False, f"Error checking {url}: {e}"

    if resp.status_code >= 500:
        return False, f"{url} returned HTTP {resp.status_code}"
    return True, f"{url} responded with HTTP {resp.status_code}"
