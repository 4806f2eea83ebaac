"""
Readiness probing for deployed services.

A probe moves PENDING -> READY as soon as any configured signal is positive
(infrastructure health or an HTTP 2xx), or PENDING -> FAILED once its attempt
budget is spent. READY and FAILED are final.
"""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, Optional

import requests

from . import output
from .utils import ProbeFailed, http_ok, new_session, poll_until


class HealthStatus(str, Enum):
    """Infrastructure-level state of a container, service or pod."""
    HEALTHY = "healthy"
    RUNNING = "running"    # up, no health signal of its own
    STARTING = "starting"  # up but not yet healthy
    EXITED = "exited"      # crashed or stopped
    MISSING = "missing"


class ProbeState(str, Enum):
    PENDING = "PENDING"
    READY = "READY"
    FAILED = "FAILED"


@dataclass
class ServiceEndpoint:
    """What to poll for one service, and where to find its logs."""
    name: str
    url: Optional[str] = None
    health: Optional[Callable[[], HealthStatus]] = None
    logs: Optional[Callable[[], str]] = None

    def __post_init__(self):
        if self.url is None and self.health is None:
            raise ValueError(f"Endpoint '{self.name}' needs a URL, a health check, or both")


@dataclass
class ProbeResult:
    name: str
    state: ProbeState
    attempts: int = 0
    elapsed: float = 0.0
    last_health: Optional[HealthStatus] = None

    @property
    def ready(self) -> bool:
        return self.state == ProbeState.READY


class ReadinessProbe:
    """Poll one ServiceEndpoint on a fixed interval within a bounded budget."""

    def __init__(
        self,
        endpoint: ServiceEndpoint,
        interval: float = 10,
        max_attempts: int = 30,
        session: Optional[requests.Session] = None,
        http_timeout: float = 5,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.endpoint = endpoint
        self.interval = interval
        self.max_attempts = max_attempts
        self.session = session or new_session()
        self.http_timeout = http_timeout
        self._sleep = sleep
        self._clock = clock
        self.result = ProbeResult(endpoint.name, ProbeState.PENDING)
        self._logs_dumped = False

    @property
    def state(self) -> ProbeState:
        return self.result.state

    def _dump_logs(self) -> None:
        if self._logs_dumped or self.endpoint.logs is None:
            return
        self._logs_dumped = True
        output.error(f"Last logs for {self.endpoint.name}:")
        try:
            output.block(self.endpoint.logs())
        except Exception as e:
            output.warn(f"Could not collect logs for {self.endpoint.name}: {e}")

    def check(self) -> bool:
        """Run every configured check once. True means ready."""
        endpoint = self.endpoint
        if endpoint.health is not None:
            status = endpoint.health()
            self.result.last_health = status
            if status == HealthStatus.HEALTHY:
                output.info(f"{endpoint.name} is reported as healthy.")
                return True
            if status == HealthStatus.RUNNING and endpoint.url is None:
                output.info(f"{endpoint.name} is running.")
                return True
            if status == HealthStatus.EXITED:
                # Keep polling: restart loops are normal during cold start
                output.warn(f"{endpoint.name} has exited; it may be restarting.")
                self._dump_logs()

        if endpoint.url is not None and http_ok(self.session, endpoint.url, timeout=self.http_timeout):
            output.info(f"{endpoint.name} is responding at {endpoint.url}.")
            return True
        return False

    def run(self) -> ProbeResult:
        """Poll until READY or FAILED. Calling again returns the final result."""
        if self.state != ProbeState.PENDING:
            return self.result

        where = f" at {self.endpoint.url}" if self.endpoint.url else ""
        output.info(f"Waiting for {self.endpoint.name} to be ready{where}...")

        def on_retry(attempt: int, total: int) -> None:
            output.info(
                f"Attempt {attempt}/{total}: {self.endpoint.name} not ready yet. "
                f"Retrying in {self.interval:g} seconds..."
            )

        polled = poll_until(
            self.check,
            self.interval,
            self.max_attempts,
            on_retry=on_retry,
            sleep=self._sleep,
            clock=self._clock,
        )
        self.result.attempts = polled.attempts
        self.result.elapsed = polled.elapsed
        if polled.ok:
            self.result.state = ProbeState.READY
            output.info(f"{self.endpoint.name} is ready.")
        else:
            self.result.state = ProbeState.FAILED
            output.error(f"{self.endpoint.name} did not become ready after {polled.attempts} attempts.")
            self._dump_logs()
        return self.result


def require_ready(results: Iterable[ProbeResult]) -> None:
    """
    Consume ``results`` in order, stopping at the first one that is not READY.

    Pass a generator so that later probes never start once one has failed.

    Raises:
        ProbeFailed: On the first result that is not READY
    """
    for result in results:
        if not result.ready:
            raise ProbeFailed(f"{result.name} did not become ready after {result.attempts} attempts")
