"""
Readiness verification for the services of a deployment plan.

Each service is polled with an explicit attempt loop:

    Pending -> Polling -> Succeeded | Exhausted

Services are verified one after another in plan order. The first service
that exhausts its attempts stops the pass, so later services (for example
the reverse proxy) are never polled and the error names the root cause.
"""

from __future__ import annotations

import enum
import http.client
import logging
import time
import urllib.error
import urllib.request
from typing import Callable, Iterable, Optional

from .config_constants import (
    DEFAULT_INTERVAL_SECONDS,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
    HEALTHCHECK_USER_AGENT,
)
from .errors import HealthCheckExhaustedError
from .models import HealthCheckResult, ServiceSpec

logger = logging.getLogger(__name__)

# probe(url, timeout) -> (ok, message)
Probe = Callable[[str, float], "tuple[bool, str]"]


class ProbeState(enum.Enum):
    PENDING = 'pending'
    POLLING = 'polling'
    SUCCEEDED = 'succeeded'
    EXHAUSTED = 'exhausted'


def check_http_status_ok(url: str, timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS) -> tuple[bool, str]:
    """
    GET the URL; any 2xx status is success.
    """
    try:
        req = urllib.request.Request(url, headers={'User-Agent': HEALTHCHECK_USER_AGENT})
        with urllib.request.urlopen(req, timeout=timeout) as response:
            if 200 <= response.status < 300:
                return True, f"HTTP {response.status}"
            return False, f"HTTP {response.status}"
    except urllib.error.HTTPError as e:
        return False, f"HTTP {e.code}: {e.reason}"
    except urllib.error.URLError as e:
        return False, f"Connection failed: {e.reason}"
    except TimeoutError:
        return False, f"Timed out after {timeout}s"
    except http.client.HTTPException as e:
        return False, f"Invalid HTTP response: {e!r}"
    except OSError as e:
        return False, f"Error: {e}"


class ReadinessVerifier:
    def __init__(
        self,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        interval: float = DEFAULT_INTERVAL_SECONDS,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
        probe: Probe = check_http_status_ok,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.interval = interval
        self.request_timeout = request_timeout
        self._probe = probe
        self._sleep = sleep

    def verify(
        self,
        service: ServiceSpec,
        max_attempts: Optional[int] = None,
        interval: Optional[float] = None,
    ) -> HealthCheckResult:
        """
        Poll one service until it answers or attempts run out.

        Returns after the first successful attempt. On exhaustion the
        result has succeeded=False and attempts=max_attempts.
        """
        max_attempts = self.max_attempts if max_attempts is None else max_attempts
        interval = self.interval if interval is None else interval
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        state = ProbeState.PENDING
        logger.info(f"Checking if {service.name} is up at {service.health_url}")
        logger.debug(f"  {service.name}: {state.value}")

        state = ProbeState.POLLING
        last_error = None
        attempt = 1
        while attempt <= max_attempts:
            ok, msg = self._probe(service.health_url, self.request_timeout)
            if ok:
                state = ProbeState.SUCCEEDED
                logger.info(f"{service.name} is working (attempt {attempt})")
                logger.debug(f"  {service.name}: {state.value} ({msg})")
                return HealthCheckResult(service=service.name, attempts=attempt, succeeded=True)

            last_error = msg
            logger.info(f"Still waiting for {service.name}... attempt {attempt}/{max_attempts} ({msg})")
            self._sleep(interval)
            attempt += 1

        state = ProbeState.EXHAUSTED
        logger.debug(f"  {service.name}: {state.value}")
        return HealthCheckResult(
            service=service.name,
            attempts=max_attempts,
            succeeded=False,
            last_error=last_error,
        )

    def verify_plan(
        self,
        services: Iterable[ServiceSpec],
        results: Optional[list[HealthCheckResult]] = None,
    ) -> list[HealthCheckResult]:
        """
        Verify services in order; raise on the first one that never became ready.

        Results are appended to `results` as they are recorded, so a caller
        keeps the partial list when HealthCheckExhaustedError is raised.
        """
        results = [] if results is None else results
        for service in services:
            result = self.verify(service)
            results.append(result)
            if not result.succeeded:
                raise HealthCheckExhaustedError(result)
        return results
