"""
HTTP health verification of deployed endpoints.

Verification never raises: an endpoint that stays down yields an
Unhealthy result with diagnostics attached, and the caller decides how
fatal that is.
"""
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, List, Optional

import requests

from .models import Endpoint, HealthProbe, HealthResult, ProbeOutcome

logger = logging.getLogger(__name__)

DiagnosticsSource = Callable[[], List[str]]


@dataclass
class HealthCheck:
    """Named endpoint to verify, with its own budget and diagnostics source."""
    name: str
    endpoint: Endpoint
    attempts: int
    interval: float
    diagnostics: Optional[DiagnosticsSource] = None


class HealthVerifier:
    """Probe HTTP endpoints until they answer 2xx or the attempt budget runs out."""

    def __init__(self, http_get: Callable = requests.get, probe_timeout: float = 5.0,
                 sleep: Callable[[float], None] = time.sleep,
                 cancel_event: Optional[threading.Event] = None):
        self.http_get = http_get
        self.probe_timeout = probe_timeout
        self.sleep = sleep
        self.cancel_event = cancel_event

    def verify_health(self, endpoint: Endpoint, attempts: int, interval: float,
                      diagnostics: Optional[DiagnosticsSource] = None,
                      name: Optional[str] = None) -> HealthResult:
        """Probe ``endpoint`` up to ``attempts`` times, ``interval`` seconds apart."""
        probe = HealthProbe(endpoint=endpoint, attempts=attempts, interval=interval)
        name = name or endpoint.url
        last_status_code = None
        last_error = None
        timeouts = 0

        if attempts < 1:
            logger.error(f"❌ {name} has an attempt budget of {attempts}; nothing was probed")
            return HealthResult(
                name=name,
                endpoint=endpoint,
                outcome=ProbeOutcome.UNHEALTHY,
                attempts_made=0,
                last_error=f"attempt budget must be at least 1, got {attempts}",
            )

        logger.info(f"🩺 Checking {name} at {endpoint.url} (up to {attempts} attempts)")
        for attempt in range(1, attempts + 1):
            probe.attempts_made = attempt
            try:
                response = self.http_get(endpoint.url, timeout=self.probe_timeout)
                last_status_code = response.status_code
                last_error = None
                if 200 <= response.status_code < 300:
                    probe.outcome = ProbeOutcome.HEALTHY
                    logger.info(f"✅ {name} is healthy (HTTP {response.status_code}, attempt {attempt}/{attempts})")
                    return HealthResult(
                        name=name,
                        endpoint=endpoint,
                        outcome=probe.outcome,
                        attempts_made=attempt,
                        last_status_code=last_status_code,
                    )
                logger.debug(f"{name} answered HTTP {response.status_code} (attempt {attempt}/{attempts})")
            except requests.Timeout as e:
                timeouts += 1
                last_error = f"timeout after {self.probe_timeout}s: {e}"
                logger.debug(f"{name} probe timed out (attempt {attempt}/{attempts})")
            except requests.RequestException as e:
                last_error = str(e)
                logger.debug(f"{name} probe failed (attempt {attempt}/{attempts}): {e}")
            except Exception as e:
                last_error = f"{type(e).__name__}: {e}"
                logger.warning(f"⚠️ {name} probe raised {type(e).__name__} (attempt {attempt}/{attempts}): {e}")

            if attempt < attempts:
                if self.cancel_event is not None and self.cancel_event.is_set():
                    last_error = "cancelled"
                    break
                self.sleep(interval)

        probe.outcome = ProbeOutcome.TIMED_OUT if timeouts == probe.attempts_made else ProbeOutcome.UNHEALTHY
        logger.error(f"❌ {name} did not become healthy after {probe.attempts_made} attempts "
                     f"(last status: {last_status_code}, last error: {last_error})")
        return HealthResult(
            name=name,
            endpoint=endpoint,
            outcome=probe.outcome,
            attempts_made=probe.attempts_made,
            last_status_code=last_status_code,
            last_error=last_error,
            diagnostics=self._collect_diagnostics(name, diagnostics),
        )

    def verify(self, check: HealthCheck) -> HealthResult:
        return self.verify_health(check.endpoint, check.attempts, check.interval,
                                  diagnostics=check.diagnostics, name=check.name)

    def verify_many(self, checks: List[HealthCheck], concurrent: bool = False) -> List[HealthResult]:
        """Verify every check; one endpoint's failure never stops the others.

        Results come back in the order of ``checks`` once all probes finish.
        """
        if not concurrent or len(checks) < 2:
            return [self._verify_isolated(check) for check in checks]

        with ThreadPoolExecutor(max_workers=len(checks)) as executor:
            futures = [executor.submit(self._verify_isolated, check) for check in checks]
            return [future.result() for future in futures]

    def _verify_isolated(self, check: HealthCheck) -> HealthResult:
        try:
            return self.verify(check)
        except Exception as e:
            logger.exception(f"Health check {check.name} crashed")
            return HealthResult(
                name=check.name,
                endpoint=check.endpoint,
                outcome=ProbeOutcome.UNHEALTHY,
                attempts_made=0,
                last_error=f"{type(e).__name__}: {e}",
            )

    def _collect_diagnostics(self, name: str, source: Optional[DiagnosticsSource]) -> List[str]:
        if source is None:
            return []
        try:
            lines = source()
        except Exception as e:
            logger.warning(f"Could not collect diagnostics for {name}: {e}")
            return [f"diagnostics unavailable: {e}"]
        return list(lines or [])
