from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from typing import Any

import requests

from scanboard.circuit_breaker import CircuitBreaker
from scanboard.errors import CircuitOpenError, UpstreamUnavailableError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S = 30.0
DEFAULT_MAX_RETRIES = 2
DEFAULT_RETRY_DELAYS_S: tuple[float, ...] = (2.0, 5.0)


def default_retry_on(response: requests.Response) -> bool:
    return response.status_code >= 500


def resilient_fetch(
    method: str,
    url: str,
    *,
    session: requests.Session | None = None,
    timeout_s: float = DEFAULT_TIMEOUT_S,
    max_retries: int = DEFAULT_MAX_RETRIES,
    retry_delays_s: Sequence[float] = DEFAULT_RETRY_DELAYS_S,
    circuit_breaker: CircuitBreaker | None = None,
    retry_on: Callable[[requests.Response], bool] = default_retry_on,
    sleep: Callable[[float], None] = time.sleep,
    **kwargs: Any,
) -> requests.Response:
    """Call an upstream with a timeout, bounded retries and an optional breaker.

    Client errors (4xx) are returned as-is and count as a healthy upstream.
    The breaker sees one failure per exhausted call, not one per attempt.
    """
    if circuit_breaker is not None and not circuit_breaker.can_execute():
        raise CircuitOpenError(circuit_breaker.name)

    http = session or requests.Session()
    attempts = max(0, int(max_retries)) + 1
    last_error = ""
    for attempt in range(attempts):
        try:
            response = http.request(method, url, timeout=timeout_s, **kwargs)
        except requests.RequestException as exc:
            last_error = f"{type(exc).__name__}: {exc}"
        else:
            if response.ok or not retry_on(response) or 400 <= response.status_code < 500:
                if circuit_breaker is not None:
                    circuit_breaker.on_success()
                return response
            last_error = f"HTTP {response.status_code}"

        if attempt < attempts - 1:
            delay = retry_delays_s[min(attempt, len(retry_delays_s) - 1)] if retry_delays_s else 0.0
            logger.warning(
                "upstream_retry method=%s url=%s attempt=%s error=%s delay_s=%s",
                method,
                url,
                attempt + 1,
                last_error,
                delay,
            )
            sleep(delay)

    if circuit_breaker is not None:
        circuit_breaker.on_failure()
    raise UpstreamUnavailableError(f"{method} {url} failed after {attempts} attempts: {last_error}")
