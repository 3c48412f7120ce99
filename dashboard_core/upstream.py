"""
Timeout-bounded calls to external collaborators (authorization provider,
org-scope resolver, dashboard store).

Every failure mode, including a timeout, surfaces as UpstreamUnavailable so
the caller can fold it into a fail-closed result. Errors from this package
(validation, duplicate keys) pass through unchanged. Nothing is retried here.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Any, Callable, Optional

from dashboard_core.config import UPSTREAM_MAX_WORKERS, UPSTREAM_TIMEOUT_SECONDS
from dashboard_core.errors import DashboardCoreError, UpstreamUnavailable

logger = logging.getLogger(__name__)

_executor = ThreadPoolExecutor(
    max_workers=UPSTREAM_MAX_WORKERS, thread_name_prefix="dashboard-core-upstream"
)


def bounded_call(
    fn: Callable[..., Any],
    *args: Any,
    timeout: Optional[float] = UPSTREAM_TIMEOUT_SECONDS,
    label: str = "upstream call",
) -> Any:
    """Run *fn* and wait at most *timeout* seconds for its result."""
    future = _executor.submit(fn, *args)
    try:
        return future.result(timeout=timeout)
    except FutureTimeout as e:
        future.cancel()
        logger.warning("%s timed out after %ss", label, timeout)
        raise UpstreamUnavailable(f"{label} timed out after {timeout}s") from e
    except UpstreamUnavailable:
        logger.warning("%s reported unavailable", label)
        raise
    except DashboardCoreError:
        raise
    except Exception as e:
        logger.warning("%s failed: %s", label, e)
        raise UpstreamUnavailable(f"{label} failed: {e}") from e
