import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Callable, TypeVar

from sqlalchemy.exc import DBAPIError, OperationalError

from salescrm.core.errors import Upstream

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Directory lookups and member loads are the only blocking I/O in the core.
_executor = ThreadPoolExecutor(max_workers=16, thread_name_prefix="salescrm-io")


def call_with_timeout(fn: Callable[[], T], *, timeout: float, what: str) -> T:
    """
    Run ``fn`` on the I/O pool and wait at most ``timeout`` seconds.

    Timeouts and database connectivity failures become ``Upstream`` so callers
    can tell "service degraded" apart from "not found".
    """
    future = _executor.submit(fn)
    try:
        return future.result(timeout=timeout)
    except FutureTimeoutError as exc:
        future.cancel()
        logger.warning("%s timed out after %.2fs", what, timeout)
        raise Upstream(f"{what} timed out", reason="timeout") from exc
    except (OperationalError, DBAPIError) as exc:
        logger.warning("%s failed: %s", what, exc.__class__.__name__)
        raise Upstream(f"{what} unavailable", reason="unavailable") from exc
