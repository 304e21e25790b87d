# File: utils/retry.py
# Exponential backoff for calls to external metadata services (GEO, SRA E-utilities).

import logging
import time
import urllib.error
from typing import Callable, Tuple, Type, TypeVar

import requests

from utils.exceptions import SourceLookupError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Network trouble worth another attempt; GEOparse downloads surface urllib errors
TRANSIENT_ERRORS: Tuple[Type[BaseException], ...] = (
    requests.exceptions.ConnectionError,
    requests.exceptions.Timeout,
    requests.exceptions.HTTPError,
    urllib.error.URLError,
    ConnectionError,
    TimeoutError,
)

# Throttling; every 5xx status is retried as well
RETRYABLE_STATUS_CODES = frozenset({429})


def _status_code(error: BaseException):
    if isinstance(error, requests.exceptions.HTTPError):
        return getattr(error.response, "status_code", None)
    if isinstance(error, urllib.error.HTTPError):
        return error.code
    return None


def is_transient(error: BaseException) -> bool:
    """
    HTTP errors are transient only for throttling (429) and server errors (5xx).
    A response without a status code is treated as transient.
    """
    status = _status_code(error)
    if status is None:
        return True
    return status in RETRYABLE_STATUS_CODES or 500 <= status < 600


def call_with_backoff(
    func: Callable[[], T],
    operation: str,
    item: str,
    max_retries: int = 4,
    backoff_base: float = 1.0,
    backoff_cap: float = 30.0,
    retry_on: Tuple[Type[BaseException], ...] = TRANSIENT_ERRORS,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Calls func until it succeeds, sleeping base, 2*base, 4*base... (capped) between attempts.

    Args:
        func (Callable[[], T]): Zero-argument callable performing the lookup.
        operation (str): Name of the lookup, used in logs and errors.
        item (str): Accession the lookup is about.
        max_retries (int): Total number of attempts.
        backoff_base (float): Delay after the first failure, in seconds.
        backoff_cap (float): Largest delay between attempts.
        retry_on (Tuple[Type[BaseException], ...]): Exception types treated as transient.
        sleep (Callable[[float], None]): Sleep function; replaced in tests.

    Returns:
        T: Whatever func returns.

    Raises:
        SourceLookupError: When every attempt failed with a transient error.
        Other exceptions, including HTTP errors other than 429 and 5xx, propagate unchanged.
    """
    last_error = None
    for attempt in range(1, max_retries + 1):
        try:
            return func()
        except retry_on as e:
            if not is_transient(e):
                # Permanent client errors (400, 404...) are not retried
                raise
            last_error = e
            if attempt == max_retries:
                break
            wait_time = min(backoff_base * (2 ** (attempt - 1)), backoff_cap)
            logger.warning(
                f"{operation} for {item} failed on attempt {attempt}/{max_retries}: {e}. "
                f"Retrying in {wait_time:.1f} seconds..."
            )
            sleep(wait_time)

    logger.error(f"{operation} for {item} failed after {max_retries} attempts: {last_error}")
    raise SourceLookupError(operation, item, max_retries, last_error)
