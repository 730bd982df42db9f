"""
Backoff helpers shared by HTTP clients and the task queue.
"""

import asyncio
import random

import httpx

from .errors import ExternalServiceError


def backoff_delay(attempt: int, base: float = 2.0) -> float:
    """Exponential backoff with jitter (0.9-1.1x) to avoid thundering herd."""
    return (base ** attempt) * random.uniform(0.9, 1.1)


def is_transient(exc: BaseException) -> bool:
    """True if the failure is worth retrying later."""
    if isinstance(exc, ExternalServiceError):
        return exc.transient
    if isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException, httpx.TransportError)):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    return False


def is_transient_status(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500
