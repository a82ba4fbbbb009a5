"""Shared plumbing for third-party HTTP integrations."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..config import settings

logger = logging.getLogger(__name__)


class IntegrationError(Exception):
    """Raised when a third-party call fails."""

    def __init__(self, message: str, *, provider: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


class IntegrationConfigError(IntegrationError):
    """Raised when credentials for a provider are missing."""
    pass


# Retries connection-level failures only; HTTP error statuses are surfaced as-is
transient_retry = retry(
    retry=retry_if_exception_type(httpx.TransportError),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    reraise=True,
)


@asynccontextmanager
async def http_client(client: httpx.AsyncClient | None = None) -> AsyncIterator[httpx.AsyncClient]:
    """Yield ``client`` when injected, else a short-lived client with the default timeout."""
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(timeout=settings.http.timeout) as owned:
        yield owned


def error_detail(response: httpx.Response) -> str:
    """Best-effort error message from a provider response body."""
    try:
        body = response.json()
    except ValueError:
        return response.text[:500]
    if isinstance(body, dict):
        for key in ("message", "error", "errors", "error_message"):
            if key in body:
                return str(body[key])[:500]
    return str(body)[:500]
