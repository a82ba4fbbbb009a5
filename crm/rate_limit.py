"""Fixed-window request limiting backed by a database counter.

Handlers are stateless, so the counter lives in ``rate_limit_counters``
keyed by (identifier, endpoint, window start).
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from . import models
from .config import settings
from .db import get_session

logger = logging.getLogger(__name__)


def window_start(now: datetime, window_minutes: int) -> datetime:
    """Floor ``now`` to the start of its window."""
    window_seconds = window_minutes * 60
    epoch = datetime(1970, 1, 1)
    elapsed = int((now - epoch).total_seconds())
    return epoch + timedelta(seconds=elapsed - elapsed % window_seconds)


async def check_rate_limit(
    session: AsyncSession,
    identifier: str,
    endpoint: str,
    max_requests: int,
    window_minutes: int,
    now: datetime | None = None,
) -> bool:
    """Count this request and report whether it is within the limit.

    The check fails open: if the counter cannot be read or written the
    request is allowed and the error is logged.

    Returns:
        True when the request is allowed
    """
    start = window_start(now or models.utcnow(), window_minutes)

    try:
        result = await session.execute(
            select(models.RateLimitCounter).where(
                models.RateLimitCounter.identifier == identifier,
                models.RateLimitCounter.endpoint == endpoint,
                models.RateLimitCounter.window_start == start,
            )
        )
        counter = result.scalar_one_or_none()

        if counter is None:
            counter = models.RateLimitCounter(
                identifier=identifier,
                endpoint=endpoint,
                window_start=start,
                request_count=0,
            )
            session.add(counter)

        if counter.request_count >= max_requests:
            logger.warning(f"Rate limit exceeded for {identifier} on {endpoint}")
            return False

        counter.request_count += 1
        await session.commit()
        return True

    except SQLAlchemyError as e:
        await session.rollback()
        logger.error(f"Rate limit check failed for {endpoint}, allowing request: {e}", exc_info=True)
        return True


def client_identifier(request: Request) -> str:
    """First X-Forwarded-For hop, else the socket peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client is not None:
        return request.client.host
    return "unknown"


def rate_limited(endpoint: str, max_requests: int, window_minutes: int):
    """Build a FastAPI dependency enforcing a per-client limit on ``endpoint``."""

    async def dependency(
        request: Request,
        session: AsyncSession = Depends(get_session),
    ) -> None:
        if not settings.rate_limit.enabled:
            return
        allowed = await check_rate_limit(
            session,
            client_identifier(request),
            endpoint,
            max_requests,
            window_minutes,
        )
        if not allowed:
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail=f"Too many requests. Limit is {max_requests} per {window_minutes} minutes.",
            )

    return dependency
