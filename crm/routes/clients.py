"""Client and bid back-office endpoints."""
from __future__ import annotations

import logging

from fastapi import Depends, Response, status
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from .. import models
from ..auth import require_admin
from ..db import get_session
from ..pipelines.billing import check_client_eligibility
from ..schemas import (
    BidCreate,
    BidRead,
    BidUpdate,
    ClientCreate,
    ClientRead,
    ClientUpdate,
    EligibilityResponse,
)
from .crud import commit_or_409, crud_router, get_or_404

logger = logging.getLogger(__name__)

router = crud_router(
    model=models.Client,
    prefix="/clients",
    create_schema=ClientCreate,
    update_schema=ClientUpdate,
    read_schema=ClientRead,
    tags=["clients"],
    dependencies=[Depends(require_admin)],
    filter_fields=("client_type",),
    include_delete=False,
)

bids_router = crud_router(
    model=models.Bid,
    prefix="/bids",
    create_schema=BidCreate,
    update_schema=BidUpdate,
    read_schema=BidRead,
    tags=["bids"],
    dependencies=[Depends(require_admin)],
    filter_fields=("pro_type",),
)


@router.delete("/{client_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_client(client_id: int, session: AsyncSession = Depends(get_session)):
    """Delete a client together with its bids and matches."""
    client = await get_or_404(session, models.Client, client_id)
    # SQLite does not enforce ON DELETE CASCADE
    await session.execute(delete(models.Match).where(models.Match.client_id == client_id))
    await session.execute(delete(models.Bid).where(models.Bid.client_id == client_id))
    await session.delete(client)
    await commit_or_409(session, "Client")
    logger.info(f"Deleted client {client_id} with its bids and matches")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{client_id}/eligibility", response_model=EligibilityResponse)
async def client_eligibility(client_id: int, session: AsyncSession = Depends(get_session)):
    """Whether the client can receive leads and should add a payment method."""
    result = await check_client_eligibility(session, client_id)
    return EligibilityResponse(**result.__dict__)
