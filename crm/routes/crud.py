"""Generic create/list/get/update/delete router for back-office tables."""

import logging
from typing import Any, Callable, Sequence

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import get_session
from ..models import Base

logger = logging.getLogger(__name__)


def conflict(exc: IntegrityError, label: str) -> HTTPException:
    logger.warning(f"{label} conflict: {exc.orig}")
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail=f"{label} violates a uniqueness or reference constraint",
    )


async def get_or_404(session: AsyncSession, model: type[Base], record_id: int) -> Any:
    record = await session.get(model, record_id)
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{model.__name__} {record_id} not found",
        )
    return record


async def commit_or_409(session: AsyncSession, label: str) -> None:
    try:
        await session.commit()
    except IntegrityError as e:
        await session.rollback()
        raise conflict(e, label) from e


def crud_router(
    *,
    model: type[Base],
    prefix: str,
    create_schema: type[BaseModel],
    update_schema: type[BaseModel],
    read_schema: type[BaseModel],
    tags: Sequence[str] | None = None,
    dependencies: Sequence[Any] | None = None,
    filter_fields: Sequence[str] = (),
    prepare: Callable[[dict[str, Any]], dict[str, Any]] | None = None,
    include_create: bool = True,
    include_delete: bool = True,
) -> APIRouter:
    """Build a router exposing CRUD endpoints for ``model``.

    Args:
        model: ORM model class
        prefix: URL prefix, e.g. ``/bids``
        create_schema: Request body for POST
        update_schema: Request body for PATCH (unset fields are left alone)
        read_schema: Response model
        tags: OpenAPI tags
        dependencies: Router-level dependencies (e.g. admin auth)
        filter_fields: Columns that can be filtered by equality via query string
        prepare: Hook to normalize field values before create/update
        include_create: Register POST (disable to provide a custom one)
        include_delete: Register DELETE (disable to provide a custom one)
    """
    router = APIRouter(prefix=prefix, tags=list(tags or [model.__tablename__]), dependencies=list(dependencies or []))
    label = model.__name__

    if include_create:
        @router.post("", response_model=read_schema, status_code=status.HTTP_201_CREATED)
        async def create(
            payload: create_schema,  # type: ignore[valid-type]
            session: AsyncSession = Depends(get_session),
        ):
            # Unset optionals fall back to column defaults
            data = payload.model_dump(exclude_none=True)
            if prepare is not None:
                data = prepare(data)
            record = model(**data)
            session.add(record)
            await commit_or_409(session, label)
            logger.info(f"Created {label} {record.id}")
            return record

    @router.get("", response_model=list[read_schema])
    async def list_records(
        request: Request,
        limit: int = Query(default=100, ge=1, le=1000),
        offset: int = Query(default=0, ge=0),
        session: AsyncSession = Depends(get_session),
    ):
        query = select(model)
        for name in filter_fields:
            value = request.query_params.get(name)
            if value is not None:
                query = query.where(getattr(model, name) == value)
        query = query.order_by(model.id.desc()).limit(limit).offset(offset)
        result = await session.execute(query)
        return result.scalars().all()

    @router.get("/{record_id}", response_model=read_schema)
    async def get_record(record_id: int, session: AsyncSession = Depends(get_session)):
        return await get_or_404(session, model, record_id)

    @router.patch("/{record_id}", response_model=read_schema)
    async def update_record(
        record_id: int,
        payload: update_schema,  # type: ignore[valid-type]
        session: AsyncSession = Depends(get_session),
    ):
        record = await get_or_404(session, model, record_id)
        data = payload.model_dump(exclude_unset=True)
        if prepare is not None:
            data = prepare(data)
        for key, value in data.items():
            setattr(record, key, value)
        await commit_or_409(session, label)
        await session.refresh(record)
        logger.info(f"Updated {label} {record_id}: {sorted(data)}")
        return record

    if include_delete:
        @router.delete("/{record_id}", status_code=status.HTTP_204_NO_CONTENT)
        async def delete_record(record_id: int, session: AsyncSession = Depends(get_session)):
            record = await get_or_404(session, model, record_id)
            await session.delete(record)
            await commit_or_409(session, label)
            logger.info(f"Deleted {label} {record_id}")
            return Response(status_code=status.HTTP_204_NO_CONTENT)

    return router
