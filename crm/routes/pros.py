"""Pro back-office endpoints, including bulk spreadsheet import."""
from __future__ import annotations

import logging
from io import BytesIO
from typing import Any

from fastapi import Depends, File, HTTPException, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from .. import models
from ..auth import require_admin
from ..db import get_session
from ..parsers import map_columns, parse_file
from ..pipelines.ingest import import_pro_rows, prepare_pro_fields
from ..pipelines.normalization import format_phone_e164
from ..schemas import ImportErrorDTO, ImportResponse, ProCreate, ProRead, ProUpdate
from .crud import commit_or_409, crud_router

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {".csv", ".xls", ".xlsx"}


def _normalize_update(data: dict[str, Any]) -> dict[str, Any]:
    if data.get("phone"):
        data["phone"] = format_phone_e164(data["phone"])
    if data.get("email"):
        data["email"] = data["email"].strip().lower()
    return data


router = crud_router(
    model=models.Pro,
    prefix="/pros",
    create_schema=ProCreate,
    update_schema=ProUpdate,
    read_schema=ProRead,
    tags=["pros"],
    dependencies=[Depends(require_admin)],
    filter_fields=("status", "pipeline_stage", "pro_type"),
    prepare=_normalize_update,
    include_create=False,
)


@router.post("", response_model=ProRead, status_code=status.HTTP_201_CREATED)
async def create_pro(payload: ProCreate, session: AsyncSession = Depends(get_session)):
    """Create a pro; phone and email are normalized, status derived when absent."""
    pro = models.Pro(**prepare_pro_fields(payload.model_dump(exclude_none=True)))
    session.add(pro)
    await commit_or_409(session, "Pro")
    logger.info(f"Created pro {pro.id}")
    return pro


@router.post("/import", response_model=ImportResponse)
async def import_pros(
    file: UploadFile = File(..., description="CSV or Excel file of pros"),
    session: AsyncSession = Depends(get_session),
) -> ImportResponse:
    """Bulk import pros from a spreadsheet.

    Rows are matched to existing pros by phone and updated; rows missing a
    name or phone are reported back and skipped.
    """
    if not file.filename:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Filename is required")

    file_ext = "." + file.filename.rsplit(".", 1)[-1].lower() if "." in file.filename else ""
    if file_ext not in ALLOWED_EXTENSIONS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unsupported file type. Allowed: {', '.join(sorted(ALLOWED_EXTENSIONS))}",
        )

    logger.info(f"Received pro import: {file.filename}")
    try:
        content = await file.read()
        rows = map_columns(parse_file(BytesIO(content), file.filename))
    finally:
        await file.close()

    report = await import_pro_rows(session, rows, source=f"import:{file.filename}")
    return ImportResponse(
        status="success" if report.failed == 0 else "partial",
        total=report.total,
        success=report.success,
        created=report.created,
        updated=report.updated,
        failed=report.failed,
        errors=[ImportErrorDTO(**e) for e in report.errors],
    )
