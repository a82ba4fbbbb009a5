"""Admin configuration tables: field definitions, SMS providers, email templates, signup links."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from .. import models
from ..auth import require_admin
from ..db import get_session
from ..pipelines.signup import generate_slug, slugify
from ..schemas import (
    EmailTemplateCreate,
    EmailTemplateRead,
    EmailTemplateUpdate,
    FieldDefinitionCreate,
    FieldDefinitionRead,
    FieldDefinitionUpdate,
    SignupLinkCreate,
    SignupLinkRead,
    SignupLinkUpdate,
    SMSProviderConfigCreate,
    SMSProviderConfigRead,
    SMSProviderConfigUpdate,
)
from .crud import commit_or_409, crud_router

logger = logging.getLogger(__name__)

admin_deps = [Depends(require_admin)]

field_definitions_router = crud_router(
    model=models.FieldDefinition,
    prefix="/admin/field-definitions",
    create_schema=FieldDefinitionCreate,
    update_schema=FieldDefinitionUpdate,
    read_schema=FieldDefinitionRead,
    tags=["admin"],
    dependencies=admin_deps,
    filter_fields=("field_type",),
)

sms_configs_router = crud_router(
    model=models.SMSProviderConfig,
    prefix="/admin/sms-providers",
    create_schema=SMSProviderConfigCreate,
    update_schema=SMSProviderConfigUpdate,
    read_schema=SMSProviderConfigRead,
    tags=["admin"],
    dependencies=admin_deps,
)

email_templates_router = crud_router(
    model=models.EmailTemplate,
    prefix="/admin/email-templates",
    create_schema=EmailTemplateCreate,
    update_schema=EmailTemplateUpdate,
    read_schema=EmailTemplateRead,
    tags=["admin"],
    dependencies=admin_deps,
)

signup_links_router = crud_router(
    model=models.SignupLink,
    prefix="/admin/signup-links",
    create_schema=SignupLinkCreate,
    update_schema=SignupLinkUpdate,
    read_schema=SignupLinkRead,
    tags=["admin"],
    dependencies=admin_deps,
    include_create=False,
)


@signup_links_router.post("", response_model=SignupLinkRead, status_code=status.HTTP_201_CREATED)
async def create_signup_link(payload: SignupLinkCreate, session: AsyncSession = Depends(get_session)):
    """Create a signup link; a slug is generated from the name when none is given."""
    data = payload.model_dump(exclude_none=True)
    data["link_slug"] = slugify(payload.link_slug) if payload.link_slug else generate_slug(payload.name)
    link = models.SignupLink(**data)
    session.add(link)
    await commit_or_409(session, "SignupLink")
    logger.info(f"Created signup link {link.link_slug}")
    return link


router = APIRouter()
for sub in (field_definitions_router, sms_configs_router, email_templates_router, signup_links_router):
    router.include_router(sub)
