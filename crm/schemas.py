"""Pydantic request/response models for the HTTP API."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class ErrorResponse(BaseModel):
    """Error response."""
    error: str
    detail: str | None = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# Pros

class ProBase(BaseModel):
    pro_type: Literal["real_estate_agent", "mortgage_officer"] = "real_estate_agent"
    first_name: str | None = Field(default=None, max_length=120)
    last_name: str | None = Field(default=None, max_length=120)
    email: str | None = Field(default=None, max_length=255)
    status: str | None = None
    pipeline_stage: str | None = None
    cities: list[str] | None = None
    states: list[str] | None = None
    zip_codes: list[str] | None = None
    counties: list[str] | None = None
    primary_neighborhoods: list[str] | None = None
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    experience: int | None = Field(default=None, ge=0, le=80)
    transactions: int | None = Field(default=None, ge=0, le=10000)
    transactions_12mo: int | None = Field(default=None, ge=0, le=10000)
    total_volume_12mo: float | None = Field(default=None, ge=0)
    qualification_score: float | None = None
    annual_loan_volume: float | None = Field(default=None, ge=0)
    on_time_close_rate: float | None = Field(default=None, ge=0, le=100)
    motivation: int | None = Field(default=None, ge=0, le=10)
    wants: list[str] | None = None
    needs: str | None = None
    specializations: list[str] | None = None
    skills: list[str] | None = None
    tags: list[str] | None = None
    brokerage: str | None = None
    company: str | None = None
    job_title: str | None = None
    license_type: str | None = None
    nmls_id: str | None = None
    loan_types_specialized: list[str] | None = None
    notes: str | None = None
    source: str | None = None


class ProCreate(ProBase):
    full_name: str = Field(min_length=1, max_length=255)
    phone: str = Field(min_length=7, max_length=32)


class ProUpdate(ProBase):
    pro_type: Literal["real_estate_agent", "mortgage_officer"] | None = None
    full_name: str | None = Field(default=None, min_length=1, max_length=255)
    phone: str | None = Field(default=None, min_length=7, max_length=32)


class ProRead(ProBase, ORMModel):
    id: int
    full_name: str
    phone: str
    status: str
    pipeline_stage: str
    metadata: dict | None = Field(default=None, validation_alias="metadata_")
    created_at: datetime
    updated_at: datetime


class ImportErrorDTO(BaseModel):
    row: int
    error: str


class ImportResponse(BaseModel):
    status: str
    total: int
    success: int
    created: int
    updated: int
    failed: int
    errors: list[ImportErrorDTO] = Field(default_factory=list)


# Clients

class ClientBase(BaseModel):
    client_type: Literal["real_estate", "mortgage"] = "real_estate"
    contact_name: str | None = None
    phone: str | None = None
    brokerage: str | None = None
    active: bool = True
    credits_balance: float = Field(default=0.0, ge=0)
    monthly_spend_limit: float | None = Field(default=None, ge=0)
    auto_charge_enabled: bool = False
    has_payment_method: bool = False
    current_package_id: int | None = None
    cities: list[str] | None = None
    states: list[str] | None = None
    zip_codes: list[str] | None = None
    counties: list[str] | None = None
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    employee_count: int | None = Field(default=None, ge=0)
    wants: str | None = None
    needs: str | None = None
    provides: list[str] | None = None
    preferences: dict[str, Any] | None = None


class ClientCreate(ClientBase):
    company_name: str = Field(min_length=1, max_length=255)
    email: EmailStr


class ClientUpdate(BaseModel):
    client_type: Literal["real_estate", "mortgage"] | None = None
    company_name: str | None = Field(default=None, min_length=1, max_length=255)
    email: EmailStr | None = None
    contact_name: str | None = None
    phone: str | None = None
    brokerage: str | None = None
    active: bool | None = None
    credits_balance: float | None = Field(default=None, ge=0)
    monthly_spend_limit: float | None = Field(default=None, ge=0)
    auto_charge_enabled: bool | None = None
    has_payment_method: bool | None = None
    current_package_id: int | None = None
    cities: list[str] | None = None
    states: list[str] | None = None
    zip_codes: list[str] | None = None
    counties: list[str] | None = None
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    employee_count: int | None = Field(default=None, ge=0)
    wants: str | None = None
    needs: str | None = None
    provides: list[str] | None = None
    preferences: dict[str, Any] | None = None


class ClientRead(ClientBase, ORMModel):
    id: int
    company_name: str
    email: str
    credits_used: float
    current_month_spend: float
    created_at: datetime
    updated_at: datetime


class EligibilityResponse(BaseModel):
    client_id: int
    eligible: bool
    needs_payment_method: bool
    credits_balance: float
    package_id: int | None
    reasons: list[str]


# Bids

class BidCreate(BaseModel):
    client_id: int
    pro_type: Literal["real_estate", "mortgage"] = "real_estate"
    cities: list[str] | None = None
    states: list[str] | None = None
    zip_codes: list[str] | None = None
    bid_amount: float = Field(default=0.0, ge=0)
    max_leads_per_month: int | None = Field(default=None, ge=0)
    min_experience: int | None = Field(default=None, ge=0)
    min_transactions: int | None = Field(default=None, ge=0)
    min_volume: float | None = Field(default=None, ge=0)
    active: bool = True


class BidUpdate(BaseModel):
    pro_type: Literal["real_estate", "mortgage"] | None = None
    cities: list[str] | None = None
    states: list[str] | None = None
    zip_codes: list[str] | None = None
    bid_amount: float | None = Field(default=None, ge=0)
    max_leads_per_month: int | None = Field(default=None, ge=0)
    min_experience: int | None = Field(default=None, ge=0)
    min_transactions: int | None = Field(default=None, ge=0)
    min_volume: float | None = Field(default=None, ge=0)
    active: bool | None = None


class BidRead(BidCreate, ORMModel):
    id: int
    created_at: datetime
    updated_at: datetime


# Admin configuration rows

FieldType = Literal["text", "textarea", "number", "currency", "array", "multi_select", "boolean", "select", "enum"]


class FieldDefinitionCreate(BaseModel):
    field_name: str = Field(min_length=1, max_length=100, pattern=r"^[a-z][a-z0-9_]*$")
    display_name: str | None = None
    field_type: FieldType
    entity_types: list[str] | None = None
    matching_weight: float = Field(default=0.0, ge=0)
    use_ai_matching: bool = False
    allowed_values: list[str] | None = None
    active: bool = True
    sort_order: int = 0


class FieldDefinitionUpdate(BaseModel):
    display_name: str | None = None
    field_type: FieldType | None = None
    entity_types: list[str] | None = None
    matching_weight: float | None = Field(default=None, ge=0)
    use_ai_matching: bool | None = None
    allowed_values: list[str] | None = None
    active: bool | None = None
    sort_order: int | None = None


class FieldDefinitionRead(FieldDefinitionCreate, ORMModel):
    id: int


SMSProviderType = Literal["twilio_primary", "twilio_backup", "messagebird"]


class SMSProviderConfigCreate(BaseModel):
    provider_type: SMSProviderType
    display_name: str | None = None
    is_active: bool = True
    is_default: bool = False
    use_for_admin: bool = True
    use_for_clients: bool = True
    priority: int = Field(default=100, ge=0)


class SMSProviderConfigUpdate(BaseModel):
    display_name: str | None = None
    is_active: bool | None = None
    is_default: bool | None = None
    use_for_admin: bool | None = None
    use_for_clients: bool | None = None
    priority: int | None = Field(default=None, ge=0)


class SMSProviderConfigRead(SMSProviderConfigCreate, ORMModel):
    id: int


class EmailTemplateCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    subject: str = Field(min_length=1, max_length=255)
    html_body: str | None = None
    text_body: str | None = None
    active: bool = True


class EmailTemplateUpdate(BaseModel):
    subject: str | None = Field(default=None, min_length=1, max_length=255)
    html_body: str | None = None
    text_body: str | None = None
    active: bool | None = None


class EmailTemplateRead(EmailTemplateCreate, ORMModel):
    id: int


class SignupLinkCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    link_slug: str | None = Field(default=None, max_length=120)
    description: str | None = None
    package_id: int | None = None
    max_uses: int | None = Field(default=None, ge=1)
    expires_at: datetime | None = None
    active: bool = True
    custom_verbiage: dict[str, Any] | None = None


class SignupLinkUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    package_id: int | None = None
    max_uses: int | None = Field(default=None, ge=1)
    expires_at: datetime | None = None
    active: bool | None = None
    custom_verbiage: dict[str, Any] | None = None


class SignupLinkRead(SignupLinkCreate, ORMModel):
    id: int
    link_slug: str
    current_uses: int


# Matching

class FieldBreakdownDTO(BaseModel):
    field_name: str
    score: float
    max_score: float
    match_type: str
    details: str


class ScoreRequest(BaseModel):
    pro_id: int
    client_id: int
    use_ai: bool = False


class ScoreResponse(BaseModel):
    pro_id: int
    client_id: int
    total_score: int
    field_scores: dict[str, FieldBreakdownDTO]
    geographic_score: float
    performance_score: float
    ai_semantic_score: float
    computed_at: str


class PreviewRequest(BaseModel):
    client_id: int | None = None


class MatchPreviewDTO(BaseModel):
    pro_id: int
    pro_name: str
    client_id: int
    client_name: str
    bid_id: int
    match_score: int
    score_breakdown: dict[str, float]
    match_reason: str
    would_create: bool
    block_reason: str | None = None
    is_perfect_match: bool = False
    wants_matched: int = 0


class PreviewResponse(BaseModel):
    previews: list[MatchPreviewDTO]
    summary: dict[str, int]


class AutoMatchResponse(BaseModel):
    success: bool
    stats: dict[str, int]
    match_ids: list[int]
    charge_failures: list[int]
    message: str


class MatchRead(ORMModel):
    id: int
    pro_id: int
    client_id: int
    bid_id: int | None
    match_score: int
    match_type: str
    status: str
    score_breakdown: dict[str, Any] | None
    pricing_tier: str | None
    cost: float | None
    purchased: bool
    auto_charged_at: datetime | None
    created_at: datetime


class ChargeResponse(BaseModel):
    success: bool
    match_id: int
    already_purchased: bool = False
    amount_charged: float = 0.0
    new_balance: float | None = None
    error: str | None = None
    required: float | None = None
    available: float | None = None


class TriggerResponse(BaseModel):
    charged: bool
    skipped: bool = False
    reason: str | None = None
    charge: ChargeResponse | None = None


# Messaging

class SMSSendRequest(BaseModel):
    to: str | list[str]
    message: str = Field(min_length=1, max_length=1600)
    provider: SMSProviderType | None = None
    context: Literal["admin", "client"] | None = None
    from_number: str | None = None
    metadata: dict[str, Any] | None = None


class RecipientResultDTO(BaseModel):
    recipient: str
    success: bool
    message_id: str | None = None
    error: str | None = None


class SMSSendResponse(BaseModel):
    success: bool
    provider: str
    from_number: str | None
    message_id: str | None
    recipients: list[RecipientResultDTO] = Field(default_factory=list)


class ConsentLogRequest(BaseModel):
    phone_number: str = Field(min_length=10, max_length=20)
    consent_method: Literal["website", "sms", "phone", "verbal"]
    consent_text: str = Field(min_length=10, max_length=2000)
    consent_given: bool = True
    double_opt_in_confirmed: bool = False


class ConsentLogResponse(BaseModel):
    success: bool
    consent_id: int


class ConsentCheckResponse(BaseModel):
    can_send: bool
    reason: str
    phone_number: str
    consent_timestamp: datetime | None = None
    double_opt_in_confirmed: bool = False


class OptOutRequest(BaseModel):
    phone_number: str = Field(min_length=10, max_length=20)
    method: Literal["website", "sms", "phone", "verbal"] = "sms"


class EmailSendRequest(BaseModel):
    to: EmailStr
    subject: str = Field(min_length=1, max_length=255)
    html: str | None = None
    text: str | None = None


class TemplateEmailRequest(BaseModel):
    template_name: str
    to: EmailStr
    variables: dict[str, Any] = Field(default_factory=dict)


class EmailSendResponse(BaseModel):
    success: bool
    to: str
    subject: str


# Payments and pricing

class PaymentLinkRequest(BaseModel):
    client_id: int
    amount: float = Field(gt=0)
    description: str = Field(min_length=1, max_length=500)
    send_via: Literal["email", "sms", "both"] = "email"
    email_message: str | None = None
    sms_message: str | None = None


class PaymentLinkResponse(BaseModel):
    success: bool
    payment_link_id: int
    url: str
    email_sent: bool
    sms_sent: bool


class PriceQuoteRequest(BaseModel):
    recruit_id: int
    client_id: int | None = None
    discount_code: str | None = None


class PriceQuoteResponse(BaseModel):
    base_price: float
    total_before_discounts: float
    final_price: float
    breakdown: dict[str, Any]


# Signup

class ProSignupRequest(BaseModel):
    first_name: str = Field(min_length=1, max_length=120)
    last_name: str = Field(min_length=1, max_length=120)
    email: EmailStr
    phone: str = Field(min_length=10, max_length=20)
    pro_type: Literal["real_estate_agent", "mortgage_officer"] = "real_estate_agent"
    brokerage: str | None = None
    experience: int | None = Field(default=None, ge=0, le=80)
    transactions: int | None = Field(default=None, ge=0)
    motivation: int | None = Field(default=None, ge=0, le=10)
    wants: list[str] = Field(default_factory=list)
    needs: str | None = None
    cities: list[str] = Field(default_factory=list)
    states: list[str] = Field(default_factory=list)
    zip_codes: list[str] = Field(default_factory=list)
    sms_consent: bool = False
    consent_text: str | None = Field(default=None, max_length=2000)


class ClientSignupRequest(BaseModel):
    company_name: str = Field(min_length=1, max_length=255)
    contact_name: str | None = None
    email: EmailStr
    phone: str | None = None
    brokerage: str | None = None
    client_type: Literal["real_estate", "mortgage"] = "real_estate"
    cities: list[str] = Field(default_factory=list)
    states: list[str] = Field(default_factory=list)
    zip_codes: list[str] = Field(default_factory=list)
    provides: list[str] = Field(default_factory=list)
    wants: str | None = None
    needs: str | None = None
    link_slug: str | None = None


class SignupResponse(BaseModel):
    status: str
    record_id: int
    created: bool
    consent_logged: bool = False
    admin_notified: bool = False


class SignupLinkStatus(BaseModel):
    valid: bool
    name: str | None = None
    package_id: int | None = None
    custom_verbiage: dict[str, Any] | None = None
    detail: str | None = None


# Integrations

class EnrichmentRequest(BaseModel):
    action: Literal["search", "enrich"]
    type: Literal["person", "company"]
    params: dict[str, Any] = Field(default_factory=dict)
    record_id: int | None = None


class EnrichmentResponse(BaseModel):
    status: int
    data: Any = None
    message: str | None = None
    record_updated: bool = False
