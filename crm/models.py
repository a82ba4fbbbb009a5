"""Core SQLAlchemy models (2.x style) for the CRM schema.

Flat relational rows: only foreign keys and uniqueness are enforced by the
database. List-valued attributes are JSON arrays so the schema runs on both
PostgreSQL and SQLite.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    """Naive UTC timestamp, the storage convention for every DateTime column."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Base class for all models."""

    def to_dict(self) -> dict:
        """Column attributes keyed by attribute name (``metadata_`` stays suffixed)."""
        return {attr.key: getattr(self, attr.key) for attr in self.__mapper__.column_attrs}


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )


class PricingPackage(TimestampMixin, Base):
    """Subscription packages a client can be on."""
    __tablename__ = "pricing_packages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    monthly_cost: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    leads_per_month: Mapped[int | None] = mapped_column(Integer)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class Pro(TimestampMixin, Base):
    """Recruiting candidates: real-estate agents and loan officers."""
    __tablename__ = "pros"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    pro_type: Mapped[str] = mapped_column(String(50), default="real_estate_agent", nullable=False, index=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    first_name: Mapped[str | None] = mapped_column(String(120))
    last_name: Mapped[str | None] = mapped_column(String(120))
    email: Mapped[str | None] = mapped_column(String(255), index=True)
    phone: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    status: Mapped[str] = mapped_column(String(50), default="new", nullable=False, index=True)
    pipeline_stage: Mapped[str] = mapped_column(String(50), default="new", nullable=False, index=True)

    # Geography
    cities: Mapped[list | None] = mapped_column(JSON)
    states: Mapped[list | None] = mapped_column(JSON)
    zip_codes: Mapped[list | None] = mapped_column(JSON)
    counties: Mapped[list | None] = mapped_column(JSON)
    primary_neighborhoods: Mapped[list | None] = mapped_column(JSON)
    latitude: Mapped[float | None] = mapped_column(Float)
    longitude: Mapped[float | None] = mapped_column(Float)

    # Performance
    experience: Mapped[int | None] = mapped_column(Integer)
    transactions: Mapped[int | None] = mapped_column(Integer)
    transactions_12mo: Mapped[int | None] = mapped_column(Integer)
    total_volume_12mo: Mapped[float | None] = mapped_column(Float)
    qualification_score: Mapped[float | None] = mapped_column(Float)
    annual_loan_volume: Mapped[float | None] = mapped_column(Float)
    on_time_close_rate: Mapped[float | None] = mapped_column(Float)

    # Recruiting signals
    motivation: Mapped[int | None] = mapped_column(Integer)
    wants: Mapped[list | None] = mapped_column(JSON)
    needs: Mapped[str | None] = mapped_column(Text)
    specializations: Mapped[list | None] = mapped_column(JSON)
    skills: Mapped[list | None] = mapped_column(JSON)
    tags: Mapped[list | None] = mapped_column(JSON)

    brokerage: Mapped[str | None] = mapped_column(String(255))
    company: Mapped[str | None] = mapped_column(String(255))
    job_title: Mapped[str | None] = mapped_column(String(255))
    license_type: Mapped[str | None] = mapped_column(String(100))
    nmls_id: Mapped[str | None] = mapped_column(String(50))
    loan_types_specialized: Mapped[list | None] = mapped_column(JSON)
    notes: Mapped[str | None] = mapped_column(Text)
    source: Mapped[str | None] = mapped_column(String(100))
    metadata_: Mapped[dict | None] = mapped_column("metadata", JSON)

    __table_args__ = (
        Index("ix_pros_stage_status", "pipeline_stage", "status"),
    )


class Client(TimestampMixin, Base):
    """Brokerages and lenders that purchase leads."""
    __tablename__ = "clients"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    client_type: Mapped[str] = mapped_column(String(50), default="real_estate", nullable=False, index=True)
    company_name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    contact_name: Mapped[str | None] = mapped_column(String(255))
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    phone: Mapped[str | None] = mapped_column(String(32))
    brokerage: Mapped[str | None] = mapped_column(String(255))
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)

    # Billing
    credits_balance: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    credits_used: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    monthly_spend_limit: Mapped[float | None] = mapped_column(Float)
    current_month_spend: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    auto_charge_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    has_payment_method: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    current_package_id: Mapped[int | None] = mapped_column(
        ForeignKey("pricing_packages.id", ondelete="SET NULL"),
    )

    # Geography
    cities: Mapped[list | None] = mapped_column(JSON)
    states: Mapped[list | None] = mapped_column(JSON)
    zip_codes: Mapped[list | None] = mapped_column(JSON)
    counties: Mapped[list | None] = mapped_column(JSON)
    latitude: Mapped[float | None] = mapped_column(Float)
    longitude: Mapped[float | None] = mapped_column(Float)
    employee_count: Mapped[int | None] = mapped_column(Integer)

    wants: Mapped[str | None] = mapped_column(Text)
    needs: Mapped[str | None] = mapped_column(Text)
    provides: Mapped[list | None] = mapped_column(JSON)
    preferences: Mapped[dict | None] = mapped_column(JSON)


class Bid(TimestampMixin, Base):
    """A client's standing offer to buy leads in a territory."""
    __tablename__ = "bids"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    client_id: Mapped[int] = mapped_column(
        ForeignKey("clients.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    pro_type: Mapped[str] = mapped_column(String(50), default="real_estate", nullable=False)
    cities: Mapped[list | None] = mapped_column(JSON)
    states: Mapped[list | None] = mapped_column(JSON)
    zip_codes: Mapped[list | None] = mapped_column(JSON)
    bid_amount: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    max_leads_per_month: Mapped[int | None] = mapped_column(Integer)
    min_experience: Mapped[int | None] = mapped_column(Integer)
    min_transactions: Mapped[int | None] = mapped_column(Integer)
    min_volume: Mapped[float | None] = mapped_column(Float)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)


class FieldDefinition(TimestampMixin, Base):
    """Admin-managed field metadata; weighted fields drive the match scorer."""
    __tablename__ = "field_definitions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    field_name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    display_name: Mapped[str | None] = mapped_column(String(255))
    field_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_types: Mapped[list | None] = mapped_column(JSON)
    matching_weight: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    use_ai_matching: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    allowed_values: Mapped[list | None] = mapped_column(JSON)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


class Match(TimestampMixin, Base):
    """A scored pairing between a pro and a client."""
    __tablename__ = "matches"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    pro_id: Mapped[int] = mapped_column(ForeignKey("pros.id", ondelete="CASCADE"), nullable=False, index=True)
    client_id: Mapped[int] = mapped_column(ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)
    bid_id: Mapped[int | None] = mapped_column(ForeignKey("bids.id", ondelete="SET NULL"))
    match_score: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    match_type: Mapped[str] = mapped_column(String(50), default="lead_purchase", nullable=False)
    status: Mapped[str] = mapped_column(String(50), default="pending", nullable=False)
    score_breakdown: Mapped[dict | None] = mapped_column(JSON)
    pricing_tier: Mapped[str | None] = mapped_column(String(50))
    cost: Mapped[float | None] = mapped_column(Float)
    purchased: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    auto_charged_at: Mapped[datetime | None] = mapped_column(DateTime)

    __table_args__ = (
        UniqueConstraint("pro_id", "client_id", name="uq_matches_pro_client"),
    )


class SMSProviderConfig(TimestampMixin, Base):
    """Admin toggles for which SMS provider handles which traffic."""
    __tablename__ = "sms_provider_configs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    provider_type: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    display_name: Mapped[str | None] = mapped_column(String(255))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    use_for_admin: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    use_for_clients: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    priority: Mapped[int] = mapped_column(Integer, default=100, nullable=False)


class SMSLog(Base):
    __tablename__ = "sms_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    provider_type: Mapped[str] = mapped_column(String(50), nullable=False)
    to_number: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    from_number: Mapped[str | None] = mapped_column(String(32))
    message_body: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    external_id: Mapped[str | None] = mapped_column(String(255))
    error_message: Mapped[str | None] = mapped_column(Text)
    sent_by: Mapped[str | None] = mapped_column(String(255))
    metadata_: Mapped[dict | None] = mapped_column("metadata", JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class SMSConsentLog(Base):
    """TCPA consent audit trail; the latest row per phone wins."""
    __tablename__ = "sms_consent_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    phone_number: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    consent_given: Mapped[bool] = mapped_column(Boolean, nullable=False)
    consent_timestamp: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    consent_method: Mapped[str] = mapped_column(String(50), nullable=False)
    consent_text: Mapped[str] = mapped_column(Text, nullable=False)
    ip_address: Mapped[str | None] = mapped_column(String(64))
    user_agent: Mapped[str | None] = mapped_column(String(512))
    double_opt_in_confirmed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    opt_out_timestamp: Mapped[datetime | None] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class EmailTemplate(TimestampMixin, Base):
    __tablename__ = "email_templates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    subject: Mapped[str] = mapped_column(String(255), nullable=False)
    html_body: Mapped[str | None] = mapped_column(Text)
    text_body: Mapped[str | None] = mapped_column(Text)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class EmailLog(Base):
    __tablename__ = "email_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    to_email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    subject: Mapped[str] = mapped_column(String(255), nullable=False)
    template_name: Mapped[str | None] = mapped_column(String(100))
    provider: Mapped[str] = mapped_column(String(50), default="sendgrid", nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    error_message: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class PaymentLink(Base):
    __tablename__ = "payment_links"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    client_id: Mapped[int] = mapped_column(ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    provider_link_id: Mapped[str | None] = mapped_column(String(255))
    url: Mapped[str | None] = mapped_column(String(1024))
    sent_via: Mapped[str] = mapped_column(String(20), default="email", nullable=False)
    email_message: Mapped[str | None] = mapped_column(Text)
    sms_message: Mapped[str | None] = mapped_column(Text)
    created_by: Mapped[str | None] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class PaymentActivityLog(Base):
    __tablename__ = "payment_activity_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    client_id: Mapped[int | None] = mapped_column(ForeignKey("clients.id", ondelete="SET NULL"), index=True)
    activity_type: Mapped[str] = mapped_column(String(100), nullable=False)
    amount: Mapped[float | None] = mapped_column(Float)
    currency: Mapped[str] = mapped_column(String(3), default="usd", nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    error_message: Mapped[str | None] = mapped_column(Text)
    metadata_: Mapped[dict | None] = mapped_column("metadata", JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class PricingConfig(TimestampMixin, Base):
    """Recruit price building blocks: base price, add-on tiers and time discounts."""
    __tablename__ = "pricing_configs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    config_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    tier_name: Mapped[str] = mapped_column(String(100), nullable=False)
    min_value: Mapped[float | None] = mapped_column(Float)
    max_value: Mapped[float | None] = mapped_column(Float)
    price_modifier: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class DiscountCode(TimestampMixin, Base):
    __tablename__ = "discount_codes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    discount_type: Mapped[str] = mapped_column(String(20), nullable=False)
    discount_value: Mapped[float] = mapped_column(Float, nullable=False)
    max_uses: Mapped[int | None] = mapped_column(Integer)
    current_uses: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class AdminPricingOverride(TimestampMixin, Base):
    __tablename__ = "admin_pricing_overrides"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    client_id: Mapped[int] = mapped_column(ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)
    flat_price: Mapped[float | None] = mapped_column(Float)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class SignupLink(TimestampMixin, Base):
    """Shareable client signup URLs with optional usage caps."""
    __tablename__ = "signup_links"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    link_slug: Mapped[str] = mapped_column(String(120), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text)
    package_id: Mapped[int | None] = mapped_column(ForeignKey("pricing_packages.id", ondelete="SET NULL"))
    max_uses: Mapped[int | None] = mapped_column(Integer)
    current_uses: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    custom_verbiage: Mapped[dict | None] = mapped_column(JSON)


class RateLimitCounter(Base):
    __tablename__ = "rate_limit_counters"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    identifier: Mapped[str] = mapped_column(String(255), nullable=False)
    endpoint: Mapped[str] = mapped_column(String(100), nullable=False)
    window_start: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    request_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    __table_args__ = (
        UniqueConstraint("identifier", "endpoint", "window_start", name="uq_rate_limit_window"),
    )
