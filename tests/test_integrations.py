"""Tests for third-party integrations, using httpx mock transports."""

import json
from urllib.parse import parse_qs

import httpx
import pytest
from sqlalchemy import select

from crm import models
from crm.config import SMSSettings, settings
from crm.integrations.base import IntegrationConfigError
from crm.integrations.email import EmailError, render, send_email, send_template_email
from crm.integrations.enrichment import (
    EnrichmentAction,
    EnrichmentError,
    EnrichmentType,
    apply_person_data,
    build_request,
    run_enrichment,
)
from crm.integrations.geocoding import GeocodeRequest, GeocodingError, geocode
from crm.integrations.payments import StripeClient, create_payment_link
from crm.integrations.sms import (
    SMSError,
    SMSProvider,
    configured_providers,
    resolve_fallback,
    select_provider,
    send_sms,
)
from crm.pipelines.consent import log_consent
from semantic import SemanticComparisonError
from semantic.gateway import GatewayComparer, build_user_prompt, parse_model_reply


def mock_client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def twilio(monkeypatch):
    monkeypatch.setattr(settings.sms, "twilio_account_sid", "AC123")
    monkeypatch.setattr(settings.sms, "twilio_auth_token", "secret")
    monkeypatch.setattr(settings.sms, "twilio_phone_number", "5125550000")


@pytest.fixture
def sendgrid(monkeypatch):
    monkeypatch.setattr(settings.email, "sendgrid_api_key", "SG.test")


class TestSMSProviderSelection:

    def test_configured_providers(self):
        sms = SMSSettings(twilio_account_sid="AC1", twilio_auth_token="t", twilio_phone_number="+15125550000")
        assert configured_providers(sms) == {SMSProvider.TWILIO_PRIMARY}

    def test_fallback_chain(self):
        assert resolve_fallback(SMSProvider.TWILIO_PRIMARY, {SMSProvider.MESSAGEBIRD}) == SMSProvider.MESSAGEBIRD
        assert resolve_fallback(SMSProvider.MESSAGEBIRD, {SMSProvider.MESSAGEBIRD}) == SMSProvider.MESSAGEBIRD

    def test_nothing_configured(self):
        with pytest.raises(IntegrationConfigError):
            resolve_fallback(SMSProvider.TWILIO_BACKUP, set())

    async def test_defaults_without_config_rows(self, session):
        assert await select_provider(session) == SMSProvider.TWILIO_PRIMARY

    async def test_default_row_wins_over_priority(self, session):
        session.add_all([
            models.SMSProviderConfig(provider_type="twilio_backup", priority=1),
            models.SMSProviderConfig(provider_type="messagebird", priority=5, is_default=True),
        ])
        await session.commit()
        assert await select_provider(session) == SMSProvider.MESSAGEBIRD

    async def test_context_filters_rows(self, session):
        session.add_all([
            models.SMSProviderConfig(provider_type="messagebird", is_default=True, use_for_admin=False),
            models.SMSProviderConfig(provider_type="twilio_backup", priority=2),
        ])
        await session.commit()
        assert await select_provider(session, context="admin") == SMSProvider.TWILIO_BACKUP
        assert await select_provider(session, context="client") == SMSProvider.MESSAGEBIRD

    async def test_explicit_request(self, session):
        assert await select_provider(session, "twilio_backup") == SMSProvider.TWILIO_BACKUP


class TestSendSMS:

    async def test_twilio_send_is_logged(self, session, twilio):
        def handler(request):
            assert request.url.path == "/2010-04-01/Accounts/AC123/Messages.json"
            form = parse_qs(request.content.decode())
            assert form["To"] == ["+15125550100"]
            assert form["From"] == ["+15125550000"]
            return httpx.Response(201, json={"sid": "SM1"})

        async with mock_client(handler) as http:
            result = await send_sms(session, "512-555-0100", "Hello", sent_by="admin", client=http)

        assert result.success
        assert result.message_id == "SM1"
        log = (await session.execute(select(models.SMSLog))).scalar_one()
        assert log.status == "sent"
        assert log.to_number == "+15125550100"
        assert log.sent_by == "admin"
        assert log.metadata_["provider_name"] == "Twilio Primary"
        assert not log.metadata_["is_group_message"]

    async def test_provider_rejection_raises_and_logs(self, session, twilio):
        async with mock_client(lambda request: httpx.Response(400, json={"message": "Invalid number"})) as http:
            with pytest.raises(SMSError) as exc_info:
                await send_sms(session, "5125550100", "Hello", client=http)

        assert exc_info.value.status_code == 502
        log = (await session.execute(select(models.SMSLog))).scalar_one()
        assert log.status == "failed"
        assert log.error_message == "Invalid number"

    async def test_messagebird_group_message(self, session, monkeypatch):
        monkeypatch.setattr(settings.sms, "messagebird_api_key", "mb-key")

        def handler(request):
            body = json.loads(request.content)
            assert body["recipients"] == ["+15125550100", "+15125550101"]
            assert request.headers["Authorization"] == "AccessKey mb-key"
            return httpx.Response(201, json={"id": "mb1"})

        async with mock_client(handler) as http:
            result = await send_sms(
                session, ["5125550100", "5125550101"], "Hi all", provider="messagebird", client=http,
            )

        assert result.message_id == "mb1"
        assert len(result.recipients) == 2
        log = (await session.execute(select(models.SMSLog))).scalar_one()
        assert log.metadata_["is_group_message"]
        assert log.metadata_["recipient_count"] == 2

    async def test_consent_required(self, session, twilio, monkeypatch):
        monkeypatch.setattr(settings.sms, "require_consent", True)
        with pytest.raises(SMSError) as exc_info:
            await send_sms(session, "5125550100", "Hello")
        assert exc_info.value.status_code == 403

    async def test_consented_number_can_be_texted(self, session, twilio, monkeypatch):
        monkeypatch.setattr(settings.sms, "require_consent", True)
        await log_consent(
            session, phone_number="5125550100", consent_method="website", consent_text="I agree to texts.",
        )
        async with mock_client(lambda request: httpx.Response(201, json={"sid": "SM2"})) as http:
            result = await send_sms(session, "5125550100", "Hello", client=http)
        assert result.success


class TestEmail:

    def test_render_leaves_unknown_placeholders(self):
        assert render("Hi {{name}}, {{missing}}", {"name": "Jane"}) == "Hi Jane, {{missing}}"
        assert render(None, {}) is None

    async def test_send_email(self, session, sendgrid):
        def handler(request):
            body = json.loads(request.content)
            assert body["personalizations"] == [{"to": [{"email": "jane@example.com"}]}]
            assert [c["type"] for c in body["content"]] == ["text/plain", "text/html"]
            return httpx.Response(202)

        async with mock_client(handler) as http:
            result = await send_email(
                session, to="jane@example.com", subject="Welcome", html="<p>Hi</p>", text="Hi", client=http,
            )

        assert result.success
        log = (await session.execute(select(models.EmailLog))).scalar_one()
        assert log.status == "sent"

    async def test_missing_fields(self, session, sendgrid):
        with pytest.raises(EmailError) as exc_info:
            await send_email(session, to="jane@example.com", subject="Welcome")
        assert exc_info.value.status_code == 400

    async def test_unconfigured(self, session):
        with pytest.raises(IntegrationConfigError):
            await send_email(session, to="jane@example.com", subject="Welcome", text="Hi")

    async def test_template(self, session, sendgrid):
        session.add(models.EmailTemplate(name="welcome", subject="Welcome {{name}}", text_body="Hello {{name}}"))
        await session.commit()

        async with mock_client(lambda request: httpx.Response(202)) as http:
            result = await send_template_email(session, "welcome", to="jane@example.com", variables={"name": "Jane"}, client=http)

        assert result.subject == "Welcome Jane"

    async def test_missing_template(self, session, sendgrid):
        with pytest.raises(EmailError) as exc_info:
            await send_template_email(session, "nope", to="jane@example.com")
        assert exc_info.value.status_code == 404


class TestGateway:
    """Chat-completions similarity with a neutral fallback."""

    def test_parse_fenced_json(self):
        score = parse_model_reply('```json\n{"score": 0.9, "reasoning": "close"}\n```')
        assert score.score == 0.9
        assert score.reasoning == "close"

    def test_unparseable_reply_is_neutral(self):
        assert parse_model_reply("they are similar").score == 0.5

    def test_score_is_clamped(self):
        assert parse_model_reply('{"score": 1.7}').score == 1.0

    def test_prompt_names_field(self):
        assert '"needs"' in build_user_prompt("a", "b", "needs")

    async def test_compare(self):
        def handler(request):
            body = json.loads(request.content)
            assert body["model"] == "test-model"
            assert request.headers["Authorization"] == "Bearer key"
            reply = {"score": 0.75, "reasoning": "both want mentoring"}
            return httpx.Response(200, json={"choices": [{"message": {"content": json.dumps(reply)}}]})

        async with mock_client(handler) as http:
            comparer = GatewayComparer(api_key="key", url="https://gateway.test/v1", model="test-model", client=http)
            result = await comparer.compare("mentor", "coaching", "needs")

        assert result.score == 0.75

    async def test_http_error(self):
        async with mock_client(lambda request: httpx.Response(500)) as http:
            comparer = GatewayComparer(api_key="key", url="https://gateway.test/v1", client=http)
            with pytest.raises(SemanticComparisonError):
                await comparer.compare("a", "b", "needs")

    async def test_missing_key(self):
        with pytest.raises(SemanticComparisonError):
            await GatewayComparer(api_key=None).compare("a", "b", "needs")


class TestGeocoding:

    def test_request_needs_a_location(self):
        with pytest.raises(ValueError):
            GeocodeRequest()

    def test_query_params(self):
        assert GeocodeRequest(city="Austin", state="TX").query_params() == {"address": "Austin, TX"}
        assert GeocodeRequest(lat=30.1, lng=-97.2).query_params() == {"latlng": "30.1,-97.2"}

    async def test_geocode(self, monkeypatch):
        monkeypatch.setattr(settings.geocoding, "google_api_key", "g-key")
        payload = {
            "status": "OK",
            "results": [{
                "formatted_address": "Austin, TX 78701, USA",
                "address_components": [
                    {"long_name": "Austin", "short_name": "Austin", "types": ["locality"]},
                    {"long_name": "Texas", "short_name": "TX", "types": ["administrative_area_level_1"]},
                    {"long_name": "78701", "short_name": "78701", "types": ["postal_code"]},
                ],
                "geometry": {"location": {"lat": 30.27, "lng": -97.74}},
                "place_id": "abc",
            }],
        }

        def handler(request):
            assert request.url.params["key"] == "g-key"
            return httpx.Response(200, json=payload)

        async with mock_client(handler) as http:
            result = await geocode(GeocodeRequest(zip="78701"), client=http)

        assert result.city == "Austin"
        assert result.state_code == "TX"
        assert result.zip == "78701"
        assert result.lat == 30.27

    async def test_zero_results(self, monkeypatch):
        monkeypatch.setattr(settings.geocoding, "google_api_key", "g-key")
        async with mock_client(lambda request: httpx.Response(200, json={"status": "ZERO_RESULTS", "results": []})) as http:
            with pytest.raises(GeocodingError) as exc_info:
                await geocode(GeocodeRequest(address="nowhere"), client=http)
        assert exc_info.value.status_code == 404


class TestEnrichment:

    @pytest.fixture(autouse=True)
    def pdl_key(self, monkeypatch):
        monkeypatch.setattr(settings.enrichment, "pdl_api_key", "pdl-key")

    def test_search_request(self):
        path, body = build_request(EnrichmentAction.SEARCH, EnrichmentType.PERSON, {"email": "jane@example.com", "location": "Austin"})
        assert path == "person/search"
        assert body["query"]["bool"]["must"] == [
            {"term": {"emails": "jane@example.com"}},
            {"term": {"location_name": "Austin"}},
        ]

    def test_apply_person_data(self):
        pro = models.Pro(full_name="Jane Doe", phone="+15125550100", notes="Met at expo")
        apply_person_data(pro, {"job_title": "Realtor", "location_name": "Austin, Texas", "experience": [{}, {}]}, "2026-01-01")
        assert pro.job_title == "Realtor"
        assert pro.cities == ["Austin"]
        assert pro.states == ["Texas"]
        assert pro.experience == 2
        assert pro.notes.startswith("Met at expo\n\n--- PDL Enrichment Data (2026-01-01) ---")

    async def test_enrich_updates_record(self, session, make_pro):
        pro = await make_pro()

        def handler(request):
            assert request.url.path.endswith("/person/enrich")
            return httpx.Response(200, json={"status": 200, "data": {"job_company_name": "Realty Co"}})

        async with mock_client(handler) as http:
            result = await run_enrichment(
                session, action="enrich", kind="person", params={"email": pro.email}, record_id=pro.id, client=http,
            )

        assert result.record_updated
        assert pro.company == "Realty Co"

    async def test_not_found_is_empty_result(self, session):
        async with mock_client(lambda request: httpx.Response(404, json={"error": "none"})) as http:
            result = await run_enrichment(session, action="enrich", kind="person", params={}, client=http)
        assert result.status == 404
        assert result.message == "No data found"

    async def test_api_error(self, session):
        async with mock_client(lambda request: httpx.Response(402, json={"error": "out of credits"})) as http:
            with pytest.raises(EnrichmentError) as exc_info:
                await run_enrichment(session, action="search", kind="company", params={"name": "x"}, client=http)
        assert exc_info.value.status_code == 402


class TestPaymentLinks:

    async def test_create_and_email_link(self, session, make_client, sendgrid):
        client = await make_client()
        seen = []

        def handler(request):
            seen.append(request.url.path)
            if request.url.path.endswith("/prices"):
                form = parse_qs(request.content.decode())
                assert form["unit_amount"] == ["12550"]
                return httpx.Response(200, json={"id": "price_1"})
            if request.url.path.endswith("/payment_links"):
                return httpx.Response(200, json={"id": "plink_1", "url": "https://buy.stripe.com/test"})
            return httpx.Response(202)

        async with mock_client(handler) as http:
            result = await create_payment_link(
                session,
                client_id=client.id,
                amount=125.50,
                description="Lead credits",
                created_by="admin",
                stripe=StripeClient("sk_test", client=http),
                http=http,
            )

        assert result.url == "https://buy.stripe.com/test"
        assert result.email_sent
        assert not result.sms_sent
        assert seen == ["/v1/prices", "/v1/payment_links", "/v3/mail/send"]
        row = await session.get(models.PaymentLink, result.payment_link_id)
        assert row.provider_link_id == "plink_1"

    def test_stripe_requires_key(self):
        with pytest.raises(IntegrationConfigError):
            StripeClient()
