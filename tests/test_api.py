"""End-to-end tests for the HTTP API against an in-memory database."""

from crm import models

CSV = (
    "Agent Name,Phone Number,Email Address,City,State\n"
    "Jane Doe,(512) 555-0101,jane@austinrealty.com,Austin,Texas\n"
    "No Phone,,nophone@austinrealty.com,Austin,TX\n"
)


class TestHealth:

    async def test_health(self, api_client):
        response = await api_client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"
        assert response.headers["X-Request-ID"]

    async def test_request_id_is_echoed(self, api_client):
        response = await api_client.get("/health", headers={"X-Request-ID": "abc123"})
        assert response.headers["X-Request-ID"] == "abc123"


class TestAdminAuth:

    async def test_missing_key(self, api_client):
        api_client.headers.pop("X-Admin-Key")
        response = await api_client.get("/pros")
        assert response.status_code == 401

    async def test_wrong_key(self, api_client):
        response = await api_client.get("/clients", headers={"X-Admin-Key": "nope"})
        assert response.status_code == 401


class TestPros:

    async def test_create_normalizes_and_derives_status(self, api_client):
        response = await api_client.post("/pros", json={
            "full_name": "Jane Doe",
            "phone": "(512) 555-0101",
            "email": "Jane@AustinRealty.com",
            "cities": ["Austin"],
            "states": ["Texas"],
            "zip_codes": ["78701"],
        })
        assert response.status_code == 201
        body = response.json()
        assert body["phone"] == "+15125550101"
        assert body["email"] == "jane@austinrealty.com"
        assert body["states"] == ["TX"]
        assert body["status"] == "qualified"

    async def test_list_filters_and_update(self, api_client, make_pro):
        active = await make_pro()
        await make_pro(status="new")

        response = await api_client.get("/pros", params={"status": "active"})
        assert [p["id"] for p in response.json()] == [active.id]

        response = await api_client.patch(f"/pros/{active.id}", json={"phone": "512.555.0199", "motivation": 3})
        assert response.status_code == 200
        assert response.json()["phone"] == "+15125550199"
        assert response.json()["motivation"] == 3

    async def test_missing_pro(self, api_client):
        response = await api_client.get("/pros/404")
        assert response.status_code == 404

    async def test_invalid_body(self, api_client):
        response = await api_client.post("/pros", json={"full_name": "Jane Doe"})
        assert response.status_code == 422

    async def test_import_csv(self, api_client):
        response = await api_client.post(
            "/pros/import",
            files={"file": ("pros.csv", CSV.encode(), "text/csv")},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "partial"
        assert body["created"] == 1
        assert body["failed"] == 1
        assert body["errors"] == [{"row": 2, "error": "Phone is required"}]

        pros = (await api_client.get("/pros")).json()
        assert pros[0]["source"] == "import:pros.csv"

    async def test_import_rejects_unsupported_extension(self, api_client):
        response = await api_client.post(
            "/pros/import",
            files={"file": ("resume.pdf", b"%PDF-1.4", "application/pdf")},
        )
        assert response.status_code == 400
        assert "Unsupported file type" in response.json()["detail"]

    async def test_import_empty_file(self, api_client):
        response = await api_client.post(
            "/pros/import",
            files={"file": ("pros.csv", b"name,phone\n", "text/csv")},
        )
        assert response.status_code == 400
        assert response.json()["error"] == "parse_error"


class TestClientsAndBids:

    async def test_create_and_duplicate_email(self, api_client):
        payload = {"company_name": "Austin Realty", "email": "owner@austinrealty.com", "credits_balance": 250}
        response = await api_client.post("/clients", json=payload)
        assert response.status_code == 201
        assert response.json()["credits_used"] == 0.0

        response = await api_client.post("/clients", json=payload)
        assert response.status_code == 409

    async def test_invalid_email(self, api_client):
        response = await api_client.post("/clients", json={"company_name": "Austin Realty", "email": "not-an-email"})
        assert response.status_code == 422

    async def test_bid_lifecycle(self, api_client, make_client):
        client = await make_client()
        response = await api_client.post("/bids", json={"client_id": client.id, "cities": ["Austin"], "min_experience": 3})
        assert response.status_code == 201
        bid_id = response.json()["id"]

        response = await api_client.patch(f"/bids/{bid_id}", json={"active": False})
        assert response.json()["active"] is False

        response = await api_client.delete(f"/bids/{bid_id}")
        assert response.status_code == 204
        assert (await api_client.get(f"/bids/{bid_id}")).status_code == 404

    async def test_delete_client_removes_bids_and_matches(self, api_client, session, make_pro, make_client):
        client = await make_client()
        pro = await make_pro()
        session.add_all([
            models.Bid(client_id=client.id, cities=["Austin"]),
            models.Match(pro_id=pro.id, client_id=client.id),
        ])
        await session.commit()

        response = await api_client.delete(f"/clients/{client.id}")

        assert response.status_code == 204
        assert (await api_client.get("/bids")).json() == []
        assert (await api_client.get("/matches")).json() == []

    async def test_eligibility(self, api_client, make_client, package):
        client = await make_client(credits_balance=500.0, current_package_id=package.id)
        response = await api_client.get(f"/clients/{client.id}/eligibility")
        assert response.json()["eligible"] is True


class TestAdminTables:

    async def test_field_definitions(self, api_client):
        response = await api_client.post("/admin/field-definitions", json={
            "field_name": "cities",
            "field_type": "array",
            "matching_weight": 20,
        })
        assert response.status_code == 201
        field_id = response.json()["id"]

        response = await api_client.patch(f"/admin/field-definitions/{field_id}", json={"matching_weight": 15})
        assert response.json()["matching_weight"] == 15

        response = await api_client.get("/admin/field-definitions", params={"field_type": "text"})
        assert response.json() == []

    async def test_field_name_must_be_snake_case(self, api_client):
        response = await api_client.post("/admin/field-definitions", json={"field_name": "Zip Codes", "field_type": "array"})
        assert response.status_code == 422

    async def test_signup_link_slug_generated(self, api_client):
        response = await api_client.post("/admin/signup-links", json={"name": "Spring Promo"})
        assert response.status_code == 201
        assert response.json()["link_slug"].startswith("spring-promo-")
        assert response.json()["current_uses"] == 0


class TestMatching:

    async def test_score_pair(self, api_client, make_pro, make_client):
        await api_client.post("/admin/field-definitions", json={
            "field_name": "cities", "field_type": "array", "matching_weight": 20,
        })
        pro, client = await make_pro(), await make_client()

        response = await api_client.post("/matches/score", json={"pro_id": pro.id, "client_id": client.id})

        assert response.status_code == 200
        body = response.json()
        assert body["total_score"] == 100
        assert body["field_scores"]["cities"]["match_type"] == "overlap"

    async def test_score_missing_client(self, api_client, make_pro):
        pro = await make_pro()
        response = await api_client.post("/matches/score", json={"pro_id": pro.id, "client_id": 999})
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    async def test_preview_and_auto_match(self, api_client, session, make_pro, make_client, package):
        client = await make_client(current_package_id=package.id)
        session.add(models.Bid(client_id=client.id, cities=["Austin"], states=["TX"]))
        await session.commit()
        pro = await make_pro()

        response = await api_client.post("/matches/preview", json={})
        assert response.json()["summary"]["would_create"] == 1

        response = await api_client.post("/matches/auto")
        body = response.json()
        assert body["success"] is True
        assert body["stats"]["matches_created"] == 1

        matches = (await api_client.get("/matches", params={"pro_id": pro.id})).json()
        assert len(matches) == 1
        assert matches[0]["purchased"] is True

    async def test_charge_match(self, api_client, session, make_pro, make_client):
        client = await make_client(credits_balance=20.0)
        match = models.Match(pro_id=(await make_pro()).id, client_id=client.id)
        session.add(match)
        await session.commit()

        response = await api_client.post(f"/matches/{match.id}/charge")

        assert response.json()["success"] is False
        assert response.json()["error"] == "insufficient_credits"


class TestMessaging:

    async def test_consent_flow(self, api_client):
        response = await api_client.post("/sms/consent", json={
            "phone_number": "512-555-0100",
            "consent_method": "website",
            "consent_text": "I agree to receive recruiting texts.",
        })
        assert response.status_code == 201

        status = (await api_client.get("/sms/consent/5125550100")).json()
        assert status["can_send"] is True
        assert status["phone_number"] == "+15125550100"

        response = await api_client.post("/sms/opt-out", json={"phone_number": "5125550100"})
        assert response.json()["reason"] == "opted_out"

    async def test_sms_without_providers(self, api_client):
        response = await api_client.post("/sms/send", json={"to": "5125550100", "message": "Hello"})
        assert response.status_code == 500
        assert response.json()["error"] == "integration_not_configured"

    async def test_missing_email_template(self, api_client, monkeypatch):
        from crm.config import settings

        monkeypatch.setattr(settings.email, "sendgrid_api_key", "SG.test")
        response = await api_client.post("/email/template", json={"template_name": "nope", "to": "jane@austinrealty.com"})
        assert response.status_code == 404
        assert response.json()["error"] == "sendgrid_error"


class TestSignup:

    async def test_pro_signup_logs_consent(self, api_client):
        api_client.headers.pop("X-Admin-Key")
        response = await api_client.post("/signup/pro", json={
            "first_name": "Jane",
            "last_name": "Doe",
            "email": "jane@austinrealty.com",
            "phone": "512-555-0142",
            "cities": ["Austin"],
            "sms_consent": True,
        })
        assert response.status_code == 201
        body = response.json()
        assert body["created"] is True
        assert body["consent_logged"] is True
        assert body["admin_notified"] is False

        status = (await api_client.get("/sms/consent/5125550142")).json()
        assert status["can_send"] is True

    async def test_client_signup_through_link(self, api_client, package):
        link = (await api_client.post(
            "/admin/signup-links",
            json={"name": "Spring Promo", "link_slug": "spring", "package_id": package.id, "max_uses": 1},
        )).json()
        assert link["link_slug"] == "spring"

        status = (await api_client.get("/signup/links/spring")).json()
        assert status["valid"] is True
        assert status["package_id"] == package.id

        response = await api_client.post("/signup/client", json={
            "company_name": "Austin Realty",
            "email": "owner@austinrealty.com",
            "link_slug": "spring",
        })
        assert response.status_code == 201

        client = (await api_client.get(f"/clients/{response.json()['record_id']}")).json()
        assert client["current_package_id"] == package.id

        status = (await api_client.get("/signup/links/spring")).json()
        assert status["valid"] is False
        assert "maximum uses" in status["detail"]

    async def test_unknown_link(self, api_client):
        response = await api_client.post("/signup/client", json={
            "company_name": "Austin Realty",
            "email": "owner@austinrealty.com",
            "link_slug": "missing",
        })
        assert response.status_code == 404
        assert response.json()["error"] == "signup_error"

    async def test_duplicate_client_email(self, api_client, make_client):
        await make_client(email="owner@austinrealty.com")
        response = await api_client.post("/signup/client", json={
            "company_name": "Austin Realty",
            "email": "owner@austinrealty.com",
        })
        assert response.status_code == 409


class TestPaymentsAndPricing:

    async def test_quote_with_override(self, api_client, session, make_pro, make_client):
        pro, client = await make_pro(), await make_client()
        session.add(models.AdminPricingOverride(client_id=client.id, flat_price=250.0))
        await session.commit()

        response = await api_client.post("/pricing/quote", json={"recruit_id": pro.id, "client_id": client.id})

        assert response.status_code == 200
        assert response.json()["final_price"] == 250.0

    async def test_quote_unknown_recruit(self, api_client):
        response = await api_client.post("/pricing/quote", json={"recruit_id": 999})
        assert response.status_code == 404

    async def test_payment_link_for_missing_client(self, api_client):
        response = await api_client.post("/payments/links", json={"client_id": 999, "amount": 50, "description": "Credits"})
        assert response.status_code == 404
        assert response.json()["error"] == "stripe_error"


class TestIntegrationEndpoints:

    async def test_geocode_needs_location(self, api_client):
        response = await api_client.post("/geocode", json={})
        assert response.status_code == 422

    async def test_geocode_unconfigured(self, api_client):
        response = await api_client.post("/geocode", json={"zip": "78701"})
        assert response.status_code == 500

    async def test_enrichment_requires_admin(self, api_client):
        api_client.headers.pop("X-Admin-Key")
        response = await api_client.post("/enrichment", json={"action": "search", "type": "person"})
        assert response.status_code == 401
