"""Tests for pair scoring, bid previews and auto-matching."""

import pytest
from sqlalchemy import func, select

from crm import models
from crm.pipelines.matching import (
    MatchingNotFoundError,
    auto_match,
    load_field_specs,
    preview_matches,
    score_pro_client,
)
from crm.rules import RuleEngine
from semantic.wants import WantsMatcher
from tests.conftest import FakeComparer


@pytest.fixture
def rule_engine():
    return RuleEngine(wants_matcher=WantsMatcher())


async def add_fields(session, *rows):
    session.add_all(models.FieldDefinition(**row) for row in rows)
    await session.commit()


async def match_count(session):
    return (await session.execute(select(func.count(models.Match.id)))).scalar_one()


class TestScoreProClient:

    async def test_scores_over_active_weighted_fields(self, session, make_pro, make_client):
        await add_fields(
            session,
            {"field_name": "zip_codes", "field_type": "array", "matching_weight": 25},
            {"field_name": "cities", "field_type": "array", "matching_weight": 20},
            {"field_name": "brokerage", "field_type": "text", "matching_weight": 0},
            {"field_name": "states", "field_type": "array", "matching_weight": 10, "active": False},
        )
        pro = await make_pro(zip_codes=["78701"], cities=["Austin"])
        client = await make_client(zip_codes=["78701"], cities=["Austin", "Round Rock"])

        pair = await score_pro_client(session, pro.id, client.id)

        assert pair.breakdown.total_score == 78
        assert pair.breakdown.geographic_score == 35.0
        assert list(pair.breakdown.field_scores) == ["zip_codes", "cities"]

    async def test_ai_scoring_uses_comparer(self, session, make_pro, make_client):
        await add_fields(
            session,
            {"field_name": "needs", "field_type": "textarea", "matching_weight": 10, "use_ai_matching": True},
        )
        pro = await make_pro(needs="mentorship for new agents")
        client = await make_client(needs="structured training program")
        comparer = FakeComparer(score=0.8)

        pair = await score_pro_client(session, pro.id, client.id, use_ai=True, comparer=comparer)

        assert pair.breakdown.total_score == 80
        assert pair.breakdown.ai_semantic_score == 8.0
        assert comparer.calls[0][2] == "needs"

    async def test_seeded_catalog_loads_heaviest_first(self, session, seeded_fields):
        specs = await load_field_specs(session)
        assert specs[0].field_name == "zip_codes"
        assert "brokerage" not in {s.field_name for s in specs}

    async def test_missing_client(self, session, make_pro):
        pro = await make_pro()
        with pytest.raises(MatchingNotFoundError):
            await score_pro_client(session, pro.id, 404)


class TestPreview:
    """Previews never write matches."""

    async def test_preview_against_bids(self, session, rule_engine, make_pro, make_client, package):
        client = await make_client(credits_balance=500.0, current_package_id=package.id)
        session.add(models.Bid(client_id=client.id, pro_type="real_estate", cities=["Austin"], states=["TX"]))
        await session.commit()

        ready = await make_pro(full_name="Ready Agent")
        officer = await make_pro(full_name="Loan Officer", pro_type="mortgage_officer")

        report = await preview_matches(session, engine=rule_engine)

        assert report.summary == {
            "total_pros": 2,
            "eligible_clients": 1,
            "potential_matches": 2,
            "would_create": 1,
            "blocked": 1,
        }
        by_pro = {p.pro_id: p for p in report.previews}
        assert by_pro[ready.id].would_create
        assert by_pro[ready.id].match_score == 40
        assert by_pro[officer.id].block_reason == "Type mismatch: mortgage_officer vs real_estate"
        assert by_pro[officer.id].match_score == 0
        assert report.previews[0].pro_id == ready.id
        assert await match_count(session) == 0

    async def test_existing_match_blocks(self, session, rule_engine, make_pro, make_client, package):
        client = await make_client(current_package_id=package.id)
        session.add(models.Bid(client_id=client.id, cities=["Austin"], states=["TX"]))
        pro = await make_pro()
        session.add(models.Match(pro_id=pro.id, client_id=client.id))
        await session.commit()

        report = await preview_matches(session, engine=rule_engine)

        assert report.previews[0].block_reason == "Match already exists"

    async def test_clients_without_package_are_excluded(self, session, rule_engine, make_pro, make_client):
        client = await make_client()
        session.add(models.Bid(client_id=client.id, cities=["Austin"]))
        await make_pro()

        report = await preview_matches(session, engine=rule_engine)

        assert report.summary["eligible_clients"] == 0
        assert report.previews == []


class TestAutoMatch:

    async def test_creates_and_charges_matches(self, session, rule_engine, make_pro, make_client):
        client = await make_client(credits_balance=1000.0)
        ready = await make_pro()
        await make_pro(motivation=2)
        await make_pro(pro_type="mortgage_officer", motivation=9)
        await make_pro(cities=["Denver"], states=["CO"])

        report = await auto_match(session, engine=rule_engine)

        assert report.stats["pros_processed"] == 3
        assert report.stats["matches_created"] == 1
        assert report.stats["type_mismatches"] == 1
        assert report.stats["no_overlap"] == 1
        assert report.stats["criteria_failed"] == 1
        assert report.charge_failures == []

        match = await session.get(models.Match, report.match_ids[0])
        assert match.pro_id == ready.id
        assert match.purchased
        assert match.score_breakdown["reason"]
        assert client.credits_balance == 950.0
        assert ready.pipeline_stage == "matched"

    async def test_rerun_creates_nothing_new(self, session, rule_engine, make_pro, make_client):
        await make_client()
        await make_pro()

        await auto_match(session, engine=rule_engine, charge=False)
        second = await auto_match(session, engine=rule_engine, charge=False)

        assert second.stats["matches_created"] == 0
        assert await match_count(session) == 1

    async def test_unready_pros_counted_as_criteria_failures(self, session, rule_engine, make_pro, make_client):
        await make_client()
        await make_pro(motivation=2)
        await make_pro(motivation=3, wants=["leads"], needs="   ")

        report = await auto_match(session, engine=rule_engine, charge=False)

        assert report.stats["criteria_failed"] == 2
        assert report.stats["pros_processed"] == 0
        assert report.stats["clients_checked"] == 0
        assert await match_count(session) == 0

    async def test_spend_limit_blocks(self, session, rule_engine, make_pro, make_client):
        await make_client(monthly_spend_limit=100.0)
        await make_pro()

        report = await auto_match(session, engine=rule_engine)

        assert report.stats["spend_limit_reached"] == 1
        assert report.match_ids == []

    async def test_failed_charge_is_reported(self, session, rule_engine, make_pro, make_client):
        await make_client(credits_balance=10.0)
        await make_pro()

        report = await auto_match(session, engine=rule_engine)

        assert report.stats["matches_created"] == 1
        assert report.charge_failures == report.match_ids
