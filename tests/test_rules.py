"""Tests for the lead rule engine and wants matching."""

import pytest

from crm.rules import RuleEngine, RuleStatus, match_reason
from semantic.wants import WantsMatcher


@pytest.fixture
def engine():
    return RuleEngine(wants_matcher=WantsMatcher())


def agent(**overrides):
    pro = {"pro_type": "real_estate_agent", "motivation": 8, "cities": ["Austin"], "states": ["TX"]}
    pro.update(overrides)
    return pro


def brokerage(**overrides):
    client = {"client_type": "real_estate", "cities": ["Austin"], "states": ["TX"]}
    client.update(overrides)
    return client


def trace_for(traces, rule_id):
    return next(t for t in traces if t.rule_id == rule_id)


class TestHardRules:
    """Hard rules stop at the first failure, which explains the block."""

    def test_compatible_pair_passes(self, engine):
        passed, traces = engine.evaluate_hard_rules(agent(), brokerage())
        assert passed
        assert trace_for(traces, "min_exp").status == RuleStatus.SKIP
        assert trace_for(traces, "spend").status == RuleStatus.SKIP

    def test_unmotivated_pro_without_wants_fails_readiness(self, engine):
        passed, traces = engine.evaluate_hard_rules(agent(motivation=5), brokerage())
        assert not passed
        assert traces[-1].rule_id == "ready"
        assert traces[-1].reason == "Must have motivation > 5 OR both wants AND needs"
        assert len(traces) == 1

    def test_wants_and_needs_make_pro_ready(self, engine):
        passed, _ = engine.evaluate_hard_rules(
            agent(motivation=0, wants=["leads"], needs="a mentor"),
            brokerage(),
        )
        assert passed

    def test_blank_needs_do_not_count(self, engine):
        passed, _ = engine.evaluate_hard_rules(agent(motivation=0, wants=["leads"], needs="   "), brokerage())
        assert not passed

    def test_type_mismatch(self, engine):
        passed, traces = engine.evaluate_hard_rules(agent(pro_type="mortgage_officer"), brokerage())
        assert not passed
        assert traces[-1].reason == "Type mismatch: mortgage_officer vs real_estate"

    def test_bid_type_overrides_client_type(self, engine):
        bid = {"pro_type": "mortgage", "cities": ["Austin"], "states": ["TX"]}
        passed, _ = engine.evaluate_hard_rules(agent(pro_type="mortgage_officer"), brokerage(), bid)
        assert passed

    def test_bid_minimum_experience(self, engine):
        bid = {"pro_type": "real_estate", "cities": ["Austin"], "min_experience": 5}
        passed, traces = engine.evaluate_hard_rules(agent(experience=3), brokerage(), bid)
        assert not passed
        assert traces[-1].reason == "Experience 3 < 5 required"

    def test_unreported_minimum_passes(self, engine):
        bid = {"pro_type": "real_estate", "cities": ["Austin"], "min_transactions": 10}
        passed, traces = engine.evaluate_hard_rules(agent(), brokerage(), bid)
        assert passed
        assert trace_for(traces, "min_tx").reason == "Transactions not reported"

    def test_spend_limit_reached(self, engine):
        client = brokerage(monthly_spend_limit=1000, current_month_spend=800)
        passed, traces = engine.evaluate_hard_rules(agent(), client)
        assert not passed
        assert traces[-1].rule_id == "spend"

    def test_no_geographic_overlap(self, engine):
        passed, traces = engine.evaluate_hard_rules(
            agent(cities=["Denver"], states=["CO"]),
            brokerage(),
        )
        assert not passed
        assert traces[-1].reason == "No geographic overlap"

    def test_nearby_coordinates_count_as_overlap(self, engine):
        pro = agent(cities=["Round Rock"], states=[], latitude=30.5083, longitude=-97.6789)
        client = brokerage(cities=["Austin"], states=[], latitude=30.2672, longitude=-97.7431)
        passed, _ = engine.evaluate_hard_rules(pro, client)
        assert passed


class TestSoftRules:

    def test_full_agent_score(self, engine):
        pro = agent(
            zip_codes=["78701"],
            total_volume_12mo=2_500_000,
            transactions_12mo=22,
            wants=["more leads", "better split", "training"],
            motivation=9,
        )
        client = brokerage(
            zip_codes=["78701"],
            provides=["lead generation", "commission split", "coaching"],
        )
        lead = engine.score(pro, client)

        assert lead.score == 94
        assert lead.breakdown == {
            "geographic": 40,
            "performance": 19,
            "specialization": 15,
            "type_specific": 0,
            "bonus": 20,
        }
        assert lead.perfect_match
        assert lead.wants_matched == 3
        assert lead.reason == "Strong geo match (40pts), High performer, Perfect wants match, Motivation bonus"

    @pytest.mark.parametrize(
        "pro_geo, expected",
        [
            ({"zip_codes": ["78701"]}, 40),
            ({"cities": [], "states": [], "primary_neighborhoods": ["Austin"]}, 35),
            ({"cities": ["Austin"], "states": ["TX"]}, 30),
            ({"cities": ["Austin"], "states": []}, 20),
            ({"cities": [], "states": ["TX"]}, 10),
            ({"cities": ["Denver"], "states": ["CO"]}, 0),
        ],
    )
    def test_geographic_tiers(self, engine, pro_geo, expected):
        lead = engine.score(agent(**pro_geo), brokerage(zip_codes=["78701"]))
        assert lead.breakdown["geographic"] == expected

    def test_distance_band_beats_weaker_territory_tier(self, engine):
        pro = agent(cities=[], states=["TX"], latitude=30.30, longitude=-97.74)
        client = brokerage(latitude=30.2672, longitude=-97.7431)
        lead = engine.score(pro, client)
        assert lead.breakdown["geographic"] == 40

    def test_mortgage_officer_tiers(self, engine):
        pro = agent(
            pro_type="mortgage_officer",
            annual_loan_volume=30_000_000,
            on_time_close_rate=92,
            total_volume_12mo=9_000_000,
            motivation=0,
        )
        lead = engine.score(pro, brokerage(client_type="mortgage"))
        assert lead.breakdown["type_specific"] == 19
        assert lead.breakdown["performance"] == 0
        assert trace_for(lead.traces, "volume").status == RuleStatus.SKIP

    @pytest.mark.parametrize("motivation, bonus", [(9, 10), (8, 10), (7, 5), (6, 5), (5, 0)])
    def test_motivation_bonus(self, engine, motivation, bonus):
        lead = engine.score(agent(motivation=motivation, cities=[], states=[]), brokerage())
        assert lead.breakdown["bonus"] == bonus

    def test_wants_points_cap_at_three_matches(self, engine):
        pro = agent(wants=["leads", "split", "training", "marketing"], motivation=0)
        client = brokerage(provides=["leads", "split", "training", "marketing"])
        lead = engine.score(pro, client)
        assert lead.wants_matched == 4
        assert lead.breakdown["specialization"] == 15

    def test_partial_wants_have_no_perfect_bonus(self, engine):
        pro = agent(wants=["leads", "equity"], motivation=0, cities=[], states=[])
        lead = engine.score(pro, brokerage(provides=["lead generation"]))
        assert lead.breakdown["specialization"] == 5
        assert not lead.perfect_match
        assert lead.reason == "Wants aligned"


class TestWantsMatcher:

    def test_synonyms_share_canonical_want(self):
        matcher = WantsMatcher()
        assert matcher.canonicalize("lead gen") == "Leads"
        assert matcher.canonicalize("Better Split") == "Higher Split"

    def test_unknown_phrase_is_kept(self):
        assert WantsMatcher().canonicalize("zebra grooming") == "zebra grooming"

    def test_substring_match_either_way(self):
        matcher = WantsMatcher()
        assert matcher.phrases_match("leads", "more leads")
        assert matcher.phrases_match("free coffee and leads", "leads")

    def test_blank_wants_are_ignored(self):
        result = WantsMatcher().match(["", "  ", "training"], ["mentorship"])
        assert result.total_wants == 1
        assert result.matched == ["training"]

    def test_no_provides(self):
        result = WantsMatcher().match(["training"], None)
        assert result.count == 0


def test_match_reason_defaults():
    assert match_reason({}) == "Basic match"
    assert match_reason({"geographic": 10, "performance": 5}) == "Geo match, Performance"
