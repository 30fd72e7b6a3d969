"""
tests/test_scoring.py — Unit tests for the lead scoring calculator.

compute_scores() is pure, so every test builds plain LeadSignals /
ProfileSignals values and pins `as_of` to keep lead-age decay deterministic.
"""

from dataclasses import replace
from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest

from leadengine.services import scoring
from leadengine.services.scoring import (
    LeadSignals,
    ProfileSignals,
    ScoreCard,
    compute_scores,
    engagement_score,
    intent_score,
    is_assignable,
    is_plausible_email,
    lead_quality_score,
    overall_score,
    score_lead,
    zip_tier,
)
from leadengine.services.weights import CURRENT_WEIGHTS

CREATED = datetime(2025, 3, 1, 9, 0, 0)


@pytest.fixture
def hot_lead():
    """A complete quote request from a high-value ZIP."""
    return LeadSignals(
        email="ann@example.com",
        phone="508-555-0100",
        name="Ann",
        zip="02481",
        room_type="kitchen",
        style="Contemporary Luxe",
        render_count=1,
        wants_quote=True,
        created_at=CREATED,
    )


@pytest.fixture
def bare_lead():
    """Email only: the minimum a lead-producing event carries."""
    return LeadSignals(email="a@x.com", created_at=CREATED)


# ── Helpers ───────────────────────────────────────────────────────────────────

class TestRounding:
    def test_half_rounds_up(self):
        assert scoring._round(0.5) == 1
        assert scoring._round(2.5) == 3

    def test_below_half_rounds_down(self):
        assert scoring._round(1.49) == 1

    def test_clamp_bounds(self):
        assert scoring._clamp(-12) == 0
        assert scoring._clamp(140) == 100


class TestZipTier:
    def test_high_value_zip(self):
        assert zip_tier("02481") == "high"

    def test_medium_value_zip(self):
        assert zip_tier("01701") == "medium"

    def test_serviced_zip(self):
        assert zip_tier("01718") == "standard"

    def test_outside_region(self):
        assert zip_tier("90210") == "outside"

    def test_missing_zip(self):
        assert zip_tier(None) == "outside"


class TestEmailPlausibility:
    def test_valid(self):
        assert is_plausible_email("someone@example.com")

    def test_missing_domain(self):
        assert not is_plausible_email("someone@")

    def test_none(self):
        assert not is_plausible_email(None)


# ── Sub-scores ────────────────────────────────────────────────────────────────

class TestIntentScore:
    def test_email_only(self, bare_lead):
        assert intent_score(bare_lead) == 25

    def test_email_and_quote(self, bare_lead):
        assert intent_score(replace(bare_lead, wants_quote=True)) == 55

    def test_complete_quote_request(self, hot_lead):
        assert intent_score(hot_lead) == 85

    def test_extra_renders_add_five_each(self, bare_lead):
        assert intent_score(replace(bare_lead, render_count=3)) == 35

    def test_extra_renders_capped(self, bare_lead):
        assert intent_score(replace(bare_lead, render_count=10)) == 40

    def test_social_engagement(self, bare_lead):
        assert intent_score(replace(bare_lead, social_engaged=True)) == 35

    @pytest.mark.parametrize("overrides", [
        {},
        {"wants_quote": True},
        {"name": "Ann", "render_count": 10},
        {"social_engaged": True, "wants_quote": True, "render_count": 4},
    ])
    def test_phone_never_lowers_intent(self, bare_lead, overrides):
        without_phone = replace(bare_lead, **overrides)
        with_phone = replace(without_phone, phone="508-555-0100")
        assert intent_score(with_phone) >= intent_score(without_phone)

    @pytest.mark.parametrize("overrides", [
        {},
        {"phone": "508-555-0100"},
        {"name": "Ann", "render_count": 10, "social_engaged": True},
    ])
    def test_quote_request_never_lowers_intent(self, bare_lead, overrides):
        passive = replace(bare_lead, **overrides)
        assert intent_score(replace(passive, wants_quote=True)) >= intent_score(passive)


class TestEngagementScore:
    def test_no_profile_counts_the_lead_render(self, bare_lead):
        assert engagement_score(ProfileSignals(), bare_lead) == 10

    def test_profile_history(self, bare_lead):
        profile = ProfileSignals(login_count=3, total_time_on_site_ms=600_000, ai_renderings_count=5)
        # 15 (logins) + 10 (minutes) + 40 (renderings, capped)
        assert engagement_score(profile, bare_lead) == 65

    def test_repeat_visitor_bonus(self, bare_lead):
        profile = ProfileSignals(login_count=3, total_time_on_site_ms=600_000, ai_renderings_count=5)
        assert engagement_score(profile, replace(bare_lead, is_repeat_visitor=True)) == 70

    def test_capped_at_100(self, bare_lead):
        profile = ProfileSignals(login_count=50, total_time_on_site_ms=10**9, ai_renderings_count=50)
        assert engagement_score(profile, replace(bare_lead, is_repeat_visitor=True)) == 100


class TestLeadQualityScore:
    def test_intent_share_only(self, bare_lead):
        assert lead_quality_score(25, bare_lead) == 15

    def test_medium_zip(self, bare_lead):
        assert lead_quality_score(25, replace(bare_lead, zip="01701")) == 30

    def test_serviced_zip(self, bare_lead):
        assert lead_quality_score(25, replace(bare_lead, zip="01718")) == 20

    def test_high_value_room(self, bare_lead):
        assert lead_quality_score(25, replace(bare_lead, room_type="kitchen")) == 35

    def test_style_is_normalised(self, bare_lead):
        # "Modern Minimalist" → modern-minimalist (1.2) → 3.75 points
        assert lead_quality_score(25, replace(bare_lead, style="Modern  Minimalist")) == 19

    def test_invalid_email_penalty_floors_at_zero(self, bare_lead):
        assert lead_quality_score(25, replace(bare_lead, email="not-an-email")) == 0

    def test_clamped_at_100(self, hot_lead):
        assert lead_quality_score(85, hot_lead) == 100


class TestProbabilityToClose:
    def test_fresh_hot_lead(self, hot_lead):
        assert compute_scores(None, hot_lead, as_of=CREATED).probability_to_close_score == 66

    def test_stale_new_lead_penalty(self, hot_lead):
        card = compute_scores(None, hot_lead, as_of=CREATED + timedelta(days=10))
        assert card.probability_to_close_score == 56

    def test_old_lead_penalty(self, hot_lead):
        card = compute_scores(None, hot_lead, as_of=CREATED + timedelta(days=31))
        assert card.probability_to_close_score == 41

    def test_ancient_lead_penalty(self, hot_lead):
        card = compute_scores(None, hot_lead, as_of=CREATED + timedelta(days=91))
        assert card.probability_to_close_score == 16

    def test_contacted_bonus_and_no_stale_penalty(self, hot_lead):
        card = compute_scores(None, replace(hot_lead, status="contacted"), as_of=CREATED + timedelta(days=10))
        assert card.probability_to_close_score == 71

    def test_converted_is_certain(self, hot_lead):
        card = compute_scores(None, replace(hot_lead, status="converted"), as_of=CREATED)
        assert card.probability_to_close_score == 100

    @pytest.mark.parametrize("status", ["dead", "unqualified"])
    def test_closed_out_is_zero(self, hot_lead, status):
        card = compute_scores(None, replace(hot_lead, status=status), as_of=CREATED)
        assert card.probability_to_close_score == 0

    @pytest.mark.parametrize("status", ["new", "assigned", "contacted", "quoted"])
    def test_newer_lead_never_scores_lower(self, hot_lead, status):
        as_of = CREATED + timedelta(days=365)
        ages = [0, 1, 7, 8, 30, 31, 90, 91, 365]
        cards = [
            compute_scores(
                None,
                replace(hot_lead, status=status, created_at=as_of - timedelta(days=age)),
                as_of=as_of,
            )
            for age in ages
        ]
        for newer, older in zip(cards, cards[1:]):
            assert newer.probability_to_close_score >= older.probability_to_close_score
            assert newer.overall_score >= older.overall_score


# ── compute_scores ────────────────────────────────────────────────────────────

class TestComputeScores:
    def test_complete_scorecard(self, hot_lead):
        card = compute_scores(None, hot_lead, as_of=CREATED)
        assert card == ScoreCard(
            engagement_score=10,
            intent_score=85,
            lead_quality_score=100,
            probability_to_close_score=66,
            overall_score=71,
            version=CURRENT_WEIGHTS.version,
        )

    def test_overall_weights(self):
        assert overall_score(10, 85, 100, 66) == 71

    def test_is_deterministic(self, hot_lead):
        profile = ProfileSignals(login_count=2, total_time_on_site_ms=120_000, ai_renderings_count=3)
        first = compute_scores(profile, hot_lead, as_of=CREATED)
        second = compute_scores(profile, hot_lead, as_of=CREATED)
        assert first == second

    def test_all_scores_in_range(self, hot_lead):
        profile = ProfileSignals(login_count=99, total_time_on_site_ms=10**10, ai_renderings_count=99)
        lead = replace(hot_lead, render_count=50, social_engaged=True, is_repeat_visitor=True)
        card = compute_scores(profile, lead, as_of=CREATED)
        for value in (
            card.engagement_score,
            card.intent_score,
            card.lead_quality_score,
            card.probability_to_close_score,
            card.overall_score,
        ):
            assert 0 <= value <= 100

    def test_stamped_with_weights_version(self, bare_lead):
        assert compute_scores(None, bare_lead, as_of=CREATED).version == "v1"

    def test_as_lead_fields_maps_overall_to_lead_score(self, hot_lead):
        fields = compute_scores(None, hot_lead, as_of=CREATED).as_lead_fields()
        assert fields["lead_score"] == 71
        assert fields["scoring_version"] == "v1"
        assert "overall_score" not in fields


class TestScoreLead:
    def test_reads_attribute_bearing_records(self):
        lead = SimpleNamespace(
            email="a@x.com", phone=None, name=None, zip=None, room_type=None, style=None,
            render_count=None, wants_quote=None, social_engaged=None, is_repeat_visitor=None,
            status=None, created_at=CREATED,
        )
        card = score_lead(lead, None, as_of=CREATED)
        assert card.intent_score == 25
        assert card.engagement_score == 10

    def test_profile_record_feeds_engagement(self):
        lead = SimpleNamespace(email="a@x.com", render_count=1, created_at=CREATED)
        profile = SimpleNamespace(login_count=1, total_time_on_site_ms=0, ai_renderings_count=2)
        assert score_lead(lead, profile, as_of=CREATED).engagement_score == 25


# ── Auto-assignment threshold ─────────────────────────────────────────────────

def _card(overall: int) -> ScoreCard:
    return ScoreCard(0, 0, 0, 0, overall, "v1")


class TestIsAssignable:
    def test_quote_request_clears_lower_bar(self):
        assert is_assignable(_card(35), wants_quote=True)

    def test_passive_render_needs_higher_bar(self):
        assert not is_assignable(_card(35), wants_quote=False)

    def test_threshold_is_inclusive(self):
        assert is_assignable(_card(50), wants_quote=False)
        assert is_assignable(_card(30), wants_quote=True)

    def test_below_quote_threshold(self):
        assert not is_assignable(_card(29), wants_quote=True)
