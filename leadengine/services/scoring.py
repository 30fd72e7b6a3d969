"""
leadengine/services/scoring.py — Lead scoring calculator.

compute_scores() is pure: it reads only its arguments (plus the reference
time `as_of` used for lead-age decay) and always returns the same ScoreCard
for the same inputs. Every weight comes from a versioned ScoringWeights table.
"""

import logging
import math
import re
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from leadengine.config import settings
from leadengine.services.weights import (
    CURRENT_WEIGHTS,
    HIGH_VALUE_ZIPS,
    MEDIUM_VALUE_ZIPS,
    SERVICED_ZIPS,
    ScoringWeights,
)

logger = logging.getLogger(__name__)

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[A-Za-z]{2,}$")


@dataclass(frozen=True)
class ProfileSignals:
    """Engagement history of the lead's owning user. Absent values count as zero."""
    login_count: int = 0
    total_time_on_site_ms: int = 0
    ai_renderings_count: int = 0

    @classmethod
    def from_record(cls, profile: Any) -> "ProfileSignals":
        if profile is None:
            return cls()
        return cls(
            login_count=getattr(profile, "login_count", None) or 0,
            total_time_on_site_ms=getattr(profile, "total_time_on_site_ms", None) or 0,
            ai_renderings_count=getattr(profile, "ai_renderings_count", None) or 0,
        )


@dataclass(frozen=True)
class LeadSignals:
    """The lead attributes that feed the calculator, with explicit defaults."""
    email: Optional[str] = None
    phone: Optional[str] = None
    name: Optional[str] = None
    zip: Optional[str] = None
    room_type: Optional[str] = None
    style: Optional[str] = None
    render_count: int = 1
    wants_quote: bool = False
    social_engaged: bool = False
    is_repeat_visitor: bool = False
    status: str = "new"
    created_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, lead: Any) -> "LeadSignals":
        status = getattr(lead, "status", None) or "new"
        return cls(
            email=getattr(lead, "email", None),
            phone=getattr(lead, "phone", None),
            name=getattr(lead, "name", None),
            zip=getattr(lead, "zip", None),
            room_type=getattr(lead, "room_type", None),
            style=getattr(lead, "style", None),
            render_count=getattr(lead, "render_count", None) or 1,
            wants_quote=bool(getattr(lead, "wants_quote", False)),
            social_engaged=bool(getattr(lead, "social_engaged", False)),
            is_repeat_visitor=bool(getattr(lead, "is_repeat_visitor", False)),
            status=getattr(status, "value", status),
            created_at=getattr(lead, "created_at", None),
        )


@dataclass(frozen=True)
class ScoreCard:
    engagement_score: int
    intent_score: int
    lead_quality_score: int
    probability_to_close_score: int
    overall_score: int
    version: str

    def as_lead_fields(self) -> dict[str, Any]:
        """Column values for the leads table (overall is stored as lead_score)."""
        return {
            "engagement_score": self.engagement_score,
            "intent_score": self.intent_score,
            "lead_quality_score": self.lead_quality_score,
            "probability_to_close_score": self.probability_to_close_score,
            "lead_score": self.overall_score,
            "scoring_version": self.version,
        }

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# ── Helpers ───────────────────────────────────────────────────────────────────

def _round(value: float) -> int:
    """Round half up (0.5 → 1), unlike Python's banker's rounding."""
    return int(math.floor(value + 0.5))


def _clamp(value: float) -> int:
    return max(0, min(_round(value), 100))


def is_plausible_email(email: Optional[str]) -> bool:
    return bool(email) and _EMAIL_RE.match(email.strip()) is not None


def zip_tier(zip_code: Optional[str]) -> str:
    """'high', 'medium', 'standard' inside the serviced region, else 'outside'."""
    if zip_code in HIGH_VALUE_ZIPS:
        return "high"
    if zip_code in MEDIUM_VALUE_ZIPS:
        return "medium"
    if zip_code in SERVICED_ZIPS:
        return "standard"
    return "outside"


def _age_in_days(created_at: Optional[datetime], as_of: datetime) -> Optional[float]:
    if created_at is None:
        return None
    if created_at.tzinfo is not None:
        created_at = created_at.astimezone(timezone.utc).replace(tzinfo=None)
    if as_of.tzinfo is not None:
        as_of = as_of.astimezone(timezone.utc).replace(tzinfo=None)
    return max((as_of - created_at).total_seconds() / 86400, 0.0)


# ── Sub-scores ────────────────────────────────────────────────────────────────

def engagement_score(profile: ProfileSignals, lead: LeadSignals, w: ScoringWeights = CURRENT_WEIGHTS) -> int:
    score = min(profile.login_count * w.points_per_login, w.login_cap)
    score += min(profile.total_time_on_site_ms / 60_000, w.minutes_on_site_cap)
    renderings = profile.ai_renderings_count or lead.render_count or 1
    score += min(renderings * w.points_per_rendering, w.rendering_cap)
    if lead.is_repeat_visitor:
        score += w.repeat_visitor_engagement
    return _clamp(score)


def intent_score(lead: LeadSignals, w: ScoringWeights = CURRENT_WEIGHTS) -> int:
    score = w.render_base
    if lead.email:
        score += w.has_email
    if lead.phone:
        score += w.has_phone
    if lead.name:
        score += w.has_name
    if lead.wants_quote:
        score += w.wants_quote
    if lead.render_count > 1:
        score += min((lead.render_count - 1) * w.points_per_extra_render, w.extra_render_cap)
    if lead.social_engaged:
        score += w.social_engaged
    return _clamp(score)


def lead_quality_score(intent: int, lead: LeadSignals, w: ScoringWeights = CURRENT_WEIGHTS) -> int:
    score = intent * w.intent_share

    tier = zip_tier(lead.zip)
    if tier == "high":
        score += w.high_zip
    elif tier == "medium":
        score += w.medium_zip
    elif tier == "standard":
        score += w.serviced_zip

    room_value = w.room_type_values.get(lead.room_type or "")
    if room_value:
        score += (room_value - w.room_type_baseline) * w.room_type_scale

    style_key = re.sub(r"\s+", "-", (lead.style or "").strip().lower())
    style_value = w.style_values.get(style_key)
    if style_value:
        score += (style_value - w.style_baseline) * w.style_scale

    if lead.email and not is_plausible_email(lead.email):
        score -= w.invalid_email_penalty

    return _clamp(score)


def probability_to_close_score(
    engagement: int,
    intent: int,
    quality: int,
    lead: LeadSignals,
    as_of: datetime,
    w: ScoringWeights = CURRENT_WEIGHTS,
) -> int:
    # Terminal outcomes are certain either way.
    if lead.status == "converted":
        return 100
    if lead.status in ("dead", "unqualified"):
        return 0

    score = engagement * w.engagement_share + intent * w.intent_close_share + quality * w.quality_share
    score += w.status_bonus.get(lead.status, 0)
    if lead.is_repeat_visitor:
        score += w.repeat_visitor_close

    age = _age_in_days(lead.created_at, as_of)
    if age is not None:
        if age > w.stale_new_lead_days and lead.status == "new":
            score -= w.stale_new_lead_penalty
        if age > w.old_lead_days:
            score -= w.old_lead_penalty
        if age > w.ancient_lead_days:
            score -= w.ancient_lead_penalty

    return _clamp(score)


def overall_score(engagement: int, intent: int, quality: int, probability: int, w: ScoringWeights = CURRENT_WEIGHTS) -> int:
    """Weighted legacy aggregate, emphasising probability to close."""
    return _clamp(
        engagement * w.overall_engagement
        + intent * w.overall_intent
        + quality * w.overall_quality
        + probability * w.overall_probability
    )


# ── Public API ────────────────────────────────────────────────────────────────

def compute_scores(
    profile: Optional[ProfileSignals],
    lead: LeadSignals,
    as_of: Optional[datetime] = None,
    weights: ScoringWeights = CURRENT_WEIGHTS,
) -> ScoreCard:
    """
    Compute the four sub-scores and the overall score for one lead.

    Args:
        profile: Owning user's engagement history (None → all zeros).
        lead:    Lead attributes.
        as_of:   Reference time for age decay; defaults to now (UTC).
        weights: Weight table; defaults to the current published version.

    Returns:
        ScoreCard with every score in [0, 100].
    """
    profile = profile or ProfileSignals()
    as_of = as_of or datetime.now(timezone.utc)

    engagement = engagement_score(profile, lead, weights)
    intent = intent_score(lead, weights)
    quality = lead_quality_score(intent, lead, weights)
    probability = probability_to_close_score(engagement, intent, quality, lead, as_of, weights)

    return ScoreCard(
        engagement_score=engagement,
        intent_score=intent,
        lead_quality_score=quality,
        probability_to_close_score=probability,
        overall_score=overall_score(engagement, intent, quality, probability, weights),
        version=weights.version,
    )


def score_lead(lead: Any, profile: Any = None, as_of: Optional[datetime] = None) -> ScoreCard:
    """Convenience wrapper that scores ORM records (or any attribute-bearing objects)."""
    return compute_scores(ProfileSignals.from_record(profile), LeadSignals.from_record(lead), as_of=as_of)


def is_assignable(scores: ScoreCard, wants_quote: bool) -> bool:
    """
    Determine if a freshly scored lead should be assigned automatically.

    Quote requests clear a lower bar (MIN_AUTO_ASSIGN_SCORE_WITH_QUOTE) than
    passive renders (MIN_AUTO_ASSIGN_SCORE).
    """
    threshold = settings.min_auto_assign_score_with_quote if wants_quote else settings.min_auto_assign_score
    passes = scores.overall_score >= threshold

    if passes:
        logger.debug("Lead assignable — score=%d, threshold=%d.", scores.overall_score, threshold)
    else:
        logger.debug("Lead held back — score %d below threshold %d.", scores.overall_score, threshold)
    return passes
