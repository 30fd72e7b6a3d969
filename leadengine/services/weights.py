"""
leadengine/services/weights.py — Versioned scoring weight tables.

The calculator in scoring.py reads every constant from a ScoringWeights
instance. Changing a weight means adding a new table (and version string),
never editing a published one: the version is stamped on every scored lead.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping


def _frozen(mapping: dict) -> Mapping:
    return MappingProxyType(dict(mapping))


# MetroWest MA territory. Any ZIP outside SERVICED_ZIPS earns no territory points.
HIGH_VALUE_ZIPS = frozenset({
    "02481", "02482", "01742", "02467", "02468", "02459", "02460",   # Wellesley, Concord, Brookline, Newton
})
MEDIUM_VALUE_ZIPS = frozenset({
    "01701", "01702", "01760", "01778", "01776", "02030", "02032",   # Framingham, Natick, Wayland, Sudbury, Dover
})
SERVICED_ZIPS = frozenset({
    "01701", "01702", "01718", "01719", "01720", "01721", "01730", "01731",
    "01740", "01741", "01742", "01746", "01747", "01748", "01749", "01752",
    "01754", "01757", "01760", "01770", "01772", "01773", "01776", "01778",
    "01784", "01801", "01803", "01890", "02030", "02032", "02052", "02054",
    "02056", "02090", "02093", "02421", "02451", "02452", "02453", "02454",
    "02458", "02459", "02460", "02461", "02462", "02464", "02465", "02466",
    "02467", "02468", "02472", "02474", "02475", "02476", "02477", "02478",
    "02479", "02481", "02482", "02492", "02493", "02494", "02495",
}) | HIGH_VALUE_ZIPS | MEDIUM_VALUE_ZIPS


@dataclass(frozen=True)
class ScoringWeights:
    version: str

    # Engagement
    points_per_login: float = 5
    login_cap: float = 25
    minutes_on_site_cap: float = 30
    points_per_rendering: float = 10
    rendering_cap: float = 40
    repeat_visitor_engagement: float = 5

    # Intent
    render_base: float = 10
    has_email: float = 15
    has_phone: float = 20
    has_name: float = 10
    wants_quote: float = 30
    points_per_extra_render: float = 5
    extra_render_cap: float = 15
    social_engaged: float = 10

    # Lead quality
    intent_share: float = 0.6
    high_zip: float = 25
    medium_zip: float = 15
    serviced_zip: float = 5
    invalid_email_penalty: float = 20
    room_type_values: Mapping[str, float] = field(default_factory=dict)
    room_type_baseline: float = 0.8
    room_type_scale: float = 50          # (value - baseline) * scale, up to 20 points
    style_values: Mapping[str, float] = field(default_factory=dict)
    style_baseline: float = 0.9
    style_scale: float = 12.5            # (value - baseline) * scale, up to 5 points

    # Probability to close
    engagement_share: float = 0.2
    intent_close_share: float = 0.4
    quality_share: float = 0.3
    repeat_visitor_close: float = 5
    status_bonus: Mapping[str, float] = field(default_factory=dict)
    stale_new_lead_days: int = 7
    stale_new_lead_penalty: float = 10
    old_lead_days: int = 30
    old_lead_penalty: float = 15
    ancient_lead_days: int = 90
    ancient_lead_penalty: float = 25

    # Overall (legacy lead_score)
    overall_engagement: float = 0.15
    overall_intent: float = 0.25
    overall_quality: float = 0.25
    overall_probability: float = 0.35


SCORING_WEIGHTS_V1 = ScoringWeights(
    version="v1",
    room_type_values=_frozen({
        "kitchen": 1.2,
        "bathroom": 1.1,
        "living_room": 1.0,
        "dining_room": 0.95,
        "bedroom": 0.9,
        "home_office": 0.85,
        "other": 0.8,
    }),
    style_values=_frozen({
        "contemporary-luxe": 1.3,
        "modern-minimalist": 1.2,
        "transitional": 1.1,
        "farmhouse-chic": 1.0,
        "coastal-new-england": 1.0,
        "eclectic-bohemian": 0.9,
    }),
    status_bonus=_frozen({
        "contacted": 5,
        "quoted": 10,
    }),
)

CURRENT_WEIGHTS = SCORING_WEIGHTS_V1
