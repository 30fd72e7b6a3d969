"""
api/schemas.py — Pydantic request/response models for all API endpoints.

These are the API contract — separate from DB ORM models so we can
control exactly what data is exposed over HTTP.
"""

import re
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from leadengine.db.models import AssignmentMethod, LeadStatus, SubscriptionTier
from leadengine.services.strategies import AssignmentStrategy

_ZIP_RE = re.compile(r"^\d{5}$")


def _check_zip_codes(codes: Optional[list[str]]) -> Optional[list[str]]:
    if codes is None:
        return None
    cleaned = []
    for code in codes:
        code = code.strip()
        if not _ZIP_RE.match(code):
            raise ValueError(f"ZIP codes must be 5 digits, got {code!r}")
        if code not in cleaned:
            cleaned.append(code)
    return cleaned


# ── Lead intake ───────────────────────────────────────────────────────────────

class LeadEventIn(BaseModel):
    """
    A lead-producing event (render completed or quote requested). Only the
    fields actually sent are written; omitted fields keep their stored value.
    """
    user_id: Optional[str] = Field(default=None, max_length=64)
    name: Optional[str] = Field(default=None, max_length=255)
    email: Optional[str] = Field(default=None, max_length=255)
    phone: Optional[str] = Field(default=None, max_length=50)
    zip: Optional[str] = Field(default=None, description="5-digit ZIP code")
    room_type: Optional[str] = Field(default=None, max_length=100)
    style: Optional[str] = Field(default=None, max_length=100)
    image_url: Optional[str] = Field(default=None, max_length=1024)
    ai_url: Optional[str] = Field(default=None, max_length=1024)
    render_count: Optional[int] = Field(default=None, ge=1)
    wants_quote: Optional[bool] = None
    social_engaged: Optional[bool] = None


class ScoreCardOut(BaseModel):
    engagement_score: int
    intent_score: int
    lead_quality_score: int
    probability_to_close_score: int
    overall_score: int
    version: str

    model_config = {"from_attributes": True}


class LeadIntakeOut(BaseModel):
    lead_id: int
    created: bool
    render_count: int
    is_repeat_visitor: bool
    scores: ScoreCardOut
    assigned_contractor_ids: list[int] = []
    assignment_error: Optional[str] = None


# ── Lead ─────────────────────────────────────────────────────────────────────

class LeadOut(BaseModel):
    id: int
    user_id: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    zip: Optional[str] = None
    room_type: Optional[str] = None
    style: Optional[str] = None
    image_url: Optional[str] = None
    ai_url: Optional[str] = None
    render_count: int
    wants_quote: bool
    social_engaged: bool
    is_repeat_visitor: bool
    engagement_score: int
    intent_score: int
    lead_quality_score: int
    probability_to_close_score: int
    lead_score: int
    scoring_version: Optional[str] = None
    status: LeadStatus
    assigned_contractor_id: Optional[int] = None
    contractor_notes: Optional[str] = None
    conversion_value: Optional[float] = None
    sent_at: Optional[datetime] = None
    last_contacted_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class LeadStatusUpdate(BaseModel):
    status: LeadStatus = Field(..., description="New lead status")
    contractor_notes: Optional[str] = None
    conversion_value: Optional[float] = Field(default=None, ge=0)


class LeadStatusOut(BaseModel):
    lead: LeadOut
    previous_status: LeadStatus


# ── Contractor ────────────────────────────────────────────────────────────────

class ContractorIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: str = Field(..., min_length=3, max_length=255)
    phone: Optional[str] = Field(default=None, max_length=50)
    company_name: Optional[str] = Field(default=None, max_length=255)
    serves_all_zipcodes: bool = False
    assigned_zip_codes: list[str] = []
    is_active_subscriber: bool = False
    subscription_tier: SubscriptionTier = SubscriptionTier.BASIC

    @field_validator("assigned_zip_codes")
    @classmethod
    def check_zip_codes(cls, codes):
        return _check_zip_codes(codes)


class ContractorUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    email: Optional[str] = Field(default=None, min_length=3, max_length=255)
    phone: Optional[str] = Field(default=None, max_length=50)
    company_name: Optional[str] = Field(default=None, max_length=255)
    serves_all_zipcodes: Optional[bool] = None
    assigned_zip_codes: Optional[list[str]] = None
    is_active_subscriber: Optional[bool] = None
    subscription_tier: Optional[SubscriptionTier] = None

    @field_validator("assigned_zip_codes")
    @classmethod
    def check_zip_codes(cls, codes):
        return _check_zip_codes(codes)


class ContractorOut(BaseModel):
    id: int
    name: str
    email: str
    phone: Optional[str] = None
    company_name: Optional[str] = None
    serves_all_zipcodes: bool
    assigned_zip_codes: list[str] = []
    is_active_subscriber: bool
    subscription_tier: SubscriptionTier
    leads_received_count: int
    leads_converted_count: int
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class ContractorPerformanceOut(BaseModel):
    id: int
    name: str
    email: str
    subscription_tier: SubscriptionTier
    leads_received_count: int
    leads_converted_count: int
    conversion_rate: float
    assigned_zip_codes: list[str]
    serves_all_zipcodes: bool


class EligibleContractorsOut(BaseModel):
    lead_id: int
    zip: Optional[str] = None
    contractors: list[ContractorOut]


# ── Assignment ────────────────────────────────────────────────────────────────

class AssignRequest(BaseModel):
    strategy: AssignmentStrategy = AssignmentStrategy.MANUAL
    contractor_ids: list[int] = Field(
        default=[],
        description="Required for the manual strategy; ignored otherwise",
    )


class AssignmentResultOut(BaseModel):
    lead_id: int
    strategy: str
    contractor_ids: list[int]
    skipped_contractor_ids: list[int]
    assigned_at: Optional[datetime] = None
    notifications_sent: int
    notifications_failed: int
    message: str

    model_config = {"from_attributes": True}


class LeadAssignmentOut(BaseModel):
    id: int
    lead_id: int
    contractor_id: int
    assignment_method: AssignmentMethod
    assigned_at: datetime
    email_sent: bool
    notification_error: Optional[str] = None
    contractor_responded: bool

    model_config = {"from_attributes": True}


# ── Admin ─────────────────────────────────────────────────────────────────────

class RecalculationOut(BaseModel):
    success: bool
    message: str
    total_leads: int
    attempted: int
    updated_count: int
    changed_count: int
    failed_count: int
    failed_lead_ids: list[int]
    batches: int
    failed_batches: int
    scoring_version: str


class LeadSummaryOut(BaseModel):
    total_leads: int
    high_value_leads: int
    new_leads: int
    assigned_leads: int
    quoted_leads: int
    converted_leads: int
    by_status: dict[str, int]
    avg_engagement_score: float
    avg_intent_score: float
    avg_lead_quality_score: float
    avg_probability_to_close_score: float
    avg_lead_score: float


class UserSummaryOut(BaseModel):
    total_users: int
    by_role: dict[str, int]


class ContractorSummaryOut(BaseModel):
    total_contractors: int
    active_subscribers: int
    avg_conversion_rate: float
    total_leads_received: int
    total_leads_converted: int


class DashboardSummaryOut(BaseModel):
    leads: LeadSummaryOut
    users: UserSummaryOut
    contractors: ContractorSummaryOut


# ── Contractor self-service ───────────────────────────────────────────────────

class ContractorFeedStatsOut(BaseModel):
    total_leads: int
    high_value_leads: int
    recent_leads: int = Field(..., description="Leads created in the last 7 days")
    avg_lead_score: float


class ContractorLeadFeedOut(BaseModel):
    contractor: ContractorOut
    assigned_zip_codes: list[str]
    serves_all_zipcodes: bool
    leads: list[LeadOut]
    stats: ContractorFeedStatsOut
