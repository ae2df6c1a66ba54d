"""Pydantic schemas for API request/response."""

import json
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from leadcrm.models import (
    CampaignStatus,
    LeadStatus,
    MessageAngle,
    MessageLanguage,
    MessageTone,
    OutreachEventType,
)

WEIGHT_SUM_TOLERANCE = 0.001


def blank_to_none(value):
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


def ensure_url_scheme(value):
    """``foo.com`` -> ``https://foo.com``; blanks become ``None``."""
    value = blank_to_none(value)
    if value is None:
        return None
    if value.startswith("http://") or value.startswith("https://"):
        return value
    return f"https://{value}"


def _load_json(raw, fallback):
    if isinstance(raw, str):
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            return fallback
    return raw if raw is not None else fallback


# ── Partial lead record ──────────────────────────────────
class LeadFields(BaseModel):
    """Optional contact/classification fields read by every identity check."""

    business_name: Optional[str] = Field(None, max_length=180)
    website_url: Optional[str] = Field(None, max_length=255)
    facebook_url: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=60)
    email: Optional[str] = Field(None, max_length=120)
    address: Optional[str] = Field(None, max_length=255)
    category_id: Optional[str] = None
    location_id: Optional[str] = None

    model_config = {"from_attributes": True}

    @field_validator("business_name", "phone", "email", "address", "category_id", "location_id", mode="before")
    @classmethod
    def _strip(cls, v):
        return blank_to_none(v)

    @field_validator("website_url", "facebook_url", mode="before")
    @classmethod
    def _url(cls, v):
        return ensure_url_scheme(v)

    @classmethod
    def from_stored(cls, source) -> "LeadFields":
        """Project a stored row or mapping without re-running input validation."""
        if isinstance(source, dict):
            values = {name: source.get(name) for name in cls.model_fields}
        else:
            values = {name: getattr(source, name, None) for name in cls.model_fields}
        return cls.model_construct(**values)


# ── Lead ─────────────────────────────────────────────────
class LeadCreate(LeadFields):
    email: Optional[EmailStr] = None
    campaign_id: Optional[str] = None
    source: str = Field("manual", min_length=1, max_length=64)
    status: LeadStatus = LeadStatus.NEW

    @model_validator(mode="after")
    def _require_identity(self):
        if not self.business_name and not self.facebook_url:
            raise ValueError("business_name or facebook_url is required.")
        return self


class LeadBulkCreate(BaseModel):
    leads: list[LeadCreate] = Field(..., min_length=1, max_length=2000)


class CsvImportRequest(BaseModel):
    """Already-parsed CSV rows plus a column mapping onto lead fields."""

    rows: list[dict[str, Optional[str | int | float]]] = Field(..., min_length=1)
    mapping: dict[
        Literal["business_name", "facebook_url", "website_url", "phone", "email", "address"], str
    ]
    category_id: Optional[str] = None
    location_id: Optional[str] = None


class BulkInsertOut(BaseModel):
    inserted: int
    skipped_duplicates: int
    invalid: int = 0
    lead_ids: list[str] = Field(default_factory=list)


class LeadOut(BaseModel):
    id: str
    business_name: Optional[str] = None
    category_id: Optional[str] = None
    location_id: Optional[str] = None
    campaign_id: Optional[str] = None
    facebook_url: Optional[str] = None
    website_url: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    source: str
    status: str
    score_heuristic: Optional[float] = None
    score_ai: Optional[float] = None
    score_total: Optional[float] = None
    quality_score: int
    quality_tier: str
    last_contacted_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, lead):
        from leadcrm.services.lead_quality import compute_quality_score, quality_tier

        quality = compute_quality_score(lead)
        return cls(
            id=lead.id,
            business_name=lead.business_name,
            category_id=lead.category_id,
            location_id=lead.location_id,
            campaign_id=lead.campaign_id,
            facebook_url=lead.facebook_url,
            website_url=lead.website_url,
            phone=lead.phone,
            email=lead.email,
            address=lead.address,
            source=lead.source or "manual",
            status=lead.status or LeadStatus.NEW.value,
            score_heuristic=lead.score_heuristic,
            score_ai=lead.score_ai,
            score_total=lead.score_total,
            quality_score=quality,
            quality_tier=quality_tier(quality),
            last_contacted_at=lead.last_contacted_at,
            created_at=lead.created_at,
        )


class MessageOut(BaseModel):
    id: str
    lead_id: str
    language: str
    angle: str
    variant_label: str
    message_kind: str
    message_text: str
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class OutreachEventOut(BaseModel):
    id: str
    event_type: str
    metadata: dict
    created_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, event):
        return cls(
            id=event.id,
            event_type=event.event_type,
            metadata=_load_json(event.metadata_, {}),
            created_at=event.created_at,
        )


class LeadDetailOut(BaseModel):
    lead: LeadOut
    enrichment: Optional[dict] = None
    messages: list[MessageOut] = Field(default_factory=list)
    events: list[OutreachEventOut] = Field(default_factory=list)


# ── Duplicate check ──────────────────────────────────────
class DuplicateCheckRequest(LeadFields):
    limit: int = Field(8, ge=1, le=20)

    @model_validator(mode="after")
    def _require_signal(self):
        if not (self.business_name or self.website_url or self.facebook_url or self.phone):
            raise ValueError("Provide at least business name, website, facebook, or phone.")
        return self


class DuplicateMatch(BaseModel):
    lead_id: str
    business_name: Optional[str] = None
    address: Optional[str] = None
    status: str
    source: str
    confidence: int
    reasons: list[str]


class DuplicateCheckOut(BaseModel):
    has_match: bool
    max_confidence: int
    matches: list[DuplicateMatch]


# ── Scoring ──────────────────────────────────────────────
class ScoreWeights(BaseModel):
    """Blend weights. The sum-to-one rule is checked on operator writes only."""

    heuristic: float = 0.45
    ai: float = 0.55


class ScoreWeightsUpdate(ScoreWeights):
    heuristic: float = Field(..., ge=0, le=1)
    ai: float = Field(..., ge=0, le=1)

    @model_validator(mode="after")
    def _sum_to_one(self):
        if abs(self.heuristic + self.ai - 1) > WEIGHT_SUM_TOLERANCE:
            raise ValueError("heuristic and ai weights must sum to 1.")
        return self


class HeuristicResult(BaseModel):
    score: int
    reasons: list[str] = Field(default_factory=list)
    detected_keywords: list[str] = Field(default_factory=list)
    website_has_form: Optional[bool] = None


class AiScore(BaseModel):
    score: int = Field(..., ge=0, le=100)
    reasons: list[str] = Field(default_factory=list)
    opportunity_summary: str = ""
    suggested_angle: MessageAngle = MessageAngle.ORGANIZATION


class LeadScoreOut(BaseModel):
    lead_id: str
    score_heuristic: int
    score_ai: int
    score_total: int
    reasons: list[str]
    opportunity_summary: str
    suggested_angle: str


# ── Messages / events ────────────────────────────────────
class MessageVariant(BaseModel):
    variant_label: Literal["A", "B", "C"]
    message_text: str = Field(..., min_length=1, max_length=1000)


class GenerateMessagesRequest(BaseModel):
    language: MessageLanguage
    tone: MessageTone
    angle: Optional[MessageAngle] = None


class GeneratedMessagesOut(BaseModel):
    lead_id: str
    language: str
    tone: str
    angle: str
    variants: list[MessageVariant]
    compliance_issues: list[dict] = Field(default_factory=list)


class OutreachEventCreate(BaseModel):
    lead_id: str
    event_type: OutreachEventType
    metadata: dict = Field(default_factory=dict)
    status: Optional[LeadStatus] = None


# ── Priority ─────────────────────────────────────────────
class PriorityLeadOut(BaseModel):
    lead: LeadOut
    priority_score: int
    priority_reason: str


class TodayQueueItemOut(PriorityLeadOut):
    campaign_name: Optional[str] = None
    next_action: Literal["send_initial", "send_follow_up", "review"]
    suggested_message: Optional[str] = None
    suggested_variant: Optional[str] = None
    suggested_kind: Optional[str] = None


# ── Campaign ─────────────────────────────────────────────
class CampaignPolicy(BaseModel):
    category_id: Optional[str] = None
    location_id: Optional[str] = None
    language: MessageLanguage = MessageLanguage.TAGLISH
    tone: MessageTone = MessageTone.SOFT
    angle: MessageAngle = MessageAngle.BOOKING
    min_quality_score: float = Field(45, ge=0, le=100)
    daily_send_target: int = Field(20, ge=1, le=500)
    follow_up_days: int = Field(3, ge=1, le=30)
    notes: Optional[str] = Field(None, max_length=1000)


class CampaignCreate(CampaignPolicy):
    name: str = Field(..., min_length=2, max_length=140)
    status: CampaignStatus = CampaignStatus.ACTIVE


class CampaignUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=140)
    status: Optional[CampaignStatus] = None
    min_quality_score: Optional[float] = Field(None, ge=0, le=100)
    daily_send_target: Optional[int] = Field(None, ge=1, le=500)
    follow_up_days: Optional[int] = Field(None, ge=1, le=30)
    notes: Optional[str] = Field(None, max_length=1000)


class CampaignOut(BaseModel):
    id: str
    name: str
    category_id: Optional[str] = None
    location_id: Optional[str] = None
    language: str
    tone: str
    angle: str
    min_quality_score: float
    daily_send_target: int
    follow_up_days: int
    status: str
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class PlaybookCreate(CampaignPolicy):
    name: str = Field(..., min_length=2, max_length=140)


class PlaybookOut(CampaignPolicy):
    id: str
    name: str
    language: str
    tone: str
    angle: str
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class PlaybookLaunch(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=140)


class CampaignAssignRequest(BaseModel):
    campaign_id: str
    auto_only: bool = True
    include_statuses: list[LeadStatus] = Field(
        default_factory=lambda: [LeadStatus.NEW, LeadStatus.DRAFTED], min_length=1, max_length=7
    )
    limit: Optional[int] = Field(None, ge=1, le=500)


class AssignmentOut(BaseModel):
    campaign_id: str
    assigned: int
    skipped: int


# ── Maintenance ──────────────────────────────────────────
class FollowUpRunRequest(BaseModel):
    campaign_id: Optional[str] = None
    days_since_sent: int = Field(3, ge=1, le=30)
    limit: int = Field(60, ge=1, le=300)


class FollowUpRunOut(BaseModel):
    processed: int
    drafted: int
    skipped: int


class MergeRunRequest(BaseModel):
    limit: int = Field(200, ge=1, le=1000)


class MergeRunOut(BaseModel):
    merged: int
    checked: int


class ContactRefreshRequest(BaseModel):
    days_stale: int = Field(21, ge=1, le=180)
    limit: int = Field(60, ge=1, le=200)


class ContactRefreshOut(BaseModel):
    processed: int
    updated: int
    unchanged: int


class NightlyRunRequest(BaseModel):
    contact_days_stale: int = Field(21, ge=1, le=180)
    contact_limit: int = Field(120, ge=1, le=200)
    follow_up_limit_per_campaign: Optional[int] = Field(None, ge=1, le=300)


class CampaignFollowUpOut(FollowUpRunOut):
    campaign_id: str


class MaintenanceSummaryOut(BaseModel):
    campaign_assignments: list[AssignmentOut]
    follow_up_drafts: list[CampaignFollowUpOut]
    contact_refresh: Optional[ContactRefreshOut] = None
    duplicate_merge: Optional[MergeRunOut] = None
    errors: list[str] = Field(default_factory=list)
    generated_at: datetime


# ── Reference data ───────────────────────────────────────
class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    default_angle: MessageAngle = MessageAngle.BOOKING
    keywords: list[str] = Field(default_factory=list)


class CategoryOut(BaseModel):
    id: str
    name: str
    default_angle: str
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class LocationCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    city: Optional[str] = Field(None, max_length=120)
    region: Optional[str] = Field(None, max_length=120)
    country: str = "Philippines"


class LocationOut(LocationCreate):
    id: str
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class KeywordPackUpdate(BaseModel):
    keywords: list[str] = Field(default_factory=list, max_length=100)

    @field_validator("keywords")
    @classmethod
    def _clean(cls, v):
        return [kw.strip() for kw in v if kw and kw.strip()]
