"""SQLAlchemy models — portable across SQLite and PostgreSQL."""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, String, Text

from leadcrm.database import Base


def utcnow():
    return datetime.now(timezone.utc)


def new_uuid():
    return str(uuid.uuid4())


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; everything stored here is UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def enum_value(value):
    """Plain string for an enum member or a raw string."""
    return value.value if isinstance(value, Enum) else value


# ── Enumerations ────────────────────────────────────────
class LeadStatus(str, Enum):
    NEW = "NEW"
    DRAFTED = "DRAFTED"
    SENT = "SENT"
    REPLIED = "REPLIED"
    QUALIFIED = "QUALIFIED"
    WON = "WON"
    LOST = "LOST"


ACTIVE_STATUSES = (LeadStatus.NEW.value, LeadStatus.DRAFTED.value, LeadStatus.SENT.value)
TERMINAL_STATUSES = (
    LeadStatus.REPLIED.value,
    LeadStatus.QUALIFIED.value,
    LeadStatus.WON.value,
    LeadStatus.LOST.value,
)


class OutreachEventType(str, Enum):
    COPIED = "COPIED"
    OPENED_LINK = "OPENED_LINK"
    MARKED_SENT = "MARKED_SENT"
    REPLIED = "REPLIED"
    QUALIFIED = "QUALIFIED"
    WON = "WON"
    LOST = "LOST"


class CampaignStatus(str, Enum):
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    ARCHIVED = "ARCHIVED"


class MessageKind(str, Enum):
    INITIAL = "initial"
    FOLLOW_UP = "follow_up"


class MessageAngle(str, Enum):
    BOOKING = "booking"
    LOW_VOLUME = "low_volume"
    ORGANIZATION = "organization"


class MessageLanguage(str, Enum):
    TAGLISH = "Taglish"
    ENGLISH = "English"
    TAGALOG = "Tagalog"
    WARAY = "Waray"


class MessageTone(str, Enum):
    SOFT = "Soft"
    DIRECT = "Direct"
    VALUE_FOCUSED = "Value-Focused"


# ── Reference data ──────────────────────────────────────
class Category(Base):
    __tablename__ = "categories"

    id = Column(String(36), primary_key=True, default=new_uuid)
    name = Column(String(120), unique=True, nullable=False)
    default_angle = Column(String(20), default=MessageAngle.BOOKING.value)
    created_at = Column(DateTime(timezone=True), default=utcnow)


class Location(Base):
    __tablename__ = "locations"

    id = Column(String(36), primary_key=True, default=new_uuid)
    name = Column(String(120), unique=True, nullable=False)
    city = Column(String(120), nullable=True)
    region = Column(String(120), nullable=True)
    country = Column(String(120), default="Philippines")
    created_at = Column(DateTime(timezone=True), default=utcnow)


class KeywordPack(Base):
    __tablename__ = "keyword_packs"

    id = Column(String(36), primary_key=True, default=new_uuid)
    category_id = Column(String(36), ForeignKey("categories.id", ondelete="CASCADE"), nullable=False, index=True)
    keywords = Column(Text, default="[]")  # JSON list stored as text


# ── Lead ────────────────────────────────────────────────
class Lead(Base):
    __tablename__ = "leads"

    id = Column(String(36), primary_key=True, default=new_uuid)
    business_name = Column(String(180), nullable=True)
    category_id = Column(String(36), ForeignKey("categories.id", ondelete="SET NULL"), nullable=True)
    location_id = Column(String(36), ForeignKey("locations.id", ondelete="SET NULL"), nullable=True)
    campaign_id = Column(String(36), ForeignKey("campaigns.id", ondelete="SET NULL"), nullable=True, index=True)
    facebook_url = Column(String(255), nullable=True)
    website_url = Column(String(255), nullable=True)
    phone = Column(String(60), nullable=True)
    email = Column(String(120), nullable=True)
    address = Column(String(255), nullable=True)
    source = Column(String(64), default="manual")
    status = Column(String(20), default=LeadStatus.NEW.value, index=True)
    score_heuristic = Column(Float, nullable=True)
    score_ai = Column(Float, nullable=True)
    score_total = Column(Float, nullable=True)
    last_contacted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)


# Fields a merge reconciles (master wins, gaps are backfilled)
MERGEABLE_LEAD_FIELDS = (
    "business_name",
    "category_id",
    "location_id",
    "campaign_id",
    "facebook_url",
    "website_url",
    "phone",
    "email",
    "address",
    "score_heuristic",
    "score_ai",
    "score_total",
    "last_contacted_at",
)


class LeadEnrichment(Base):
    """Append-only snapshot of external data gathered for a lead."""

    __tablename__ = "lead_enrichment"

    id = Column(String(36), primary_key=True, default=new_uuid)
    lead_id = Column(String(36), ForeignKey("leads.id", ondelete="CASCADE"), nullable=False, index=True)
    raw_json = Column(Text, default="{}")
    detected_keywords = Column(Text, default="[]")
    created_at = Column(DateTime(timezone=True), default=utcnow)


class OutreachMessage(Base):
    __tablename__ = "outreach_messages"

    id = Column(String(36), primary_key=True, default=new_uuid)
    lead_id = Column(String(36), ForeignKey("leads.id", ondelete="CASCADE"), nullable=False, index=True)
    language = Column(String(20), nullable=False)
    angle = Column(String(20), nullable=False)
    variant_label = Column(String(1), nullable=False)  # A|B|C
    message_kind = Column(String(20), default=MessageKind.INITIAL.value)
    message_text = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)


class OutreachEvent(Base):
    """Immutable log of actions taken on a lead."""

    __tablename__ = "outreach_events"

    id = Column(String(36), primary_key=True, default=new_uuid)
    lead_id = Column(String(36), ForeignKey("leads.id", ondelete="CASCADE"), nullable=False, index=True)
    event_type = Column(String(20), nullable=False)
    metadata_ = Column("metadata", Text, default="{}")
    created_at = Column(DateTime(timezone=True), default=utcnow)


# ── Campaign ────────────────────────────────────────────
class Campaign(Base):
    __tablename__ = "campaigns"

    id = Column(String(36), primary_key=True, default=new_uuid)
    name = Column(String(140), nullable=False)
    category_id = Column(String(36), ForeignKey("categories.id", ondelete="SET NULL"), nullable=True)
    location_id = Column(String(36), ForeignKey("locations.id", ondelete="SET NULL"), nullable=True)
    language = Column(String(20), default=MessageLanguage.TAGLISH.value)
    tone = Column(String(20), default=MessageTone.SOFT.value)
    angle = Column(String(20), default=MessageAngle.BOOKING.value)
    min_quality_score = Column(Float, default=45.0)
    daily_send_target = Column(Integer, default=20)
    follow_up_days = Column(Integer, default=3)
    status = Column(String(20), default=CampaignStatus.ACTIVE.value)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)


class CampaignPlaybook(Base):
    """Immutable template used to stamp out campaigns."""

    __tablename__ = "campaign_playbooks"

    id = Column(String(36), primary_key=True, default=new_uuid)
    name = Column(String(140), nullable=False)
    category_id = Column(String(36), ForeignKey("categories.id", ondelete="SET NULL"), nullable=True)
    location_id = Column(String(36), ForeignKey("locations.id", ondelete="SET NULL"), nullable=True)
    language = Column(String(20), default=MessageLanguage.TAGLISH.value)
    tone = Column(String(20), default=MessageTone.SOFT.value)
    angle = Column(String(20), default=MessageAngle.BOOKING.value)
    min_quality_score = Column(Float, default=45.0)
    daily_send_target = Column(Integer, default=20)
    follow_up_days = Column(Integer, default=3)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)


PLAYBOOK_POLICY_FIELDS = (
    "category_id",
    "location_id",
    "language",
    "tone",
    "angle",
    "min_quality_score",
    "daily_send_target",
    "follow_up_days",
    "notes",
)


# ── Settings ────────────────────────────────────────────
class AppSetting(Base):
    """Operator-editable key/value configuration."""

    __tablename__ = "app_settings"

    id = Column(String(36), primary_key=True, default=new_uuid)
    key = Column(String(80), unique=True, nullable=False)
    value_json = Column(Text, default="{}")
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
