"""Reference data — categories, locations, keyword packs, playbook seeds and lead context."""

import json
import logging
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from leadcrm.models import (
    Campaign,
    CampaignPlaybook,
    Category,
    KeywordPack,
    Location,
    MessageAngle,
    enum_value,
)
from leadcrm.services.ai_client import LeadContext

logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES = [
    ("Spa", "booking", ["spa", "massage", "wellness", "relaxation", "facial"]),
    ("Salon", "booking", ["salon", "haircut", "hair color", "blow dry", "beauty"]),
    ("Dental Clinic", "booking", ["dental clinic", "dentist", "oral care", "teeth cleaning", "braces"]),
    ("Hotel", "booking", ["hotel", "resort", "accommodation", "room booking", "inn"]),
    ("Restaurant", "low_volume", ["restaurant", "dine in", "food", "cafe", "eatery"]),
    ("Fast Food", "low_volume", ["fast food", "takeout", "quick service", "burger", "fried chicken"]),
    ("Construction", "organization", ["construction", "contractor", "renovation", "builder", "civil works"]),
]

DEFAULT_LOCATIONS = [
    {"name": "Tacloban City", "city": "Tacloban City", "region": "Region 8", "country": "Philippines"},
    {"name": "Region 8", "city": None, "region": "Region 8", "country": "Philippines"},
]

DEFAULT_PLAYBOOKS = [
    {
        "name": "Spa Booking Booster",
        "category": "Spa",
        "language": "Taglish",
        "tone": "Soft",
        "angle": "booking",
        "min_quality_score": 50,
        "daily_send_target": 20,
        "follow_up_days": 3,
        "notes": "Ideal for local spa pages with low inquiry conversion.",
    },
    {
        "name": "Hotel Lead Recovery",
        "category": "Hotel",
        "language": "English",
        "tone": "Value-Focused",
        "angle": "booking",
        "min_quality_score": 55,
        "daily_send_target": 15,
        "follow_up_days": 4,
        "notes": "For hotels with website traffic but missed follow-ups.",
    },
    {
        "name": "Restaurant Low-Volume Revival",
        "category": "Restaurant",
        "language": "Taglish",
        "tone": "Direct",
        "angle": "low_volume",
        "min_quality_score": 45,
        "daily_send_target": 25,
        "follow_up_days": 3,
        "notes": "For restaurants with inconsistent order volume.",
    },
]


# ── Lookups ────────────────────────────────────────────
async def list_categories(db: AsyncSession) -> list[Category]:
    result = await db.execute(select(Category).order_by(Category.name))
    return list(result.scalars().all())


async def list_locations(db: AsyncSession) -> list[Location]:
    result = await db.execute(select(Location).order_by(Location.name))
    return list(result.scalars().all())


async def get_category(db: AsyncSession, category_id: Optional[str]) -> Optional[Category]:
    if not category_id:
        return None
    return await db.get(Category, category_id)


async def get_location(db: AsyncSession, location_id: Optional[str]) -> Optional[Location]:
    if not location_id:
        return None
    return await db.get(Location, location_id)


async def get_keywords(db: AsyncSession, category_id: Optional[str]) -> list[str]:
    if not category_id:
        return []
    result = await db.execute(select(KeywordPack).where(KeywordPack.category_id == category_id))
    pack = result.scalars().first()
    if pack is None:
        return []
    try:
        keywords = json.loads(pack.keywords or "[]")
    except json.JSONDecodeError:
        return []
    return [str(kw) for kw in keywords if kw]


async def name_maps(db: AsyncSession) -> tuple[dict[str, str], dict[str, str]]:
    """(category id -> name, location id -> name) for batch jobs."""
    categories = {c.id: c.name for c in await list_categories(db)}
    locations = {l.id: l.name for l in await list_locations(db)}
    return categories, locations


# ── Writes ─────────────────────────────────────────────
async def create_category(
    db: AsyncSession, name: str, default_angle: str, keywords: Optional[list[str]] = None
) -> Category:
    category = Category(name=name.strip(), default_angle=enum_value(default_angle))
    db.add(category)
    await db.flush()
    db.add(KeywordPack(category_id=category.id, keywords=json.dumps(keywords or [])))
    await db.commit()
    return category


async def set_keywords(db: AsyncSession, category_id: str, keywords: list[str]) -> list[str]:
    result = await db.execute(select(KeywordPack).where(KeywordPack.category_id == category_id))
    pack = result.scalars().first()
    if pack is None:
        pack = KeywordPack(category_id=category_id)
        db.add(pack)
    pack.keywords = json.dumps(keywords)
    await db.commit()
    return keywords


async def create_location(db: AsyncSession, **fields) -> Location:
    location = Location(**fields)
    db.add(location)
    await db.commit()
    return location


async def seed_reference_data(db: AsyncSession) -> bool:
    """Insert default categories, locations and playbooks into an empty database."""
    count = (await db.execute(select(func.count()).select_from(Category))).scalar()
    if count:
        return False

    category_ids = {}
    for name, angle, keywords in DEFAULT_CATEGORIES:
        category = Category(name=name, default_angle=angle)
        db.add(category)
        await db.flush()
        db.add(KeywordPack(category_id=category.id, keywords=json.dumps(keywords)))
        category_ids[name] = category.id

    for fields in DEFAULT_LOCATIONS:
        db.add(Location(**fields))

    for item in DEFAULT_PLAYBOOKS:
        fields = {k: v for k, v in item.items() if k != "category"}
        db.add(CampaignPlaybook(category_id=category_ids.get(item["category"]), **fields))

    await db.commit()
    logger.info(f"Seeded {len(DEFAULT_CATEGORIES)} categories, {len(DEFAULT_LOCATIONS)} locations")
    return True


# ── Lead context ───────────────────────────────────────
async def build_lead_context(
    db: AsyncSession,
    lead,
    campaign: Optional[Campaign] = None,
    language: Optional[str] = None,
    tone: Optional[str] = None,
    angle: Optional[str] = None,
    fallback_angle: str = MessageAngle.BOOKING.value,
) -> LeadContext:
    """Resolve names and messaging policy for a lead.

    Explicit arguments win, then the campaign, then the category default angle.
    """
    category = await get_category(db, lead.category_id)
    location = await get_location(db, lead.location_id)
    resolved_angle = (
        angle
        or (campaign.angle if campaign else None)
        or (category.default_angle if category else None)
        or fallback_angle
    )
    ctx = LeadContext(
        category_name=category.name if category else "Business",
        location_name=location.name if location else "your area",
        angle=enum_value(resolved_angle),
    )
    if language or campaign:
        ctx.language = enum_value(language or campaign.language)
    if tone or campaign:
        ctx.tone = enum_value(tone or campaign.tone)
    return ctx
