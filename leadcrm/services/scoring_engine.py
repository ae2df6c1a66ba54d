"""Lead scoring engine — heuristic opportunity score blended with an AI opinion."""

import json
import logging
import re
from typing import Optional

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leadcrm.config import Settings, get_settings
from leadcrm.exceptions import LeadNotFoundError
from leadcrm.models import AppSetting, Location, utcnow
from leadcrm.repositories import LeadRepository
from leadcrm.schemas import HeuristicResult, LeadScoreOut, ScoreWeights, ScoreWeightsUpdate
from leadcrm.services import reference_data
from leadcrm.services.ai_client import AiClient
from leadcrm.services.lead_quality import clamp_score
from leadcrm.services.web_probe import HomepageFetcher

logger = logging.getLogger(__name__)

SCORE_WEIGHTS_KEY = "scoring_weights"

# ── Heuristic points ───────────────────────────────────
SOCIAL_ONLY_POINTS = 30
NO_BOOKING_FLOW_POINTS = 15
UNREACHABLE_SITE_POINTS = 10
KEYWORD_MATCH_POINTS = 10
LOCAL_MATCH_POINTS = 10

FORM_TAG_PATTERN = re.compile(r"<form[\s>]")
BOOKING_PHRASE_PATTERN = re.compile(r"(book now|reserve|appointment|contact us|inquire)")


async def compute_heuristic_score(
    lead,
    keywords: list[str],
    location: Optional[Location],
    fetcher: HomepageFetcher,
) -> HeuristicResult:
    """Score the outreach opportunity a lead presents, 0-100.

    A social profile without a website, or a website without a visible
    booking/contact flow, points to a funnel gap the agency can fill.
    """
    score = 0
    reasons = []
    text = f"{lead.business_name or ''} {lead.address or ''}".lower()
    website_has_form = None

    if not lead.website_url and lead.facebook_url:
        score += SOCIAL_ONLY_POINTS
        reasons.append(
            "No website detected, but active Facebook presence suggests immediate digital funnel gap (+30)."
        )

    if lead.website_url:
        html = await fetcher.fetch(lead.website_url)
        if html:
            lower = html.lower()
            website_has_form = bool(FORM_TAG_PATTERN.search(lower) or BOOKING_PHRASE_PATTERN.search(lower))
            if not website_has_form:
                score += NO_BOOKING_FLOW_POINTS
                reasons.append("Website found but no obvious booking/contact flow (+15).")
        else:
            score += UNREACHABLE_SITE_POINTS
            reasons.append("Website could not be validated; possible discoverability or maintenance gap (+10).")

    detected = [kw for kw in keywords if kw.lower() in text]
    if detected:
        score += KEYWORD_MATCH_POINTS
        reasons.append("Service keywords match the target niche (+10).")

    if location is not None:
        needles = [v.lower() for v in (location.name, location.city, location.region) if v]
        if any(needle in text for needle in needles):
            score += LOCAL_MATCH_POINTS
            reasons.append("Business aligns with selected local market (+10).")

    return HeuristicResult(
        score=clamp_score(score),
        reasons=reasons,
        detected_keywords=detected,
        website_has_form=website_has_form,
    )


def blend_scores(heuristic: float, ai: float, weights: ScoreWeights) -> int:
    return clamp_score(heuristic * weights.heuristic + ai * weights.ai)


# ── Weights ────────────────────────────────────────────
def default_weights(settings: Optional[Settings] = None) -> ScoreWeights:
    settings = settings or get_settings()
    return ScoreWeights(heuristic=settings.default_heuristic_weight, ai=settings.default_ai_weight)


async def _get_setting_row(db: AsyncSession, key: str) -> Optional[AppSetting]:
    result = await db.execute(select(AppSetting).where(AppSetting.key == key))
    return result.scalar_one_or_none()


async def get_score_weights(db: AsyncSession, settings: Optional[Settings] = None) -> ScoreWeights:
    """Stored weights, or the configured defaults when unset or unreadable."""
    row = await _get_setting_row(db, SCORE_WEIGHTS_KEY)
    if row is None:
        return default_weights(settings)
    try:
        return ScoreWeights.model_validate(json.loads(row.value_json or "{}"))
    except (json.JSONDecodeError, ValidationError):
        logger.warning("Stored scoring weights are unreadable; using defaults")
        return default_weights(settings)


async def set_score_weights(db: AsyncSession, weights: ScoreWeightsUpdate) -> ScoreWeights:
    row = await _get_setting_row(db, SCORE_WEIGHTS_KEY)
    value = ScoreWeights(heuristic=weights.heuristic, ai=weights.ai)
    if row is None:
        row = AppSetting(key=SCORE_WEIGHTS_KEY)
        db.add(row)
    row.value_json = value.model_dump_json()
    row.updated_at = utcnow()
    await db.commit()
    logger.info(f"Scoring weights set to heuristic={value.heuristic}, ai={value.ai}")
    return value


# ── Full scoring run ───────────────────────────────────
async def score_lead(
    db: AsyncSession,
    lead_id: str,
    fetcher: Optional[HomepageFetcher] = None,
    ai_client: Optional[AiClient] = None,
    weights: Optional[ScoreWeights] = None,
) -> LeadScoreOut:
    """Compute, persist and explain the heuristic, AI and blended scores of one lead."""
    repo = LeadRepository(db)
    lead = await repo.get(lead_id)
    if lead is None:
        raise LeadNotFoundError(lead_id)

    fetcher = fetcher or HomepageFetcher()
    ai_client = ai_client or AiClient()
    weights = weights or await get_score_weights(db)

    location = await reference_data.get_location(db, lead.location_id)
    keywords = await reference_data.get_keywords(db, lead.category_id)
    ctx = await reference_data.build_lead_context(db, lead)

    heuristic = await compute_heuristic_score(lead, keywords, location, fetcher)
    ctx.heuristic_reasons = heuristic.reasons
    ai = await ai_client.score_lead(lead, ctx)
    total = blend_scores(heuristic.score, ai.score, weights)

    await repo.save_scores(lead.id, heuristic.score, ai.score, total)
    await repo.add_enrichment(
        lead.id,
        {
            "source": "scoring",
            "heuristic": heuristic.model_dump(),
            "ai": ai.model_dump(mode="json"),
            "category": ctx.category_name if lead.category_id else None,
            "weights": weights.model_dump(),
        },
        detected_keywords=heuristic.detected_keywords,
    )
    await db.commit()
    logger.info(f"Scored lead {lead.id}: heuristic={heuristic.score}, ai={ai.score}, total={total}")

    return LeadScoreOut(
        lead_id=lead.id,
        score_heuristic=heuristic.score,
        score_ai=ai.score,
        score_total=total,
        reasons=heuristic.reasons + ai.reasons,
        opportunity_summary=ai.opportunity_summary,
        suggested_angle=ai.suggested_angle.value,
    )
