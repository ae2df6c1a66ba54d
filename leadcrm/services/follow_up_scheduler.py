"""Follow-up scheduler — drafts a second touch for leads that went quiet after a send."""

import logging
from datetime import timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from leadcrm.config import Settings, get_settings
from leadcrm.database import get_session_factory
from leadcrm.models import (
    Campaign,
    Lead,
    MessageAngle,
    MessageKind,
    MessageLanguage,
    MessageTone,
    as_utc,
    utcnow,
)
from leadcrm.repositories import LeadRepository
from leadcrm.schemas import FollowUpRunOut
from leadcrm.services import reference_data
from leadcrm.services.ai_client import AiClient, LeadContext
from leadcrm.services.compliance import sanitize_variants
from leadcrm.services.worker_pool import map_with_concurrency

logger = logging.getLogger(__name__)

FOLLOW_UP_CONCURRENCY = 4
DEFAULT_DAYS_SINCE_SENT = 3
DEFAULT_FOLLOW_UP_LIMIT = 60


async def list_follow_up_candidates(
    db: AsyncSession,
    days_since_sent: int,
    limit: int,
    campaign_id: Optional[str] = None,
    settings: Optional[Settings] = None,
) -> list[tuple[Lead, Optional[Campaign]]]:
    """SENT leads contacted at least ``days_since_sent`` ago with no follow-up draft yet.

    Most recently contacted first.
    """
    settings = settings or get_settings()
    repo = LeadRepository(db)
    cutoff = utcnow() - timedelta(days=days_since_sent)

    sent = await repo.list_sent_leads(limit=settings.lead_scan_window, campaign_id=campaign_id)
    stale = [lead for lead in sent if lead.last_contacted_at and as_utc(lead.last_contacted_at) <= cutoff]
    drafted = await repo.lead_ids_with_message_kind([lead.id for lead in stale], MessageKind.FOLLOW_UP)
    leads = [lead for lead in stale if lead.id not in drafted][:limit]

    campaign_ids = {lead.campaign_id for lead in leads if lead.campaign_id}
    campaigns = {}
    if campaign_ids:
        result = await db.execute(select(Campaign).where(Campaign.id.in_(campaign_ids)))
        campaigns = {c.id: c for c in result.scalars().all()}
    return [(lead, campaigns.get(lead.campaign_id)) for lead in leads]


async def generate_follow_up_drafts(
    db: AsyncSession,
    campaign_id: Optional[str] = None,
    days_since_sent: int = DEFAULT_DAYS_SINCE_SENT,
    limit: int = DEFAULT_FOLLOW_UP_LIMIT,
    ai_client: Optional[AiClient] = None,
    session_factory: Optional[async_sessionmaker] = None,
    settings: Optional[Settings] = None,
) -> FollowUpRunOut:
    """Generate and store follow-up drafts for every due lead, four at a time.

    A lead whose drafting fails is logged and counted as skipped; the rest of
    the batch carries on.
    """
    days_since_sent = max(1, min(30, days_since_sent))
    limit = max(1, min(300, limit))
    ai_client = ai_client or AiClient()
    session_factory = session_factory or get_session_factory()

    candidates = await list_follow_up_candidates(db, days_since_sent, limit, campaign_id, settings)
    if not candidates:
        return FollowUpRunOut(processed=0, drafted=0, skipped=0)

    category_names, location_names = await reference_data.name_maps(db)

    async def draft(candidate):
        lead, campaign = candidate
        language = campaign.language if campaign else MessageLanguage.TAGLISH.value
        angle = campaign.angle if campaign else MessageAngle.BOOKING.value
        ctx = LeadContext(
            category_name=category_names.get(lead.category_id, "Business"),
            location_name=location_names.get(lead.location_id, "your area"),
            language=language,
            tone=campaign.tone if campaign else MessageTone.SOFT.value,
            angle=angle,
        )
        variants = sanitize_variants(await ai_client.generate_follow_up_variants(lead, ctx))

        async with session_factory() as session:
            repo = LeadRepository(session)
            await repo.add_messages(lead.id, variants, MessageKind.FOLLOW_UP, language, angle)
            await repo.add_enrichment(
                lead.id,
                {
                    "source": "follow_up_draft_generated",
                    "campaign_id": campaign.id if campaign else None,
                    "generated_at": utcnow().isoformat(),
                    "days_since_sent": days_since_sent,
                },
            )
            await session.commit()
        return len(variants)

    outcomes = await map_with_concurrency(
        candidates, draft, concurrency=FOLLOW_UP_CONCURRENCY, label="follow-up drafts"
    )
    drafted = sum(1 for outcome in outcomes if outcome.ok)
    result = FollowUpRunOut(processed=len(candidates), drafted=drafted, skipped=len(candidates) - drafted)
    logger.info(
        f"Follow-up drafts (campaign={campaign_id or 'all'}): "
        f"processed={result.processed}, drafted={result.drafted}, skipped={result.skipped}"
    )
    return result
