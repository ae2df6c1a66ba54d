"""Campaign assigner — fills a campaign's daily quota with its best eligible leads."""

import logging
from typing import Iterable, Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from leadcrm.config import Settings, get_settings
from leadcrm.exceptions import CampaignNotFoundError
from leadcrm.models import Campaign, Lead, LeadStatus, enum_value
from leadcrm.repositories import LeadRepository
from leadcrm.schemas import AssignmentOut
from leadcrm.services.lead_quality import compute_quality_score
from leadcrm.services.priority_ranker import sort_highest_quality

logger = logging.getLogger(__name__)

DEFAULT_ASSIGN_STATUSES = (LeadStatus.NEW.value, LeadStatus.DRAFTED.value)
MAX_ASSIGN_LIMIT = 500


def is_eligible(lead: Lead, campaign: Campaign, statuses: set[str], auto_only: bool) -> bool:
    if lead.status not in statuses:
        return False
    if auto_only and lead.campaign_id:
        return False
    if campaign.category_id and lead.category_id != campaign.category_id:
        return False
    if campaign.location_id and lead.location_id != campaign.location_id:
        return False
    return compute_quality_score(lead) >= (campaign.min_quality_score or 0)


async def assign_leads_to_campaign(
    db: AsyncSession,
    campaign_id: str,
    auto_only: bool = True,
    include_statuses: Iterable[str] = DEFAULT_ASSIGN_STATUSES,
    limit: Optional[int] = None,
    settings: Optional[Settings] = None,
) -> AssignmentOut:
    """Attach the highest-quality eligible leads to a campaign.

    ``limit`` defaults to the campaign's daily send target. ``skipped`` counts
    every lead that was looked at but not assigned.
    """
    settings = settings or get_settings()
    campaign = await db.get(Campaign, campaign_id)
    if campaign is None:
        raise CampaignNotFoundError(campaign_id)

    quota = limit if limit is not None else campaign.daily_send_target
    quota = max(1, min(MAX_ASSIGN_LIMIT, quota or 1))
    statuses = {enum_value(s) for s in include_statuses}

    pool = sort_highest_quality(await LeadRepository(db).list_leads(limit=settings.lead_scan_window))
    chosen = [lead for lead in pool if is_eligible(lead, campaign, statuses, auto_only)][:quota]

    if chosen:
        await db.execute(
            update(Lead)
            .where(Lead.id.in_([lead.id for lead in chosen]))
            .values(campaign_id=campaign.id)
        )
        await db.commit()

    result = AssignmentOut(
        campaign_id=campaign.id,
        assigned=len(chosen),
        skipped=max(0, len(pool) - len(chosen)),
    )
    logger.info(f"Campaign {campaign.id}: assigned={result.assigned}, skipped={result.skipped}")
    return result
