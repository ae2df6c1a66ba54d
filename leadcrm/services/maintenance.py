"""Nightly maintenance — campaign assignment, follow-ups, contact refresh and duplicate merge."""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from leadcrm.config import Settings, get_settings
from leadcrm.models import Campaign, CampaignStatus, utcnow
from leadcrm.schemas import (
    CampaignFollowUpOut,
    ContactRefreshOut,
    MaintenanceSummaryOut,
    MergeRunOut,
    NightlyRunRequest,
)
from leadcrm.services.ai_client import AiClient
from leadcrm.services.campaign_assigner import DEFAULT_ASSIGN_STATUSES, assign_leads_to_campaign
from leadcrm.services.contact_refresh import refresh_stale_contacts
from leadcrm.services.follow_up_scheduler import generate_follow_up_drafts
from leadcrm.services.merge_engine import merge_duplicate_leads
from leadcrm.services.web_probe import ContactScraper

logger = logging.getLogger(__name__)

NIGHTLY_MERGE_LIMIT = 200


async def run_nightly_maintenance(
    db: AsyncSession,
    options: Optional[NightlyRunRequest] = None,
    ai_client: Optional[AiClient] = None,
    scraper: Optional[ContactScraper] = None,
    session_factory: Optional[async_sessionmaker] = None,
    settings: Optional[Settings] = None,
) -> MaintenanceSummaryOut:
    """Run every maintenance step once.

    Steps are independent: a failing step is logged and listed in
    ``errors`` and the remaining steps still run.
    """
    options = options or NightlyRunRequest()
    settings = settings or get_settings()
    ai_client = ai_client or AiClient(settings)
    errors: list[str] = []

    async def attempt(step: str, coro):
        try:
            return await coro
        except Exception as exc:
            logger.exception(f"Nightly maintenance step '{step}' failed")
            await db.rollback()
            errors.append(f"{step}: {exc}")
            return None

    # plain tuples: a rollback after a failed step expires ORM instances
    result = await db.execute(
        select(Campaign.id, Campaign.daily_send_target, Campaign.follow_up_days).where(
            Campaign.status == CampaignStatus.ACTIVE.value
        )
    )
    campaigns = result.all()

    assignments = []
    follow_ups = []
    for campaign_id, daily_send_target, follow_up_days in campaigns:
        assignment = await attempt(
            f"assign {campaign_id}",
            assign_leads_to_campaign(
                db,
                campaign_id,
                auto_only=True,
                include_statuses=DEFAULT_ASSIGN_STATUSES,
                limit=daily_send_target,
                settings=settings,
            ),
        )
        if assignment is not None:
            assignments.append(assignment)

        follow_up = await attempt(
            f"follow-ups {campaign_id}",
            generate_follow_up_drafts(
                db,
                campaign_id=campaign_id,
                days_since_sent=follow_up_days,
                limit=(
                    daily_send_target
                    if options.follow_up_limit_per_campaign is None
                    else options.follow_up_limit_per_campaign
                ),
                ai_client=ai_client,
                session_factory=session_factory,
                settings=settings,
            ),
        )
        if follow_up is not None:
            follow_ups.append(CampaignFollowUpOut(campaign_id=campaign_id, **follow_up.model_dump()))

    refresh = await attempt(
        "contact refresh",
        refresh_stale_contacts(
            db,
            days_stale=options.contact_days_stale,
            limit=options.contact_limit,
            scraper=scraper,
            session_factory=session_factory,
            settings=settings,
        ),
    )
    merge = await attempt("duplicate merge", merge_duplicate_leads(db, limit=NIGHTLY_MERGE_LIMIT, settings=settings))

    summary = MaintenanceSummaryOut(
        campaign_assignments=assignments,
        follow_up_drafts=follow_ups,
        contact_refresh=ContactRefreshOut(**refresh.model_dump()) if refresh else None,
        duplicate_merge=MergeRunOut(merged=merge.merged, checked=merge.checked) if merge else None,
        errors=errors,
        generated_at=utcnow(),
    )
    logger.info(
        f"Nightly maintenance: campaigns={len(campaigns)}, errors={len(errors)}, "
        f"merged={merge.merged if merge else 0}"
    )
    return summary
