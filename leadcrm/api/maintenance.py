"""Maintenance API — nightly run and its individual steps on demand.

Every route accepts an ``X-Maintenance-Token`` header that skips rate
limiting, so schedulers outside the app can call them freely.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from leadcrm.api.deps import get_ai_client, get_contact_scraper, rate_limited
from leadcrm.database import get_db, get_session_factory
from leadcrm.schemas import (
    ContactRefreshOut,
    ContactRefreshRequest,
    FollowUpRunOut,
    FollowUpRunRequest,
    MaintenanceSummaryOut,
    MergeRunOut,
    MergeRunRequest,
    NightlyRunRequest,
)
from leadcrm.services.ai_client import AiClient
from leadcrm.services.contact_refresh import refresh_stale_contacts
from leadcrm.services.follow_up_scheduler import generate_follow_up_drafts
from leadcrm.services.maintenance import run_nightly_maintenance
from leadcrm.services.merge_engine import merge_duplicate_leads
from leadcrm.services.web_probe import ContactScraper

router = APIRouter(prefix="/maintenance", tags=["maintenance"])


@router.post(
    "/nightly",
    response_model=MaintenanceSummaryOut,
    dependencies=[Depends(rate_limited("maintenance-nightly", allow_maintenance_token=True))],
)
async def nightly(
    data: NightlyRunRequest | None = None,
    db: AsyncSession = Depends(get_db),
    ai_client: AiClient = Depends(get_ai_client),
    scraper: ContactScraper = Depends(get_contact_scraper),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    return await run_nightly_maintenance(
        db, data, ai_client=ai_client, scraper=scraper, session_factory=session_factory
    )


@router.get(
    "/nightly",
    response_model=MaintenanceSummaryOut,
    dependencies=[Depends(rate_limited("maintenance-nightly", allow_maintenance_token=True))],
)
async def nightly_get(
    params: NightlyRunRequest = Depends(),
    db: AsyncSession = Depends(get_db),
    ai_client: AiClient = Depends(get_ai_client),
    scraper: ContactScraper = Depends(get_contact_scraper),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    """Same run, for cron services that can only issue GET requests."""
    return await run_nightly_maintenance(
        db, params, ai_client=ai_client, scraper=scraper, session_factory=session_factory
    )


@router.post(
    "/merge-duplicates",
    response_model=MergeRunOut,
    dependencies=[Depends(rate_limited("maintenance-merge", allow_maintenance_token=True))],
)
async def merge_duplicates(data: MergeRunRequest | None = None, db: AsyncSession = Depends(get_db)):
    data = data or MergeRunRequest()
    result = await merge_duplicate_leads(db, limit=data.limit)
    return MergeRunOut(merged=result.merged, checked=result.checked)


@router.post(
    "/follow-ups",
    response_model=FollowUpRunOut,
    dependencies=[Depends(rate_limited("maintenance-follow-ups", allow_maintenance_token=True))],
)
async def follow_ups(
    data: FollowUpRunRequest | None = None,
    db: AsyncSession = Depends(get_db),
    ai_client: AiClient = Depends(get_ai_client),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    data = data or FollowUpRunRequest()
    return await generate_follow_up_drafts(
        db,
        campaign_id=data.campaign_id,
        days_since_sent=data.days_since_sent,
        limit=data.limit,
        ai_client=ai_client,
        session_factory=session_factory,
    )


@router.post(
    "/reverify-stale",
    response_model=ContactRefreshOut,
    dependencies=[Depends(rate_limited("maintenance-reverify", allow_maintenance_token=True))],
)
async def reverify_stale(
    data: ContactRefreshRequest | None = None,
    db: AsyncSession = Depends(get_db),
    scraper: ContactScraper = Depends(get_contact_scraper),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    data = data or ContactRefreshRequest()
    return await refresh_stale_contacts(
        db, days_stale=data.days_stale, limit=data.limit, scraper=scraper, session_factory=session_factory
    )
