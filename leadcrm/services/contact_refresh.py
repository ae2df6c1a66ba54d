"""Contact refresh — re-scrapes websites of leads whose contact data has gone stale."""

import logging
from datetime import timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from leadcrm.config import Settings, get_settings
from leadcrm.database import get_session_factory
from leadcrm.models import Lead, utcnow
from leadcrm.repositories import LeadRepository
from leadcrm.schemas import ContactRefreshOut
from leadcrm.services.web_probe import ContactScraper
from leadcrm.services.worker_pool import map_with_concurrency

logger = logging.getLogger(__name__)

REFRESH_CONCURRENCY = 6
DEFAULT_DAYS_STALE = 21
DEFAULT_REFRESH_LIMIT = 60


async def list_leads_needing_refresh(
    db: AsyncSession, days_stale: int, limit: int, settings: Optional[Settings] = None
) -> list[Lead]:
    """Leads with a website whose newest enrichment is missing or older than the cutoff."""
    settings = settings or get_settings()
    repo = LeadRepository(db)
    cutoff = utcnow() - timedelta(days=days_stale)
    latest = await repo.latest_enrichment_at_by_lead()
    leads = await repo.list_leads_with_website(settings.lead_scan_window)
    return [lead for lead in leads if lead.id not in latest or latest[lead.id] < cutoff][:limit]


async def refresh_stale_contacts(
    db: AsyncSession,
    days_stale: int = DEFAULT_DAYS_STALE,
    limit: int = DEFAULT_REFRESH_LIMIT,
    scraper: Optional[ContactScraper] = None,
    session_factory: Optional[async_sessionmaker] = None,
    settings: Optional[Settings] = None,
) -> ContactRefreshOut:
    """Scrape each stale lead's website and store what changed.

    A value the scraper cannot find keeps the lead's current one. Every
    checked lead gets an enrichment snapshot, changed or not, which resets
    its staleness clock.
    """
    days_stale = max(1, min(180, days_stale))
    limit = max(1, min(200, limit))
    scraper = scraper or ContactScraper(settings=settings)
    session_factory = session_factory or get_session_factory()

    leads = await list_leads_needing_refresh(db, days_stale, limit, settings)
    if not leads:
        return ContactRefreshOut(processed=0, updated=0, unchanged=0)

    async def refresh(lead: Lead) -> bool:
        contact = await scraper.enrich(lead.website_url)
        previous = {"facebook_url": lead.facebook_url, "email": lead.email}
        current = {
            "facebook_url": contact.facebook_url or lead.facebook_url,
            "email": contact.email or lead.email,
        }
        changed = current != previous

        async with session_factory() as session:
            repo = LeadRepository(session)
            if changed:
                await repo.update_lead_fields(lead.id, current)
            await repo.add_enrichment(
                lead.id,
                {
                    "source": "contact_refresh",
                    "checked_at": contact.checked_at,
                    "previous": previous,
                    "next": current,
                    "changed": changed,
                },
            )
            await session.commit()
        return changed

    outcomes = await map_with_concurrency(leads, refresh, concurrency=REFRESH_CONCURRENCY, label="contact refresh")
    updated = sum(1 for outcome in outcomes if outcome.ok and outcome.result)
    result = ContactRefreshOut(processed=len(leads), updated=updated, unchanged=len(leads) - updated)
    logger.info(
        f"Contact refresh: processed={result.processed}, updated={result.updated}, unchanged={result.unchanged}"
    )
    return result
