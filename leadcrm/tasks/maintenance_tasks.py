"""Scheduled maintenance tasks."""

import asyncio
import logging

from leadcrm.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(name="leadcrm.tasks.run_nightly_maintenance", bind=True, max_retries=1, default_retry_delay=300)
def run_nightly_maintenance_task(
    self,
    contact_days_stale: int = 21,
    contact_limit: int = 120,
    follow_up_limit_per_campaign: int | None = None,
):
    """Run the nightly maintenance pass and return its summary as JSON."""
    return asyncio.run(_run_nightly(contact_days_stale, contact_limit, follow_up_limit_per_campaign))


async def _run_nightly(contact_days_stale: int, contact_limit: int, follow_up_limit_per_campaign: int | None):
    from leadcrm.database import async_session, engine
    from leadcrm.schemas import NightlyRunRequest
    from leadcrm.services.maintenance import run_nightly_maintenance

    options = NightlyRunRequest(
        contact_days_stale=contact_days_stale,
        contact_limit=contact_limit,
        follow_up_limit_per_campaign=follow_up_limit_per_campaign,
    )
    try:
        async with async_session() as db:
            summary = await run_nightly_maintenance(db, options)
    finally:
        # each asyncio.run gets a fresh loop; pooled connections must not outlive it
        await engine.dispose()

    if summary.errors:
        logger.warning(f"Nightly maintenance finished with {len(summary.errors)} error(s): {summary.errors}")
    else:
        logger.info("Nightly maintenance finished cleanly")
    return summary.model_dump(mode="json")
