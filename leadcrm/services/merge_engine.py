"""Merge engine — folds fingerprint-colliding leads into a single master record."""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from leadcrm.config import Settings, get_settings
from leadcrm.models import MERGEABLE_LEAD_FIELDS, Lead
from leadcrm.repositories import LeadRepository
from leadcrm.schemas import LeadFields
from leadcrm.services.fingerprint import fingerprint_keys

logger = logging.getLogger(__name__)

DEFAULT_MERGE_LIMIT = 200
MAX_MERGE_LIMIT = 1000


@dataclass
class MergeResult:
    merged: int
    checked: int


def reconcile_fields(master: dict, duplicate: Lead) -> dict:
    """Master values win; fields the master lacks are backfilled from the duplicate."""
    return {
        name: master[name] if master[name] is not None else getattr(duplicate, name)
        for name in MERGEABLE_LEAD_FIELDS
    }


def _snapshot(lead: Lead) -> dict:
    snapshot = {name: getattr(lead, name) for name in MERGEABLE_LEAD_FIELDS}
    snapshot["id"] = lead.id
    return snapshot


async def merge_duplicate_leads(
    db: AsyncSession,
    limit: int = DEFAULT_MERGE_LIMIT,
    settings: Optional[Settings] = None,
) -> MergeResult:
    """Scan leads oldest first and merge each into the first master sharing a key.

    Key precedence follows fingerprint order: website, social, phone,
    name + location. Every merge is committed on its own, so an interrupted
    run leaves a consistent, partially merged population; rerunning picks up
    where it stopped.
    """
    settings = settings or get_settings()
    limit = max(1, min(MAX_MERGE_LIMIT, limit))
    repo = LeadRepository(db)
    rows = await repo.list_leads(limit=settings.merge_scan_window, oldest_first=True)

    masters: dict[str, dict] = {}
    merged = 0

    for row in rows:
        if merged >= limit:
            break
        keys = fingerprint_keys(LeadFields.from_stored(row))
        master = next((masters[key] for key in keys if key in masters), None)
        if master is None:
            snapshot = _snapshot(row)
            for key in keys:
                masters[key] = snapshot
            continue
        if master["id"] == row.id:
            continue

        patch = reconcile_fields(master, row)
        duplicate_id = row.id
        try:
            await repo.update_lead_fields(master["id"], patch)
            await repo.reparent_child_rows(duplicate_id, master["id"])
            await repo.delete_lead(duplicate_id)
            await db.commit()
        except Exception:
            await db.rollback()
            logger.exception(f"Merge of lead {duplicate_id} into {master['id']} failed")
            raise

        merged += 1
        logger.info(f"Merged lead {duplicate_id} into {master['id']}")
        master.update(patch)
        for key in keys:
            masters[key] = master

    logger.info(f"Duplicate merge: merged={merged}, checked={len(rows)}")
    return MergeResult(merged=merged, checked=len(rows))
