"""Outreach operations — draft generation for a single lead and the event log."""

import logging
from typing import Optional

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from leadcrm.exceptions import LeadNotFoundError
from leadcrm.models import Campaign, LeadStatus, MessageAngle, MessageKind, OutreachEvent, enum_value
from leadcrm.repositories import LeadRepository
from leadcrm.schemas import (
    CsvImportRequest,
    GeneratedMessagesOut,
    GenerateMessagesRequest,
    LeadCreate,
    OutreachEventCreate,
)
from leadcrm.services import reference_data
from leadcrm.services.ai_client import AiClient
from leadcrm.services.compliance import lint_variants, sanitize_variants

logger = logging.getLogger(__name__)


async def _require_lead(repo: LeadRepository, lead_id: str):
    lead = await repo.get(lead_id)
    if lead is None:
        raise LeadNotFoundError(lead_id)
    return lead


async def generate_initial_drafts(
    db: AsyncSession,
    lead_id: str,
    request: GenerateMessagesRequest,
    ai_client: Optional[AiClient] = None,
) -> GeneratedMessagesOut:
    """Replace a lead's first-touch drafts with three fresh variants and mark it DRAFTED."""
    ai_client = ai_client or AiClient()
    repo = LeadRepository(db)
    lead = await _require_lead(repo, lead_id)

    ctx = await reference_data.build_lead_context(
        db,
        lead,
        language=request.language.value,
        tone=request.tone.value,
        angle=request.angle.value if request.angle else None,
        fallback_angle=MessageAngle.ORGANIZATION.value,
    )
    variants = sanitize_variants(await ai_client.generate_outreach_variants(lead, ctx))

    await repo.replace_messages(lead.id, variants, MessageKind.INITIAL, ctx.language, ctx.angle)
    await repo.set_status(lead.id, LeadStatus.DRAFTED)
    await db.commit()
    logger.info(f"Drafted {len(variants)} initial messages for lead {lead.id}")

    return GeneratedMessagesOut(
        lead_id=lead.id,
        language=ctx.language,
        tone=ctx.tone,
        angle=ctx.angle,
        variants=variants,
        compliance_issues=lint_variants(variants),
    )


async def generate_follow_up_for_lead(
    db: AsyncSession,
    lead_id: str,
    ai_client: Optional[AiClient] = None,
) -> GeneratedMessagesOut:
    """Replace a lead's follow-up drafts using its campaign's messaging policy."""
    ai_client = ai_client or AiClient()
    repo = LeadRepository(db)
    lead = await _require_lead(repo, lead_id)
    campaign = await db.get(Campaign, lead.campaign_id) if lead.campaign_id else None

    ctx = await reference_data.build_lead_context(db, lead, campaign=campaign)
    variants = sanitize_variants(await ai_client.generate_follow_up_variants(lead, ctx))

    await repo.replace_messages(lead.id, variants, MessageKind.FOLLOW_UP, ctx.language, ctx.angle)
    await db.commit()

    return GeneratedMessagesOut(
        lead_id=lead.id,
        language=ctx.language,
        tone=ctx.tone,
        angle=ctx.angle,
        variants=variants,
        compliance_issues=lint_variants(variants),
    )


async def log_outreach_event(db: AsyncSession, payload: OutreachEventCreate) -> OutreachEvent:
    repo = LeadRepository(db)
    await _require_lead(repo, payload.lead_id)
    event = await repo.add_event(payload.lead_id, payload.event_type, payload.metadata)
    if payload.status is not None:
        await repo.set_status(payload.lead_id, payload.status)
    await db.commit()
    logger.info(f"Lead {payload.lead_id}: {enum_value(payload.event_type)}")
    return event


def records_from_csv(request: CsvImportRequest) -> tuple[list[LeadCreate], int]:
    """Map parsed CSV rows onto lead records; rows that fail validation are counted, not raised."""
    records = []
    invalid = 0
    for row in request.rows:
        values = {
            field: (str(row[column]) if row.get(column) is not None else None)
            for field, column in request.mapping.items()
        }
        try:
            records.append(
                LeadCreate(
                    **values,
                    category_id=request.category_id,
                    location_id=request.location_id,
                    source="csv",
                )
            )
        except ValidationError:
            invalid += 1
    return records, invalid
