"""Lead repository — every read/write the core makes against the lead aggregate.

Methods stage changes on the session; the calling service decides when to
commit so that multi-step operations (a merge, a bulk insert) land atomically.
"""

import json
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from leadcrm.models import (
    Lead,
    LeadEnrichment,
    LeadStatus,
    MessageKind,
    OutreachEvent,
    OutreachMessage,
    as_utc,
    enum_value,
    utcnow,
)
from leadcrm.schemas import LeadCreate, LeadFields, MessageVariant

CHILD_MODELS = (OutreachMessage, OutreachEvent, LeadEnrichment)

LEAD_INSERT_FIELDS = (
    "business_name",
    "category_id",
    "location_id",
    "campaign_id",
    "facebook_url",
    "website_url",
    "phone",
    "email",
    "address",
    "source",
)


class LeadRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    # ── Reads ─────────────────────────────────────────
    async def get(self, lead_id: str) -> Optional[Lead]:
        result = await self.db.execute(select(Lead).where(Lead.id == lead_id))
        return result.scalar_one_or_none()

    async def list_fingerprint_fields(self, limit: int) -> list[LeadFields]:
        """Contact-field subset of the newest ``limit`` leads."""
        stmt = (
            select(
                Lead.business_name,
                Lead.location_id,
                Lead.website_url,
                Lead.facebook_url,
                Lead.phone,
            )
            .order_by(Lead.created_at.desc())
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return [LeadFields.from_stored(dict(row._mapping)) for row in result.all()]

    async def list_leads(
        self,
        limit: int,
        statuses: Optional[Iterable[str]] = None,
        campaign_id: Optional[str] = None,
        oldest_first: bool = False,
    ) -> list[Lead]:
        stmt = select(Lead)
        if statuses is not None:
            stmt = stmt.where(Lead.status.in_([enum_value(s) for s in statuses]))
        if campaign_id:
            stmt = stmt.where(Lead.campaign_id == campaign_id)
        order = Lead.created_at.asc() if oldest_first else Lead.created_at.desc()
        # id breaks created_at ties so repeated scans see the same order
        stmt = stmt.order_by(order, Lead.id.asc()).limit(limit)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def list_sent_leads(self, limit: int, campaign_id: Optional[str] = None) -> list[Lead]:
        stmt = select(Lead).where(Lead.status == LeadStatus.SENT.value)
        if campaign_id:
            stmt = stmt.where(Lead.campaign_id == campaign_id)
        stmt = stmt.order_by(Lead.last_contacted_at.desc(), Lead.created_at.desc()).limit(limit)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def list_leads_with_website(self, limit: int) -> list[Lead]:
        stmt = (
            select(Lead)
            .where(Lead.website_url.ilike("http%"))
            .order_by(Lead.created_at.desc())
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def latest_enrichment_at_by_lead(self) -> dict[str, datetime]:
        stmt = select(LeadEnrichment.lead_id, func.max(LeadEnrichment.created_at)).group_by(
            LeadEnrichment.lead_id
        )
        result = await self.db.execute(stmt)
        return {lead_id: as_utc(latest) for lead_id, latest in result.all() if latest is not None}

    async def latest_enrichment(self, lead_id: str) -> Optional[dict]:
        stmt = (
            select(LeadEnrichment)
            .where(LeadEnrichment.lead_id == lead_id)
            .order_by(LeadEnrichment.created_at.desc())
            .limit(1)
        )
        row = (await self.db.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        try:
            return json.loads(row.raw_json or "{}")
        except (json.JSONDecodeError, TypeError):
            return {}

    async def lead_ids_with_message_kind(self, lead_ids: list[str], kind: MessageKind) -> set[str]:
        if not lead_ids:
            return set()
        stmt = select(OutreachMessage.lead_id).where(
            OutreachMessage.message_kind == kind.value,
            OutreachMessage.lead_id.in_(lead_ids),
        )
        result = await self.db.execute(stmt)
        return set(result.scalars().all())

    async def list_messages(self, lead_ids: list[str]) -> list[OutreachMessage]:
        if not lead_ids:
            return []
        stmt = (
            select(OutreachMessage)
            .where(OutreachMessage.lead_id.in_(lead_ids))
            .order_by(OutreachMessage.created_at.desc())
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def list_events(self, lead_id: str) -> list[OutreachEvent]:
        stmt = (
            select(OutreachEvent)
            .where(OutreachEvent.lead_id == lead_id)
            .order_by(OutreachEvent.created_at.desc())
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    # ── Writes ────────────────────────────────────────
    def _build_lead(self, record: LeadCreate) -> Lead:
        values = {key: getattr(record, key) for key in LEAD_INSERT_FIELDS}
        values["status"] = LeadStatus(record.status).value
        if values["status"] == LeadStatus.SENT.value:
            values["last_contacted_at"] = utcnow()
        return Lead(**values)

    async def insert_lead(self, record: LeadCreate) -> Lead:
        lead = self._build_lead(record)
        self.db.add(lead)
        await self.db.flush()
        return lead

    async def bulk_insert_leads(self, records: list[LeadCreate]) -> list[Lead]:
        leads = [self._build_lead(record) for record in records]
        self.db.add_all(leads)
        await self.db.flush()
        return leads

    async def update_lead_fields(self, lead_id: str, patch: dict) -> None:
        if not patch:
            return
        await self.db.execute(update(Lead).where(Lead.id == lead_id).values(**patch))

    async def reparent_child_rows(self, from_lead_id: str, to_lead_id: str) -> None:
        """Point every message, event and enrichment row of one lead at another."""
        for model in CHILD_MODELS:
            await self.db.execute(
                update(model).where(model.lead_id == from_lead_id).values(lead_id=to_lead_id)
            )

    async def delete_lead(self, lead_id: str) -> None:
        """Delete a lead and whatever children still point at it."""
        for model in CHILD_MODELS:
            await self.db.execute(delete(model).where(model.lead_id == lead_id))
        await self.db.execute(delete(Lead).where(Lead.id == lead_id))

    async def set_status(self, lead_id: str, status: LeadStatus) -> None:
        patch = {"status": LeadStatus(status).value}
        if patch["status"] == LeadStatus.SENT.value:
            patch["last_contacted_at"] = utcnow()
        await self.update_lead_fields(lead_id, patch)

    async def save_scores(self, lead_id: str, heuristic: float, ai: float, total: float) -> None:
        await self.update_lead_fields(
            lead_id,
            {"score_heuristic": heuristic, "score_ai": ai, "score_total": total},
        )

    async def add_enrichment(
        self, lead_id: str, raw: dict, detected_keywords: Optional[list[str]] = None
    ) -> LeadEnrichment:
        row = LeadEnrichment(
            lead_id=lead_id,
            raw_json=json.dumps(raw, default=str),
            detected_keywords=json.dumps(detected_keywords or []),
        )
        self.db.add(row)
        return row

    async def add_messages(
        self,
        lead_id: str,
        variants: list[MessageVariant],
        kind: MessageKind,
        language: str,
        angle: str,
    ) -> list[OutreachMessage]:
        rows = [
            OutreachMessage(
                lead_id=lead_id,
                language=language,
                angle=angle,
                variant_label=variant.variant_label,
                message_kind=kind.value,
                message_text=variant.message_text,
            )
            for variant in variants
        ]
        self.db.add_all(rows)
        return rows

    async def replace_messages(
        self,
        lead_id: str,
        variants: list[MessageVariant],
        kind: MessageKind,
        language: str,
        angle: str,
    ) -> list[OutreachMessage]:
        await self.db.execute(
            delete(OutreachMessage).where(
                OutreachMessage.lead_id == lead_id,
                OutreachMessage.message_kind == kind.value,
            )
        )
        return await self.add_messages(lead_id, variants, kind, language, angle)

    async def add_event(self, lead_id: str, event_type: str, metadata: Optional[dict] = None) -> OutreachEvent:
        event = OutreachEvent(
            lead_id=lead_id,
            event_type=enum_value(event_type),
            metadata_=json.dumps(metadata or {}),
        )
        self.db.add(event)
        return event
