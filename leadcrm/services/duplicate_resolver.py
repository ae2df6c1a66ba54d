"""Duplicate resolver — fingerprint gate on insert and ranked duplicate lookup."""

import logging
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from leadcrm.config import Settings, get_settings
from leadcrm.exceptions import DuplicateLeadError
from leadcrm.models import Lead
from leadcrm.repositories import LeadRepository
from leadcrm.schemas import DuplicateMatch, LeadCreate, LeadFields
from leadcrm.services.fingerprint import (
    MIN_PHONE_DIGITS,
    fingerprint_keys,
    normalize_business_name,
    normalize_contact_url,
    normalize_phone,
    signal_for_key,
)

logger = logging.getLogger(__name__)

# ── Match weights for the ad-hoc duplicate check ───────
WEBSITE_MATCH = 100
SOCIAL_MATCH = 96
PHONE_MATCH = 92
NAME_LOCATION_MATCH = 78
NAME_MATCH = 58
ADDRESS_MATCH = 18

DEFAULT_MATCH_LIMIT = 8
MAX_MATCH_LIMIT = 20


@dataclass
class BulkInsertResult:
    inserted: list[Lead] = field(default_factory=list)
    skipped_duplicates: int = 0


def dedupe_records(records: list[LeadCreate], seen: set[str]) -> tuple[list[LeadCreate], int]:
    """Drop records whose keys are already in ``seen``; first occurrence wins.

    ``seen`` is extended in place with the keys of every kept record.
    """
    unique = []
    skipped = 0
    for record in records:
        keys = fingerprint_keys(record)
        if keys and any(key in seen for key in keys):
            skipped += 1
            continue
        unique.append(record)
        seen.update(keys)
    return unique, skipped


class DuplicateResolver:
    def __init__(self, db: AsyncSession, settings: Optional[Settings] = None):
        self.db = db
        self.repo = LeadRepository(db)
        self.settings = settings or get_settings()

    async def build_fingerprint_set(self) -> set[str]:
        seen: set[str] = set()
        for fields in await self.repo.list_fingerprint_fields(self.settings.fingerprint_scan_window):
            seen.update(fingerprint_keys(fields))
        return seen

    async def _find_lead_with_key(self, key: str) -> Optional[Lead]:
        for lead in await self.repo.list_leads(limit=self.settings.fingerprint_scan_window):
            if key in fingerprint_keys(LeadFields.from_stored(lead)):
                return lead
        return None

    async def create_lead(self, record: LeadCreate) -> Lead:
        """Insert one lead or raise ``DuplicateLeadError`` naming the colliding signal."""
        if not record.business_name and not record.facebook_url:
            raise ValueError("business_name or facebook_url is required.")

        seen = await self.build_fingerprint_set()
        collision = next((key for key in fingerprint_keys(record) if key in seen), None)
        if collision:
            existing = await self._find_lead_with_key(collision)
            logger.info(f"Rejected duplicate lead on {signal_for_key(collision)}")
            raise DuplicateLeadError(
                signal_for_key(collision),
                existing_lead_id=existing.id if existing else None,
            )

        lead = await self.repo.insert_lead(record)
        await self.db.commit()
        return lead

    async def bulk_create_leads(self, records: list[LeadCreate]) -> BulkInsertResult:
        """Insert many leads, skipping any that collide with stored or earlier batch rows."""
        if not records:
            return BulkInsertResult()
        seen = await self.build_fingerprint_set()
        unique, skipped = dedupe_records(records, seen)
        if not unique:
            return BulkInsertResult(skipped_duplicates=skipped)

        inserted = await self.repo.bulk_insert_leads(unique)
        await self.db.commit()
        logger.info(f"Bulk insert: inserted={len(inserted)}, skipped_duplicates={skipped}")
        return BulkInsertResult(inserted=inserted, skipped_duplicates=skipped)

    async def find_potential_duplicates(
        self, query: LeadFields, limit: int = DEFAULT_MATCH_LIMIT
    ) -> list[DuplicateMatch]:
        """Rank existing leads by how many identity signals they share with ``query``.

        Read-only. Returns an empty list without touching storage when the
        query has no website, social URL, phone or business name.
        """
        website = normalize_contact_url(query.website_url)
        social = normalize_contact_url(query.facebook_url)
        phone = normalize_phone(query.phone)
        name = normalize_business_name(query.business_name)
        address = normalize_business_name(query.address)
        max_items = max(1, min(MAX_MATCH_LIMIT, limit))

        if not website and not social and len(phone) < MIN_PHONE_DIGITS and not name:
            return []

        rows = await self.repo.list_leads(limit=self.settings.duplicate_query_window)
        candidates = []
        for row in rows:
            score = 0
            reasons = []

            if website and normalize_contact_url(row.website_url) == website:
                score += WEBSITE_MATCH
                reasons.append("Same website")
            if social and normalize_contact_url(row.facebook_url) == social:
                score += SOCIAL_MATCH
                reasons.append("Same Facebook URL")
            row_phone = normalize_phone(row.phone)
            if len(phone) >= MIN_PHONE_DIGITS and row_phone == phone:
                score += PHONE_MATCH
                reasons.append("Same phone number")
            if name and normalize_business_name(row.business_name) == name:
                if query.location_id and row.location_id == query.location_id:
                    score += NAME_LOCATION_MATCH
                    reasons.append("Same business name in same location")
                else:
                    score += NAME_MATCH
                    reasons.append("Same business name")
            if address and normalize_business_name(row.address) == address:
                score += ADDRESS_MATCH
                reasons.append("Same address")

            if score <= 0:
                continue
            candidates.append(
                DuplicateMatch(
                    lead_id=row.id,
                    business_name=row.business_name,
                    address=row.address,
                    status=row.status,
                    source=row.source or "manual",
                    confidence=max(1, min(100, score)),
                    reasons=reasons,
                )
            )

        # sorted() is stable, so equal confidence keeps newest-first scan order
        candidates = sorted(candidates, key=lambda c: c.confidence, reverse=True)
        return candidates[:max_items]
