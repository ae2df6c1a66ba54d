"""Tests for duplicate merging into master records."""

import pytest
from sqlalchemy import select

from leadcrm.models import Lead, LeadEnrichment, MessageKind, OutreachEvent, OutreachMessage
from leadcrm.repositories import LeadRepository
from leadcrm.schemas import MessageVariant
from leadcrm.services.merge_engine import merge_duplicate_leads, reconcile_fields


async def _lead_ids(db):
    return set((await db.execute(select(Lead.id))).scalars().all())


@pytest.mark.asyncio
async def test_merge_moves_children_and_deletes_duplicate(db, make_lead):
    master = await make_lead(age_days=3, business_name="Sunny Spa", website_url="https://sunnyspa.ph")
    dup = await make_lead(
        age_days=1,
        business_name="Sunny Spa Tacloban",
        website_url="sunnyspa.ph/",
        phone="0917 555 0101",
        email="info@sunnyspa.ph",
    )
    repo = LeadRepository(db)
    await repo.add_messages(
        dup.id, [MessageVariant(variant_label="A", message_text="Hi")], MessageKind.INITIAL, "English", "booking"
    )
    await repo.add_event(dup.id, "COPIED")
    await repo.add_enrichment(dup.id, {"source": "test"})
    await db.commit()

    result = await merge_duplicate_leads(db)

    assert result.merged == 1
    assert result.checked == 2
    assert await _lead_ids(db) == {master.id}
    assert await repo.get(dup.id) is None

    for model in (OutreachMessage, OutreachEvent, LeadEnrichment):
        owners = (await db.execute(select(model.lead_id))).scalars().all()
        assert owners == [master.id]


@pytest.mark.asyncio
async def test_master_values_win_and_gaps_are_backfilled(db, make_lead):
    master = await make_lead(age_days=2, business_name="Master Name", facebook_url="https://facebook.com/spa")
    await make_lead(
        age_days=1,
        business_name="Duplicate Name",
        facebook_url="https://www.facebook.com/spa/",
        phone="0917 555 0101",
        address="Real St",
    )

    await merge_duplicate_leads(db)

    db.expire_all()
    merged = await LeadRepository(db).get(master.id)
    assert merged.business_name == "Master Name"
    assert merged.phone == "0917 555 0101"
    assert merged.address == "Real St"


@pytest.mark.asyncio
async def test_merge_is_idempotent(db, make_lead):
    await make_lead(age_days=3, phone="555 0101")
    await make_lead(age_days=2, phone="5550101")
    await make_lead(age_days=1, phone="555-0101")

    first = await merge_duplicate_leads(db)
    second = await merge_duplicate_leads(db)

    assert first.merged == 2
    assert second.merged == 0
    assert second.checked == 1


@pytest.mark.asyncio
async def test_website_match_takes_precedence(db, make_lead):
    by_site = await make_lead(age_days=3, website_url="https://a.com")
    await make_lead(age_days=2, phone="5550101")
    await make_lead(age_days=1, website_url="https://a.com", phone="5550101")

    await merge_duplicate_leads(db)

    ids = await _lead_ids(db)
    assert by_site.id in ids
    assert len(ids) == 2


@pytest.mark.asyncio
async def test_merge_budget(db, make_lead):
    for day in range(4, 0, -1):
        await make_lead(age_days=day, website_url="https://same.com")
    result = await merge_duplicate_leads(db, limit=2)
    assert result.merged == 2
    assert len(await _lead_ids(db)) == 2


@pytest.mark.asyncio
async def test_unrelated_leads_are_untouched(db, make_lead):
    await make_lead(website_url="https://a.com")
    await make_lead(website_url="https://b.com")
    result = await merge_duplicate_leads(db)
    assert result.merged == 0
    assert len(await _lead_ids(db)) == 2


def test_reconcile_fields_prefers_master():
    from types import SimpleNamespace

    from leadcrm.models import MERGEABLE_LEAD_FIELDS

    master = dict.fromkeys(MERGEABLE_LEAD_FIELDS)
    master.update(business_name="Master", score_total=0.0)
    duplicate = SimpleNamespace(**dict.fromkeys(MERGEABLE_LEAD_FIELDS))
    duplicate.business_name = "Dup"
    duplicate.email = "a@b.co"
    duplicate.score_total = 80.0

    patch = reconcile_fields(master, duplicate)
    assert patch["business_name"] == "Master"
    assert patch["email"] == "a@b.co"
    # zero is a value, not a gap
    assert patch["score_total"] == 0.0


@pytest.mark.asyncio
async def test_overlong_stored_value_does_not_block_merge(db, make_lead):
    long_url = "https://facebook.com/" + "x" * 300
    master = await make_lead(age_days=2, business_name="Sunny Spa", phone="5550101")
    await make_lead(age_days=1, business_name="Sunny Spa Annex", phone="5550101", facebook_url=long_url)

    result = await merge_duplicate_leads(db)

    assert result.merged == 1
    assert await _lead_ids(db) == {master.id}
