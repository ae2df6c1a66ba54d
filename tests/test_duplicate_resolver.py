"""Tests for the insert-time duplicate gate and the ranked duplicate lookup."""

import pytest
from sqlalchemy import func, select

from leadcrm.exceptions import DuplicateLeadError
from leadcrm.models import Lead
from leadcrm.schemas import LeadCreate, LeadFields
from leadcrm.services.duplicate_resolver import DuplicateResolver, dedupe_records


async def _count(db):
    return (await db.execute(select(func.count()).select_from(Lead))).scalar()


# ── Gate on insert ───────────────────────────────────────
@pytest.mark.asyncio
async def test_second_insert_with_same_website_is_rejected(db):
    resolver = DuplicateResolver(db)
    first = await resolver.create_lead(LeadCreate(business_name="A", website_url="https://a.com"))

    with pytest.raises(DuplicateLeadError) as exc_info:
        await resolver.create_lead(LeadCreate(business_name="Another A", website_url="https://a.com/"))

    assert exc_info.value.signal == "website"
    assert exc_info.value.existing_lead_id == first.id
    assert "duplicate website" in str(exc_info.value)
    assert await _count(db) == 1


@pytest.mark.asyncio
async def test_name_location_collision_names_the_signal(db):
    resolver = DuplicateResolver(db)
    await resolver.create_lead(LeadCreate(business_name="Sunny Spa", location_id="loc-1"))

    with pytest.raises(DuplicateLeadError) as exc_info:
        await resolver.create_lead(LeadCreate(business_name="  SUNNY  spa ", location_id="loc-1"))
    assert exc_info.value.signal == "name_location"
    assert "name + location" in str(exc_info.value)


@pytest.mark.asyncio
async def test_same_name_in_other_location_is_allowed(db):
    resolver = DuplicateResolver(db)
    await resolver.create_lead(LeadCreate(business_name="Sunny Spa", location_id="loc-1"))
    await resolver.create_lead(LeadCreate(business_name="Sunny Spa", location_id="loc-2"))
    assert await _count(db) == 2


@pytest.mark.asyncio
async def test_lead_without_signals_is_never_a_duplicate(db):
    resolver = DuplicateResolver(db)
    await resolver.create_lead(LeadCreate(business_name="Sunny Spa"))
    await resolver.create_lead(LeadCreate(business_name="Sunny Spa"))
    assert await _count(db) == 2


@pytest.mark.asyncio
async def test_bulk_insert_skips_in_batch_duplicates(db):
    resolver = DuplicateResolver(db)
    result = await resolver.bulk_create_leads([
        LeadCreate(business_name="One", phone="0917 555 0101"),
        LeadCreate(business_name="Two", phone="0917 555 0202"),
        LeadCreate(business_name="Three", phone="(0917) 555-0101"),
    ])

    assert len(result.inserted) == 2
    assert result.skipped_duplicates == 1
    assert [lead.business_name for lead in result.inserted] == ["One", "Two"]
    assert await _count(db) == 2


@pytest.mark.asyncio
async def test_bulk_insert_skips_existing_rows(db, make_lead):
    await make_lead(website_url="https://a.com")
    result = await DuplicateResolver(db).bulk_create_leads([
        LeadCreate(business_name="A again", website_url="A.com"),
        LeadCreate(business_name="B", website_url="https://b.com"),
    ])
    assert len(result.inserted) == 1
    assert result.skipped_duplicates == 1


@pytest.mark.asyncio
async def test_bulk_insert_empty_batch(db):
    result = await DuplicateResolver(db).bulk_create_leads([])
    assert result.inserted == []
    assert result.skipped_duplicates == 0


def test_dedupe_records_first_occurrence_wins():
    seen = {"w:a.com"}
    unique, skipped = dedupe_records(
        [
            LeadCreate(business_name="dup of stored", website_url="https://a.com"),
            LeadCreate(business_name="new", facebook_url="https://facebook.com/new"),
            LeadCreate(business_name="dup in batch", facebook_url="facebook.com/new/"),
        ],
        seen,
    )
    assert [r.business_name for r in unique] == ["new"]
    assert skipped == 2
    assert "f:facebook.com/new" in seen


# ── Query-time match ─────────────────────────────────────
@pytest.mark.asyncio
async def test_potential_duplicates_ranked_by_confidence(db, make_lead):
    by_phone = await make_lead(business_name="Other Name", phone="0917 555 0101")
    by_site = await make_lead(business_name="Sunny Spa", website_url="https://www.sunnyspa.ph/", location_id="loc")
    await make_lead(business_name="Unrelated", website_url="https://else.com")

    matches = await DuplicateResolver(db).find_potential_duplicates(
        LeadFields(business_name="sunny spa", website_url="sunnyspa.ph", phone="09175550101", location_id="loc")
    )

    assert [m.lead_id for m in matches] == [by_site.id, by_phone.id]
    assert matches[0].confidence == 100
    assert matches[0].reasons == ["Same website", "Same business name in same location"]
    assert matches[1].confidence == 92
    assert matches[1].reasons == ["Same phone number"]


@pytest.mark.asyncio
async def test_name_only_match_and_address_bonus(db, make_lead):
    lead = await make_lead(business_name="Sunny Spa", address="Real St")
    matches = await DuplicateResolver(db).find_potential_duplicates(
        LeadFields(business_name="Sunny Spa", address="real  st")
    )
    assert len(matches) == 1
    assert matches[0].lead_id == lead.id
    assert matches[0].confidence == 58 + 18


@pytest.mark.asyncio
async def test_duplicate_query_limit(db, make_lead):
    for i in range(5):
        await make_lead(business_name="Same Name", phone=f"0917 555 010{i}")
    matches = await DuplicateResolver(db).find_potential_duplicates(LeadFields(business_name="same name"), limit=3)
    assert len(matches) == 3


@pytest.mark.asyncio
async def test_no_usable_signal_returns_empty(db, make_lead):
    await make_lead(business_name="X", address="Real St")
    assert await DuplicateResolver(db).find_potential_duplicates(LeadFields(address="Real St")) == []


@pytest.mark.asyncio
async def test_overlong_stored_value_still_collides(db, make_lead):
    existing = await make_lead(
        business_name="Sunny Spa", phone="5550101", facebook_url="https://facebook.com/" + "x" * 300
    )

    with pytest.raises(DuplicateLeadError) as exc_info:
        await DuplicateResolver(db).create_lead(LeadCreate(business_name="Other", phone="555-0101"))

    assert exc_info.value.signal == "phone"
    assert exc_info.value.existing_lead_id == existing.id


def test_from_stored_skips_input_limits():
    fields = LeadFields.from_stored({"business_name": "x" * 400, "phone": "5550101"})
    assert len(fields.business_name) == 400
    assert fields.website_url is None
