"""Tests for priority ordering and the daily outreach queue."""

from datetime import timedelta
from types import SimpleNamespace

import pytest

from leadcrm.models import Campaign, LeadStatus, MessageKind, utcnow
from leadcrm.repositories import LeadRepository
from leadcrm.schemas import MessageVariant
from leadcrm.services.priority_ranker import (
    compute_priority_score,
    get_priority_leads,
    get_today_queue,
    pick_suggested_message,
    priority_reason,
    sort_highest_quality,
)


def _lead(**kwargs):
    values = {
        "business_name": None,
        "website_url": None,
        "facebook_url": None,
        "phone": None,
        "email": None,
        "address": None,
        "category_id": None,
        "location_id": None,
        "status": "NEW",
        "score_total": None,
        "created_at": utcnow() - timedelta(days=10),
        "last_contacted_at": None,
    }
    values.update(kwargs)
    return SimpleNamespace(**values)


def _message(kind, label, text=None):
    return SimpleNamespace(message_kind=kind, variant_label=label, message_text=text or f"{kind}-{label}")


class TestPriorityScore:
    def test_unscored_new_lead(self):
        # 14 * 0.42 + 50 * 0.34 + 16
        assert compute_priority_score(_lead(business_name="A")) == 39

    def test_halves_round_up(self):
        # 0 * 0.42 + 25 * 0.34 + 16 = 24.5
        assert compute_priority_score(_lead(score_total=25), quality=0) == 25

    def test_fresh_lead_bonus(self):
        old = compute_priority_score(_lead(business_name="A"))
        fresh = compute_priority_score(_lead(business_name="A", created_at=utcnow() - timedelta(hours=2)))
        assert fresh == old + 8

    def test_status_adjustments(self):
        new = compute_priority_score(_lead(business_name="A", status="NEW"))
        sent = compute_priority_score(_lead(business_name="A", status="SENT"))
        won = compute_priority_score(_lead(business_name="A", status="WON"))
        assert new > sent > won

    def test_campaign_alignment_bonus(self):
        lead = _lead(business_name="A", category_id="cat", location_id="loc", score_total=40)
        campaign = SimpleNamespace(category_id="cat", location_id="loc")
        other = SimpleNamespace(category_id="x", location_id=None)
        assert compute_priority_score(lead, campaign) == compute_priority_score(lead, other) + 10

    def test_clamped(self):
        lead = _lead(score_total=0, status="LOST")
        assert compute_priority_score(lead) == 0


class TestReasonAndSorting:
    def test_priority_reason(self):
        assert priority_reason(_lead(status="NEW"), 80).startswith("High quality")
        assert priority_reason(_lead(status="NEW"), 20) == "Fresh lead not yet contacted."
        assert priority_reason(_lead(status="SENT"), 20).startswith("Already sent")
        assert priority_reason(_lead(status="DRAFTED"), 20) == "Promising lead for next outreach batch."

    def test_quality_then_newest(self):
        now = utcnow()
        rich_old = _lead(business_name="Rich", website_url="https://a.com", created_at=now - timedelta(days=5))
        plain_old = _lead(business_name="Old", created_at=now - timedelta(days=5))
        plain_new = _lead(business_name="New", created_at=now - timedelta(days=1))
        ordered = sort_highest_quality([plain_old, plain_new, rich_old])
        assert [l.business_name for l in ordered] == ["Rich", "New", "Old"]


class TestSuggestedMessage:
    def test_no_messages(self):
        assert pick_suggested_message("NEW", []) is None

    def test_new_lead_prefers_initial_a(self):
        messages = [_message("follow_up", "A"), _message("initial", "B"), _message("initial", "A")]
        assert pick_suggested_message("NEW", messages).message_text == "initial-A"

    def test_sent_lead_prefers_follow_up(self):
        messages = [_message("initial", "A"), _message("follow_up", "C"), _message("follow_up", "A")]
        assert pick_suggested_message("SENT", messages).message_text == "follow_up-A"

    def test_sent_lead_falls_back_to_initial(self):
        messages = [_message("initial", "B"), _message("initial", "A")]
        assert pick_suggested_message("SENT", messages).message_text == "initial-A"


# ── Database-backed ranking ──────────────────────────────
@pytest.mark.asyncio
async def test_priority_excludes_terminal_by_default(db, make_lead):
    await make_lead(business_name="Active")
    await make_lead(business_name="Closed", status="WON")

    ranked = await get_priority_leads(db)
    assert [item.lead.business_name for item in ranked] == ["Active"]

    everything = await get_priority_leads(db, include_terminal=True)
    assert {item.lead.business_name for item in everything} == {"Active", "Closed"}


@pytest.mark.asyncio
async def test_priority_is_sorted_and_limited(db, make_lead):
    await make_lead(business_name="Low", status="SENT", score_total=10)
    await make_lead(business_name="High", facebook_url="https://facebook.com/h", phone="0917 555 0101", score_total=90)
    await make_lead(business_name="Mid", score_total=50)

    ranked = await get_priority_leads(db, limit=2)

    assert [item.lead.business_name for item in ranked] == ["High", "Mid"]
    assert ranked[0].priority_score >= ranked[1].priority_score


@pytest.mark.asyncio
async def test_priority_scoped_to_campaign(db, make_lead):
    campaign = Campaign(name="Spa push", category_id="cat")
    db.add(campaign)
    await db.commit()
    await make_lead(business_name="In", campaign_id=campaign.id, category_id="cat")
    await make_lead(business_name="Out")

    ranked = await get_priority_leads(db, campaign_id=campaign.id)
    assert [item.lead.business_name for item in ranked] == ["In"]


@pytest.mark.asyncio
async def test_today_queue_actions_and_drafts(db, make_lead):
    campaign = Campaign(name="Spa push")
    db.add(campaign)
    await db.commit()

    fresh = await make_lead(business_name="Fresh", campaign_id=campaign.id)
    due = await make_lead(business_name="Due", status="SENT", contacted_days_ago=4)
    await make_lead(business_name="Waiting", status="SENT", contacted_days_ago=1)

    repo = LeadRepository(db)
    await repo.add_messages(
        fresh.id,
        [MessageVariant(variant_label="A", message_text="Hello A"), MessageVariant(variant_label="B", message_text="Hello B")],
        MessageKind.INITIAL,
        "English",
        "booking",
    )
    await repo.add_messages(
        due.id, [MessageVariant(variant_label="A", message_text="Checking in")], MessageKind.FOLLOW_UP, "English", "booking"
    )
    await db.commit()

    queue = {item.lead.business_name: item for item in await get_today_queue(db)}

    assert queue["Fresh"].next_action == "send_initial"
    assert queue["Fresh"].suggested_message == "Hello A"
    assert queue["Fresh"].campaign_name == "Spa push"
    assert queue["Due"].next_action == "send_follow_up"
    assert queue["Due"].suggested_kind == "follow_up"
    assert queue["Waiting"].next_action == "review"
    assert queue["Waiting"].suggested_message is None


@pytest.mark.asyncio
async def test_today_queue_empty(db):
    assert await get_today_queue(db) == []


def test_status_values_cover_every_lead_status():
    from leadcrm.services.priority_ranker import STATUS_ADJUSTMENT

    assert set(STATUS_ADJUSTMENT) == {status.value for status in LeadStatus}
