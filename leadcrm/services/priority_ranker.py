"""Priority ranker — orders active leads for the next outreach session."""

from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leadcrm.config import Settings, get_settings
from leadcrm.models import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    Campaign,
    Lead,
    LeadStatus,
    MessageKind,
    OutreachMessage,
    as_utc,
    utcnow,
)
from leadcrm.repositories import LeadRepository
from leadcrm.schemas import LeadOut, PriorityLeadOut, TodayQueueItemOut
from leadcrm.services.lead_quality import clamp_score, compute_quality_score, quality_tier

FRESH_LEAD_WINDOW = timedelta(hours=72)
FOLLOW_UP_DUE_AFTER = timedelta(hours=72)
DEFAULT_PRIORITY_LIMIT = 20
DEFAULT_TODAY_LIMIT = 30
MAX_PRIORITY_LIMIT = 200
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

STATUS_ADJUSTMENT = {
    LeadStatus.NEW.value: 16,
    LeadStatus.DRAFTED.value: 10,
    LeadStatus.SENT.value: -14,
    **{status: -24 for status in TERMINAL_STATUSES},
}


def sort_highest_quality(leads: list[Lead]) -> list[Lead]:
    """Quality descending, newest first among equals."""
    by_newest = sorted(leads, key=lambda l: as_utc(l.created_at) or EPOCH, reverse=True)
    return sorted(by_newest, key=compute_quality_score, reverse=True)


def compute_priority_score(
    lead: Lead,
    campaign: Optional[Campaign] = None,
    now: Optional[datetime] = None,
    quality: Optional[int] = None,
) -> int:
    now = now or utcnow()
    quality = compute_quality_score(lead) if quality is None else quality
    score = quality * 0.42
    score += (lead.score_total if lead.score_total is not None else 50) * 0.34
    score += STATUS_ADJUSTMENT.get(lead.status, 0)

    created_at = as_utc(lead.created_at)
    if created_at and now - created_at <= FRESH_LEAD_WINDOW:
        score += 8
    if lead.facebook_url:
        score += 4
    if lead.phone:
        score += 2

    if campaign is not None:
        if campaign.category_id and campaign.category_id == lead.category_id:
            score += 5
        if campaign.location_id and campaign.location_id == lead.location_id:
            score += 5

    return clamp_score(score)


def priority_reason(lead: Lead, quality: int) -> str:
    if quality_tier(quality) == "High":
        return "High quality profile with good contact channels."
    if lead.status == LeadStatus.NEW.value:
        return "Fresh lead not yet contacted."
    if lead.status == LeadStatus.SENT.value:
        return "Already sent; prioritize only if follow-up is due."
    return "Promising lead for next outreach batch."


async def get_priority_leads(
    db: AsyncSession,
    limit: int = DEFAULT_PRIORITY_LIMIT,
    campaign_id: Optional[str] = None,
    include_terminal: bool = False,
    settings: Optional[Settings] = None,
) -> list[PriorityLeadOut]:
    settings = settings or get_settings()
    limit = max(1, min(MAX_PRIORITY_LIMIT, limit))
    campaign = await db.get(Campaign, campaign_id) if campaign_id else None

    statuses = ACTIVE_STATUSES + TERMINAL_STATUSES if include_terminal else ACTIVE_STATUSES
    rows = await LeadRepository(db).list_leads(
        limit=settings.lead_scan_window, statuses=statuses, campaign_id=campaign_id
    )

    now = utcnow()
    ranked = []
    for lead in sort_highest_quality(rows):
        quality = compute_quality_score(lead)
        ranked.append(
            PriorityLeadOut(
                lead=LeadOut.from_model(lead),
                priority_score=compute_priority_score(lead, campaign, now, quality),
                priority_reason=priority_reason(lead, quality),
            )
        )
    # stable: equal priority keeps the highest-quality order
    ranked.sort(key=lambda item: item.priority_score, reverse=True)
    return ranked[:limit]


def pick_suggested_message(status: str, messages: list[OutreachMessage]) -> Optional[OutreachMessage]:
    """Best draft to send next; ``messages`` are newest first."""
    if not messages:
        return None

    def first(kind: Optional[str] = None, label: Optional[str] = None):
        return next(
            (
                m for m in messages
                if (kind is None or m.message_kind == kind) and (label is None or m.variant_label == label)
            ),
            None,
        )

    initial = MessageKind.INITIAL.value
    follow_up = MessageKind.FOLLOW_UP.value
    if status == LeadStatus.SENT.value:
        return first(follow_up, "A") or first(follow_up) or first(initial, "A") or messages[0]
    return first(initial, "A") or first(initial) or messages[0]


def next_action(lead: LeadOut, now: datetime) -> str:
    if lead.status == LeadStatus.SENT.value:
        contacted = as_utc(lead.last_contacted_at)
        if contacted and now - contacted >= FOLLOW_UP_DUE_AFTER:
            return "send_follow_up"
        return "review"
    if lead.status in (LeadStatus.NEW.value, LeadStatus.DRAFTED.value):
        return "send_initial"
    return "review"


async def get_today_queue(
    db: AsyncSession,
    limit: int = DEFAULT_TODAY_LIMIT,
    campaign_id: Optional[str] = None,
    settings: Optional[Settings] = None,
) -> list[TodayQueueItemOut]:
    """Priority list annotated with the next action and the draft to use for it."""
    prioritized = await get_priority_leads(db, limit=limit, campaign_id=campaign_id, settings=settings)
    if not prioritized:
        return []

    lead_ids = [item.lead.id for item in prioritized]
    messages_by_lead: dict[str, list[OutreachMessage]] = {}
    for message in await LeadRepository(db).list_messages(lead_ids):
        messages_by_lead.setdefault(message.lead_id, []).append(message)

    campaign_ids = {item.lead.campaign_id for item in prioritized if item.lead.campaign_id}
    campaign_names = {}
    if campaign_ids:
        result = await db.execute(select(Campaign.id, Campaign.name).where(Campaign.id.in_(campaign_ids)))
        campaign_names = dict(result.all())

    now = utcnow()
    queue = []
    for item in prioritized:
        suggested = pick_suggested_message(item.lead.status, messages_by_lead.get(item.lead.id, []))
        queue.append(
            TodayQueueItemOut(
                lead=item.lead,
                priority_score=item.priority_score,
                priority_reason=item.priority_reason,
                campaign_name=campaign_names.get(item.lead.campaign_id),
                next_action=next_action(item.lead, now),
                suggested_message=suggested.message_text if suggested else None,
                suggested_variant=suggested.variant_label if suggested else None,
                suggested_kind=suggested.message_kind if suggested else None,
            )
        )
    return queue
