"""Campaign CRUD, playbooks and lead assignment API."""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leadcrm.api.deps import domain_errors, rate_limited
from leadcrm.database import get_db
from leadcrm.models import PLAYBOOK_POLICY_FIELDS, Campaign, CampaignPlaybook, CampaignStatus
from leadcrm.schemas import (
    AssignmentOut,
    CampaignAssignRequest,
    CampaignCreate,
    CampaignOut,
    CampaignUpdate,
    PlaybookCreate,
    PlaybookLaunch,
    PlaybookOut,
)
from leadcrm.services.campaign_assigner import assign_leads_to_campaign

router = APIRouter(prefix="/campaigns", tags=["campaigns"])


@router.get("/", response_model=list[CampaignOut])
async def list_campaigns(
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    status: CampaignStatus | None = None,
    db: AsyncSession = Depends(get_db),
):
    stmt = select(Campaign)
    if status:
        stmt = stmt.where(Campaign.status == status.value)
    stmt = stmt.order_by(Campaign.created_at.desc()).offset(skip).limit(limit)
    result = await db.execute(stmt)
    return result.scalars().all()


@router.post("/", response_model=CampaignOut, status_code=201)
async def create_campaign(data: CampaignCreate, db: AsyncSession = Depends(get_db)):
    campaign = Campaign(**data.model_dump(mode="json"))
    db.add(campaign)
    await db.commit()
    await db.refresh(campaign)
    return campaign


@router.post("/assign", response_model=AssignmentOut, dependencies=[Depends(rate_limited("assign-campaign"))])
async def assign_campaign(data: CampaignAssignRequest, db: AsyncSession = Depends(get_db)):
    with domain_errors():
        return await assign_leads_to_campaign(
            db,
            data.campaign_id,
            auto_only=data.auto_only,
            include_statuses=data.include_statuses,
            limit=data.limit,
        )


# ── Playbooks ─────────────────────────────────────────
@router.get("/playbooks", response_model=list[PlaybookOut])
async def list_playbooks(db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(CampaignPlaybook).order_by(CampaignPlaybook.name))
    return result.scalars().all()


@router.post("/playbooks", response_model=PlaybookOut, status_code=201)
async def create_playbook(data: PlaybookCreate, db: AsyncSession = Depends(get_db)):
    playbook = CampaignPlaybook(**data.model_dump(mode="json"))
    db.add(playbook)
    await db.commit()
    await db.refresh(playbook)
    return playbook


@router.post("/playbooks/{playbook_id}/launch", response_model=CampaignOut, status_code=201)
async def launch_playbook(
    playbook_id: str,
    data: PlaybookLaunch | None = None,
    db: AsyncSession = Depends(get_db),
):
    """Stamp out a new ACTIVE campaign carrying every policy field of the playbook."""
    playbook = await db.get(CampaignPlaybook, playbook_id)
    if not playbook:
        raise HTTPException(404, "Playbook not found")
    campaign = Campaign(
        name=(data.name if data and data.name else playbook.name),
        status=CampaignStatus.ACTIVE.value,
        **{field: getattr(playbook, field) for field in PLAYBOOK_POLICY_FIELDS},
    )
    db.add(campaign)
    await db.commit()
    await db.refresh(campaign)
    return campaign


# ── Single campaign ───────────────────────────────────
@router.get("/{campaign_id}", response_model=CampaignOut)
async def get_campaign(campaign_id: str, db: AsyncSession = Depends(get_db)):
    campaign = await db.get(Campaign, campaign_id)
    if not campaign:
        raise HTTPException(404, "Campaign not found")
    return campaign


@router.patch("/{campaign_id}", response_model=CampaignOut)
async def update_campaign(campaign_id: str, data: CampaignUpdate, db: AsyncSession = Depends(get_db)):
    campaign = await db.get(Campaign, campaign_id)
    if not campaign:
        raise HTTPException(404, "Campaign not found")
    for key, val in data.model_dump(exclude_unset=True, mode="json").items():
        setattr(campaign, key, val)
    await db.commit()
    await db.refresh(campaign)
    return campaign
