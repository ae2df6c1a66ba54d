"""Lead API — ingestion, duplicate checks, scoring, drafting and prioritised views."""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leadcrm.api.deps import domain_errors, get_ai_client, get_homepage_fetcher, rate_limited
from leadcrm.database import get_db
from leadcrm.models import Lead, LeadStatus
from leadcrm.repositories import LeadRepository
from leadcrm.schemas import (
    BulkInsertOut,
    CsvImportRequest,
    DuplicateCheckOut,
    DuplicateCheckRequest,
    GeneratedMessagesOut,
    GenerateMessagesRequest,
    LeadBulkCreate,
    LeadCreate,
    LeadDetailOut,
    LeadOut,
    LeadScoreOut,
    MessageOut,
    OutreachEventOut,
    PriorityLeadOut,
    TodayQueueItemOut,
)
from leadcrm.services import outreach, priority_ranker, scoring_engine
from leadcrm.services.ai_client import AiClient
from leadcrm.services.duplicate_resolver import DuplicateResolver
from leadcrm.services.web_probe import HomepageFetcher

router = APIRouter(prefix="/leads", tags=["leads"])


@router.get("/", response_model=list[LeadOut])
async def list_leads(
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    status: LeadStatus | None = None,
    campaign_id: str | None = None,
    quality_tier: str | None = Query(None, pattern="^(High|Medium|Low)$"),
    db: AsyncSession = Depends(get_db),
):
    stmt = select(Lead)
    if status:
        stmt = stmt.where(Lead.status == status.value)
    if campaign_id:
        stmt = stmt.where(Lead.campaign_id == campaign_id)
    stmt = stmt.order_by(Lead.created_at.desc())
    if not quality_tier:
        stmt = stmt.offset(skip).limit(limit)
    result = await db.execute(stmt)
    leads = [LeadOut.from_model(lead) for lead in result.scalars().all()]
    if quality_tier:
        leads = [lead for lead in leads if lead.quality_tier == quality_tier][skip:skip + limit]
    return leads


@router.post("/", response_model=LeadOut, status_code=201, dependencies=[Depends(rate_limited("create-lead"))])
async def create_lead(data: LeadCreate, db: AsyncSession = Depends(get_db)):
    with domain_errors():
        lead = await DuplicateResolver(db).create_lead(data)
    return LeadOut.from_model(lead)


@router.post("/bulk", response_model=BulkInsertOut, dependencies=[Depends(rate_limited("bulk-leads"))])
async def bulk_create_leads(data: LeadBulkCreate, db: AsyncSession = Depends(get_db)):
    result = await DuplicateResolver(db).bulk_create_leads(data.leads)
    return BulkInsertOut(
        inserted=len(result.inserted),
        skipped_duplicates=result.skipped_duplicates,
        lead_ids=[lead.id for lead in result.inserted],
    )


@router.post("/import", response_model=BulkInsertOut, dependencies=[Depends(rate_limited("csv-import"))])
async def import_csv_rows(data: CsvImportRequest, db: AsyncSession = Depends(get_db)):
    """Import already-parsed CSV rows through the same duplicate gate as bulk insert."""
    records, invalid = outreach.records_from_csv(data)
    result = await DuplicateResolver(db).bulk_create_leads(records)
    return BulkInsertOut(
        inserted=len(result.inserted),
        skipped_duplicates=result.skipped_duplicates,
        invalid=invalid,
        lead_ids=[lead.id for lead in result.inserted],
    )


@router.post("/duplicate-check", response_model=DuplicateCheckOut)
async def duplicate_check(data: DuplicateCheckRequest, db: AsyncSession = Depends(get_db)):
    matches = await DuplicateResolver(db).find_potential_duplicates(data, limit=data.limit)
    return DuplicateCheckOut(
        has_match=bool(matches),
        max_confidence=matches[0].confidence if matches else 0,
        matches=matches,
    )


@router.get("/priority", response_model=list[PriorityLeadOut])
async def priority_leads(
    limit: int = Query(20, ge=1, le=200),
    campaign_id: str | None = None,
    include_terminal: bool = False,
    db: AsyncSession = Depends(get_db),
):
    return await priority_ranker.get_priority_leads(
        db, limit=limit, campaign_id=campaign_id, include_terminal=include_terminal
    )


@router.get("/today", response_model=list[TodayQueueItemOut])
async def today_queue(
    limit: int = Query(30, ge=1, le=200),
    campaign_id: str | None = None,
    db: AsyncSession = Depends(get_db),
):
    return await priority_ranker.get_today_queue(db, limit=limit, campaign_id=campaign_id)


@router.get("/{lead_id}", response_model=LeadDetailOut)
async def get_lead(lead_id: str, db: AsyncSession = Depends(get_db)):
    repo = LeadRepository(db)
    lead = await repo.get(lead_id)
    if not lead:
        raise HTTPException(404, "Lead not found")
    return LeadDetailOut(
        lead=LeadOut.from_model(lead),
        enrichment=await repo.latest_enrichment(lead.id),
        messages=[MessageOut.model_validate(m) for m in await repo.list_messages([lead.id])],
        events=[OutreachEventOut.from_model(e) for e in await repo.list_events(lead.id)],
    )


@router.delete("/{lead_id}", status_code=204)
async def delete_lead(lead_id: str, db: AsyncSession = Depends(get_db)):
    repo = LeadRepository(db)
    if not await repo.get(lead_id):
        raise HTTPException(404, "Lead not found")
    await repo.delete_lead(lead_id)
    await db.commit()


@router.post(
    "/{lead_id}/score",
    response_model=LeadScoreOut,
    dependencies=[Depends(rate_limited("score-lead"))],
)
async def score_lead(
    lead_id: str,
    db: AsyncSession = Depends(get_db),
    fetcher: HomepageFetcher = Depends(get_homepage_fetcher),
    ai_client: AiClient = Depends(get_ai_client),
):
    with domain_errors():
        return await scoring_engine.score_lead(db, lead_id, fetcher=fetcher, ai_client=ai_client)


@router.post(
    "/{lead_id}/messages",
    response_model=GeneratedMessagesOut,
    dependencies=[Depends(rate_limited("generate-messages"))],
)
async def generate_messages(
    lead_id: str,
    data: GenerateMessagesRequest,
    db: AsyncSession = Depends(get_db),
    ai_client: AiClient = Depends(get_ai_client),
):
    with domain_errors():
        return await outreach.generate_initial_drafts(db, lead_id, data, ai_client=ai_client)


@router.post(
    "/{lead_id}/follow-up",
    response_model=GeneratedMessagesOut,
    dependencies=[Depends(rate_limited("generate-follow-up"))],
)
async def generate_follow_up(
    lead_id: str,
    db: AsyncSession = Depends(get_db),
    ai_client: AiClient = Depends(get_ai_client),
):
    with domain_errors():
        return await outreach.generate_follow_up_for_lead(db, lead_id, ai_client=ai_client)
