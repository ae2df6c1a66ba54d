"""Outreach event log API."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from leadcrm.api.deps import domain_errors, rate_limited
from leadcrm.database import get_db
from leadcrm.schemas import OutreachEventCreate, OutreachEventOut
from leadcrm.services.outreach import log_outreach_event

router = APIRouter(prefix="/outreach", tags=["outreach"])


@router.post(
    "/events",
    response_model=OutreachEventOut,
    status_code=201,
    dependencies=[Depends(rate_limited("outreach-events"))],
)
async def create_event(data: OutreachEventCreate, db: AsyncSession = Depends(get_db)):
    with domain_errors():
        event = await log_outreach_event(db, data)
    return OutreachEventOut.from_model(event)
