"""Operator settings API."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from leadcrm.database import get_db
from leadcrm.schemas import ScoreWeights, ScoreWeightsUpdate
from leadcrm.services.scoring_engine import get_score_weights, set_score_weights

router = APIRouter(prefix="/settings", tags=["settings"])


@router.get("/score-weights", response_model=ScoreWeights)
async def read_score_weights(db: AsyncSession = Depends(get_db)):
    return await get_score_weights(db)


@router.put("/score-weights", response_model=ScoreWeights)
async def update_score_weights(data: ScoreWeightsUpdate, db: AsyncSession = Depends(get_db)):
    return await set_score_weights(db, data)
