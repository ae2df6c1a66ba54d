"""Reference data API — categories, keyword packs and locations."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from leadcrm.database import get_db
from leadcrm.schemas import CategoryCreate, CategoryOut, KeywordPackUpdate, LocationCreate, LocationOut
from leadcrm.services import reference_data

router = APIRouter(prefix="/reference", tags=["reference"])


@router.get("/categories", response_model=list[CategoryOut])
async def list_categories(db: AsyncSession = Depends(get_db)):
    return await reference_data.list_categories(db)


@router.post("/categories", response_model=CategoryOut, status_code=201)
async def create_category(data: CategoryCreate, db: AsyncSession = Depends(get_db)):
    try:
        return await reference_data.create_category(db, data.name, data.default_angle, data.keywords)
    except IntegrityError:
        await db.rollback()
        raise HTTPException(409, "Category already exists")


@router.get("/categories/{category_id}/keywords", response_model=KeywordPackUpdate)
async def get_keywords(category_id: str, db: AsyncSession = Depends(get_db)):
    if not await reference_data.get_category(db, category_id):
        raise HTTPException(404, "Category not found")
    return KeywordPackUpdate(keywords=await reference_data.get_keywords(db, category_id))


@router.put("/categories/{category_id}/keywords", response_model=KeywordPackUpdate)
async def set_keywords(category_id: str, data: KeywordPackUpdate, db: AsyncSession = Depends(get_db)):
    if not await reference_data.get_category(db, category_id):
        raise HTTPException(404, "Category not found")
    return KeywordPackUpdate(keywords=await reference_data.set_keywords(db, category_id, data.keywords))


@router.get("/locations", response_model=list[LocationOut])
async def list_locations(db: AsyncSession = Depends(get_db)):
    return await reference_data.list_locations(db)


@router.post("/locations", response_model=LocationOut, status_code=201)
async def create_location(data: LocationCreate, db: AsyncSession = Depends(get_db)):
    try:
        return await reference_data.create_location(db, **data.model_dump())
    except IntegrityError:
        await db.rollback()
        raise HTTPException(409, "Location already exists")
