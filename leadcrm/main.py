"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from leadcrm.api import campaigns, leads, maintenance, outreach, reference, settings as settings_api
from leadcrm.config import get_settings
from leadcrm.services.rate_limit import RateLimiter
from leadcrm.services.web_probe import ContactScraper

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: create tables and seed reference data on an empty database
    from leadcrm.database import Base, async_session, engine
    from leadcrm.services.reference_data import seed_reference_data

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async with async_session() as db:
        await seed_reference_data(db)

    yield

    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    version="0.1.0",
    description="Lead identity resolution, scoring and campaign scheduling for local outreach",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Process-local collaborators shared by every request
app.state.rate_limiter = RateLimiter(
    settings.rate_limit_max, settings.rate_limit_window_seconds, max_keys=settings.rate_limit_max_keys
)
app.state.contact_scraper = ContactScraper(settings=settings)

# Register routers
app.include_router(leads.router, prefix="/api/v1")
app.include_router(outreach.router, prefix="/api/v1")
app.include_router(campaigns.router, prefix="/api/v1")
app.include_router(reference.router, prefix="/api/v1")
app.include_router(settings_api.router, prefix="/api/v1")
app.include_router(maintenance.router, prefix="/api/v1")


@app.get("/health")
async def health():
    return {"status": "ok", "app": settings.app_name, "ai_configured": settings.ai_configured}
