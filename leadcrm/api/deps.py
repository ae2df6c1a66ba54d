"""Shared API dependencies — collaborators, rate limiting and domain error mapping."""

from contextlib import contextmanager

from fastapi import Depends, HTTPException, Request, status

from leadcrm.config import get_settings
from leadcrm.exceptions import CampaignNotFoundError, DuplicateLeadError, LeadNotFoundError
from leadcrm.services.ai_client import AiClient
from leadcrm.services.rate_limit import RateLimiter, client_key
from leadcrm.services.web_probe import ContactScraper, HomepageFetcher

MAINTENANCE_TOKEN_HEADER = "x-maintenance-token"


# ── Collaborators (overridable in tests) ──────────────
def get_ai_client() -> AiClient:
    return AiClient()


def get_homepage_fetcher() -> HomepageFetcher:
    return HomepageFetcher()


def get_contact_scraper(request: Request) -> ContactScraper:
    return request.app.state.contact_scraper


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


# ── Rate limiting ─────────────────────────────────────
def rate_limited(bucket: str, allow_maintenance_token: bool = False):
    """Dependency factory: one fixed window per (bucket, client)."""

    async def check(request: Request, limiter: RateLimiter = Depends(get_rate_limiter)):
        settings = get_settings()
        if allow_maintenance_token and settings.maintenance_token:
            if request.headers.get(MAINTENANCE_TOKEN_HEADER) == settings.maintenance_token:
                return
        peer = request.client.host if request.client else None
        key = f"{bucket}:{client_key(request.headers, peer)}"
        decision = limiter.check(key)
        if not decision.allowed:
            raise HTTPException(status.HTTP_429_TOO_MANY_REQUESTS, "Rate limit exceeded")

    return check


# ── Domain errors ─────────────────────────────────────
@contextmanager
def domain_errors():
    """Translate service exceptions into HTTP responses."""
    try:
        yield
    except DuplicateLeadError as exc:
        raise HTTPException(
            status.HTTP_409_CONFLICT,
            {"message": str(exc), "signal": exc.signal, "existing_lead_id": exc.existing_lead_id},
        ) from exc
    except LeadNotFoundError as exc:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Lead not found") from exc
    except CampaignNotFoundError as exc:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Campaign not found") from exc
