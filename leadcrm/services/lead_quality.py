"""Lead quality scoring — completeness and contactability of a lead profile.

The score is derived from the current field values and is never persisted:
callers recompute it on every read.
"""

import math
import re
from typing import Optional

from leadcrm.services.fingerprint import has_valid_phone

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

# ── Tier thresholds ────────────────────────────────────
QUALITY_TIERS = [
    (75, "High"),
    (45, "Medium"),
    (0, "Low"),
]


def has_valid_email(email: Optional[str]) -> bool:
    if not email:
        return False
    return bool(EMAIL_PATTERN.match(email))


def _present(value: Optional[str]) -> bool:
    return bool(value and value.strip())


def contact_channel_count(lead) -> int:
    """Number of direct channels: website, social profile, phone, email."""
    return sum(
        (
            _present(lead.website_url),
            _present(lead.facebook_url),
            has_valid_phone(lead.phone),
            has_valid_email(lead.email),
        )
    )


def clamp_score(value: float) -> int:
    """Round half up, then clamp to 0-100."""
    return max(0, min(100, math.floor(value + 0.5)))


def compute_quality_score(lead) -> int:
    """Score 0-100 from the fields present on ``lead`` (any object with lead attributes)."""
    score = 0
    if _present(lead.business_name):
        score += 14
    if _present(lead.website_url):
        score += 20
    if _present(lead.facebook_url):
        score += 16
    if has_valid_phone(lead.phone):
        score += 14
    if has_valid_email(lead.email):
        score += 18
    if _present(lead.address):
        score += 10
    if lead.category_id:
        score += 4
    if lead.location_id:
        score += 4

    channels = contact_channel_count(lead)
    if channels >= 2:
        score += 8
    if channels >= 3:
        score += 6

    return max(0, min(100, score))


def quality_tier(score: float) -> str:
    for threshold, tier in QUALITY_TIERS:
        if score >= threshold:
            return tier
    return "Low"
