"""Fingerprint engine — normalized identity keys used to spot the same business twice."""

import re
from typing import Optional
from urllib.parse import urlsplit

from leadcrm.schemas import LeadFields

NON_DIGITS = re.compile(r"\D")
WHITESPACE = re.compile(r"\s+")
MIN_PHONE_DIGITS = 7

# Key prefixes, in merge precedence order
WEBSITE_KEY = "w"
SOCIAL_KEY = "f"
PHONE_KEY = "p"
NAME_LOCATION_KEY = "nl"

SIGNAL_BY_PREFIX = {
    WEBSITE_KEY: "website",
    SOCIAL_KEY: "social",
    PHONE_KEY: "phone",
    NAME_LOCATION_KEY: "name_location",
}


def normalize_phone(raw: Optional[str]) -> str:
    return NON_DIGITS.sub("", raw or "")


def has_valid_phone(raw: Optional[str]) -> bool:
    return len(normalize_phone(raw)) >= MIN_PHONE_DIGITS


def normalize_contact_url(value: Optional[str]) -> Optional[str]:
    """Reduce a URL to ``host + path``: lower-cased, no ``www.``, no trailing slash.

    Scheme, query string and fragment are dropped. Values without a scheme
    are read as if ``https://`` were in front; anything that still has no
    host collapses to its lower-cased raw form.
    """
    raw = (value or "").strip()
    if not raw:
        return None
    candidate = raw if "://" in raw else f"https://{raw}"
    try:
        parts = urlsplit(candidate)
        host = (parts.hostname or "").lower()
    except ValueError:
        return raw.lower()
    if not host:
        return raw.lower()
    if host.startswith("www."):
        host = host[4:]
    path = parts.path.rstrip("/").lower()
    return f"{host}{path}"


def normalize_business_name(value: Optional[str]) -> Optional[str]:
    clean = WHITESPACE.sub(" ", (value or "").lower()).strip()
    return clean or None


def fingerprint_keys(fields: LeadFields) -> list[str]:
    """Ordered identity keys: website, social, phone, name+location."""
    keys = []
    website = normalize_contact_url(fields.website_url)
    social = normalize_contact_url(fields.facebook_url)
    phone = normalize_phone(fields.phone)
    name = normalize_business_name(fields.business_name)

    if website:
        keys.append(f"{WEBSITE_KEY}:{website}")
    if social:
        keys.append(f"{SOCIAL_KEY}:{social}")
    if len(phone) >= MIN_PHONE_DIGITS:
        keys.append(f"{PHONE_KEY}:{phone}")
    if name and fields.location_id:
        keys.append(f"{NAME_LOCATION_KEY}:{name}:{fields.location_id}")
    return keys


def signal_for_key(key: str) -> str:
    """Human-facing signal name for a fingerprint key (``w:foo.com`` -> ``website``)."""
    return SIGNAL_BY_PREFIX.get(key.split(":", 1)[0], "unknown")
