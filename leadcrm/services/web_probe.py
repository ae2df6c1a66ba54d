"""Website probes — homepage fetch for scoring and contact scraping for refresh runs."""

import logging
import re
import time
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Union
from urllib.parse import urljoin, urlsplit

import httpx
from bs4 import BeautifulSoup

from leadcrm.config import Settings, get_settings
from leadcrm.schemas import ensure_url_scheme

logger = logging.getLogger(__name__)

MAX_HTML_CHARS = 500_000
MAX_CONTACT_PAGES = 3
MAX_URL_LENGTH = 255
MAX_EMAIL_LENGTH = 120

MAILTO_PATTERN = re.compile(r"^mailto:", re.IGNORECASE)
EMAIL_PATTERN = re.compile(r"\b[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}\b", re.IGNORECASE)
EMAIL_VALID_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
CONTACT_LINK_PATTERN = re.compile(r"contact|about|inquiry|support|reach", re.IGNORECASE)
ROLE_MAILBOX_PATTERN = re.compile(r"^(info|contact|admin|sales|hello)@", re.IGNORECASE)
NO_REPLY_PATTERN = re.compile(r"noreply|no-reply|donotreply", re.IGNORECASE)

BLOCKED_FACEBOOK_PATHS = ("sharer.php", "/dialog/", "/plugins/", "/share.php", "/hashtag/")
IMAGE_SUFFIXES = (".png", ".jpg", ".webp")


class HomepageFetcher:
    """GET a page with a short timeout. Any failure yields ``None``."""

    def __init__(self, settings: Optional[Settings] = None, timeout: Optional[float] = None):
        self.settings = settings or get_settings()
        self.timeout = timeout or self.settings.homepage_timeout_seconds

    async def fetch(self, url: str) -> Optional[str]:
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                headers={"User-Agent": self.settings.user_agent},
            ) as client:
                resp = await client.get(url)
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning(f"Homepage fetch failed for {url}: {exc}")
            return None
        if resp.status_code >= 400:
            return None
        return resp.text[:MAX_HTML_CHARS]


# ── Contact extraction ─────────────────────────────────
Page = Union[str, BeautifulSoup]


def parse_page(page: Page) -> BeautifulSoup:
    if isinstance(page, BeautifulSoup):
        return page
    return BeautifulSoup(page, "html.parser")


def _hrefs(soup: BeautifulSoup) -> list[str]:
    """Anchor targets with entities already decoded by the parser."""
    return [a["href"].strip() for a in soup.find_all("a", href=True)]


def _is_blocked_facebook_url(parts) -> bool:
    path = f"{parts.path}?{parts.query}".lower()
    return any(blocked in path for blocked in BLOCKED_FACEBOOK_PATHS)


def score_facebook_url(url: str) -> int:
    parts = urlsplit(url)
    host = (parts.hostname or "").lower()
    segments = [s for s in parts.path.lower().split("/") if s]
    score = 0
    if "facebook.com" in host:
        score += 25
    if host.startswith("www."):
        score += 5
    if len(segments) == 1:
        score += 10
    if len(segments) == 2 and segments[0] in ("pages", "profile.php"):
        score += 8
    if not parts.query:
        score += 5
    if _is_blocked_facebook_url(parts):
        score -= 100
    return score


def extract_facebook_url(page: Page, base_url: str) -> Optional[str]:
    candidates = []
    for raw in _hrefs(parse_page(page)):
        if "facebook.com" not in raw.lower():
            continue
        resolved = urljoin(base_url, raw)
        parts = urlsplit(resolved)
        if "facebook.com" not in (parts.hostname or "").lower():
            continue
        if _is_blocked_facebook_url(parts):
            continue
        candidates.append((score_facebook_url(resolved), resolved))
    if not candidates:
        return None
    # max() keeps the first of equal scores, like a stable sort would
    return max(candidates, key=lambda c: c[0])[1]


def score_email(email: str, site_host: str) -> int:
    if not EMAIL_VALID_PATTERN.match(email) or email.endswith(IMAGE_SUFFIXES):
        return -100
    domain = email.split("@", 1)[1].lower()
    score = 0
    if site_host.endswith(domain):
        score += 20
    if domain.endswith(site_host.removeprefix("www.")):
        score += 15
    if ROLE_MAILBOX_PATTERN.match(email):
        score += 5
    if NO_REPLY_PATTERN.search(email):
        score -= 20
    return score


def extract_best_email(page: Page, site_host: str) -> Optional[str]:
    soup = parse_page(page)
    found: dict[str, None] = {}
    # mailto links first, then addresses in the visible text
    for a in soup.find_all("a", href=MAILTO_PATTERN):
        email = MAILTO_PATTERN.sub("", a["href"]).split("?")[0].strip().lower()
        if email:
            found[email] = None
    for match in EMAIL_PATTERN.finditer(soup.get_text(" ", strip=True)):
        found[match.group(0).strip().lower()] = None

    best = None
    best_score = -1
    for raw in found:
        email = raw.rstrip("),;.")
        score = score_email(email, site_host)
        if score >= 0 and score > best_score:
            best, best_score = email, score
    return best


def extract_contact_links(page: Page, base_url: str) -> list[str]:
    base = urlsplit(base_url)
    links: list[str] = []
    for raw in _hrefs(parse_page(page)):
        if not raw or not CONTACT_LINK_PATTERN.search(raw):
            continue
        url = urljoin(base_url, raw)
        parts = urlsplit(url)
        if (parts.scheme, parts.netloc) != (base.scheme, base.netloc):
            continue
        if url not in links:
            links.append(url)
        if len(links) >= MAX_CONTACT_PAGES:
            break
    return links


@dataclass
class ContactEnrichment:
    facebook_url: Optional[str]
    email: Optional[str]
    checked_at: str


class ContactScraper:
    """Find a business's social profile and email on its website.

    Looks at the homepage first, then up to three same-origin
    contact/about pages. Results are cached per URL for a configurable TTL
    in a size-capped LRU that lives on the instance.
    """

    def __init__(
        self,
        fetcher: Optional[HomepageFetcher] = None,
        settings: Optional[Settings] = None,
        max_cache_entries: Optional[int] = None,
    ):
        self.settings = settings or get_settings()
        self.fetcher = fetcher or HomepageFetcher(self.settings, timeout=self.settings.scrape_timeout_seconds)
        self.max_cache_entries = max_cache_entries or self.settings.scrape_cache_max_entries
        self._cache: OrderedDict[str, tuple[float, ContactEnrichment]] = OrderedDict()

    def _get_cached(self, url: str) -> Optional[ContactEnrichment]:
        item = self._cache.get(url)
        if item is None:
            return None
        expires_at, value = item
        if expires_at < time.monotonic():
            del self._cache[url]
            return None
        self._cache.move_to_end(url)
        return value

    def _set_cached(self, url: str, value: ContactEnrichment) -> None:
        now = time.monotonic()
        if len(self._cache) >= self.max_cache_entries:
            for key in [k for k, (expires_at, _) in self._cache.items() if expires_at < now]:
                del self._cache[key]
        while len(self._cache) >= self.max_cache_entries:
            evicted, _ = self._cache.popitem(last=False)
            logger.debug(f"Scrape cache LRU eviction: {evicted}")
        self._cache[url] = (now + self.settings.scrape_cache_ttl_seconds, value)

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    async def enrich(self, website_url: str) -> ContactEnrichment:
        normalized = ensure_url_scheme(website_url)
        now = datetime.now(timezone.utc).isoformat()
        if not normalized:
            return ContactEnrichment(facebook_url=None, email=None, checked_at=now)

        cached = self._get_cached(normalized)
        if cached:
            return cached

        facebook_url = None
        email = None
        home = await self.fetcher.fetch(normalized)
        if home:
            host = (urlsplit(normalized).hostname or "").lower().removeprefix("www.")
            soup = parse_page(home)
            facebook_url = extract_facebook_url(soup, normalized)
            email = extract_best_email(soup, host)
            if not facebook_url or not email:
                for page_url in extract_contact_links(soup, normalized):
                    html = await self.fetcher.fetch(page_url)
                    if not html:
                        continue
                    page = parse_page(html)
                    facebook_url = facebook_url or extract_facebook_url(page, page_url)
                    email = email or extract_best_email(page, host)
                    if facebook_url and email:
                        break

        # values that would not fit the lead columns are treated as not found
        if facebook_url and len(facebook_url) > MAX_URL_LENGTH:
            facebook_url = None
        if email and len(email) > MAX_EMAIL_LENGTH:
            email = None

        result = ContactEnrichment(facebook_url=facebook_url, email=email, checked_at=now)
        self._set_cached(normalized, result)
        return result
