"""Tests for homepage fetching and contact extraction."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from leadcrm.services.web_probe import (
    ContactScraper,
    HomepageFetcher,
    extract_best_email,
    extract_contact_links,
    extract_facebook_url,
    parse_page,
    score_email,
    score_facebook_url,
)


class TestFacebookExtraction:
    def test_page_link_is_found(self):
        html = '<a href="https://www.facebook.com/sunnyspa">FB</a>'
        assert extract_facebook_url(html, "https://sunnyspa.ph") == "https://www.facebook.com/sunnyspa"

    def test_share_links_are_ignored(self):
        html = (
            '<a href="https://www.facebook.com/sharer.php?u=https://sunnyspa.ph">Share</a>'
            '<a href="https://facebook.com/dialog/feed?app_id=1">Post</a>'
        )
        assert extract_facebook_url(html, "https://sunnyspa.ph") is None

    def test_best_scored_candidate_wins(self):
        html = (
            '<a href="https://facebook.com/groups/spa/posts?x=1">group</a>'
            '<a href="https://www.facebook.com/sunnyspa">page</a>'
        )
        assert extract_facebook_url(html, "https://sunnyspa.ph") == "https://www.facebook.com/sunnyspa"

    def test_html_entities_are_unescaped(self):
        html = '<a href="https:&#x2F;&#x2F;www.facebook.com&#x2F;sunnyspa">FB</a>'
        assert extract_facebook_url(html, "https://sunnyspa.ph") == "https://www.facebook.com/sunnyspa"

    def test_decimal_entities_are_unescaped(self):
        html = '<a href="https://www.facebook.com/pages/Sunny&#47;Spa">FB</a>'
        assert extract_facebook_url(html, "https://sunnyspa.ph") == "https://www.facebook.com/pages/Sunny/Spa"

    def test_accepts_parsed_page(self):
        page = parse_page('<a href="https://www.facebook.com/sunnyspa">FB</a>')
        assert extract_facebook_url(page, "https://sunnyspa.ph") == "https://www.facebook.com/sunnyspa"

    def test_score_penalizes_blocked_paths(self):
        assert score_facebook_url("https://www.facebook.com/sunnyspa") == 45
        assert score_facebook_url("https://www.facebook.com/sharer.php") < 0


class TestEmailExtraction:
    def test_site_domain_email_preferred(self):
        html = "Write to owner@gmail.com or info@sunnyspa.ph"
        assert extract_best_email(html, "sunnyspa.ph") == "info@sunnyspa.ph"

    def test_mailto_and_trailing_punctuation(self):
        html = '<a href="mailto:Hello@SunnySpa.ph?subject=Hi">mail</a>'
        assert extract_best_email(html, "sunnyspa.ph") == "hello@sunnyspa.ph"

    def test_noreply_and_images_rejected(self):
        assert score_email("logo@2x.png", "sunnyspa.ph") == -100
        assert extract_best_email("noreply@other.com", "sunnyspa.ph") is None

    def test_email_inside_markup_text(self):
        html = "<p>Book now: <b>hello@sunnyspa.ph</b></p>"
        assert extract_best_email(html, "sunnyspa.ph") == "hello@sunnyspa.ph"

    def test_no_email(self):
        assert extract_best_email("<p>Call us</p>", "sunnyspa.ph") is None


class TestContactLinks:
    def test_same_origin_contact_pages_only(self):
        html = (
            '<a href="/contact-us">Contact</a>'
            '<a href="https://other.com/contact">Elsewhere</a>'
            '<a href="/about">About</a>'
            '<a href="/menu">Menu</a>'
        )
        assert extract_contact_links(html, "https://sunnyspa.ph") == [
            "https://sunnyspa.ph/contact-us",
            "https://sunnyspa.ph/about",
        ]

    def test_capped_at_three(self):
        html = "".join(f'<a href="/contact-{i}">c</a>' for i in range(6))
        assert len(extract_contact_links(html, "https://sunnyspa.ph")) == 3


# ── Fetcher ──────────────────────────────────────────────
class TestHomepageFetcher:
    @pytest.mark.asyncio
    async def test_transport_error_yields_none(self):
        mock_client = MagicMock()
        mock_client.get = AsyncMock(side_effect=httpx.ConnectError("refused"))
        mock_client.__aenter__ = AsyncMock(return_value=mock_client)
        mock_client.__aexit__ = AsyncMock(return_value=False)

        with patch("leadcrm.services.web_probe.httpx.AsyncClient", return_value=mock_client):
            assert await HomepageFetcher().fetch("https://down.ph") is None

    @pytest.mark.asyncio
    async def test_error_status_yields_none(self):
        mock_client = MagicMock()
        mock_client.get = AsyncMock(return_value=MagicMock(status_code=404, text="missing"))
        mock_client.__aenter__ = AsyncMock(return_value=mock_client)
        mock_client.__aexit__ = AsyncMock(return_value=False)

        with patch("leadcrm.services.web_probe.httpx.AsyncClient", return_value=mock_client):
            assert await HomepageFetcher().fetch("https://sunnyspa.ph") is None

    @pytest.mark.asyncio
    async def test_ok_returns_body(self):
        mock_client = MagicMock()
        mock_client.get = AsyncMock(return_value=MagicMock(status_code=200, text="<html>ok</html>"))
        mock_client.__aenter__ = AsyncMock(return_value=mock_client)
        mock_client.__aexit__ = AsyncMock(return_value=False)

        with patch("leadcrm.services.web_probe.httpx.AsyncClient", return_value=mock_client):
            assert await HomepageFetcher().fetch("https://sunnyspa.ph") == "<html>ok</html>"


# ── Scraper ──────────────────────────────────────────────
class TestContactScraper:
    @pytest.mark.asyncio
    async def test_homepage_then_contact_pages(self, fake_fetcher):
        fake_fetcher.pages = {
            "https://sunnyspa.ph": '<a href="https://facebook.com/sunnyspa">fb</a><a href="/contact">Contact</a>',
            "https://sunnyspa.ph/contact": "Email info@sunnyspa.ph",
        }
        result = await ContactScraper(fetcher=fake_fetcher).enrich("sunnyspa.ph")

        assert result.facebook_url == "https://facebook.com/sunnyspa"
        assert result.email == "info@sunnyspa.ph"
        assert fake_fetcher.calls == ["https://sunnyspa.ph", "https://sunnyspa.ph/contact"]

    @pytest.mark.asyncio
    async def test_contact_pages_skipped_when_homepage_has_both(self, fake_fetcher):
        fake_fetcher.pages = {
            "https://sunnyspa.ph": (
                '<a href="https://facebook.com/sunnyspa">fb</a><a href="/contact">Contact</a> info@sunnyspa.ph'
            ),
        }
        await ContactScraper(fetcher=fake_fetcher).enrich("https://sunnyspa.ph")
        assert fake_fetcher.calls == ["https://sunnyspa.ph"]

    @pytest.mark.asyncio
    async def test_results_are_cached(self, fake_fetcher):
        scraper = ContactScraper(fetcher=fake_fetcher)
        first = await scraper.enrich("https://down.ph")
        second = await scraper.enrich("https://down.ph")
        assert first is second
        assert fake_fetcher.calls == ["https://down.ph"]
        assert first.facebook_url is None and first.email is None

    @pytest.mark.asyncio
    async def test_blank_url(self, fake_fetcher):
        result = await ContactScraper(fetcher=fake_fetcher).enrich("  ")
        assert result.email is None
        assert fake_fetcher.calls == []

    @pytest.mark.asyncio
    async def test_cache_is_capped(self, fake_fetcher):
        scraper = ContactScraper(fetcher=fake_fetcher, max_cache_entries=2)
        for host in ("a.ph", "b.ph", "c.ph"):
            await scraper.enrich(f"https://{host}")
        assert scraper.cache_size == 2

        await scraper.enrich("https://a.ph")
        assert fake_fetcher.calls.count("https://a.ph") == 2

    @pytest.mark.asyncio
    async def test_overlong_values_are_dropped(self, fake_fetcher):
        long_fb = "https://facebook.com/" + "x" * 300
        fake_fetcher.pages = {"https://sunnyspa.ph": f'<a href="{long_fb}">fb</a> info@sunnyspa.ph'}
        result = await ContactScraper(fetcher=fake_fetcher).enrich("https://sunnyspa.ph")
        assert result.facebook_url is None
        assert result.email == "info@sunnyspa.ph"
