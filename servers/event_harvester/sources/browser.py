"""
Adapter for calendars that only render with JavaScript.

Uses a headless Chromium page via Playwright. The browser, its context and
the page belong to one run and are closed when the session exits, whether
the run succeeded, failed, timed out or was cancelled.

Requirements:
    pip install playwright
    playwright install chromium
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, AsyncIterator

import structlog

from ..models import RawCandidate, Source
from .base import Adapter, AdapterNetworkError, AdapterTimeoutError, seconds_until
from .html_calendar import extract_candidates
from .http import USER_AGENT
from .url_validator import SSRFError, validate_url

logger = structlog.get_logger()


@dataclass
class BrowserSession:
    """Open Playwright objects for one run."""

    browser: Any
    context: Any
    page: Any


class BrowserPageAdapter(Adapter):
    """Render a calendar page in headless Chromium, then scrape its HTML.

    Source config:
        wait_for: CSS selector to wait for after load (optional)
        settle_ms: extra wait for late AJAX content (default 2000)
        selectors: same overrides as the HTML calendar adapter
    """

    kind = "browser_page"

    def __init__(self, headless: bool = True, resolve_dns: bool = True):
        self.headless = headless
        self.resolve_dns = resolve_dns

    @asynccontextmanager
    async def session(self, source: Source) -> AsyncIterator[BrowserSession]:
        from playwright.async_api import async_playwright

        async with async_playwright() as playwright:
            browser = await playwright.chromium.launch(
                headless=self.headless,
                args=["--disable-gpu", "--disable-dev-shm-usage"],
            )
            try:
                context = await browser.new_context(user_agent=USER_AGENT)
                page = await context.new_page()
                yield BrowserSession(browser=browser, context=context, page=page)
            finally:
                await browser.close()
                logger.debug("browser_closed", source=source.name)

    async def extract(
        self, source: Source, session: BrowserSession, deadline: datetime
    ) -> list[RawCandidate]:
        from playwright.async_api import Error as PlaywrightError
        from playwright.async_api import TimeoutError as PlaywrightTimeoutError

        try:
            url = validate_url(
                source.url,
                require_https=not source.config.get("allow_http", False),
                resolve_dns=self.resolve_dns,
            )
        except SSRFError as e:
            raise AdapterNetworkError(f"URL validation failed: {e}") from e

        page = session.page
        timeout_ms = seconds_until(deadline) * 1000
        try:
            await page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)
            wait_for = source.config.get("wait_for")
            if wait_for:
                try:
                    await page.wait_for_selector(wait_for, timeout=min(timeout_ms, 10000))
                except PlaywrightTimeoutError:
                    logger.info("wait_for_selector_timeout", source=source.name, selector=wait_for)
            await page.wait_for_timeout(source.config.get("settle_ms", 2000))
            html = await page.content()
        except PlaywrightTimeoutError as e:
            raise AdapterTimeoutError(f"Timed out loading {url}") from e
        except PlaywrightError as e:
            raise AdapterNetworkError(f"Browser failed loading {url}: {e}") from e

        return extract_candidates(html, base_url=page.url, selectors=source.config.get("selectors"))
