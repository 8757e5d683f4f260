"""Bounded breadth-first website crawler.

# ─── DESIGN ────────────────────────────────────────────────────────────
#
#   queue = [start_url]; visited = {}
#   while queue and fetches < max_pages:
#       url = queue.pop(0)                     ← FIFO → breadth-first
#       fetch (bounded timeout, descriptive User-Agent)
#       strip script/style/nav/header/footer/.navigation
#       text = largest of main/article/.content/#content/.main, else body
#       if follow_subpages:
#           resolve each <a href> against THIS page's URL
#           enqueue links on the start URL's hostname not yet seen
#
# Guarantees:
#   - at most ``max_pages`` HTTP fetches, whatever the link graph looks like
#     (failed fetches count too)
#   - never leaves the start URL's hostname, redirects included (each
#     hop is checked before it is requested)
#   - a page reached twice through redirects is kept once
#   - a failed page is logged and skipped; the crawl carries on
#   - per-page link extraction is capped (default 50)
#
# Page texts are joined with a "--- Content from <url> ---" marker so the
# provenance of every passage stays recoverable from the raw text.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from urllib.parse import urldefrag, urljoin, urlparse, urlunparse

import httpx
import structlog
from bs4 import BeautifulSoup

from agentkb.utils.errors import CrawlError

logger = structlog.get_logger(logger_name=__name__)

DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; AgentKB-Bot/1.0)"

_STRIP_SELECTORS = "script, style, noscript, nav, header, footer, .navigation"
_CONTENT_SELECTORS = "main, article, .content, #content, .main"
_SKIPPED_LINK_PREFIXES = ("#", "mailto:", "javascript:", "tel:")
_MAX_REDIRECTS = 5

# (pages_fetched, max_pages, url) → awaitable; used for progress reporting.
PageCallback = Callable[[int, int, str], Awaitable[None]]


def page_marker(url: str) -> str:
    return f"\n\n--- Content from {url} ---\n\n"


@dataclass
class CrawledPage:
    url: str
    title: str
    text: str
    links: list[str] = field(default_factory=list)


@dataclass
class CrawlResult:
    """Accumulated output of one crawl."""

    text: str
    pages_crawled: int
    crawled_urls: list[str]
    failed_urls: list[str] = field(default_factory=list)


class WebCrawler:
    """Breadth-first, same-host, page-bounded crawler.

    Parameters
    ----------
    timeout_seconds:
        Per-request timeout.
    user_agent:
        ``User-Agent`` header sent with every request.
    max_links_per_page:
        Cap on anchors extracted from a single page.
    rate_limit_seconds:
        Pause between consecutive fetches (0 disables).
    transport:
        Optional httpx transport; tests pass an ``httpx.MockTransport``.
    """

    def __init__(
        self,
        timeout_seconds: float = 30.0,
        user_agent: str = DEFAULT_USER_AGENT,
        max_links_per_page: int = 50,
        rate_limit_seconds: float = 0.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._timeout = timeout_seconds
        self._user_agent = user_agent
        self._max_links = max_links_per_page
        self._rate_limit = rate_limit_seconds
        self._transport = transport

    async def crawl(
        self,
        start_url: str,
        follow_subpages: bool = False,
        max_pages: int = 10,
        on_page: PageCallback | None = None,
    ) -> CrawlResult:
        """Crawl from *start_url* and return the concatenated page text.

        With ``follow_subpages=False`` only the start URL is fetched.
        """
        max_pages = max(1, max_pages)
        root_host = urlparse(start_url).hostname
        if not root_host:
            raise CrawlError(message=f"Invalid start URL: {start_url}", provider_name="crawler")

        queue: deque[str] = deque([_normalize(start_url)])
        seen: set[str] = {queue[0]}
        fetches = 0
        parts: list[str] = []
        crawled: list[str] = []
        failed: list[str] = []

        fetched: set[str] = set()

        async with httpx.AsyncClient(
            timeout=self._timeout,
            follow_redirects=False,
            headers={"User-Agent": self._user_agent},
            transport=self._transport,
        ) as client:
            while queue and fetches < max_pages:
                url = queue.popleft()
                if fetches and self._rate_limit:
                    await asyncio.sleep(self._rate_limit)
                fetches += 1

                try:
                    page = await self._fetch_page(client, url, root_host)
                except CrawlError as exc:
                    logger.warning("crawl_page_failed", url=url, error=str(exc))
                    failed.append(url)
                    continue

                final_url = _normalize(page.url)
                if final_url in fetched:
                    logger.debug("crawl_duplicate_skipped", url=url, final_url=final_url)
                    continue
                fetched.add(final_url)
                seen.add(final_url)

                if page.text:
                    parts.append(page_marker(page.url) + page.text)
                    crawled.append(page.url)

                if on_page is not None:
                    await on_page(fetches, max_pages, page.url)

                if not follow_subpages:
                    continue
                for link in page.links:
                    if urlparse(link).hostname != root_host or link in seen:
                        continue
                    seen.add(link)
                    queue.append(link)

        logger.info(
            "crawl_complete",
            start_url=start_url,
            pages_crawled=len(crawled),
            pages_failed=len(failed),
            fetches=fetches,
        )
        return CrawlResult(
            text="".join(parts).strip(),
            pages_crawled=len(crawled),
            crawled_urls=crawled,
            failed_urls=failed,
        )

    # ------------------------------------------------------------------
    # Single page
    # ------------------------------------------------------------------

    async def _fetch_page(
        self, client: httpx.AsyncClient, url: str, root_host: str
    ) -> CrawledPage:
        """Fetch *url*, following same-host redirects, and extract its text and links.

        Raises
        ------
        agentkb.utils.errors.CrawlError
            On transport errors, timeouts, non-2xx responses, too many
            redirects, or a redirect to another hostname.
        """
        current = url
        try:
            for _ in range(_MAX_REDIRECTS + 1):
                response = await client.get(current)
                if not response.is_redirect:
                    break
                target = urljoin(str(response.url), response.headers.get("location", ""))
                if urlparse(target).hostname != root_host:
                    raise CrawlError(
                        message=f"Redirect from {current} leaves {root_host}: {target}",
                        provider_name="crawler",
                    )
                current = target
            else:
                raise CrawlError(
                    message=f"Too many redirects fetching {url}", provider_name="crawler"
                )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise CrawlError(message=f"Failed to fetch {url}: {exc}", provider_name="crawler") from exc

        final_url = str(response.url)
        content_type = response.headers.get("content-type", "").lower()
        if "html" not in content_type:
            if content_type.startswith("text/"):
                return CrawledPage(url=final_url, title="", text=_collapse(response.text))
            raise CrawlError(
                message=f"Unsupported content type '{content_type}' at {url}",
                provider_name="crawler",
            )

        return self.parse_html(response.text, final_url)

    def parse_html(self, html: str, page_url: str) -> CrawledPage:
        """Extract title, main text and absolute links from an HTML document."""
        soup = BeautifulSoup(html, "html.parser")

        title_tag = soup.find("title")
        title = title_tag.get_text(strip=True) if title_tag else ""

        # Links are read before stripping so navigation menus still count.
        links = self._extract_links(soup, page_url)

        for element in soup.select(_STRIP_SELECTORS):
            element.decompose()

        text = ""
        for candidate in soup.select(_CONTENT_SELECTORS):
            candidate_text = _collapse(candidate.get_text(" "))
            if len(candidate_text) > len(text):
                text = candidate_text
        if not text:
            body = soup.body or soup
            text = _collapse(body.get_text(" "))

        return CrawledPage(url=page_url, title=title, text=text, links=links)

    def _extract_links(self, soup: BeautifulSoup, page_url: str) -> list[str]:
        links: list[str] = []
        for anchor in soup.find_all("a", href=True):
            href = anchor["href"].strip()
            if not href or href.lower().startswith(_SKIPPED_LINK_PREFIXES):
                continue
            absolute = _normalize(urljoin(page_url, href))
            if urlparse(absolute).scheme not in ("http", "https"):
                continue
            if absolute not in links:
                links.append(absolute)
            if len(links) >= self._max_links:
                break
        return links


def _normalize(url: str) -> str:
    """Drop the fragment and lowercase scheme and host for visited-set keys."""
    url, _ = urldefrag(url)
    parsed = urlparse(url)
    path = parsed.path or "/"
    return urlunparse((parsed.scheme.lower(), parsed.netloc.lower(), path, parsed.params, parsed.query, ""))


def _collapse(text: str) -> str:
    return " ".join(text.split())
