"""
Fetch a suspicious page and pull out what matters for a scam verdict.

The model never visits the link itself. What it gets is the page's
visible text, the markup of any forms (credential harvesting shows up
there) and the list of external scripts. Fetching is best effort: any
network problem is reported as a FetchOutcome error and the analysis
carries on without the page.
"""

import asyncio
import logging
from typing import List, Optional
from urllib.parse import urljoin, urlparse

import httpx
from bs4 import BeautifulSoup

from scamlens.schemas.analyze_schemas import FetchedPageContent, FetchOutcome
from scamlens.utils.preprocessing import normalize_text, normalize_url, truncate

logger = logging.getLogger(__name__)


HTML_CONTENT_TYPES = ("text/html", "application/xhtml+xml")
NON_VISIBLE_TAGS = ("script", "style", "noscript", "template")


def extract_page_content(
    html: str,
    base_url: str,
    max_text_chars: int = 3000,
    max_form_chars: int = 2000,
    max_scripts: int = 20,
) -> FetchedPageContent:
    """
    Extract visible text, form markup and external script sources from HTML.

    Script URLs are resolved against base_url and de-duplicated in
    document order.
    """
    soup = BeautifulSoup(html, "html.parser")

    script_sources: List[str] = []
    for script in soup.find_all("script", src=True):
        src = script["src"].strip()
        if not src:
            continue
        src = urljoin(base_url, src)
        if src not in script_sources:
            script_sources.append(src)
        if len(script_sources) >= max_scripts:
            break

    form_markup = "\n".join(str(form) for form in soup.find_all("form"))

    for tag in soup(NON_VISIBLE_TAGS):
        tag.decompose()
    root = soup.body or soup
    visible_text = normalize_text(root.get_text(separator=" "))

    return FetchedPageContent(
        url=base_url,
        visible_text=truncate(visible_text, max_text_chars),
        form_markup=truncate(form_markup, max_form_chars),
        script_sources=script_sources,
    )


class ContentFetcher:
    """Retrieves a page's HTML under a hard deadline and extracts its content."""

    def __init__(
        self,
        timeout: float = 5.0,
        max_text_chars: int = 3000,
        max_form_chars: int = 2000,
        max_scripts: int = 20,
        user_agent: str = "ScamLens",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = timeout
        self.max_text_chars = max_text_chars
        self.max_form_chars = max_form_chars
        self.max_scripts = max_scripts
        self.user_agent = user_agent
        self._transport = transport

    @classmethod
    def from_settings(cls, settings) -> "ContentFetcher":
        return cls(
            timeout=settings.fetch_timeout_seconds,
            max_text_chars=settings.fetch_max_text_chars,
            max_form_chars=settings.fetch_max_form_chars,
            max_scripts=settings.fetch_max_scripts,
            user_agent=settings.fetch_user_agent,
        )

    async def _get(self, url: str) -> httpx.Response:
        async with httpx.AsyncClient(
            transport=self._transport,
            follow_redirects=True,
            timeout=self.timeout,
            headers={"User-Agent": self.user_agent, "Accept": "text/html,application/xhtml+xml"},
        ) as client:
            return await client.get(url)

    async def fetch(self, url: str) -> FetchOutcome:
        """
        Fetch url and extract its content.

        Never raises for a bad URL or network trouble: malformed URLs,
        timeouts, connection errors, non-2xx statuses and non-HTML
        responses come back as FetchOutcome(error=...).
        """
        url = normalize_url(url)
        try:
            parsed = urlparse(url)
            hostname = parsed.hostname
        except ValueError as e:
            return self._failed(url, f"invalid URL: {e}")

        scheme = parsed.scheme.lower()
        if scheme not in ("http", "https"):
            return self._failed(url, f"unsupported URL scheme '{scheme}'")
        if not hostname:
            return self._failed(url, "invalid URL: no host")

        try:
            httpx.URL(url)
        except (ValueError, httpx.InvalidURL) as e:
            return self._failed(url, f"invalid URL: {e}")

        try:
            # wait_for cancels the request once the deadline passes
            response = await asyncio.wait_for(self._get(url), timeout=self.timeout)
        except asyncio.TimeoutError:
            return self._failed(url, f"timed out after {self.timeout:g}s")
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
            return self._failed(url, f"{type(e).__name__}: {e}")

        if not response.is_success:
            return self._failed(url, f"HTTP status {response.status_code}")

        content_type = response.headers.get("content-type", "").split(";")[0].strip().lower()
        if content_type and content_type not in HTML_CONTENT_TYPES:
            return self._failed(url, f"unsupported content type '{content_type}'")

        content = extract_page_content(
            response.text,
            base_url=str(response.url),
            max_text_chars=self.max_text_chars,
            max_form_chars=self.max_form_chars,
            max_scripts=self.max_scripts,
        )
        logger.info(
            f"Fetched {url}: {len(content.visible_text)} text chars, "
            f"{len(content.script_sources)} external scripts"
        )
        return FetchOutcome(content=content)

    @staticmethod
    def _failed(url: str, reason: str) -> FetchOutcome:
        logger.warning(f"Could not fetch {url}: {reason}")
        return FetchOutcome(error=reason)
