"""Web page text provider using httpx and trafilatura.

Fetches HTML via httpx and extracts the main readable text with
trafilatura, stripping navigation, ads, and boilerplate.  Used by the
LINK ingestion path.
"""

from __future__ import annotations

import json

import httpx
import structlog
import trafilatura

from context_engine.interfaces.text_extractor import IWebPageProvider, WebPageContent
from context_engine.utils.errors import ExtractionFailedError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_TIMEOUT = 10.0
_DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0 (compatible; context-engine/0.1)",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
}


class WebPageProvider(IWebPageProvider):
    """Page text extraction backed by httpx + trafilatura."""

    def __init__(self, http_client: httpx.AsyncClient | None = None) -> None:
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(_DEFAULT_TIMEOUT),
            headers=_DEFAULT_HEADERS,
            follow_redirects=True,
        )

    async def fetch_text(self, url: str) -> WebPageContent:
        """Fetch *url* and extract readable text via trafilatura."""
        try:
            response = await self._client.get(url)
            response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise ExtractionFailedError(
                message=f"Timeout fetching {url}: {exc}",
                provider_name=self.get_provider_name(),
                url=url,
            ) from exc
        except httpx.HTTPStatusError as exc:
            raise ExtractionFailedError(
                message=f"HTTP {exc.response.status_code} for {url}",
                provider_name=self.get_provider_name(),
                url=url,
            ) from exc
        except httpx.HTTPError as exc:
            raise ExtractionFailedError(
                message=f"HTTP error fetching {url}: {exc}",
                provider_name=self.get_provider_name(),
                url=url,
            ) from exc

        html = response.text
        text = trafilatura.extract(html, include_comments=False, include_tables=True)
        if not text:
            logger.warning("web_page_extraction_empty", url=url)
            raise ExtractionFailedError(
                message=f"No readable text found at {url}",
                provider_name=self.get_provider_name(),
                url=url,
            )

        title = ""
        metadata = trafilatura.extract(
            html,
            include_comments=False,
            output_format="json",
            with_metadata=True,
        )
        if metadata:
            try:
                title = json.loads(metadata).get("title") or ""
            except json.JSONDecodeError:
                logger.debug("web_page_metadata_parse_failed", url=url)

        final_url = str(response.url)
        logger.info("web_page_extracted", url=final_url, title=title, text_length=len(text))
        return WebPageContent(url=final_url, title=title, text=text)

    async def close(self) -> None:
        """Close the HTTP client if this provider created it."""
        if self._owns_client:
            await self._client.aclose()

    def get_provider_name(self) -> str:
        return "web_page"
