"""Abstract base classes for the text-extraction collaborators.

The engine never inspects file bytes or HTML itself: an
:class:`ITextExtractor` turns an uploaded file into plain text, and an
:class:`IWebPageProvider` turns a URL into plain text.  Both hand the
ingestion pipeline a string.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class WebPageContent:
    """Readable text pulled from a web page.

    Attributes
    ----------
    url:
        The final URL after redirects.
    title:
        The page title, empty when none was found.
    text:
        The main body text with markup stripped.
    """

    url: str
    title: str
    text: str


class ITextExtractor(ABC):
    """Contract for converting a raw file blob into plain text."""

    @abstractmethod
    def supported_extensions(self) -> frozenset[str]:
        """Return lowercase extensions (with dot) this extractor handles."""

    @abstractmethod
    async def extract(self, data: bytes, file_name: str, mime_type: str | None = None) -> str:
        """Return the text content of *data*.

        Raises
        ------
        context_engine.utils.errors.UnsupportedFormatError
            If neither the extension nor *mime_type* is supported.
        context_engine.utils.errors.ExtractionFailedError
            If parsing fails or produces no text.
        """


class IWebPageProvider(ABC):
    """Contract for fetching a web page and extracting its readable text."""

    @abstractmethod
    async def fetch_text(self, url: str) -> WebPageContent:
        """Fetch *url* and return its main text.

        Raises
        ------
        context_engine.utils.errors.ExtractionFailedError
            If the page cannot be fetched or has no extractable text.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier such as ``"web_page"``."""
