"""Fetching and text extraction used when a page is materialized with full content."""
import logging
from dataclasses import dataclass
from io import BytesIO

import httpx
import trafilatura
from bs4 import BeautifulSoup
from pypdf import PdfReader

from core.config import get_settings

logger = logging.getLogger(__name__)

USER_AGENT = 'Mozilla/5.0 (compatible; Pagekeeper/0.1)'


@dataclass
class FetchResult:
    """Result of fetching a URL (raw content before extraction)."""

    content: str | bytes | None  # str for HTML, bytes for PDF
    final_url: str
    status_code: int | None
    content_type: str | None
    error: str | None

    @property
    def is_pdf(self) -> bool:
        """Check if the content type indicates a PDF."""
        return bool(self.content_type and 'application/pdf' in self.content_type.lower())


@dataclass
class ScrapedPage:
    """Title and readable text extracted from a fetched page."""

    title: str | None
    text: str | None
    final_url: str
    error: str | None


async def fetch_url(url: str, timeout: float | None = None) -> FetchResult:  # noqa: ASYNC109
    """
    Fetch a URL that serves HTML or PDF.

    Best-effort: network failures, non-2xx responses and unsupported content types
    come back as FetchResult.error instead of raising.
    """
    if timeout is None:
        timeout = get_settings().fetch_timeout
    try:
        async with httpx.AsyncClient(
            follow_redirects=True,
            timeout=timeout,
            headers={'User-Agent': USER_AGENT},
            http2=True,
        ) as client:
            response = await client.get(url)
    except httpx.TimeoutException:
        return FetchResult(None, url, None, None, "Request timed out")
    except httpx.RequestError as e:
        return FetchResult(None, url, None, None, f"Request failed: {e}")

    final_url = str(response.url)
    content_type = response.headers.get('content-type', '')
    if not response.is_success:
        return FetchResult(
            None, final_url, response.status_code, content_type, f"HTTP {response.status_code}",
        )
    if 'application/pdf' in content_type.lower():
        return FetchResult(response.content, final_url, response.status_code, content_type, None)
    if 'text/html' in content_type.lower():
        return FetchResult(response.text, final_url, response.status_code, content_type, None)
    return FetchResult(
        None,
        final_url,
        response.status_code,
        content_type,
        f"Unsupported content type: {content_type}",
    )


def extract_html_title(html: str) -> str | None:
    """Return the <title>, falling back to og:title. Pure function."""
    soup = BeautifulSoup(html, 'lxml')
    title_tag = soup.find('title')
    if title_tag and title_tag.string and title_tag.string.strip():
        return title_tag.string.strip()
    og_title = soup.find('meta', property='og:title')
    if og_title and og_title.get('content'):
        return og_title['content'].strip()
    return None


def extract_html_text(html: str) -> str | None:
    """Extract main readable text with trafilatura, dropping navigation and boilerplate."""
    return trafilatura.extract(html)


def extract_pdf(pdf_bytes: bytes) -> tuple[str | None, str | None]:
    """
    Return (title, text) from a PDF.

    PDF metadata is often missing; either element may be None.
    """
    try:
        reader = PdfReader(BytesIO(pdf_bytes))
    except Exception:
        logger.warning("Could not parse PDF content", exc_info=True)
        return None, None

    title = reader.metadata.title if reader.metadata and reader.metadata.title else None
    parts = [text for page in reader.pages if (text := page.extract_text())]
    return title, '\n'.join(parts) if parts else None


async def scrape_url(url: str, timeout: float | None = None) -> ScrapedPage:  # noqa: ASYNC109
    """
    Fetch a URL and extract its title and text.

    This is the content loader behind full (non-stub) page materialization.
    """
    result = await fetch_url(url, timeout)
    if result.error:
        return ScrapedPage(title=None, text=None, final_url=result.final_url, error=result.error)

    if result.is_pdf:
        title, text = extract_pdf(result.content)
    else:
        title = extract_html_title(result.content)
        text = extract_html_text(result.content)
    return ScrapedPage(title=title, text=text, final_url=result.final_url, error=None)
