"""Page title/description lookup used to pre-fill the bookmark form."""

import logging
from typing import Dict, Optional

import httpx
from bs4 import BeautifulSoup

from ..models.capture import DEFAULT_USER_AGENT
from ..utils.url_utils import validate_bookmark_url

logger = logging.getLogger(__name__)


class MetadataError(Exception):
    """Page metadata lookup error."""

    pass


class MetadataTimeoutError(MetadataError):
    """The site took too long to respond."""

    pass


class MetadataFetchError(MetadataError):
    """The site could not be reached or answered with an error."""

    pass


def _meta_content(soup: BeautifulSoup, **attrs) -> Optional[str]:
    tag = soup.find("meta", attrs=attrs)
    if tag and tag.get("content"):
        content = tag["content"].strip()
        if content:
            return content
    return None


def extract_title(soup: BeautifulSoup) -> str:
    """og:title, then twitter:title, then <title>; "" when none is present."""
    title = _meta_content(soup, property="og:title") or _meta_content(soup, name="twitter:title")
    if title:
        return title

    if soup.title and soup.title.string:
        return soup.title.string.strip()

    return ""


def extract_description(soup: BeautifulSoup) -> str:
    """og:description, then twitter:description, then meta description."""
    return (
        _meta_content(soup, property="og:description")
        or _meta_content(soup, name="twitter:description")
        or _meta_content(soup, name="description")
        or ""
    )


class PageMetadataFetcher:
    """Fetches a page and extracts its title and description."""

    def __init__(self, timeout: int = 10, transport: Optional[httpx.AsyncBaseTransport] = None):
        """Initialize fetcher.

        Args:
            timeout: HTTP request timeout in seconds (default: 10)
            transport: Optional httpx transport (tests use MockTransport)
        """
        self.timeout = timeout
        self.transport = transport
        self.max_response_size = 5 * 1024 * 1024  # 5MB

    async def fetch(self, url: str) -> Dict[str, object]:
        """Fetch ``url`` and return its metadata.

        Returns:
            {"title": str, "description": str, "success": True}

        Raises:
            URLValidationError: If the URL is not acceptable
            MetadataTimeoutError: If the request times out
            MetadataFetchError: On connection errors or non-200 responses
        """
        url = validate_bookmark_url(url)
        logger.info(f"Fetching metadata for {url}")

        headers = {
            "User-Agent": DEFAULT_USER_AGENT,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.5",
        }

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                headers=headers,
                transport=self.transport,
            ) as client:
                response = await client.get(url)
        except httpx.TimeoutException as e:
            raise MetadataTimeoutError(
                "Request timeout. The website took too long to respond."
            ) from e
        except httpx.HTTPError as e:
            logger.warning(f"Could not connect to {url}: {e}")
            raise MetadataFetchError(
                "Could not connect to the website. Please check the URL."
            ) from e

        if response.status_code != 200:
            logger.warning(f"Non-200 status code {response.status_code} for {url}")
            raise MetadataFetchError(
                f"Failed to fetch URL. Status code: {response.status_code}"
            )

        if len(response.content) > self.max_response_size:
            raise MetadataFetchError(
                f"Response too large: {len(response.content)} bytes (max {self.max_response_size})"
            )

        soup = BeautifulSoup(response.text, "html.parser")
        title = extract_title(soup)
        description = extract_description(soup)

        logger.info(
            f"Metadata extracted for {url} (title: {bool(title)}, description: {bool(description)})"
        )
        return {"title": title, "description": description, "success": True}
