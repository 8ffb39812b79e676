"""URL validation and parsing utilities."""

import re
from urllib.parse import urlparse

MAX_URL_LENGTH = 2048

# http(s) with a dotted host and a short TLD; path/query limited to URL-safe characters.
URL_PATTERN = re.compile(
    r"^https?://(www\.)?[-a-zA-Z0-9@:%._+~#=]{1,256}\.[a-zA-Z0-9()]{1,6}\b"
    r"([-a-zA-Z0-9()@:%_+.~#?&/=]*)$"
)


class URLValidationError(ValueError):
    """URL validation error."""

    pass


def validate_url_scheme(url: str) -> None:
    """Validate URL has allowed scheme (http/https only).

    Args:
        url: URL to validate

    Raises:
        URLValidationError: If URL scheme is not allowed
    """
    parsed = urlparse(url)

    if not parsed.scheme:
        raise URLValidationError("URL missing scheme (http:// or https://)")

    if parsed.scheme not in ["http", "https"]:
        raise URLValidationError(
            f"URL scheme '{parsed.scheme}' not allowed. Only http:// and https:// are permitted."
        )


def validate_bookmark_url(url: str) -> str:
    """Validate a URL before it is stored or handed to the browser.

    Args:
        url: URL to validate

    Returns:
        The URL with surrounding whitespace removed

    Raises:
        URLValidationError: If the URL is empty, malformed or too long
    """
    if not isinstance(url, str) or not url.strip():
        raise URLValidationError("URL is required")

    url = url.strip()

    if len(url) > MAX_URL_LENGTH:
        raise URLValidationError(f"URL is too long (max {MAX_URL_LENGTH} characters)")

    validate_url_scheme(url)

    if not URL_PATTERN.match(url):
        raise URLValidationError(f"URL is not valid: {url}")

    return url


def extract_domain_name(url: str) -> str:
    """Extract domain name from URL for use as fallback title.

    Example:
        "https://github.com/user/repo" -> "Github"
    """
    parsed = urlparse(url)
    domain = parsed.netloc

    if domain.startswith("www."):
        domain = domain[4:]

    parts = domain.split(".")
    if len(parts) > 1:
        domain_name = parts[0]
    else:
        domain_name = domain

    return domain_name.capitalize()
