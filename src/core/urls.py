"""URL normalization used as the identity key for pages everywhere."""
import re
from urllib.parse import parse_qsl, unquote, urlencode, urlsplit

# Query parameters that never change what a page is
IGNORED_QUERY_PARAMS = (
    re.compile(r"^utm_\w+$", re.IGNORECASE),
    re.compile(r"^ref$", re.IGNORECASE),
    re.compile(r"^fbclid$", re.IGNORECASE),
    re.compile(r"^gclid$", re.IGNORECASE),
)

DIRECTORY_INDEX = re.compile(r"/(index|default)\.(html?|php|aspx?)$", re.IGNORECASE)

DEFAULT_PORTS = {"http": 80, "https": 443}


class InvalidUrlError(ValueError):
    """Raised when a string cannot be normalized into a page identity."""

    def __init__(self, url: str, reason: str) -> None:
        self.url = url
        self.reason = reason
        super().__init__(f"Invalid URL '{url}': {reason}")


def _is_ignored_param(name: str) -> bool:
    return any(pattern.match(name) for pattern in IGNORED_QUERY_PARAMS)


def normalize_url(url: str) -> str:
    """
    Map a URL to its canonical identity string.

    Strips the protocol, a leading "www.", default ports, the fragment, tracking
    query parameters, directory index files and trailing slashes; lowercases the host
    and sorts the remaining query parameters.

    Examples:
        >>> normalize_url("https://www.Example.com/x/?utm_source=feed#top")
        'example.com/x'
        >>> normalize_url("example.com/a?b=2&a=1")
        'example.com/a?a=1&b=2'

    Raises:
        InvalidUrlError: If the URL is empty, uses a non-web scheme, or has no host.
    """
    if url is None or not url.strip():
        raise InvalidUrlError(str(url), "empty URL")

    raw = url.strip()
    if "://" not in raw:
        raw = f"http://{raw}"

    try:
        parts = urlsplit(raw)
        port = parts.port
    except ValueError as e:
        raise InvalidUrlError(url, str(e)) from e

    scheme = parts.scheme.lower()
    if scheme not in DEFAULT_PORTS:
        raise InvalidUrlError(url, f"unsupported scheme '{scheme}'")

    host = (parts.hostname or "").lower().rstrip(".")
    if not host:
        raise InvalidUrlError(url, "no host")
    if host.startswith("www."):
        host = host[4:]
    if port is not None and port != DEFAULT_PORTS[scheme]:
        host = f"{host}:{port}"

    path = re.sub(r"/{2,}", "/", unquote(parts.path))
    path = DIRECTORY_INDEX.sub("/", path)
    path = path.rstrip("/")

    params = [
        (name, value)
        for name, value in parse_qsl(parts.query, keep_blank_values=True)
        if not _is_ignored_param(name)
    ]
    query = urlencode(sorted(params)) if params else ""

    normalized = f"{host}{path}"
    if query:
        normalized = f"{normalized}?{query}"
    return normalized


def extract_domain(url: str) -> str:
    """Return the host part of a URL's normalized form, e.g. "example.com"."""
    normalized = normalize_url(url)
    return re.split(r"[/?]", normalized, maxsplit=1)[0]
