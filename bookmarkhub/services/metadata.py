from __future__ import annotations

import ipaddress
import logging
import socket
import time
import warnings
from dataclasses import asdict, dataclass
from urllib.parse import urljoin, urlparse

import httpx
from bs4 import BeautifulSoup, Tag, XMLParsedAsHTMLWarning


logger = logging.getLogger(__name__)

FETCH_TIMEOUT_SECONDS = 5.0
MAX_BODY_BYTES = 2_000_000

DEFAULT_HEADERS = {
    "User-Agent": "BookmarkHubBot/1.0 (+https://bookmarkhub.app)",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
}


@dataclass
class PageMetadata:
    title: str | None = None
    description: str | None = None
    favicon_url: str | None = None

    def as_dict(self) -> dict:
        return asdict(self)


def is_public_url(url: str) -> bool:
    """False when ``url`` points at a loopback, private or otherwise non-global address.

    Hosts that do not resolve are let through; the fetch itself fails for them.
    """
    host = urlparse(url).hostname
    if not host:
        return False
    try:
        infos = socket.getaddrinfo(host, None)
    except (socket.gaierror, UnicodeError):
        return True
    for info in infos:
        address = info[4][0].split("%", 1)[0]
        try:
            if not ipaddress.ip_address(address).is_global:
                return False
        except ValueError:
            return False
    return True


def _fetch_page(url: str) -> str:
    # per-operation httpx timeouts do not bound a server that trickles bytes
    deadline = time.monotonic() + FETCH_TIMEOUT_SECONDS

    def _check_deadline(request: httpx.Request) -> None:
        if time.monotonic() > deadline:
            raise httpx.ReadTimeout("Page fetch exceeded its deadline.", request=request)

    with httpx.Client(
        follow_redirects=True,
        timeout=FETCH_TIMEOUT_SECONDS,
        headers=DEFAULT_HEADERS,
        event_hooks={"request": [_check_deadline]},
    ) as client:
        with client.stream("GET", url) as response:
            response.raise_for_status()
            chunks = []
            total = 0
            for chunk in response.iter_bytes():
                _check_deadline(response.request)
                total += len(chunk)
                if total > MAX_BODY_BYTES:
                    break
                chunks.append(chunk)
            encoding = response.encoding or "utf-8"
            return b"".join(chunks).decode(encoding, errors="ignore")


def _meta_content(soup: BeautifulSoup, **attrs) -> str | None:
    tag = soup.find("meta", attrs=attrs)
    if isinstance(tag, Tag):
        content = tag.get("content")
        if isinstance(content, str) and content.strip():
            return content.strip()
    return None


def _link_href(soup: BeautifulSoup, rel: str) -> str | None:
    """Find a <link> whose rel attribute is exactly ``rel`` (case-insensitive)."""
    wanted = rel.split()
    for tag in soup.find_all("link", href=True):
        rel_value = tag.get("rel") or []
        if isinstance(rel_value, str):
            rel_value = rel_value.split()
        if [part.lower() for part in rel_value] == wanted:
            href = tag.get("href")
            if isinstance(href, str) and href.strip():
                return href.strip()
    return None


def default_favicon_url(url: str) -> str | None:
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        return None
    return f"{parsed.scheme}://{parsed.netloc}/favicon.ico"


def extract_metadata(html: str, url: str) -> PageMetadata:
    with warnings.catch_warnings():
        warnings.filterwarnings("ignore", category=XMLParsedAsHTMLWarning)
        soup = BeautifulSoup(html, "lxml")

    title = _meta_content(soup, property="og:title")
    if not title and soup.title and soup.title.string:
        title = soup.title.string.strip() or None

    description = _meta_content(soup, property="og:description") or _meta_content(
        soup, name="description"
    )

    icon = _link_href(soup, "icon") or _link_href(soup, "shortcut icon")
    favicon_url = urljoin(url, icon) if icon else default_favicon_url(url)

    return PageMetadata(title=title, description=description, favicon_url=favicon_url)


def fetch_metadata(url: str) -> PageMetadata:
    """Fetch ``url`` and pull title, description and favicon from its head.

    Never raises: network errors, timeouts, error statuses and unparseable
    bodies all produce an empty :class:`PageMetadata`.
    """
    try:
        html = _fetch_page(url)
        return extract_metadata(html, url)
    except Exception as exc:
        logger.info("Metadata fetch failed for %s: %s", url, exc)
        return PageMetadata()
