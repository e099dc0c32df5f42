"""Fetch a web page and pull out title, description and body size."""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

import httpx
from bs4 import BeautifulSoup, Tag

from libs.core.settings import Settings, get_settings

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
MAX_TITLE_LEN = 200
# Bytes of a page read before the rest is ignored
MAX_BODY_BYTES = 2 * 1024 * 1024

_BOILERPLATE_TAGS = ["script", "style", "nav", "header", "footer", "aside", "form", "noscript"]
_NOISE_MARKERS = {
    "ad",
    "ads",
    "advertisement",
    "banner",
    "sidebar",
    "comment",
    "comments",
    "social",
    "share",
    "related",
}
_CONTENT_MARKERS = (
    "content",
    "post-body",
    "entry-content",
    "article-body",
    "post-content",
    "main-content",
    "article-text",
)
_WS = re.compile(r"\s+")


@dataclass
class PageMetadata:
    """What the enrichment pipeline needs to know about a page."""

    title: Optional[str]
    summary: Optional[str]
    body_length: int = 0


def provisional_title(url: str) -> str:
    """Hostname without a leading ``www.``, or the URL itself."""
    try:
        host = urlparse(url).hostname or ""
    except ValueError:
        host = ""
    if host.startswith("www."):
        host = host[4:]
    return host or url


def _class_and_id(tag: Tag) -> list[str]:
    values = list(tag.get("class") or [])
    if tag.get("id"):
        values.append(str(tag["id"]))
    return [v.lower() for v in values]


def _is_noise_block(tag: Tag) -> bool:
    for value in _class_and_id(tag):
        if set(re.split(r"[-_\s]+", value)) & _NOISE_MARKERS:
            return True
    return False


def _is_content_block(tag: Tag) -> bool:
    return any(m in v for v in _class_and_id(tag) for m in _CONTENT_MARKERS)


def _meta_content(soup: BeautifulSoup, **attrs: str) -> Optional[str]:
    node = soup.find("meta", attrs=attrs)
    if node is None:
        return None
    value = _WS.sub(" ", str(node.get("content") or "")).strip()
    return value or None


def _body_length(soup: BeautifulSoup) -> int:
    for tag in soup(_BOILERPLATE_TAGS):
        tag.decompose()
    for tag in soup.find_all(["div", "section"]):
        if not tag.decomposed and _is_noise_block(tag):
            tag.decompose()

    content = (
        soup.find("article")
        or soup.find("main")
        or soup.find(lambda t: t.name == "div" and _is_content_block(t))
        or soup.find("section")
        or soup.find("body")
        or soup
    )
    text = content.get_text(" ")
    # Count characters, not words: whitespace carries no content in CJK text
    return len(_WS.sub("", text))


def parse_page_metadata(html: str) -> PageMetadata:
    """Extract metadata from an HTML document; Open Graph tags win."""

    soup = BeautifulSoup(html, "html.parser")

    title = _meta_content(soup, property="og:title")
    if not title and soup.title and soup.title.string:
        title = _WS.sub(" ", soup.title.string).strip() or None
        if title and len(title) > MAX_TITLE_LEN:
            title = title[:MAX_TITLE_LEN] + "..."

    summary = _meta_content(soup, property="og:description") or _meta_content(
        soup, name="description"
    )
    return PageMetadata(title=title, summary=summary, body_length=_body_length(soup))


class PageMetadataFetcher:
    """HTTP collaborator returning :class:`PageMetadata` or ``None``.

    Every failure (timeout, HTTP error status, unreadable body) is logged
    and reported as ``None``; nothing is raised to the caller.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        timeout: float | None = None,
        user_agent: str = DEFAULT_USER_AGENT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = settings or get_settings()
        self.timeout = timeout if timeout is not None else settings.fetch_timeout
        self.headers = {
            "User-Agent": user_agent,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": "ja,en-US;q=0.9,en;q=0.8",
        }
        self._transport = transport

    async def _download(self, client: httpx.AsyncClient, url: str) -> str:
        async with client.stream("GET", url) as response:
            response.raise_for_status()
            body = bytearray()
            async for chunk in response.aiter_bytes():
                body.extend(chunk)
                if len(body) >= MAX_BODY_BYTES:
                    break
            encoding = response.charset_encoding or "utf-8"
        try:
            return bytes(body[:MAX_BODY_BYTES]).decode(encoding, errors="replace")
        except LookupError:
            return bytes(body[:MAX_BODY_BYTES]).decode("utf-8", errors="replace")

    async def fetch(self, url: str) -> Optional[PageMetadata]:
        # httpx timeouts apply per phase; wait_for bounds the whole download
        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                headers=self.headers,
                follow_redirects=True,
                transport=self._transport,
            ) as client:
                html = await asyncio.wait_for(self._download(client, url), self.timeout)
        except (asyncio.TimeoutError, httpx.TimeoutException):
            logger.warning("Timeout fetching %s", url, extra={"timeout": self.timeout})
            return None
        except httpx.HTTPError as exc:
            logger.warning("HTTP error fetching %s: %s", url, exc)
            return None

        try:
            return parse_page_metadata(html)
        except Exception:  # noqa: BLE001 - parser errors must not escape
            logger.exception("Failed to parse page %s", url)
            return None


__all__ = ["PageMetadata", "PageMetadataFetcher", "parse_page_metadata", "provisional_title"]
