"""
Article extraction for pasted links.

The page is fetched with a hard timeout and a size cap, then the readable
text is pulled out with the standard library HTML parser: headings,
paragraphs, list items and quotes, preferring the ``<article>`` or
``<main>`` element when the page has one.
"""

import logging
from dataclasses import asdict, dataclass
from html.parser import HTMLParser
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import parse_qs, urlparse

import httpx

from ..config import settings
from ..errors import ExtractionError
from .capture import extract_domain_from_url, extract_title_from_url

log = logging.getLogger(__name__)

YOUTUBE_HOSTS = ("youtube.com", "www.youtube.com", "m.youtube.com", "youtu.be")
MIN_ARTICLE_LENGTH = 100
FALLBACK_MESSAGE = "Unable to extract content automatically. Please paste the content manually."

REQUEST_HEADERS = {
    "User-Agent": "Mozilla/5.0 (compatible; ThoughtFolioBot/1.0)",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
}

PAYWALL_MARKERS = (
    "paywall",
    "subscribe to read",
    "subscribe to continue",
    "already a subscriber",
    "sign in to continue reading",
    "become a member",
    "get unlimited access",
    "start your free trial",
    "premium content",
)

STATUS_MESSAGES = {
    404: "Page not found (404)",
    403: "Access denied (403) - page may be behind a paywall",
    429: "Too many requests - please try again later",
}


@dataclass
class ExtractedArticle:
    title: str
    text: str
    url: str
    byline: Optional[str] = None
    site_name: Optional[str] = None
    excerpt: Optional[str] = None
    type: str = "article"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def is_valid_url(url: str) -> bool:
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def detect_url_type(url: str) -> str:
    if not is_valid_url(url):
        return "unknown"
    host = (urlparse(url).hostname or "").lower()
    return "youtube" if host in YOUTUBE_HOSTS else "article"


def extract_youtube_video_id(url: str) -> Optional[str]:
    parsed = urlparse(url)
    host = (parsed.hostname or "").lower()
    if host == "youtu.be":
        return parsed.path.lstrip("/") or None
    if "youtube.com" in host:
        if parsed.path == "/watch":
            return (parse_qs(parsed.query).get("v") or [None])[0]
        for prefix in ("/embed/", "/shorts/"):
            if parsed.path.startswith(prefix):
                return parsed.path.split("/")[2] or None
    return None


def is_paywalled(html: str) -> bool:
    lowered = html.lower()
    return any(marker in lowered for marker in PAYWALL_MARKERS)


class _ArticleParser(HTMLParser):
    SKIPPED = {"script", "style", "noscript", "nav", "header", "footer", "aside", "form", "svg", "iframe"}
    BLOCKS = {"p", "h1", "h2", "h3", "h4", "h5", "h6", "li", "blockquote", "pre"}
    CONTAINERS = {"article", "main"}

    def __init__(self):
        super().__init__(convert_charrefs=True)
        self.title = ""
        self.meta: Dict[str, str] = {}
        self.blocks: List[Tuple[str, bool]] = []
        self._in_title = False
        self._skip_depth = 0
        self._container_depth = 0
        self._block: Optional[List[str]] = None
        self._block_in_container = False

    def handle_starttag(self, tag, attrs):
        if tag == "meta":
            attrs = dict(attrs)
            key = (attrs.get("property") or attrs.get("name") or "").lower()
            if key and attrs.get("content"):
                self.meta.setdefault(key, attrs["content"].strip())
        elif tag == "title":
            self._in_title = True
        elif tag in self.SKIPPED:
            self._skip_depth += 1
        elif tag in self.CONTAINERS:
            self._container_depth += 1
        elif tag in self.BLOCKS and not self._skip_depth:
            self._flush()
            self._block = []
            self._block_in_container = self._container_depth > 0
        elif tag == "br" and self._block is not None:
            self._block.append(" ")

    def handle_endtag(self, tag):
        if tag == "title":
            self._in_title = False
        elif tag in self.SKIPPED:
            self._skip_depth = max(0, self._skip_depth - 1)
        elif tag in self.CONTAINERS:
            self._flush()
            self._container_depth = max(0, self._container_depth - 1)
        elif tag in self.BLOCKS:
            self._flush()

    def handle_data(self, data):
        if self._in_title:
            self.title += data
        elif self._block is not None and not self._skip_depth:
            self._block.append(data)

    def close(self):
        super().close()
        self._flush()

    def _flush(self):
        if self._block is None:
            return
        text = " ".join("".join(self._block).split())
        if text:
            self.blocks.append((text, self._block_in_container))
        self._block = None

    def text(self) -> str:
        inside = [t for t, in_container in self.blocks if in_container]
        return "\n\n".join(inside or [t for t, _ in self.blocks])


def parse_article(html: str, url: str) -> ExtractedArticle:
    parser = _ArticleParser()
    parser.feed(html)
    parser.close()

    text = parser.text()
    if len(text) < MIN_ARTICLE_LENGTH:
        raise ExtractionError("Could not extract meaningful content from this page")

    meta = parser.meta
    return ExtractedArticle(
        title=meta.get("og:title") or " ".join(parser.title.split()) or extract_title_from_url(url),
        text=text,
        url=url,
        byline=meta.get("author") or meta.get("article:author"),
        site_name=meta.get("og:site_name") or extract_domain_from_url(url),
        excerpt=meta.get("description") or meta.get("og:description"),
    )


async def fetch_html(url: str, timeout: Optional[float] = None) -> str:
    timeout = timeout or settings.url_fetch_timeout_seconds
    try:
        async with httpx.AsyncClient(timeout=timeout, follow_redirects=True, headers=REQUEST_HEADERS) as client:
            async with client.stream("GET", url) as r:
                if r.status_code >= 400:
                    raise ExtractionError(STATUS_MESSAGES.get(r.status_code, f"HTTP error: {r.status_code}"))
                content_type = r.headers.get("content-type", "")
                if content_type and "html" not in content_type and not content_type.startswith("text/"):
                    raise ExtractionError("This link does not point to a web page")

                body = bytearray()
                async for chunk in r.aiter_bytes():
                    body.extend(chunk)
                    if len(body) > settings.url_fetch_max_bytes:
                        raise ExtractionError("Page is too large to extract")
                return body.decode(r.encoding or "utf-8", errors="replace")
    except httpx.TimeoutException as e:
        raise ExtractionError(f"Request timed out after {timeout:g} seconds") from e
    except httpx.HTTPError as e:
        log.warning("Fetching %s failed: %s", url, e)
        raise ExtractionError(f"Could not fetch the page: {e}") from e


async def extract_from_url(url: str, timeout: Optional[float] = None) -> ExtractedArticle:
    url_type = detect_url_type(url)
    if url_type == "unknown":
        raise ExtractionError("Invalid URL format")
    if url_type == "youtube":
        raise ExtractionError("YouTube links need a transcript service and cannot be extracted yet")

    html = await fetch_html(url, timeout)
    if is_paywalled(html):
        raise ExtractionError("Content appears to be behind a paywall")
    article = parse_article(html, url)
    log.info("Extracted %d characters from %s", len(article.text), url)
    return article
