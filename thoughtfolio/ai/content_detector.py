"""Classify pasted capture content before deciding how to split it."""

import re
from typing import List
from urllib.parse import urlparse

URL_REGEX = re.compile(r"^(https?://)?([\da-z.-]+)\.([a-z.]{2,6})([/\w.-]*)/?$", re.IGNORECASE)
URL_EXTRACT_REGEX = re.compile(r"https?://\S+", re.IGNORECASE)

QUOTE_PATTERNS = [
    re.compile(r'^["“].*["”]$', re.DOTALL),
    re.compile(r"^['‘].*['’]$", re.DOTALL),
    re.compile(r"^>"),
    re.compile(r"—\s*[A-Z][a-z]+.*$"),
    re.compile(r"-\s*[A-Z][a-z]+.*$"),
]

ATTRIBUTION_PATTERNS = [
    re.compile(r"—\s*(.+)$"),
    re.compile(r"-\s*([A-Z][a-z]+.*)$"),
    re.compile(r"\(([^)]+)\)$"),
    re.compile(r"~\s*(.+)$"),
]

OPENING_QUOTES = ('"', "“", "'", "‘", "「", "«")
CLOSING_QUOTES = ('"', "”", "'", "’", "」", "»")

BULLET_PATTERNS = [
    re.compile(r"^\s*[-*•·]\s+(.+)$"),
    re.compile(r"^\s*\d+[.)]\s+(.+)$"),
    re.compile(r"^\s*[a-z][.)]\s+(.+)$", re.IGNORECASE),
    re.compile(r"^\s*\[\s*[x ]?\s*\]\s*(.+)$", re.IGNORECASE),
]

SHORT_TEXT_LIMIT = 200
REFLECTION_MIN_LENGTH = 50


def detect_content_type(content: str) -> str:
    """One of ``url``, ``mixed``, ``list``, ``short_text`` or ``long_text``."""
    trimmed = content.strip()

    if is_url(trimmed):
        return "url"
    if len(extract_urls(trimmed)) > 1:
        return "mixed"
    if is_bullet_list(trimmed):
        return "list"
    if len(trimmed) <= SHORT_TEXT_LIMIT:
        return "short_text"
    if has_quote_and_reflection(trimmed):
        return "mixed"
    return "long_text"


def is_url(text: str) -> bool:
    trimmed = text.strip()
    if not trimmed or any(c.isspace() for c in trimmed):
        return False
    if trimmed.startswith(("http://", "https://")):
        return bool(urlparse(trimmed).netloc)
    return bool(URL_REGEX.match(trimmed))


def is_quote_like(text: str) -> bool:
    trimmed = text.strip()
    if any(p.search(trimmed) for p in QUOTE_PATTERNS):
        return True
    if any(p.search(trimmed) for p in ATTRIBUTION_PATTERNS):
        return True
    return trimmed.startswith(OPENING_QUOTES) and trimmed.endswith(CLOSING_QUOTES)


def _lines(text: str) -> List[str]:
    return [line for line in text.split("\n") if line.strip()]


def is_bullet_list(text: str) -> bool:
    lines = _lines(text)
    if len(lines) < 2:
        return False
    bullets = sum(1 for line in lines if any(p.match(line) for p in BULLET_PATTERNS))
    return bullets >= len(lines) * 0.5


def paragraphs(text: str) -> List[str]:
    return [p.strip() for p in re.split(r"\n\n+", text) if p.strip()]


def has_quote_and_reflection(text: str) -> bool:
    paras = paragraphs(text)
    if len(paras) < 2:
        return False
    has_quote = any(is_quote_like(p) for p in paras)
    has_reflection = any(len(p) > REFLECTION_MIN_LENGTH for p in paras if not is_quote_like(p))
    return has_quote and has_reflection


def extract_urls(text: str) -> List[str]:
    return URL_EXTRACT_REGEX.findall(text)


def extract_bullet_points(text: str) -> List[str]:
    bullets = []
    for line in _lines(text):
        for p in BULLET_PATTERNS:
            m = p.match(line)
            if m:
                bullets.append(m.group(1).strip())
                break
    return bullets
