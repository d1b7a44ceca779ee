import json
import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional

from .content_detector import SHORT_TEXT_LIMIT, is_quote_like, paragraphs
from .gemini import gemini_client, text_part
from .prompts import SPLIT_CONTENT_PROMPT

log = logging.getLogger(__name__)

_OPEN = "\"“'‘"
_CLOSE = "\"”'’"
_DASH = "—–-"

# (pattern, group names in order); first match wins
ATTRIBUTION_FORMS = [
    # "Quote" - Author, Source
    (re.compile(rf"^[{_OPEN}]([\s\S]+?)[{_CLOSE}]\s*[{_DASH}]\s*([^,]+)(?:,\s*(.+))?$"),
     ("quote", "author", "source")),
    # "Quote" (Author)
    (re.compile(rf"^[{_OPEN}]([\s\S]+?)[{_CLOSE}]\s*\(([^)]+)\)$"), ("quote", "author")),
    # "Quote" ~ Author
    (re.compile(rf"^[{_OPEN}]([\s\S]+?)[{_CLOSE}]\s*~\s*(.+)$"), ("quote", "author")),
    (re.compile(rf"^[{_OPEN}]([\s\S]+?)[{_CLOSE}]$"), ("quote",)),
    # > Quote - Author
    (re.compile(rf"^>\s*([\s\S]+?)\s*[{_DASH}]\s*(.+)$"), ("quote", "author")),
    # Quote - Author, Source
    (re.compile(rf"^([\s\S]+?)\s*[{_DASH}]\s*([^,]+)(?:,\s*(.+))?$"), ("quote", "author", "source")),
]

BOOK_FORMS = [
    re.compile(rf"^[{_OPEN}]?(.+?)[{_CLOSE}]?\s+by\s+(.+)$", re.IGNORECASE),
    re.compile(rf"^(.+?)\s*[{_DASH}]\s*[{_OPEN}]?(.+?)[{_CLOSE}]?$"),
    re.compile(rf"^[{_OPEN}]?(.+?)[{_CLOSE}]?\s*\(([^)]+)\)$"),
]
ISBN_PATTERN = re.compile(r"ISBN[:\s-]*(\d{10}|\d{13})", re.IGNORECASE)


@dataclass
class SourceAttribution:
    quote: str
    author: Optional[str] = None
    source: Optional[str] = None


@dataclass
class BookReference:
    is_book: bool
    title: Optional[str] = None
    author: Optional[str] = None


@dataclass
class SplitContent:
    quotes: List[str] = field(default_factory=list)
    reflections: List[str] = field(default_factory=list)


def extract_source_attribution(text: str) -> SourceAttribution:
    trimmed = text.strip()
    for pattern, names in ATTRIBUTION_FORMS:
        m = pattern.match(trimmed)
        if not m:
            continue
        parts = {name: (value.strip() if value else None) for name, value in zip(names, m.groups())}
        return SourceAttribution(
            quote=parts.get("quote") or trimmed,
            author=parts.get("author") or None,
            source=parts.get("source") or None,
        )
    return SourceAttribution(quote=trimmed)


def detect_book_reference(text: str) -> BookReference:
    trimmed = text.strip()
    for pattern in BOOK_FORMS:
        m = pattern.match(trimmed)
        if m:
            first, second = m.group(1).strip(), m.group(2).strip()
            # The longer half is usually the title
            if len(first) > len(second):
                return BookReference(is_book=True, title=first, author=second)
            return BookReference(is_book=True, title=second, author=first)
    if ISBN_PATTERN.search(trimmed):
        return BookReference(is_book=True)
    return BookReference(is_book=False)


def split_content_rule_based(content: str) -> SplitContent:
    result = SplitContent()
    for para in paragraphs(content):
        (result.quotes if is_quote_like(para) else result.reflections).append(para)

    if not result.quotes and not result.reflections:
        trimmed = content.strip()
        if trimmed:
            (result.quotes if len(trimmed) <= SHORT_TEXT_LIMIT else result.reflections).append(trimmed)
    return result


async def split_mixed_content(content: str) -> SplitContent:
    """Ask the model to separate quotes from reflections; rules if it can't."""
    try:
        text, _tokens = await gemini_client.generate_json(
            [text_part(SPLIT_CONTENT_PROMPT), text_part(f"Content to analyze:\n\n{content}")],
            max_output_tokens=2048,
        )
        parsed = json.loads(text)
        quotes = parsed.get("quotes")
        reflections = parsed.get("reflections")
        return SplitContent(
            quotes=[str(q) for q in quotes] if isinstance(quotes, list) else [],
            reflections=[str(r) for r in reflections] if isinstance(reflections, list) else [],
        )
    except Exception as e:
        log.warning("AI split failed, falling back to rule-based: %s", e)
        return split_content_rule_based(content)
