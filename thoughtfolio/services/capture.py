"""
Quick capture: turn pasted text or screenshots into thoughts, notes and
sources the user can pick from, then save the picked ones.
"""

import json
import logging
import re
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from sqlmodel import Session

from ..ai.content_detector import detect_content_type, extract_bullet_points, is_url
from ..ai.content_splitter import extract_source_attribution, split_content_rule_based
from ..ai.gemini import gemini_client, image_part, text_part
from ..ai.prompts import CAPTURE_ANALYSIS_PROMPT, DEFAULT_CONTEXTS, IMAGE_ANALYSIS_PROMPT
from ..ai.rate_limit import check_usage_limit, record_usage
from ..config import settings
from ..errors import AIUnavailableError, QuotaExceededError, ValidationError
from ..models import Note, Source
from ..models.base import new_id
from .thoughts import THOUGHT_MAX_LENGTH, create_thoughts

log = logging.getLogger(__name__)

SUPPORTED_IMAGE_TYPES = ("image/jpeg", "image/png", "image/gif", "image/webp")
ITEM_TYPES = ("thought", "note", "source")
AI_THOUGHT_LENGTH = 300
NOTE_MAX_LENGTH = 5000
NOTE_TITLE_LENGTH = 100
QUOTA_MESSAGE = "Daily AI extraction limit reached. Try again tomorrow."


def _suggestion(item_type: str, content: str, source: Optional[str] = None,
                source_url: Optional[str] = None) -> Dict[str, Any]:
    return {
        "id": new_id(),
        "type": item_type,
        "content": content,
        "source": source,
        "source_url": source_url,
        "selected": True,
    }


def extract_title_from_url(url: str) -> str:
    """Best human-readable title hidden in a URL path."""
    parsed = urlparse(url if "://" in url else f"https://{url}")
    segments = [s for s in parsed.path.split("/") if s]
    if not segments:
        return parsed.hostname or url

    best, best_score = segments[-1], 0
    for segment in segments:
        cleaned = re.sub(r"\.[^.]+$", "", segment)
        # Skip short id-like segments such as "p123" or "id-42"
        if len(cleaned) < 10 and re.match(r"^[a-z]{1,3}[-_]?[a-z0-9]+$", cleaned, re.IGNORECASE):
            continue
        score = len(cleaned) + cleaned.count("-") * 5
        if score > best_score:
            best, best_score = cleaned, score

    title = re.sub(r"[-_]", " ", re.sub(r"\.[^.]+$", "", best))
    return re.sub(r"\b\w", lambda m: m.group(0).upper(), title)


def extract_domain_from_url(url: str) -> str:
    host = urlparse(url if "://" in url else f"https://{url}").hostname or ""
    return re.sub(r"^www\.", "", host)


def validate_images(images: List[Dict[str, Any]]) -> List[Dict[str, str]]:
    validated = []
    for i, image in enumerate(images, start=1):
        if not isinstance(image, dict):
            raise ValidationError(f"Image {i}: Invalid image data")
        mime_type = image.get("mime_type") or image.get("mimeType") or ""
        data = image.get("data") or ""
        if mime_type not in SUPPORTED_IMAGE_TYPES:
            raise ValidationError(
                f'Image {i}: Unsupported format "{mime_type}". Please use JPEG, PNG, GIF, or WebP.'
            )
        # base64 is about a third larger than the bytes it encodes
        estimated = len(data) * 3 / 4
        if estimated > settings.max_image_bytes:
            size_mb = estimated / 1024 / 1024
            limit_mb = settings.max_image_bytes / 1024 / 1024
            raise ValidationError(f"Image {i}: Too large ({size_mb:.1f}MB). Maximum size is {limit_mb:g}MB.")
        validated.append({"mime_type": mime_type, "data": data})
    return validated


def _parse_items(text: str) -> List[Dict[str, Any]]:
    parsed = json.loads(text)
    items = parsed.get("items") if isinstance(parsed, dict) else None
    if not isinstance(items, list):
        return []
    suggestions = []
    for item in items:
        if not isinstance(item, dict):
            continue
        item_type = item.get("type") if item.get("type") in ("note", "source") else "thought"
        limit = NOTE_MAX_LENGTH if item_type == "note" else AI_THOUGHT_LENGTH
        content = str(item.get("content") or "").strip()[:limit]
        if content:
            suggestions.append(_suggestion(item_type, content, item.get("source"), item.get("source_url")))
    return suggestions


async def _extract_with_ai(session: Session, user_id: str, parts: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    usage = check_usage_limit(session, user_id)
    if not usage.can_extract:
        raise QuotaExceededError(QUOTA_MESSAGE)
    text, tokens = await gemini_client.generate_json(parts, max_output_tokens=2048)
    record_usage(session, user_id, tokens)
    if not text or not text.strip():
        raise AIUnavailableError("AI returned an empty response. Please try again.")
    return _parse_items(text)


def _rule_based_suggestions(content: str) -> List[Dict[str, Any]]:
    split = split_content_rule_based(content)
    suggestions = []
    for quote in split.quotes:
        attribution = extract_source_attribution(quote)
        suggestions.append(_suggestion("thought", attribution.quote[:THOUGHT_MAX_LENGTH],
                                       attribution.author or attribution.source))
    for reflection in split.reflections:
        suggestions.append(_suggestion("note", reflection[:NOTE_MAX_LENGTH]))
    return suggestions


async def analyze_capture(session: Session, user_id: str, content: Optional[str] = None,
                          images: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
    has_text = isinstance(content, str) and bool(content.strip())
    has_images = isinstance(images, list) and bool(images)
    if not has_text and not has_images:
        raise ValidationError("Content or images are required")

    if has_images:
        validated = validate_images(images)
        if not gemini_client.available():
            raise AIUnavailableError("Image analysis requires the AI service, which is not configured")
        parts = [text_part(IMAGE_ANALYSIS_PROMPT)]
        parts.extend(image_part(img["mime_type"], img["data"]) for img in validated)
        if has_text:
            parts.append(text_part(f"Additional context from user:\n{content.strip()}"))
        suggestions = await _extract_with_ai(session, user_id, parts)
        return {"success": True, "content_type": "mixed", "suggestions": suggestions}

    trimmed = content.strip()
    content_type = detect_content_type(trimmed)

    if content_type == "url" and is_url(trimmed):
        title = extract_title_from_url(trimmed)
        suggestions = [_suggestion("source", title or trimmed, extract_domain_from_url(trimmed), trimmed)]
    elif content_type == "list":
        suggestions = [_suggestion("thought", b[:THOUGHT_MAX_LENGTH]) for b in extract_bullet_points(trimmed)]
    elif content_type == "short_text":
        attribution = extract_source_attribution(trimmed)
        suggestions = [_suggestion("thought", attribution.quote[:THOUGHT_MAX_LENGTH],
                                   attribution.author or attribution.source)]
    else:
        prompt = CAPTURE_ANALYSIS_PROMPT.format(contexts_list=DEFAULT_CONTEXTS)
        try:
            suggestions = await _extract_with_ai(
                session, user_id, [text_part(prompt), text_part(f"Content to analyze:\n\n{trimmed}")]
            )
        except Exception as e:
            log.warning("AI capture analysis failed, using rule-based split: %s", e)
            suggestions = _rule_based_suggestions(trimmed)

    return {"success": True, "content_type": content_type, "suggestions": suggestions}


def save_capture(session: Session, user_id: str, items) -> Dict[str, Any]:
    if not isinstance(items, list) or not items:
        raise ValidationError("Items are required")
    chosen = [i for i in items if isinstance(i, dict) and i.get("selected", True)
              and i.get("type") in ITEM_TYPES and str(i.get("content") or "").strip()]

    sources = [
        Source(
            user_id=user_id,
            name=str(i["content"]).strip(),
            author=i.get("source") or None,
            url=i.get("source_url") or None,
            source_type="article" if i.get("source_url") else "other",
        )
        for i in chosen if i["type"] == "source"
    ]
    notes = [
        Note(
            user_id=user_id,
            title=str(i["content"]).strip()[:NOTE_TITLE_LENGTH],
            content=str(i["content"]).strip(),
        )
        for i in chosen if i["type"] == "note"
    ]
    thought_items = [
        {
            "content": str(i["content"]).strip()[:THOUGHT_MAX_LENGTH],
            "source": i.get("source"),
            "source_url": i.get("source_url"),
            "context_id": i.get("context_id"),
            "is_on_active_list": bool(i.get("add_to_active_list")),
        }
        for i in chosen if i["type"] == "thought"
    ]

    # Thoughts first: they carry the limits, and fail the whole save
    thoughts = create_thoughts(session, user_id, thought_items) if thought_items else []
    for row in sources + notes:
        session.add(row)
    session.commit()

    log.info("Capture saved %d thoughts, %d notes, %d sources", len(thoughts), len(notes), len(sources))
    return {
        "success": True,
        "created": {"thoughts": len(thoughts), "notes": len(notes), "sources": len(sources)},
    }
