"""
Thought to moment matching.

Asks the model which of the user's thoughts apply to a moment, then merges
in thoughts the user has previously marked helpful for similar moments.
Matching never raises: any model failure degrades to an empty match list.
"""

import asyncio
import json
import logging
import math
import time
from typing import Any, Dict, Iterable, List, Optional

from ..config import settings
from ..moments.learning import LearnedThought
from ..models import MatchSource
from .gemini import gemini_client, text_part
from .prompts import LEARNED_SECTION, MATCHING_PROMPT

log = logging.getLogger(__name__)

MAX_MATCHES = 5
MIN_RELEVANCE_SCORE = 0.5
MAX_REASON_LENGTH = 500


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


def format_thoughts_for_prompt(thoughts: List[Dict[str, Any]]) -> str:
    blocks = []
    for i, t in enumerate(thoughts, start=1):
        source = f" (Source: {t['source']})" if t.get("source") else ""
        blocks.append(f'[{i}] ID: {t["id"]}\nContent: "{t["content"]}"\nContext: {t["context_tag"]}{source}')
    return "\n\n".join(blocks)


def _format_learned(learned: List[LearnedThought]) -> str:
    return "\n".join(
        f'- ID: {lt.gem_id} "{lt.gem_content}" (helpful {lt.helpful_count} times)' for lt in learned
    )


def build_matching_prompt(description: str, thoughts: List[Dict[str, Any]],
                          learned: Optional[List[LearnedThought]] = None) -> str:
    learned_section = LEARNED_SECTION.format(learned_list=_format_learned(learned)) if learned else ""
    return MATCHING_PROMPT.format(
        moment_description=description,
        thoughts_list=format_thoughts_for_prompt(thoughts),
        learned_section=learned_section,
    )


def _to_score(value) -> Optional[float]:
    """A finite float, or None for anything the model should not have sent."""
    if isinstance(value, bool):
        return None
    try:
        score = float(value)
    except (TypeError, ValueError):
        return None
    return score if math.isfinite(score) else None


def validate_matches(parsed: Any, valid_ids: Iterable[str]) -> List[Dict[str, Any]]:
    """Keep well-formed matches for known thoughts, best first.

    A thought the model lists twice keeps its first usable entry.
    """
    if not isinstance(parsed, list):
        return []
    valid_ids = set(valid_ids)

    matches = []
    seen = set()
    for item in parsed:
        if not isinstance(item, dict):
            continue
        gem_id = str(item.get("gem_id") or "")
        score = _to_score(item.get("relevance_score"))
        reason = str(item.get("relevance_reason") or "")

        if gem_id not in valid_ids or gem_id in seen:
            continue
        if score is None or score < MIN_RELEVANCE_SCORE or score > 1:
            continue
        if not reason.strip():
            continue

        seen.add(gem_id)
        matches.append({
            "gem_id": gem_id,
            "relevance_score": round(score, 2),
            "relevance_reason": reason[:MAX_REASON_LENGTH],
        })

    matches.sort(key=lambda m: m["relevance_score"], reverse=True)
    return matches[:MAX_MATCHES]


def merge_learned(matches: List[Dict[str, Any]], learned: List[LearnedThought],
                  valid_ids: Iterable[str]) -> List[Dict[str, Any]]:
    """Tag model matches the user already vouched for and add the ones it missed."""
    by_id = {lt.gem_id: lt for lt in learned}
    merged = []
    for m in matches:
        source = MatchSource.BOTH if m["gem_id"] in by_id else MatchSource.AI
        merged.append({**m, "match_source": source.value})

    seen = {m["gem_id"] for m in merged}
    valid_ids = set(valid_ids)
    for lt in learned:
        if lt.gem_id in seen or lt.gem_id not in valid_ids:
            continue
        merged.append({
            "gem_id": lt.gem_id,
            "relevance_score": round(lt.confidence_score, 2),
            "relevance_reason": f"Helpful {lt.helpful_count} times in similar moments",
            "match_source": MatchSource.LEARNED.value,
        })

    merged.sort(key=lambda m: m["relevance_score"], reverse=True)
    return merged[:MAX_MATCHES]


async def match_thoughts_to_moment(description: str, thoughts: List[Dict[str, Any]],
                                   learned: Optional[List[LearnedThought]] = None) -> Dict[str, Any]:
    start = time.perf_counter()
    if not thoughts:
        return {"matches": [], "processing_time_ms": _elapsed_ms(start)}

    valid_ids = [t["id"] for t in thoughts]
    prompt = build_matching_prompt(description, thoughts, learned)
    try:
        text, _tokens = await asyncio.wait_for(
            gemini_client.generate_json([text_part(prompt)], max_output_tokens=1024,
                                        timeout=settings.matching_timeout_seconds),
            timeout=settings.matching_timeout_seconds,
        )
        parsed = json.loads(text)
    except asyncio.TimeoutError:
        log.warning("Matching timed out after %.1fs", settings.matching_timeout_seconds)
        return {"matches": [], "processing_time_ms": _elapsed_ms(start)}
    except json.JSONDecodeError:
        log.error("Failed to parse matching response")
        return {"matches": [], "processing_time_ms": _elapsed_ms(start)}
    except Exception:
        log.exception("Matching failed")
        return {"matches": [], "processing_time_ms": _elapsed_ms(start)}

    matches = validate_matches(parsed, valid_ids)
    if learned:
        matches = merge_learned(matches, learned, valid_ids)
    else:
        matches = [{**m, "match_source": MatchSource.AI.value} for m in matches]
    return {"matches": matches, "processing_time_ms": _elapsed_ms(start)}
