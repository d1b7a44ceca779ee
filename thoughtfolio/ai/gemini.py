import json
import logging
import re
from typing import Any, Dict, List, Optional, Tuple

import httpx

from ..config import settings
from ..errors import AIUnavailableError

log = logging.getLogger(__name__)

_FENCE = re.compile(r"^\s*```(?:json)?\s*(.*?)\s*```\s*$", re.DOTALL)


def text_part(text: str) -> Dict[str, Any]:
    return {"text": text}


def image_part(mime_type: str, data: str) -> Dict[str, Any]:
    return {"inline_data": {"mime_type": mime_type, "data": data}}


class GeminiClient:
    """Thin async client for the Gemini ``generateContent`` REST call."""

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None,
                 model: Optional[str] = None):
        self._api_key = api_key
        self._base_url = base_url
        self._model = model

    @property
    def api_key(self) -> str:
        return self._api_key if self._api_key is not None else settings.gemini_api_key

    @property
    def model(self) -> str:
        return self._model or settings.gemini_model

    @property
    def search_model(self) -> str:
        return self._model or settings.gemini_search_model

    @property
    def base_url(self) -> str:
        return (self._base_url or settings.gemini_base_url).rstrip("/")

    def available(self) -> bool:
        return bool(self.api_key)

    async def generate_json(self, parts: List[Dict[str, Any]], max_output_tokens: int = 1024,
                            timeout: Optional[float] = None) -> Tuple[str, int]:
        """Return the model's JSON text and the tokens it cost."""
        config = {"responseMimeType": "application/json", "maxOutputTokens": max_output_tokens}
        return await self._generate(self.model, parts, config, timeout=timeout)

    async def generate_grounded(self, parts: List[Dict[str, Any]], max_output_tokens: int = 2048,
                                timeout: Optional[float] = None) -> Tuple[str, int]:
        """Like ``generate_json`` but with Google Search grounding.

        Grounded calls cannot force a JSON response type, so the text may
        come back wrapped in a markdown fence; see ``strip_code_fence``.
        """
        config = {"maxOutputTokens": max_output_tokens}
        tools = [{"google_search": {}}]
        return await self._generate(self.search_model, parts, config, tools=tools, timeout=timeout)

    async def search_with_fallback(self, search_parts: List[Dict[str, Any]],
                                   fallback_parts: List[Dict[str, Any]], max_output_tokens: int = 2048,
                                   timeout: Optional[float] = None) -> Tuple[str, int, bool]:
        """Try a grounded search first and fall back to the plain model.

        The fallback runs when the grounded call fails or its text is not
        JSON. Returns ``(text, tokens, grounded)``.
        """
        if not self.available():
            raise AIUnavailableError("Gemini API key is not configured")
        try:
            text, tokens = await self.generate_grounded(search_parts, max_output_tokens, timeout)
            text = strip_code_fence(text)
            json.loads(text)
            return text, tokens, True
        except AIUnavailableError as e:
            log.warning("Grounded search failed, falling back: %s", e)
        except json.JSONDecodeError:
            log.warning("Grounded search returned no usable JSON, falling back")
        text, tokens = await self.generate_json(fallback_parts, max_output_tokens, timeout)
        return text, tokens, False

    async def _generate(self, model: str, parts: List[Dict[str, Any]], config: Dict[str, Any],
                        tools: Optional[List[Dict[str, Any]]] = None,
                        timeout: Optional[float] = None) -> Tuple[str, int]:
        if not self.available():
            raise AIUnavailableError("Gemini API key is not configured")

        payload = {"contents": [{"role": "user", "parts": parts}], "generationConfig": config}
        if tools:
            payload["tools"] = tools
        url = f"{self.base_url}/models/{model}:generateContent"
        try:
            async with httpx.AsyncClient(timeout=timeout or settings.extraction_timeout_seconds) as client:
                r = await client.post(url, params={"key": self.api_key}, json=payload)
                r.raise_for_status()
                data = r.json()
        except httpx.HTTPError as e:
            raise AIUnavailableError(f"Gemini request failed: {e}") from e

        try:
            text = "".join(p.get("text", "") for p in data["candidates"][0]["content"]["parts"])
        except (KeyError, IndexError, TypeError) as e:
            raise AIUnavailableError("Gemini returned no candidates") from e

        usage = data.get("usageMetadata") or {}
        tokens = int(usage.get("promptTokenCount", 0)) + int(usage.get("candidatesTokenCount", 0))
        log.debug("Gemini %s used %d tokens", model, tokens)
        return text, tokens


def strip_code_fence(text: str) -> str:
    """Drop a surrounding ```json fence if the model added one."""
    match = _FENCE.match(text or "")
    return (match.group(1) if match else text or "").strip()


gemini_client = GeminiClient()
