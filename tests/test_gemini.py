"""
Tests for the Gemini REST client
"""

import asyncio
import json
from unittest.mock import patch

import httpx
import pytest

from thoughtfolio.ai.gemini import GeminiClient, strip_code_fence, text_part
from thoughtfolio.errors import AIUnavailableError

REAL_ASYNC_CLIENT = httpx.AsyncClient


def transport_returning(handler):
    """Route every AsyncClient the module opens through ``handler``."""
    def factory(**kwargs):
        return REAL_ASYNC_CLIENT(transport=httpx.MockTransport(handler), **kwargs)
    return patch("thoughtfolio.ai.gemini.httpx.AsyncClient", factory)


def test_generate_json():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        return httpx.Response(200, json={
            "candidates": [{"content": {"parts": [{"text": '{"ok": '}, {"text": "true}"}]}}],
            "usageMetadata": {"promptTokenCount": 40, "candidatesTokenCount": 2},
        })

    client = GeminiClient(api_key="k", base_url="https://gemini.test/v1/", model="m")
    with transport_returning(handler):
        text, tokens = asyncio.run(client.generate_json([text_part("hi")]))

    assert (text, tokens) == ('{"ok": true}', 42)
    assert seen["url"] == "https://gemini.test/v1/models/m:generateContent?key=k"


def test_missing_key():
    with pytest.raises(AIUnavailableError, match="not configured"):
        asyncio.run(GeminiClient(api_key="").generate_json([text_part("hi")]))


@pytest.mark.parametrize("response", [
    httpx.Response(500, json={"error": "boom"}),
    httpx.Response(200, json={"candidates": []}),
])
def test_failures_become_unavailable(response):
    client = GeminiClient(api_key="k", base_url="https://gemini.test", model="m")
    with transport_returning(lambda request: response):
        with pytest.raises(AIUnavailableError):
            asyncio.run(client.generate_json([text_part("hi")]))


def gemini_reply(text):
    return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": text}]}}]})


def test_grounded_search_sends_the_search_tool():
    seen = []

    def handler(request):
        seen.append(json.loads(request.content))
        return gemini_reply('```json\n{"discoveries": []}\n```')

    client = GeminiClient(api_key="k", base_url="https://gemini.test", model="m")
    with transport_returning(handler):
        text, _, grounded = asyncio.run(client.search_with_fallback([text_part("a")], [text_part("b")]))

    assert (text, grounded) == ('{"discoveries": []}', True)
    assert seen[0]["tools"] == [{"google_search": {}}]
    assert "responseMimeType" not in seen[0]["generationConfig"]


@pytest.mark.parametrize("grounded_response", [
    httpx.Response(500, json={"error": "search unavailable"}),
    gemini_reply("Here are some great reads for you!"),
])
def test_search_falls_back_to_plain_model(grounded_response):
    def handler(request):
        body = json.loads(request.content)
        if "tools" in body:
            return grounded_response
        assert body["contents"][0]["parts"] == [{"text": "fallback"}]
        return gemini_reply('{"discoveries": [1]}')

    client = GeminiClient(api_key="k", base_url="https://gemini.test", model="m")
    with transport_returning(handler):
        text, _, grounded = asyncio.run(
            client.search_with_fallback([text_part("search")], [text_part("fallback")])
        )

    assert (text, grounded) == ('{"discoveries": [1]}', False)


def test_search_without_key():
    with pytest.raises(AIUnavailableError, match="not configured"):
        asyncio.run(GeminiClient(api_key="").search_with_fallback([text_part("a")], [text_part("b")]))


@pytest.mark.parametrize("text,expected", [
    ('```json\n{"a": 1}\n```', '{"a": 1}'),
    ('```\n[1, 2]\n```', "[1, 2]"),
    ('  {"a": 1}  ', '{"a": 1}'),
    ("", ""),
])
def test_strip_code_fence(text, expected):
    assert strip_code_fence(text) == expected
