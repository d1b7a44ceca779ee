"""
Tests for daily discovery sessions
"""

import json
from datetime import date
from unittest.mock import AsyncMock, patch

import pytest
from sqlmodel import select

from thoughtfolio.ai.gemini import gemini_client
from thoughtfolio.errors import AIUnavailableError
from thoughtfolio.models import Context, Discovery, DiscoverySessionType, DiscoveryUsage, Note, Thought
from thoughtfolio.services.contexts import ensure_default_contexts
from thoughtfolio.services.discovery import (
    get_context_weights,
    get_discovery_usage,
    increment_usage,
    parse_generated,
    source_hash,
)

from .conftest import USER_ID


def item(n, **overrides):
    data = {
        "thought_content": f"Takeaway number {n}",
        "source_title": f"Article {n}",
        "source_url": f"https://example.com/post-{n}",
        "source_type": "article",
        "article_summary": f"Summary {n}",
        "relevance_reason": "Matches your meetings context",
        "content_type": "trending",
        "suggested_context_slug": "meetings",
    }
    data.update(overrides)
    return data


def reply(items, grounded=True):
    return AsyncMock(return_value=(json.dumps({"discoveries": items}), 120, grounded))


def discover(client, payload, search):
    with patch.object(gemini_client, "search_with_fallback", search):
        return client.post("/api/discover", json=payload)


class TestParseGenerated:

    def test_normalises_items(self):
        [parsed] = parse_generated(json.dumps({"discoveries": [
            item(1, source_type="podcast", content_type="TRENDING"),
            {"thought_content": "No title"},
            "not an object",
        ]}), grounded=True)
        assert parsed["source_type"] == "article"
        assert parsed["content_type"] == "trending"

    def test_fallback_items_are_evergreen(self):
        [parsed] = parse_generated(json.dumps([item(1)]), grounded=False)
        assert parsed["content_type"] == "evergreen"

    def test_long_takeaway_is_truncated(self):
        [parsed] = parse_generated(json.dumps([item(1, thought_content="x" * 500)]), grounded=True)
        assert len(parsed["thought_content"]) == 300

    def test_source_hash_falls_back_to_title(self):
        assert source_hash("", "Deep Work") == source_hash("deep work ")
        assert source_hash("HTTPS://A.com/x", "t") == source_hash("https://a.com/x", "other")


class TestUsage:

    def test_fresh_user(self, client):
        response = client.get("/api/discover/usage")
        assert response.status_code == 200
        data = response.json()
        assert data["curated_used"] is False
        assert data["directed_remaining"] == 1
        assert data["needs_bootstrap"] is True

    def test_increment_is_cumulative(self, session):
        today = date(2024, 5, 1)
        increment_usage(session, USER_ID, DiscoverySessionType.DIRECTED, today)
        increment_usage(session, USER_ID, DiscoverySessionType.DIRECTED, today)
        increment_usage(session, USER_ID, DiscoverySessionType.CURATED, today)

        row = session.exec(select(DiscoveryUsage)).one()
        assert (row.curated_count, row.directed_count) == (1, 2)
        assert get_discovery_usage(session, USER_ID, today)["directed_remaining"] == 0

    def test_context_weights(self, session, make_thought):
        ensure_default_contexts(session, USER_ID)
        contexts = {c.slug: c for c in session.exec(select(Context)).all()}
        for _ in range(3):
            make_thought(context_id=contexts["meetings"].id)
        make_thought(context_id=contexts["focus"].id)

        weights = get_context_weights(session, USER_ID)
        assert [w["context_name"] for w in weights] == ["Meetings", "Focus"]
        assert weights[0]["weight"] == 0.75


class TestGenerate:

    def test_curated_session(self, client, session):
        response = discover(client, {"mode": "curated"}, reply([item(n) for n in range(3)]))
        assert response.status_code == 200
        data = response.json()
        assert data["session_type"] == "curated"
        assert data["grounded"] is True
        assert (data["remaining_curated"], data["remaining_directed"]) == (0, 1)
        assert len(data["discoveries"]) == 3
        assert data["discoveries"][0]["suggested_context_name"] == "Meetings"
        assert data["discoveries"][0]["status"] == "pending"
        assert len(session.exec(select(Discovery)).all()) == 3

    def test_one_session_per_day(self, client):
        discover(client, {"mode": "curated"}, reply([item(1)]))
        response = discover(client, {"mode": "curated"}, reply([item(2)]))
        assert response.status_code == 429
        assert response.json() == {
            "error": "You've used your curated discovery session for today. Try again tomorrow!"
        }

    def test_invalid_mode(self, client):
        response = discover(client, {"mode": "random"}, reply([]))
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid mode. Must be 'curated' or 'directed'"

    def test_directed_needs_query(self, client):
        response = discover(client, {"mode": "directed", "query": "   "}, reply([]))
        assert response.status_code == 400

    def test_directed_prompt_carries_query(self, client):
        search = reply([item(1)])
        response = discover(client, {"mode": "directed", "query": "giving feedback"}, search)
        assert response.status_code == 200
        assert response.json()["discoveries"][0]["query"] == "giving feedback"
        search_parts = search.call_args.args[0]
        assert "giving feedback" in search_parts[0]["text"]

    def test_duplicates_dropped_and_capped(self, client):
        items = [item(1), item(1, thought_content="Same link again")] + [item(n) for n in range(2, 10)]
        response = discover(client, {"mode": "curated"}, reply(items))
        titles = [d["source_title"] for d in response.json()["discoveries"]]
        assert titles == ["Article 1", "Article 2", "Article 3", "Article 4"]

    def test_skipped_sources_are_not_suggested_again(self, client):
        first = discover(client, {"mode": "curated"}, reply([item(1), item(2)])).json()
        skipped = first["discoveries"][0]
        assert client.post("/api/discover/skip", json={"discovery_id": skipped["id"]}).status_code == 200

        again = discover(client, {"mode": "directed", "query": "meetings"}, reply([item(1), item(2)])).json()
        assert [d["source_title"] for d in again["discoveries"]] == ["Article 2"]

    def test_ai_failure_keeps_the_session(self, client):
        failure = AsyncMock(side_effect=AIUnavailableError("Gemini request failed"))
        response = discover(client, {"mode": "curated"}, failure)
        assert response.status_code == 503
        assert response.json() == {"error": "Failed to generate discoveries. Please try again."}
        assert client.get("/api/discover/usage").json()["curated_used"] is False

    def test_unparseable_reply(self, client):
        search = AsyncMock(return_value=("not json", 5, False))
        assert discover(client, {"mode": "curated"}, search).status_code == 503

    def test_nothing_usable(self, client):
        response = discover(client, {"mode": "curated"}, reply([{"thought_content": "no title"}]))
        assert response.status_code == 404
        assert client.get("/api/discover/usage").json()["curated_used"] is False

    def test_requires_user(self, anon_client):
        assert anon_client.post("/api/discover", json={"mode": "curated"}).status_code == 401


@pytest.fixture
def pending(client):
    """One stored discovery for USER_ID"""
    data = discover(client, {"mode": "curated"}, reply([item(1)])).json()
    return data["discoveries"][0]


def context_id(session, slug):
    return session.exec(select(Context).where(Context.slug == slug)).one().id


class TestSave:

    def test_saves_as_thought(self, client, session, pending):
        response = client.post("/api/discover/save", json={
            "discovery_id": pending["id"],
            "thought_content": "Takeaway number 1",
            "context_id": context_id(session, "meetings"),
            "save_article_as_note": True,
        })
        assert response.status_code == 200
        data = response.json()
        assert data["thought"]["source"] == "Article 1"
        assert data["thought"]["source_url"] == "https://example.com/post-1"

        session.expire_all()
        note = session.get(Note, data["note_id"])
        assert note.content == "Summary 1\n\nhttps://example.com/post-1"
        discovery = session.get(Discovery, pending["id"])
        assert discovery.status == "saved"
        assert discovery.saved_gem_id == data["thought"]["id"]

    def test_saving_twice(self, client, session, pending):
        payload = {
            "discovery_id": pending["id"],
            "thought_content": "Takeaway number 1",
            "context_id": context_id(session, "meetings"),
        }
        client.post("/api/discover/save", json=payload)
        response = client.post("/api/discover/save", json=payload)
        assert response.status_code == 409
        assert len(session.exec(select(Thought)).all()) == 1

    @pytest.mark.parametrize("missing,message", [
        ("discovery_id", "Discovery ID is required"),
        ("context_id", "Context ID is required"),
    ])
    def test_required_fields(self, client, session, pending, missing, message):
        payload = {
            "discovery_id": pending["id"],
            "thought_content": "Takeaway number 1",
            "context_id": context_id(session, "meetings"),
        }
        del payload[missing]
        response = client.post("/api/discover/save", json=payload)
        assert (response.status_code, response.json()["error"]) == (400, message)

    def test_other_users_discovery(self, client, session, pending):
        response = client.post(
            "/api/discover/save",
            json={"discovery_id": pending["id"], "thought_content": "x", "context_id": "c"},
            headers={"X-User-Id": "user-2"},
        )
        assert response.status_code == 404


class TestSkipAndBookmark:

    def test_skip_twice(self, client, pending):
        client.post("/api/discover/skip", json={"discovery_id": pending["id"]})
        response = client.post("/api/discover/skip", json={"discovery_id": pending["id"]})
        assert response.status_code == 409
        assert response.json()["error"] == "This discovery has already been processed"

    def test_bookmark_round_trip(self, client, pending):
        response = client.post("/api/discover/bookmark", json={"discovery_id": pending["id"]})
        assert response.status_code == 200
        assert response.json()["discovery"]["saved_at"] is not None

        saved = client.get("/api/discover/saved").json()
        assert saved["count"] == 1
        assert saved["discoveries"][0]["id"] == pending["id"]

        response = client.request("DELETE", "/api/discover/bookmark", json={"discovery_id": pending["id"]})
        assert response.json()["message"] == "Discovery removed from saved list"
        assert client.get("/api/discover/saved").json() == {"discoveries": [], "count": 0}

    def test_bookmark_needs_id(self, client):
        assert client.post("/api/discover/bookmark", json={}).status_code == 400
