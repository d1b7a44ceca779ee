"""
Tests for the moments API
"""

import json
from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest
from sqlmodel import select

from thoughtfolio.ai.gemini import gemini_client
from thoughtfolio.ai.rate_limit import match_rate_limiter
from thoughtfolio.models import CalendarConnection, CalendarEvent, MomentLearning, MomentSource, MomentThought
from thoughtfolio.models.base import utcnow

from .conftest import USER_ID

GEMS = [
    {"id": "g1", "content": "Listen more than you speak", "context_tag": "meetings"},
    {"id": "g2", "content": "Name the feeling", "context_tag": "conflict"},
]


def model_reply(matches):
    return AsyncMock(return_value=(json.dumps(matches), 50))


class TestMatchEndpoint:

    def test_requires_auth(self, anon_client):
        response = anon_client.post("/api/moments/match", json={"moment_description": "x", "gems": GEMS})
        assert response.status_code == 401
        assert response.json() == {"error": "Not authenticated"}

    def test_description_required(self, client):
        response = client.post("/api/moments/match", json={"moment_description": "  ", "gems": GEMS})
        assert response.status_code == 400
        assert response.json()["error"] == "Moment description is required"

    def test_gems_required(self, client):
        response = client.post("/api/moments/match", json={"moment_description": "Standup", "gems": "g1"})
        assert response.status_code == 400
        assert response.json()["error"] == "Gems array is required"

    def test_no_valid_gems_skips_model(self, client):
        with patch.object(gemini_client, "generate_json", AsyncMock()) as call:
            response = client.post("/api/moments/match", json={
                "moment_description": "Standup",
                "gems": [{"id": 1, "content": "x", "context_tag": "meetings"}, {"id": "g1"}],
            })
        call.assert_not_called()
        assert response.json() == {"matches": [], "processing_time_ms": 0}

    def test_returns_matches(self, client):
        reply = model_reply([{"gem_id": "g2", "relevance_score": 0.9, "relevance_reason": "Tension ahead"}])
        with patch.object(gemini_client, "generate_json", reply):
            response = client.post("/api/moments/match", json={
                "moment_description": "Difficult feedback conversation",
                "gems": GEMS,
            })
        assert response.status_code == 200
        body = response.json()
        assert [m["gem_id"] for m in body["matches"]] == ["g2"]
        assert "processing_time_ms" in body

    def test_rate_limit(self, client):
        payload = {"moment_description": "Standup", "gems": []}
        for _ in range(match_rate_limiter.limit):
            assert client.post("/api/moments/match", json=payload).status_code == 200

        response = client.post("/api/moments/match", json=payload)
        assert response.status_code == 429
        assert response.json() == {"error": "Rate limit exceeded. Try again in an hour."}

    def test_rate_limit_applies_before_validation(self, client):
        for _ in range(match_rate_limiter.limit):
            client.post("/api/moments/match", json={})
        assert client.post("/api/moments/match", json={}).status_code == 429

    def test_unexpected_failure(self, client):
        with patch("thoughtfolio.routers.moments.match_thoughts_to_moment", AsyncMock(side_effect=RuntimeError)):
            response = client.post("/api/moments/match", json={"moment_description": "x", "gems": GEMS})
        assert response.status_code == 500
        assert response.json() == {"error": "Failed to match gems"}

    def test_non_finite_scores_are_dropped(self, client):
        reply = model_reply([
            {"gem_id": "g1", "relevance_score": "NaN", "relevance_reason": "x"},
            {"gem_id": "g2", "relevance_score": 0.8, "relevance_reason": "Tension ahead"},
        ])
        with patch.object(gemini_client, "generate_json", reply):
            response = client.post("/api/moments/match", json={"moment_description": "Standup", "gems": GEMS})
        assert response.status_code == 200
        assert [(m["gem_id"], m["relevance_score"]) for m in response.json()["matches"]] == [("g2", 0.8)]


class TestCreateMoment:

    def test_create_stores_matches(self, client, make_thought):
        thought = make_thought("Ask what success looks like", context_tag="meetings")
        reply = model_reply([{"gem_id": thought.id, "relevance_score": 0.77, "relevance_reason": "Sets goals"}])

        with patch.object(gemini_client, "generate_json", reply):
            response = client.post("/api/moments", json={"description": "Project kickoff with design"})

        assert response.status_code == 200
        body = response.json()
        assert body["source"] == "manual"
        assert body["detected_event_type"] == "planning"
        assert body["gems_matched_count"] == 1
        assert body["matched_thoughts"][0]["gem"]["content"] == "Ask what success looks like"
        assert body["matched_thoughts"][0]["match_source"] == "ai"

        listed = client.get("/api/moments").json()["moments"]
        assert [m["id"] for m in listed] == [body["id"]]
        assert client.get(f"/api/moments/{body['id']}").json()["matched_thoughts"][0]["gem_id"] == thought.id

    def test_repeated_match_is_stored_once(self, client, session, make_thought):
        thought = make_thought()
        reply = model_reply([
            {"gem_id": thought.id, "relevance_score": 0.8, "relevance_reason": "Listening"},
            {"gem_id": thought.id, "relevance_score": 0.9, "relevance_reason": "Listening again"},
        ])
        with patch.object(gemini_client, "generate_json", reply):
            body = client.post("/api/moments", json={"description": "Team retro"}).json()

        assert body["gems_matched_count"] == 1
        rows = session.exec(select(MomentThought).where(MomentThought.moment_id == body["id"])).all()
        assert len(rows) == 1

    def test_unknown_event_type(self, client):
        with patch.object(gemini_client, "generate_json", model_reply([])):
            response = client.post("/api/moments", json={"description": "Standup", "detected_event_type": "party"})
        assert response.status_code == 400
        assert response.json()["error"].startswith("detected_event_type must be one of 1:1, team_meeting")

        with patch.object(gemini_client, "generate_json", model_reply([])):
            body = client.post("/api/moments", json={"description": "Standup", "detected_event_type": "review"}).json()
        assert body["detected_event_type"] == "review"

    def test_description_validation(self, client):
        assert client.post("/api/moments", json={"description": ""}).status_code == 400
        response = client.post("/api/moments", json={"description": "x" * 501})
        assert response.status_code == 400
        assert response.json()["error"] == "Moment description must be 500 characters or less"

    def test_ai_failure_still_creates_moment(self, client, make_thought):
        make_thought()
        with patch.object(gemini_client, "generate_json", AsyncMock(side_effect=RuntimeError("boom"))):
            response = client.post("/api/moments", json={"description": "Standup"})
        assert response.status_code == 200
        assert response.json()["gems_matched_count"] == 0

    def test_other_users_moment_is_not_found(self, client, make_moment):
        moment = make_moment(user_id="someone-else")
        response = client.get(f"/api/moments/{moment.id}")
        assert response.status_code == 404
        assert response.json() == {"error": "Moment not found"}


class TestEnrichMoment:

    def test_enrich_rematches_with_context(self, client, session, make_moment, make_thought):
        first = make_thought("Bring data")
        second = make_thought("Name the feeling")
        moment = make_moment(description="Sync", calendar_event_title="Sync")
        session.add(MomentThought(moment_id=moment.id, gem_id=first.id, user_id=USER_ID, relevance_score=0.6))
        session.commit()

        reply = model_reply([{"gem_id": second.id, "relevance_score": 0.8, "relevance_reason": "Tense topic"}])
        with patch.object(gemini_client, "generate_json", reply):
            response = client.post(f"/api/moments/{moment.id}/enrich", json={"user_context": "layoff news"})

        assert response.status_code == 200
        body = response.json()
        assert body["user_context"] == "layoff news"
        assert [m["gem_id"] for m in body["matched_thoughts"]] == [second.id]
        prompt = reply.call_args.args[0][0]["text"]
        assert "Sync: layoff news" in prompt

    def test_context_required(self, client, make_moment):
        moment = make_moment()
        response = client.post(f"/api/moments/{moment.id}/enrich", json={"user_context": " "})
        assert response.status_code == 400


class TestAnalyzeTitle:

    def test_generic_title(self, client):
        response = client.post("/api/moments/analyze-title", json={"title": "Standup"})
        body = response.json()
        assert body["is_generic"] is True
        assert body["detected_event_type"] == "team_meeting"
        assert body["chips"]

    def test_title_required(self, client):
        assert client.post("/api/moments/analyze-title", json={}).status_code == 400


class TestLearnRoutes:

    def test_helpful_then_stats(self, client, make_moment, make_thought):
        thought = make_thought()
        moment = make_moment(description="career chat", detected_event_type="1:1")

        response = client.post("/api/moments/learn/helpful", json={"moment_id": moment.id, "gem_id": thought.id})
        assert response.json() == {"success": True, "patterns_recorded": 3}

        stats = client.get("/api/moments/learn/stats").json()
        assert stats["total_learnings"] == 3
        assert stats["by_pattern_type"]["keyword"] == 2

        response = client.post("/api/moments/learn/not-helpful", json={"moment_id": moment.id, "gem_id": thought.id})
        assert response.json() == {"success": True, "learnings_updated": 3}

    def test_ids_required(self, client):
        response = client.post("/api/moments/learn/helpful", json={"moment_id": "m"})
        assert response.status_code == 400

    def test_unknown_thought(self, client, make_moment):
        moment = make_moment()
        response = client.post("/api/moments/learn/helpful", json={"moment_id": moment.id, "gem_id": "missing"})
        assert response.status_code == 404
        assert response.json() == {"error": "Thought not found"}


class TestFromEvent:

    @pytest.fixture
    def event(self, session):
        conn = CalendarConnection(user_id=USER_ID, email="me@example.com")
        session.add(conn)
        session.commit()
        event = CalendarEvent(connection_id=conn.id, user_id=USER_ID, external_event_id="wk_20240108",
                              title="Weekly planning", start_time=utcnow() + timedelta(minutes=20))
        session.add(event)
        session.commit()
        session.refresh(event)
        return event

    def test_creates_once(self, client, event):
        with patch.object(gemini_client, "generate_json", model_reply([])):
            first = client.post("/api/moments/from-event", json={"event_cache_id": event.id}).json()
            second = client.post("/api/moments/from-event", json={"event_cache_id": event.id}).json()

        assert first["source"] == "calendar"
        assert first["calendar_event_title"] == "Weekly planning"
        assert first["already_exists"] is False
        assert second["already_exists"] is True
        assert second["id"] == first["id"]

    def test_carries_forward_recurring_helpful_thoughts(self, client, session, event, make_moment, make_thought):
        thought = make_thought("Start with the riskiest item")
        previous = make_moment(description="Weekly planning", source=MomentSource.CALENDAR,
                               calendar_event_id="wk_20240101", calendar_event_title="Weekly planning")
        session.add(MomentThought(moment_id=previous.id, gem_id=thought.id, user_id=USER_ID,
                                  relevance_score=0.7, was_helpful=True, was_reviewed=True))
        session.commit()

        with patch.object(gemini_client, "generate_json", model_reply([])):
            body = client.post("/api/moments/from-event", json={"event_cache_id": event.id}).json()

        assert body["recurring"]["match_type"] == "exact_event_id"
        assert body["gems_matched_count"] == 1
        carried = body["matched_thoughts"][0]
        assert carried["gem_id"] == thought.id
        assert carried["match_source"] == "learned"

    def test_missing_event(self, client):
        response = client.post("/api/moments/from-event", json={"event_cache_id": "nope"})
        assert response.status_code == 404


class TestRecurringRoute:

    def test_recurring(self, client, make_moment):
        previous = make_moment(calendar_event_id="abc_1", calendar_event_title="Team sync")
        body = client.get("/api/moments/recurring", params={"event_id": "abc_2"}).json()
        assert body["is_recurring"] is True
        assert body["previous_moment_id"] == previous.id


def test_learning_rows_belong_to_user(client, session, make_moment, make_thought):
    thought = make_thought()
    moment = make_moment(description="budget review", detected_event_type="review")
    client.post("/api/moments/learn/helpful", json={"moment_id": moment.id, "gem_id": thought.id})
    rows = session.exec(select(MomentLearning)).all()
    assert rows and all(r.user_id == USER_ID for r in rows)
