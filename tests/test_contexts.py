"""
Tests for contexts
"""

import pytest

from thoughtfolio.errors import ValidationError
from thoughtfolio.models import Thought
from thoughtfolio.models.context import DEFAULT_CONTEXT_COLORS
from thoughtfolio.services.contexts import create_context, generate_slug, get_context_by_slug

from .conftest import USER_ID


def test_generate_slug():
    assert generate_slug("  Deep Work & Focus!  ") == "deep-work-focus"
    assert generate_slug("1:1s") == "1-1s"


class TestListContexts:

    def test_defaults_are_seeded_once(self, client):
        first = client.get("/api/contexts").json()["contexts"]
        second = client.get("/api/contexts").json()["contexts"]

        assert [c["slug"] for c in first] == list(DEFAULT_CONTEXT_COLORS)
        assert len(second) == len(first)
        assert first[0]["name"] == "Meetings"
        assert all(c["is_default"] for c in first)

    def test_thought_counts_include_tag_only_thoughts(self, client, session, make_thought):
        client.get("/api/contexts")
        meetings = get_context_by_slug(session, USER_ID, "meetings")
        make_thought("linked", context_id=meetings.id, context_tag="meetings")
        make_thought("tag only", context_tag="meetings")
        make_thought("elsewhere", context_tag="health")

        counts = {c["slug"]: c["thought_count"] for c in client.get("/api/contexts").json()["contexts"]}
        assert counts["meetings"] == 2
        assert counts["health"] == 1
        assert counts["focus"] == 0


class TestCreateContext:

    def test_create(self, client):
        response = client.post("/api/contexts", json={"name": "Deep Work", "color": "#000000"})
        assert response.status_code == 201
        context = response.json()["context"]
        assert context["slug"] == "deep-work"
        assert context["thought_limit"] == 20
        assert context["is_default"] is False
        assert context["sort_order"] == len(DEFAULT_CONTEXT_COLORS)

    def test_duplicate_name_conflicts(self, client):
        client.post("/api/contexts", json={"name": "Deep Work"})
        response = client.post("/api/contexts", json={"name": "deep work"})
        assert response.status_code == 409
        assert response.json() == {"error": "A context with this name already exists"}

    def test_slug_collision_gets_suffix(self, session):
        first = create_context(session, USER_ID, {"name": "Deep Work"})
        second = create_context(session, USER_ID, {"name": "Deep-Work!"})
        assert (first.slug, second.slug) == ("deep-work", "deep-work-1")

    @pytest.mark.parametrize("data,message", [
        ({}, "Context name is required"),
        ({"name": "x" * 51}, "Context name must be 50 characters or less"),
        ({"name": "Ok", "thought_limit": 4}, "Thought limit must be between 5 and 100"),
        ({"name": "Ok", "thought_limit": 101}, "Thought limit must be between 5 and 100"),
        ({"name": "Ok", "thought_limit": "10"}, "Thought limit must be between 5 and 100"),
    ])
    def test_validation(self, session, data, message):
        with pytest.raises(ValidationError, match=message):
            create_context(session, USER_ID, data)


class TestUpdateContext:

    def test_rename_custom_regenerates_slug(self, client):
        context = client.post("/api/contexts", json={"name": "Deep Work"}).json()["context"]
        updated = client.put(f"/api/contexts/{context['id']}", json={"name": "Flow", "thought_limit": 30}).json()
        assert updated["context"]["slug"] == "flow"
        assert updated["context"]["thought_limit"] == 30

    def test_rename_default_keeps_slug(self, client, session):
        client.get("/api/contexts")
        health = get_context_by_slug(session, USER_ID, "health")
        updated = client.put(f"/api/contexts/{health.id}", json={"name": "Wellbeing"}).json()["context"]
        assert updated["name"] == "Wellbeing"
        assert updated["slug"] == "health"

    def test_rename_to_existing_name(self, client):
        client.get("/api/contexts")
        context = client.post("/api/contexts", json={"name": "Deep Work"}).json()["context"]
        response = client.put(f"/api/contexts/{context['id']}", json={"name": "Focus"})
        assert response.status_code == 409


class TestDeleteContext:

    def test_default_cannot_be_deleted(self, client, session):
        client.get("/api/contexts")
        meetings = get_context_by_slug(session, USER_ID, "meetings")
        response = client.delete(f"/api/contexts/{meetings.id}")
        assert response.status_code == 403
        assert response.json() == {"error": "Cannot delete default contexts"}

    def test_thoughts_move_to_other(self, client, session, make_thought):
        context = client.post("/api/contexts", json={"name": "Deep Work"}).json()["context"]
        thought = make_thought(context_id=context["id"], context_tag="deep-work")

        assert client.delete(f"/api/contexts/{context['id']}").json() == {"success": True}

        session.expire_all()
        moved = session.get(Thought, thought.id)
        other = get_context_by_slug(session, USER_ID, "other")
        assert moved.context_id == other.id
        assert moved.context_tag == "other"
        assert client.get(f"/api/contexts/{context['id']}").status_code == 404
