"""
Tests for recurring-event detection
"""

from datetime import timedelta

from thoughtfolio.models import MomentThought
from thoughtfolio.models.base import utcnow
from thoughtfolio.moments.recurring import check_recurring, titles_match

from .conftest import OTHER_USER_ID, USER_ID


def mark_helpful(session, moment, thought, helpful=True):
    session.add(MomentThought(moment_id=moment.id, gem_id=thought.id, user_id=USER_ID,
                              relevance_score=0.9, was_helpful=helpful, was_reviewed=True))
    session.commit()


class TestTitlesMatch:

    def test_equal_and_containment(self):
        assert titles_match("Weekly Sync", "weekly sync")
        assert titles_match("Sync", "Weekly sync with design")
        assert titles_match("Weekly sync with design", "  SYNC ")

    def test_blank_never_matches(self):
        assert not titles_match("", "anything")
        assert not titles_match("Budget review", "Hiring sync")


class TestCheckRecurring:

    def test_exact_event_id_match(self, session, make_moment, make_thought):
        helpful = make_thought("Start with wins")
        unhelpful = make_thought("Bring snacks")
        previous = make_moment(description="Team sync", calendar_event_id="abc_20240101",
                               calendar_event_title="Team sync")
        mark_helpful(session, previous, helpful)
        mark_helpful(session, previous, unhelpful, helpful=False)

        match = check_recurring(session, USER_ID, event_id="abc_20240108", title="Team sync")

        assert match.is_recurring
        assert match.match_type == "exact_event_id"
        assert match.previous_moment_id == previous.id
        assert match.previous_helpful_thoughts == [helpful.id]

    def test_exact_match_picks_newest(self, session, make_moment):
        now = utcnow()
        make_moment(calendar_event_id="abc_1", created_at=now - timedelta(days=14))
        newest = make_moment(calendar_event_id="abc_2", created_at=now - timedelta(days=7))

        match = check_recurring(session, USER_ID, event_id="abc_3")
        assert match.previous_moment_id == newest.id

    def test_same_instance_is_not_recurring(self, session, make_moment):
        make_moment(calendar_event_id="abc_1")
        assert not check_recurring(session, USER_ID, event_id="abc_1").is_recurring

    def test_fuzzy_title_match(self, session, make_moment):
        previous = make_moment(description="Design review", calendar_event_id="zzz",
                               calendar_event_title="Design review")

        match = check_recurring(session, USER_ID, event_id="other_1", title="design review (moved)")

        assert match.is_recurring
        assert match.match_type == "fuzzy_pattern"
        assert match.previous_moment_id == previous.id
        assert match.previous_helpful_thoughts == []

    def test_other_users_moments_are_ignored(self, session, make_moment):
        make_moment(user_id=OTHER_USER_ID, calendar_event_id="abc_1", calendar_event_title="Team sync")
        match = check_recurring(session, USER_ID, event_id="abc_2", title="Team sync")
        assert not match.is_recurring

    def test_manual_moments_are_not_fuzzy_candidates(self, session, make_moment):
        make_moment(description="Team sync")
        assert not check_recurring(session, USER_ID, title="Team sync").is_recurring

    def test_nothing_to_match_on(self, session):
        match = check_recurring(session, USER_ID)
        assert match.to_dict() == {
            "is_recurring": False,
            "match_type": None,
            "previous_moment_id": None,
            "previous_helpful_thoughts": [],
        }
