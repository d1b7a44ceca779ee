"""
Calendar title analysis.

Classifies an event title into a coarse event type and decides whether the
title is too generic to match thoughts against without asking the user for
more context first.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional


class EventType(str, Enum):
    ONE_ON_ONE = "1:1"
    TEAM_MEETING = "team_meeting"
    INTERVIEW = "interview"
    PRESENTATION = "presentation"
    REVIEW = "review"
    PLANNING = "planning"
    SOCIAL = "social"
    EXTERNAL = "external"
    UNKNOWN = "unknown"


def _compile(*patterns: str) -> List[re.Pattern]:
    return [re.compile(p, re.IGNORECASE) for p in patterns]


# Whole-title matches only
GENERIC_PATTERNS = _compile(
    r"^meeting$",
    r"^call$",
    r"^sync$",
    r"^check[- ]?in$",
    r"^catch[- ]?up$",
    r"^touch[- ]?base$",
    r"^chat$",
    r"^talk$",
    r"^discussion$",
    r"^quick\s+(call|chat|sync|meeting)$",
    r"^weekly\s*(sync|meeting|call)?$",
    r"^daily\s*(sync|standup|meeting)?$",
    r"^team\s*(meeting|sync|call)?$",
    r"^1[:\-]?1$",
    r"^one[- ]?on[- ]?one$",
    r"^1\s*on\s*1$",
    r"^standup$",
    r"^stand[- ]?up$",
    r"^review$",
    r"^feedback$",
    r"^update$",
    r"^status$",
    r"^debrief$",
)

# Checked in insertion order; first hit wins
EVENT_TYPE_PATTERNS: Dict[EventType, List[re.Pattern]] = {
    EventType.ONE_ON_ONE: _compile(r"1[:\-]?1", r"one[- ]?on[- ]?one", r"1\s*on\s*1"),
    EventType.TEAM_MEETING: _compile(
        r"team\s*(meeting|sync|call)", r"standup", r"stand[- ]?up", r"weekly\s*(sync|meeting)",
        r"daily\s*(sync|standup)", r"all[- ]?hands", r"staff\s*meeting",
    ),
    EventType.INTERVIEW: _compile(r"interview", r"candidate", r"hiring", r"screening"),
    EventType.PRESENTATION: _compile(
        r"presentation", r"present", r"demo", r"pitch", r"showcase", r"walkthrough",
    ),
    EventType.REVIEW: _compile(
        r"review", r"feedback", r"performance", r"retrospective", r"retro", r"postmortem",
        r"post[- ]?mortem",
    ),
    EventType.PLANNING: _compile(
        r"planning", r"roadmap", r"strategy", r"brainstorm", r"ideation", r"kickoff",
        r"kick[- ]?off", r"sprint",
    ),
    EventType.SOCIAL: _compile(
        r"happy\s*hour", r"lunch", r"coffee", r"social", r"celebration", r"party",
        r"team\s*building", r"offsite",
    ),
    EventType.EXTERNAL: [],
    EventType.UNKNOWN: [],
}

QUESTIONS_BY_EVENT_TYPE: Dict[EventType, List[str]] = {
    EventType.ONE_ON_ONE: [
        "What do you want to discuss or accomplish?",
        "Any challenges you're facing?",
        "Is this a regular check-in or something specific?",
    ],
    EventType.TEAM_MEETING: [
        "What topics will be discussed?",
        "Are there decisions to be made?",
        "What's your role in this meeting?",
    ],
    EventType.INTERVIEW: [
        "What role is this for?",
        "What aspects are you most focused on?",
        "Are you the interviewer or interviewee?",
    ],
    EventType.PRESENTATION: [
        "What's your main message?",
        "Who's the audience?",
        "What outcome are you hoping for?",
    ],
    EventType.REVIEW: [
        "What's being reviewed?",
        "Are you giving or receiving feedback?",
        "Any specific areas to focus on?",
    ],
    EventType.PLANNING: [
        "What are you planning?",
        "What decisions need to be made?",
        "What's the timeframe?",
    ],
    EventType.SOCIAL: [
        "Who will be there?",
        "Any conversation topics you want to remember?",
    ],
    EventType.EXTERNAL: [
        "Who are you meeting with?",
        "What's the purpose of this meeting?",
        "What do you want to achieve?",
    ],
    EventType.UNKNOWN: [
        "What's this meeting about?",
        "What do you want to achieve?",
    ],
}

CHIPS_BY_EVENT_TYPE: Dict[EventType, List[str]] = {
    EventType.ONE_ON_ONE: ["Career", "Feedback", "Project Update", "Personal", "Blockers"],
    EventType.TEAM_MEETING: ["Decision", "Brainstorm", "Status Update", "Planning", "Alignment"],
    EventType.INTERVIEW: ["Technical", "Behavioral", "Culture Fit", "Experience", "Questions"],
    EventType.PRESENTATION: ["Persuade", "Inform", "Train", "Inspire", "Report"],
    EventType.REVIEW: ["Performance", "Code", "Design", "Process", "Goals"],
    EventType.PLANNING: ["Quarterly", "Sprint", "Project", "Strategy", "Resource"],
    EventType.SOCIAL: ["Networking", "Team Bonding", "Celebration", "Casual"],
    EventType.EXTERNAL: ["Sales", "Partnership", "Vendor", "Client", "Networking"],
    EventType.UNKNOWN: ["Work", "Personal", "Learning", "Collaboration"],
}

FILLER_WORDS = frozenset({"a", "an", "the", "with", "for", "and", "or", "at", "to", "in", "on"})


@dataclass
class TitleAnalysis:
    is_generic: bool
    detected_event_type: EventType
    generic_reason: Optional[str] = None
    suggested_questions: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "is_generic": self.is_generic,
            "generic_reason": self.generic_reason,
            "suggested_questions": self.suggested_questions,
            "detected_event_type": self.detected_event_type.value,
            "chips": get_chips_for_event_type(self.detected_event_type) if self.is_generic else [],
        }


def detect_event_type(title: str, description: Optional[str] = None) -> EventType:
    combined = f"{title} {description or ''}".lower()
    for event_type, patterns in EVENT_TYPE_PATTERNS.items():
        if any(p.search(combined) for p in patterns):
            return event_type
    return EventType.UNKNOWN


def matches_generic_pattern(title: str) -> bool:
    normalized = title.strip()
    return any(p.search(normalized) for p in GENERIC_PATTERNS)


def count_meaningful_words(text: str) -> int:
    return sum(1 for w in text.lower().split() if w not in FILLER_WORDS)


def analyze_event_title(title: str, description: Optional[str] = None) -> TitleAnalysis:
    trimmed = title.strip()
    word_count = count_meaningful_words(trimmed)
    event_type = detect_event_type(trimmed, description)

    reason = None
    if word_count < 3:
        reason = "short"
    elif matches_generic_pattern(trimmed):
        reason = "common_pattern"
    elif word_count < 4 and len((description or "").strip()) < 10:
        reason = "no_description"

    questions = QUESTIONS_BY_EVENT_TYPE.get(event_type, QUESTIONS_BY_EVENT_TYPE[EventType.UNKNOWN])
    return TitleAnalysis(
        is_generic=reason is not None,
        detected_event_type=event_type,
        generic_reason=reason,
        suggested_questions=questions[:2] if reason else [],
    )


def get_chips_for_event_type(event_type) -> List[str]:
    try:
        event_type = EventType(event_type)
    except ValueError:
        event_type = EventType.UNKNOWN
    return CHIPS_BY_EVENT_TYPE[event_type]


def combine_context_for_matching(original_title: str, user_context: Optional[str] = None) -> str:
    if not user_context or not user_context.strip():
        return original_title
    return f"{original_title}: {user_context.strip()}"
