from .calendar import CalendarConnection, CalendarEvent
from .context import Context
from .discovery import Discovery, DiscoverySessionType, DiscoverySkip, DiscoveryStatus, DiscoveryUsage
from .learning import MomentLearning, PatternType
from .library import AIUsage, Note, Source
from .moment import MatchSource, Moment, MomentSource, MomentStatus, MomentThought
from .thought import Checkin, CheckinResponse, CheckinType, Thought, ThoughtStatus

__all__ = [
    "AIUsage",
    "CalendarConnection",
    "CalendarEvent",
    "Checkin",
    "CheckinResponse",
    "CheckinType",
    "Context",
    "Discovery",
    "DiscoverySessionType",
    "DiscoverySkip",
    "DiscoveryStatus",
    "DiscoveryUsage",
    "MatchSource",
    "Moment",
    "MomentLearning",
    "MomentSource",
    "MomentStatus",
    "MomentThought",
    "Note",
    "PatternType",
    "Source",
    "Thought",
    "ThoughtStatus",
]
