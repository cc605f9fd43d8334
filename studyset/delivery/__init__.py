"""
Study delivery: cards, scheduling and learning sessions.

Components:
- Card / ReviewStats / StudySet: card data with SM-2 state
- SM2Scheduler: Spaced repetition algorithm
- StateStore: SQLite persistence for sets and cards
- LearnSession: one study pass with requeueing and batch checkpoints
- SessionStore: JSON snapshot persistence for save/resume
"""

from .cards import Card, ReviewStats, StudySet
from .learn_session import LearnSession, SessionDelta, SessionPhase
from .scheduler import Grade, SM2Scheduler, compute_next_review, is_due, mastery_level
from .session_store import GradingPolicy, SessionSnapshot, SessionStore, StudyMode
from .state_store import StateStore

__all__ = [
    # Cards
    "Card",
    "ReviewStats",
    "StudySet",
    # Scheduling
    "Grade",
    "SM2Scheduler",
    "compute_next_review",
    "is_due",
    "mastery_level",
    # Sessions
    "LearnSession",
    "SessionDelta",
    "SessionPhase",
    "SessionSnapshot",
    "SessionStore",
    "StudyMode",
    "GradingPolicy",
    # Persistence
    "StateStore",
]
