"""
Error taxonomy for the study core.

Scheduler and session errors are precondition failures raised to the caller.
Store and synthesis errors are raised by the collaborators and recovered
locally by the audio cache and speech service.
"""

from __future__ import annotations


class StudySetError(Exception):
    """Base class for all studyset errors."""


class InvalidGrade(StudySetError, ValueError):
    """Grade outside the Again/Hard/Good/Easy range."""

    def __init__(self, grade: object):
        self.grade = grade
        super().__init__(f"Invalid grade {grade!r}: expected one of 1, 2, 3, 4")


class InsufficientCards(StudySetError):
    """Fewer than two applicable cards for the requested study mode."""

    def __init__(self, found: int, required: int = 2):
        self.found = found
        self.required = required
        super().__init__(f"Need at least {required} cards. Found {found}.")


class SessionExpired(StudySetError):
    """Persisted session is older than the expiry window."""


class SessionStateError(StudySetError):
    """Operation is not valid in the session's current phase."""


class SetFull(StudySetError):
    """Study set already holds the maximum number of cards."""


class StoreUnavailable(StudySetError):
    """Underlying byte or key-value store cannot be reached."""


class SynthesisFailed(StudySetError):
    """TTS collaborator error or non-success response."""
