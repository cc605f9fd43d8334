"""
Session state persistence for learning sessions.

Enables save/resume so users can interrupt and continue a study pass.
One session is resumable at a time; it is stored as a JSON file at
~/.studyset/learn_session.json and rewritten after every answer.
"""

from __future__ import annotations

import json
import os
import tempfile
import threading
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path

from loguru import logger

from .cards import parse_utc, utc_now

# Default session file
SESSION_FILE = Path.home() / ".studyset" / "learn_session.json"

SESSION_EXPIRY_DAYS = 7
SNAPSHOT_VERSION = 1


class StudyMode(str, Enum):
    """Which cards of a set a session draws from."""

    ALL = "all"
    STARRED = "starred"
    DUE = "due"


class GradingPolicy(str, Enum):
    """How answers feed back into card state."""

    SM2 = "sm2"  # Again/Hard/Good/Easy through the SM-2 scheduler
    MULTIPLE_CHOICE = "multiple_choice"  # correct/incorrect mastery counter


@dataclass
class SessionSnapshot:
    """Serializable learning session state."""

    set_id: str
    queue: list[str]  # card IDs not yet mastered, in question order
    mastered_ids: list[str] = field(default_factory=list)
    current_card_id: str | None = None
    questions_answered: int = 0
    correct_count: int = 0
    mode: StudyMode = StudyMode.ALL
    policy: GradingPolicy = GradingPolicy.SM2
    started_at: datetime = field(default_factory=utc_now)
    saved_at: datetime = field(default_factory=utc_now)
    version: int = SNAPSHOT_VERSION

    @property
    def is_complete(self) -> bool:
        return not self.queue

    def is_expired(self, now: datetime | None = None) -> bool:
        """Check if the snapshot is older than the expiry window."""
        now = now or utc_now()
        return now - self.saved_at > timedelta(days=SESSION_EXPIRY_DAYS)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        data = asdict(self)
        data["mode"] = self.mode.value
        data["policy"] = self.policy.value
        data["started_at"] = self.started_at.isoformat()
        data["saved_at"] = self.saved_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> SessionSnapshot:
        """Create from dictionary."""
        return cls(
            set_id=data["set_id"],
            queue=list(data["queue"]),
            mastered_ids=list(data.get("mastered_ids", [])),
            current_card_id=data.get("current_card_id"),
            questions_answered=int(data.get("questions_answered", 0)),
            correct_count=int(data.get("correct_count", 0)),
            mode=StudyMode(data.get("mode", StudyMode.ALL.value)),
            policy=GradingPolicy(data.get("policy", GradingPolicy.SM2.value)),
            started_at=parse_utc(data["started_at"]),
            saved_at=parse_utc(data["saved_at"]),
            version=int(data.get("version", SNAPSHOT_VERSION)),
        )


class SessionStore:
    """
    Manages session persistence.

    Writes go to a temporary file that is atomically swapped into place,
    so a concurrent load observes either the previous or the new snapshot.
    """

    def __init__(self, session_file: Path | str | None = None):
        self.session_file = Path(session_file) if session_file else SESSION_FILE
        self.session_file.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def save(self, snapshot: SessionSnapshot) -> bool:
        """Save a session snapshot to disk. Returns False on I/O failure."""
        payload = json.dumps(snapshot.to_dict(), indent=2)
        with self._lock:
            tmp_name = None
            try:
                fd, tmp_name = tempfile.mkstemp(
                    dir=self.session_file.parent,
                    prefix=".learn_session.",
                    suffix=".tmp",
                )
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(payload)
                os.replace(tmp_name, self.session_file)
            except OSError as e:
                logger.warning(f"Failed to save learn session: {e}")
                if tmp_name is not None:
                    Path(tmp_name).unlink(missing_ok=True)
                return False
        return True

    def load(self) -> SessionSnapshot | None:
        """Load the stored snapshot; corrupted files are removed."""
        with self._lock:
            if not self.session_file.exists():
                return None
            try:
                with open(self.session_file, "r", encoding="utf-8") as f:
                    data = json.load(f)
                return SessionSnapshot.from_dict(data)
            except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
                logger.warning(f"Discarding unreadable learn session: {e}")
                self.session_file.unlink(missing_ok=True)
                return None
            except OSError as e:
                logger.warning(f"Failed to load learn session: {e}")
                return None

    def load_active(self, now: datetime | None = None) -> SessionSnapshot | None:
        """Load the snapshot unless it has expired, in which case drop it."""
        snapshot = self.load()
        if snapshot is None:
            return None
        if snapshot.is_expired(now):
            logger.info(f"Learn session for set {snapshot.set_id} expired, discarding")
            self.clear()
            return None
        return snapshot

    def clear(self) -> None:
        """Delete the stored snapshot."""
        with self._lock:
            self.session_file.unlink(missing_ok=True)

    def exists(self) -> bool:
        return self.session_file.exists()
