"""
SQLite State Store for studyset.

Provides portable persistence for:
- Study sets and their ordered cards
- SM-2 review state per card
- Multiple-choice mastery counters

This is the card collection provider the study core reads from; the core
never edits a set's card list except through this interface.

Database location: ~/.studyset/state.db
"""

from __future__ import annotations

import sqlite3
import threading
from datetime import datetime
from pathlib import Path

from loguru import logger

from studyset.errors import SetFull

from .cards import MAX_CARDS_PER_SET, Card, ReviewStats, StudySet, parse_utc, utc_now
from .scheduler import get_due_cards, is_due, mastery_level

# =============================================================================
# State Store
# =============================================================================


class StateStore:
    """
    SQLite-backed persistence for study sets.

    Handles:
    - Set and card CRUD (500 cards per set)
    - SM-2 stats per card (ease, interval, repetitions, due date)
    - Star flags and multiple-choice mastery counters
    """

    DEFAULT_DB_PATH = Path.home() / ".studyset" / "state.db"

    def __init__(self, db_path: Path | str | None = None):
        """
        Initialize the state store.

        Args:
            db_path: Custom database path (defaults to ~/.studyset/state.db)
        """
        self.db_path = Path(db_path) if db_path else self.DEFAULT_DB_PATH
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()
        self._init_schema()

        logger.info(f"StateStore initialized at {self.db_path}")

    @property
    def conn(self) -> sqlite3.Connection:
        """Get or create database connection."""
        if self._conn is None:
            self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")
        return self._conn

    def _init_schema(self) -> None:
        """Initialize database schema."""
        cursor = self.conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS study_set (
                set_id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)

        # Cards keep their SM-2 state inline; position preserves set order
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS card (
                card_id TEXT PRIMARY KEY,
                set_id TEXT NOT NULL,
                position INTEGER NOT NULL,
                term TEXT NOT NULL,
                definition TEXT NOT NULL,
                starred INTEGER DEFAULT 0,
                mastery_level INTEGER DEFAULT 0,
                ease REAL DEFAULT 2.5,
                interval_days INTEGER DEFAULT 1,
                repetitions INTEGER DEFAULT 0,
                due_at TEXT,
                last_reviewed_at TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                FOREIGN KEY (set_id) REFERENCES study_set(set_id) ON DELETE CASCADE
            )
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_card_set_position
            ON card(set_id, position)
        """)

        self.conn.commit()

    # =========================================================================
    # Row Mapping
    # =========================================================================

    @staticmethod
    def _dt(value: str | None) -> datetime | None:
        return parse_utc(value) if value else None

    def _row_to_card(self, row: sqlite3.Row) -> Card:
        return Card(
            id=row["card_id"],
            set_id=row["set_id"],
            term=row["term"],
            definition=row["definition"],
            starred=bool(row["starred"]),
            mastery_level=row["mastery_level"],
            stats=ReviewStats(
                ease=row["ease"],
                interval_days=row["interval_days"],
                due_at=self._dt(row["due_at"]),
                repetitions=row["repetitions"],
                last_reviewed_at=self._dt(row["last_reviewed_at"]),
            ),
            created_at=self._dt(row["created_at"]),
            updated_at=self._dt(row["updated_at"]),
        )

    def _row_to_set(self, row: sqlite3.Row) -> StudySet:
        return StudySet(
            id=row["set_id"],
            name=row["name"],
            created_at=parse_utc(row["created_at"]),
            updated_at=parse_utc(row["updated_at"]),
            card_count=row["card_count"],
        )

    def _touch_set(self, set_id: str, now: datetime) -> None:
        self.conn.execute(
            "UPDATE study_set SET updated_at = ? WHERE set_id = ?",
            (now.isoformat(), set_id),
        )

    # =========================================================================
    # Set Operations
    # =========================================================================

    def create_set(self, name: str, now: datetime | None = None) -> StudySet:
        """Create an empty study set."""
        study_set = StudySet.create(name, now)
        with self._lock:
            self.conn.execute(
                "INSERT INTO study_set (set_id, name, created_at, updated_at) VALUES (?, ?, ?, ?)",
                (
                    study_set.id,
                    study_set.name,
                    study_set.created_at.isoformat(),
                    study_set.updated_at.isoformat(),
                ),
            )
            self.conn.commit()
        logger.info(f"Created set {study_set.id} ({study_set.name!r})")
        return study_set

    def get_set(self, set_id: str) -> StudySet | None:
        with self._lock:
            row = self.conn.execute(
                """
                SELECT s.*, (SELECT COUNT(*) FROM card c WHERE c.set_id = s.set_id) AS card_count
                FROM study_set s WHERE s.set_id = ?
            """,
                (set_id,),
            ).fetchone()
        return self._row_to_set(row) if row else None

    def list_sets(self) -> list[StudySet]:
        with self._lock:
            rows = self.conn.execute("""
                SELECT s.*, (SELECT COUNT(*) FROM card c WHERE c.set_id = s.set_id) AS card_count
                FROM study_set s ORDER BY s.created_at ASC
            """).fetchall()
        return [self._row_to_set(row) for row in rows]

    def delete_set(self, set_id: str) -> bool:
        with self._lock:
            self.conn.execute("DELETE FROM card WHERE set_id = ?", (set_id,))
            cursor = self.conn.execute("DELETE FROM study_set WHERE set_id = ?", (set_id,))
            self.conn.commit()
        return cursor.rowcount > 0

    # =========================================================================
    # Card Operations
    # =========================================================================

    def add_card(
        self,
        set_id: str,
        term: str,
        definition: str,
        now: datetime | None = None,
    ) -> Card:
        """
        Append a new card to a set.

        Raises:
            KeyError: if the set does not exist
            SetFull: if the set already holds MAX_CARDS_PER_SET cards
        """
        now = now or utc_now()
        card = Card.create(set_id, term, definition, now)

        with self._lock:
            if self.get_set(set_id) is None:
                raise KeyError(f"Study set not found: {set_id}")

            row = self.conn.execute(
                "SELECT COUNT(*) AS cnt, COALESCE(MAX(position), -1) AS last FROM card WHERE set_id = ?",
                (set_id,),
            ).fetchone()
            if row["cnt"] >= MAX_CARDS_PER_SET:
                raise SetFull(f"Maximum {MAX_CARDS_PER_SET} cards per set")

            stats = card.stats
            self.conn.execute(
                """
                INSERT INTO card (
                    card_id, set_id, position, term, definition, starred, mastery_level,
                    ease, interval_days, repetitions, due_at, last_reviewed_at,
                    created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, 0, 0, ?, ?, ?, ?, NULL, ?, ?)
            """,
                (
                    card.id,
                    set_id,
                    row["last"] + 1,
                    card.term,
                    card.definition,
                    stats.ease,
                    stats.interval_days,
                    stats.repetitions,
                    stats.due_at.isoformat(),
                    now.isoformat(),
                    now.isoformat(),
                ),
            )
            self._touch_set(set_id, now)
            self.conn.commit()

        return card

    def get_card(self, set_id: str, card_id: str) -> Card | None:
        with self._lock:
            row = self.conn.execute(
                "SELECT * FROM card WHERE set_id = ? AND card_id = ?",
                (set_id, card_id),
            ).fetchone()
        return self._row_to_card(row) if row else None

    def list_cards(self, set_id: str) -> list[Card]:
        """All cards of a set in set order."""
        with self._lock:
            rows = self.conn.execute(
                "SELECT * FROM card WHERE set_id = ? ORDER BY position ASC",
                (set_id,),
            ).fetchall()
        return [self._row_to_card(row) for row in rows]

    def update_card_stats(
        self,
        set_id: str,
        card_id: str,
        stats: ReviewStats,
        now: datetime | None = None,
    ) -> Card | None:
        """
        Save new SM-2 stats for a card.

        Returns:
            The updated Card, or None if the card no longer exists
        """
        now = now or utc_now()
        with self._lock:
            cursor = self.conn.execute(
                """
                UPDATE card SET
                    ease = ?,
                    interval_days = ?,
                    repetitions = ?,
                    due_at = ?,
                    last_reviewed_at = ?,
                    updated_at = ?
                WHERE set_id = ? AND card_id = ?
            """,
                (
                    stats.ease,
                    stats.interval_days,
                    stats.repetitions,
                    stats.due_at.isoformat() if stats.due_at else None,
                    stats.last_reviewed_at.isoformat() if stats.last_reviewed_at else None,
                    now.isoformat(),
                    set_id,
                    card_id,
                ),
            )
            if cursor.rowcount == 0:
                self.conn.rollback()
                logger.warning(f"Stats update skipped, card {card_id} not in set {set_id}")
                return None
            self._touch_set(set_id, now)
            self.conn.commit()
        return self.get_card(set_id, card_id)

    def update_mastery_level(
        self,
        set_id: str,
        card_id: str,
        level: int,
        now: datetime | None = None,
    ) -> Card | None:
        """Set the multiple-choice mastery counter for a card."""
        card = self.get_card(set_id, card_id)
        if card is None:
            return None
        card = card.with_mastery_level(level, now)
        with self._lock:
            self.conn.execute(
                "UPDATE card SET mastery_level = ?, updated_at = ? WHERE card_id = ?",
                (card.mastery_level, card.updated_at.isoformat(), card_id),
            )
            self._touch_set(set_id, card.updated_at)
            self.conn.commit()
        return card

    def toggle_star(self, set_id: str, card_id: str, now: datetime | None = None) -> Card | None:
        card = self.get_card(set_id, card_id)
        if card is None:
            return None
        card = card.with_starred(not card.starred, now)
        with self._lock:
            self.conn.execute(
                "UPDATE card SET starred = ?, updated_at = ? WHERE card_id = ?",
                (int(card.starred), card.updated_at.isoformat(), card_id),
            )
            self._touch_set(set_id, card.updated_at)
            self.conn.commit()
        return card

    def delete_card(self, set_id: str, card_id: str) -> bool:
        with self._lock:
            cursor = self.conn.execute(
                "DELETE FROM card WHERE set_id = ? AND card_id = ?",
                (set_id, card_id),
            )
            if cursor.rowcount:
                self._touch_set(set_id, utc_now())
            self.conn.commit()
        return cursor.rowcount > 0

    # =========================================================================
    # Queries
    # =========================================================================

    def get_due_cards(self, set_id: str, now: datetime | None = None) -> list[Card]:
        """Cards with no due date or due_at <= now, in set order."""
        return get_due_cards(self.list_cards(set_id), now)

    def get_starred_cards(self, set_id: str) -> list[Card]:
        return [card for card in self.list_cards(set_id) if card.starred]

    def get_stats(self, set_id: str, now: datetime | None = None) -> dict:
        """
        Get summary counts for a set.

        Returns:
            Dictionary with total, due, starred and per-level counts
        """
        now = now or utc_now()
        cards = self.list_cards(set_id)
        levels = {level: 0 for level in range(6)}
        for card in cards:
            levels[mastery_level(card.stats)] += 1

        return {
            "total_cards": len(cards),
            "cards_due": sum(1 for card in cards if is_due(card, now)),
            "cards_starred": sum(1 for card in cards if card.starred),
            "mastery_levels": levels,
        }

    def close(self) -> None:
        """Close the database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None
