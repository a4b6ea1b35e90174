"""
SQLite persistence for edmcp PII rosters.

Roster rows are scoped to (owner, course) and keyed by the LMS identity id.
Rows are returned as plain dicts; callers build their own types from them.
"""

import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Optional, Union

SCHEMA = """
CREATE TABLE IF NOT EXISTS pii_rosters (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    owner_id TEXT NOT NULL,
    course_id INTEGER NOT NULL,
    identity_id INTEGER NOT NULL,
    display_name TEXT NOT NULL,
    student_id TEXT,
    email TEXT,
    role TEXT DEFAULT 'student',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE (owner_id, course_id, identity_id)
);
CREATE INDEX IF NOT EXISTS roster_course_idx ON pii_rosters (owner_id, course_id);

CREATE TABLE IF NOT EXISTS pii_courses (
    owner_id TEXT NOT NULL,
    course_id INTEGER NOT NULL,
    course_name TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    PRIMARY KEY (owner_id, course_id)
);
"""

ROSTER_COLUMNS = (
    "owner_id, course_id, identity_id, display_name, student_id, email, role, "
    "created_at, updated_at"
)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class DatabaseManager:
    """Owns the SQLite connection and the roster/course tables."""

    def __init__(self, db_path: Union[str, Path]):
        self.db_path = Path(db_path)
        self._lock = threading.Lock()
        self.conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        with self.conn:
            self.conn.executescript(SCHEMA)

    def close(self) -> None:
        self.conn.close()

    # ------------------------------------------------------------------
    # Rosters
    # ------------------------------------------------------------------

    def upsert_roster_entries(
        self, owner_id: str, course_id: int, entries: Iterable[dict]
    ) -> int:
        """
        Insert or update roster rows for one course.

        Each entry needs identity_id and display_name; student_id, email
        and role are optional. Existing rows keep their created_at.

        Returns:
            Number of rows written.
        """
        now = _now()
        rows = [
            (
                owner_id,
                course_id,
                int(entry["identity_id"]),
                entry["display_name"],
                entry.get("student_id"),
                entry.get("email"),
                entry.get("role") or "student",
                now,
                now,
            )
            for entry in entries
        ]
        if not rows:
            return 0

        with self._lock, self.conn:
            self.conn.executemany(
                f"""
                INSERT INTO pii_rosters ({ROSTER_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (owner_id, course_id, identity_id) DO UPDATE SET
                    display_name = excluded.display_name,
                    student_id = excluded.student_id,
                    email = excluded.email,
                    role = excluded.role,
                    updated_at = excluded.updated_at
                """,
                rows,
            )
        return len(rows)

    def get_roster(self, owner_id: str, course_id: int) -> list[dict]:
        """Returns all roster rows for a course, ordered by insertion."""
        with self._lock:
            cursor = self.conn.execute(
                f"SELECT {ROSTER_COLUMNS} FROM pii_rosters "
                "WHERE owner_id = ? AND course_id = ? ORDER BY id",
                (owner_id, course_id),
            )
            return [dict(row) for row in cursor.fetchall()]

    def get_all_rosters(self, owner_id: str) -> list[dict]:
        with self._lock:
            cursor = self.conn.execute(
                f"SELECT {ROSTER_COLUMNS} FROM pii_rosters "
                "WHERE owner_id = ? ORDER BY course_id, id",
                (owner_id,),
            )
            return [dict(row) for row in cursor.fetchall()]

    def find_roster_entry(
        self, owner_id: str, course_id: int, identity_id: int
    ) -> Optional[dict]:
        with self._lock:
            row = self.conn.execute(
                f"SELECT {ROSTER_COLUMNS} FROM pii_rosters "
                "WHERE owner_id = ? AND course_id = ? AND identity_id = ?",
                (owner_id, course_id, identity_id),
            ).fetchone()
        return dict(row) if row else None

    def clear_roster(self, owner_id: str, course_id: int) -> int:
        """Deletes every roster row for a course. Returns the number removed."""
        with self._lock, self.conn:
            cursor = self.conn.execute(
                "DELETE FROM pii_rosters WHERE owner_id = ? AND course_id = ?",
                (owner_id, course_id),
            )
        return cursor.rowcount

    # ------------------------------------------------------------------
    # Courses
    # ------------------------------------------------------------------

    def upsert_course_name(self, owner_id: str, course_id: int, course_name: str) -> None:
        with self._lock, self.conn:
            self.conn.execute(
                """
                INSERT INTO pii_courses (owner_id, course_id, course_name, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT (owner_id, course_id) DO UPDATE SET
                    course_name = excluded.course_name,
                    updated_at = excluded.updated_at
                """,
                (owner_id, course_id, course_name, _now()),
            )

    def get_course_name(self, owner_id: str, course_id: int) -> Optional[str]:
        with self._lock:
            row = self.conn.execute(
                "SELECT course_name FROM pii_courses WHERE owner_id = ? AND course_id = ?",
                (owner_id, course_id),
            ).fetchone()
        return row["course_name"] if row else None

    def get_user_courses(self, owner_id: str) -> list[dict]:
        with self._lock:
            cursor = self.conn.execute(
                "SELECT course_id, course_name, updated_at FROM pii_courses "
                "WHERE owner_id = ? ORDER BY course_id",
                (owner_id,),
            )
            return [dict(row) for row in cursor.fetchall()]
