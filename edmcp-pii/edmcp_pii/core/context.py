"""
Per-instructor PII context for MCP tool calls.

Tracks which course each instructor is working in and caches course
rosters so masking does not hit the database on every tool call.

Usage:
    1. When a tool returns participant data, call update_roster()
    2. Before returning a tool result to the LLM, call mask_result()
    3. Before executing tool args written by the LLM, call unmask_args()
"""

import logging
import sqlite3
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from edmcp_core import DatabaseManager, retry_with_backoff

from edmcp_pii.core.roster import Participant, RosterEntry, participants_to_entries
from edmcp_pii.core.structured import mask_structured_data, unmask_structured_data

logger = logging.getLogger("edmcp_pii.context")

DEFAULT_ROSTER_TTL_SECONDS = 5 * 60

ROSTER_SOURCE_TOOLS = (
    "list_participants",
    "get_enrolled_users",
    "analyze_forum",
    "analyze_feedback",
)

UNMASK_ARG_TOOLS = (
    "create_forum_post",
    "type_text",
    "set_editor_content",
    "create_assignment",
    "edit_assignment",
    "send_message",
    "bulk_send_message",
)


@dataclass(frozen=True)
class CachedRoster:
    roster: Tuple[RosterEntry, ...]
    fetched_at: float


class PIIContext:
    """
    Roster cache and current-course map for one server process.

    Cached rosters are immutable tuples, so a reader holding a snapshot is
    unaffected by a concurrent invalidate/refetch.
    """

    def __init__(
        self,
        db_manager: DatabaseManager,
        ttl_seconds: float = DEFAULT_ROSTER_TTL_SECONDS,
        email_domain: Optional[str] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.db_manager = db_manager
        self.ttl_seconds = ttl_seconds
        self.email_domain = email_domain
        self.clock = clock
        self._lock = threading.Lock()
        self._course_context: Dict[str, int] = {}
        self._roster_cache: Dict[Tuple[str, int], CachedRoster] = {}

    # ------------------------------------------------------------------
    # Course context
    # ------------------------------------------------------------------

    def set_course_context(self, owner_id: str, course_id: int) -> None:
        with self._lock:
            self._course_context[owner_id] = course_id

    def get_course_context(self, owner_id: str) -> Optional[int]:
        with self._lock:
            return self._course_context.get(owner_id)

    def clear_course_context(self, owner_id: str) -> None:
        with self._lock:
            self._course_context.pop(owner_id, None)

    def resolve_course_id(self, owner_id: str, course_id: Optional[int] = None) -> Optional[int]:
        """An explicit course id wins and becomes the new context."""
        if course_id is not None:
            self.set_course_context(owner_id, course_id)
            return course_id
        return self.get_course_context(owner_id)

    # ------------------------------------------------------------------
    # Roster cache
    # ------------------------------------------------------------------

    @retry_with_backoff(exceptions=sqlite3.OperationalError)
    def _fetch_roster(self, owner_id: str, course_id: int) -> Tuple[RosterEntry, ...]:
        rows = self.db_manager.get_roster(owner_id, course_id)
        return tuple(RosterEntry.from_row(row) for row in rows)

    def get_roster(self, owner_id: str, course_id: int) -> Tuple[RosterEntry, ...]:
        """Cached roster for (owner, course); refetched once older than the TTL."""
        key = (owner_id, course_id)
        now = self.clock()
        with self._lock:
            cached = self._roster_cache.get(key)
        if cached and now - cached.fetched_at < self.ttl_seconds:
            return cached.roster

        roster = self._fetch_roster(owner_id, course_id)
        with self._lock:
            self._roster_cache[key] = CachedRoster(roster=roster, fetched_at=now)
        logger.debug("Fetched roster for course %s (%d entries)", course_id, len(roster))
        return roster

    def invalidate(self, owner_id: str, course_id: int) -> None:
        with self._lock:
            self._roster_cache.pop((owner_id, course_id), None)

    def update_roster(
        self, owner_id: str, course_id: int, participants: List[Participant]
    ) -> int:
        """
        Upsert scraped participants, drop the cached roster and make the
        course current for this owner.

        Returns:
            Number of roster rows written.
        """
        entries = participants_to_entries(
            participants, owner_id=owner_id, course_id=course_id, email_domain=self.email_domain
        )
        written = self.db_manager.upsert_roster_entries(
            owner_id, course_id, [entry.to_row() for entry in entries]
        )
        self.invalidate(owner_id, course_id)
        self.set_course_context(owner_id, course_id)
        logger.info("Synced %d roster entries for course %s", written, course_id)
        return written

    def clear_roster(self, owner_id: str, course_id: int) -> int:
        removed = self.db_manager.clear_roster(owner_id, course_id)
        self.invalidate(owner_id, course_id)
        return removed

    # ------------------------------------------------------------------
    # Tool payloads
    # ------------------------------------------------------------------

    def mask_result(self, owner_id: str, result: Any, course_id: Optional[int] = None) -> Any:
        """Mask a tool result. Without a known course only one-way masking applies."""
        course_id = self.resolve_course_id(owner_id, course_id)
        if course_id is None:
            logger.info("mask_result: no course context, applying one-way masking only")
            return mask_structured_data(result, [])

        roster = self.get_roster(owner_id, course_id)
        logger.info("mask_result: course=%s roster size=%d", course_id, len(roster))
        return mask_structured_data(result, roster)

    def unmask_args(
        self, owner_id: str, args: Dict[str, Any], course_id: Optional[int] = None
    ) -> Dict[str, Any]:
        """Unmask tool arguments. Without a known course they pass through."""
        course_id = self.resolve_course_id(owner_id, course_id)
        if course_id is None:
            return args
        return unmask_structured_data(args, self.get_roster(owner_id, course_id))


def extract_course_id(args: Dict[str, Any]) -> Optional[int]:
    """The integer course_id argument of a tool call, if present."""
    course_id = args.get("course_id") if isinstance(args, dict) else None
    if isinstance(course_id, bool):
        return None
    return course_id if isinstance(course_id, int) else None


def should_update_roster(tool_name: str) -> bool:
    return tool_name in ROSTER_SOURCE_TOOLS


def should_unmask_args(tool_name: str) -> bool:
    return tool_name in UNMASK_ARG_TOOLS


def extract_participants(tool_name: str, result: Any) -> Optional[List[Participant]]:
    """
    Participant rows from a list_participants / get_enrolled_users result.

    Those results look like {"participants": [{"userId", "name", "email",
    "role", "username"}, ...]}; "username" carries the student ID.
    Returns None for other tools or unexpected shapes.
    """
    if not isinstance(result, dict):
        return None
    if tool_name not in ("list_participants", "get_enrolled_users"):
        return None

    rows = result.get("participants")
    if not isinstance(rows, list):
        return None

    participants = []
    for row in rows:
        if not isinstance(row, dict):
            continue
        if row.get("role"):
            roles = [row["role"]]
        else:
            roles = list(row.get("roles") or [])
        identity = row.get("userId", row.get("id"))
        participants.append(
            Participant(
                id=int(identity) if isinstance(identity, (int, str)) and str(identity).isdigit() else None,
                name=row.get("name"),
                email=row.get("email"),
                roles=roles,
                student_id=row.get("username") or row.get("studentId"),
            )
        )
    return participants
