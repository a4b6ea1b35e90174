"""
PII MCP Server - FastMCP server for roster-based PII masking.

Sits between the LMS browser session and the LLM. Tool results are
masked before the LLM sees them (real names, student IDs and emails become
M12345_name / M12345_CID / M12345_email tokens) and LLM-authored content is
unmasked before it is posted back to the LMS.
"""

import base64
import binascii
import sys
from pathlib import Path
from typing import Any, Optional, Tuple

from fastmcp import FastMCP
from edmcp_core import DatabaseManager, load_edmcp_config, get_env, get_env_int

from edmcp_pii.core import (
    DocumentError,
    PIIContext,
    RosterEntry,
    extract_participants,
    mask_file as mask_file_payload,
    unmask_file as unmask_file_payload,
    PIIMasker,
)
from edmcp_pii.core.context import DEFAULT_ROSTER_TTL_SECONDS

# Load environment variables from central .env file
load_edmcp_config()

SERVER_DIR = Path(__file__).parent
DB_PATH = Path(get_env("EDMCP_PII_DB_PATH", str(SERVER_DIR / "edmcp.db")))

mcp = FastMCP("PII Masking Server")

# Lazy initialization of database and PII context
_db_manager: Optional[DatabaseManager] = None
_context: Optional[PIIContext] = None


def get_db_manager() -> DatabaseManager:
    """Get or create the database manager."""
    global _db_manager
    if _db_manager is None:
        _db_manager = DatabaseManager(DB_PATH)
    return _db_manager


def get_context() -> PIIContext:
    """Get or create the PII context (roster cache + course context)."""
    global _context
    if _context is None:
        _context = PIIContext(
            db_manager=get_db_manager(),
            ttl_seconds=get_env_int("EDMCP_PII_ROSTER_TTL_SECONDS", DEFAULT_ROSTER_TTL_SECONDS),
            email_domain=get_env("EDMCP_PII_EMAIL_DOMAIN"),
        )
    return _context


def _roster_for(owner_id: str, course_id: Optional[int]) -> Tuple[Optional[int], Tuple[RosterEntry, ...]]:
    """Resolve the course (explicit or current) and return its roster."""
    context = get_context()
    resolved = context.resolve_course_id(owner_id, course_id)
    if resolved is None:
        return None, ()
    return resolved, context.get_roster(owner_id, resolved)


# ============================================================================
# Roster tools
# ============================================================================


@mcp.tool
def sync_roster(
    owner_id: str,
    course_id: int,
    participants: list[dict],
    course_name: Optional[str] = None,
) -> dict:
    """
    Store the participants of a course so their PII can be masked.

    Args:
        owner_id: The instructor the roster belongs to
        course_id: LMS course ID
        participants: Participant rows as returned by list_participants
                      (userId/id, name, email, role/roles, username/studentId)
        course_name: Optional course name to remember for list_courses

    Returns:
        Number of roster entries written
    """
    try:
        parsed = extract_participants("list_participants", {"participants": participants}) or []
        written = get_context().update_roster(owner_id, course_id, parsed)
        if course_name:
            get_db_manager().upsert_course_name(owner_id, course_id, course_name)

        print(f"[PII] Synced {written} roster entries for course {course_id}", file=sys.stderr)
        return {
            "status": "success",
            "course_id": course_id,
            "entries_synced": written,
            "entries_skipped": len(participants) - written,
        }
    except Exception as e:
        print(f"[PII] Error syncing roster for course {course_id}: {e}", file=sys.stderr)
        return {"status": "error", "message": str(e)}


@mcp.tool
def get_roster_summary(owner_id: str, course_id: int) -> dict:
    """
    Summarize a stored roster without revealing any PII.

    Args:
        owner_id: The instructor the roster belongs to
        course_id: LMS course ID

    Returns:
        Entry count, role breakdown and how many entries have a student ID / email
    """
    try:
        roster = get_context().get_roster(owner_id, course_id)
        roles: dict[str, int] = {}
        for entry in roster:
            roles[entry.role] = roles.get(entry.role, 0) + 1

        return {
            "status": "success",
            "course_id": course_id,
            "course_name": get_db_manager().get_course_name(owner_id, course_id),
            "total_entries": len(roster),
            "roles": roles,
            "with_student_id": sum(1 for entry in roster if entry.student_id),
            "with_email": sum(1 for entry in roster if entry.email),
        }
    except Exception as e:
        return {"status": "error", "message": str(e)}


@mcp.tool
def clear_roster(owner_id: str, course_id: int) -> dict:
    """
    Delete the stored roster of a course.

    Args:
        owner_id: The instructor the roster belongs to
        course_id: LMS course ID

    Returns:
        Number of entries removed
    """
    try:
        removed = get_context().clear_roster(owner_id, course_id)
        return {"status": "success", "course_id": course_id, "entries_removed": removed}
    except Exception as e:
        return {"status": "error", "message": str(e)}


@mcp.tool
def list_courses(owner_id: str) -> dict:
    """
    List the courses with a remembered name for an instructor.

    Args:
        owner_id: The instructor

    Returns:
        Courses and the current course context
    """
    try:
        courses = get_db_manager().get_user_courses(owner_id)
        return {
            "status": "success",
            "count": len(courses),
            "courses": courses,
            "current_course_id": get_context().get_course_context(owner_id),
        }
    except Exception as e:
        return {"status": "error", "message": str(e)}


@mcp.tool
def set_course_context(owner_id: str, course_id: int) -> dict:
    """
    Make a course current, so later calls without course_id use its roster.

    Args:
        owner_id: The instructor
        course_id: LMS course ID
    """
    get_context().set_course_context(owner_id, course_id)
    return {"status": "success", "course_id": course_id}


@mcp.tool
def clear_course_context(owner_id: str) -> dict:
    """
    Forget the current course of an instructor (e.g. on logout).

    Args:
        owner_id: The instructor
    """
    get_context().clear_course_context(owner_id)
    return {"status": "success", "message": f"Course context cleared for {owner_id}"}


# ============================================================================
# Text and data tools
# ============================================================================


@mcp.tool
def mask_text(owner_id: str, text: str, course_id: Optional[int] = None) -> dict:
    """
    Mask PII in text before it goes to the LLM.

    Args:
        owner_id: The instructor
        text: Text that may contain student names, IDs or emails
        course_id: Optional course; defaults to the current course context

    Returns:
        The masked text
    """
    try:
        resolved, roster = _roster_for(owner_id, course_id)
        return {
            "status": "success",
            "course_id": resolved,
            "text": PIIMasker(roster).mask(text),
        }
    except Exception as e:
        return {"status": "error", "message": str(e)}


@mcp.tool
def unmask_text(owner_id: str, text: str, course_id: Optional[int] = None) -> dict:
    """
    Restore PII in LLM-authored text before it is posted to the LMS.

    Args:
        owner_id: The instructor
        text: Text containing M12345_name / M12345_CID / M12345_email tokens
        course_id: Optional course; defaults to the current course context

    Returns:
        The unmasked text
    """
    try:
        resolved, roster = _roster_for(owner_id, course_id)
        return {
            "status": "success",
            "course_id": resolved,
            "text": PIIMasker(roster).unmask(text),
        }
    except Exception as e:
        return {"status": "error", "message": str(e)}


@mcp.tool
def mask_data(owner_id: str, data: Any, course_id: Optional[int] = None) -> dict:
    """
    Mask every string (dict keys included) in a JSON tool result.

    Args:
        owner_id: The instructor
        data: Any JSON value
        course_id: Optional course; defaults to the current course context
    """
    try:
        return {"status": "success", "data": get_context().mask_result(owner_id, data, course_id)}
    except Exception as e:
        return {"status": "error", "message": str(e)}


@mcp.tool
def unmask_data(owner_id: str, data: dict, course_id: Optional[int] = None) -> dict:
    """
    Unmask every string (dict keys included) in LLM-written tool arguments.

    Args:
        owner_id: The instructor
        data: Tool arguments as a JSON object
        course_id: Optional course; defaults to the current course context
    """
    try:
        return {"status": "success", "data": get_context().unmask_args(owner_id, data, course_id)}
    except Exception as e:
        return {"status": "error", "message": str(e)}


# ============================================================================
# File tools
# ============================================================================


def _redact_file_tool(owner_id, filename, content_base64, course_id, redact) -> dict:
    try:
        content = base64.b64decode(content_base64, validate=True)
    except (binascii.Error, ValueError) as e:
        return {"status": "error", "message": f"Invalid base64 content: {e}"}

    try:
        _, roster = _roster_for(owner_id, course_id)
        result = redact(content, filename, roster)
    except DocumentError as e:
        print(f"[PII] Failed to process {e.filename}: {e}", file=sys.stderr)
        return {"status": "error", "message": str(e)}
    except Exception as e:
        return {"status": "error", "message": str(e)}

    return {
        "status": "success",
        "filename": result.filename,
        "mime_type": result.mime_type,
        "content_base64": base64.b64encode(result.content).decode("ascii"),
    }


@mcp.tool
def mask_file(
    owner_id: str, filename: str, content_base64: str, course_id: Optional[int] = None
) -> dict:
    """
    Mask PII in a file (.txt, .csv, .tsv, .docx, .xlsx, .pptx).

    Args:
        owner_id: The instructor
        filename: Original filename; the extension selects the format
        content_base64: File content, base64-encoded
        course_id: Optional course; defaults to the current course context

    Returns:
        The masked file, base64-encoded, with its MIME type
    """
    return _redact_file_tool(owner_id, filename, content_base64, course_id, mask_file_payload)


@mcp.tool
def unmask_file(
    owner_id: str, filename: str, content_base64: str, course_id: Optional[int] = None
) -> dict:
    """
    Restore PII in an LLM-generated file before uploading it to the LMS.

    Args:
        owner_id: The instructor
        filename: Filename; the extension selects the format
        content_base64: File content, base64-encoded
        course_id: Optional course; defaults to the current course context

    Returns:
        The unmasked file, base64-encoded, with its MIME type
    """
    return _redact_file_tool(owner_id, filename, content_base64, course_id, unmask_file_payload)


if __name__ == "__main__":
    mcp.run()
