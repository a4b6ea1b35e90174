"""
Roster types and lookups for PII masking.

A roster is the list of enrolled people for one course, owned by one
instructor. The masking engine only ever reads it.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

import regex

logger = logging.getLogger("edmcp_pii.roster")

# Institutional student IDs: one letter followed by 7-8 digits (C00123456)
EMBEDDED_STUDENT_ID_PATTERN = regex.compile(r"\b(C\d{7,8})\b", regex.IGNORECASE)


@dataclass(frozen=True)
class RosterEntry:
    """One enrolled person, scoped to (owner_id, course_id)."""
    identity_id: int
    display_name: str
    student_id: Optional[str] = None
    email: Optional[str] = None
    role: str = "student"
    owner_id: str = ""
    course_id: int = 0

    @classmethod
    def from_row(cls, row: dict) -> "RosterEntry":
        """Builds an entry from a DatabaseManager roster row."""
        return cls(
            identity_id=int(row["identity_id"]),
            display_name=row["display_name"],
            student_id=row.get("student_id") or None,
            email=row.get("email") or None,
            role=row.get("role") or "student",
            owner_id=row.get("owner_id") or "",
            course_id=int(row.get("course_id") or 0),
        )

    def to_row(self) -> dict:
        return {
            "identity_id": self.identity_id,
            "display_name": self.display_name,
            "student_id": self.student_id,
            "email": self.email,
            "role": self.role,
        }


@dataclass
class RosterLookup:
    """Lookup tables over a roster, built once per masking call."""
    by_name: Dict[str, RosterEntry] = field(default_factory=dict)
    by_email: Dict[str, RosterEntry] = field(default_factory=dict)
    by_student_id: Dict[str, RosterEntry] = field(default_factory=dict)
    by_identity: Dict[int, RosterEntry] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.by_identity)


def build_roster_lookup(roster: Iterable[RosterEntry]) -> RosterLookup:
    """
    Index a roster by lower-cased name, lower-cased email, upper-cased
    student ID and identity id. Later entries overwrite earlier ones on
    key collisions.
    """
    lookup = RosterLookup()
    for entry in roster:
        lookup.by_name[entry.display_name.lower()] = entry
        if entry.email:
            lookup.by_email[entry.email.lower()] = entry
        if entry.student_id:
            lookup.by_student_id[entry.student_id.upper()] = entry
        lookup.by_identity[entry.identity_id] = entry
    return lookup


@dataclass
class Participant:
    """A participant row as scraped from the LMS participants page."""
    id: Optional[int]
    name: Optional[str]
    email: Optional[str] = None
    roles: List[str] = field(default_factory=list)
    student_id: Optional[str] = None


def participants_to_entries(
    participants: Iterable[Participant],
    owner_id: str = "",
    course_id: int = 0,
    email_domain: Optional[str] = None,
) -> List[RosterEntry]:
    """
    Normalize scraped participants into roster entries.

    Rows without an id or a name are skipped. The role defaults to
    "student". A student ID embedded in the display name is picked up
    when none was supplied, and an email is derived from the student ID
    when email_domain is given and no email was scraped.
    """
    entries: List[RosterEntry] = []
    skipped = 0

    for participant in participants:
        if not participant.id or not participant.name:
            skipped += 1
            continue

        role = participant.roles[0].lower() if participant.roles else "student"

        student_id = participant.student_id
        if not student_id:
            match = EMBEDDED_STUDENT_ID_PATTERN.search(participant.name)
            if match:
                student_id = match.group(1).upper()

        email = participant.email
        if not email and student_id and email_domain:
            email = f"{student_id.lower()}@{email_domain}"

        entries.append(
            RosterEntry(
                identity_id=int(participant.id),
                display_name=participant.name.strip(),
                student_id=student_id or None,
                email=email or None,
                role=role,
                owner_id=owner_id,
                course_id=course_id,
            )
        )

    if skipped:
        logger.warning("Skipped %d participant(s) with missing id or name", skipped)

    return entries
