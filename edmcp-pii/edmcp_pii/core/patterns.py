"""
Regex patterns for PII tokens and name surface forms.
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional

import regex

from edmcp_pii.core.roster import RosterEntry

# Reversible tokens. Only the underscore form is emitted; the colon form
# and the bare form (LLMs sometimes drop the suffix) are still accepted.
MASK_TOKEN_PATTERN = regex.compile(r"M(\d+)_(name|CID|email)")
LEGACY_MASK_TOKEN_PATTERN = regex.compile(r"M(\d+):(name|CID|email)")
BARE_MASK_TOKEN_PATTERN = regex.compile(r"\bM(\d{3,6})\b(?![_:])")

# Unknown PII. The lookbehinds keep each heuristic off spans that an
# earlier heuristic already redacted (they all contain '*').
TITLE_NAME_PATTERN = regex.compile(
    r"\b(Dr|Mr|Mrs|Ms|Prof|Professor)(\.?\s+)"
    r"(\p{Lu}\p{L}+(?:['-]\p{L}+)*(?:[ \t]+\p{Lu}\p{L}+(?:['-]\p{L}+)*)*)"
)
STUDENT_ID_PATTERN = regex.compile(r"(?<![\w*])[A-Za-z]\d{7,8}(?!\w)")
EMAIL_PATTERN = regex.compile(
    r"(?<![\w.*@-])[\w.-]+@[\w-]+(?:\.[\w-]+)*\.\w+(?!\w)"
)


@dataclass(frozen=True)
class NameParts:
    first: str
    last: str
    middle: Optional[str] = None


def parse_name_parts(display_name: str) -> Optional[NameParts]:
    """Splits "First [Middle ...] Last"; None for single-word names."""
    parts = display_name.split()
    if len(parts) < 2:
        return None
    return NameParts(
        first=parts[0],
        last=parts[-1],
        middle=" ".join(parts[1:-1]) if len(parts) > 2 else None,
    )


def generate_name_patterns(entry: RosterEntry) -> List[str]:
    """
    Literal surface forms under which a roster name may appear.

    "Jackson Smith" -> ["Jackson Smith", "Smith, Jackson", "Smith Jackson"],
    longest first. A middle name adds "Last, First Middle".
    """
    display_name = entry.display_name.strip()
    if not display_name:
        return []

    patterns = [display_name]
    parts = parse_name_parts(display_name)
    if parts:
        patterns.append(f"{parts.last}, {parts.first}")
        if parts.middle:
            patterns.append(f"{parts.last}, {parts.first} {parts.middle}")
        patterns.append(f"{parts.last} {parts.first}")

    unique = list(dict.fromkeys(patterns))
    return sorted(unique, key=len, reverse=True)


@dataclass(frozen=True)
class NamePattern:
    literal: str
    entry: RosterEntry
    compiled: "regex.Pattern"


def compile_name_patterns(roster: Iterable[RosterEntry]) -> List[NamePattern]:
    """
    Every surface form of every roster entry, ordered longest-first across
    the whole roster. The sort is stable, so on equal length (including two
    people with the same display name) the earlier roster entry wins.
    """
    compiled = []
    for entry in roster:
        for literal in generate_name_patterns(entry):
            compiled.append(
                NamePattern(
                    literal=literal,
                    entry=entry,
                    compiled=regex.compile(regex.escape(literal), regex.IGNORECASE),
                )
            )
    return sorted(compiled, key=lambda p: len(p.literal), reverse=True)


def literal_pattern(value: str) -> "regex.Pattern":
    """Case-insensitive pattern matching value literally."""
    return regex.compile(regex.escape(value), regex.IGNORECASE)
