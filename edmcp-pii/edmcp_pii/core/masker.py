"""
Reversible PII masking for text sent to and received from an LLM.

Egress (mask): known roster PII becomes reversible tokens
    M12345_name  -> display name
    M12345_CID   -> student ID
    M12345_email -> email
and anything that still looks like PII gets a one-way partial mask
("Jac*** Smi***", "C***456", "jac**@example.edu").

Ingress (unmask): tokens are resolved against the same roster. One-way
masks never match a token pattern and stay as they are.

Masking runs as a fixed sequence of passes:
    1. roster emails      (an email local part often contains the student ID)
    2. roster names       (all surface forms, longest first across the roster)
    3. roster student IDs (may sit inside an email already replaced in pass 1)
    4. unknown PII        (titles + names, student-ID shapes, email shapes)
Reordering the passes lets a shorter value eat part of a longer one.
"""

import logging
from typing import Callable, Iterable, List, Optional, Sequence

import regex

from edmcp_pii.core.patterns import (
    BARE_MASK_TOKEN_PATTERN,
    EMAIL_PATTERN,
    LEGACY_MASK_TOKEN_PATTERN,
    MASK_TOKEN_PATTERN,
    STUDENT_ID_PATTERN,
    TITLE_NAME_PATTERN,
    compile_name_patterns,
    literal_pattern,
)
from edmcp_pii.core.roster import RosterEntry, build_roster_lookup

logger = logging.getLogger("edmcp_pii.masker")

NAME = "name"
STUDENT_ID = "CID"
EMAIL = "email"


def make_token(identity_id: int, kind: str) -> str:
    """Current token form, e.g. make_token(12345, "CID") -> "M12345_CID"."""
    return f"M{identity_id}_{kind}"


def token_value(entry: RosterEntry, kind: str) -> Optional[str]:
    """The roster value a token of this kind stands for, if on file."""
    if kind == NAME:
        return entry.display_name
    if kind == STUDENT_ID:
        return entry.student_id
    if kind == EMAIL:
        return entry.email
    return None


# ============================================================================
# One-way masks
# ============================================================================


def mask_name_one_way(name: str) -> str:
    """Jackson Smith -> Jac*** Smi***. Words of 3 chars or less are kept whole."""
    return " ".join(
        word + "***" if len(word) <= 3 else word[:3] + "***"
        for word in name.split()
    )


def mask_student_id_one_way(student_id: str) -> str:
    """C00123456 -> C***456"""
    return "C***" + student_id[-3:]


def mask_email_one_way(email: str) -> str:
    """jackson.smith@example.edu -> jac**@example.edu"""
    local, sep, domain = email.partition("@")
    if not sep:
        return email
    return f"{local[:3]}**@{domain}"


def _contains_token(text: str) -> bool:
    return bool(
        MASK_TOKEN_PATTERN.search(text) or LEGACY_MASK_TOKEN_PATTERN.search(text)
    )


def _sub_outside_tokens(pattern: "regex.Pattern", token: str, text: str) -> str:
    """Replace pattern matches with token, leaving existing tokens intact."""
    pieces = []
    last = 0
    for match in MASK_TOKEN_PATTERN.finditer(text):
        pieces.append(pattern.sub(lambda _m: token, text[last:match.start()]))
        pieces.append(match.group(0))
        last = match.end()
    pieces.append(pattern.sub(lambda _m: token, text[last:]))
    return "".join(pieces)


def mask_unknown_pii(text: Optional[str]) -> Optional[str]:
    """
    One-way masking of PII-shaped text that is not in any roster.

    Handles names after a title (Dr, Mr, Mrs, Ms, Prof, Professor),
    student-ID shaped strings and email addresses. Nothing produced here
    can be unmasked.
    """
    if not text:
        return text

    def _title(match: "regex.Match") -> str:
        title, gap, name = match.group(1), match.group(2), match.group(3)
        return f"{title}{gap}{mask_name_one_way(name)}"

    def _email(match: "regex.Match") -> str:
        email = match.group(0)
        if _contains_token(email):
            return email
        return mask_email_one_way(email)

    masked = TITLE_NAME_PATTERN.sub(_title, text)
    masked = STUDENT_ID_PATTERN.sub(lambda m: mask_student_id_one_way(m.group(0)), masked)
    masked = EMAIL_PATTERN.sub(_email, masked)
    return masked


# ============================================================================
# Masker
# ============================================================================


class PIIMasker:
    """
    Masks and unmasks text against one roster snapshot.

    Patterns are compiled once in __init__; the instance holds no other
    state, so one masker can serve a whole structured payload or be shared
    between threads.
    """

    def __init__(self, roster: Optional[Iterable[RosterEntry]] = None):
        self.roster: List[RosterEntry] = list(roster or [])
        self.lookup = build_roster_lookup(self.roster)

        self._email_patterns = [
            (literal_pattern(entry.email), make_token(entry.identity_id, EMAIL))
            for entry in self.roster
            if entry.email and entry.email.strip()
        ]
        self._name_patterns = [
            (pattern.compiled, make_token(pattern.entry.identity_id, NAME))
            for pattern in compile_name_patterns(self.roster)
        ]
        self._student_id_patterns = [
            (literal_pattern(entry.student_id), make_token(entry.identity_id, STUDENT_ID))
            for entry in self.roster
            if entry.student_id and entry.student_id.strip()
        ]

        self._passes: Sequence[Callable[[str], str]] = (
            self._mask_emails,
            self._mask_names,
            self._mask_student_ids,
            mask_unknown_pii,
        )

    # Egress ------------------------------------------------------------

    @staticmethod
    def _replace_all(text: str, patterns) -> str:
        for pattern, token in patterns:
            text = _sub_outside_tokens(pattern, token, text)
        return text

    def _mask_emails(self, text: str) -> str:
        return self._replace_all(text, self._email_patterns)

    def _mask_names(self, text: str) -> str:
        return self._replace_all(text, self._name_patterns)

    def _mask_student_ids(self, text: str) -> str:
        return self._replace_all(text, self._student_id_patterns)

    def mask(self, text: Optional[str]) -> Optional[str]:
        """Replace roster PII with tokens, then one-way mask the rest."""
        if not text:
            return text
        if not self.roster:
            return mask_unknown_pii(text)

        for step in self._passes:
            text = step(text)
        return text

    # Ingress -----------------------------------------------------------

    def _resolve(self, match: "regex.Match", kind: str) -> str:
        entry = self.lookup.by_identity.get(int(match.group(1)))
        if entry is None:
            return match.group(0)
        value = token_value(entry, kind)
        return value if value else match.group(0)

    def unmask(self, text: Optional[str]) -> Optional[str]:
        """
        Replace tokens with roster values.

        Tokens whose identity is not in the roster, or whose field is not on
        file for that person, are left untouched.
        """
        if not text or not self.roster:
            return text

        result = MASK_TOKEN_PATTERN.sub(lambda m: self._resolve(m, m.group(2)), text)
        result = LEGACY_MASK_TOKEN_PATTERN.sub(lambda m: self._resolve(m, m.group(2)), result)
        result = BARE_MASK_TOKEN_PATTERN.sub(lambda m: self._resolve(m, NAME), result)
        return result


def mask_pii(text: Optional[str], roster: Optional[Iterable[RosterEntry]]) -> Optional[str]:
    """Mask PII in text before it is sent to an LLM."""
    return PIIMasker(roster).mask(text)


def unmask_pii(text: Optional[str], roster: Optional[Iterable[RosterEntry]]) -> Optional[str]:
    """Restore PII in LLM-authored text before it is posted to the LMS."""
    return PIIMasker(roster).unmask(text)


def contains_mask_tokens(text: Optional[str]) -> bool:
    """True if text holds a token in any of the three encodings."""
    if not text:
        return False
    return _contains_token(text) or bool(BARE_MASK_TOKEN_PATTERN.search(text))


def extract_identity_ids(text: Optional[str]) -> List[int]:
    """Identity ids referenced by tokens in text, de-duplicated, first seen first."""
    if not text:
        return []
    found = []
    for pattern in (MASK_TOKEN_PATTERN, LEGACY_MASK_TOKEN_PATTERN, BARE_MASK_TOKEN_PATTERN):
        for match in pattern.finditer(text):
            found.append((match.start(), int(match.group(1))))
    found.sort()
    return list(dict.fromkeys(identity for _, identity in found))
