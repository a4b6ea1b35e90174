"""Core modules for roster-based PII masking and unmasking."""

from edmcp_pii.core.roster import (
    RosterEntry,
    RosterLookup,
    Participant,
    build_roster_lookup,
    participants_to_entries,
)
from edmcp_pii.core.patterns import generate_name_patterns
from edmcp_pii.core.masker import (
    PIIMasker,
    mask_pii,
    unmask_pii,
    mask_unknown_pii,
    contains_mask_tokens,
    extract_identity_ids,
)
from edmcp_pii.core.structured import mask_structured_data, unmask_structured_data
from edmcp_pii.core.documents import (
    DocumentError,
    DocumentRedactor,
    RedactedFile,
    redact_file,
    mask_file,
    unmask_file,
    generate_unmasked_csv,
    parse_and_unmask_csv,
)
from edmcp_pii.core.context import (
    PIIContext,
    extract_course_id,
    extract_participants,
    should_update_roster,
    should_unmask_args,
)

__all__ = [
    "RosterEntry",
    "RosterLookup",
    "Participant",
    "build_roster_lookup",
    "participants_to_entries",
    "generate_name_patterns",
    "PIIMasker",
    "mask_pii",
    "unmask_pii",
    "mask_unknown_pii",
    "contains_mask_tokens",
    "extract_identity_ids",
    "mask_structured_data",
    "unmask_structured_data",
    "DocumentError",
    "DocumentRedactor",
    "RedactedFile",
    "redact_file",
    "mask_file",
    "unmask_file",
    "generate_unmasked_csv",
    "parse_and_unmask_csv",
    "PIIContext",
    "extract_course_id",
    "extract_participants",
    "should_update_roster",
    "should_unmask_args",
]
