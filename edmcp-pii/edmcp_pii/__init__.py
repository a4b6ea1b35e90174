"""edmcp-pii: Roster-based PII masking between an LMS session and an LLM."""

from edmcp_pii.core import (
    RosterEntry,
    Participant,
    PIIMasker,
    PIIContext,
    DocumentRedactor,
    DocumentError,
    mask_pii,
    unmask_pii,
    mask_structured_data,
    unmask_structured_data,
    mask_file,
    unmask_file,
)

__all__ = [
    "RosterEntry",
    "Participant",
    "PIIMasker",
    "PIIContext",
    "DocumentRedactor",
    "DocumentError",
    "mask_pii",
    "unmask_pii",
    "mask_structured_data",
    "unmask_structured_data",
    "mask_file",
    "unmask_file",
]
