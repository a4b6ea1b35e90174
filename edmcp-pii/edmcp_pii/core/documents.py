"""
File masking/unmasking.

Plain text files (.txt, .csv, .tsv) are redacted as text. Office files
(.docx, .xlsx, .pptx) are zip archives: only their text-bearing XML parts
are rewritten, every other entry is copied through unchanged.
"""

import csv
import io
import logging
import zipfile
from dataclasses import dataclass, replace
from pathlib import PurePosixPath
from typing import Callable, Iterable, List, Optional, Tuple
from xml.sax.saxutils import escape

import regex

from edmcp_pii.core.masker import PIIMasker
from edmcp_pii.core.roster import RosterEntry

logger = logging.getLogger("edmcp_pii.documents")

MASK = "mask"
UNMASK = "unmask"

MIME_TYPES = {
    "csv": "text/csv",
    "tsv": "text/tab-separated-values",
    "txt": "text/plain",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "pptx": "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    "unknown": "application/octet-stream",
}

TEXT_TYPES = {"csv", "tsv", "txt"}

# Markup, with quoted attribute values kept whole so a ">" inside one does not
# end the tag
XML_TAG_PATTERN = regex.compile(r"""<(?:[^>"']|"[^"]*"|'[^']*')*>""")

# Archive parts that carry user-visible text, per office format
CONTENT_PARTS = {
    "docx": [
        regex.compile(r"^word/document\.xml$"),
        regex.compile(r"^word/header\d*\.xml$"),
        regex.compile(r"^word/footer\d*\.xml$"),
    ],
    "xlsx": [
        regex.compile(r"^xl/worksheets/sheet\d+\.xml$"),
        regex.compile(r"^xl/sharedStrings\.xml$"),
    ],
    "pptx": [
        regex.compile(r"^ppt/slides/slide\d+\.xml$"),
        regex.compile(r"^ppt/notesSlides/notesSlide\d+\.xml$"),
    ],
}


class DocumentError(Exception):
    """Raised when an office document cannot be read or repackaged."""

    def __init__(self, message: str, filename: str):
        super().__init__(message)
        self.filename = filename


@dataclass
class RedactedFile:
    content: bytes
    filename: str
    mime_type: str


def detect_file_type(filename: str) -> str:
    """Maps a filename to csv/tsv/txt/docx/xlsx/pptx, or "unknown"."""
    suffix = PurePosixPath(filename.replace("\\", "/")).suffix.lower().lstrip(".")
    return suffix if suffix in MIME_TYPES and suffix != "unknown" else "unknown"


def is_content_part(file_type: str, entry_name: str) -> bool:
    return any(pattern.match(entry_name) for pattern in CONTENT_PARTS.get(file_type, []))


def xml_escaped_roster(roster: Iterable[RosterEntry]) -> List[RosterEntry]:
    """Roster copy with &, < and > escaped, as values appear in XML text nodes."""
    return [
        replace(
            entry,
            display_name=escape(entry.display_name),
            student_id=escape(entry.student_id) if entry.student_id else None,
            email=escape(entry.email) if entry.email else None,
        )
        for entry in roster
    ]


def redact_xml_text(xml: str, redact: Callable[[str], str]) -> str:
    """Applies redact to the text between tags; tags and attributes are untouched."""
    pieces = []
    last = 0
    for match in XML_TAG_PATTERN.finditer(xml):
        if match.start() > last:
            pieces.append(redact(xml[last:match.start()]))
        pieces.append(match.group(0))
        last = match.end()
    if last < len(xml):
        pieces.append(redact(xml[last:]))
    return "".join(pieces)


class DocumentRedactor:
    """Applies a PIIMasker to file payloads."""

    def __init__(self, roster: Optional[Iterable[RosterEntry]] = None):
        self.roster = list(roster or [])
        self.text_masker = PIIMasker(self.roster)
        self._xml_masker: Optional[PIIMasker] = None

    @property
    def xml_masker(self) -> PIIMasker:
        if self._xml_masker is None:
            self._xml_masker = PIIMasker(xml_escaped_roster(self.roster))
        return self._xml_masker

    @staticmethod
    def _apply(masker: PIIMasker, text: str, direction: str) -> str:
        if direction == MASK:
            return masker.mask(text)
        if direction == UNMASK:
            return masker.unmask(text)
        raise ValueError(f"Unknown direction '{direction}'. Use '{MASK}' or '{UNMASK}'.")

    def redact_text_file(self, content: bytes, direction: str) -> bytes:
        """Redacts a UTF-8 text payload. Undecodable bytes come back unchanged."""
        try:
            text = content.decode("utf-8")
        except UnicodeDecodeError:
            logger.info("Payload is not UTF-8 text, returning it unchanged")
            return content
        return self._apply(self.text_masker, text, direction).encode("utf-8")

    def redact_office_document(
        self, content: bytes, file_type: str, direction: str, filename: str = ""
    ) -> bytes:
        """
        Rewrites the text-bearing XML parts of a docx/xlsx/pptx archive.

        Only text between tags is redacted; markup and attribute values are
        copied as they are. Entry order, names, timestamps and compression are
        preserved.

        Raises:
            DocumentError: If the archive or one of its content parts is unreadable.
        """
        output = io.BytesIO()
        rewritten = 0
        try:
            with zipfile.ZipFile(io.BytesIO(content)) as source, zipfile.ZipFile(
                output, "w"
            ) as target:
                for info in source.infolist():
                    data = source.read(info)
                    if not info.is_dir() and is_content_part(file_type, info.filename):
                        xml = redact_xml_text(
                            data.decode("utf-8"),
                            lambda text: self._apply(self.xml_masker, text, direction),
                        )
                        data = xml.encode("utf-8")
                        rewritten += 1
                    target.writestr(info, data, compress_type=info.compress_type)
        except (zipfile.BadZipFile, zipfile.LargeZipFile, UnicodeDecodeError, EOFError) as e:
            raise DocumentError(f"Cannot process {file_type} document: {e}", filename) from e

        logger.info("Rewrote %d content part(s) in %s document", rewritten, file_type)
        return output.getvalue()

    def redact_file(self, content: bytes, filename: str, direction: str) -> RedactedFile:
        """Dispatches on the file extension and returns the redacted payload."""
        file_type = detect_file_type(filename)

        if file_type in CONTENT_PARTS:
            redacted = self.redact_office_document(content, file_type, direction, filename)
        else:
            redacted = self.redact_text_file(content, direction)

        return RedactedFile(
            content=redacted,
            filename=filename,
            mime_type=MIME_TYPES[file_type],
        )


def redact_file(
    content: bytes,
    filename: str,
    roster: Optional[Iterable[RosterEntry]],
    direction: str,
) -> RedactedFile:
    return DocumentRedactor(roster).redact_file(content, filename, direction)


def mask_file(content: bytes, filename: str, roster: Optional[Iterable[RosterEntry]]) -> RedactedFile:
    """Mask PII in a file before an LLM reads it."""
    return redact_file(content, filename, roster, MASK)


def unmask_file(content: bytes, filename: str, roster: Optional[Iterable[RosterEntry]]) -> RedactedFile:
    """Restore PII in an LLM-generated file before it is uploaded to the LMS."""
    return redact_file(content, filename, roster, UNMASK)


# ============================================================================
# CSV helpers
# ============================================================================


def generate_unmasked_csv(
    headers: List[str], rows: List[List[str]], roster: Optional[Iterable[RosterEntry]]
) -> str:
    """Builds a CSV from a token-bearing table and unmasks it."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(headers)
    writer.writerows(rows)
    return PIIMasker(roster).unmask(buffer.getvalue().rstrip("\n"))


def parse_and_unmask_csv(
    content: str, roster: Optional[Iterable[RosterEntry]]
) -> Tuple[List[str], List[List[str]]]:
    """Unmasks CSV text and parses it into (headers, rows). Blank lines are dropped."""
    unmasked = PIIMasker(roster).unmask(content) or ""
    records = [row for row in csv.reader(io.StringIO(unmasked)) if any(cell.strip() for cell in row)]
    if not records:
        return [], []
    return records[0], records[1:]
