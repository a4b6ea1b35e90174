"""Recursive masking/unmasking of JSON-like tool payloads."""

from typing import Any, Callable, Iterable, Optional

from edmcp_pii.core.masker import PIIMasker
from edmcp_pii.core.roster import RosterEntry


def _walk(data: Any, transform: Callable[[str], str]) -> Any:
    if data is None:
        return data

    if isinstance(data, str):
        return transform(data)

    if isinstance(data, (list, tuple)):
        return [_walk(item, transform) for item in data]

    if isinstance(data, dict):
        # Keys are transformed too: tallies are often keyed by author name.
        return {
            (transform(key) if isinstance(key, str) else key): _walk(value, transform)
            for key, value in data.items()
        }

    return data


def mask_structured_data(data: Any, roster: Optional[Iterable[RosterEntry]]) -> Any:
    """Mask every string in a nested dict/list payload, including dict keys."""
    masker = PIIMasker(roster)
    return _walk(data, masker.mask)


def unmask_structured_data(data: Any, roster: Optional[Iterable[RosterEntry]]) -> Any:
    """Unmask every string in a nested dict/list payload, including dict keys."""
    masker = PIIMasker(roster)
    return _walk(data, masker.unmask)
