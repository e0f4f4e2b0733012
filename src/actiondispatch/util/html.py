"""HTML helpers shared by the binder and the validation error reports."""

from typing import Iterable, List, Optional

FIELD_DELIMITER = "||"


def encode(fragment: Optional[str]) -> Optional[str]:
    """
    Escape the characters that matter inside element content and
    double-quoted attributes. None stays None.
    """
    if fragment is None:
        return None
    return (
        fragment.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
    )


def combine_values(values: Optional[Iterable[str]]) -> str:
    """Join field names into one hidden-input value ("a||b||")."""
    if not values:
        return ""
    return encode("".join(f"{value}{FIELD_DELIMITER}" for value in values))


def split_values(value: Optional[str]) -> List[str]:
    """Inverse of combine_values."""
    if not value:
        return []
    return [part for part in value.split(FIELD_DELIMITER) if part]
