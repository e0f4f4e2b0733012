"""Event-list matching used by `on=` arguments throughout the package."""

from typing import Iterable, Optional


def applies(on: Optional[Iterable[str]], event: Optional[str]) -> bool:
    """
    Whether an `on=` list selects `event`.

    An empty list selects every event. A list whose first entry starts with
    "!" is a list of exclusions; otherwise it is a list of inclusions.

    Example:
        applies([], "save")                 # True
        applies(["save", "update"], "view") # False
        applies(["!logout"], "view")        # True
        applies(["!logout"], "logout")      # False
    """
    entries = list(on or ())
    if not entries:
        return True
    if entries[0].startswith("!"):
        return f"!{event}" not in entries
    return event in entries
