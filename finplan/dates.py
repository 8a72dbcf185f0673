"""Month string helpers shared by the loaders."""

from typing import Tuple


def parse_month(month: str) -> Tuple[int, int]:
    """Parse "YYYY-MM" (a trailing "-DD" is ignored) into (year, month)."""
    parts = str(month).split("-")
    if len(parts) not in (2, 3):
        raise ValueError(f"Invalid month format: {month}")
    try:
        year = int(parts[0])
        mon = int(parts[1])
    except ValueError:
        raise ValueError(f"Invalid month format: {month}") from None
    if mon < 1 or mon > 12:
        raise ValueError(f"Invalid month value: {month}")
    return year, mon
