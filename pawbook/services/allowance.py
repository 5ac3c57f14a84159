"""
Regeneration Allowance - free illustration regenerations per book.

Pure functions. Advisory for the UI and for deciding whether a regeneration
is billed.
"""

from typing import Literal

from pawbook.models.domain import RegenerationAllowance

# Free regenerations by book page count
FREE_REGENERATION_LIMITS: dict[int, int] = {
    12: 3,
    16: 4,
    24: 5,
}

# Credits charged per regeneration once the free quota is used up
REGENERATION_COST_CREDITS = 16

AllowanceStatus = Literal["available", "last", "exceeded"]


def free_limit(page_count: int) -> int:
    """Free regenerations for a page count; 0 for unknown page counts."""
    return FREE_REGENERATION_LIMITS.get(page_count, 0)


def remaining(page_count: int, used: int) -> int:
    """Free regenerations left, never negative."""
    return max(0, free_limit(page_count) - max(0, used))


def has_exceeded_limit(page_count: int, used: int) -> bool:
    return remaining(page_count, used) == 0


def requires_payment(page_count: int, used: int) -> bool:
    """Whether the next regeneration costs credits."""
    return has_exceeded_limit(page_count, used)


def allowance(page_count: int, used: int = 0) -> RegenerationAllowance:
    """Build the allowance value for a book."""
    return RegenerationAllowance(
        page_count=page_count,
        free_limit=free_limit(page_count),
        used=max(0, used),
    )


def status_level(page_count: int, used: int) -> AllowanceStatus:
    """Indicator level: exceeded, last free one, or available."""
    left = remaining(page_count, used)
    if left == 0:
        return "exceeded"
    if left == 1:
        return "last"
    return "available"
