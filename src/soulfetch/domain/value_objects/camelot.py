"""Camelot wheel key compatibility.

Hey future me - DJs label keys on the Camelot wheel: numbers 1-12 around the wheel,
A = minor, B = major. Two keys mix well ("harmonic") when they are:
- the SAME key (8A ↔ 8A)
- the RELATIVE major/minor (8A ↔ 8B)
- one step around the wheel with the same letter (8A ↔ 7A, 8A ↔ 9A, 12A ↔ 1A wraps!)

Everything else clashes. The ranking engine only cares about these three buckets.
"""

import re
from enum import Enum

_CAMELOT_PATTERN = re.compile(r"^(1[0-2]|[1-9])([AB])$")


class KeyRelationship(str, Enum):
    """How two Camelot keys relate on the wheel."""

    PERFECT = "perfect"
    RELATIVE = "relative"
    ADJACENT = "adjacent"
    INCOMPATIBLE = "incompatible"

    @property
    def is_harmonic(self) -> bool:
        return self != KeyRelationship.INCOMPATIBLE


def parse_camelot(value: str | None) -> tuple[int, str] | None:
    """Parse "8A" → (8, "A"). Returns None for anything that isn't Camelot notation."""
    if not value:
        return None
    match = _CAMELOT_PATTERN.match(value.strip().upper())
    if not match:
        return None
    return int(match.group(1)), match.group(2)


def key_relationship(first: str | None, second: str | None) -> KeyRelationship:
    """Classify two Camelot keys.

    Unparseable or missing keys are INCOMPATIBLE - callers decide whether
    "unknown" should count at all (the ranking engine skips unknown keys).

    Example:
        >>> key_relationship("8A", "9A")
        <KeyRelationship.ADJACENT: 'adjacent'>
    """
    left = parse_camelot(first)
    right = parse_camelot(second)
    if left is None or right is None:
        return KeyRelationship.INCOMPATIBLE

    if left == right:
        return KeyRelationship.PERFECT

    left_number, left_letter = left
    right_number, right_letter = right

    if left_number == right_number:
        return KeyRelationship.RELATIVE

    # Wheel wraps around: 12 and 1 are neighbours
    step = abs(left_number - right_number)
    if left_letter == right_letter and step in (1, 11):
        return KeyRelationship.ADJACENT

    return KeyRelationship.INCOMPATIBLE
