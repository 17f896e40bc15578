"""
Severity - the ordered outcome scale.

SUCCESS < UNSTABLE < FAILURE < ABORTED

combine(a, b) is max(a, b). The ordering defined here is the only place
that decides which outcome wins when results are folded together.
"""

from enum import Enum

# Ordinal position of each severity value, best first
_ORDER = ("success", "unstable", "failure", "aborted")


class Severity(str, Enum):
    """Outcome of an action, phase, or run."""
    SUCCESS = "success"
    UNSTABLE = "unstable"
    FAILURE = "failure"
    ABORTED = "aborted"

    @property
    def ordinal(self) -> int:
        """Position on the scale (0 = best)."""
        return _ORDER.index(self.value)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.ordinal < other.ordinal

    def __le__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.ordinal <= other.ordinal

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.ordinal > other.ordinal

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.ordinal >= other.ordinal

    def combine(self, other: "Severity") -> "Severity":
        """Return the worse of the two severities."""
        return self if self >= other else other

    def is_better_than(self, other: "Severity") -> bool:
        return self < other

    def is_worse_than(self, other: "Severity") -> bool:
        return self > other

    @classmethod
    def from_string(cls, value: str) -> "Severity":
        """Parse a Severity from its name, case-insensitive."""
        normalized = value.strip().lower()
        for severity in cls:
            if severity.value == normalized:
                return severity
        raise ValueError(f"Unknown severity: {value}")
