"""
Clinical labels for Holter subjects.

Subject ids follow the database naming: the first character encodes the
recording group ("n" normal sinus rhythm, "a" atrial fibrillation,
"c" congestive heart failure). Status collapses the condition into the
Healthy / CHF contrast used by the two-group comparison.
"""

from enum import Enum


class Condition(str, Enum):
    """Recording group of a subject."""
    NORMAL = "Normal"
    ATRIAL_FIBRILLATION = "AtrialFibrillation"
    CHF = "CHF"
    UNKNOWN = "Unknown"


class Status(str, Enum):
    """Two-level health status derived from the condition."""
    HEALTHY = "Healthy"
    CHF = "CHF"
    UNKNOWN = "Unknown"


CONDITION_BY_PREFIX = {
    "a": Condition.ATRIAL_FIBRILLATION,
    "n": Condition.NORMAL,
    "c": Condition.CHF,
}

STATUS_BY_CONDITION = {
    Condition.ATRIAL_FIBRILLATION: Status.HEALTHY,
    Condition.NORMAL: Status.HEALTHY,
    Condition.CHF: Status.CHF,
    Condition.UNKNOWN: Status.UNKNOWN,
}


def condition_from_subject_id(subject_id: str) -> Condition:
    """Map a subject id to its condition by first character; Unknown otherwise."""
    if not subject_id:
        return Condition.UNKNOWN
    return CONDITION_BY_PREFIX.get(subject_id[0], Condition.UNKNOWN)


def status_from_condition(condition: Condition) -> Status:
    """Map a condition to the Healthy / CHF status."""
    return STATUS_BY_CONDITION.get(Condition(condition), Status.UNKNOWN)
