"""Data-quality summary over the critical qualification fields."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Sequence

CRITICAL_FIELDS: tuple[str, ...] = (
    "problemType",
    "jobFunction",
    "industry",
    "solutionType",
    "businessUrgency",
    "budgetStatus",
)


class QualityLevel(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


@dataclass(frozen=True)
class DataQuality:
    completeness: int  # percent, 0..100
    quality: QualityLevel
    filled_fields: int
    total_fields: int
    missing_critical: list[str] = field(default_factory=list)


def analyze(
    extracted_data: Mapping[str, Any] | None,
    critical_fields: Sequence[str] = CRITICAL_FIELDS,
) -> DataQuality:
    """Score how many critical fields are filled. >=80% High, >=60% Medium."""
    data = extracted_data or {}
    missing = [f for f in critical_fields if data.get(f) in (None, "")]
    total = len(critical_fields)
    filled = total - len(missing)
    completeness = round(filled * 100 / total) if total else 0

    if completeness >= 80:
        quality = QualityLevel.HIGH
    elif completeness >= 60:
        quality = QualityLevel.MEDIUM
    else:
        quality = QualityLevel.LOW

    return DataQuality(
        completeness=completeness,
        quality=quality,
        filled_fields=filled,
        total_fields=total,
        missing_critical=missing,
    )
