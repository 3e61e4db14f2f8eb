"""Map free-text activity labels onto the closed set of workout types."""
from typing import Any, Tuple

WORKOUT_TYPES = ("walk", "run", "cycle", "hike", "swim")
DEFAULT_WORKOUT_TYPE = "walk"

# Checked in order; the first matching keyword decides ("walk-run" -> walk).
_KEYWORDS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("walk", ("walk",)),
    ("run", ("run", "jog")),
    ("cycle", ("cycl", "bik")),
    ("hike", ("hik",)),
    ("swim", ("swim",)),
)


def classify_workout_type(label: Any) -> str:
    if not label or not isinstance(label, str):
        return DEFAULT_WORKOUT_TYPE
    text = label.lower()
    for workout_type, keywords in _KEYWORDS:
        if any(keyword in text for keyword in keywords):
            return workout_type
    return DEFAULT_WORKOUT_TYPE
