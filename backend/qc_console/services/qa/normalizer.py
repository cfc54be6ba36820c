"""
QA Result Normalizer

Turns raw, untrusted game telemetry into a NormalizedResult.

Games are third-party code, so this function is TOTAL: it is defined for
every input (None, lists, strings, partial dicts) and never raises.
Malformed input produces is_valid=False plus validation_errors instead.

Rules:
- score defaults to 0 when missing or not a number
- maxScore defaults to 100 when missing
- completed defaults to False when missing or not a boolean
- accuracy = clamp(score / maxScore, 0, 1) when maxScore > 0, else 0
- completion = 1 if completed else 0
"""
import math
from typing import Any, Dict, List, Optional

from ...models.qa_models import NormalizedResult


DEFAULT_SCORE = 0.0
DEFAULT_MAX_SCORE = 100.0

# Games are written in JS and report camelCase; accept snake_case as well.
MAX_SCORE_KEYS = ("maxScore", "max_score")


def _as_number(value: Any) -> Optional[float]:
    """Finite float for real numbers, None for anything else (bool included)."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        number = float(value)
    except OverflowError:
        # JSON integers are unbounded; anything past float range is not a score.
        return None
    if not math.isfinite(number):
        return None
    return number


def _accuracy(score: float, max_score: float) -> float:
    if max_score <= 0:
        return 0.0
    try:
        ratio = score / max_score
    except (OverflowError, ZeroDivisionError):
        return 0.0
    if math.isnan(ratio):
        return 0.0
    return _clamp(ratio)


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def _first_present(raw: Dict[str, Any], keys) -> Any:
    for key in keys:
        if key in raw:
            return raw[key]
    return None


def normalize(raw: Any) -> NormalizedResult:
    """
    Normalize a game's self-reported result.

    Args:
        raw: Arbitrary decoded JSON reported by the game.

    Returns:
        NormalizedResult - never raises.
    """
    errors: List[str] = []

    if not isinstance(raw, dict):
        errors.append(f"Result must be a JSON object, got {type(raw).__name__}")
        return NormalizedResult(
            is_valid=False,
            score=DEFAULT_SCORE,
            max_score=DEFAULT_MAX_SCORE,
            completed=False,
            accuracy=0.0,
            completion=0.0,
            validation_errors=errors,
        )

    # score
    score = _as_number(raw.get("score"))
    if score is None:
        if "score" in raw:
            errors.append(f"score is not a number: {raw.get('score')!r}")
        else:
            errors.append("score is missing")
        score = DEFAULT_SCORE

    # maxScore
    raw_max = _first_present(raw, MAX_SCORE_KEYS)
    if raw_max is None:
        max_score = DEFAULT_MAX_SCORE
    else:
        max_score = _as_number(raw_max)
        if max_score is None:
            errors.append(f"maxScore is not a number: {raw_max!r}")
            max_score = DEFAULT_MAX_SCORE
        elif max_score <= 0:
            errors.append(f"maxScore must be positive, got {max_score}")

    # completed
    completed = raw.get("completed")
    if not isinstance(completed, bool):
        if "completed" in raw:
            errors.append(f"completed is not a boolean: {completed!r}")
        else:
            errors.append("completed is missing")
        completed = False

    accuracy = _accuracy(score, max_score)
    completion = 1.0 if completed else 0.0

    return NormalizedResult(
        is_valid=not errors,
        score=score,
        max_score=max_score,
        completed=completed,
        accuracy=accuracy,
        completion=completion,
        validation_errors=errors,
    )
