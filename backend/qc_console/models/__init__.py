"""Game QC Console - Data Models"""
from .qa_models import (
    # Enums
    GameEventType, ManualCheck,
    # Building blocks
    LaunchContext, GameEvent, Attempt, ManualInput, NormalizedResult,
    # Per-check results
    QA01Result, QA02Result, QA03Auto, QA03Result, QA04Result, IdempotencyResult,
    # Aggregate
    QATestResults,
)

__all__ = [
    "GameEventType", "ManualCheck",
    "LaunchContext", "GameEvent", "Attempt", "ManualInput", "NormalizedResult",
    "QA01Result", "QA02Result", "QA03Auto", "QA03Result", "QA04Result", "IdempotencyResult",
    "QATestResults",
]
