"""
Game QC Console - Runtime Configuration

Environment-driven knobs for the QA runner and QA policy.
Fixed QA thresholds are NOT configurable and live with the orchestrator.
"""
import os
from dataclasses import dataclass


# Runtime bridge (test runner service) location
QC_RUNNER_URL = os.getenv("QC_RUNNER_URL", "http://localhost:8080")
QC_RUNNER_TIMEOUT_SECONDS = float(os.getenv("QC_RUNNER_TIMEOUT_SECONDS", "30"))

# Public CDN base for uploaded builds
ARTIFACT_BASE_URL = os.getenv("ARTIFACT_BASE_URL", "https://storage.googleapis.com/game-builds")


@dataclass(frozen=True)
class QAPolicy:
    """
    Policy knobs for the automated QA run.

    min_accuracy / min_completion: QA-02 gates (0.0 means "any value")
    submission_burst: how many result submissions QA-04 fires
    overall_timeout_ms: hard ceiling for one orchestration call
    """
    min_accuracy: float = 0.0
    min_completion: float = 0.0
    submission_burst: int = 3
    overall_timeout_ms: int = 120_000

    @classmethod
    def from_env(cls) -> "QAPolicy":
        return cls(
            min_accuracy=float(os.getenv("QA_MIN_ACCURACY", "0.0")),
            min_completion=float(os.getenv("QA_MIN_COMPLETION", "0.0")),
            submission_burst=int(os.getenv("QA_SUBMISSION_BURST", "3")),
            overall_timeout_ms=int(os.getenv("QA_OVERALL_TIMEOUT_MS", "120000")),
        )
