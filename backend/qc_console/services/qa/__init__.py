"""
Automated QA - Service Package

Runs the fixed automated checks (QA-01..QA-04) against a launched game and
assembles the evidence bundle the reviewer decides on.
"""
from .normalizer import normalize
from .idempotency import IdempotencyChecker, RecordStore, SqlRecordStore, check_idempotency
from .play_results import PlayResultRecorder
from .runtime_bridge import (
    RuntimeBridge,
    RuntimeBridgeError,
    BridgeTimeoutError,
    HttpRuntimeBridge,
    InMemoryRuntimeBridge,
    GameScript,
    VirtualClock,
)
from .orchestrator import (
    QAOrchestrator,
    run_automated_qa,
    INIT_TO_READY_TIMEOUT_MS,
    QUIT_TO_COMPLETE_TIMEOUT_MS,
    ASSET_LOAD_TIMEOUT_MS,
)

__all__ = [
    "normalize",
    "IdempotencyChecker",
    "RecordStore",
    "SqlRecordStore",
    "check_idempotency",
    "PlayResultRecorder",
    "RuntimeBridge",
    "RuntimeBridgeError",
    "BridgeTimeoutError",
    "HttpRuntimeBridge",
    "InMemoryRuntimeBridge",
    "GameScript",
    "VirtualClock",
    "QAOrchestrator",
    "run_automated_qa",
    "INIT_TO_READY_TIMEOUT_MS",
    "QUIT_TO_COMPLETE_TIMEOUT_MS",
    "ASSET_LOAD_TIMEOUT_MS",
]
