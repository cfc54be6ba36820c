"""
Automated QA Test Orchestrator

Runs the four fixed automated checks against one launched game instance:

    QA-01  handshake timing   init -> READY (<= 10s), quit -> COMPLETE (<= 5s),
                              zero internal errors during the window
    QA-02  result format      RESULT payload through the normalizer, policy gates
    QA-03  asset readiness    ASSETS_LOADED timing (auto half only)
    QA-04  idempotency        burst of result submissions, then record count

Sub-tests run sequentially. A bridge failure inside one sub-test is recorded
on that sub-test and the run moves on. The whole call is bounded by the
policy's overall timeout; on expiry the partial evidence is returned with
every unfinished sub-test marked failed.

The returned QATestResults always carries all four sub-results.
"""
import asyncio
import logging
import time
from datetime import datetime
from typing import Callable, List, Optional, Set

from ...config import QAPolicy
from ...models.qa_models import (
    Attempt,
    GameEvent,
    GameEventType,
    IdempotencyResult,
    LaunchContext,
    QATestResults,
)
from .idempotency import IdempotencyChecker, RecordStore
from .normalizer import normalize
from .runtime_bridge import BridgeTimeoutError, RuntimeBridge, RuntimeBridgeError

logger = logging.getLogger(__name__)


# Fixed thresholds (not policy knobs)
INIT_TO_READY_TIMEOUT_MS = 10_000
QUIT_TO_COMPLETE_TIMEOUT_MS = 5_000
ASSET_LOAD_TIMEOUT_MS = 15_000
RESULT_WAIT_MS = 5_000


class QAOrchestrator:
    """
    Runs automated QA for one version per call.

    Holds only read-only collaborators, so one instance may serve concurrent
    runs for different versions.
    """

    def __init__(
        self,
        bridge: RuntimeBridge,
        idempotency_checker: IdempotencyChecker,
        policy: Optional[QAPolicy] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.bridge = bridge
        self.idempotency_checker = idempotency_checker
        self.policy = policy or QAPolicy()
        self.clock = clock

    # =========================================================================
    # ENTRY POINT
    # =========================================================================

    async def run_automated_qa(self, launch_context: LaunchContext) -> QATestResults:
        """
        Execute QA-01..QA-04 and return the evidence bundle.

        Cancellation propagates to the caller; side effects already applied by
        the game (persisted submissions) are left in place.
        """
        results = QATestResults(started_at=datetime.utcnow())
        finished: Set[str] = set()
        session = {"handle": None, "start": self.clock()}

        logger.info(
            f"QA run starting: game={launch_context.game_id} version={launch_context.version_id} "
            f"session={launch_context.session_id}"
        )

        try:
            await asyncio.wait_for(
                self._run_sequence(launch_context, results, finished, session),
                timeout=self.policy.overall_timeout_ms / 1000,
            )
        except asyncio.TimeoutError:
            logger.warning(
                f"QA run for version {launch_context.version_id} hit the "
                f"{self.policy.overall_timeout_ms}ms overall timeout; returning partial evidence"
            )
            results.timed_out = True
            self._fail_unfinished(results, finished, f"Overall QA timeout ({self.policy.overall_timeout_ms}ms)")
        finally:
            if session["handle"] is not None:
                await self._close_quietly(session["handle"])

        results.test_duration_ms = self._elapsed_ms(session["start"])
        results.completed_at = datetime.utcnow()
        self._record(results, GameEvent(
            type=GameEventType.COMPLETE,
            timestamp=results.completed_at,
            data={"testDuration": results.test_duration_ms},
        ))

        logger.info(
            f"QA run finished for version {launch_context.version_id}: "
            f"qa01={results.qa01.passed} qa02={results.qa02.passed} "
            f"qa03.asset_error={results.qa03.auto.asset_error} qa04={results.qa04.passed} "
            f"duration={results.test_duration_ms}ms"
        )
        return results

    async def _run_sequence(self, ctx: LaunchContext, results: QATestResults, finished: Set[str], session: dict):
        entry_url = ctx.entry_url
        try:
            session["handle"] = await self.bridge.launch(entry_url, ctx)
        except Exception as e:
            logger.warning(f"Launch failed for version {ctx.version_id}: {e}")
            self._fail_unfinished(results, finished, f"Launch failed: {e}")
            finished.update({"qa01", "qa02", "qa03", "qa04"})
            return

        handle = session["handle"]
        await self._qa01_handshake(handle, results, session)
        finished.add("qa01")
        await self._qa02_result_format(handle, results)
        finished.add("qa02")
        await self._qa03_asset_readiness(handle, results, session)
        finished.add("qa03")
        await self._qa04_idempotency(handle, ctx, results)
        finished.add("qa04")

    # =========================================================================
    # QA-01: HANDSHAKE
    # =========================================================================

    async def _qa01_handshake(self, handle: str, results: QATestResults, session: dict) -> None:
        qa01 = results.qa01
        ready_ok = False
        complete_ok = False
        try:
            errors_before = await self.bridge.error_count(handle)

            init_at = session["init_at"] = self.clock()
            await self.bridge.send_command(handle, "init")
            self._record(results, GameEvent(type=GameEventType.INIT, timestamp=datetime.utcnow()), qa01.events)
            try:
                ready = await self.bridge.await_event(handle, GameEventType.READY, INIT_TO_READY_TIMEOUT_MS)
                qa01.init_to_ready_ms = self._elapsed_ms(init_at)
                ready.duration_ms = qa01.init_to_ready_ms
                self._record(results, ready, qa01.events)
                ready_ok = qa01.init_to_ready_ms <= INIT_TO_READY_TIMEOUT_MS
            except BridgeTimeoutError as e:
                qa01.init_to_ready_ms = self._elapsed_ms(init_at)
                qa01.error = str(e)

            quit_at = self.clock()
            await self.bridge.send_command(handle, "quit")
            self._record(results, GameEvent(type=GameEventType.QUIT, timestamp=datetime.utcnow()), qa01.events)
            try:
                complete = await self.bridge.await_event(handle, GameEventType.COMPLETE, QUIT_TO_COMPLETE_TIMEOUT_MS)
                qa01.quit_to_complete_ms = self._elapsed_ms(quit_at)
                complete.duration_ms = qa01.quit_to_complete_ms
                self._record(results, complete, qa01.events)
                complete_ok = qa01.quit_to_complete_ms <= QUIT_TO_COMPLETE_TIMEOUT_MS
            except BridgeTimeoutError as e:
                qa01.quit_to_complete_ms = self._elapsed_ms(quit_at)
                qa01.error = f"{qa01.error}; {e}" if qa01.error else str(e)

            new_errors = await self.bridge.error_count(handle) - errors_before
            if new_errors > 0:
                qa01.error = f"{qa01.error}; " if qa01.error else ""
                qa01.error += f"{new_errors} internal error(s) during handshake"

            qa01.passed = ready_ok and complete_ok and new_errors == 0
        except RuntimeBridgeError as e:
            logger.warning(f"QA-01 bridge failure on {handle}: {e}")
            qa01.passed = False
            qa01.error = f"Runtime bridge error: {e}"
            self._record(results, GameEvent(type=GameEventType.ERROR, timestamp=datetime.utcnow(), data={"error": str(e)}))
        except Exception as e:
            logger.error(f"QA-01 check failed on {handle}: {type(e).__name__}: {e}")
            qa01.passed = False
            qa01.error = f"Handshake check error: {type(e).__name__}: {e}"

        logger.info(
            f"QA-01 {'passed' if qa01.passed else 'failed'}: init->ready {qa01.init_to_ready_ms}ms, "
            f"quit->complete {qa01.quit_to_complete_ms}ms"
        )

    # =========================================================================
    # QA-02: RESULT FORMAT
    # =========================================================================

    async def _qa02_result_format(self, handle: str, results: QATestResults) -> None:
        qa02 = results.qa02
        try:
            event = await self.bridge.await_event(handle, GameEventType.RESULT, RESULT_WAIT_MS)
            self._record(results, event)
            raw = event.data
            results.raw_result = raw if isinstance(raw, dict) else {"value": raw}

            normalized = normalize(raw)
            qa02.normalized_result = normalized
            qa02.accuracy = normalized.accuracy
            qa02.completion = normalized.completion
            qa02.validation_errors = list(normalized.validation_errors)

            if normalized.accuracy < self.policy.min_accuracy:
                qa02.validation_errors.append(
                    f"accuracy {normalized.accuracy:.2f} below minimum {self.policy.min_accuracy:.2f}"
                )
            if normalized.completion < self.policy.min_completion:
                qa02.validation_errors.append(
                    f"completion {normalized.completion:.2f} below minimum {self.policy.min_completion:.2f}"
                )

            qa02.passed = (
                normalized.is_valid
                and normalized.accuracy >= self.policy.min_accuracy
                and normalized.completion >= self.policy.min_completion
            )
        except RuntimeBridgeError as e:
            logger.warning(f"QA-02 bridge failure on {handle}: {e}")
            qa02.passed = False
            qa02.validation_errors.append(f"Runtime bridge error: {e}")
        except Exception as e:
            logger.error(f"QA-02 check failed on {handle}: {type(e).__name__}: {e}")
            qa02.passed = False
            qa02.validation_errors.append(f"Result check error: {type(e).__name__}: {e}")

        logger.info(
            f"QA-02 {'passed' if qa02.passed else 'failed'}: accuracy={qa02.accuracy:.2f} "
            f"completion={qa02.completion:.2f}"
        )

    # =========================================================================
    # QA-03: ASSET READINESS (auto half)
    # =========================================================================

    async def _qa03_asset_readiness(self, handle: str, results: QATestResults, session: dict) -> None:
        auto = results.qa03.auto
        # Readiness is measured from init; fall back to the run start if init never went out.
        since = session.get("init_at", session["start"])
        try:
            event = await self.bridge.await_event(handle, GameEventType.ASSETS_LOADED, ASSET_LOAD_TIMEOUT_MS)
            self._record(results, event)
            auto.ready_ms = int(event.duration_ms) if event.duration_ms is not None else self._elapsed_ms(since)
            data = event.data if isinstance(event.data, dict) else {}
            failed_assets = data.get("failedAssets") or []
            if isinstance(failed_assets, list):
                auto.error_details.extend(f"Failed to load {asset}" for asset in failed_assets)
            auto.asset_error = auto.ready_ms > ASSET_LOAD_TIMEOUT_MS
            if auto.asset_error:
                auto.error_details.append(f"Assets ready after {auto.ready_ms}ms (limit {ASSET_LOAD_TIMEOUT_MS}ms)")
        except BridgeTimeoutError as e:
            auto.ready_ms = self._elapsed_ms(since)
            auto.asset_error = True
            auto.error_details.append(str(e))
        except RuntimeBridgeError as e:
            logger.warning(f"QA-03 bridge failure on {handle}: {e}")
            auto.asset_error = True
            auto.error_details.append(f"Runtime bridge error: {e}")
        except Exception as e:
            logger.error(f"QA-03 check failed on {handle}: {type(e).__name__}: {e}")
            auto.asset_error = True
            auto.error_details.append(f"Asset check error: {type(e).__name__}: {e}")

        logger.info(f"QA-03 auto {'failed' if auto.asset_error else 'passed'}: ready in {auto.ready_ms}ms")

    # =========================================================================
    # QA-04: IDEMPOTENCY
    # =========================================================================

    async def _qa04_idempotency(self, handle: str, ctx: LaunchContext, results: QATestResults) -> None:
        attempts: List[Attempt] = []
        payload = dict(results.raw_result) if results.raw_result else {}
        payload["sessionId"] = ctx.session_id
        try:
            for _ in range(self.policy.submission_burst):
                ack = await self.bridge.send_command(handle, "submit_result", payload)
                attempt_id = ack.get("attemptId") if isinstance(ack, dict) else None
                if not attempt_id:
                    raise ValueError(f"Submission ack carried no attemptId: {ack!r}")
                attempts.append(Attempt(attempt_id=str(attempt_id), submitted_at=datetime.utcnow()))
        except Exception as e:
            logger.warning(f"QA-04 submission burst failed on {handle}: {e}")
            label = "Runtime bridge error" if isinstance(e, RuntimeBridgeError) else "Submission error"
            results.qa04 = IdempotencyResult(
                passed=False,
                duplicate_attempt_id=False,
                backend_record_count=0,
                consistency_check=False,
                details=f"{label} after {len(attempts)} submission(s): {e}",
            )
            logger.info("QA-04 failed: submission burst incomplete")
            return

        # Every submission is acknowledged at this point; the count is read-after-write.
        results.qa04 = self.idempotency_checker.check(
            ctx.game_id, ctx.version_id, attempts, session_id=ctx.session_id,
        )
        logger.info(f"QA-04 {'passed' if results.qa04.passed else 'failed'}: {results.qa04.details}")

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _elapsed_ms(self, since: float) -> int:
        return int(round((self.clock() - since) * 1000))

    @staticmethod
    def _record(results: QATestResults, event: GameEvent, also: Optional[list] = None) -> None:
        results.events_timeline.append(event)
        if also is not None:
            also.append(event)

    @staticmethod
    def _fail_unfinished(results: QATestResults, finished: Set[str], reason: str) -> None:
        if "qa01" not in finished:
            results.qa01.passed = False
            results.qa01.error = f"{results.qa01.error}; {reason}" if results.qa01.error else reason
        if "qa02" not in finished:
            results.qa02.passed = False
            results.qa02.validation_errors.append(reason)
        if "qa03" not in finished:
            results.qa03.auto.asset_error = True
            results.qa03.auto.error_details.append(reason)
        if "qa04" not in finished:
            results.qa04 = IdempotencyResult(passed=False, details=reason)

    async def _close_quietly(self, handle: str) -> None:
        try:
            await self.bridge.close(handle)
        except Exception as e:
            logger.warning(f"Failed to close runtime session {handle}: {e}")


async def run_automated_qa(
    launch_context: LaunchContext,
    bridge: RuntimeBridge,
    record_store: RecordStore,
    policy: Optional[QAPolicy] = None,
) -> QATestResults:
    """Convenience wrapper building a one-off orchestrator."""
    orchestrator = QAOrchestrator(bridge, IdempotencyChecker(record_store), policy)
    return await orchestrator.run_automated_qa(launch_context)
