"""
Test Suite: Review Service

End-to-end workflow against SQLite and the scripted in-memory game:
create -> submit -> startReview -> run QA -> decide, plus the read models.
"""
import asyncio

import pytest

from qc_console.auth import PermissionOracle
from qc_console.config import QAPolicy
from qc_console.models.db_models import (
    AuditLogDB,
    NotificationDB,
    QCDecision,
    VersionStatus,
)
from qc_console.models.qa_models import ManualInput
from qc_console.services.qa.orchestrator import INIT_TO_READY_TIMEOUT_MS
from qc_console.services.qa.runtime_bridge import GameScript, InMemoryRuntimeBridge
from qc_console.services.review import (
    DuplicateVersionError,
    EvidenceMissingError,
    InconsistentDecisionError,
    InvalidTransitionError,
    InvalidVersionError,
    PermissionDeniedError,
    ReviewService,
    TransitionContext,
    VersionNotFoundError,
    VersionStateMachine,
)
from conftest import BridgeRecordStore, StaleReadStore, stale_snapshot


ALL_PASS = ManualInput(no_autoplay=True, no_white_screen=True, gesture_ok=True)


@pytest.fixture
def make_service(db):
    def _make(script=None):
        bridge = InMemoryRuntimeBridge(script)
        return ReviewService(
            db,
            bridge=bridge,
            record_store=BridgeRecordStore(bridge),
            policy=QAPolicy(),
            clock=bridge.clock,
        )
    return _make


@pytest.fixture
def service(make_service):
    return make_service()


# =============================================================================
# VERSIONS
# =============================================================================

class TestCreateVersion:

    def test_first_upload_creates_game_and_draft(self, service, users):
        version = service.create_version(users["dev"], "space-run", title="Space Run", build_size=2048)

        assert version.version == "1.0.0"
        assert version.status == VersionStatus.DRAFT
        assert version.storage_path == "games/space-run/1.0.0/"
        assert version.entry_file == "index.html"
        assert version.game.title == "Space Run"
        assert version.game.owner_id == users["dev"].id

    def test_omitted_version_bumps_patch(self, service, users):
        service.create_version(users["dev"], "space-run", version="1.4.9")
        service.create_version(users["dev"], "space-run", version="1.2.0")

        version = service.create_version(users["dev"], "space-run")

        assert version.version == "1.4.10"

    @pytest.mark.parametrize("bad", ["1.0", "v1.0.0", "01.0.0", "1.0.0-beta", ""])
    def test_invalid_semver(self, service, users, bad):
        with pytest.raises(InvalidVersionError):
            service.create_version(users["dev"], "space-run", version=bad or "  ")

    def test_duplicate_version(self, service, users):
        service.create_version(users["dev"], "space-run", version="1.0.0")

        with pytest.raises(DuplicateVersionError) as exc_info:
            service.create_version(users["dev"], "space-run", version="1.0.0")

        assert exc_info.value.to_detail()["error"] == "DuplicateVersionError"

    def test_reviewer_cannot_create(self, service, users):
        with pytest.raises(PermissionDeniedError):
            service.create_version(users["qc"], "space-run")

    def test_unknown_version(self, service):
        with pytest.raises(VersionNotFoundError):
            service.get_version("missing")


# =============================================================================
# AUTOMATED QA
# =============================================================================

class TestRunQA:

    def test_stores_snapshot_without_changing_status(self, service, db, users, make_version):
        version = make_version(VersionStatus.UPLOADED)

        results = asyncio.run(service.run_qa(version.id, users["qc"]))

        assert results.automated_checks_passed
        refreshed = service.get_version(version.id)
        assert refreshed.status == VersionStatus.UPLOADED
        assert refreshed.qa_summary["qa04"]["pass"] is True
        assert refreshed.qa_summary["qa03"]["manual"] == {
            "no_autoplay": "unset", "no_white_screen": "unset", "gesture_ok": "unset",
        }
        assert service.attempt_count(version.id) == 0

    def test_launches_the_build_entry_url(self, service, users, make_version):
        version = make_version(VersionStatus.QC_PROCESSING)

        asyncio.run(service.run_qa(version.id, users["qc"]))

        session = next(iter(service.bridge._sessions.values()))
        assert session["entry_url"].endswith(f"/games/math-pop/{version.version}/index.html")
        assert session["context"].user_id == users["qc"].id
        assert session["context"].session_id.startswith("qa-")

    def test_handshake_timed_on_the_bridge_clock(self, make_service, users, make_version):
        service = make_service(GameScript(ready_delay_ms=9_000))
        version = make_version(VersionStatus.QC_PROCESSING)

        results = asyncio.run(service.run_qa(version.id, users["qc"]))

        assert results.qa01.init_to_ready_ms == 9_000
        assert results.qa01.passed is True
        assert service.get_version(version.id).qa_summary["qa01"]["init_to_ready_ms"] == 9_000

    def test_slow_ready_fails_handshake(self, make_service, users, make_version):
        service = make_service(GameScript(ready_delay_ms=12_000))
        version = make_version(VersionStatus.QC_PROCESSING)

        results = asyncio.run(service.run_qa(version.id, users["qc"]))

        assert results.qa01.passed is False
        assert results.qa01.init_to_ready_ms == INIT_TO_READY_TIMEOUT_MS
        assert service.get_version(version.id).qa_summary["qa01"]["pass"] is False
        with pytest.raises(InconsistentDecisionError) as exc_info:
            service.record_decision(version.id, "pass", "ship it", ALL_PASS, users["qc"])
        assert exc_info.value.failed_check == "qa01"

    @pytest.mark.parametrize("status", [VersionStatus.DRAFT, VersionStatus.QC_PASSED, VersionStatus.PUBLISHED])
    def test_rejected_outside_qc(self, service, users, make_version, status):
        version = make_version(status)

        with pytest.raises(InvalidTransitionError) as exc_info:
            asyncio.run(service.run_qa(version.id, users["qc"]))

        assert exc_info.value.attempted_action == "runQA"

    def test_requires_review_permission(self, service, users, make_version):
        version = make_version(VersionStatus.UPLOADED)

        with pytest.raises(PermissionDeniedError):
            asyncio.run(service.run_qa(version.id, users["dev"]))


# =============================================================================
# DECISIONS
# =============================================================================

class TestReviewWorkflow:

    def test_draft_to_qc_passed(self, service, db, users, make_version):
        version = make_version(VersionStatus.DRAFT)

        service.transition(version.id, "submit", users["dev"])
        service.transition(version.id, "startReview", users["qc"])
        asyncio.run(service.run_qa(version.id, users["qc"]))
        passed = service.record_decision(version.id, "pass", "All good", ALL_PASS, users["qc"])

        assert passed.status == VersionStatus.QC_PASSED
        reports = service.reports(version.id)
        assert len(reports) == 1
        assert reports[0].decision == QCDecision.PASS
        assert reports[0].qa_results["qa03"]["manual"]["gesture_ok"] == "pass"
        assert [h.action for h in service.history(version.id)] == ["submit", "startReview", "pass"]
        assert db.query(AuditLogDB).count() == 3
        assert db.query(NotificationDB).filter(NotificationDB.user_id == users["cto"].id).count() == 1

    def test_broken_handshake_cannot_pass(self, make_service, users, make_version):
        service = make_service(GameScript(complete_delay_ms=None))
        version = make_version(VersionStatus.QC_PROCESSING)
        asyncio.run(service.run_qa(version.id, users["qc"]))

        with pytest.raises(InconsistentDecisionError) as exc_info:
            service.record_decision(version.id, "pass", "ship it", ALL_PASS, users["qc"])

        assert exc_info.value.failed_check == "qa01"
        failed = service.record_decision(version.id, "fail", "No COMPLETE after quit", None, users["qc"])
        assert failed.status == VersionStatus.QC_FAILED

    def test_duplicate_records_cannot_pass(self, make_service, users, make_version):
        service = make_service(GameScript(persisted_records=3))
        version = make_version(VersionStatus.QC_PROCESSING)
        asyncio.run(service.run_qa(version.id, users["qc"]))

        with pytest.raises(InconsistentDecisionError) as exc_info:
            service.transition(version.id, "pass", users["qc"], note="ok", manual=ALL_PASS)

        assert exc_info.value.failed_check == "qa04"
        assert service.get_version(version.id).status == VersionStatus.QC_PROCESSING

    def test_decision_without_qa_run(self, service, users, make_version):
        version = make_version(VersionStatus.QC_PROCESSING)

        with pytest.raises(EvidenceMissingError):
            service.record_decision(version.id, "fail", "never ran", None, users["qc"])

    @pytest.mark.parametrize("note", [None, "", "   "])
    def test_note_is_required(self, service, users, make_version, note):
        version = make_version(VersionStatus.QC_PROCESSING)

        with pytest.raises(InconsistentDecisionError) as exc_info:
            service.record_decision(version.id, "fail", note, None, users["qc"])

        assert exc_info.value.failed_check == "note"

    def test_unknown_decision(self, service, users, make_version):
        version = make_version(VersionStatus.QC_PROCESSING)

        with pytest.raises(ValueError):
            service.record_decision(version.id, "maybe", "hmm", None, users["qc"])

    def test_resubmission_keeps_counting(self, service, users, make_version):
        version = make_version(VersionStatus.QC_PROCESSING)
        qc, dev = users["qc"], users["dev"]

        asyncio.run(service.run_qa(version.id, qc))
        service.record_decision(version.id, "fail", "Autoplays audio", ManualInput(no_autoplay=False), qc)
        service.transition(version.id, "resubmit", dev)
        service.transition(version.id, "startReview", qc)
        asyncio.run(service.run_qa(version.id, qc))
        service.record_decision(version.id, "pass", "Fixed", ALL_PASS, qc)

        assert service.attempt_count(version.id) == 2
        assert [r.attempt_number for r in service.reports(version.id)] == [1, 2]

    def test_report_from_a_lost_race_is_superseded(self, service, db, users, make_version):
        version = make_version(VersionStatus.QC_PROCESSING)
        asyncio.run(service.run_qa(version.id, users["qc"]))
        snapshot = stale_snapshot(service.get_version(version.id))

        service.record_decision(version.id, "pass", "Clean run", ALL_PASS, users["qc"])
        slower = VersionStateMachine(StaleReadStore(db, snapshot), PermissionOracle(db))
        with pytest.raises(InvalidTransitionError):
            slower.transition(version.id, "fail", users["admin"].id, TransitionContext(note="Late verdict"))

        assert service.get_version(version.id).status == VersionStatus.QC_PASSED
        visible = service.reports(version.id)
        assert [(r.attempt_number, r.note) for r in visible] == [(1, "Clean run")]
        everything = service.reports(version.id, include_superseded=True)
        assert [(r.attempt_number, r.note) for r in everything] == [(1, "Clean run"), (2, "Late verdict")]
        assert service.superseded_report_ids(version.id) == {everything[1].id}
        assert service.attempt_count(version.id) == 2


# =============================================================================
# READ MODELS
# =============================================================================

class TestInbox:

    def test_oldest_submission_first(self, service, make_version):
        recent = make_version(VersionStatus.UPLOADED, age_minutes=5)
        oldest = make_version(VersionStatus.QC_PROCESSING, age_minutes=60)
        make_version(VersionStatus.DRAFT)
        make_version(VersionStatus.QC_PASSED, age_minutes=90)

        inbox = service.inbox()

        assert [v.id for v in inbox] == [oldest.id, recent.id]

    def test_empty(self, service):
        assert service.inbox() == []

    def test_reads_need_an_existing_version(self, service):
        for read in (service.reports, service.history, service.attempt_count):
            with pytest.raises(VersionNotFoundError):
                read("missing")
