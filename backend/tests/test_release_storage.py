from database.models import ReleaseGateResult, ReleaseRun
from database.release_storage import DatabaseGateResultStore, DatabaseReleaseRunStore
from release_readiness.schemas import GateResultPatch, GateStatus, RunStatus, ScheduleRunRequest

from .conftest import add_checklist_item


def _scheduled_run(orchestrator):
    add_checklist_item(orchestrator, "coverage", weight=2, criteria={"minCoverage": 0.9})
    return orchestrator.schedule_release_run(
        ScheduleRunRequest(version_tag="v1", initiated_by_email="ops@example.com")
    ).run


def test_upsert_never_duplicates_rows(db_session, orchestrator):
    run = _scheduled_run(orchestrator)
    store = DatabaseGateResultStore(db_session)

    store.upsert_by_run_and_gate(run.id, "coverage", GateResultPatch(status=GateStatus.IN_PROGRESS, notes="first"))
    store.upsert_by_run_and_gate(run.id, "coverage", GateResultPatch(evidence_url="https://ci.example.com/42"))
    last = store.upsert_by_run_and_gate(run.id, "coverage", GateResultPatch(status=GateStatus.FAIL))

    rows = db_session.query(ReleaseGateResult).filter(ReleaseGateResult.run_id == run.id).all()
    assert len(rows) == 1
    assert last.status is GateStatus.FAIL
    assert last.notes == "first"
    assert last.evidence_url == "https://ci.example.com/42"


def test_upsert_inserts_new_gate_with_defaults(db_session, orchestrator):
    run = _scheduled_run(orchestrator)
    store = DatabaseGateResultStore(db_session)

    gate = store.upsert_by_run_and_gate(run.id, "extra", GateResultPatch())
    assert gate.status is GateStatus.PENDING
    assert gate.metrics == {}
    assert gate.public_id
    assert [item.gate_key for item in store.list_by_run_id(run.id)] == ["coverage", "extra"]


def test_status_breakdown_is_zero_filled(db_session, orchestrator):
    _scheduled_run(orchestrator)
    breakdown = DatabaseReleaseRunStore(db_session).get_status_breakdown()
    assert breakdown == {status.value: (1 if status is RunStatus.SCHEDULED else 0) for status in RunStatus}
    assert DatabaseReleaseRunStore(db_session).get_status_breakdown("staging")["scheduled"] == 0


def test_corrupt_stored_json_degrades_gracefully(db_session, orchestrator):
    run = _scheduled_run(orchestrator)
    db_session.query(ReleaseGateResult).filter(ReleaseGateResult.run_id == run.id).update({ReleaseGateResult.metrics: "{oops"})
    db_session.query(ReleaseRun).filter(ReleaseRun.id == run.id).update({ReleaseRun.metadata_json: "not json"})
    db_session.flush()
    db_session.expire_all()

    detail = orchestrator.get_run(run.public_id)
    assert detail.run.metadata == {}
    assert detail.gates[0].metrics == {}

    evaluation = orchestrator.evaluate_run(run.public_id)
    assert evaluation.required_gates == []
    assert evaluation.gates[0].status is GateStatus.PENDING


def test_corrupt_snapshot_drops_gates_from_scoring(db_session, orchestrator):
    run = _scheduled_run(orchestrator)
    db_session.query(ReleaseRun).filter(ReleaseRun.id == run.id).update({ReleaseRun.checklist_snapshot: "[{]"})
    db_session.flush()
    db_session.expire_all()

    evaluation = orchestrator.evaluate_run(run.public_id)
    assert evaluation.gates == []
    assert evaluation.readiness_score == 0
    assert evaluation.recommended_status is RunStatus.READY
