from datetime import datetime, timedelta, timezone

from release_readiness.criteria import CriteriaEvaluator, Finding, Severity, combine
from release_readiness.schemas import GateMetrics, GateStatus, ReleaseRun, SuccessCriteria


evaluator = CriteriaEvaluator()


def _run(start=None, end=None):
    return ReleaseRun(
        public_id="run-1",
        version_tag="v1",
        initiated_by_email="ops@example.com",
        change_window_start=start,
        change_window_end=end,
    )


def test_severity_precedence():
    assert combine([]) is Severity.PASS
    assert combine([Finding(Severity.IN_PROGRESS, "a"), Finding(Severity.PASS, "b")]) is Severity.IN_PROGRESS
    assert combine([Finding(Severity.IN_PROGRESS, "a"), Finding(Severity.FAIL, "b")]) is Severity.FAIL
    assert Severity.FAIL.gate_status is GateStatus.FAIL


def test_no_criteria_passes():
    result = evaluator.evaluate({"coverage": 0.1}, {})
    assert result.status is GateStatus.PASS
    assert result.reasons == []


def test_missing_coverage_is_in_progress():
    result = evaluator.evaluate({}, {"minCoverage": 0.9})
    assert result.status is GateStatus.IN_PROGRESS
    assert result.reasons == ["Awaiting coverage metrics from CI."]


def test_coverage_below_threshold_fails():
    result = evaluator.evaluate({"testCoverage": 0.5}, {"minCoverage": 0.9})
    assert result.status is GateStatus.FAIL
    assert "below the required" in result.reasons[0]


def test_zero_coverage_counts_as_reported():
    result = evaluator.evaluate({"coverage": 0}, {"minCoverage": 0.8})
    assert result.status is GateStatus.FAIL


def test_coverage_meeting_threshold_passes():
    assert evaluator.evaluate({"coverage": 0.95}, {"minCoverage": 0.9}).status is GateStatus.PASS


def test_failure_rate_aliases():
    assert evaluator.evaluate({"failureRate": 0.05}, {"maxFailureRate": 0.02}).status is GateStatus.FAIL
    assert evaluator.evaluate({"testFailureRate": 0.01}, {"maxFailureRate": 0.02}).status is GateStatus.PASS
    assert evaluator.evaluate({}, {"maxFailureRate": 0.02}).status is GateStatus.IN_PROGRESS


def test_vulnerability_rules():
    criteria = {"maxCriticalVulnerabilities": 0, "maxHighVulnerabilities": 2}
    assert evaluator.evaluate({}, criteria).status is GateStatus.IN_PROGRESS
    assert evaluator.evaluate({"vulnerabilities": {"critical": 1}}, criteria).status is GateStatus.FAIL
    assert evaluator.evaluate({"criticalVulnerabilities": 0, "highVulnerabilities": 3}, criteria).status is GateStatus.FAIL
    assert evaluator.evaluate({"criticalVulnerabilities": 0}, criteria).status is GateStatus.PASS


def test_open_incidents():
    assert evaluator.evaluate({}, {"maxOpenIncidents": 0}).status is GateStatus.IN_PROGRESS
    result = evaluator.evaluate({"activeIncidents": 2}, {"maxOpenIncidents": 0})
    assert result.status is GateStatus.FAIL
    assert result.reasons == ["There are 2 open incidents. Resolve incidents before proceeding."]


def test_missing_error_rate_is_not_penalized():
    assert evaluator.evaluate({}, {"maxErrorRate": 0.01}).status is GateStatus.PASS
    assert evaluator.evaluate({"apmErrorRate": 0.02}, {"maxErrorRate": 0.01}).status is GateStatus.FAIL


def test_error_rate_failure_overrides_passing_rules():
    result = evaluator.evaluate(
        {"coverage": 0.99, "errorRate": 0.05},
        {"minCoverage": 0.8, "maxErrorRate": 0.01},
    )
    assert result.status is GateStatus.FAIL
    assert len(result.reasons) == 1


def test_fail_beats_in_progress_and_reasons_accumulate():
    result = evaluator.evaluate(
        {"coverage": 0.5},
        {"minCoverage": 0.9, "maxFailureRate": 0.02, "requiredEvidence": ["load-test"]},
    )
    assert result.status is GateStatus.FAIL
    assert len(result.reasons) == 3
    assert result.reasons[-1] == "Evidence missing: load-test."


def test_change_review():
    assert evaluator.evaluate({}, {"changeReviewRequired": True}).status is GateStatus.FAIL
    assert evaluator.evaluate({"changeReviewCompleted": True}, {"changeReviewRequired": True}).status is GateStatus.PASS


def test_freeze_window():
    now = datetime.now(timezone.utc)
    criteria = {"freezeWindowCheck": True}
    assert evaluator.evaluate({"freezeWindowBypassed": True}, criteria, _run()).status is GateStatus.FAIL
    assert evaluator.evaluate({}, criteria, _run(now, now - timedelta(hours=1))).status is GateStatus.FAIL
    assert evaluator.evaluate({}, criteria, _run(now, now + timedelta(hours=1))).status is GateStatus.PASS
    assert evaluator.evaluate({}, criteria).status is GateStatus.PASS


def test_required_evidence_never_fails_on_its_own():
    criteria = {"requiredEvidence": ["load-test", "sign-off"]}
    result = evaluator.evaluate({"evidence": ["sign-off"]}, criteria)
    assert result.status is GateStatus.IN_PROGRESS
    assert result.reasons == ["Evidence missing: load-test."]
    assert evaluator.evaluate({"evidence": ["sign-off", "load-test"]}, criteria).status is GateStatus.PASS


def test_non_numeric_thresholds_are_not_configured():
    criteria = SuccessCriteria.from_raw({"minCoverage": "high", "notes": "kept"})
    assert criteria.min_coverage is None
    assert criteria.to_payload() == {"notes": "kept"}
    assert evaluator.evaluate({}, {"minCoverage": "high"}).status is GateStatus.PASS


def test_corrupt_inputs_degrade_to_nothing_configured():
    assert evaluator.evaluate("garbage", "garbage").status is GateStatus.PASS
    metrics = GateMetrics.from_raw({"coverage": "n/a", "custom": 1})
    assert metrics.coverage is None
    assert metrics.model_extra == {"custom": 1}
