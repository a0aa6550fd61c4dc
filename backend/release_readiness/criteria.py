"""
Automatic gate evaluation against a checklist item's success criteria.

Every rule runs independently and reports a finding; the gate outcome is the
most severe finding (fail > in_progress > pass) and all reasons are kept.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import IntEnum
from typing import Any, Callable, List, Mapping, NamedTuple, Optional

from .schemas import GateMetrics, GateStatus, ReleaseRun, SuccessCriteria


class Severity(IntEnum):
    """Ordered outcome of a single rule; higher values win."""

    PASS = 0
    IN_PROGRESS = 1
    FAIL = 2

    @property
    def gate_status(self) -> GateStatus:
        return _SEVERITY_STATUS[self]


_SEVERITY_STATUS = {
    Severity.PASS: GateStatus.PASS,
    Severity.IN_PROGRESS: GateStatus.IN_PROGRESS,
    Severity.FAIL: GateStatus.FAIL,
}


class Finding(NamedTuple):
    severity: Severity
    reason: str


@dataclass
class CriteriaEvaluation:
    status: GateStatus
    reasons: List[str] = field(default_factory=list)
    severity: Severity = Severity.PASS


def combine(findings: List[Finding]) -> Severity:
    return max((finding.severity for finding in findings), default=Severity.PASS)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _pct(value: float) -> str:
    return f"{value * 100:.2f}%"


def _count(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


Rule = Callable[[GateMetrics, SuccessCriteria, Optional[ReleaseRun]], Optional[Finding]]


def check_coverage(metrics: GateMetrics, criteria: SuccessCriteria, run=None) -> Optional[Finding]:
    if criteria.min_coverage is None:
        return None
    if metrics.coverage is None:
        return Finding(Severity.IN_PROGRESS, "Awaiting coverage metrics from CI.")
    if metrics.coverage < criteria.min_coverage:
        return Finding(
            Severity.FAIL,
            f"Test coverage {_pct(metrics.coverage)} is below the required {_pct(criteria.min_coverage)}.",
        )
    return None


def check_failure_rate(metrics: GateMetrics, criteria: SuccessCriteria, run=None) -> Optional[Finding]:
    if criteria.max_failure_rate is None:
        return None
    if metrics.failure_rate is None:
        return Finding(Severity.IN_PROGRESS, "Test failure rate has not been reported.")
    if metrics.failure_rate > criteria.max_failure_rate:
        return Finding(
            Severity.FAIL,
            f"Test failure rate {_pct(metrics.failure_rate)} exceeds {_pct(criteria.max_failure_rate)}.",
        )
    return None


def check_critical_vulnerabilities(metrics: GateMetrics, criteria: SuccessCriteria, run=None) -> Optional[Finding]:
    if criteria.max_critical_vulnerabilities is None:
        return None
    if metrics.critical_vulnerabilities is None:
        return Finding(Severity.IN_PROGRESS, "Security scan results have not been ingested.")
    if metrics.critical_vulnerabilities > criteria.max_critical_vulnerabilities:
        return Finding(
            Severity.FAIL,
            f"Critical vulnerabilities ({_count(metrics.critical_vulnerabilities)}) must be "
            f"{_count(criteria.max_critical_vulnerabilities)} or lower.",
        )
    return None


def check_high_vulnerabilities(metrics: GateMetrics, criteria: SuccessCriteria, run=None) -> Optional[Finding]:
    if criteria.max_high_vulnerabilities is None or metrics.high_vulnerabilities is None:
        return None
    if metrics.high_vulnerabilities > criteria.max_high_vulnerabilities:
        return Finding(
            Severity.FAIL,
            f"High vulnerabilities ({_count(metrics.high_vulnerabilities)}) exceed the limit of "
            f"{_count(criteria.max_high_vulnerabilities)}.",
        )
    return None


def check_open_incidents(metrics: GateMetrics, criteria: SuccessCriteria, run=None) -> Optional[Finding]:
    if criteria.max_open_incidents is None:
        return None
    if metrics.open_incidents is None:
        return Finding(Severity.IN_PROGRESS, "Incident status metrics are still processing.")
    if metrics.open_incidents > criteria.max_open_incidents:
        return Finding(
            Severity.FAIL,
            f"There are {_count(metrics.open_incidents)} open incidents. Resolve incidents before proceeding.",
        )
    return None


def check_error_rate(metrics: GateMetrics, criteria: SuccessCriteria, run=None) -> Optional[Finding]:
    if criteria.max_error_rate is None or metrics.error_rate is None:
        return None
    if metrics.error_rate > criteria.max_error_rate:
        return Finding(
            Severity.FAIL,
            f"APM error rate {_pct(metrics.error_rate)} is above {_pct(criteria.max_error_rate)}.",
        )
    return None


def check_change_review(metrics: GateMetrics, criteria: SuccessCriteria, run=None) -> Optional[Finding]:
    if criteria.change_review_required and not metrics.change_review_completed:
        return Finding(Severity.FAIL, "Change review has not been approved by the release manager.")
    return None


def check_freeze_window(
    metrics: GateMetrics, criteria: SuccessCriteria, run: Optional[ReleaseRun] = None
) -> Optional[Finding]:
    if not criteria.freeze_window_check:
        return None
    if metrics.freeze_window_bypassed:
        return Finding(Severity.FAIL, "Deployment attempts to bypass an active freeze window.")
    start = _as_utc(run.change_window_start) if run else None
    end = _as_utc(run.change_window_end) if run else None
    if start is not None and end is not None and start >= end:
        return Finding(Severity.FAIL, "Change window start must be before the end time.")
    return None


def check_required_evidence(metrics: GateMetrics, criteria: SuccessCriteria, run=None) -> Optional[Finding]:
    if not criteria.required_evidence:
        return None
    provided = set(metrics.evidence)
    missing = [label for label in criteria.required_evidence if label not in provided]
    if missing:
        return Finding(Severity.IN_PROGRESS, f"Evidence missing: {', '.join(missing)}.")
    return None


DEFAULT_RULES: List[Rule] = [
    check_coverage,
    check_failure_rate,
    check_critical_vulnerabilities,
    check_high_vulnerabilities,
    check_open_incidents,
    check_error_rate,
    check_change_review,
    check_freeze_window,
    check_required_evidence,
]


class CriteriaEvaluator:
    """Derives a gate status from reported metrics and the snapshot's success criteria."""

    def __init__(self, rules: Optional[List[Rule]] = None) -> None:
        self.rules = list(rules) if rules is not None else list(DEFAULT_RULES)

    def evaluate(
        self,
        metrics: Optional[Mapping[str, Any]],
        criteria: Any,
        run: Optional[ReleaseRun] = None,
    ) -> CriteriaEvaluation:
        observed = GateMetrics.from_raw(metrics)
        parsed = SuccessCriteria.from_raw(criteria)

        findings: List[Finding] = []
        for rule in self.rules:
            finding = rule(observed, parsed, run)
            if finding is not None:
                findings.append(finding)

        severity = combine(findings)
        return CriteriaEvaluation(
            status=severity.gate_status,
            reasons=[finding.reason for finding in findings],
            severity=severity,
        )
