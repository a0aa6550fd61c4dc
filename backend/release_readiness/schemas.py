"""
Pydantic data contracts for the Release Readiness engine.

Records (checklist items, runs, gates) mirror the persisted shapes; patch
models carry partial updates and expose exactly which fields were supplied.
JSON payloads use camelCase keys while Python code uses snake_case.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Dict, FrozenSet, List, Mapping, Optional, TypeVar

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SerializerFunctionWrapHandler,
    ValidationError,
    field_validator,
    model_serializer,
)
from pydantic.alias_generators import to_camel

from .normalization import as_number, normalize_weight


class GateStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    PASS = "pass"
    FAIL = "fail"
    WAIVED = "waived"


class RunStatus(str, Enum):
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    BLOCKED = "blocked"
    READY = "ready"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ReleaseModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


# ---------------------------------------------------------------------
# Success criteria and reported metrics
# ---------------------------------------------------------------------

class SuccessCriteria(ReleaseModel):
    """Thresholds a gate's metrics are checked against.

    Unknown keys are kept as passthrough extras; thresholds that are not
    numeric are treated as not configured.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    min_coverage: Optional[float] = None
    max_failure_rate: Optional[float] = None
    max_critical_vulnerabilities: Optional[float] = None
    max_high_vulnerabilities: Optional[float] = None
    max_open_incidents: Optional[float] = None
    max_error_rate: Optional[float] = None
    change_review_required: Optional[bool] = None
    freeze_window_check: Optional[bool] = None
    required_evidence: Optional[List[str]] = None

    @field_validator(
        "min_coverage",
        "max_failure_rate",
        "max_critical_vulnerabilities",
        "max_high_vulnerabilities",
        "max_open_incidents",
        "max_error_rate",
        mode="before",
    )
    @classmethod
    def _coerce_threshold(cls, value: Any) -> Optional[float]:
        return as_number(value)

    @field_validator("change_review_required", "freeze_window_check", mode="before")
    @classmethod
    def _coerce_flag(cls, value: Any) -> Optional[bool]:
        return None if value is None else bool(value)

    @field_validator("required_evidence", mode="before")
    @classmethod
    def _coerce_evidence(cls, value: Any) -> Optional[List[str]]:
        if value is None:
            return None
        if not isinstance(value, (list, tuple)):
            return []
        return [str(label) for label in value if label is not None]

    @model_serializer(mode="wrap")
    def _drop_unconfigured(self, handler: SerializerFunctionWrapHandler) -> Dict[str, Any]:
        return {key: value for key, value in handler(self).items() if value is not None}

    @classmethod
    def from_raw(cls, raw: Any) -> "SuccessCriteria":
        if isinstance(raw, SuccessCriteria):
            return raw
        if not isinstance(raw, Mapping):
            return cls()
        try:
            return cls.model_validate(dict(raw))
        except ValidationError:
            return cls()


class GateMetrics(BaseModel):
    """Typed view over the well-known keys of a gate's reported metrics."""

    model_config = ConfigDict(extra="allow")

    coverage: Optional[float] = None
    failure_rate: Optional[float] = None
    critical_vulnerabilities: Optional[float] = None
    high_vulnerabilities: Optional[float] = None
    open_incidents: Optional[float] = None
    error_rate: Optional[float] = None
    change_review_completed: bool = False
    freeze_window_bypassed: bool = False
    evidence: List[str] = Field(default_factory=list)

    @staticmethod
    def _first_number(*candidates: Any) -> Optional[float]:
        for candidate in candidates:
            number = as_number(candidate)
            if number is not None:
                return number
        return None

    @classmethod
    def from_raw(cls, raw: Any) -> "GateMetrics":
        metrics = dict(raw) if isinstance(raw, Mapping) else {}
        vulnerabilities = metrics.get("vulnerabilities")
        if not isinstance(vulnerabilities, Mapping):
            vulnerabilities = {}
        evidence = metrics.get("evidence")
        known = {
            "coverage": cls._first_number(metrics.get("coverage"), metrics.get("testCoverage")),
            "failure_rate": cls._first_number(metrics.get("testFailureRate"), metrics.get("failureRate")),
            "critical_vulnerabilities": cls._first_number(
                metrics.get("criticalVulnerabilities"), vulnerabilities.get("critical")
            ),
            "high_vulnerabilities": cls._first_number(
                metrics.get("highVulnerabilities"), vulnerabilities.get("high")
            ),
            "open_incidents": cls._first_number(metrics.get("openIncidents"), metrics.get("activeIncidents")),
            "error_rate": cls._first_number(metrics.get("errorRate"), metrics.get("apmErrorRate")),
            "change_review_completed": bool(metrics.get("changeReviewCompleted")),
            "freeze_window_bypassed": bool(metrics.get("freezeWindowBypassed")),
            "evidence": [str(label) for label in evidence] if isinstance(evidence, list) else [],
        }
        extras = {key: value for key, value in metrics.items() if key not in known}
        return cls.model_validate({**extras, **known})


# ---------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------

class ChecklistItem(ReleaseModel):
    id: Optional[int] = None
    public_id: Optional[str] = None
    slug: str
    category: str = "quality"
    title: str
    description: str = ""
    auto_evaluated: bool = False
    weight: int = 1
    default_owner_email: Optional[str] = None
    success_criteria: SuccessCriteria = Field(default_factory=SuccessCriteria)

    @field_validator("weight", mode="before")
    @classmethod
    def _normalize_weight(cls, value: Any) -> int:
        return normalize_weight(value)

    @field_validator("success_criteria", mode="before")
    @classmethod
    def _parse_criteria(cls, value: Any) -> SuccessCriteria:
        return SuccessCriteria.from_raw(value)


def _to_utc(value: Any) -> Any:
    """Aware datetimes are stored as UTC; naive ones are already read as UTC."""
    if isinstance(value, datetime) and value.tzinfo is not None:
        return value.astimezone(timezone.utc)
    return value


class ReleaseRun(ReleaseModel):
    id: Optional[int] = None
    public_id: str
    version_tag: str
    environment: str = "production"
    status: RunStatus = RunStatus.SCHEDULED
    initiated_by_email: str
    initiated_by_name: Optional[str] = None
    scheduled_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    change_window_start: Optional[datetime] = None
    change_window_end: Optional[datetime] = None
    summary_notes: Optional[str] = None
    checklist_snapshot: List[ChecklistItem] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator(
        "scheduled_at", "started_at", "completed_at", "change_window_start", "change_window_end", mode="after"
    )
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _to_utc(value)

    def snapshot_for(self, gate_key: str) -> Optional[ChecklistItem]:
        for item in self.checklist_snapshot:
            if item.slug == gate_key:
                return item
        return None


class GateResult(ReleaseModel):
    id: Optional[int] = None
    public_id: Optional[str] = None
    run_id: int
    checklist_item_id: Optional[int] = None
    gate_key: str
    status: GateStatus = GateStatus.PENDING
    owner_email: Optional[str] = None
    metrics: Dict[str, Any] = Field(default_factory=dict)
    notes: Optional[str] = None
    evidence_url: Optional[str] = None
    last_evaluated_at: Optional[datetime] = None


class GateWithSnapshot(GateResult):
    snapshot: Optional[ChecklistItem] = None


# ---------------------------------------------------------------------
# Patches
# ---------------------------------------------------------------------

RecordT = TypeVar("RecordT", bound=BaseModel)


class RecordPatch(ReleaseModel):
    """Partial update: only fields explicitly supplied are applied.

    Fields listed in ``NON_NULLABLE`` ignore an explicit ``None`` so a
    patch can never blank out a required column.
    """

    NON_NULLABLE: ClassVar[FrozenSet[str]] = frozenset()

    def changes(self) -> Dict[str, Any]:
        supplied: Dict[str, Any] = {}
        for name in self.model_fields_set:
            value = getattr(self, name)
            if value is None and name in self.NON_NULLABLE:
                continue
            supplied[name] = value
        return supplied

    def apply_to(self, record: RecordT) -> RecordT:
        return record.model_copy(update=self.changes())


class ChecklistItemPatch(RecordPatch):
    NON_NULLABLE: ClassVar[FrozenSet[str]] = frozenset(
        {"category", "title", "description", "auto_evaluated", "weight", "success_criteria"}
    )

    category: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    auto_evaluated: Optional[bool] = None
    weight: Optional[int] = None
    default_owner_email: Optional[str] = None
    success_criteria: Optional[SuccessCriteria] = None

    @field_validator("weight", mode="before")
    @classmethod
    def _normalize_weight(cls, value: Any) -> Optional[int]:
        return None if value is None else normalize_weight(value)

    @field_validator("success_criteria", mode="before")
    @classmethod
    def _parse_criteria(cls, value: Any) -> Optional[SuccessCriteria]:
        return None if value is None else SuccessCriteria.from_raw(value)


class ReleaseRunPatch(RecordPatch):
    NON_NULLABLE: ClassVar[FrozenSet[str]] = frozenset({"status", "metadata"})

    status: Optional[RunStatus] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    summary_notes: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    @field_validator("started_at", "completed_at", mode="after")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _to_utc(value)


class GateResultPatch(RecordPatch):
    NON_NULLABLE: ClassVar[FrozenSet[str]] = frozenset({"status", "metrics"})

    status: Optional[GateStatus] = None
    owner_email: Optional[str] = None
    metrics: Optional[Dict[str, Any]] = None
    notes: Optional[str] = None
    evidence_url: Optional[str] = None
    last_evaluated_at: Optional[datetime] = None


# ---------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------

class GateSeed(ReleaseModel):
    status: Optional[GateStatus] = None
    owner_email: Optional[str] = None
    metrics: Optional[Dict[str, Any]] = None
    notes: Optional[str] = None
    last_evaluated_at: Optional[datetime] = None


class ScheduleRunRequest(ReleaseModel):
    version_tag: Optional[str] = None
    initiated_by_email: Optional[str] = None
    environment: Optional[str] = None
    initiated_by_name: Optional[str] = None
    scheduled_at: Optional[datetime] = None
    change_window_start: Optional[datetime] = None
    change_window_end: Optional[datetime] = None
    summary_notes: Optional[str] = None
    change_ticket: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    initial_gates: Dict[str, GateSeed] = Field(default_factory=dict)

    @field_validator("scheduled_at", "change_window_start", "change_window_end", mode="after")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _to_utc(value)


class Pagination(ReleaseModel):
    limit: int = Field(default=25, ge=1, le=200)
    offset: int = Field(default=0, ge=0)


def _as_list(value: Any) -> Any:
    if value is None or isinstance(value, (list, tuple, set, frozenset)):
        return value
    return [value]


class ChecklistFilters(ReleaseModel):
    category: Optional[List[str]] = None

    @field_validator("category", mode="before")
    @classmethod
    def _listify(cls, value: Any) -> Any:
        return _as_list(value)


class RunFilters(ReleaseModel):
    environment: Optional[List[str]] = None
    status: Optional[List[RunStatus]] = None
    version_tag: Optional[str] = None

    @field_validator("environment", "status", mode="before")
    @classmethod
    def _listify(cls, value: Any) -> Any:
        return _as_list(value)


# ---------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------

class ChecklistPage(ReleaseModel):
    items: List[ChecklistItem]
    total: int


class RunPage(ReleaseModel):
    items: List[ReleaseRun]
    total: int


class ChecklistListing(ChecklistPage):
    thresholds: Dict[str, Any] = Field(default_factory=dict)
    required_gates: List[str] = Field(default_factory=list)


class ScheduledRun(ReleaseModel):
    run: ReleaseRun
    gates: List[GateResult]


class RunDetail(ReleaseModel):
    run: ReleaseRun
    gates: List[GateWithSnapshot]


class BlockingGate(ReleaseModel):
    gate_key: str
    status: GateStatus
    owner_email: Optional[str] = None
    notes: Optional[str] = None


class RunEvaluation(ReleaseModel):
    run: ReleaseRun
    readiness_score: int
    blocking_gates: List[BlockingGate]
    gates: List[GateWithSnapshot]
    required_gates: List[str]
    recommended_status: RunStatus


class UpcomingRun(ReleaseModel):
    public_id: str
    version_tag: str
    environment: str
    status: RunStatus
    change_window_start: Optional[datetime] = None
    change_window_end: Optional[datetime] = None
    readiness_score: Optional[int] = None


class ReleaseDashboard(ReleaseModel):
    breakdown: Dict[str, int]
    upcoming: List[UpcomingRun]
    recent: List[ReleaseRun]
    required_gates: List[str]
