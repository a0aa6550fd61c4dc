"""
Orchestrates release readiness for scheduled runs.
Performs checklist snapshotting, gate recording, automatic evaluation, scoring, and gating.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from .config import DASHBOARD_RECENT_LIMIT, DASHBOARD_UPCOMING_LIMIT, ReleaseReadinessConfig
from .criteria import CriteriaEvaluator
from .errors import ReleaseValidationError
from .normalization import normalize_email, normalize_version_tag, sanitize_environment
from .release_gate import ReleaseGate
from .schemas import (
    ChecklistFilters,
    ChecklistItem,
    ChecklistItemPatch,
    ChecklistListing,
    GateResult,
    GateResultPatch,
    GateStatus,
    GateWithSnapshot,
    Pagination,
    ReleaseDashboard,
    ReleaseRun,
    ReleaseRunPatch,
    RunDetail,
    RunEvaluation,
    RunFilters,
    RunPage,
    RunStatus,
    ScheduledRun,
    ScheduleRunRequest,
    UpcomingRun,
)
from .scoring import ReadinessScorer
from .stores import ChecklistStore, GateResultStore, MetricsSink, ReleaseRunStore

logger = logging.getLogger("release.orchestration")

AUTO_EVALUATED_STATUSES = frozenset({GateStatus.PENDING, GateStatus.IN_PROGRESS})


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _join_notes(previous: Optional[str], reasons: List[str]) -> str:
    joined = "\n".join(reasons)
    if previous and joined:
        return f"{previous}\n{joined}"
    return joined


class ReleaseOrchestrationEngine:
    """High-level orchestrator for release readiness decisions."""

    def __init__(
        self,
        checklist_store: ChecklistStore,
        run_store: ReleaseRunStore,
        gate_store: GateResultStore,
        metrics: Optional[MetricsSink] = None,
        config: Optional[ReleaseReadinessConfig] = None,
    ) -> None:
        self.checklist_store = checklist_store
        self.run_store = run_store
        self.gate_store = gate_store
        self.metrics = metrics
        self.config = config or ReleaseReadinessConfig()
        self.criteria_evaluator = CriteriaEvaluator()
        self.readiness_scorer = ReadinessScorer()
        self.release_gate = ReleaseGate()

    # -----------------------------------------------------------------
    # Metrics emission (fire-and-forget)
    # -----------------------------------------------------------------
    def _emit_gate(self, gate: GateResult, run: ReleaseRun) -> None:
        if self.metrics is None:
            return
        try:
            self.metrics.record_gate_evaluation(
                gate_key=gate.gate_key,
                status=GateStatus(gate.status).value,
                environment=run.environment,
                version_tag=run.version_tag,
            )
        except Exception:
            logger.warning("Failed to record gate evaluation metric for %s", gate.gate_key, exc_info=True)

    def _emit_run(self, run: ReleaseRun, status: RunStatus, readiness_score: int) -> None:
        if self.metrics is None:
            return
        try:
            self.metrics.record_run_status(
                status=RunStatus(status).value,
                environment=run.environment,
                version_tag=run.version_tag,
                readiness_score=readiness_score,
            )
        except Exception:
            logger.warning("Failed to record run status metric for %s", run.public_id, exc_info=True)

    # -----------------------------------------------------------------
    # Checklist catalog
    # -----------------------------------------------------------------
    def list_checklist(
        self,
        filters: Optional[ChecklistFilters] = None,
        pagination: Optional[Pagination] = None,
    ) -> ChecklistListing:
        page = self.checklist_store.list(filters or ChecklistFilters(), pagination or Pagination())
        return ChecklistListing(
            items=page.items,
            total=page.total,
            thresholds=self.config.thresholds_payload(),
            required_gates=self.config.sorted_required_gates(),
        )

    def create_checklist_item(self, item: ChecklistItem) -> ChecklistItem:
        slug = (item.slug or "").strip()
        title = (item.title or "").strip()
        if not slug:
            raise ReleaseValidationError("slug is required to create a checklist item.", field="slug")
        if not title:
            raise ReleaseValidationError("title is required to create a checklist item.", field="title")
        created = self.checklist_store.create(
            item.model_copy(
                update={
                    "id": None,
                    "public_id": item.public_id or str(uuid.uuid4()),
                    "slug": slug,
                    "title": title,
                    "default_owner_email": normalize_email(item.default_owner_email),
                }
            )
        )
        logger.info("Created release checklist item %s (weight=%s)", created.slug, created.weight)
        return created

    def update_checklist_item(self, slug: str, patch: ChecklistItemPatch) -> Optional[ChecklistItem]:
        return self.checklist_store.update_by_slug(slug.strip(), patch)

    # -----------------------------------------------------------------
    # Run lifecycle
    # -----------------------------------------------------------------
    def _snapshot_checklist(self) -> List[ChecklistItem]:
        page = self.checklist_store.list(
            ChecklistFilters(),
            Pagination(limit=self.config.snapshot_page_size, offset=0),
        )
        return [ChecklistItem.model_validate(item.model_dump()) for item in page.items]

    def schedule_release_run(self, request: ScheduleRunRequest) -> ScheduledRun:
        """
        Start a readiness run with a frozen checklist snapshot and one pending gate per item.

        Raises ReleaseValidationError before any write when the version tag or the
        initiating email is missing.
        """
        version_tag = normalize_version_tag(request.version_tag)
        environment = sanitize_environment(request.environment)
        initiated_by_email = normalize_email(request.initiated_by_email)
        if not version_tag:
            raise ReleaseValidationError("versionTag is required to schedule a release run.", field="versionTag")
        if not initiated_by_email:
            raise ReleaseValidationError(
                "initiatedByEmail is required to schedule a release run.", field="initiatedByEmail"
            )

        now = _utc_now()
        snapshot = self._snapshot_checklist()
        required_gates = self.config.sorted_required_gates() or list(
            dict.fromkeys(item.slug for item in snapshot)
        )
        metadata = {
            **request.metadata,
            "requiredGates": required_gates,
            "thresholds": self.config.thresholds_payload(),
            "createdBy": initiated_by_email,
            "createdAt": now.isoformat(),
            "changeTicket": request.change_ticket,
        }

        run = self.run_store.create(
            ReleaseRun(
                public_id=str(uuid.uuid4()),
                version_tag=version_tag,
                environment=environment,
                status=RunStatus.SCHEDULED,
                initiated_by_email=initiated_by_email,
                initiated_by_name=request.initiated_by_name,
                scheduled_at=request.scheduled_at or now,
                change_window_start=request.change_window_start,
                change_window_end=request.change_window_end,
                summary_notes=request.summary_notes,
                checklist_snapshot=snapshot,
                metadata=metadata,
            )
        )
        logger.info(
            "Scheduled release readiness run %s (version=%s environment=%s initiated_by=%s gates=%s)",
            run.public_id,
            version_tag,
            environment,
            initiated_by_email,
            len(snapshot),
        )

        created_gates: List[GateResult] = []
        for item in snapshot:
            seed = request.initial_gates.get(item.slug)
            gate = self.gate_store.create(
                GateResult(
                    public_id=str(uuid.uuid4()),
                    run_id=run.id,
                    checklist_item_id=item.id,
                    gate_key=item.slug,
                    status=(seed.status if seed and seed.status else GateStatus.PENDING),
                    owner_email=(
                        (seed.owner_email if seed else None)
                        or item.default_owner_email
                        or initiated_by_email
                    ),
                    metrics=(seed.metrics if seed and seed.metrics is not None else {}),
                    notes=seed.notes if seed else None,
                    last_evaluated_at=seed.last_evaluated_at if seed else None,
                )
            )
            created_gates.append(gate)
            self._emit_gate(gate, run)

        self._emit_run(run, RunStatus.SCHEDULED, 0)
        return ScheduledRun(run=run, gates=created_gates)

    def list_runs(self, filters: Optional[RunFilters] = None, pagination: Optional[Pagination] = None) -> RunPage:
        filters = filters or RunFilters()
        if filters.environment:
            filters = filters.model_copy(
                update={"environment": [sanitize_environment(env) for env in filters.environment]}
            )
        if filters.version_tag:
            filters = filters.model_copy(update={"version_tag": normalize_version_tag(filters.version_tag)})
        return self.run_store.list(filters, pagination or Pagination())

    def _gates_with_snapshot(self, run: ReleaseRun) -> List[GateWithSnapshot]:
        return [
            GateWithSnapshot(**gate.model_dump(), snapshot=run.snapshot_for(gate.gate_key))
            for gate in self.gate_store.list_by_run_id(run.id)
        ]

    def get_run(self, public_id: str) -> Optional[RunDetail]:
        run = self.run_store.find_by_public_id(public_id)
        if run is None:
            return None
        return RunDetail(run=run, gates=self._gates_with_snapshot(run))

    # -----------------------------------------------------------------
    # Gate evaluation
    # -----------------------------------------------------------------
    def record_gate_evaluation(
        self, public_id: str, gate_key: str, patch: GateResultPatch
    ) -> Optional[GateResult]:
        """Upsert one gate's reported result; returns None when the run does not exist."""
        run = self.run_store.find_by_public_id(public_id)
        if run is None:
            return None

        normalized_key = str(gate_key).strip()
        if patch.last_evaluated_at is None:
            updates = patch.changes()
            updates["last_evaluated_at"] = _utc_now()
            patch = GateResultPatch(**updates)

        gate = self.gate_store.upsert_by_run_and_gate(run.id, normalized_key, patch)
        logger.info(
            "Recorded release gate evaluation run=%s gate=%s status=%s",
            run.public_id,
            gate.gate_key,
            GateStatus(gate.status).value,
        )
        self._emit_gate(gate, run)
        return gate

    def _auto_evaluate(self, run: ReleaseRun, gate: GateWithSnapshot) -> GateWithSnapshot:
        snapshot = gate.snapshot
        if snapshot is None or not snapshot.auto_evaluated or gate.status not in AUTO_EVALUATED_STATUSES:
            return gate

        evaluation = self.criteria_evaluator.evaluate(gate.metrics, snapshot.success_criteria, run)
        derived = evaluation.status
        if gate.status == GateStatus.PENDING and not gate.metrics and derived == GateStatus.IN_PROGRESS:
            # nothing reported yet: stay pending until the first metrics arrive
            return gate
        if derived == gate.status:
            return gate

        patch = GateResultPatch(
            status=derived,
            notes=_join_notes(gate.notes, evaluation.reasons),
            last_evaluated_at=_utc_now(),
        )
        updated = self.gate_store.upsert_by_run_and_gate(run.id, gate.gate_key, patch)
        self._emit_gate(updated, run)
        return patch.apply_to(gate)

    def _required_gates(self, run: ReleaseRun) -> List[str]:
        stored = run.metadata.get("requiredGates")
        if isinstance(stored, (list, tuple)):
            return [str(gate) for gate in stored]
        return self.config.sorted_required_gates()

    def evaluate_run(self, public_id: str) -> Optional[RunEvaluation]:
        """
        Re-evaluate a run and persist its recommended status.

        1. Re-score auto-evaluated gates that are still pending or in progress.
        2. Compute the weighted readiness score.
        3. Collect required gates that fail or are pending.
        4. Recommend blocked / in_progress / ready.
        5. Store status and score on the run and emit a run-status metric.
        """
        run = self.run_store.find_by_public_id(public_id)
        if run is None:
            return None

        gates = [
            self._auto_evaluate(run, gate)
            for gate in self._gates_with_snapshot(run)
            if gate.snapshot is not None
        ]

        readiness_score = self.readiness_scorer.calculate(gates)
        required_gates = self._required_gates(run)
        blocking_gates = self.release_gate.blocking_gates(gates, set(required_gates))
        recommended_status = self.release_gate.recommend(gates, blocking_gates)

        updated_run = self.run_store.update_by_public_id(
            run.public_id,
            ReleaseRunPatch(
                status=recommended_status,
                metadata={
                    **run.metadata,
                    "readinessScore": readiness_score,
                    "evaluatedAt": _utc_now().isoformat(),
                },
            ),
        )
        logger.info(
            "Evaluated release readiness run %s status=%s score=%s blocking=%s",
            updated_run.public_id,
            recommended_status.value,
            readiness_score,
            len(blocking_gates),
        )
        self._emit_run(updated_run, recommended_status, readiness_score)

        return RunEvaluation(
            run=updated_run,
            readiness_score=readiness_score,
            blocking_gates=blocking_gates,
            gates=gates,
            required_gates=required_gates,
            recommended_status=recommended_status,
        )

    # -----------------------------------------------------------------
    # Dashboard
    # -----------------------------------------------------------------
    def get_dashboard(self, environment: Optional[str] = None) -> ReleaseDashboard:
        env = sanitize_environment(environment) if environment else None
        environments = [env] if env else None

        breakdown = self.run_store.get_status_breakdown(env)
        upcoming_page = self.run_store.list(
            RunFilters(environment=environments, status=[RunStatus.SCHEDULED, RunStatus.IN_PROGRESS]),
            Pagination(limit=DASHBOARD_UPCOMING_LIMIT, offset=0),
        )
        recent_page = self.run_store.list(
            RunFilters(environment=environments),
            Pagination(limit=DASHBOARD_RECENT_LIMIT, offset=0),
        )

        upcoming = []
        for run in upcoming_page.items:
            score = run.metadata.get("readinessScore")
            upcoming.append(
                UpcomingRun(
                    public_id=run.public_id,
                    version_tag=run.version_tag,
                    environment=run.environment,
                    status=run.status,
                    change_window_start=run.change_window_start,
                    change_window_end=run.change_window_end,
                    readiness_score=score if isinstance(score, int) and not isinstance(score, bool) else None,
                )
            )

        return ReleaseDashboard(
            breakdown=breakdown,
            upcoming=upcoming,
            recent=recent_page.items,
            required_gates=self.config.sorted_required_gates(),
        )
