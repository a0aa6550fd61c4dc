"""
Collaborator contracts the engine depends on.

Persistence and metrics live outside the engine; anything implementing these
protocols (the SQLAlchemy stores in ``database.release_storage``, the JSON
metrics sink, or test doubles) can be injected.
"""

from typing import Dict, List, Optional, Protocol

from .schemas import (
    ChecklistFilters,
    ChecklistItem,
    ChecklistItemPatch,
    ChecklistPage,
    GateResult,
    GateResultPatch,
    Pagination,
    ReleaseRun,
    ReleaseRunPatch,
    RunFilters,
    RunPage,
)


class ChecklistStore(Protocol):
    def list(self, filters: ChecklistFilters, pagination: Pagination) -> ChecklistPage: ...

    def create(self, item: ChecklistItem) -> ChecklistItem: ...

    def find_by_slug(self, slug: str) -> Optional[ChecklistItem]: ...

    def update_by_slug(self, slug: str, patch: ChecklistItemPatch) -> Optional[ChecklistItem]: ...


class ReleaseRunStore(Protocol):
    def create(self, run: ReleaseRun) -> ReleaseRun: ...

    def find_by_public_id(self, public_id: str) -> Optional[ReleaseRun]: ...

    def update_by_public_id(self, public_id: str, patch: ReleaseRunPatch) -> ReleaseRun: ...

    def list(self, filters: RunFilters, pagination: Pagination) -> RunPage: ...

    def get_status_breakdown(self, environment: Optional[str] = None) -> Dict[str, int]: ...


class GateResultStore(Protocol):
    def create(self, gate: GateResult) -> GateResult: ...

    def upsert_by_run_and_gate(self, run_id: int, gate_key: str, patch: GateResultPatch) -> GateResult: ...

    def list_by_run_id(self, run_id: int) -> List[GateResult]: ...


class MetricsSink(Protocol):
    """Best-effort observability hooks; implementations may raise, callers must not care."""

    def record_gate_evaluation(self, *, gate_key: str, status: str, environment: str, version_tag: str) -> None: ...

    def record_run_status(
        self, *, status: str, environment: str, version_tag: str, readiness_score: int
    ) -> None: ...
