from functools import lru_cache
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from database.release_storage import DatabaseChecklistStore, DatabaseGateResultStore, DatabaseReleaseRunStore
from database.session import get_db
from metrics.collector import ReleaseMetricsSink
from release_readiness import ReleaseOrchestrationEngine, ReleaseReadinessConfig, load_release_config
from release_readiness.errors import ReleaseValidationError
from release_readiness.schemas import (
    ChecklistFilters,
    ChecklistItem,
    ChecklistItemPatch,
    GateResultPatch,
    Pagination,
    RunFilters,
    RunStatus,
    ScheduleRunRequest,
)

router = APIRouter()


@lru_cache(maxsize=1)
def get_release_config() -> ReleaseReadinessConfig:
    return load_release_config()


@lru_cache(maxsize=1)
def get_metrics_sink() -> ReleaseMetricsSink:
    return ReleaseMetricsSink()


def get_release_engine(
    db: Session = Depends(get_db),
    config: ReleaseReadinessConfig = Depends(get_release_config),
    metrics: ReleaseMetricsSink = Depends(get_metrics_sink),
) -> ReleaseOrchestrationEngine:
    return ReleaseOrchestrationEngine(
        checklist_store=DatabaseChecklistStore(db),
        run_store=DatabaseReleaseRunStore(db),
        gate_store=DatabaseGateResultStore(db),
        metrics=metrics,
        config=config,
    )


def _pagination(
    limit: int = Query(default=25, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> Pagination:
    return Pagination(limit=limit, offset=offset)


def _validation_error(exc: ReleaseValidationError) -> HTTPException:
    return HTTPException(status_code=422, detail=exc.to_dict())


def _run_not_found(public_id: str) -> HTTPException:
    return HTTPException(status_code=404, detail=f"Release run '{public_id}' not found")


# -------------------------------------------------------
# Checklist catalog
# -------------------------------------------------------
@router.get("/checklist")
def list_checklist(
    category: Optional[List[str]] = Query(default=None),
    pagination: Pagination = Depends(_pagination),
    engine: ReleaseOrchestrationEngine = Depends(get_release_engine),
):
    listing = engine.list_checklist(ChecklistFilters(category=category or None), pagination)
    return listing.to_payload()


@router.post("/checklist", status_code=status.HTTP_201_CREATED)
def create_checklist_item(
    payload: ChecklistItem,
    db: Session = Depends(get_db),
    engine: ReleaseOrchestrationEngine = Depends(get_release_engine),
):
    try:
        item = engine.create_checklist_item(payload)
    except ReleaseValidationError as exc:
        raise _validation_error(exc) from exc
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"A checklist item with slug '{payload.slug.strip()}' already exists.",
        ) from exc
    return item.to_payload()


@router.patch("/checklist/{slug}")
def update_checklist_item(
    slug: str,
    patch: ChecklistItemPatch,
    engine: ReleaseOrchestrationEngine = Depends(get_release_engine),
):
    item = engine.update_checklist_item(slug, patch)
    if item is None:
        raise HTTPException(status_code=404, detail=f"Checklist item '{slug}' not found")
    return item.to_payload()


# -------------------------------------------------------
# Release runs
# -------------------------------------------------------
@router.get("/runs")
def list_runs(
    environment: Optional[List[str]] = Query(default=None),
    run_status: Optional[List[RunStatus]] = Query(default=None, alias="status"),
    version_tag: Optional[str] = Query(default=None, alias="versionTag"),
    pagination: Pagination = Depends(_pagination),
    engine: ReleaseOrchestrationEngine = Depends(get_release_engine),
):
    filters = RunFilters(environment=environment or None, status=run_status or None, version_tag=version_tag)
    return engine.list_runs(filters, pagination).to_payload()


@router.post("/runs", status_code=status.HTTP_201_CREATED)
def schedule_run(
    payload: ScheduleRunRequest,
    engine: ReleaseOrchestrationEngine = Depends(get_release_engine),
):
    try:
        scheduled = engine.schedule_release_run(payload)
    except ReleaseValidationError as exc:
        raise _validation_error(exc) from exc
    return scheduled.to_payload()


@router.get("/runs/{public_id}")
def get_run(public_id: str, engine: ReleaseOrchestrationEngine = Depends(get_release_engine)):
    detail = engine.get_run(public_id)
    if detail is None:
        raise _run_not_found(public_id)
    return detail.to_payload()


@router.post("/runs/{public_id}/gates/{gate_key}")
def record_gate(
    public_id: str,
    gate_key: str,
    patch: Optional[GateResultPatch] = None,
    engine: ReleaseOrchestrationEngine = Depends(get_release_engine),
):
    if not gate_key.strip():
        raise HTTPException(status_code=422, detail="gateKey is required")
    gate = engine.record_gate_evaluation(public_id, gate_key, patch or GateResultPatch())
    if gate is None:
        raise _run_not_found(public_id)
    return gate.to_payload()


@router.post("/runs/{public_id}/evaluate")
def evaluate_run(public_id: str, engine: ReleaseOrchestrationEngine = Depends(get_release_engine)):
    evaluation = engine.evaluate_run(public_id)
    if evaluation is None:
        raise _run_not_found(public_id)
    return evaluation.to_payload()


# -------------------------------------------------------
# Dashboard
# -------------------------------------------------------
@router.get("/dashboard")
def dashboard(
    environment: Optional[str] = Query(default=None),
    engine: ReleaseOrchestrationEngine = Depends(get_release_engine),
):
    return engine.get_dashboard(environment).to_payload()
