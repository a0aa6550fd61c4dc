from __future__ import annotations

import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from database.models import ReleaseChecklistItem, ReleaseGateResult, ReleaseRun
from release_readiness import schemas
from release_readiness.normalization import normalize_email, normalize_weight
from release_readiness.schemas import GateStatus, RunStatus
from utils.json_fields import dump_json


def _new_public_id() -> str:
    return str(uuid.uuid4())


def _criteria_json(criteria: Any) -> str:
    return dump_json(schemas.SuccessCriteria.from_raw(criteria).model_dump(by_alias=True, mode="json"))


class DatabaseChecklistStore:
    """Checklist catalog persisted in ``release_checklist_items``."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def _get_record(self, slug: str) -> Optional[ReleaseChecklistItem]:
        cleaned = (slug or "").strip()
        if not cleaned:
            return None
        return self.db.query(ReleaseChecklistItem).filter(ReleaseChecklistItem.slug == cleaned).first()

    def list(self, filters: schemas.ChecklistFilters, pagination: schemas.Pagination) -> schemas.ChecklistPage:
        query = self.db.query(ReleaseChecklistItem)
        if filters.category:
            query = query.filter(ReleaseChecklistItem.category.in_(filters.category))
        total = query.count()
        rows = (
            query.order_by(ReleaseChecklistItem.weight.desc(), ReleaseChecklistItem.slug.asc())
            .offset(pagination.offset)
            .limit(pagination.limit)
            .all()
        )
        return schemas.ChecklistPage(items=[row.to_record() for row in rows], total=total)

    def create(self, item: schemas.ChecklistItem) -> schemas.ChecklistItem:
        record = ReleaseChecklistItem(
            public_id=item.public_id or _new_public_id(),
            slug=item.slug,
            category=(item.category or "quality").strip(),
            title=item.title.strip(),
            description=item.description or "",
            auto_evaluated=bool(item.auto_evaluated),
            weight=normalize_weight(item.weight),
            default_owner_email=item.default_owner_email,
            success_criteria=_criteria_json(item.success_criteria),
        )
        self.db.add(record)
        self.db.flush()
        return record.to_record()

    def find_by_slug(self, slug: str) -> Optional[schemas.ChecklistItem]:
        record = self._get_record(slug)
        return record.to_record() if record else None

    def update_by_slug(self, slug: str, patch: schemas.ChecklistItemPatch) -> Optional[schemas.ChecklistItem]:
        record = self._get_record(slug)
        if record is None:
            return None
        changes = patch.changes()
        if not changes:
            return record.to_record()
        for name, value in changes.items():
            if name == "success_criteria":
                value = _criteria_json(value)
            setattr(record, name, value)
        self.db.flush()
        return record.to_record()


class DatabaseReleaseRunStore:
    """Release runs persisted in ``release_runs`` with their snapshot embedded as JSON."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def _get_record(self, public_id: str) -> Optional[ReleaseRun]:
        cleaned = (public_id or "").strip()
        if not cleaned:
            return None
        return self.db.query(ReleaseRun).filter(ReleaseRun.public_id == cleaned).first()

    def create(self, run: schemas.ReleaseRun) -> schemas.ReleaseRun:
        record = ReleaseRun(
            public_id=run.public_id or _new_public_id(),
            version_tag=run.version_tag,
            environment=run.environment,
            status=run.status,
            initiated_by_email=run.initiated_by_email,
            initiated_by_name=run.initiated_by_name,
            scheduled_at=run.scheduled_at,
            started_at=run.started_at,
            completed_at=run.completed_at,
            change_window_start=run.change_window_start,
            change_window_end=run.change_window_end,
            summary_notes=run.summary_notes,
            checklist_snapshot=dump_json(
                [item.model_dump(by_alias=True, mode="json") for item in run.checklist_snapshot]
            ),
            metadata_json=dump_json(run.metadata),
        )
        self.db.add(record)
        self.db.flush()
        return record.to_record()

    def find_by_public_id(self, public_id: str) -> Optional[schemas.ReleaseRun]:
        record = self._get_record(public_id)
        return record.to_record() if record else None

    def update_by_public_id(self, public_id: str, patch: schemas.ReleaseRunPatch) -> schemas.ReleaseRun:
        record = self._get_record(public_id)
        if record is None:
            raise LookupError(f"Release run '{public_id}' not found")
        for name, value in patch.changes().items():
            if name == "metadata":
                record.metadata_json = dump_json(value)
            else:
                setattr(record, name, value)
        self.db.flush()
        return record.to_record()

    def list(self, filters: schemas.RunFilters, pagination: schemas.Pagination) -> schemas.RunPage:
        query = self.db.query(ReleaseRun)
        if filters.environment:
            query = query.filter(ReleaseRun.environment.in_(filters.environment))
        if filters.status:
            query = query.filter(ReleaseRun.status.in_([RunStatus(status).value for status in filters.status]))
        if filters.version_tag:
            query = query.filter(ReleaseRun.version_tag == filters.version_tag)
        total = query.count()
        rows = (
            query.order_by(ReleaseRun.scheduled_at.desc(), ReleaseRun.id.desc())
            .offset(pagination.offset)
            .limit(pagination.limit)
            .all()
        )
        return schemas.RunPage(items=[row.to_record() for row in rows], total=total)

    def get_status_breakdown(self, environment: Optional[str] = None) -> Dict[str, int]:
        query = self.db.query(ReleaseRun.status, func.count(ReleaseRun.id))
        if environment:
            query = query.filter(ReleaseRun.environment == environment)
        breakdown = {status.value: 0 for status in RunStatus}
        for status, count in query.group_by(ReleaseRun.status).all():
            breakdown[status] = int(count)
        return breakdown


class DatabaseGateResultStore:
    """Per-run gate results, one row per (run_id, gate_key)."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def _get_record(self, run_id: int, gate_key: str) -> Optional[ReleaseGateResult]:
        return (
            self.db.query(ReleaseGateResult)
            .populate_existing()
            .filter(ReleaseGateResult.run_id == run_id, ReleaseGateResult.gate_key == gate_key)
            .first()
        )

    @staticmethod
    def _columns(changes: Dict[str, Any]) -> Dict[str, Any]:
        columns: Dict[str, Any] = {}
        for name, value in changes.items():
            if name == "status":
                value = GateStatus(value).value
            elif name == "metrics":
                value = dump_json(value or {})
            elif name == "owner_email":
                value = normalize_email(value)
            columns[name] = value
        return columns

    def create(self, gate: schemas.GateResult) -> schemas.GateResult:
        record = ReleaseGateResult(
            public_id=gate.public_id or _new_public_id(),
            run_id=gate.run_id,
            checklist_item_id=gate.checklist_item_id,
            gate_key=gate.gate_key,
            status=gate.status,
            owner_email=normalize_email(gate.owner_email),
            metrics=dump_json(gate.metrics or {}),
            notes=gate.notes,
            evidence_url=gate.evidence_url,
            last_evaluated_at=gate.last_evaluated_at,
        )
        self.db.add(record)
        self.db.flush()
        return record.to_record()

    def upsert_by_run_and_gate(
        self, run_id: int, gate_key: str, patch: schemas.GateResultPatch
    ) -> schemas.GateResult:
        """Insert the gate or merge the supplied fields into the existing row."""
        self.db.flush()
        changes = self._columns(patch.changes())
        stmt = self._build_upsert_statement(run_id, gate_key, changes)
        if stmt is not None:
            self.db.execute(stmt)
            self.db.flush()
            return self._get_record(run_id, gate_key).to_record()

        record = self._get_record(run_id, gate_key)
        if record:
            for name, value in changes.items():
                setattr(record, name, value)
        else:
            record = ReleaseGateResult(**self._insert_values(run_id, gate_key, changes))
            self.db.add(record)
        self.db.flush()
        return record.to_record()

    @staticmethod
    def _insert_values(run_id: int, gate_key: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "public_id": _new_public_id(),
            "run_id": run_id,
            "gate_key": gate_key,
            "status": GateStatus.PENDING.value,
            "metrics": "{}",
            **changes,
        }

    def _build_upsert_statement(self, run_id: int, gate_key: str, changes: Dict[str, Any]):
        bind = self.db.get_bind()
        if bind is None:
            return None
        values = self._insert_values(run_id, gate_key, changes)
        update_set = {**changes, "updated_at": func.now()}
        dialect_name = (bind.dialect.name or "").lower()
        if dialect_name == "postgresql":
            from sqlalchemy.dialects.postgresql import insert as pg_insert

            stmt = pg_insert(ReleaseGateResult).values(**values)
            return stmt.on_conflict_do_update(
                constraint="uq_release_gate_results_run_gate",
                set_=update_set,
            )
        if dialect_name == "sqlite":
            from sqlalchemy.dialects.sqlite import insert as sqlite_insert

            stmt = sqlite_insert(ReleaseGateResult).values(**values)
            return stmt.on_conflict_do_update(
                index_elements=["run_id", "gate_key"],
                set_=update_set,
            )
        return None

    def list_by_run_id(self, run_id: int) -> List[schemas.GateResult]:
        rows = (
            self.db.query(ReleaseGateResult)
            .populate_existing()
            .filter(ReleaseGateResult.run_id == run_id)
            .order_by(ReleaseGateResult.id.asc())
            .all()
        )
        return [row.to_record() for row in rows]
