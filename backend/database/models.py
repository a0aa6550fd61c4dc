from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import validates

from release_readiness.normalization import normalize_weight
from release_readiness import schemas
from release_readiness.schemas import GateStatus, RunStatus
from utils.json_fields import load_json_list, load_json_object

from .session import Base


def _snapshot_items(raw) -> list:
    """Decode a stored snapshot, dropping entries that no longer validate."""
    items = []
    for entry in load_json_list(raw):
        if not isinstance(entry, dict):
            continue
        try:
            items.append(schemas.ChecklistItem.model_validate(entry))
        except ValueError:
            continue
    return items


class ReleaseChecklistItem(Base):
    __tablename__ = "release_checklist_items"
    __table_args__ = (
        UniqueConstraint("slug", name="uq_release_checklist_items_slug"),
        UniqueConstraint("public_id", name="uq_release_checklist_items_public_id"),
        Index("ix_release_checklist_items_category", "category"),
        CheckConstraint("weight >= 1", name="ck_release_checklist_items_weight"),
    )

    id = Column(Integer, primary_key=True, index=True)
    public_id = Column(String(36), nullable=False)
    slug = Column(String(120), nullable=False)
    category = Column(String(64), nullable=False, default="quality")
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False, default="")
    auto_evaluated = Column(Boolean, nullable=False, default=False)
    weight = Column(Integer, nullable=False, default=1)
    default_owner_email = Column(String(160), nullable=True)
    success_criteria = Column(Text, nullable=False, default="{}")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    @validates("slug")
    def _validate_slug(self, key, value: str) -> str:
        cleaned = (value or "").strip()
        if not cleaned:
            raise ValueError("slug is required")
        return cleaned

    @validates("weight")
    def _validate_weight(self, key, value) -> int:
        return normalize_weight(value)

    @validates("default_owner_email")
    def _validate_owner(self, key, value: Optional[str]) -> Optional[str]:
        cleaned = (value or "").strip().lower()
        return cleaned or None

    def to_record(self) -> schemas.ChecklistItem:
        return schemas.ChecklistItem(
            id=self.id,
            public_id=self.public_id,
            slug=self.slug,
            category=self.category,
            title=self.title,
            description=self.description or "",
            auto_evaluated=bool(self.auto_evaluated),
            weight=self.weight,
            default_owner_email=self.default_owner_email,
            success_criteria=load_json_object(self.success_criteria),
        )


class ReleaseRun(Base):
    __tablename__ = "release_runs"
    __table_args__ = (
        UniqueConstraint("public_id", name="uq_release_runs_public_id"),
        Index("ix_release_runs_environment_status", "environment", "status"),
        Index("ix_release_runs_version_tag", "version_tag"),
        Index("ix_release_runs_scheduled_at", "scheduled_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    public_id = Column(String(36), nullable=False)
    version_tag = Column(String(64), nullable=False)
    environment = Column(String(64), nullable=False, default="production")
    status = Column(String(32), nullable=False, default=RunStatus.SCHEDULED.value)
    initiated_by_email = Column(String(160), nullable=False)
    initiated_by_name = Column(String(160), nullable=True)
    scheduled_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    change_window_start = Column(DateTime(timezone=True), nullable=True)
    change_window_end = Column(DateTime(timezone=True), nullable=True)
    summary_notes = Column(Text, nullable=True)
    checklist_snapshot = Column(Text, nullable=False, default="[]")
    metadata_json = Column("metadata", Text, nullable=False, default="{}")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    @validates("status")
    def _validate_status(self, key, value) -> str:
        return RunStatus(value).value

    def to_record(self) -> schemas.ReleaseRun:
        return schemas.ReleaseRun(
            id=self.id,
            public_id=self.public_id,
            version_tag=self.version_tag,
            environment=self.environment,
            status=self.status,
            initiated_by_email=self.initiated_by_email,
            initiated_by_name=self.initiated_by_name,
            scheduled_at=self.scheduled_at,
            started_at=self.started_at,
            completed_at=self.completed_at,
            change_window_start=self.change_window_start,
            change_window_end=self.change_window_end,
            summary_notes=self.summary_notes,
            checklist_snapshot=_snapshot_items(self.checklist_snapshot),
            metadata=load_json_object(self.metadata_json),
        )


class ReleaseGateResult(Base):
    __tablename__ = "release_gate_results"
    __table_args__ = (
        UniqueConstraint("run_id", "gate_key", name="uq_release_gate_results_run_gate"),
        UniqueConstraint("public_id", name="uq_release_gate_results_public_id"),
        Index("ix_release_gate_results_run_status", "run_id", "status"),
    )

    id = Column(Integer, primary_key=True, index=True)
    public_id = Column(String(36), nullable=False)
    run_id = Column(Integer, ForeignKey("release_runs.id", ondelete="CASCADE"), nullable=False)
    checklist_item_id = Column(
        Integer, ForeignKey("release_checklist_items.id", ondelete="SET NULL"), nullable=True
    )
    gate_key = Column(String(160), nullable=False)
    status = Column(String(32), nullable=False, default=GateStatus.PENDING.value)
    owner_email = Column(String(160), nullable=True)
    metrics = Column(Text, nullable=False, default="{}")
    notes = Column(Text, nullable=True)
    evidence_url = Column(String(500), nullable=True)
    last_evaluated_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    @validates("gate_key")
    def _validate_gate_key(self, key, value: str) -> str:
        cleaned = (value or "").strip()
        if not cleaned:
            raise ValueError("gate_key is required")
        return cleaned

    @validates("status")
    def _validate_status(self, key, value) -> str:
        return GateStatus(value).value

    def to_record(self) -> schemas.GateResult:
        return schemas.GateResult(
            id=self.id,
            public_id=self.public_id,
            run_id=self.run_id,
            checklist_item_id=self.checklist_item_id,
            gate_key=self.gate_key,
            status=self.status,
            owner_email=self.owner_email,
            metrics=load_json_object(self.metrics),
            notes=self.notes,
            evidence_url=self.evidence_url,
            last_evaluated_at=self.last_evaluated_at,
        )
