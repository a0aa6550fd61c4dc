import os
import sys
import tempfile
from pathlib import Path

_TMP_DIR = Path(tempfile.mkdtemp(prefix="release-readiness-tests-"))
os.environ["DATABASE_URL"] = f"sqlite:///{_TMP_DIR / 'test.db'}"
os.environ["RELEASE_METRICS_PATH"] = str(_TMP_DIR / "release_history.json")
os.environ.pop("AUTO_MIGRATE", None)

sys.path.append(str(Path(__file__).resolve().parents[1]))

import pytest
from fastapi.testclient import TestClient

from apis.metrics_api import get_metrics_store
from apis.release_api import get_metrics_sink, get_release_config
from database.release_storage import DatabaseChecklistStore, DatabaseGateResultStore, DatabaseReleaseRunStore
from database.session import Base, SessionLocal, engine
from main import app
from metrics.collector import ReleaseMetricsSink
from metrics.store import ReleaseMetricsStore
from release_readiness import ReleaseOrchestrationEngine, ReleaseReadinessConfig
from release_readiness.schemas import ChecklistItem


class RecordingSink:
    """Metrics sink that keeps every emitted event in memory."""

    def __init__(self):
        self.gate_events = []
        self.run_events = []

    def record_gate_evaluation(self, *, gate_key, status, environment, version_tag):
        self.gate_events.append(
            {"gate_key": gate_key, "status": status, "environment": environment, "version_tag": version_tag}
        )

    def record_run_status(self, *, status, environment, version_tag, readiness_score):
        self.run_events.append(
            {
                "status": status,
                "environment": environment,
                "version_tag": version_tag,
                "readiness_score": readiness_score,
            }
        )


class ExplodingSink:
    def record_gate_evaluation(self, **kwargs):
        raise RuntimeError("metrics backend unavailable")

    def record_run_status(self, **kwargs):
        raise RuntimeError("metrics backend unavailable")


@pytest.fixture(autouse=True)
def _schema():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def recording_sink():
    return RecordingSink()


@pytest.fixture
def make_orchestrator(db_session, recording_sink):
    def _make(required_gates=None, metrics=recording_sink, thresholds=None):
        return ReleaseOrchestrationEngine(
            checklist_store=DatabaseChecklistStore(db_session),
            run_store=DatabaseReleaseRunStore(db_session),
            gate_store=DatabaseGateResultStore(db_session),
            metrics=metrics,
            config=ReleaseReadinessConfig.build(required_gates=required_gates, thresholds=thresholds),
        )

    return _make


@pytest.fixture
def orchestrator(make_orchestrator):
    return make_orchestrator()


def add_checklist_item(orchestrator, slug, weight=1, auto=True, criteria=None, **extra):
    return orchestrator.create_checklist_item(
        ChecklistItem(
            slug=slug,
            title=extra.pop("title", slug.replace("-", " ").title()),
            auto_evaluated=auto,
            weight=weight,
            success_criteria=criteria or {},
            **extra,
        )
    )


@pytest.fixture
def metrics_store(tmp_path):
    return ReleaseMetricsStore(tmp_path / "release_history.json")


@pytest.fixture
def client(metrics_store):
    app.dependency_overrides[get_release_config] = lambda: ReleaseReadinessConfig()
    app.dependency_overrides[get_metrics_sink] = lambda: ReleaseMetricsSink(metrics_store)
    app.dependency_overrides[get_metrics_store] = lambda: metrics_store
    # no context manager: the lifespan schema check expects Alembic-managed tables
    yield TestClient(app)
    app.dependency_overrides.clear()
