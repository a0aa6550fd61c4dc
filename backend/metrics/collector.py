import logging
from typing import Optional

from metrics.store import ReleaseMetricsStore

logger = logging.getLogger("release.metrics")


class ReleaseMetricsSink:
    """
    Best-effort metrics sink for the release orchestration engine.
    Write failures are logged and never reach the caller.
    """

    def __init__(self, store: Optional[ReleaseMetricsStore] = None):
        self._store = store

    @property
    def store(self) -> ReleaseMetricsStore:
        if self._store is None:
            self._store = ReleaseMetricsStore()
        return self._store

    def record_gate_evaluation(self, *, gate_key: str, status: str, environment: str, version_tag: str) -> None:
        try:
            self.store.record_gate_evaluation(gate_key, status, environment, version_tag)
        except Exception:
            logger.warning("Unable to record gate evaluation metric for %s", gate_key, exc_info=True)

    def record_run_status(
        self, *, status: str, environment: str, version_tag: str, readiness_score: int
    ) -> None:
        try:
            self.store.record_run_status(status, environment, version_tag, readiness_score)
        except Exception:
            logger.warning(
                "Unable to record run status metric for %s@%s", version_tag, environment, exc_info=True
            )
