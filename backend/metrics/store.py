import json
import os
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

MAX_RUNS_TO_KEEP = 64
MAX_SCORES_TO_KEEP = 64

_WRITE_LOCK = threading.Lock()


def _default_history() -> Dict[str, Any]:
    return {
        "gates": {},
        "runs": [],
        "scores": {},
    }


def _timestamp_now() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def get_release_history_path() -> Path:
    """
    Return the path of the release metrics history file.
    RELEASE_METRICS_PATH overrides the default file next to this module.
    """
    configured = os.environ.get("RELEASE_METRICS_PATH")
    if configured:
        return Path(configured)
    return Path(__file__).resolve().parent / "release_history.json"


class ReleaseMetricsStore:
    def __init__(self, history_path: Optional[Path] = None):
        self.path = history_path or get_release_history_path()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if not self.path.exists():
            self._write(_default_history())

    def _read(self) -> Dict[str, Any]:
        try:
            with self.path.open("r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, ValueError):
            data = _default_history()
        if not isinstance(data, dict):
            data = _default_history()
        for key, value in _default_history().items():
            if not isinstance(data.get(key), type(value)):
                data[key] = value
        return data

    def _write(self, data: Dict[str, Any]) -> None:
        with self.path.open("w", encoding="utf-8") as fh:
            json.dump(data, fh, indent=2)

    def read(self) -> Dict[str, Any]:
        return self._read()

    def record_gate_evaluation(self, gate_key: str, status: str, environment: str, version_tag: str) -> None:
        with _WRITE_LOCK:
            data = self._read()
            self._update_gates(data, gate_key, status, environment, version_tag)
            data["last_updated"] = _timestamp_now()
            self._write(data)

    def record_run_status(self, status: str, environment: str, version_tag: str, readiness_score: int) -> None:
        with _WRITE_LOCK:
            data = self._read()
            timestamp = _timestamp_now()
            runs = data["runs"]
            runs.append(
                {
                    "timestamp": timestamp,
                    "status": status,
                    "environment": environment,
                    "version_tag": version_tag,
                    "readiness_score": readiness_score,
                }
            )
            if len(runs) > MAX_RUNS_TO_KEEP:
                data["runs"] = runs[-MAX_RUNS_TO_KEEP:]
            scores = data["scores"]
            key = f"{version_tag}@{environment}"
            # most recently touched release last
            scores.pop(key, None)
            scores[key] = {
                "version_tag": version_tag,
                "environment": environment,
                "readiness_score": readiness_score,
                "status": status,
                "timestamp": timestamp,
            }
            for stale in list(scores)[: max(0, len(scores) - MAX_SCORES_TO_KEEP)]:
                del scores[stale]
            data["last_updated"] = timestamp
            self._write(data)

    def _update_gates(
        self, data: Dict[str, Any], gate_key: str, status: str, environment: str, version_tag: str
    ) -> None:
        entry = data["gates"].setdefault(
            gate_key,
            {"gate_key": gate_key, "evaluations": 0, "statuses": {}, "last_status": None},
        )
        entry["evaluations"] += 1
        entry["statuses"][status] = entry["statuses"].get(status, 0) + 1
        entry["last_status"] = status
        entry["last_environment"] = environment
        entry["last_version_tag"] = version_tag

    def summary(self) -> Dict[str, Any]:
        data = self._read()
        runs = data["runs"]
        status_counts: Dict[str, int] = {}
        for run in runs:
            status = run.get("status") or "unknown"
            status_counts[status] = status_counts.get(status, 0) + 1
        gates = sorted(data["gates"].values(), key=lambda item: item.get("evaluations", 0), reverse=True)
        return {
            "latest_run": runs[-1] if runs else None,
            "run_status_counts": status_counts,
            "run_history": runs[-20:],
            "gates": gates,
            "latest_scores": list(data["scores"].values()),
            "last_updated": data.get("last_updated"),
        }
