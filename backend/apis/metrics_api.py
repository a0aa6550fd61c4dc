from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query

from metrics.store import ReleaseMetricsStore

router = APIRouter()


def get_metrics_store() -> ReleaseMetricsStore:
    return ReleaseMetricsStore()


def _filter_runs(runs: List[Dict], environment: Optional[str]) -> List[Dict]:
    if not environment:
        return runs
    return [run for run in runs if run.get("environment") == environment]


def _build_score_history(runs: List[Dict]) -> List[Dict]:
    history = []
    for run in runs[-20:]:
        history.append(
            {
                "timestamp": run.get("timestamp"),
                "version_tag": run.get("version_tag"),
                "readiness_score": run.get("readiness_score", 0),
                "status": run.get("status"),
            }
        )
    return history


def _build_gate_failure_ranking(gates: List[Dict]) -> List[Dict]:
    bucket = []
    for entry in gates:
        evaluations = entry.get("evaluations", 0)
        failures = entry.get("statuses", {}).get("fail", 0)
        bucket.append(
            {
                "gate_key": entry.get("gate_key"),
                "evaluations": evaluations,
                "failures": failures,
                "fail_rate": round(failures / evaluations, 3) if evaluations else 0.0,
                "last_status": entry.get("last_status"),
            }
        )
    bucket.sort(key=lambda item: (item["fail_rate"], item["failures"]), reverse=True)
    return bucket[:10]


@router.get("/release")
def release_metrics(
    environment: Optional[str] = Query(default=None),
    store: ReleaseMetricsStore = Depends(get_metrics_store),
):
    summary = store.summary()
    runs = _filter_runs(summary["run_history"], environment)
    scores = [
        entry
        for entry in summary["latest_scores"]
        if not environment or entry.get("environment") == environment
    ]
    return {
        "latest_run": runs[-1] if runs else None,
        "run_status_counts": summary["run_status_counts"],
        "score_history": _build_score_history(runs),
        "gate_failures": _build_gate_failure_ranking(summary["gates"]),
        "latest_scores": scores,
        "last_updated": summary["last_updated"],
    }
