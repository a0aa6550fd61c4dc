"""
Configuration for the Release Readiness engine.
Centralizes the required-gate policy and the default thresholds surfaced to clients.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Optional

# ---------------------------------------------------------------------
# Core defaults (safe, immutable primitives)
# ---------------------------------------------------------------------

SNAPSHOT_PAGE_SIZE: int = 200
MAX_PAGE_SIZE: int = 200
DASHBOARD_UPCOMING_LIMIT: int = 5
DASHBOARD_RECENT_LIMIT: int = 10

DEFAULT_RELEASE_THRESHOLDS: Dict[str, float] = {
    "minCoverage": 0.8,
    "maxFailureRate": 0.02,
    "maxCriticalVulnerabilities": 0,
    "maxHighVulnerabilities": 5,
    "maxOpenIncidents": 0,
    "maxErrorRate": 0.01,
}

REQUIRED_GATES_ENV = "RELEASE_REQUIRED_GATES"
THRESHOLDS_ENV = "RELEASE_THRESHOLDS"
SNAPSHOT_PAGE_SIZE_ENV = "RELEASE_SNAPSHOT_PAGE_SIZE"

_logger = logging.getLogger("release.config")


# ---------------------------------------------------------------------
# Engine configuration (read once, immutable for the engine's lifetime)
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class ReleaseReadinessConfig:
    """Required-gate policy and default thresholds handed to the engine."""

    required_gates: FrozenSet[str] = frozenset()
    thresholds: Mapping[str, Any] = field(
        default_factory=lambda: MappingProxyType(dict(DEFAULT_RELEASE_THRESHOLDS))
    )
    snapshot_page_size: int = SNAPSHOT_PAGE_SIZE

    @classmethod
    def build(
        cls,
        required_gates: Optional[Iterable[str]] = None,
        thresholds: Optional[Mapping[str, Any]] = None,
        snapshot_page_size: int = SNAPSHOT_PAGE_SIZE,
    ) -> "ReleaseReadinessConfig":
        gates = frozenset(str(gate).strip() for gate in (required_gates or []) if str(gate).strip())
        merged = dict(DEFAULT_RELEASE_THRESHOLDS if thresholds is None else thresholds)
        return cls(
            required_gates=gates,
            thresholds=MappingProxyType(merged),
            snapshot_page_size=min(MAX_PAGE_SIZE, max(1, int(snapshot_page_size))),
        )

    def sorted_required_gates(self):
        return sorted(self.required_gates)

    def thresholds_payload(self) -> Dict[str, Any]:
        return dict(self.thresholds)


def _parse_csv(raw: Optional[str]) -> list:
    if not raw:
        return []
    return list(dict.fromkeys(part.strip() for part in raw.split(",") if part.strip()))


def _parse_thresholds(raw: Optional[str]) -> Optional[Dict[str, Any]]:
    if not raw or not raw.strip():
        return None
    try:
        parsed = json.loads(raw)
    except ValueError:
        _logger.warning("%s is not valid JSON; using default thresholds.", THRESHOLDS_ENV)
        return None
    if not isinstance(parsed, dict):
        _logger.warning("%s must be a JSON object; using default thresholds.", THRESHOLDS_ENV)
        return None
    return {**DEFAULT_RELEASE_THRESHOLDS, **parsed}


def _parse_page_size(raw: Optional[str]) -> int:
    try:
        return int(raw) if raw else SNAPSHOT_PAGE_SIZE
    except ValueError:
        _logger.warning("%s must be an integer; using %s.", SNAPSHOT_PAGE_SIZE_ENV, SNAPSHOT_PAGE_SIZE)
        return SNAPSHOT_PAGE_SIZE


def load_release_config(environ: Optional[Mapping[str, str]] = None) -> ReleaseReadinessConfig:
    """Build the engine configuration from environment variables."""
    env = os.environ if environ is None else environ
    return ReleaseReadinessConfig.build(
        required_gates=_parse_csv(env.get(REQUIRED_GATES_ENV)),
        thresholds=_parse_thresholds(env.get(THRESHOLDS_ENV)),
        snapshot_page_size=_parse_page_size(env.get(SNAPSHOT_PAGE_SIZE_ENV)),
    )


# ---------------------------------------------------------------------
# Public exports
# ---------------------------------------------------------------------

__all__ = [
    "SNAPSHOT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    "DASHBOARD_UPCOMING_LIMIT",
    "DASHBOARD_RECENT_LIMIT",
    "DEFAULT_RELEASE_THRESHOLDS",
    "ReleaseReadinessConfig",
    "load_release_config",
]
