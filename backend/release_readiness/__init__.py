"""
Release Readiness engine: checklist snapshots, gate evaluation, scoring and go/no-go gating.
"""

from .config import ReleaseReadinessConfig, load_release_config
from .engine import ReleaseOrchestrationEngine
from .errors import ReleaseValidationError

__all__ = [
    "ReleaseOrchestrationEngine",
    "ReleaseReadinessConfig",
    "ReleaseValidationError",
    "load_release_config",
]
