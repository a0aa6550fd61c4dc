"""
Compute a run's readiness score using deterministic weighting.
"""

import math
from typing import Iterable

from .schemas import GateStatus, GateWithSnapshot

STATUS_CREDIT = {
    GateStatus.PASS: 1.0,
    GateStatus.WAIVED: 1.0,
    GateStatus.IN_PROGRESS: 0.5,
}


class ReadinessScorer:
    """Calculates the 0-100 weighted completion percentage across a run's gates."""

    def calculate(self, gates: Iterable[GateWithSnapshot]) -> int:
        """
        Weighted share of completed gates, rounded half-up.

        - pass / waived earn their full snapshot weight.
        - in_progress earns half of it.
        - pending / fail earn nothing.
        Gates without a snapshot entry are ignored; no gates scores 0.
        """
        accumulated = 0.0
        total_weight = 0

        for gate in gates:
            if gate.snapshot is None:
                continue
            weight = gate.snapshot.weight
            total_weight += weight
            accumulated += weight * STATUS_CREDIT.get(gate.status, 0.0)

        if total_weight == 0:
            return 0

        return int(math.floor(100 * accumulated / total_weight + 0.5))
