"""
Release gating decisions based on gate statuses and the required-gate policy.
"""

from typing import Collection, Iterable, List

from .schemas import BlockingGate, GateStatus, GateWithSnapshot, RunStatus

BLOCKING_STATUSES = frozenset({GateStatus.FAIL, GateStatus.PENDING})


class ReleaseGate:
    """Determines which gates block a run and what status the run should take."""

    def blocking_gates(
        self, gates: Iterable[GateWithSnapshot], required_gates: Collection[str]
    ) -> List[BlockingGate]:
        """A required gate blocks while it is failing or still pending."""
        return [
            BlockingGate(
                gate_key=gate.gate_key,
                status=gate.status,
                owner_email=gate.owner_email,
                notes=gate.notes,
            )
            for gate in gates
            if gate.snapshot is not None
            and gate.gate_key in required_gates
            and gate.status in BLOCKING_STATUSES
        ]

    def recommend(self, gates: Iterable[GateWithSnapshot], blocking: List[BlockingGate]) -> RunStatus:
        """
        Pick the coarse run status.

        - BLOCKED if any required gate blocks.
        - IN_PROGRESS if any gate is still in progress.
        - Otherwise READY.
        """
        if blocking:
            return RunStatus.BLOCKED
        if any(gate.status == GateStatus.IN_PROGRESS for gate in gates if gate.snapshot is not None):
            return RunStatus.IN_PROGRESS
        return RunStatus.READY
