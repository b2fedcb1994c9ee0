"""
Canonical stage-flow types (``joinery_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for the job state machine: guards, transitions, stages
and the ordered flow that owns them.  The two concrete flows (standard and
service) are declared in ``joinery_kernel.domain.flows``.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* A flow has at least one stage and every stage owns at least one status.
* A status belongs to exactly one stage of a flow.
* Transitions and terminal statuses reference only statuses the flow owns.

Violations raise ``StageFlowConfigurationError`` when the flow is
constructed, i.e. at import time of the module declaring it.
"""

from __future__ import annotations

from dataclasses import dataclass

from joinery_kernel.domain.job import JobStatus
from joinery_kernel.exceptions import StageFlowConfigurationError


@dataclass(frozen=True)
class Guard:
    """A precondition that must hold before a transition fires.

    Contract: descriptive only.  The transition validator evaluates it.
    """
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid status transition.

    ``intermediate=True`` marks a free, stage-internal move after which the
    view cursor must not auto-advance.
    """
    from_state: JobStatus
    to_state: JobStatus
    action: str
    guard: Guard | None = None
    intermediate: bool = False


@dataclass(frozen=True)
class Stage:
    """A named phase of a flow, owning an ordered list of statuses."""
    id: str
    label: str
    statuses: tuple[JobStatus, ...]


@dataclass(frozen=True)
class StageFlow:
    """An ordered flow of stages plus the transitions between its statuses.

    Guarantees: every owned status maps to exactly one stage; transitions
    and terminal statuses reference owned statuses only.
    """
    name: str
    stages: tuple[Stage, ...]
    transitions: tuple[Transition, ...]
    terminal_statuses: tuple[JobStatus, ...] = ()

    def __post_init__(self):
        problems: list[str] = []
        if not self.stages:
            problems.append("flow has no stages")

        seen: dict[JobStatus, str] = {}
        stage_ids: set[str] = set()
        for stage in self.stages:
            if stage.id in stage_ids:
                problems.append(f"duplicate stage id {stage.id!r}")
            stage_ids.add(stage.id)
            if not stage.statuses:
                problems.append(f"stage {stage.id!r} owns no statuses")
            for status in stage.statuses:
                if status in seen:
                    problems.append(
                        f"status {status.value} owned by both "
                        f"{seen[status]!r} and {stage.id!r}"
                    )
                seen[status] = stage.id

        for transition in self.transitions:
            for status in (transition.from_state, transition.to_state):
                if status not in seen:
                    problems.append(
                        f"transition {transition.action!r} references "
                        f"unmapped status {status.value}"
                    )
        for status in self.terminal_statuses:
            if status not in seen:
                problems.append(f"terminal status {status.value} is unmapped")

        if problems:
            raise StageFlowConfigurationError(self.name, problems)

    @property
    def first_stage(self) -> Stage:
        return self.stages[0]

    @property
    def statuses(self) -> frozenset[JobStatus]:
        return frozenset(s for stage in self.stages for s in stage.statuses)

    def stage_for(self, status: JobStatus) -> Stage | None:
        for stage in self.stages:
            if status in stage.statuses:
                return stage
        return None

    def stage_by_id(self, stage_id: str) -> Stage | None:
        for stage in self.stages:
            if stage.id == stage_id:
                return stage
        return None

    def transitions_from(self, status: JobStatus) -> tuple[Transition, ...]:
        return tuple(t for t in self.transitions if t.from_state == status)

    def find_transition(
        self,
        from_state: JobStatus,
        to_state: JobStatus,
        action: str | None = None,
    ) -> Transition | None:
        for t in self.transitions:
            if t.from_state != from_state or t.to_state != to_state:
                continue
            if action is None or t.action == action:
                return t
        return None

    def is_terminal(self, status: JobStatus) -> bool:
        return status in self.terminal_statuses
