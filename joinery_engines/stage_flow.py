"""
joinery_engines.stage_flow -- Status classification and the view cursor.

Responsibility:
    Map a persisted ``JobStatus`` onto the stage of its flow, order stages
    for done/current/pending display, and keep the operator's *view* of a
    job (which stage they are looking at) as a value separate from the job.

Architecture position:
    Engines -- pure, zero I/O.  Reads the flow definitions declared in
    ``joinery_kernel.domain.flows``.

Invariants enforced:
    - ``classify`` is strict: a status outside the selected flow raises
      ``UnmappedStatusError``.  ``strict=False`` falls back to the first
      stage with a warning log, for reading legacy snapshots.
    - Navigating the view cursor never touches ``Job.status``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from joinery_kernel.domain.dtos import TransitionOutcome
from joinery_kernel.domain.flows import flow_for
from joinery_kernel.domain.job import Job, JobStatus
from joinery_kernel.domain.workflow import Stage, StageFlow
from joinery_kernel.exceptions import UnknownStageError, UnmappedStatusError
from joinery_kernel.logging_config import get_logger

logger = get_logger("engines.stage_flow")


class StageState(str, Enum):
    DONE = "done"
    CURRENT = "current"
    PENDING = "pending"


def classify(status: JobStatus | str, flow: StageFlow, *, strict: bool = True) -> Stage:
    """Return the stage of ``flow`` owning ``status``.

    Raises:
        UnmappedStatusError: If ``strict`` and the status is not owned by
            ``flow`` (including tokens that are not a ``JobStatus`` at all).
    """
    try:
        token = JobStatus(status)
    except ValueError:
        token = None

    stage = flow.stage_for(token) if token is not None else None
    if stage is not None:
        return stage

    raw = status.value if isinstance(status, JobStatus) else str(status)
    if strict:
        raise UnmappedStatusError(raw, flow.name)

    logger.warning(
        "status_unmapped_defaulted",
        extra={"status": raw, "flow_name": flow.name, "stage_id": flow.first_stage.id},
    )
    return flow.first_stage


def classify_job(job: Job, *, strict: bool = True) -> Stage:
    return classify(job.status, flow_for(job.start_type), strict=strict)


def stage_index(stage_id: str, flow: StageFlow) -> int:
    """Position of ``stage_id`` in ``flow`` (0-based)."""
    for index, stage in enumerate(flow.stages):
        if stage.id == stage_id:
            return index
    raise UnknownStageError(stage_id, flow.name)


def stage_state(stage_id: str, current_status: JobStatus, flow: StageFlow) -> StageState:
    """Done if before the current stage, pending if after, current if equal."""
    target = stage_index(stage_id, flow)
    current = stage_index(classify(current_status, flow).id, flow)
    if target < current:
        return StageState.DONE
    if target > current:
        return StageState.PENDING
    return StageState.CURRENT


def stage_states(job: Job) -> dict[str, StageState]:
    flow = flow_for(job.start_type)
    return {stage.id: stage_state(stage.id, job.status, flow) for stage in flow.stages}


def next_stage(stage_id: str, flow: StageFlow) -> Stage | None:
    """The stage after ``stage_id``, or None at the end of the flow."""
    index = stage_index(stage_id, flow)
    if index + 1 < len(flow.stages):
        return flow.stages[index + 1]
    return None


@dataclass(frozen=True)
class ViewCursor:
    """
    Which stage the operator is looking at.

    Contract: UI-local, never persisted, never written onto a ``Job``.
    Every method returns a new cursor.
    """

    flow: StageFlow
    stage_id: str

    @classmethod
    def for_job(cls, job: Job) -> ViewCursor:
        """Open the view on the job's actual stage."""
        return cls(flow=flow_for(job.start_type), stage_id=classify_job(job).id)

    @property
    def stage(self) -> Stage:
        stage = self.flow.stage_by_id(self.stage_id)
        if stage is None:
            raise UnknownStageError(self.stage_id, self.flow.name)
        return stage

    def navigate(self, stage_id: str) -> ViewCursor:
        """Move the view to any stage for review; the job is untouched."""
        stage_index(stage_id, self.flow)
        return ViewCursor(flow=self.flow, stage_id=stage_id)

    def follow(self, outcome: TransitionOutcome) -> ViewCursor:
        """Advance to the job's new stage unless the transition was intermediate."""
        if not outcome.advance_view:
            return self
        return ViewCursor.for_job(outcome.job)
