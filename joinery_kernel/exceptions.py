"""
Typed Exception Hierarchy for the Joinery Job Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (UI handlers, API endpoints) must react differently to a rejected
transition, a store failure and a concurrent request.  Catch by type, read
structured attributes, never parse messages:

    try:
        controller.complete_agreement(job_id, plan)
    except ValidationError as e:
        show(e.reasons)             # every violated rule at once
        show_delta(e.discrepancy)   # signed difference, when applicable
    except RemoteError as e:
        show(e.message)             # raw store message, no retry

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    JoineryError (base)
    |
    +-- ValidationError
    |
    +-- LifecycleError
    |   +-- UnmappedStatusError
    |   +-- StageFlowConfigurationError
    |   +-- UnknownStageError
    |   +-- VisitStateError
    |
    +-- ConcurrencyError
    |   +-- TransitionInFlightError
    |
    +-- RemoteError
    |   +-- JobNotFoundError
    |   +-- StockItemNotFoundError
    |
    +-- LoggingError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                      | When Raised
-------------|---------------------------|----------------------------------------
Validation   | VALIDATION_FAILED         | Transition precondition(s) violated
-------------|---------------------------|----------------------------------------
Lifecycle    | UNMAPPED_STATUS           | Status not owned by the job's flow
             | STAGE_FLOW_CONFIGURATION  | Flow definition is inconsistent
             | UNKNOWN_STAGE             | View cursor moved to a missing stage
             | VISIT_STATE               | No visit in the state an action needs
-------------|---------------------------|----------------------------------------
Concurrency  | TRANSITION_IN_FLIGHT      | Second transition for the same job
-------------|---------------------------|----------------------------------------
Remote       | REMOTE_ERROR              | Collaborator store rejected a call
             | JOB_NOT_FOUND             | Job id unknown to the job store
             | STOCK_ITEM_NOT_FOUND      | Stock item id unknown to the store
-------------|---------------------------|----------------------------------------
Logging      | LOGGING_ERROR             | Activity log append failed (swallowed)
"""

from decimal import Decimal
from typing import Any


class JoineryError(Exception):
    """
    Base exception for all job-lifecycle errors.

    All subclasses carry a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "JOINERY_ERROR"


# Validation


class ValidationError(JoineryError):
    """
    A transition was refused locally, before any remote call.

    Carries every violated rule (``issues``), their human-readable
    ``reasons`` and the signed numeric ``discrepancy`` when a
    reconciliation mismatch caused the refusal.
    """

    code: str = "VALIDATION_FAILED"

    def __init__(
        self,
        issues: tuple[Any, ...],
        discrepancy: Decimal | None = None,
        target_status: str | None = None,
    ):
        self.issues = tuple(issues)
        self.reasons = tuple(issue.message for issue in self.issues)
        self.discrepancy = discrepancy
        self.target_status = target_status
        target = f" for {target_status}" if target_status else ""
        super().__init__(
            f"Transition refused{target}: " + "; ".join(self.reasons)
        )


# Lifecycle / flow definition


class LifecycleError(JoineryError):
    """Base exception for stage-flow and sub-state errors."""

    code: str = "LIFECYCLE_ERROR"


class UnmappedStatusError(LifecycleError):
    """Status is not owned by any stage of the selected flow."""

    code: str = "UNMAPPED_STATUS"

    def __init__(self, status: str, flow_name: str):
        self.status = status
        self.flow_name = flow_name
        super().__init__(f"Status {status!r} is not mapped in flow {flow_name!r}")


class StageFlowConfigurationError(LifecycleError):
    """A flow definition violates the one-status-one-stage rule."""

    code: str = "STAGE_FLOW_CONFIGURATION"

    def __init__(self, flow_name: str, problems: list[str]):
        self.flow_name = flow_name
        self.problems = problems
        super().__init__(
            f"Flow {flow_name!r} is misconfigured: " + "; ".join(problems)
        )


class UnknownStageError(LifecycleError):
    """Stage id does not exist in the flow."""

    code: str = "UNKNOWN_STAGE"

    def __init__(self, stage_id: str, flow_name: str):
        self.stage_id = stage_id
        self.flow_name = flow_name
        super().__init__(f"Stage {stage_id!r} does not exist in flow {flow_name!r}")


class VisitStateError(LifecycleError):
    """No service visit is in the state required by the action."""

    code: str = "VISIT_STATE"

    def __init__(self, job_id: str, required_state: str):
        self.job_id = job_id
        self.required_state = required_state
        super().__init__(
            f"Job {job_id} has no service visit in state {required_state!r}"
        )


# Concurrency


class ConcurrencyError(JoineryError):
    """Base exception for concurrency errors."""

    code: str = "CONCURRENCY_ERROR"


class TransitionInFlightError(ConcurrencyError):
    """A transition for this job is already being processed."""

    code: str = "TRANSITION_IN_FLIGHT"

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"A transition for job {job_id} is already in flight")


# Remote collaborators


class RemoteError(JoineryError):
    """
    A collaborator store rejected or could not perform a call.

    The raw store message is kept verbatim in ``message``; the job stays
    at its last confirmed snapshot and nothing is retried.
    """

    code: str = "REMOTE_ERROR"

    def __init__(self, operation: str, message: str):
        self.operation = operation
        self.message = message
        super().__init__(message)


class JobNotFoundError(RemoteError):
    """Job id is unknown to the job store."""

    code: str = "JOB_NOT_FOUND"

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__("get_job", f"Job not found: {job_id}")


class StockItemNotFoundError(RemoteError):
    """Stock item id is unknown to the stock store."""

    code: str = "STOCK_ITEM_NOT_FOUND"

    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__("get_stock_items", f"Stock item not found: {item_id}")


# Activity log


class LoggingError(JoineryError):
    """Appending an activity log entry failed. Never propagated past the logger."""

    code: str = "LOGGING_ERROR"

    def __init__(self, job_id: str, reason: str):
        self.job_id = job_id
        self.reason = reason
        super().__init__(f"Activity log append failed for job {job_id}: {reason}")
