"""
Job Flows.

The standard (measure -> finance) and service (schedule -> done) stage
flows, their transition tables, and the import-time coverage check that
every ``JobStatus`` is owned by exactly one flow.
"""

from joinery_kernel.domain.job import JobStatus, StartType
from joinery_kernel.domain.workflow import Guard, Stage, StageFlow, Transition
from joinery_kernel.exceptions import StageFlowConfigurationError
from joinery_kernel.logging_config import get_logger

logger = get_logger("domain.flows")

S = JobStatus


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

MEASUREMENT_READY = Guard(
    name="measurement_ready",
    description="Measurement confirmed, or drawings uploaded for every role",
)

OFFER_POSITIVE = Guard(
    name="offer_positive",
    description="Offer total (or sum of role prices) is greater than zero",
)

PAYMENT_PLAN_BALANCED = Guard(
    name="payment_plan_balanced",
    description="Cash + card + cheques + after-delivery equals the offer total",
)

FINANCE_BALANCED = Guard(
    name="finance_balanced",
    description="Offer total minus received payments and discount is zero",
)

SERVICE_BALANCED = Guard(
    name="service_balanced",
    description="Service total cost minus payments and discount is zero",
)

REJECTION_RECORDED = Guard(
    name="rejection_recorded",
    description="Rejection category and reason are supplied",
)


# -----------------------------------------------------------------------------
# Standard Flow
# -----------------------------------------------------------------------------

STANDARD_FLOW = StageFlow(
    name="standard",
    stages=(
        Stage("measure", "Measurement", (
            S.MEASURE_APPOINTMENT_PENDING,
            S.MEASURE_SCHEDULED,
            S.MEASURE_TAKEN,
            S.CUSTOMER_MEASURE_PENDING,
            S.CUSTOMER_MEASURE_UPLOADED,
        )),
        Stage("pricing", "Pricing", (S.PRICING, S.OFFER_SENT, S.REJECTED)),
        Stage("agreement", "Agreement", (S.AGREEMENT_IN_PROGRESS, S.AGREEMENT_DONE)),
        Stage("stock", "Stock / Reservation", (S.STOCK_PENDING,)),
        Stage("production", "Production", (
            S.READY_FOR_PRODUCTION,
            S.IN_PRODUCTION,
            S.PRODUCTION_DEFERRED,
        )),
        Stage("assembly", "Assembly", (S.READY_FOR_ASSEMBLY, S.ASSEMBLY_SCHEDULED)),
        Stage("finance", "Financial Closure", (S.ACCOUNTING_PENDING, S.CLOSED)),
    ),
    transitions=(
        Transition(S.MEASURE_APPOINTMENT_PENDING, S.MEASURE_SCHEDULED, action="schedule_measure"),
        Transition(S.MEASURE_SCHEDULED, S.MEASURE_TAKEN, action="confirm_measure"),
        Transition(S.CUSTOMER_MEASURE_PENDING, S.CUSTOMER_MEASURE_UPLOADED, action="record_customer_measure"),
        Transition(S.MEASURE_TAKEN, S.PRICING, action="start_pricing", guard=MEASUREMENT_READY),
        Transition(S.CUSTOMER_MEASURE_PENDING, S.PRICING, action="start_pricing", guard=MEASUREMENT_READY),
        Transition(S.CUSTOMER_MEASURE_UPLOADED, S.PRICING, action="start_pricing", guard=MEASUREMENT_READY),
        Transition(S.PRICING, S.OFFER_SENT, action="submit_offer", guard=OFFER_POSITIVE),
        Transition(S.OFFER_SENT, S.AGREEMENT_IN_PROGRESS, action="accept_offer"),
        Transition(S.OFFER_SENT, S.AGREEMENT_IN_PROGRESS, action="negotiate_offer"),
        Transition(S.OFFER_SENT, S.REJECTED, action="reject_offer", guard=REJECTION_RECORDED),
        # The only backward edge of the machine.
        Transition(S.REJECTED, S.OFFER_SENT, action="reactivate"),
        Transition(S.AGREEMENT_IN_PROGRESS, S.AGREEMENT_DONE, action="complete_agreement", guard=PAYMENT_PLAN_BALANCED),
        Transition(S.AGREEMENT_DONE, S.READY_FOR_PRODUCTION, action="reserve_stock"),
        Transition(S.AGREEMENT_DONE, S.STOCK_PENDING, action="reserve_stock"),
        Transition(S.STOCK_PENDING, S.READY_FOR_PRODUCTION, action="reserve_stock"),
        Transition(S.STOCK_PENDING, S.STOCK_PENDING, action="reserve_stock"),
        Transition(S.READY_FOR_PRODUCTION, S.IN_PRODUCTION, action="update_production", intermediate=True),
        Transition(S.READY_FOR_PRODUCTION, S.PRODUCTION_DEFERRED, action="update_production", intermediate=True),
        Transition(S.READY_FOR_PRODUCTION, S.READY_FOR_ASSEMBLY, action="update_production"),
        Transition(S.IN_PRODUCTION, S.PRODUCTION_DEFERRED, action="update_production", intermediate=True),
        Transition(S.IN_PRODUCTION, S.READY_FOR_ASSEMBLY, action="update_production"),
        Transition(S.PRODUCTION_DEFERRED, S.IN_PRODUCTION, action="update_production", intermediate=True),
        Transition(S.PRODUCTION_DEFERRED, S.READY_FOR_ASSEMBLY, action="update_production"),
        Transition(S.READY_FOR_ASSEMBLY, S.ASSEMBLY_SCHEDULED, action="schedule_assembly"),
        Transition(S.ASSEMBLY_SCHEDULED, S.ASSEMBLY_SCHEDULED, action="schedule_assembly", intermediate=True),
        Transition(S.ASSEMBLY_SCHEDULED, S.ACCOUNTING_PENDING, action="complete_assembly"),
        Transition(S.ACCOUNTING_PENDING, S.CLOSED, action="close_finance", guard=FINANCE_BALANCED),
    ),
    terminal_statuses=(S.CLOSED,),
)

logger.info(
    "standard_flow_registered",
    extra={
        "flow_name": STANDARD_FLOW.name,
        "stage_count": len(STANDARD_FLOW.stages),
        "transition_count": len(STANDARD_FLOW.transitions),
    },
)


# -----------------------------------------------------------------------------
# Service Flow
# -----------------------------------------------------------------------------

SERVICE_FLOW = StageFlow(
    name="service",
    stages=(
        Stage("service_schedule", "Appointment", (S.SERVICE_APPOINTMENT_PENDING,)),
        Stage("service_start", "Start", (S.SERVICE_SCHEDULED,)),
        Stage("service_work", "Service", (S.SERVICE_IN_PROGRESS, S.SERVICE_ONGOING)),
        Stage("service_payment", "Payment", (S.SERVICE_PAYMENT_PENDING,)),
        Stage("service_done", "Done", (S.SERVICE_CLOSED,)),
    ),
    transitions=(
        Transition(S.SERVICE_APPOINTMENT_PENDING, S.SERVICE_SCHEDULED, action="schedule_service"),
        Transition(S.SERVICE_SCHEDULED, S.SERVICE_IN_PROGRESS, action="start_visit"),
        Transition(S.SERVICE_IN_PROGRESS, S.SERVICE_ONGOING, action="continue_service"),
        Transition(S.SERVICE_IN_PROGRESS, S.SERVICE_PAYMENT_PENDING, action="finalize_service"),
        Transition(S.SERVICE_ONGOING, S.SERVICE_SCHEDULED, action="schedule_follow_up"),
        Transition(S.SERVICE_ONGOING, S.SERVICE_IN_PROGRESS, action="schedule_follow_up"),
        Transition(S.SERVICE_PAYMENT_PENDING, S.SERVICE_CLOSED, action="close_service", guard=SERVICE_BALANCED),
    ),
    terminal_statuses=(S.SERVICE_CLOSED,),
)

logger.info(
    "service_flow_registered",
    extra={
        "flow_name": SERVICE_FLOW.name,
        "stage_count": len(SERVICE_FLOW.stages),
        "transition_count": len(SERVICE_FLOW.transitions),
    },
)


REJECTED_STATUS = S.REJECTED
REACTIVATION_STATUS = S.OFFER_SENT


def flow_for(start_type: StartType) -> StageFlow:
    """Select the flow for a job's start type."""
    return SERVICE_FLOW if start_type == StartType.SERVICE else STANDARD_FLOW


def validate_status_coverage(flows: tuple[StageFlow, ...] = (STANDARD_FLOW, SERVICE_FLOW)) -> None:
    """Every JobStatus must be owned by exactly one of ``flows``."""
    owners: dict[JobStatus, list[str]] = {status: [] for status in JobStatus}
    for flow in flows:
        for status in flow.statuses:
            owners[status].append(flow.name)

    problems = [
        f"status {status.value} owned by {names or 'no flow'}"
        for status, names in owners.items()
        if len(names) != 1
    ]
    if problems:
        raise StageFlowConfigurationError("+".join(f.name for f in flows), problems)


validate_status_coverage()
