"""
Tests for status classification and the view cursor.

Covers:
- classify: every status maps to its stage; strict vs lenient on unmapped
- stage ordering (done / current / pending)
- ViewCursor: navigation never touches the job; intermediate transitions
  keep the view in place
"""

from datetime import UTC, datetime

import pytest

from joinery_engines.stage_flow import (
    StageState,
    ViewCursor,
    classify,
    classify_job,
    next_stage,
    stage_index,
    stage_state,
    stage_states,
)
from joinery_kernel.domain.dtos import ActivityEntry, TransitionOutcome
from joinery_kernel.domain.flows import SERVICE_FLOW, STANDARD_FLOW
from joinery_kernel.domain.job import Job, JobStatus, StartType
from joinery_kernel.exceptions import UnknownStageError, UnmappedStatusError

NOW = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)


def make_job(status, start_type=StartType.MEASURE_APPOINTMENT):
    return Job.create("job-1", start_type, "cust-1").transitioned(status)


def make_outcome(before, after, advance_view=True):
    return TransitionOutcome(
        job=after,
        previous_status=before.status,
        entry=ActivityEntry(before.id, "test", "", NOW),
        advance_view=advance_view,
    )


# =============================================================================
# classify
# =============================================================================


class TestClassify:

    @pytest.mark.parametrize("status,stage_id", [
        (JobStatus.MEASURE_APPOINTMENT_PENDING, "measure"),
        (JobStatus.CUSTOMER_MEASURE_UPLOADED, "measure"),
        (JobStatus.OFFER_SENT, "pricing"),
        (JobStatus.REJECTED, "pricing"),
        (JobStatus.AGREEMENT_DONE, "agreement"),
        (JobStatus.STOCK_PENDING, "stock"),
        (JobStatus.PRODUCTION_DEFERRED, "production"),
        (JobStatus.ASSEMBLY_SCHEDULED, "assembly"),
        (JobStatus.CLOSED, "finance"),
    ])
    def test_standard_statuses(self, status, stage_id):
        assert classify(status, STANDARD_FLOW).id == stage_id

    @pytest.mark.parametrize("status,stage_id", [
        (JobStatus.SERVICE_APPOINTMENT_PENDING, "service_schedule"),
        (JobStatus.SERVICE_SCHEDULED, "service_start"),
        (JobStatus.SERVICE_ONGOING, "service_work"),
        (JobStatus.SERVICE_PAYMENT_PENDING, "service_payment"),
        (JobStatus.SERVICE_CLOSED, "service_done"),
    ])
    def test_service_statuses(self, status, stage_id):
        assert classify(status, SERVICE_FLOW).id == stage_id

    def test_string_token_accepted(self):
        assert classify("IN_PRODUCTION", STANDARD_FLOW).id == "production"

    def test_every_status_classifies_in_exactly_one_flow(self):
        for status in JobStatus:
            owners = [
                flow.name for flow in (STANDARD_FLOW, SERVICE_FLOW)
                if flow.stage_for(status) is not None
            ]
            assert len(owners) == 1, status

    def test_foreign_status_is_strict_error(self):
        with pytest.raises(UnmappedStatusError) as exc_info:
            classify(JobStatus.SERVICE_ONGOING, STANDARD_FLOW)
        assert exc_info.value.flow_name == "standard"

    def test_unknown_token_is_strict_error(self):
        with pytest.raises(UnmappedStatusError):
            classify("SOMETHING_LEGACY", STANDARD_FLOW)

    def test_lenient_defaults_to_first_stage_and_warns(self, captured_logs):
        stage = classify("SOMETHING_LEGACY", STANDARD_FLOW, strict=False)

        assert stage.id == "measure"
        logs = captured_logs()
        warning = next(r for r in logs if r["message"] == "status_unmapped_defaulted")
        assert warning["status"] == "SOMETHING_LEGACY"
        assert warning["level"] == "WARNING"

    def test_classify_job_uses_start_type(self):
        job = make_job(JobStatus.SERVICE_SCHEDULED, StartType.SERVICE)
        assert classify_job(job).id == "service_start"


# =============================================================================
# Stage ordering
# =============================================================================


class TestStageOrdering:

    def test_stage_index(self):
        assert stage_index("measure", STANDARD_FLOW) == 0
        assert stage_index("finance", STANDARD_FLOW) == 6

    def test_unknown_stage_raises(self):
        with pytest.raises(UnknownStageError):
            stage_index("paint", STANDARD_FLOW)

    def test_stage_state(self):
        status = JobStatus.STOCK_PENDING
        assert stage_state("agreement", status, STANDARD_FLOW) == StageState.DONE
        assert stage_state("stock", status, STANDARD_FLOW) == StageState.CURRENT
        assert stage_state("production", status, STANDARD_FLOW) == StageState.PENDING

    def test_stage_states_for_job(self):
        states = stage_states(make_job(JobStatus.OFFER_SENT))
        assert states["measure"] == StageState.DONE
        assert states["pricing"] == StageState.CURRENT
        assert states["finance"] == StageState.PENDING
        assert list(states) == [stage.id for stage in STANDARD_FLOW.stages]

    def test_next_stage(self):
        assert next_stage("measure", STANDARD_FLOW).id == "pricing"
        assert next_stage("finance", STANDARD_FLOW) is None


# =============================================================================
# View cursor
# =============================================================================


class TestViewCursor:

    def test_opens_on_actual_stage(self):
        cursor = ViewCursor.for_job(make_job(JobStatus.IN_PRODUCTION))
        assert cursor.stage_id == "production"
        assert cursor.stage.label == "Production"

    def test_navigate_leaves_job_untouched(self):
        job = make_job(JobStatus.IN_PRODUCTION)
        cursor = ViewCursor.for_job(job).navigate("measure")

        assert cursor.stage_id == "measure"
        assert job.status == JobStatus.IN_PRODUCTION
        assert classify_job(job).id == "production"

    def test_navigate_to_unknown_stage_raises(self):
        cursor = ViewCursor.for_job(make_job(JobStatus.PRICING))
        with pytest.raises(UnknownStageError):
            cursor.navigate("warehouse")

    def test_follow_advances_on_stage_change(self):
        before = make_job(JobStatus.ASSEMBLY_SCHEDULED)
        after = before.transitioned(JobStatus.ACCOUNTING_PENDING)
        cursor = ViewCursor.for_job(before).follow(make_outcome(before, after))
        assert cursor.stage_id == "finance"

    def test_follow_stays_on_intermediate(self):
        before = make_job(JobStatus.READY_FOR_PRODUCTION)
        after = before.transitioned(JobStatus.IN_PRODUCTION)
        cursor = ViewCursor.for_job(before).navigate("stock")

        followed = cursor.follow(make_outcome(before, after, advance_view=False))
        assert followed == cursor
