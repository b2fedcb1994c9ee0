"""Tests for offer rejection and reactivation."""

from datetime import UTC, date, datetime, timedelta
from decimal import Decimal

import pytest

from joinery_engines.rejection import NOT_REJECTED, reactivate, reject_offer
from joinery_kernel.domain.job import Job, JobStatus, Offer, RejectionCategory, StartType
from joinery_kernel.exceptions import ValidationError

NOW = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)


def make_job():
    job = Job.create("job-1", StartType.MEASURE_APPOINTMENT, "cust-1")
    return job.transitioned(
        JobStatus.OFFER_SENT,
        offer=Offer(total=Decimal("7500"), role_prices={"win": Decimal("7500")}),
    )


class TestRejectOffer:

    def test_snapshots_last_offer(self):
        job = make_job()
        rejected = reject_offer(
            job,
            category=RejectionCategory.PRICE_TOO_HIGH,
            reason="  too expensive ",
            now=NOW,
            follow_up_date=date(2024, 2, 1),
        )

        assert rejected.status == JobStatus.REJECTED
        assert rejected.rejection.last_offer == job.offer
        assert rejected.rejection.reason == "too expensive"
        assert rejected.rejection.rejected_at == NOW
        assert rejected.rejection.follow_up_date == date(2024, 2, 1)

    def test_category_token_accepted(self):
        rejected = reject_offer(make_job(), category="TIMING", reason="next year", now=NOW)
        assert rejected.rejection.category == RejectionCategory.TIMING


class TestReactivate:

    def test_restores_offer_and_clears_rejection(self):
        job = make_job()
        rejected = reject_offer(job, category=RejectionCategory.THINKING, reason="later", now=NOW)
        later = NOW + timedelta(days=30)
        restored = reactivate(rejected, now=later)

        assert restored.status == JobStatus.OFFER_SENT
        assert restored.rejection is None
        assert restored.offer == job.offer
        assert restored.reactivation.reactivated_at == later
        assert restored.reactivation.reactivated_from == rejected.rejection

    def test_reactivate_twice_keeps_rejection_cleared(self):
        rejected = reject_offer(make_job(), category=RejectionCategory.OTHER, reason="x", now=NOW)
        once = reactivate(rejected, now=NOW)
        again = reject_offer(once, category=RejectionCategory.OTHER, reason="y", now=NOW)
        twice = reactivate(again, now=NOW)

        assert twice.rejection is None
        assert twice.offer == once.offer

    def test_without_rejection_refused(self):
        with pytest.raises(ValidationError) as exc_info:
            reactivate(make_job(), now=NOW)
        assert exc_info.value.issues[0].code == NOT_REJECTED
