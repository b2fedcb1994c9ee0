"""
Tests for offer submission, acceptance and the negotiation ledger.

Covers:
- build_offer from role prices or a bare total
- submit / accept
- Discount rounds: arithmetic, append-only ledger, negative-price warnings
- Rejected discount requests
"""

from dataclasses import replace
from datetime import UTC, date, datetime, timedelta
from decimal import Decimal

import pytest

from joinery_engines.negotiation import (
    NEGATIVE_DISCOUNT,
    NEGATIVE_ROLE_PRICE,
    NOTHING_TO_NEGOTIATE,
    UNKNOWN_ROLE,
    accept_offer,
    build_offer,
    negotiate,
    submit_offer,
)
from joinery_kernel.domain.job import Job, JobStatus, Offer, Role, StartType
from joinery_kernel.exceptions import ValidationError

NOW = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)
TODAY = NOW.date()


def make_offer(**prices):
    role_prices = {role: Decimal(amount) for role, amount in prices.items()}
    return Offer(total=sum(role_prices.values(), Decimal("0")), role_prices=role_prices)


def make_job(status=JobStatus.OFFER_SENT, offer=None):
    job = Job.create(
        "job-1",
        StartType.MEASURE_APPOINTMENT,
        "cust-1",
        roles=(Role("win", "Windows"), Role("door", "Doors")),
    )
    return job.transitioned(status, offer=offer or make_offer(win="6000", door="4000"))


# =============================================================================
# Building and sending
# =============================================================================


class TestBuildOffer:

    def test_from_role_prices(self):
        offer = build_offer(role_prices={"win": Decimal("100"), "door": Decimal("50.5")})
        assert offer.total == Decimal("150.5")

    def test_unpriced_roles_count_as_zero(self):
        offer = build_offer(role_ids=["win", "door"], role_prices={"win": Decimal("100")})
        assert offer.role_prices == {"win": Decimal("100"), "door": Decimal("0")}
        assert offer.total == Decimal("100")

    def test_from_total(self):
        offer = build_offer(total=Decimal("999"), notified_date=date(2024, 2, 1))
        assert offer.total == Decimal("999")
        assert offer.role_prices == {}
        assert offer.notified_date == date(2024, 2, 1)

    def test_mismatched_offer_rejected_by_value_object(self):
        with pytest.raises(ValueError, match="must equal the sum"):
            Offer(total=Decimal("10"), role_prices={"win": Decimal("5")})


class TestSubmitAndAccept:

    def test_submit_defaults_notified_date(self):
        job = make_job(JobStatus.PRICING, offer=Offer())
        updated = submit_offer(job, make_offer(win="500"), today=TODAY)

        assert updated.status == JobStatus.OFFER_SENT
        assert updated.offer.notified_date == TODAY
        assert updated.offer.total == Decimal("500")

    def test_submit_keeps_explicit_notified_date(self):
        offer = replace(make_offer(win="500"), notified_date=date(2023, 12, 20))
        updated = submit_offer(make_job(JobStatus.PRICING), offer, today=TODAY)
        assert updated.offer.notified_date == date(2023, 12, 20)

    def test_accept_stamps_agreed_date(self):
        updated = accept_offer(make_job(), now=NOW)

        assert updated.status == JobStatus.AGREEMENT_IN_PROGRESS
        assert updated.offer.agreed_date == NOW
        assert updated.offer.total == Decimal("10000")


# =============================================================================
# Discount rounds
# =============================================================================


class TestNegotiate:

    def test_discount_arithmetic(self):
        result = negotiate(make_job(), role_discounts={"win": Decimal("500")}, now=NOW)

        offer = result.job.offer
        assert result.job.status == JobStatus.AGREEMENT_IN_PROGRESS
        assert offer.role_prices == {"win": Decimal("5500"), "door": Decimal("4000")}
        assert offer.total == Decimal("9500")
        assert result.record.original_total == Decimal("10000")
        assert result.record.discount_total == Decimal("500")
        assert result.record.final_total == Decimal("9500")
        assert result.record.negotiated_at == NOW
        assert result.warnings == ()

    def test_ledger_is_append_only(self):
        job = make_job()
        first = negotiate(job, role_discounts={"win": Decimal("100")}, now=NOW)
        # Loop the offer back for a second round.
        reopened = first.job.transitioned(JobStatus.OFFER_SENT)
        second = negotiate(
            reopened, role_discounts={"door": Decimal("200")}, now=NOW + timedelta(days=1)
        )

        history = second.job.offer.negotiation_history
        assert len(job.offer.negotiation_history) == 0
        assert len(first.job.offer.negotiation_history) == 1
        assert len(history) == 2
        assert history[0] is first.record
        assert history[0] == first.job.offer.negotiation_history[0]
        assert history[1].original_total == Decimal("9900")
        assert history[1].final_total == Decimal("9700")

    def test_negative_role_price_is_warning_not_clamped(self, captured_logs):
        result = negotiate(make_job(), role_discounts={"door": Decimal("4500")}, now=NOW)

        assert result.job.offer.role_prices["door"] == Decimal("-500")
        assert [w.code for w in result.warnings] == [NEGATIVE_ROLE_PRICE]
        assert any(
            r["message"] == "negotiation_negative_role_price" for r in captured_logs()
        )

    def test_negative_discount_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            negotiate(make_job(), role_discounts={"win": Decimal("-1")}, now=NOW)
        assert [i.code for i in exc_info.value.issues] == [NEGATIVE_DISCOUNT]

    def test_unknown_role_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            negotiate(make_job(), role_discounts={"roof": Decimal("10")}, now=NOW)
        assert [i.code for i in exc_info.value.issues] == [UNKNOWN_ROLE]

    def test_empty_discounts_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            negotiate(make_job(), role_discounts={}, now=NOW)
        assert [i.code for i in exc_info.value.issues] == [NOTHING_TO_NEGOTIATE]

    def test_input_job_unchanged(self):
        job = make_job()
        negotiate(job, role_discounts={"win": Decimal("100")}, now=NOW)
        assert job.offer.total == Decimal("10000")
        assert job.offer.negotiation_history == ()
