"""
Tests for the payment reconciliation engine.

Covers:
- Cheque / plan / pre-received totals
- Amount-weighted average cheque term
- Agreement reconciliation (tolerance, declared cheque total, negatives)
- Finance and service settlement balances and discount notes
- Property: agreement closes iff |plan - offer| <= tolerance
"""

from datetime import date
from decimal import Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from joinery_engines.payments import (
    CHEQUE_TOTAL_MISMATCH,
    DISCOUNT_NOTE_REQUIRED,
    FINANCE_BALANCE_MISMATCH,
    LONG_CHEQUE_TERM,
    NEGATIVE_AMOUNT,
    PLAN_TOTAL_MISMATCH,
    SERVICE_BALANCE_MISMATCH,
    ReconciliationPolicy,
    average_cheque_days,
    cheque_total,
    plan_total,
    pre_received,
    reconcile_agreement,
    service_totals,
    settle_finance,
    settle_service,
)
from joinery_kernel.domain.job import (
    ChequeLine,
    Discount,
    FinancePayments,
    PaymentPlan,
    ServiceDetails,
    ServicePayments,
    ServiceVisit,
    VisitStatus,
)

TODAY = date(2024, 1, 1)


def make_plan(cash="0", card="0", cheques=(), after_delivery="0", declared=None):
    return PaymentPlan(
        cash=Decimal(cash),
        card=Decimal(card),
        cheque_lines=tuple(
            ChequeLine(amount=Decimal(amount), due_date=due) for amount, due in cheques
        ),
        after_delivery=Decimal(after_delivery),
        declared_cheque_total=Decimal(declared) if declared is not None else None,
    )


def codes(result):
    return [issue.code for issue in result.errors]


# =============================================================================
# Totals
# =============================================================================


class TestTotals:

    def test_cheque_total_sums_lines(self):
        plan = make_plan(cheques=[("1000", None), ("2500.50", None)])
        assert cheque_total(plan.cheque_lines) == Decimal("3500.50")

    def test_plan_total_includes_after_delivery(self):
        plan = make_plan("4000", "2000", [("3000", None)], "1000")
        assert plan_total(plan) == Decimal("10000")

    def test_pre_received_excludes_after_delivery(self):
        plan = make_plan("4000", "2000", [("3000", None)], "1000")
        assert pre_received(plan) == Decimal("9000")

    def test_pre_received_without_plan_is_zero(self):
        assert pre_received(None) == Decimal("0")


# =============================================================================
# Average cheque term
# =============================================================================


class TestAverageChequeDays:

    def test_amount_weighted(self):
        """1000 due in 30 days and 3000 due in 90 days -> (30k + 270k) / 4000 = 75."""
        lines = make_plan(cheques=[
            ("1000", date(2024, 1, 31)),
            ("3000", date(2024, 3, 31)),
        ]).cheque_lines
        assert average_cheque_days(lines, TODAY) == 75

    def test_past_due_and_undated_count_as_zero(self):
        lines = make_plan(cheques=[
            ("1000", date(2023, 12, 1)),
            ("1000", None),
            ("2000", date(2024, 1, 11)),
        ]).cheque_lines
        # (0 + 0 + 2000 * 10) / 4000 = 5
        assert average_cheque_days(lines, TODAY) == 5

    def test_rounds_half_up(self):
        lines = make_plan(cheques=[
            ("1", date(2024, 1, 2)),
            ("1", date(2024, 1, 3)),
        ]).cheque_lines
        # (1 + 2) / 2 = 1.5 -> 2
        assert average_cheque_days(lines, TODAY) == 2

    def test_no_cheques_is_zero(self):
        assert average_cheque_days((), TODAY) == 0


# =============================================================================
# Agreement reconciliation
# =============================================================================


class TestReconcileAgreement:

    def test_balanced_plan_accepted(self):
        """10,000 offer covered by 4000 cash + 2000 card + 3000 cheque + 1000 after delivery."""
        summary = reconcile_agreement(
            offer_total=Decimal("10000"),
            plan=make_plan("4000", "2000", [("3000", None)], "1000"),
        )

        assert summary.result.is_valid
        assert summary.plan_total == Decimal("10000")
        assert summary.cheque_total == Decimal("3000")
        assert summary.difference == Decimal("0")
        assert summary.result.discrepancy is None

    def test_within_tolerance_accepted(self):
        summary = reconcile_agreement(
            offer_total=Decimal("10000"),
            plan=make_plan(cash="9999.99"),
        )
        assert summary.result.is_valid
        assert summary.difference == Decimal("0.01")

    def test_short_plan_rejected_with_signed_discrepancy(self):
        summary = reconcile_agreement(
            offer_total=Decimal("10000"),
            plan=make_plan(cash="9000"),
        )

        assert not summary.result.is_valid
        assert codes(summary.result) == [PLAN_TOTAL_MISMATCH]
        assert summary.result.discrepancy == Decimal("1000")

    def test_over_collecting_plan_rejected(self):
        summary = reconcile_agreement(
            offer_total=Decimal("10000"),
            plan=make_plan(cash="10000.02"),
        )
        assert codes(summary.result) == [PLAN_TOTAL_MISMATCH]
        assert summary.result.discrepancy == Decimal("-0.02")

    def test_declared_cheque_total_must_match_lines(self):
        summary = reconcile_agreement(
            offer_total=Decimal("5000"),
            plan=make_plan(cash="2000", cheques=[("3000", None)], declared="3500"),
        )

        assert codes(summary.result) == [CHEQUE_TOTAL_MISMATCH]
        assert summary.result.discrepancy == Decimal("500")

    def test_every_violation_reported(self):
        summary = reconcile_agreement(
            offer_total=Decimal("5000"),
            plan=make_plan(cash="-100", cheques=[("-50", None)], declared="10"),
        )

        found = codes(summary.result)
        assert found.count(NEGATIVE_AMOUNT) == 2
        assert PLAN_TOTAL_MISMATCH in found
        assert CHEQUE_TOTAL_MISMATCH in found

    def test_long_cheque_term_is_a_warning(self):
        summary = reconcile_agreement(
            offer_total=Decimal("1000"),
            plan=make_plan(cheques=[("1000", date(2024, 6, 1))]),
            today=TODAY,
        )

        assert summary.result.is_valid
        assert [w.code for w in summary.result.warnings] == [LONG_CHEQUE_TERM]
        assert summary.average_cheque_days == 152

    def test_long_term_threshold_from_policy(self):
        summary = reconcile_agreement(
            offer_total=Decimal("1000"),
            plan=make_plan(cheques=[("1000", date(2024, 2, 15))]),
            today=TODAY,
            policy=ReconciliationPolicy(long_cheque_term_days=30),
        )
        assert [w.code for w in summary.result.warnings] == [LONG_CHEQUE_TERM]

    def test_no_term_check_without_today(self):
        summary = reconcile_agreement(
            offer_total=Decimal("1000"),
            plan=make_plan(cheques=[("1000", date(2030, 1, 1))]),
        )
        assert summary.result.warnings == ()
        assert summary.average_cheque_days == 0

    def test_custom_tolerance(self):
        summary = reconcile_agreement(
            offer_total=Decimal("1000"),
            plan=make_plan(cash="995"),
            policy=ReconciliationPolicy(tolerance=Decimal("5")),
        )
        assert summary.result.is_valid


@pytest.mark.slow
class TestAgreementToleranceProperty:

    @settings(max_examples=300, deadline=None)
    @given(
        offer=st.decimals(min_value=Decimal("0.01"), max_value=Decimal("1000000"), places=2),
        delta=st.decimals(min_value=Decimal("-1"), max_value=Decimal("1"), places=2),
    )
    def test_closes_iff_within_tolerance(self, offer, delta):
        summary = reconcile_agreement(
            offer_total=offer,
            plan=make_plan(cash=str(offer + delta)) if offer + delta >= 0 else make_plan(),
        )
        plan = summary.plan_total
        assert summary.result.is_valid == (abs(plan - offer) <= Decimal("0.01"))


# =============================================================================
# Finance settlement
# =============================================================================


class TestSettleFinance:

    def test_zero_balance_accepted(self):
        settlement = settle_finance(
            offer_total=Decimal("10000"),
            plan=make_plan("4000", "2000", [("3000", None)], "1000"),
            payments=FinancePayments(cash=Decimal("1000")),
        )

        assert settlement.result.is_valid
        assert settlement.pre_received == Decimal("9000")
        assert settlement.now_received == Decimal("1000")
        assert settlement.balance == Decimal("0")

    def test_nonzero_balance_rejected(self):
        settlement = settle_finance(
            offer_total=Decimal("10000"),
            plan=make_plan(cash="9000"),
            payments=FinancePayments(cash=Decimal("999.99")),
        )

        assert codes(settlement.result) == [FINANCE_BALANCE_MISMATCH]
        assert settlement.result.discrepancy == Decimal("0.01")

    def test_discount_closes_gap(self):
        settlement = settle_finance(
            offer_total=Decimal("10000"),
            plan=make_plan(cash="9000"),
            payments=FinancePayments(card=Decimal("900")),
            discount=Discount(Decimal("100")),
        )
        assert settlement.result.is_valid
        assert settlement.discount == Decimal("100")

    def test_discount_note_only_when_policy_requires(self):
        kwargs = dict(
            offer_total=Decimal("100"),
            plan=None,
            payments=FinancePayments(cash=Decimal("90")),
            discount=Discount(Decimal("10")),
        )
        assert settle_finance(**kwargs).result.is_valid

        strict = settle_finance(
            **kwargs, policy=ReconciliationPolicy(require_finance_discount_note=True)
        )
        assert codes(strict.result) == [DISCOUNT_NOTE_REQUIRED]


# =============================================================================
# Service settlement
# =============================================================================


class TestSettleService:

    def test_service_totals(self):
        service = ServiceDetails(
            fixed_fee=Decimal("500"),
            visits=(
                ServiceVisit(1, TODAY, "10:00", VisitStatus.COMPLETED, extra_cost=Decimal("100")),
                ServiceVisit(2, TODAY, "10:00", VisitStatus.COMPLETED, extra_cost=Decimal("50")),
            ),
        )
        assert service_totals(service) == (Decimal("150"), Decimal("650"))

    def test_underpaid_rejected(self):
        """650 total, 600 paid, no discount -> balance 50."""
        settlement = settle_service(
            total_cost=Decimal("650"),
            payments=ServicePayments(cash=Decimal("600")),
            discount=Discount(Decimal("0")),
        )

        assert codes(settlement.result) == [SERVICE_BALANCE_MISMATCH]
        assert settlement.balance == Decimal("50")
        assert settlement.result.discrepancy == Decimal("50")

    def test_discount_with_note_accepted(self):
        settlement = settle_service(
            total_cost=Decimal("650"),
            payments=ServicePayments(cash=Decimal("600")),
            discount=Discount(Decimal("50"), note="loyal customer"),
        )
        assert settlement.result.is_valid
        assert settlement.balance == Decimal("0")

    def test_discount_without_note_rejected(self):
        settlement = settle_service(
            total_cost=Decimal("650"),
            payments=ServicePayments(cash=Decimal("600")),
            discount=Discount(Decimal("50"), note="  "),
        )
        assert codes(settlement.result) == [DISCOUNT_NOTE_REQUIRED]

    def test_mixed_payment_channels(self):
        settlement = settle_service(
            total_cost=Decimal("650"),
            payments=ServicePayments(
                cash=Decimal("200"), card=Decimal("250"), transfer=Decimal("200")
            ),
        )
        assert settlement.paid == Decimal("650")
        assert settlement.result.is_valid

    def test_negative_payment_rejected(self):
        settlement = settle_service(
            total_cost=Decimal("0"),
            payments=ServicePayments(cash=Decimal("-10"), card=Decimal("10")),
        )
        assert codes(settlement.result) == [NEGATIVE_AMOUNT]
