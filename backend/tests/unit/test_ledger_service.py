"""Unit tests for LedgerService: refundable balance scan and refund allocation."""

from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from charter_bookings.models import (
    BookingType,
    Err,
    ErrorKind,
    Ok,
    PaymentStatus,
    RefundStatus,
)
from charter_bookings.services.ledger_service import LedgerService


class TestCalculateRefundableAmount:
    def test_sums_completed_payments(self, ledger_service, make_payment) -> None:
        make_payment("PAY-OLD", "150.00", refunded="30.00", minutes_ago=120)
        make_payment("PAY-NEW", "50.00", minutes_ago=10)

        result = ledger_service.calculate_refundable_amount("BK-1", BookingType.TOUR)

        assert isinstance(result, Ok)
        summary = result.value
        assert summary.total_paid == Decimal("200.00")
        assert summary.total_already_refunded == Decimal("30.00")
        assert summary.available_for_refund == Decimal("170.00")
        assert [p.payment_id for p in summary.refundable_payments] == ["PAY-NEW", "PAY-OLD"]

    def test_refundable_entries_carry_remaining_amount(self, ledger_service, make_payment) -> None:
        make_payment("PAY-1", "150.00", refunded="30.00")

        summary = ledger_service.calculate_refundable_amount("BK-1", BookingType.TOUR).value

        assert summary.refundable_payments[0].amount == Decimal("120.00")
        assert summary.all_payments[0].amount == Decimal("150.00")

    def test_pending_refunds_are_not_refundable(self, ledger_service, make_payment) -> None:
        make_payment("PAY-PENDING", "100.00", refunded="20.00", refund_status=RefundStatus.PENDING)
        make_payment("PAY-FREE", "40.00", minutes_ago=5)

        summary = ledger_service.calculate_refundable_amount("BK-1", BookingType.TOUR).value

        assert [p.payment_id for p in summary.refundable_payments] == ["PAY-FREE"]
        # Pending payments still count towards the totals
        assert summary.total_paid == Decimal("140.00")
        assert summary.available_for_refund == Decimal("120.00")

    def test_fully_refunded_payments_are_skipped(self, ledger_service, make_payment) -> None:
        make_payment("PAY-DONE", "80.00", refunded="80.00", refund_status=RefundStatus.REFUNDED)

        summary = ledger_service.calculate_refundable_amount("BK-1", BookingType.TOUR).value

        assert summary.refundable_payments == []
        assert summary.available_for_refund == Decimal("0")

    def test_ignores_payments_that_are_not_completed(self, ledger_service, make_payment) -> None:
        make_payment("PAY-OK", "100.00")
        make_payment("PAY-PENDING", "25.00", status=PaymentStatus.PENDING, minutes_ago=1)
        make_payment("PAY-FAILED", "25.00", status=PaymentStatus.FAILED, minutes_ago=2)

        summary = ledger_service.calculate_refundable_amount("BK-1", BookingType.TOUR).value

        assert summary.total_paid == Decimal("100.00")

    def test_scopes_to_booking_type(self, ledger_service, make_payment) -> None:
        make_payment("PAY-T", "100.00", booking_type=BookingType.TOUR)

        result = ledger_service.calculate_refundable_amount("BK-1", BookingType.EVENT)

        assert isinstance(result, Err)

    def test_no_completed_payments_is_not_found_with_400(self, ledger_service) -> None:
        result = ledger_service.calculate_refundable_amount("BK-EMPTY", BookingType.TOUR)

        assert isinstance(result, Err)
        assert result.kind == ErrorKind.NOT_FOUND
        assert result.status_code == 400
        assert result.message == "No completed payments found for this booking"

    def test_data_access_failure_is_internal_error(self) -> None:
        payments = MagicMock()
        payments.get_completed_payments.side_effect = ClientError(
            {"Error": {"Code": "InternalServerError", "Message": "boom"}}, "Query"
        )

        result = LedgerService(payments).calculate_refundable_amount("BK-1", BookingType.TOUR)

        assert isinstance(result, Err)
        assert result.kind == ErrorKind.INTERNAL
        assert result.status_code == 500


class TestGetPaymentsToRefund:
    def test_upcharge_refunded_before_original_payment(self, ledger_service, make_payment) -> None:
        """$150 original + $50 upcharge, refund $180: $50 then $130."""
        make_payment("PAY-ORIGINAL", "150.00", minutes_ago=120)
        make_payment("PAY-UPCHARGE", "50.00", minutes_ago=10)

        result = ledger_service.get_payments_to_refund("BK-1", Decimal("180.00"), BookingType.TOUR)

        assert isinstance(result, Ok)
        plan = result.value
        assert [(a.payment.payment_id, a.refund_amount) for a in plan.payments_to_refund] == [
            ("PAY-UPCHARGE", Decimal("50.00")),
            ("PAY-ORIGINAL", Decimal("130.00")),
        ]
        assert plan.total_refund_amount == Decimal("180.00")
        assert plan.available_for_refund == Decimal("200.00")
        # $20 left on the original payment
        original = plan.payments_to_refund[1]
        assert original.payment.amount - original.refund_amount == Decimal("20.00")

    def test_single_payment_covers_request(self, ledger_service, make_payment) -> None:
        make_payment("PAY-ORIGINAL", "150.00", minutes_ago=120)
        make_payment("PAY-UPCHARGE", "50.00", minutes_ago=10)

        plan = ledger_service.get_payments_to_refund(
            "BK-1", Decimal("30.00"), BookingType.TOUR
        ).value

        assert len(plan.payments_to_refund) == 1
        assert plan.payments_to_refund[0].payment.payment_id == "PAY-UPCHARGE"
        assert plan.payments_to_refund[0].payment_intent_id == "pi_PAY-UPCHARGE"

    def test_allocation_never_exceeds_request(self, ledger_service, make_payment) -> None:
        make_payment("PAY-A", "60.00", minutes_ago=3)
        make_payment("PAY-B", "60.00", minutes_ago=2)
        make_payment("PAY-C", "60.00", minutes_ago=1)

        plan = ledger_service.get_payments_to_refund(
            "BK-1", Decimal("100.00"), BookingType.TOUR
        ).value

        total = sum(a.refund_amount for a in plan.payments_to_refund)
        assert total == Decimal("100.00")
        for allocation in plan.payments_to_refund:
            assert allocation.refund_amount <= allocation.payment.amount

    def test_request_above_balance_is_insufficient(self, ledger_service, make_payment, mock_stripe) -> None:
        """$500 against $200 available fails without touching the gateway."""
        make_payment("PAY-1", "200.00")

        result = ledger_service.get_payments_to_refund("BK-1", Decimal("500.00"), BookingType.TOUR)

        assert isinstance(result, Err)
        assert result.kind == ErrorKind.INSUFFICIENT_FUNDS
        assert result.status_code == 400
        assert result.message == (
            "Refund amount $500.00 exceeds available refund amount $200.00"
        )
        mock_stripe.create_refund.assert_not_called()

    @pytest.mark.parametrize("amount", ["0", "-5.00"])
    def test_non_positive_amount_is_rejected(self, ledger_service, make_payment, amount) -> None:
        make_payment("PAY-1", "200.00")

        result = ledger_service.get_payments_to_refund("BK-1", Decimal(amount), BookingType.TOUR)

        assert isinstance(result, Err)
        assert result.kind == ErrorKind.VALIDATION

    def test_payments_without_intent_are_skipped(self, ledger_service, make_payment) -> None:
        make_payment("PAY-MANUAL", "100.00", intent=None, minutes_ago=1)
        make_payment("PAY-CARD", "100.00", minutes_ago=5)

        plan = ledger_service.get_payments_to_refund(
            "BK-1", Decimal("80.00"), BookingType.TOUR
        ).value

        assert [a.payment.payment_id for a in plan.payments_to_refund] == ["PAY-CARD"]

    def test_shortfall_when_only_manual_payments_remain(self, ledger_service, make_payment) -> None:
        make_payment("PAY-MANUAL", "100.00", intent=None, minutes_ago=1)
        make_payment("PAY-CARD", "50.00", minutes_ago=5)

        result = ledger_service.get_payments_to_refund("BK-1", Decimal("120.00"), BookingType.TOUR)

        assert isinstance(result, Err)
        assert result.kind == ErrorKind.INSUFFICIENT_FUNDS
        assert result.message == (
            "Unable to process full refund. Missing $70.00 in refundable payments"
        )

    def test_propagates_ledger_error(self, ledger_service) -> None:
        result = ledger_service.get_payments_to_refund("BK-NONE", Decimal("10.00"), BookingType.TOUR)

        assert isinstance(result, Err)
        assert result.kind == ErrorKind.NOT_FOUND
