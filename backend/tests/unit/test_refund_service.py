"""Unit tests for RefundService: claim, gateway refund, finalize and release."""

import datetime as dt
from decimal import Decimal
from unittest.mock import patch

import pytest

from charter_bookings.models import (
    BookingError,
    BookingType,
    ErrorKind,
    RefundAllocation,
    RefundStatus,
)
from charter_bookings.services.stripe_service import StripeServiceError


def in_hours(hours: float) -> dt.datetime:
    return dt.datetime.now(dt.UTC) + dt.timedelta(hours=hours)


class TestProcessRefund:
    def test_full_refund_two_days_out(self, refund_service, payment_service, make_payment, mock_stripe) -> None:
        """$200 payment, 48 hours out: $200 refunded and the payment goes pending."""
        make_payment("PAY-1", "200.00")

        result = refund_service.process_refund(
            payment_intent_id="pi_PAY-1",
            payment_id="PAY-1",
            payment_amount=Decimal("200.00"),
            booking_id="BK-1",
            event_date=in_hours(48),
            reason="Tour Booking Cancelled",
            booking_type=BookingType.TOUR,
        )

        assert result.success is True
        assert result.amount == Decimal("200.00")
        assert result.percentage == 100
        assert result.message == "Full refund initiated"
        assert result.refund_id == "re_test_1"

        stored = payment_service.get_payment("PAY-1", BookingType.TOUR)
        assert stored.refunded_amount == Decimal("200.00")
        assert stored.refund_status == RefundStatus.PENDING
        assert stored.stripe_refund_id == "re_test_1"
        assert "Refund initiated: re_test_1 for $200.00 (100% of original payment)" in stored.notes

        kwargs = mock_stripe.create_refund.call_args.kwargs
        assert kwargs["amount_cents"] == 20000
        assert kwargs["idempotency_key"] == "refund-PAY-1-20000"
        assert kwargs["metadata"]["bookingId"] == "BK-1"
        assert kwargs["metadata"]["refundType"] == "cancellation"

    def test_half_refund_six_hours_out(self, refund_service, payment_service, make_payment) -> None:
        """Same booking 6 hours out: $100."""
        make_payment("PAY-1", "200.00")

        result = refund_service.process_refund(
            payment_intent_id="pi_PAY-1",
            payment_id="PAY-1",
            payment_amount=Decimal("200.00"),
            booking_id="BK-1",
            event_date=in_hours(6),
            reason="Tour Booking Cancelled",
            booking_type=BookingType.TOUR,
        )

        assert result.amount == Decimal("100.00")
        assert result.percentage == 50
        assert result.message == "Partial refund initiated"
        stored = payment_service.get_payment("PAY-1", BookingType.TOUR)
        assert stored.refunded_amount == Decimal("100.00")

    def test_after_departure_is_ineligible(self, refund_service, make_payment, mock_stripe) -> None:
        make_payment("PAY-1", "200.00")

        with pytest.raises(BookingError) as exc_info:
            refund_service.process_refund(
                payment_intent_id="pi_PAY-1",
                payment_id="PAY-1",
                payment_amount=Decimal("200.00"),
                booking_id="BK-1",
                event_date=in_hours(-1),
                reason="Tour Booking Cancelled",
                booking_type=BookingType.TOUR,
            )

        assert exc_info.value.kind == ErrorKind.POLICY_INELIGIBLE
        mock_stripe.create_refund.assert_not_called()

    def test_downgrade_refunds_exact_difference(self, refund_service, payment_service, make_payment, mock_stripe) -> None:
        """Downgrades bypass the policy even inside the last 12 hours."""
        make_payment("PAY-1", "300.00", booking_type=BookingType.EVENT)

        result = refund_service.process_refund(
            payment_intent_id="pi_PAY-1",
            payment_id="PAY-1",
            payment_amount=Decimal("300.00"),
            booking_id="EB-1",
            event_date=in_hours(2),
            reason="Booking downgrade",
            booking_type=BookingType.EVENT,
            is_downgrade=True,
            downgrade_difference=Decimal("-50.00"),
        )

        assert result.amount == Decimal("50.00")
        assert result.message == "Downgrade refund initiated"
        metadata = mock_stripe.create_refund.call_args.kwargs["metadata"]
        assert metadata["refundType"] == "downgrade"
        assert metadata["downgradeDifference"] == Decimal("-50.00")
        stored = payment_service.get_payment("PAY-1", BookingType.EVENT)
        assert "(price difference)" in stored.notes

    def test_approved_amount_skips_policy(self, refund_service, make_payment) -> None:
        make_payment("PAY-1", "200.00")

        result = refund_service.process_refund(
            payment_intent_id="pi_PAY-1",
            payment_id="PAY-1",
            payment_amount=Decimal("200.00"),
            booking_id="BK-1",
            event_date=None,
            reason="Tour Booking Cancelled",
            booking_type=BookingType.TOUR,
            approved_amount=Decimal("75.00"),
        )

        assert result.amount == Decimal("75.00")
        assert result.percentage == pytest.approx(37.5)

    def test_missing_payment_is_not_found(self, refund_service) -> None:
        with pytest.raises(BookingError) as exc_info:
            refund_service.process_refund(
                payment_intent_id="pi_x",
                payment_id="PAY-MISSING",
                payment_amount=Decimal("10.00"),
                booking_id="BK-1",
                event_date=in_hours(48),
                reason="x",
                booking_type=BookingType.TOUR,
            )

        assert exc_info.value.kind == ErrorKind.NOT_FOUND

    def test_refund_beyond_payment_is_insufficient(self, refund_service, payment_service, make_payment, mock_stripe) -> None:
        make_payment("PAY-1", "200.00", refunded="150.00", refund_status=RefundStatus.REFUNDED)

        with pytest.raises(BookingError) as exc_info:
            refund_service.process_refund(
                payment_intent_id="pi_PAY-1",
                payment_id="PAY-1",
                payment_amount=Decimal("200.00"),
                booking_id="BK-1",
                event_date=None,
                reason="x",
                booking_type=BookingType.TOUR,
                approved_amount=Decimal("100.00"),
            )

        assert exc_info.value.kind == ErrorKind.INSUFFICIENT_FUNDS
        mock_stripe.create_refund.assert_not_called()
        stored = payment_service.get_payment("PAY-1", BookingType.TOUR)
        assert stored.refunded_amount == Decimal("150.00")

    def test_pending_payment_conflicts(self, refund_service, make_payment, mock_stripe) -> None:
        make_payment("PAY-1", "200.00", refunded="50.00", refund_status=RefundStatus.PENDING)

        with pytest.raises(BookingError) as exc_info:
            refund_service.process_refund(
                payment_intent_id="pi_PAY-1",
                payment_id="PAY-1",
                payment_amount=Decimal("200.00"),
                booking_id="BK-1",
                event_date=None,
                reason="x",
                booking_type=BookingType.TOUR,
                approved_amount=Decimal("20.00"),
            )

        assert exc_info.value.kind == ErrorKind.CONFLICT
        assert exc_info.value.status_code == 409
        mock_stripe.create_refund.assert_not_called()

    def test_concurrent_update_conflicts(self, refund_service, payment_service, make_payment, mock_stripe) -> None:
        """A refund recorded between the read and the claim makes the claim fail."""
        make_payment("PAY-1", "200.00")
        stale = payment_service.get_payment("PAY-1", BookingType.TOUR)
        make_payment("PAY-1", "200.00", refunded="100.00", refund_status=RefundStatus.REFUNDED)

        with patch.object(payment_service, "get_payment", return_value=stale):
            with pytest.raises(BookingError) as exc_info:
                refund_service.process_refund(
                    payment_intent_id="pi_PAY-1",
                    payment_id="PAY-1",
                    payment_amount=Decimal("200.00"),
                    booking_id="BK-1",
                    event_date=None,
                    reason="x",
                    booking_type=BookingType.TOUR,
                    approved_amount=Decimal("150.00"),
                )

        assert exc_info.value.kind == ErrorKind.CONFLICT
        mock_stripe.create_refund.assert_not_called()

    def test_gateway_failure_releases_claim(self, refund_service, payment_service, make_payment, mock_stripe) -> None:
        make_payment("PAY-1", "200.00")
        mock_stripe.create_refund.side_effect = StripeServiceError(
            "Failed to create refund: charge disputed", stripe_error_code="charge_disputed"
        )

        with pytest.raises(StripeServiceError):
            refund_service.process_refund(
                payment_intent_id="pi_PAY-1",
                payment_id="PAY-1",
                payment_amount=Decimal("200.00"),
                booking_id="BK-1",
                event_date=in_hours(48),
                reason="Tour Booking Cancelled",
                booking_type=BookingType.TOUR,
            )

        stored = payment_service.get_payment("PAY-1", BookingType.TOUR)
        assert stored.refund_status == RefundStatus.FAILED
        assert stored.refunded_amount == Decimal("0")
        assert "Refund of $200.00 failed" in stored.notes

    def test_released_payment_can_be_refunded_again(self, refund_service, payment_service, make_payment, mock_stripe) -> None:
        make_payment("PAY-1", "200.00", refund_status=RefundStatus.FAILED)

        result = refund_service.process_refund(
            payment_intent_id="pi_PAY-1",
            payment_id="PAY-1",
            payment_amount=Decimal("200.00"),
            booking_id="BK-1",
            event_date=None,
            reason="retry",
            booking_type=BookingType.TOUR,
            approved_amount=Decimal("200.00"),
        )

        assert result.amount == Decimal("200.00")

    def test_unrecorded_refund_is_internal_error(self, refund_service, payment_service, make_payment) -> None:
        make_payment("PAY-1", "200.00")

        with patch.object(payment_service, "finalize_refund", return_value=None):
            with pytest.raises(BookingError) as exc_info:
                refund_service.process_refund(
                    payment_intent_id="pi_PAY-1",
                    payment_id="PAY-1",
                    payment_amount=Decimal("200.00"),
                    booking_id="BK-1",
                    event_date=None,
                    reason="x",
                    booking_type=BookingType.TOUR,
                    approved_amount=Decimal("10.00"),
                )

        assert exc_info.value.kind == ErrorKind.INTERNAL
        assert "re_test_1" in exc_info.value.message


class TestProcessMultiPaymentRefund:
    def _allocations(self, payment_service, *pairs):
        allocations = []
        for payment_id, amount in pairs:
            payment = payment_service.get_payment(payment_id, BookingType.TOUR)
            allocations.append(
                RefundAllocation(
                    payment=payment,
                    payment_intent_id=payment.stripe_payment_intent_id,
                    refund_amount=Decimal(amount),
                )
            )
        return allocations

    def test_refunds_each_allocation(self, refund_service, payment_service, make_payment, mock_stripe) -> None:
        make_payment("PAY-ORIGINAL", "150.00", minutes_ago=120)
        make_payment("PAY-UPCHARGE", "50.00", minutes_ago=10)
        allocations = self._allocations(
            payment_service, ("PAY-UPCHARGE", "50.00"), ("PAY-ORIGINAL", "130.00")
        )

        result = refund_service.process_multi_payment_refund(
            payments_to_refund=allocations,
            booking_id="BK-1",
            event_date=in_hours(48),
            reason="Tour Booking Cancelled",
            booking_type=BookingType.TOUR,
        )

        assert result.amount == Decimal("180.00")
        assert result.refund_id == "re_test_1, re_test_2"
        assert result.refund_ids == ["re_test_1", "re_test_2"]
        assert mock_stripe.create_refund.call_count == 2
        assert mock_stripe.create_refund.call_args.kwargs["metadata"]["multiPaymentRefund"] == "true"

        original = payment_service.get_payment("PAY-ORIGINAL", BookingType.TOUR)
        upcharge = payment_service.get_payment("PAY-UPCHARGE", BookingType.TOUR)
        assert upcharge.refunded_amount == Decimal("50.00")
        assert original.refunded_amount == Decimal("130.00")
        assert original.amount - original.refunded_amount == Decimal("20.00")

    def test_skips_payments_that_disappeared(self, refund_service, payment_service, make_payment) -> None:
        make_payment("PAY-1", "100.00")
        allocations = self._allocations(payment_service, ("PAY-1", "40.00"))
        ghost = allocations[0].model_copy(
            update={"payment": allocations[0].payment.model_copy(update={"payment_id": "PAY-GONE"})}
        )

        result = refund_service.process_multi_payment_refund(
            payments_to_refund=[ghost, *allocations],
            booking_id="BK-1",
            event_date=None,
            reason="x",
            booking_type=BookingType.TOUR,
        )

        assert result.refund_ids == ["re_test_1"]
        assert result.amount == Decimal("40.00")

    def test_gateway_failure_keeps_earlier_refunds(self, refund_service, payment_service, make_payment, mock_stripe) -> None:
        make_payment("PAY-A", "50.00", minutes_ago=1)
        make_payment("PAY-B", "150.00", minutes_ago=2)
        allocations = self._allocations(payment_service, ("PAY-A", "50.00"), ("PAY-B", "100.00"))
        mock_stripe.create_refund.side_effect = [
            {"refund_id": "re_ok", "amount": 5000, "status": "pending"},
            StripeServiceError("Failed to create refund: boom"),
        ]

        with pytest.raises(StripeServiceError):
            refund_service.process_multi_payment_refund(
                payments_to_refund=allocations,
                booking_id="BK-1",
                event_date=None,
                reason="x",
                booking_type=BookingType.TOUR,
            )

        first = payment_service.get_payment("PAY-A", BookingType.TOUR)
        second = payment_service.get_payment("PAY-B", BookingType.TOUR)
        assert first.refunded_amount == Decimal("50.00")
        assert first.stripe_refund_id == "re_ok"
        assert second.refunded_amount == Decimal("0")
        assert second.refund_status == RefundStatus.FAILED

    def test_downgrade_notes(self, refund_service, payment_service, make_payment) -> None:
        make_payment("PAY-A", "30.00", minutes_ago=1)
        make_payment("PAY-B", "100.00", minutes_ago=2)
        allocations = self._allocations(payment_service, ("PAY-A", "30.00"), ("PAY-B", "20.00"))

        refund_service.process_multi_payment_refund(
            payments_to_refund=allocations,
            booking_id="BK-1",
            event_date=None,
            reason="Booking downgrade",
            booking_type=BookingType.TOUR,
            is_downgrade=True,
        )

        stored = payment_service.get_payment("PAY-B", BookingType.TOUR)
        assert "Downgrade refund initiated: re_test_2 for $20.00 (partial refund)" in stored.notes
