import pytest
import stripe
from datetime import datetime
from decimal import Decimal

from bson import ObjectId

from exceptions.exceptions import InvalidStateError, NotFoundError
from models.bill import APPROVED, PAID, PENDING, SUBMITTED, Bill, utility_kind
from models.payment_event import PaymentEvent
from services.payment_service import (
    ALREADY_PAID,
    BILL_NOT_FOUND,
    PAYMENT_CONFIRMED,
    VERIFICATION_ERROR,
    VERIFICATION_FAILED,
)

NOW = datetime(2024, 2, 10)


def initiate(payment_service, bill):
    return payment_service.initiate_payment(bill.id, "tenant@example.com", now=NOW)


@pytest.mark.unit
class TestInitiatePayment:
    def test_rent_checkout_for_total_due(self, payment_service, make_bill, mock_stripe_client):
        bill = make_bill(total_due=Decimal("1100"))

        checkout = initiate(payment_service, bill)

        assert checkout["tx_ref"] == f"RENT-{bill.id}-1707523200"
        assert checkout["checkout_url"] == "https://checkout.stripe.com/c/pay/cs_test_123"
        assert checkout["amount"] == "1100.00"
        params = mock_stripe_client.checkout.Session.create.call_args.kwargs
        assert params["line_items"][0]["price_data"]["unit_amount"] == 110000
        bill.reload()
        assert bill.tx_ref == checkout["tx_ref"]
        assert bill.gateway_session_id == "cs_test_123"
        events = [e.event_type for e in PaymentEvent.objects(bill_id=str(bill.id))]
        assert sorted(events) == ["init_start", "init_success"]

    def test_utility_reference_prefix(self, payment_service, make_bill):
        bill = make_bill(billing_kind=utility_kind("water"), amount=Decimal("40"))

        checkout = initiate(payment_service, bill)

        assert checkout["tx_ref"].startswith(f"UTIL-{bill.id}-")

    def test_unknown_bill(self, payment_service):
        with pytest.raises(NotFoundError):
            payment_service.initiate_payment(ObjectId(), "tenant@example.com")

    def test_settled_bill(self, payment_service, make_bill, mock_stripe_client):
        bill = make_bill(payment_status=PAID)

        with pytest.raises(InvalidStateError):
            initiate(payment_service, bill)
        mock_stripe_client.checkout.Session.create.assert_not_called()

    def test_gateway_failure_is_logged_and_raised(
        self, payment_service, make_bill, mock_stripe_client
    ):
        bill = make_bill()
        mock_stripe_client.checkout.Session.create.side_effect = stripe.StripeError("down")

        with pytest.raises(stripe.StripeError):
            initiate(payment_service, bill)

        bill.reload()
        assert bill.tx_ref is None
        assert PaymentEvent.objects(bill_id=str(bill.id), event_type="init_failed").count() == 1


@pytest.mark.unit
class TestConfirmGatewayPayment:
    def mark_paid(self, mock_stripe_client):
        mock_stripe_client.checkout.Session.retrieve.return_value = {
            "id": "cs_test_123",
            "payment_status": "paid",
        }

    def test_unknown_reference(self, payment_service):
        result = payment_service.confirm_gateway_payment("RENT-missing-1")

        assert result.code == BILL_NOT_FOUND
        assert result.verified is False

    def test_confirmed_payment_settles_bill(
        self, payment_service, make_bill, mock_stripe_client
    ):
        bill = make_bill()
        tx_ref = initiate(payment_service, bill)["tx_ref"]
        self.mark_paid(mock_stripe_client)

        result = payment_service.confirm_gateway_payment(tx_ref, now=NOW)

        assert result.code == PAYMENT_CONFIRMED
        assert result.verified is True
        assert result.bill.payment_status == PAID
        assert result.bill.payment_proof_url == f"gateway:{tx_ref}"
        assert result.bill.approved_by == "gateway"
        assert result.bill.amount_paid == Decimal("1100.00")
        assert result.bill.next_due_date == datetime(2024, 3, 1, 23, 59, 59)
        mock_stripe_client.checkout.Session.retrieve.assert_called_once_with("cs_test_123")

    def test_confirmation_of_submitted_bill_keeps_proof(
        self, payment_service, make_bill, mock_stripe_client
    ):
        bill = make_bill(payment_status=SUBMITTED, payment_proof_url="https://files/receipt.png")
        tx_ref = initiate(payment_service, bill)["tx_ref"]
        self.mark_paid(mock_stripe_client)

        result = payment_service.confirm_gateway_payment(tx_ref, now=NOW)

        assert result.code == PAYMENT_CONFIRMED
        assert result.bill.payment_proof_url == "https://files/receipt.png"

    def test_confirmation_is_idempotent(self, payment_service, make_bill, mock_stripe_client):
        bill = make_bill()
        tx_ref = initiate(payment_service, bill)["tx_ref"]
        self.mark_paid(mock_stripe_client)

        payment_service.confirm_gateway_payment(tx_ref, now=NOW)
        again = payment_service.confirm_gateway_payment(tx_ref, now=NOW)

        assert again.code == ALREADY_PAID
        assert again.verified is True
        assert mock_stripe_client.checkout.Session.retrieve.call_count == 1

    def test_manually_approved_bill_reports_already_paid(self, payment_service, make_bill):
        bill = make_bill(payment_status=APPROVED, tx_ref="RENT-x-1")

        result = payment_service.confirm_gateway_payment("RENT-x-1")

        assert result.code == ALREADY_PAID

    def test_unpaid_session(self, payment_service, make_bill):
        bill = make_bill()
        tx_ref = initiate(payment_service, bill)["tx_ref"]

        result = payment_service.confirm_gateway_payment(tx_ref, now=NOW)

        assert result.code == VERIFICATION_FAILED
        assert result.verified is False
        bill.reload()
        assert bill.payment_status == PENDING

    def test_gateway_error(self, payment_service, make_bill, mock_stripe_client):
        bill = make_bill()
        tx_ref = initiate(payment_service, bill)["tx_ref"]
        mock_stripe_client.checkout.Session.retrieve.side_effect = stripe.StripeError("timeout")

        result = payment_service.confirm_gateway_payment(tx_ref, now=NOW)

        assert result.code == VERIFICATION_ERROR
        assert "timeout" in result.message
        assert PaymentEvent.objects(bill_id=str(bill.id), event_type="verify_error").count() == 1


@pytest.mark.unit
class TestBulkVerifyPayments:
    def test_bulk_verification_collects_results(
        self, payment_service, make_bill, mock_stripe_client
    ):
        paid = make_bill()
        unpaid = make_bill(bill_date=datetime(2024, 1, 2), tenant_id=paid.tenant_id)
        make_bill(bill_date=datetime(2024, 1, 3))
        paid_ref = initiate(payment_service, paid)["tx_ref"]
        unpaid_ref = initiate(payment_service, unpaid)["tx_ref"]

        def retrieve(session_id):
            return {"id": session_id, "payment_status": "paid"}

        Bill.objects(id=unpaid.id).update_one(set__gateway_session_id="cs_unpaid")
        mock_stripe_client.checkout.Session.retrieve.side_effect = lambda session_id: (
            {"id": session_id, "payment_status": "unpaid"}
            if session_id == "cs_unpaid"
            else retrieve(session_id)
        )

        report = payment_service.bulk_verify_payments(now=NOW)

        assert report.checked == 2
        assert report.confirmed == 1
        assert dict(report.results) == {
            str(paid.id): PAYMENT_CONFIRMED,
            str(unpaid.id): VERIFICATION_FAILED,
        }
        assert report.failures == []
        assert Bill.objects.get(tx_ref=paid_ref).payment_status == PAID
        assert Bill.objects.get(tx_ref=unpaid_ref).payment_status == PENDING

    def test_bulk_verification_survives_failures(
        self, payment_service, make_bill, mock_stripe_client
    ):
        bill = make_bill()
        initiate(payment_service, bill)

        def explode(tx_ref, now=None):
            raise RuntimeError("boom")

        payment_service.confirm_gateway_payment = explode
        report = payment_service.bulk_verify_payments(now=NOW)

        assert report.checked == 1
        assert report.failures[0][0] == str(bill.id)
        assert PaymentEvent.objects(event_type="bulk_verify_error").count() == 1
