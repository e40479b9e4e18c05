import pytest
from datetime import datetime
from decimal import Decimal

from exceptions.exceptions import InvalidStateError, ValidationError
from models.bill import SUBMITTED, utility_kind
from models.payment_event import PaymentEvent


@pytest.mark.unit
class TestTenant:
    def test_lease_started(self, make_tenant):
        tenant = make_tenant(rent_start_date=datetime(2024, 3, 1))

        assert tenant.lease_started(datetime(2024, 3, 1)) is True
        assert tenant.lease_started(datetime(2024, 2, 29, 23, 59)) is False

    def test_responsibility_and_initial_readings(self, make_tenant):
        tenant = make_tenant(water_responsible=False)

        assert tenant.is_responsible_for("electricity") is True
        assert tenant.is_responsible_for("water") is False
        assert tenant.initial_reading("electricity") == Decimal("100.00")
        assert tenant.initial_reading("water") == Decimal("20.00")
        assert tenant.initial_reading("generator") == 0

    def test_termination(self, make_tenant):
        assert make_tenant().is_active() is True
        assert make_tenant(terminated=True).is_active() is False


@pytest.mark.unit
class TestBill:
    def test_utility_serialization(self, make_bill):
        bill = make_bill(
            billing_kind=utility_kind("electricity"),
            previous_reading=Decimal("100"),
            current_reading=Decimal("150"),
            rate=Decimal("5"),
            amount=Decimal("250"),
            payment_status=SUBMITTED,
        )
        bill.reload()

        data = bill.to_dict(now=datetime(2024, 3, 1))

        assert data["utility_type"] == "electricity"
        assert data["consumption"] == "50.00"
        assert data["amount"] == "250.00"
        assert data["display_status"] == SUBMITTED
        assert data["due_date"] == "2024-01-31T23:59:59"
        assert "next_due_date" not in data

    def test_rent_serialization(self, make_bill):
        data = make_bill().to_dict(now=datetime(2024, 1, 10))

        assert data["billing_kind"] == "rent"
        assert data["payment_term_days"] == 30
        assert data["display_status"] == "pending"
        assert "utility_type" not in data


@pytest.mark.unit
class TestPaymentEvent:
    def test_log_event(self, make_bill):
        bill = make_bill(tx_ref="RENT-x-1")

        event = PaymentEvent.log_event("verify_start", bill=bill, details={"attempt": 1})

        assert event.bill_id == str(bill.id)
        assert event.tenant_id == bill.tenant_id
        assert event.tx_ref == "RENT-x-1"
        assert list(PaymentEvent.get_bill_events(bill.id)) == [event]

    def test_invalid_event_type(self):
        with pytest.raises(ValueError):
            PaymentEvent.log_event("refunded")


@pytest.mark.unit
class TestErrors:
    def test_error_payload_names_the_guard(self):
        error = InvalidStateError("Cannot approve", current_status="pending", guard="status_submitted")

        assert error.to_dict() == {
            "error": "InvalidStateError",
            "message": "Cannot approve",
            "guard": "status_submitted",
        }
        assert error.current_status == "pending"

    def test_validation_error_message(self):
        error = ValidationError("bad term", guard="payment_term")
        assert str(error) == "bad term"
