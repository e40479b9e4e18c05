from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from loguru import logger

from exceptions.exceptions import InvalidStateError, NotFoundError
from models.bill import PAID, PENDING, TERMINAL_STATUSES, Bill
from models.payment_event import PaymentEvent
from services.billing_repository import BillingRepository
from services.payment_gateway_service import PaymentGatewayService
from services.payment_transition_service import PaymentTransitionService
from utils.error_handlers import log_error
from utils.time_utils import to_utc, utc_now

BILL_NOT_FOUND = "BILL_NOT_FOUND"
ALREADY_PAID = "ALREADY_PAID"
PAYMENT_CONFIRMED = "PAYMENT_CONFIRMED"
VERIFICATION_FAILED = "VERIFICATION_FAILED"
VERIFICATION_ERROR = "VERIFICATION_ERROR"

GATEWAY_APPROVER = "gateway"


@dataclass
class VerificationResult:
    code: str
    verified: bool
    bill: Optional[Bill] = None
    message: Optional[str] = None

    def to_dict(self, now: datetime = None) -> dict:
        return {
            "code": self.code,
            "verified": self.verified,
            "message": self.message,
            "bill": self.bill.to_dict(now) if self.bill else None,
        }


@dataclass
class BulkVerifyReport:
    checked: int = 0
    confirmed: int = 0
    results: List[Tuple[str, str]] = field(default_factory=list)
    failures: List[Tuple[str, str]] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "checked": self.checked,
            "confirmed": self.confirmed,
            "results": [{"bill_id": b, "code": c} for b, c in self.results],
            "failures": [{"bill_id": b, "error": e} for b, e in self.failures],
        }


def make_tx_ref(bill: Bill, now: datetime) -> str:
    prefix = "RENT" if bill.is_rent else "UTIL"
    timestamp = int(now.replace(tzinfo=timezone.utc).timestamp())
    return f"{prefix}-{bill.id}-{timestamp}"


class PaymentService:
    """
    Drives bills through the payment gateway.

    The gateway is only asked two things: to open a checkout for a bill's
    total due, and whether that checkout was paid. A verified payment is fed
    into the regular submit/approve transitions, ending in ``paid``.
    """

    def __init__(
        self,
        repository: BillingRepository,
        transition_service: PaymentTransitionService,
        gateway_service: PaymentGatewayService,
    ):
        self._repository = repository
        self._transitions = transition_service
        self._gateway = gateway_service

    def initiate_payment(
        self, bill_id, customer_email: Optional[str] = None, now: Optional[datetime] = None
    ) -> dict:
        """
        Open a gateway checkout for the current total due of a bill.

        Returns:
            dict: ``checkout_url``, ``tx_ref``, ``bill_id`` and ``amount``

        Raises:
            NotFoundError: Unknown bill
            InvalidStateError: The bill is already settled
        """
        now = to_utc(now) if now else utc_now()
        bill = self._repository.find_bill(bill_id)
        if bill is None:
            raise NotFoundError(f"Bill {bill_id} not found", guard="bill_exists")
        if bill.is_terminal():
            raise InvalidStateError(
                f"Bill {bill_id} is already {bill.payment_status}",
                current_status=bill.payment_status,
                guard="bill_outstanding",
            )

        tx_ref = make_tx_ref(bill, now)
        amount = bill.total_due if bill.total_due is not None else bill.amount
        PaymentEvent.log_event(
            "init_start", bill=bill, tx_ref=tx_ref, details={"amount": str(amount)}
        )

        try:
            checkout = self._gateway.initialize_transaction(
                amount,
                customer_email,
                tx_ref,
                description=f"{bill.billing_kind} bill due {bill.due_date.date()}",
                metadata={"bill_id": str(bill.id), "tenant_id": bill.tenant_id},
            )
        except Exception as e:
            error_message, _ = log_error(e, f"Initializing payment for bill {bill_id}")
            PaymentEvent.log_event(
                "init_failed", bill=bill, tx_ref=tx_ref, details={"error": error_message}
            )
            raise

        updated = self._repository.update_bill(
            bill.id,
            {
                "tx_ref": tx_ref,
                "gateway_session_id": checkout["session_id"],
                "updated_at": now,
            },
            conditions={"payment_status__nin": TERMINAL_STATUSES},
        )
        if updated is None:
            raise InvalidStateError(
                f"Bill {bill_id} was settled while initializing payment",
                guard="bill_outstanding",
            )

        PaymentEvent.log_event(
            "init_success",
            bill=updated,
            tx_ref=tx_ref,
            details={"session_id": checkout["session_id"], "amount": str(amount)},
        )
        return {
            "checkout_url": checkout["checkout_url"],
            "tx_ref": tx_ref,
            "bill_id": str(bill.id),
            "amount": str(amount),
        }

    def confirm_gateway_payment(
        self, tx_ref: str, now: Optional[datetime] = None
    ) -> VerificationResult:
        """
        Verify a transaction with the gateway and settle its bill.

        Idempotent: confirming an already settled bill reports ALREADY_PAID
        without contacting the gateway again.
        """
        now = to_utc(now) if now else utc_now()
        bill = self._repository.find_bill_by_tx_ref(tx_ref)
        if bill is None:
            return VerificationResult(
                BILL_NOT_FOUND, False, message=f"No bill for transaction {tx_ref}"
            )
        if bill.is_terminal():
            return VerificationResult(ALREADY_PAID, True, bill=bill)

        PaymentEvent.log_event("verify_start", bill=bill, tx_ref=tx_ref)
        try:
            paid = self._gateway.verify_transaction(bill.gateway_session_id or tx_ref)
        except Exception as e:
            error_message, _ = log_error(e, f"Verifying transaction {tx_ref}")
            PaymentEvent.log_event(
                "verify_error", bill=bill, tx_ref=tx_ref, details={"error": error_message}
            )
            return VerificationResult(VERIFICATION_ERROR, False, bill=bill, message=error_message)

        if not paid:
            PaymentEvent.log_event("verify_failed", bill=bill, tx_ref=tx_ref)
            return VerificationResult(
                VERIFICATION_FAILED, False, bill=bill, message="Payment not completed"
            )

        try:
            if bill.payment_status == PENDING:
                self._transitions.submit_proof(bill.id, f"gateway:{tx_ref}", now=now)
            bill = self._transitions.approve(bill.id, GATEWAY_APPROVER, now=now, status=PAID)
        except InvalidStateError:
            # Settled concurrently by another confirmation
            bill = self._repository.find_bill(bill.id)
            if bill is not None and bill.is_terminal():
                return VerificationResult(ALREADY_PAID, True, bill=bill)
            raise

        PaymentEvent.log_event(
            "verify_success",
            bill=bill,
            tx_ref=tx_ref,
            details={"amount_paid": str(bill.amount_paid)},
        )
        logger.info(f"Gateway payment {tx_ref} confirmed for bill {bill.id}")
        return VerificationResult(PAYMENT_CONFIRMED, True, bill=bill)

    def bulk_verify_payments(self, now: Optional[datetime] = None) -> BulkVerifyReport:
        """Confirm every outstanding bill that has an open gateway transaction."""
        now = to_utc(now) if now else utc_now()
        report = BulkVerifyReport()

        for bill in self._repository.bills_awaiting_gateway():
            report.checked += 1
            try:
                result = self.confirm_gateway_payment(bill.tx_ref, now=now)
                report.results.append((str(bill.id), result.code))
                if result.code == PAYMENT_CONFIRMED:
                    report.confirmed += 1
            except Exception as e:
                error_message, _ = log_error(e, f"Bulk verifying bill {bill.id}")
                PaymentEvent.log_event(
                    "bulk_verify_error",
                    bill=bill,
                    details={"error": error_message},
                )
                report.failures.append((str(bill.id), error_message))

        logger.info(
            f"Bulk verification checked={report.checked} confirmed={report.confirmed} "
            f"failed={len(report.failures)}"
        )
        return report
