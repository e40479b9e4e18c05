from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional

from loguru import logger

from exceptions.exceptions import (
    InvalidStateError,
    NotFoundError,
    PreconditionError,
    ValidationError,
)
from models.bill import (
    APPROVED,
    PENDING,
    RENT,
    SUBMITTED,
    TERMINAL_STATUSES,
    UTILITY_TYPES,
    Bill,
    utility_kind,
)
from models.payment_event import PaymentEvent
from models.tenant import Tenant
from services.billing_repository import BillingRepository
from services.cycle_generator import (
    UTILITY_GRACE_DAYS,
    CycleDates,
    end_of_day,
    next_rent_cycle_length,
    rent_cycle,
    utility_cycle,
)
from services.penalty_service import PenaltyAccrualService
from utils.time_utils import isoformat, to_utc, utc_now

CREATED = "created"
EXISTING = "existing"
NOT_APPLICABLE = "not_applicable"


@dataclass
class GenerationResult:
    """
    Outcome of a generation request.

    ``not_applicable`` is informational (e.g. the lease has not started yet)
    and is deliberately distinct from a raised error.
    """

    status: str
    bill: Optional[Bill] = None
    reason: Optional[str] = None

    @property
    def created(self) -> bool:
        return self.status == CREATED

    def to_dict(self, now: datetime = None) -> dict:
        return {
            "status": self.status,
            "reason": self.reason,
            "bill": self.bill.to_dict(now) if self.bill else None,
        }


def cycle_key(tenant_id, kind: str, anchor: datetime) -> str:
    return f"{tenant_id}:{kind}:{to_utc(anchor).isoformat()}"


class PaymentTransitionService:
    """
    Guarded state machine for bills.

    pending -> submitted -> approved | paid, with reject sending utility bills
    back to pending. Every transition is a single conditional update on the
    expected current status, so retries and double submissions cannot advance
    a bill twice. Failed guards raise with the name of the guard that failed.
    """

    def __init__(
        self,
        repository: BillingRepository,
        penalty_service: PenaltyAccrualService,
        utility_grace_days: int = UTILITY_GRACE_DAYS,
    ):
        self._repository = repository
        self._penalty_service = penalty_service
        self.utility_grace_days = utility_grace_days

    def _active_tenant(self, tenant_id) -> Tenant:
        tenant = self._repository.get_tenant(tenant_id)
        if not tenant.is_active():
            raise PreconditionError(
                f"Tenant {tenant_id} is terminated", guard="tenant_active"
            )
        return tenant

    def _create(self, tenant: Tenant, kind: str, dates: CycleDates, **extra) -> GenerationResult:
        fields = {
            "tenant_id": str(tenant.id),
            "building_id": tenant.building_id,
            "billing_kind": kind,
            "cycle_key": cycle_key(tenant.id, kind, dates.bill_date),
            "bill_date": dates.bill_date,
            "due_date": dates.due_date,
            "original_due_date": dates.original_due_date,
            "payment_term_days": dates.term_days,
            "amount": dates.amount,
            "penalty": 0,
            "total_due": dates.amount,
            "payment_status": PENDING,
        }
        fields.update(extra)
        bill, created = self._repository.create_bill(fields)
        if created:
            logger.info(
                f"Generated {kind} bill {bill.id} for tenant {tenant.id} "
                f"due {isoformat(bill.due_date)}"
            )
            return GenerationResult(CREATED, bill)
        return GenerationResult(EXISTING, bill)

    # Generation

    def generate_rent_bill(self, tenant_id, now: Optional[datetime] = None) -> GenerationResult:
        """
        Generate the current rent bill of a tenant if one is due.

        The first bill anchors on the lease start; later bills anchor on the
        next cycle dates recorded when the previous bill was approved.

        Returns:
            GenerationResult: ``created``, ``existing`` when an outstanding
            bill already covers the tenant, or ``not_applicable`` before the
            lease starts

        Raises:
            NotFoundError: Unknown tenant
            PreconditionError: Tenant is terminated
            ValidationError: Malformed tenant configuration
        """
        now = to_utc(now) if now else utc_now()
        tenant = self._active_tenant(tenant_id)
        if not tenant.lease_started(now):
            logger.info(f"Lease for tenant {tenant_id} has not started yet")
            return GenerationResult(NOT_APPLICABLE, reason="Lease has not started")

        current = self._repository.find_current_bill(tenant.id, RENT)
        if current is not None and not current.is_terminal():
            return GenerationResult(EXISTING, current)

        if current is None:
            dates = rent_cycle(tenant.payment_term, tenant.rent_start_date, tenant.monthly_rent)
        else:
            anchor = current.next_bill_date or current.due_date
            length = None
            if current.next_due_date is not None:
                length = (current.next_due_date.date() - anchor.date()).days
            dates = rent_cycle(
                tenant.payment_term, anchor, tenant.monthly_rent, cycle_length_days=length
            )
        return self._create(tenant, RENT, dates)

    def record_utility_usage(
        self,
        tenant_id,
        utility_type: str,
        current_reading,
        now: Optional[datetime] = None,
    ) -> GenerationResult:
        """
        Record a meter reading and bill the consumption since the previous one.

        The previous reading is the last bill's current reading, or the
        tenant's initial meter reading for the first bill.
        """
        if utility_type not in UTILITY_TYPES:
            raise ValidationError(
                f"Unknown utility type: {utility_type}", guard="utility_type"
            )
        now = to_utc(now) if now else utc_now()
        tenant = self._active_tenant(tenant_id)
        if not tenant.is_responsible_for(utility_type):
            raise ValidationError(
                f"Tenant {tenant_id} is not responsible for {utility_type}",
                guard="utility_responsibility",
            )
        if not tenant.lease_started(now):
            return GenerationResult(NOT_APPLICABLE, reason="Lease has not started")

        kind = utility_kind(utility_type)
        current = self._repository.find_current_bill(tenant.id, kind)
        if current is not None and not current.is_terminal():
            return GenerationResult(EXISTING, current)

        if current is None:
            previous_reading = tenant.initial_reading(utility_type)
            previous_bill_date = None
        else:
            previous_reading = current.current_reading
            previous_bill_date = current.bill_date

        rate = self._repository.get_latest_rate(tenant.building_id).rate_for(utility_type)
        dates = utility_cycle(
            tenant.rent_start_date,
            previous_bill_date,
            current_reading,
            previous_reading,
            rate,
            grace_days=self.utility_grace_days,
        )
        return self._create(
            tenant,
            kind,
            dates,
            previous_reading=previous_reading,
            current_reading=current_reading,
            rate=rate,
        )

    # Transitions

    def _require_bill(self, bill_id) -> Bill:
        bill = self._repository.find_bill(bill_id)
        if bill is None:
            raise PreconditionError(f"Bill {bill_id} not found", guard="bill_exists")
        return bill

    def _state_error(self, bill_id, expected: str, action: str) -> PreconditionError:
        bill = self._repository.find_bill(bill_id)
        if bill is None:
            return PreconditionError(f"Bill {bill_id} not found", guard="bill_exists")
        return InvalidStateError(
            f"Cannot {action} bill {bill_id} in status {bill.payment_status}",
            current_status=bill.payment_status,
            guard=f"status_{expected}",
        )

    def submit_proof(self, bill_id, proof_url: str, now: Optional[datetime] = None) -> Bill:
        if not bill_id:
            raise PreconditionError(
                "No bill has been generated for this cycle yet", guard="bill_generated"
            )
        if not proof_url or not str(proof_url).strip():
            raise ValidationError("Payment proof is required", guard="proof_required")

        now = to_utc(now) if now else utc_now()
        bill = self._repository.update_bill(
            bill_id,
            {
                "payment_status": SUBMITTED,
                "payment_proof_url": str(proof_url).strip(),
                "rejection_reason": None,
                "updated_at": now,
            },
            conditions={"payment_status": PENDING},
        )
        if bill is None:
            raise self._state_error(bill_id, PENDING, "submit proof for")

        PaymentEvent.log_event(
            "proof_submitted", bill=bill, details={"proof_url": bill.payment_proof_url}
        )
        logger.info(f"Payment proof submitted for bill {bill_id}")
        return bill

    def approve(
        self,
        bill_id,
        approver: str,
        now: Optional[datetime] = None,
        status: str = APPROVED,
    ) -> Bill:
        """
        Approve a submitted bill and close its cycle.

        The penalty owed at ``now`` is recorded as ``amount_paid`` before the
        penalty is reset. For rent, the next cycle starts at ``now`` and runs
        a full term when paid early, or the term minus the overdue days when
        paid late.

        Raises:
            PreconditionError: No approver, or the bill does not exist
            InvalidStateError: The bill is not in ``submitted``
        """
        if status not in TERMINAL_STATUSES:
            raise ValidationError(f"Invalid approval status: {status}", guard="status")
        if not approver:
            raise PreconditionError("An approver is required", guard="caller_authorized")

        now = to_utc(now) if now else utc_now()
        bill = self._require_bill(bill_id)
        if bill.payment_status != SUBMITTED:
            raise InvalidStateError(
                f"Cannot approve bill {bill_id} in status {bill.payment_status}",
                current_status=bill.payment_status,
                guard="status_submitted",
            )

        owed = self._penalty_service.compute(bill, now)
        fields = {
            "payment_status": status,
            "approved_by": approver,
            "payment_date": now,
            "amount_paid": owed.total_due,
            "penalty": 0,
            "total_due": bill.amount,
            "updated_at": now,
        }
        if bill.is_rent:
            length = next_rent_cycle_length(bill.payment_term_days, bill.due_date, now)
            fields["next_bill_date"] = now
            fields["next_due_date"] = end_of_day(now + timedelta(days=length))

        approved = self._repository.update_bill(
            bill.id, fields, conditions={"payment_status": SUBMITTED}
        )
        if approved is None:
            raise self._state_error(bill_id, SUBMITTED, "approve")

        PaymentEvent.log_event(
            "approved",
            bill=approved,
            details={
                "approved_by": approver,
                "status": status,
                "amount_paid": str(owed.total_due),
                "days_overdue": owed.days_overdue,
                "next_due_date": isoformat(approved.next_due_date),
            },
        )
        logger.info(f"Bill {bill_id} {status} by {approver}")
        return approved

    def reject(
        self,
        bill_id,
        reason: str,
        rejected_by: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Bill:
        """Send a submitted utility bill back to pending with a reason."""
        if not reason or not str(reason).strip():
            raise ValidationError("A rejection reason is required", guard="reason_required")

        now = to_utc(now) if now else utc_now()
        bill = self._require_bill(bill_id)
        if bill.is_rent:
            raise InvalidStateError(
                "Rent bills cannot be rejected",
                current_status=bill.payment_status,
                guard="utility_only",
            )

        rejected = self._repository.update_bill(
            bill.id,
            {
                "payment_status": PENDING,
                "rejection_reason": str(reason).strip(),
                "payment_proof_url": None,
                "updated_at": now,
            },
            conditions={"payment_status": SUBMITTED},
        )
        if rejected is None:
            raise self._state_error(bill_id, SUBMITTED, "reject")

        PaymentEvent.log_event(
            "rejected",
            bill=rejected,
            details={"reason": rejected.rejection_reason, "rejected_by": rejected_by},
        )
        logger.info(f"Bill {bill_id} rejected: {rejected.rejection_reason}")
        return rejected

    # Lookup

    def get_bill(self, bill_id) -> Bill:
        bill = self._repository.find_bill(bill_id)
        if bill is None:
            raise NotFoundError(f"Bill {bill_id} not found", guard="bill_exists")
        return bill

    def list_bills(self, tenant_id=None, kind: Optional[str] = None) -> List[Bill]:
        return self._repository.list_bills(tenant_id=tenant_id, kind=kind)
