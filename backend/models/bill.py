from datetime import datetime

from mongoengine import (
    DateTimeField,
    DecimalField,
    IntField,
    Document,
    StringField,
)

from utils.time_utils import isoformat, to_utc, utc_now

RENT = "rent"
UTILITY_TYPES = ["electricity", "water", "generator"]
BILLING_KINDS = [RENT] + [f"utility:{utility}" for utility in UTILITY_TYPES]

PENDING = "pending"
SUBMITTED = "submitted"
APPROVED = "approved"
PAID = "paid"
PAYMENT_STATUSES = [PENDING, SUBMITTED, APPROVED, PAID]
TERMINAL_STATUSES = [APPROVED, PAID]

# Never stored; derived from pending + past due date
OVERDUE = "overdue"


def utility_kind(utility_type: str) -> str:
    return f"utility:{utility_type}"


class Bill(Document):
    """
    One billing cycle for a (tenant, billing kind) account.

    Bills are append-only: a new cycle is a new document, and the current bill
    of an account is the latest one by ``bill_date``. ``cycle_key`` is unique
    per (tenant, kind, cycle anchor) and doubles as the idempotency key for
    generation and as the stable cycle identifier exposed to clients.

    All datetimes are naive UTC.
    """

    tenant_id = StringField(required=True)
    building_id = StringField(required=True)
    billing_kind = StringField(required=True, choices=BILLING_KINDS)
    cycle_key = StringField(required=True, unique=True)

    bill_date = DateTimeField(required=True)
    due_date = DateTimeField(required=True)
    original_due_date = DateTimeField(required=True)
    payment_term_days = IntField(min_value=1)

    amount = DecimalField(precision=2, required=True, min_value=0)
    penalty = DecimalField(precision=2, default=0, min_value=0)
    total_due = DecimalField(precision=2, min_value=0)

    payment_status = StringField(choices=PAYMENT_STATUSES, default=PENDING)
    payment_proof_url = StringField()
    rejection_reason = StringField()
    tx_ref = StringField()
    gateway_session_id = StringField()

    # Utility usage
    previous_reading = DecimalField(precision=2)
    current_reading = DecimalField(precision=2)
    rate = DecimalField(precision=4)

    # Filled on approval
    approved_by = StringField()
    payment_date = DateTimeField()
    amount_paid = DecimalField(precision=2)
    next_bill_date = DateTimeField()
    next_due_date = DateTimeField()

    created_at = DateTimeField(default=utc_now)
    updated_at = DateTimeField(default=utc_now)

    meta = {
        "collection": "bills",
        "indexes": [
            ("tenant_id", "billing_kind", "-bill_date"),
            "payment_status",
            "tx_ref",
        ],
    }

    @property
    def utility_type(self):
        if self.billing_kind.startswith("utility:"):
            return self.billing_kind.split(":", 1)[1]
        return None

    @property
    def is_rent(self) -> bool:
        return self.billing_kind == RENT

    @property
    def consumption(self):
        if self.current_reading is None or self.previous_reading is None:
            return None
        return self.current_reading - self.previous_reading

    def is_terminal(self) -> bool:
        return self.payment_status in TERMINAL_STATUSES

    def display_status(self, now: datetime = None) -> str:
        """Status as clients should render it; overdue is derived, never stored."""
        now = to_utc(now) if now else utc_now()
        if self.payment_status == PENDING and now > self.due_date:
            return OVERDUE
        return self.payment_status

    def to_dict(self, now: datetime = None) -> dict:
        data = {
            "id": str(self.id) if self.id else None,
            "cycle_id": self.cycle_key,
            "tenant_id": self.tenant_id,
            "building_id": self.building_id,
            "billing_kind": self.billing_kind,
            "bill_date": isoformat(self.bill_date),
            "due_date": isoformat(self.due_date),
            "original_due_date": isoformat(self.original_due_date),
            "amount": str(self.amount),
            "penalty": str(self.penalty),
            "total_due": str(self.total_due),
            "payment_status": self.payment_status,
            "display_status": self.display_status(now),
            "payment_proof_url": self.payment_proof_url,
            "tx_ref": self.tx_ref,
            "approved_by": self.approved_by,
            "payment_date": isoformat(self.payment_date),
            "amount_paid": str(self.amount_paid) if self.amount_paid is not None else None,
        }
        if self.is_rent:
            data["payment_term_days"] = self.payment_term_days
            data["next_bill_date"] = isoformat(self.next_bill_date)
            data["next_due_date"] = isoformat(self.next_due_date)
        else:
            data["utility_type"] = self.utility_type
            data["previous_reading"] = str(self.previous_reading)
            data["current_reading"] = str(self.current_reading)
            data["consumption"] = str(self.consumption)
            data["rate"] = str(self.rate)
            data["rejection_reason"] = self.rejection_reason
        return data

    def __str__(self):
        return f"Bill: {self.billing_kind} for tenant {self.tenant_id} due {self.due_date}"
