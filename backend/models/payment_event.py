from mongoengine import DateTimeField, DictField, Document, StringField

from utils.time_utils import utc_now


class PaymentEvent(Document):
    """
    PaymentEvent model for auditing payment lifecycle events on bills.

    Every gateway interaction and state transition that moves money is logged
    here, giving an audit trail that outlives the bill's own mutable fields
    (penalty is reset on approval, proofs are cleared on rejection).

    Fields:
    - event_type: What happened (e.g., init_success, verify_success, approved)
    - bill_id: The bill the event concerns (if known)
    - tenant_id: The tenant the bill belongs to (if known)
    - tx_ref: Gateway transaction reference (if applicable)
    - details: Free-form structured payload (amounts, codes, error messages)
    - timestamp: When the event was recorded (naive UTC)
    """

    event_type = StringField(
        required=True,
        choices=[
            "init_start",
            "init_success",
            "init_failed",
            "verify_start",
            "verify_success",
            "verify_failed",
            "verify_error",
            "proof_submitted",
            "approved",
            "rejected",
            "bulk_verify_error",
        ],
    )
    bill_id = StringField()
    tenant_id = StringField()
    tx_ref = StringField()
    details = DictField()
    timestamp = DateTimeField(default=utc_now)

    meta = {
        "collection": "payment_events",
        "indexes": ["bill_id", "tx_ref", "-timestamp"],
    }

    def __str__(self):
        return f"PaymentEvent: {self.event_type} for bill {self.bill_id} at {self.timestamp}"

    @classmethod
    def log_event(cls, event_type, bill=None, tx_ref=None, details=None):
        """
        Create and save a new PaymentEvent entry.

        Args:
        event_type (str): The type of event being recorded
        bill (Bill, optional): The bill the event concerns
        tx_ref (str, optional): Gateway transaction reference
        details (dict, optional): Additional structured details

        Returns:
        PaymentEvent: The created and saved PaymentEvent instance

        Raises:
        ValueError: If the event_type is not in the predefined choices
        """
        if event_type not in cls.event_type.choices:
            raise ValueError(f"Invalid event_type: {event_type}")

        event = cls(
            event_type=event_type,
            bill_id=str(bill.id) if bill is not None else None,
            tenant_id=bill.tenant_id if bill is not None else None,
            tx_ref=tx_ref or (bill.tx_ref if bill is not None else None),
            details=details or {},
        )
        event.save()
        return event

    @classmethod
    def get_bill_events(cls, bill_id):
        return cls.objects(bill_id=str(bill_id)).order_by("-timestamp")
