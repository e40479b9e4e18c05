from datetime import datetime
from mongoengine import (
    BooleanField,
    DateTimeField,
    DecimalField,
    Document,
    EmailField,
    IntField,
    StringField,
)

from utils.time_utils import utc_now


class Tenant(Document):
    full_name = StringField(required=True)
    email = EmailField()
    phone = StringField()
    building_id = StringField(required=True)
    room = StringField()

    # Raw payment term: values <= 12 are months, larger values are days
    payment_term = IntField(required=True, min_value=1)
    monthly_rent = DecimalField(precision=2, required=True, min_value=0)
    rent_start_date = DateTimeField(required=True)
    rent_end_date = DateTimeField()
    terminated = BooleanField(default=False)

    electricity_responsible = BooleanField(default=False)
    water_responsible = BooleanField(default=False)
    generator_responsible = BooleanField(default=False)
    initial_electricity_reading = DecimalField(precision=2, default=0)
    initial_water_reading = DecimalField(precision=2, default=0)

    created_at = DateTimeField(default=utc_now)

    meta = {
        "collection": "tenants",
        "indexes": ["building_id", "terminated"],
    }

    def is_active(self) -> bool:
        return not self.terminated

    def lease_started(self, now: datetime) -> bool:
        """True once rent_start_date is on or before ``now`` (naive UTC)."""
        return self.rent_start_date <= now

    def is_responsible_for(self, utility_type: str) -> bool:
        return bool(getattr(self, f"{utility_type}_responsible", False))

    def initial_reading(self, utility_type: str):
        if utility_type == "electricity":
            return self.initial_electricity_reading
        if utility_type == "water":
            return self.initial_water_reading
        return 0

    def __str__(self):
        return f"Tenant: {self.full_name} ({self.id})"
