from datetime import datetime
from decimal import Decimal

import pytest
from bson import ObjectId

from models.bill import PENDING, RENT, Bill


@pytest.fixture
def make_bill():
    """
    Factory for saved bills, bypassing the generator.
    Defaults to a pending 1000 rent bill for January 2024.
    """

    def _make_bill(**overrides) -> Bill:
        tenant_id = overrides.pop("tenant_id", str(ObjectId()))
        kind = overrides.get("billing_kind", RENT)
        bill_date = overrides.get("bill_date", datetime(2024, 1, 1))
        due_date = overrides.get("due_date", datetime(2024, 1, 31, 23, 59, 59))
        amount = overrides.get("amount", Decimal("1000"))
        fields = {
            "tenant_id": tenant_id,
            "building_id": "building-1",
            "billing_kind": kind,
            "cycle_key": f"{tenant_id}:{kind}:{bill_date.isoformat()}",
            "bill_date": bill_date,
            "due_date": due_date,
            "original_due_date": due_date,
            "payment_term_days": 30 if kind == RENT else None,
            "amount": amount,
            "penalty": Decimal("0"),
            "total_due": amount,
            "payment_status": PENDING,
        }
        fields.update(overrides)
        return Bill(**fields).save()

    return _make_bill


__all__ = ["make_bill"]
