from typing import Any, Dict, List, Optional, Tuple

from bson import ObjectId
from loguru import logger
from mongoengine.errors import NotUniqueError

from exceptions.exceptions import NotFoundError, ValidationError
from models.bill import RENT, TERMINAL_STATUSES, UTILITY_TYPES, Bill
from models.tenant import Tenant
from models.utility_rate import UtilityRate
from services.cycle_generator import to_decimal
from utils.error_handlers import translate_datastore_errors
from utils.time_utils import utc_now


def _valid_id(value) -> bool:
    return value is not None and ObjectId.is_valid(str(value))


class BillingRepository:
    """
    Persistence boundary of the billing engine.

    Wraps the mongoengine documents behind the small interface the engine
    needs. Connection failures surface as TransientError; lookups of absent
    configuration raise NotFoundError; bill lookups return None and leave the
    decision to the caller.
    """

    # Tenants

    @translate_datastore_errors
    def get_tenant(self, tenant_id) -> Tenant:
        tenant = Tenant.objects(id=tenant_id).first() if _valid_id(tenant_id) else None
        if tenant is None:
            raise NotFoundError(f"Tenant {tenant_id} not found", guard="tenant_exists")
        return tenant

    @translate_datastore_errors
    def list_active_tenants(self) -> List[Tenant]:
        return list(Tenant.objects(terminated__ne=True))

    # Utility rates

    @translate_datastore_errors
    def get_latest_rate(self, building_id) -> UtilityRate:
        rate = UtilityRate.latest_for_building(building_id)
        if rate is None:
            raise NotFoundError(
                f"No utility rates configured for building {building_id}",
                guard="rate_configured",
            )
        return rate

    @translate_datastore_errors
    def create_utility_rates(self, building_id, **rates) -> UtilityRate:
        if not building_id:
            raise ValidationError("Building id is required", guard="building_id_required")

        values = {}
        for utility_type in UTILITY_TYPES:
            field = f"{utility_type}_rate"
            value = to_decimal(rates.get(field), field)
            if value <= 0:
                raise ValidationError(f"{field} must be greater than 0", guard=field)
            values[field] = value

        rate = UtilityRate(building_id=str(building_id), **values)
        rate.save()
        logger.info(f"Utility rates created for building {building_id}")
        return rate

    # Bills

    @translate_datastore_errors
    def create_bill(self, fields: Dict[str, Any]) -> Tuple[Bill, bool]:
        """
        Insert a new bill.

        Returns:
            (bill, created): ``created`` is False when another writer already
            inserted the same cycle and the existing bill was returned instead
        """
        bill = Bill(**fields)
        try:
            bill.save()
            return bill, True
        except NotUniqueError:
            existing = Bill.objects(cycle_key=fields["cycle_key"]).first()
            if existing is None:
                raise
            logger.info(f"Cycle {fields['cycle_key']} already generated, reusing bill")
            return existing, False

    @translate_datastore_errors
    def update_bill(
        self,
        bill_id,
        fields: Dict[str, Any],
        conditions: Optional[Dict[str, Any]] = None,
    ) -> Optional[Bill]:
        """
        Apply ``fields`` to a bill in a single conditional update.

        Args:
            bill_id: Id of the bill to update
            fields: Field values to set
            conditions: Extra mongoengine query filters the bill must match

        Returns:
            The updated bill, or None when no bill matched
        """
        if not _valid_id(bill_id):
            return None
        updates = {f"set__{name}": value for name, value in fields.items()}
        updates.setdefault("set__updated_at", utc_now())
        return Bill.objects(id=bill_id, **(conditions or {})).modify(
            new=True, **updates
        )

    @translate_datastore_errors
    def find_bill(self, bill_id) -> Optional[Bill]:
        if not _valid_id(bill_id):
            return None
        return Bill.objects(id=bill_id).first()

    @translate_datastore_errors
    def find_bill_by_tx_ref(self, tx_ref) -> Optional[Bill]:
        if not tx_ref:
            return None
        return Bill.objects(tx_ref=tx_ref).first()

    @translate_datastore_errors
    def find_current_bill(self, tenant_id, kind: str) -> Optional[Bill]:
        """Latest bill of a (tenant, kind) account by bill date."""
        return (
            Bill.objects(tenant_id=str(tenant_id), billing_kind=kind)
            .order_by("-bill_date", "-created_at")
            .first()
        )

    @translate_datastore_errors
    def outstanding_bills(self, kind: str) -> List[Bill]:
        """Non-terminal bills of every rent account or every utility account."""
        query = Bill.objects(payment_status__nin=TERMINAL_STATUSES)
        if kind == RENT:
            query = query.filter(billing_kind=RENT)
        else:
            query = query.filter(billing_kind__startswith="utility:")
        return list(query.order_by("due_date"))

    @translate_datastore_errors
    def bills_awaiting_gateway(self) -> List[Bill]:
        return list(
            Bill.objects(
                payment_status__nin=TERMINAL_STATUSES, tx_ref__exists=True, tx_ref__ne=None
            )
        )

    @translate_datastore_errors
    def list_bills(self, tenant_id=None, kind: Optional[str] = None) -> List[Bill]:
        query = Bill.objects
        if tenant_id is not None:
            query = query.filter(tenant_id=str(tenant_id))
        if kind is not None:
            if kind == "utility":
                query = query.filter(billing_kind__startswith="utility:")
            else:
                query = query.filter(billing_kind=kind)
        return list(query.order_by("-bill_date", "-created_at"))
