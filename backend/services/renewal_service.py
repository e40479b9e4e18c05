import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple

from loguru import logger

from models.bill import RENT, Bill
from models.tenant import Tenant
from services.billing_repository import BillingRepository
from services.cycle_generator import normalize_term
from services.payment_transition_service import (
    CREATED,
    GenerationResult,
    PaymentTransitionService,
)
from utils.error_handlers import log_error
from utils.time_utils import to_utc, utc_now

AUTO_RENEW_THRESHOLD_DAYS = 10


def renewal_threshold_days(term_days: int, threshold_days: int = AUTO_RENEW_THRESHOLD_DAYS) -> int:
    return min(threshold_days, term_days)


def should_generate(
    tenant: Tenant,
    current_bill: Optional[Bill],
    now: datetime,
    threshold_days: int = AUTO_RENEW_THRESHOLD_DAYS,
) -> bool:
    """
    Proactive renewal policy for rent.

    A tenant without bills gets one as soon as the lease starts. A tenant
    whose latest bill is settled gets the next one once the next due date is
    within ``min(threshold_days, term_days)`` days. An outstanding bill is
    never renewed.
    """
    if not tenant.is_active() or not tenant.lease_started(now):
        return False
    if current_bill is None:
        return True
    if not current_bill.is_terminal():
        return False

    next_due = current_bill.next_due_date or current_bill.due_date
    term_days = current_bill.payment_term_days or normalize_term(tenant.payment_term)
    days_until_due = (next_due.date() - now.date()).days
    return days_until_due <= renewal_threshold_days(term_days, threshold_days)


@dataclass
class RenewalReport:
    checked: int = 0
    generated: List[str] = field(default_factory=list)
    skipped: int = 0
    failures: List[Tuple[str, str]] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "checked": self.checked,
            "generated": list(self.generated),
            "skipped": self.skipped,
            "failures": [{"tenant_id": t, "error": e} for t, e in self.failures],
        }


class RenewalService:
    """
    Periodic auto-generation of rent bills.

    At most one generation per (tenant, kind) is in flight in this process;
    across processes the unique cycle key resolves duplicates.
    """

    def __init__(
        self,
        repository: BillingRepository,
        transition_service: PaymentTransitionService,
        threshold_days: int = AUTO_RENEW_THRESHOLD_DAYS,
    ):
        self._repository = repository
        self._transitions = transition_service
        self.threshold_days = threshold_days
        self._in_flight = set()
        self._lock = threading.Lock()

    def _acquire(self, key) -> bool:
        with self._lock:
            if key in self._in_flight:
                return False
            self._in_flight.add(key)
            return True

    def _release(self, key):
        with self._lock:
            self._in_flight.discard(key)

    def renew_tenant(self, tenant: Tenant, now: datetime) -> Optional[GenerationResult]:
        """Generate the tenant's next rent bill if the policy calls for one."""
        key = (str(tenant.id), RENT)
        if not self._acquire(key):
            logger.debug(f"Generation already in flight for tenant {tenant.id}")
            return None
        try:
            current = self._repository.find_current_bill(tenant.id, RENT)
            if not should_generate(tenant, current, now, self.threshold_days):
                return None
            return self._transitions.generate_rent_bill(tenant.id, now=now)
        finally:
            self._release(key)

    def run(self, now: Optional[datetime] = None) -> RenewalReport:
        now = to_utc(now) if now else utc_now()
        report = RenewalReport()

        for tenant in self._repository.list_active_tenants():
            report.checked += 1
            try:
                result = self.renew_tenant(tenant, now)
            except Exception as e:
                error_message, _ = log_error(e, f"Renewing rent for tenant {tenant.id}")
                report.failures.append((str(tenant.id), error_message))
                continue
            if result is not None and result.status == CREATED:
                report.generated.append(str(result.bill.id))
            else:
                report.skipped += 1

        if report.generated or report.failures:
            logger.info(
                f"Auto-renewal generated={len(report.generated)} "
                f"failed={len(report.failures)} checked={report.checked}"
            )
        return report
