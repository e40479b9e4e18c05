from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Tuple

from loguru import logger

from models.bill import RENT, TERMINAL_STATUSES, Bill
from services.billing_repository import BillingRepository
from services.cycle_generator import days_overdue, to_decimal, to_money
from utils.error_handlers import log_error
from utils.time_utils import to_utc, utc_now

DAILY_PENALTY_RATE = Decimal("0.01")


@dataclass(frozen=True)
class PenaltyResult:
    """Outcome of a penalty computation for a single bill"""

    days_overdue: int
    effective_days: int
    months_overdue: int
    penalty: Decimal
    total_due: Decimal


@dataclass
class SweepReport:
    """Summary of one penalty sweep; failures never abort the batch"""

    kind: str
    processed: int = 0
    updated: int = 0
    skipped: int = 0
    failures: List[Tuple[str, str]] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "processed": self.processed,
            "updated": self.updated,
            "skipped": self.skipped,
            "failures": [
                {"bill_id": bill_id, "error": error} for bill_id, error in self.failures
            ],
        }


def compute_rent_penalty(
    amount,
    due_date: datetime,
    term_days: int,
    now: datetime,
    daily_rate: Decimal = DAILY_PENALTY_RATE,
) -> PenaltyResult:
    """
    Rent penalty: 1% of the base amount per overdue day, capped at one full
    term, plus one extra base charge for every whole term missed.
    """
    amount = to_decimal(amount, "amount")
    overdue = days_overdue(due_date, now)
    if overdue == 0:
        return PenaltyResult(0, 0, 0, to_money(0), to_money(amount))

    effective_days = min(overdue, term_days)
    months_overdue = overdue // term_days
    penalty = amount * daily_rate * effective_days
    total_due = amount * (1 + months_overdue) + penalty
    return PenaltyResult(
        days_overdue=overdue,
        effective_days=effective_days,
        months_overdue=months_overdue,
        penalty=to_money(penalty),
        total_due=to_money(total_due),
    )


def compute_utility_penalty(
    base_cost,
    due_date: datetime,
    now: datetime,
    daily_rate: Decimal = DAILY_PENALTY_RATE,
) -> PenaltyResult:
    """
    Utility penalty: 1% of the base cost per overdue day, uncapped and without
    the rent path's per-term compounding.
    """
    base_cost = to_decimal(base_cost, "base_cost")
    overdue = days_overdue(due_date, now)
    penalty = base_cost * daily_rate * overdue
    return PenaltyResult(
        days_overdue=overdue,
        effective_days=overdue,
        months_overdue=0,
        penalty=to_money(penalty),
        total_due=to_money(base_cost + penalty),
    )


class PenaltyAccrualService:
    """
    Recomputes penalty and total due for every outstanding bill.

    A sweep is a pure recomputation from (amount, due_date, term, now), so it
    is idempotent and safe to run alongside approvals: each row update is
    conditional on the bill still being non-terminal.
    """

    def __init__(
        self,
        repository: BillingRepository,
        daily_rate: Decimal = DAILY_PENALTY_RATE,
    ):
        self._repository = repository
        self.daily_rate = to_decimal(daily_rate, "daily_rate")

    def compute(self, bill: Bill, now: datetime) -> PenaltyResult:
        if bill.is_rent:
            return compute_rent_penalty(
                bill.amount,
                bill.due_date,
                bill.payment_term_days,
                now,
                daily_rate=self.daily_rate,
            )
        return compute_utility_penalty(
            bill.amount, bill.due_date, now, daily_rate=self.daily_rate
        )

    def apply(self, bill: Bill, now: datetime) -> bool:
        """
        Write the recomputed penalty for one bill.

        Returns False when the bill became terminal in the meantime.
        """
        result = self.compute(bill, now)
        updated = self._repository.update_bill(
            bill.id,
            {"penalty": result.penalty, "total_due": result.total_due, "updated_at": now},
            conditions={"payment_status__nin": TERMINAL_STATUSES},
        )
        if updated is None:
            return False
        bill.penalty = updated.penalty
        bill.total_due = updated.total_due
        return True

    def sweep(self, kind: str = RENT, now: Optional[datetime] = None) -> SweepReport:
        """
        Recompute penalties for all non-terminal bills of ``kind``.

        Args:
            kind: ``"rent"`` or ``"utility"``
            now: Evaluation instant, defaults to the current UTC time

        Returns:
            SweepReport: Counts plus the (bill_id, error) pairs that failed
        """
        if kind not in (RENT, "utility"):
            raise ValueError(f"Invalid sweep kind: {kind}")

        now = to_utc(now) if now else utc_now()
        report = SweepReport(kind=kind)

        for bill in self._repository.outstanding_bills(kind):
            report.processed += 1
            try:
                if self.apply(bill, now):
                    report.updated += 1
                else:
                    report.skipped += 1
            except Exception as e:
                error_message, _ = log_error(e, f"Updating penalty for bill {bill.id}")
                report.failures.append((str(bill.id), error_message))

        logger.info(
            f"Penalty sweep ({kind}) processed={report.processed} "
            f"updated={report.updated} skipped={report.skipped} "
            f"failed={len(report.failures)}"
        )
        return report
