"""
Cycle Generator: bill/due dates and base amounts for a billing period.

Everything here is a pure function of its inputs. Datetimes are normalized to
naive UTC on the way in, so callers may pass aware datetimes or plain dates.
"""

from dataclasses import dataclass
from datetime import datetime, time, timedelta
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Optional

from dateutil.relativedelta import relativedelta

from exceptions.exceptions import ValidationError
from utils.time_utils import to_utc

MONTH_TERM_LIMIT = 12
DAYS_PER_MONTH = 30
FIRST_UTILITY_OFFSET_DAYS = 30
FIRST_UTILITY_DUE_DAYS = 35
UTILITY_GRACE_DAYS = 5
UTILITY_BILLING_DAY = 25
END_OF_DAY = time(23, 59, 59)
CENTS = Decimal("0.01")


@dataclass(frozen=True)
class CycleDates:
    """Dates and base charge of one billing cycle"""

    bill_date: datetime
    due_date: datetime
    original_due_date: datetime
    amount: Decimal
    term_days: Optional[int] = None


def to_decimal(value, field: str = "value") -> Decimal:
    if value is None:
        raise ValidationError(f"{field} is required", guard=f"{field}_required")
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be numeric, got {value!r}", guard=field)


def to_money(value) -> Decimal:
    return to_decimal(value, "amount").quantize(CENTS, rounding=ROUND_HALF_UP)


def normalize_term(payment_term_raw) -> int:
    """
    Convert a raw payment term to days.

    Values up to 12 are months and become ``months * 30`` days; anything larger
    is already a number of days.
    """
    try:
        raw = int(payment_term_raw)
    except (TypeError, ValueError):
        raise ValidationError(
            f"Payment term must be an integer, got {payment_term_raw!r}",
            guard="payment_term",
        )
    if raw < 1:
        raise ValidationError(
            f"Payment term must be at least 1, got {raw}", guard="payment_term"
        )
    if raw <= MONTH_TERM_LIMIT:
        return raw * DAYS_PER_MONTH
    return raw


def end_of_day(value: datetime) -> datetime:
    return datetime.combine(to_utc(value).date(), END_OF_DAY)


def end_of_month(value: datetime) -> datetime:
    value = to_utc(value)
    return datetime.combine((value + relativedelta(day=31)).date(), END_OF_DAY)


def is_end_of_month(value: datetime) -> bool:
    return value.day == (value + relativedelta(day=31)).day


def add_billing_month(previous_bill_date: datetime) -> datetime:
    """
    Advance a utility bill date by one calendar month, keeping its billing day.

    A bill on the last day of its month stays on month-end, a bill on the 25th
    stays on the 25th, and any other day is clamped to the end of a shorter
    target month.
    """
    previous = to_utc(previous_bill_date)
    if is_end_of_month(previous):
        return previous + relativedelta(months=1, day=31)
    if previous.day == UTILITY_BILLING_DAY:
        return previous + relativedelta(months=1, day=UTILITY_BILLING_DAY)
    return previous + relativedelta(months=1)


def days_overdue(due_date: datetime, now: datetime) -> int:
    """Whole calendar days elapsed since the due date; 0 until it has passed."""
    due_date, now = to_utc(due_date), to_utc(now)
    if now <= due_date:
        return 0
    return max(0, (now.date() - due_date.date()).days)


def rent_amount(monthly_rent, term_days: int) -> Decimal:
    return to_money(to_decimal(monthly_rent, "monthly_rent") * term_days / DAYS_PER_MONTH)


def rent_cycle(
    payment_term_raw,
    anchor_date: datetime,
    monthly_rent,
    cycle_length_days: Optional[int] = None,
) -> CycleDates:
    """
    Compute a rent cycle starting at ``anchor_date``.

    The cycle normally spans the full term; ``cycle_length_days`` overrides the
    span (used when a late payment compresses the next cycle) without changing
    the charged amount.
    """
    term_days = normalize_term(payment_term_raw)
    if anchor_date is None:
        raise ValidationError("Anchor date is required", guard="anchor_date_required")

    length = term_days if cycle_length_days is None else max(0, int(cycle_length_days))
    bill_date = to_utc(anchor_date)
    due_date = end_of_day(bill_date + timedelta(days=length))
    return CycleDates(
        bill_date=bill_date,
        due_date=due_date,
        original_due_date=due_date,
        amount=rent_amount(monthly_rent, term_days),
        term_days=term_days,
    )


def next_rent_cycle_length(term_days: int, due_date: datetime, now: datetime) -> int:
    """
    Length of the cycle that follows an approval at ``now``.

    Early payment earns a full term; otherwise the overdue days are taken off
    the next cycle so billing stays anchored to the original schedule.
    """
    if to_utc(now) < to_utc(due_date):
        return term_days
    return max(0, term_days - days_overdue(due_date, now))


def compute_consumption(current_reading, previous_reading) -> Decimal:
    current = to_decimal(current_reading, "current_reading")
    previous = to_decimal(previous_reading, "previous_reading")
    if current < previous:
        raise ValidationError(
            f"Current reading ({current}) must be >= previous reading ({previous})",
            guard="reading_not_below_previous",
        )
    return current - previous


def utility_first_cycle(rent_start_date: datetime, cost) -> CycleDates:
    bill_date = to_utc(rent_start_date) + timedelta(days=FIRST_UTILITY_OFFSET_DAYS)
    due_date = end_of_day(bill_date + timedelta(days=FIRST_UTILITY_DUE_DAYS))
    return CycleDates(
        bill_date=bill_date,
        due_date=due_date,
        original_due_date=due_date,
        amount=to_money(cost),
    )


def utility_next_cycle(
    previous_bill_date: datetime, cost, grace_days: int = UTILITY_GRACE_DAYS
) -> CycleDates:
    bill_date = add_billing_month(previous_bill_date)
    due_date = end_of_month(bill_date) + timedelta(days=grace_days)
    return CycleDates(
        bill_date=bill_date,
        due_date=due_date,
        original_due_date=due_date,
        amount=to_money(cost),
    )


def utility_cycle(
    rent_start_date: datetime,
    previous_bill_date: Optional[datetime],
    current_reading,
    previous_reading,
    rate,
    grace_days: int = UTILITY_GRACE_DAYS,
) -> CycleDates:
    """Dates and cost of a utility bill; the first bill anchors on rent start."""
    consumption = compute_consumption(current_reading, previous_reading)
    cost = consumption * to_decimal(rate, "rate")
    if previous_bill_date is None:
        if rent_start_date is None:
            raise ValidationError(
                "Rent start date is required for the first utility bill",
                guard="rent_start_date_required",
            )
        return utility_first_cycle(rent_start_date, cost)
    return utility_next_cycle(previous_bill_date, cost, grace_days=grace_days)
