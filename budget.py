import logging
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Optional, Sequence

from models import MonthStatus, Transaction
from periods import Period
from recurrence import Occurrence, expand

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OverrideState:
    status: MonthStatus = MonthStatus.active
    paid_override: Optional[bool] = None


@dataclass(frozen=True)
class Totals:
    income_cents: int = 0
    expense_cents: int = 0

    @property
    def balance_cents(self) -> int:
        return self.income_cents - self.expense_cents

    def as_dict(self) -> dict[str, int]:
        return {
            "income_cents": self.income_cents,
            "expense_cents": self.expense_cents,
            "balance_cents": self.balance_cents,
        }


@dataclass(frozen=True)
class MonthResolution:
    month: Period
    active: tuple[Occurrence, ...] = field(default_factory=tuple)
    skipped: tuple[Occurrence, ...] = field(default_factory=tuple)
    hidden_count: int = 0

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)


def _sort_key(occurrence: Occurrence) -> tuple:
    return (occurrence.date, occurrence.transaction_id)


def resolve_month(
    transactions: Iterable[Transaction],
    month: Period,
    overrides: Mapping[int, OverrideState],
) -> MonthResolution:
    """Compute the transactions present in ``month``.

    ``overrides`` maps transaction id to that transaction's state for this
    month; ids without an entry are active with their own paid flag.
    """
    candidates: list[Occurrence] = []
    for txn in transactions:
        if txn.is_recurring:
            occurrence = expand(txn, month)
        elif month.contains(txn.date):
            occurrence = Occurrence.of(txn, txn.date)
        else:
            occurrence = None
        if occurrence is not None:
            candidates.append(occurrence)

    active: list[Occurrence] = []
    skipped: list[Occurrence] = []
    hidden = 0
    for occurrence in candidates:
        state = overrides.get(occurrence.transaction_id)
        if state is None:
            active.append(occurrence)
            continue
        if state.status == MonthStatus.hidden:
            hidden += 1
            continue
        if state.paid_override is not None:
            occurrence = occurrence.with_paid(state.paid_override)
        if state.status == MonthStatus.skipped:
            skipped.append(occurrence)
        else:
            active.append(occurrence)

    logger.debug(
        f"month_resolved: month={month.slug} candidates={len(candidates)} "
        f"active={len(active)} skipped={len(skipped)} hidden={hidden}"
    )
    return MonthResolution(
        month=month,
        active=tuple(sorted(active, key=_sort_key)),
        skipped=tuple(sorted(skipped, key=_sort_key)),
        hidden_count=hidden,
    )


def aggregate(occurrences: Iterable[Occurrence]) -> Totals:
    income = 0
    expenses = 0
    for occurrence in occurrences:
        if occurrence.is_expense:
            expenses += occurrence.amount_cents
        else:
            income += occurrence.amount_cents
    return Totals(income_cents=income, expense_cents=expenses)


def occurrences_in_window(
    resolutions: Sequence[MonthResolution], window: Period
) -> list[Occurrence]:
    return [
        occurrence
        for resolution in resolutions
        for occurrence in resolution.active
        if window.contains(occurrence.date)
    ]


def aggregate_window(
    resolutions: Sequence[MonthResolution], window: Period
) -> Totals:
    """Sum the active occurrences of ``resolutions`` dated inside ``window``."""
    return aggregate(occurrences_in_window(resolutions, window))
