from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from database import Base, make_engine
from errors import NotFoundError, ValidationError
from models import MonthOverride, MonthStatus, RecurringInterval
from schemas import TransactionIn
from services import BudgetService, OverrideService, TransactionService


def _rent(session: Session) -> int:
    txn = TransactionService(session).create(
        TransactionIn(
            title="Rent",
            amount=Decimal("100.00"),
            date=date(2025, 1, 15),
            is_expense=True,
            person_label="Together",
            is_recurring=True,
            recurring_interval=RecurringInterval.monthly,
        )
    )
    return txn.id


def test_skip_removes_occurrence_from_month_totals():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        rent_id = _rent(session)
        budget = BudgetService(session)

        march = budget.resolve("2025-03")
        assert [o.date for o in march.active] == [date(2025, 3, 15)]
        assert budget.month_totals("2025-03").expense_cents == 10_000

        state = OverrideService(session).skip(rent_id, "2025-03")
        assert state == {"skipped": True, "paid": None, "deleted": False}

        march = budget.resolve("2025-03")
        assert march.active == ()
        assert march.skipped_count == 1
        assert budget.month_totals("2025-03").expense_cents == 0
        # other months keep the occurrence
        assert budget.month_totals("2025-04").expense_cents == 10_000


def test_hide_takes_precedence_over_skip():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        rent_id = _rent(session)
        overrides = OverrideService(session)

        overrides.hide(rent_id, "2025-02")
        state = overrides.skip(rent_id, "2025-02")
        assert state == {"skipped": False, "paid": None, "deleted": True}

        state = overrides.set_override(rent_id, "2025-02", skipped=True, deleted=True)
        assert state["deleted"] is True

        resolution = BudgetService(session).resolve("2025-02")
        assert resolution.active == ()
        assert resolution.skipped == ()


def test_clearing_every_flag_removes_the_row():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        rent_id = _rent(session)
        overrides = OverrideService(session)

        overrides.skip(rent_id, "2025-03")
        overrides.set_paid(rent_id, "2025-03", True)
        assert overrides.list_overridden_months(rent_id) == {"2025-03"}
        assert overrides.get_override(rent_id, "2025-03") == {
            "skipped": True,
            "paid": True,
            "deleted": False,
        }

        overrides.unskip(rent_id, "2025-03")
        overrides.set_paid(rent_id, "2025-03", None)
        assert overrides.list_overridden_months(rent_id) == set()
        count = session.scalar(select(func.count(MonthOverride.id)))
        assert count == 0


def test_paid_override_applies_to_one_month():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        rent_id = _rent(session)
        OverrideService(session).set_paid(rent_id, "2025-02", True)

        budget = BudgetService(session)
        assert budget.resolve("2025-02").active[0].is_paid is True
        assert budget.resolve("2025-03").active[0].is_paid is False


def test_set_override_keeps_flags_not_given():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        rent_id = _rent(session)
        overrides = OverrideService(session)
        overrides.set_paid(rent_id, "2025-05", False)
        state = overrides.set_override(rent_id, "2025-05", skipped=True)
        assert state == {"skipped": True, "paid": False, "deleted": False}


def test_clear_override_resets_month():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        rent_id = _rent(session)
        overrides = OverrideService(session)
        overrides.hide(rent_id, "2025-06")
        overrides.clear_override(rent_id, "2025-06")
        assert overrides.get_override(rent_id, "2025-06") == {
            "skipped": False,
            "paid": None,
            "deleted": False,
        }


def test_unknown_transaction_and_bad_month_are_rejected():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        rent_id = _rent(session)
        overrides = OverrideService(session)

        with pytest.raises(NotFoundError):
            overrides.skip(999, "2025-03")
        with pytest.raises(NotFoundError):
            overrides.get_override(999, "2025-03")
        with pytest.raises(ValidationError):
            overrides.skip(rent_id, "2025-3")
        with pytest.raises(ValidationError):
            overrides.set_paid(rent_id, "March", True)

        assert session.scalar(select(func.count(MonthOverride.id))) == 0


def test_deleting_transaction_drops_its_overrides():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        rent_id = _rent(session)
        overrides = OverrideService(session)
        overrides.skip(rent_id, "2025-03")
        overrides.set_paid(rent_id, "2025-04", True)

        TransactionService(session).delete(rent_id)

        with pytest.raises(NotFoundError):
            overrides.get_override(rent_id, "2025-03")
        assert session.scalar(select(func.count(MonthOverride.id))) == 0
        assert overrides.overrides_for_month("2025-03") == {}


def _commit_competing_row(engine, transaction_id: int, month_key: str) -> None:
    with Session(engine) as other:
        other.add(
            MonthOverride(
                transaction_id=transaction_id,
                month_key=month_key,
                status=MonthStatus.active,
                paid_override=True,
            )
        )
        other.commit()


def test_concurrent_insert_is_retried_as_update(tmp_path, monkeypatch):
    engine = make_engine(f"sqlite:///{tmp_path / 'planner.db'}")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        rent_id = _rent(session)
        read_row = OverrideService._row
        calls = []

        def stale_first_read(self, transaction_id, month_key):
            calls.append(month_key)
            if len(calls) == 1:
                # another writer lands between this read and our insert
                _commit_competing_row(engine, transaction_id, month_key)
                return None
            return read_row(self, transaction_id, month_key)

        monkeypatch.setattr(OverrideService, "_row", stale_first_read)
        state = OverrideService(session).skip(rent_id, "2025-03")

        assert len(calls) == 2
        assert state == {"skipped": True, "paid": True, "deleted": False}

    with Session(engine) as fresh:
        rows = fresh.scalars(
            select(MonthOverride).where(MonthOverride.month_key == "2025-03")
        ).all()
        assert len(rows) == 1
        assert rows[0].status == MonthStatus.skipped
        assert rows[0].paid_override is True
    engine.dispose()


def test_second_conflict_is_raised(tmp_path, monkeypatch):
    engine = make_engine(f"sqlite:///{tmp_path / 'planner.db'}")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        rent_id = _rent(session)
        calls = []

        def always_stale(self, transaction_id, month_key):
            calls.append(month_key)
            if len(calls) == 1:
                _commit_competing_row(engine, transaction_id, month_key)
            return None

        monkeypatch.setattr(OverrideService, "_row", always_stale)
        with pytest.raises(IntegrityError):
            OverrideService(session).hide(rent_id, "2025-03")
        assert len(calls) == 2

    with Session(engine) as fresh:
        rows = fresh.scalars(select(MonthOverride)).all()
        assert [(r.status, r.paid_override) for r in rows] == [
            (MonthStatus.active, True)
        ]
    engine.dispose()
