from datetime import date

import pytest
from pydantic import ValidationError
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker

from database import Base
from errors import ForbiddenError, NotFoundError
from models import BudgetTimeframe, Category, CategoryAllocation, TransactionType
from schemas import AllocationIn, BudgetIn, BudgetUpdate
from services import BudgetService


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def _expense_categories(session):
    food = Category(user_id=1, name="Groceries", type=TransactionType.expense)
    rent = Category(user_id=1, name="Housing", type=TransactionType.expense)
    session.add_all([food, rent])
    session.commit()
    return food, rent


def _october(**overrides) -> BudgetIn:
    payload = {
        "name": "October",
        "amount_cents": 250_000,
        "start_date": date(2026, 10, 1),
        "end_date": date(2026, 10, 31),
        "timeframe": BudgetTimeframe.monthly,
    }
    payload.update(overrides)
    return BudgetIn(**payload)


def test_create_budget_with_allocations():
    session = make_session()
    food, rent = _expense_categories(session)
    service = BudgetService(session, user_id=1)

    budget = service.create(
        _october(
            allocations=[
                AllocationIn(category_id=food.id, amount_cents=40_000),
                AllocationIn(category_id=rent.id, amount_cents=0),
            ]
        )
    )

    assert {(a.category_id, a.amount_cents) for a in budget.allocations} == {
        (food.id, 40_000),
        (rent.id, 0),
    }


def test_one_allocation_per_category():
    session = make_session()
    food, _ = _expense_categories(session)
    with pytest.raises(ValueError, match="one allocation per category"):
        BudgetService(session, user_id=1).create(
            _october(
                allocations=[
                    AllocationIn(category_id=food.id, amount_cents=1_000),
                    AllocationIn(category_id=food.id, amount_cents=2_000),
                ]
            )
        )


def test_budget_range_must_be_ordered():
    with pytest.raises(ValidationError):
        _october(start_date=date(2026, 11, 1))

    session = make_session()
    service = BudgetService(session, user_id=1)
    budget = service.create(_october())
    with pytest.raises(ValueError):
        service.update(budget.id, BudgetUpdate(end_date=date(2026, 9, 1)))


def test_update_replaces_allocations():
    session = make_session()
    food, rent = _expense_categories(session)
    service = BudgetService(session, user_id=1)
    budget = service.create(
        _october(allocations=[AllocationIn(category_id=food.id, amount_cents=40_000)])
    )

    updated = service.update(
        budget.id,
        BudgetUpdate(
            amount_cents=300_000,
            allocations=[
                AllocationIn(category_id=food.id, amount_cents=45_000),
                AllocationIn(category_id=rent.id, amount_cents=150_000),
            ],
        ),
    )

    assert updated.amount_cents == 300_000
    rows = session.scalars(select(CategoryAllocation)).all()
    assert sorted(r.amount_cents for r in rows) == [45_000, 150_000]


def test_active_budget_lookup():
    session = make_session()
    service = BudgetService(session, user_id=1)
    service.create(_october())
    service.create(
        _october(
            name="Week 42",
            amount_cents=60_000,
            start_date=date(2026, 10, 18),
            end_date=date(2026, 10, 24),
            timeframe=BudgetTimeframe.weekly,
        )
    )

    assert service.active(BudgetTimeframe.monthly, date(2026, 10, 18)).name == "October"
    assert service.active(BudgetTimeframe.weekly, date(2026, 10, 18)).name == "Week 42"
    assert service.active(BudgetTimeframe.monthly, date(2026, 11, 1)) is None
    assert [b.name for b in service.list_all(BudgetTimeframe.weekly)] == ["Week 42"]


def test_budget_ownership():
    session = make_session()
    budget = BudgetService(session, user_id=1).create(_october())
    other = BudgetService(session, user_id=2)
    with pytest.raises(ForbiddenError):
        other.delete(budget.id)
    with pytest.raises(NotFoundError):
        other.get(777)

    BudgetService(session, user_id=1).delete(budget.id)
    with pytest.raises(NotFoundError):
        BudgetService(session, user_id=1).get(budget.id)
