from datetime import date, datetime, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from database import Base
from errors import ForbiddenError, NotFoundError
from models import Category, TransactionType
from schemas import TransactionIn, TransactionUpdate
from services import TransactionFilters, TransactionService


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def _categories(session, user_id: int = 1):
    salary = Category(user_id=user_id, name="Salary", type=TransactionType.income)
    food = Category(user_id=user_id, name="Groceries", type=TransactionType.expense)
    fun = Category(user_id=user_id, name="Entertainment", type=TransactionType.expense)
    session.add_all([salary, food, fun])
    session.commit()
    return salary, food, fun


def _txn(category: Category, day: date, amount: int, **extra) -> TransactionIn:
    return TransactionIn(
        amount_cents=amount,
        type=category.type,
        date=day,
        category_id=category.id,
        **extra,
    )


def test_create_defaults_time_and_normalizes_aware_instants():
    session = make_session()
    salary, food, _ = _categories(session)
    service = TransactionService(session, user_id=1)

    plain = service.create(_txn(food, date(2026, 10, 3), 2_500))
    assert plain.occurred_at == datetime(2026, 10, 3, 12, 0)

    aware = service.create(
        _txn(
            salary,
            date(2026, 10, 1),
            300_000,
            occurred_at=datetime(2026, 10, 1, 8, 0, tzinfo=timezone.utc),
        )
    )
    assert aware.occurred_at == datetime(2026, 10, 1, 8, 0)
    assert aware.occurred_at.tzinfo is None


def test_create_rejects_foreign_category():
    session = make_session()
    _, food, _ = _categories(session, user_id=2)
    service = TransactionService(session, user_id=1)

    with pytest.raises(NotFoundError):
        service.create(_txn(food, date(2026, 10, 3), 100))


def test_list_applies_only_present_filters():
    session = make_session()
    salary, food, fun = _categories(session)
    service = TransactionService(session, user_id=1)
    service.create(_txn(salary, date(2026, 9, 30), 300_000))
    service.create(_txn(food, date(2026, 10, 2), 4_000))
    service.create(_txn(fun, date(2026, 10, 5), 2_000))
    service.create(_txn(food, date(2026, 10, 9), 6_000))

    assert len(service.list()) == 4
    assert [t.date for t in service.list()] == [
        date(2026, 10, 9),
        date(2026, 10, 5),
        date(2026, 10, 2),
        date(2026, 9, 30),
    ]

    october = service.list(TransactionFilters(start=date(2026, 10, 1), end=date(2026, 10, 31)))
    assert len(october) == 3

    expenses = service.list(TransactionFilters(type=TransactionType.expense))
    assert {t.type for t in expenses} == {TransactionType.expense}

    groceries = service.list(
        TransactionFilters(start=date(2026, 10, 3), category_id=food.id)
    )
    assert [t.amount_cents for t in groceries] == [6_000]


def test_update_and_delete():
    session = make_session()
    _, food, fun = _categories(session)
    service = TransactionService(session, user_id=1)
    txn = service.create(_txn(food, date(2026, 10, 2), 4_000, description="Market"))

    updated = service.update(
        txn.id,
        TransactionUpdate(amount_cents=4_500, category_id=fun.id, date=date(2026, 10, 4)),
    )
    assert updated.amount_cents == 4_500
    assert updated.category_id == fun.id
    assert updated.date == date(2026, 10, 4)
    assert updated.occurred_at.date() == date(2026, 10, 4)
    assert updated.description == "Market"

    service.delete(txn.id)
    with pytest.raises(NotFoundError):
        service.get(txn.id)


def test_other_users_transaction_is_forbidden():
    session = make_session()
    _, food, _ = _categories(session)
    txn = TransactionService(session, user_id=1).create(_txn(food, date(2026, 10, 2), 100))

    other = TransactionService(session, user_id=2)
    with pytest.raises(ForbiddenError):
        other.get(txn.id)
    with pytest.raises(ForbiddenError):
        other.update(txn.id, TransactionUpdate(amount_cents=1))


def test_stats_summarize_range():
    session = make_session()
    salary, food, fun = _categories(session)
    service = TransactionService(session, user_id=1)
    service.create(_txn(salary, date(2026, 10, 1), 300_000))
    service.create(_txn(food, date(2026, 10, 2), 6_000))
    service.create(_txn(fun, date(2026, 10, 5), 2_000))
    service.create(_txn(food, date(2026, 11, 1), 9_999))

    stats = service.stats(date(2026, 10, 1), date(2026, 10, 31))

    assert stats["summary"] == {
        "total_income_cents": 300_000,
        "total_expenses_cents": 8_000,
        "balance_cents": 292_000,
        "transaction_count": 3,
    }
    assert [c["name"] for c in stats["categories"]] == ["Salary", "Groceries", "Entertainment"]


def test_transaction_type_is_independent_of_category_type():
    session = make_session()
    salary, food, _ = _categories(session)
    service = TransactionService(session, user_id=1)

    refund = service.create(
        TransactionIn(
            amount_cents=1_200,
            type=TransactionType.income,
            date=date(2026, 10, 5),
            category_id=food.id,
            description="Returned groceries",
        )
    )
    assert refund.type == TransactionType.income
    assert refund.category_id == food.id

    moved = service.update(refund.id, TransactionUpdate(category_id=salary.id))
    assert moved.category_id == salary.id
    assert moved.type == TransactionType.income

    flipped = service.update(refund.id, TransactionUpdate(type=TransactionType.expense))
    assert flipped.type == TransactionType.expense
