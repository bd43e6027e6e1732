from datetime import date, datetime, time

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from database import Base
from errors import InvalidFilterError
from models import (
    Budget,
    BudgetTimeframe,
    Category,
    CategoryAllocation,
    PlanItem,
    PlanItemType,
    PlanType,
    Transaction,
    TransactionType,
)
from periods import Granularity
from services import StatisticsService

NOW = datetime(2026, 10, 18, 12, 0)


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def _categories(session):
    cats = {
        "salary": Category(user_id=1, name="Salary", type=TransactionType.income),
        "food": Category(user_id=1, name="Groceries", type=TransactionType.expense, color="#48CFAD"),
        "dining": Category(user_id=1, name="Dining Out", type=TransactionType.expense),
        "transport": Category(user_id=1, name="Transportation", type=TransactionType.expense),
    }
    session.add_all(cats.values())
    session.flush()
    return cats


def _add(session, category, day: date, amount: int) -> None:
    session.add(
        Transaction(
            user_id=1,
            amount_cents=amount,
            type=category.type,
            date=day,
            occurred_at=datetime.combine(day, time(12, 0)),
            category_id=category.id,
        )
    )


def test_income_expenses_chart_by_month():
    session = make_session()
    cats = _categories(session)
    _add(session, cats["salary"], date(2026, 8, 10), 300_000)
    _add(session, cats["food"], date(2026, 9, 30), 45_000)
    _add(session, cats["salary"], date(2026, 10, 1), 300_000)
    _add(session, cats["dining"], date(2026, 10, 2), 12_000)
    _add(session, cats["food"], date(2026, 7, 31), 99_999)
    session.commit()

    chart = StatisticsService(session, user_id=1).income_expenses_chart(
        Granularity.month, months=3, now=NOW
    )

    assert [row["label"] for row in chart["data"]] == ["Aug 2026", "Sep 2026", "Oct 2026"]
    assert [row["income_cents"] for row in chart["data"]] == [300_000, 0, 300_000]
    assert [row["expense_cents"] for row in chart["data"]] == [0, 45_000, 12_000]
    assert chart["data"][2]["net_cents"] == 288_000
    assert chart["total_income_cents"] == 600_000
    assert chart["total_expenses_cents"] == 57_000


def test_income_expenses_chart_by_week_covers_window():
    session = make_session()
    cats = _categories(session)
    _add(session, cats["food"], date(2026, 8, 1), 1_000)
    _add(session, cats["food"], date(2026, 10, 31), 2_000)
    session.commit()
    service = StatisticsService(session, user_id=1)

    chart = service.income_expenses_chart(Granularity.week, months=3, now=NOW)

    assert chart["data"][0]["start_date"] == date(2026, 8, 1)
    assert chart["data"][-1]["end_date"] == date(2026, 10, 31)
    assert chart["total_expenses_cents"] == 3_000
    assert chart["period"] == "week"

    with pytest.raises(InvalidFilterError):
        service.income_expenses_chart(Granularity.day, now=NOW)


def test_expense_categories_breakdown():
    session = make_session()
    cats = _categories(session)
    _add(session, cats["food"], date(2026, 10, 3), 30_000)
    _add(session, cats["food"], date(2026, 10, 9), 10_000)
    _add(session, cats["dining"], date(2026, 10, 4), 10_000)
    _add(session, cats["salary"], date(2026, 10, 1), 300_000)
    session.commit()
    service = StatisticsService(session, user_id=1)

    result = service.expense_categories(date(2026, 10, 1), date(2026, 10, 31))

    assert result["total_amount_cents"] == 50_000
    assert [c["name"] for c in result["categories"]] == ["Groceries", "Dining Out"]
    assert result["categories"][0]["count"] == 2
    assert result["categories"][0]["percentage"] == pytest.approx(80)
    assert sum(c["percentage"] for c in result["categories"]) == pytest.approx(100)

    empty = service.expense_categories(date(2026, 1, 1), date(2026, 1, 31))
    assert empty["categories"] == []
    assert empty["total_amount_cents"] == 0

    with pytest.raises(ValueError):
        service.expense_categories(date(2026, 2, 1), date(2026, 1, 1))


def test_monthly_trends_with_zero_first_month_income():
    session = make_session()
    cats = _categories(session)
    _add(session, cats["food"], date(2026, 9, 12), 100_000)
    _add(session, cats["salary"], date(2026, 10, 1), 500_000)
    _add(session, cats["food"], date(2026, 10, 6), 150_000)
    session.add_all(
        [
            PlanItem(
                user_id=1,
                description="ETF",
                amount_cents=50_000,
                plan_type=PlanType.monthly,
                item_type=PlanItemType.savings,
                created_at=datetime(2026, 9, 10, 8, 0),
            ),
            PlanItem(
                user_id=1,
                description="Jar",
                amount_cents=10_000,
                plan_type=PlanType.monthly,
                item_type=PlanItemType.savings,
                created_at=datetime(2026, 10, 2, 8, 0),
            ),
        ]
    )
    session.commit()

    trends = StatisticsService(session, user_id=1).monthly_trends(months=2, now=NOW)

    assert [m["month"] for m in trends["months"]] == ["Sep 2026", "Oct 2026"]
    assert [m["savings_cents"] for m in trends["months"]] == [50_000, 10_000]
    assert trends["months"][1]["net_cents"] == 340_000
    assert trends["income_trend"] == 0
    assert trends["expenses_trend"] == pytest.approx(50)
    assert trends["savings_trend"] == pytest.approx(-80)
    assert trends["average_income_cents"] == 250_000


def test_daily_spending_window():
    session = make_session()
    cats = _categories(session)
    _add(session, cats["food"], date(2026, 10, 12), 5_000)
    _add(session, cats["dining"], date(2026, 10, 14), 3_000)
    _add(session, cats["food"], date(2026, 10, 17), 2_000)
    _add(session, cats["salary"], date(2026, 10, 15), 300_000)
    _add(session, cats["food"], date(2026, 10, 11), 7_777)
    session.commit()

    result = StatisticsService(session, user_id=1).daily_spending(days=7, now=NOW)

    assert len(result["days"]) == 7
    assert len([d for d in result["days"] if d["amount_cents"] > 0]) == 3
    assert result["total_amount_cents"] == 10_000
    assert result["average_amount_cents"] == pytest.approx(10_000 / 7)
    assert result["highest_amount_cents"] == 5_000
    assert result["lowest_amount_cents"] == 2_000
    assert result["days"][0]["date"] == date(2026, 10, 12)
    assert result["days"][1]["comparison_to_average"] == pytest.approx(-100)


def test_daily_spending_without_expenses():
    session = make_session()
    result = StatisticsService(session, user_id=1).daily_spending(now=NOW)
    assert len(result["days"]) == 14
    assert result["average_amount_cents"] == 0
    assert result["lowest_amount_cents"] == 0
    assert all(d["comparison_to_average"] == 0 for d in result["days"])


def test_budget_vs_actual_by_category():
    session = make_session()
    cats = _categories(session)
    budget = Budget(
        user_id=1,
        name="October",
        amount_cents=250_000,
        start_date=date(2026, 10, 1),
        end_date=date(2026, 10, 31),
        timeframe=BudgetTimeframe.monthly,
    )
    budget.allocations = [
        CategoryAllocation(category_id=cats["food"].id, amount_cents=30_000),
        CategoryAllocation(category_id=cats["dining"].id, amount_cents=10_000),
    ]
    session.add(budget)
    _add(session, cats["food"], date(2026, 10, 3), 20_000)
    _add(session, cats["food"], date(2026, 10, 9), 15_000)
    _add(session, cats["transport"], date(2026, 10, 11), 5_000)
    session.commit()

    result = StatisticsService(session, user_id=1).budget_vs_actual("category", now=NOW)
    rows = {row["label"]: row for row in result["items"]}

    assert set(rows) == {"Groceries", "Dining Out", "Transportation"}
    assert rows["Groceries"]["variance_cents"] == 5_000
    assert rows["Groceries"]["color"] == "#48CFAD"
    assert rows["Dining Out"]["actual_amount_cents"] == 0
    assert rows["Transportation"]["budget_amount_cents"] == 0
    assert rows["Transportation"]["variance_percentage"] == 0
    assert result["total_budget_cents"] == 40_000
    assert result["total_actual_cents"] == 40_000
    assert result["group_by"] == "category"


def test_budget_vs_actual_by_month():
    session = make_session()
    cats = _categories(session)
    session.add_all(
        [
            Budget(
                user_id=1,
                name="March",
                amount_cents=100_000,
                start_date=date(2026, 3, 1),
                end_date=date(2026, 3, 31),
                timeframe=BudgetTimeframe.monthly,
            ),
            Budget(
                user_id=1,
                name="October",
                amount_cents=250_000,
                start_date=date(2026, 10, 1),
                end_date=date(2026, 10, 31),
                timeframe=BudgetTimeframe.monthly,
            ),
        ]
    )
    _add(session, cats["food"], date(2026, 10, 3), 40_000)
    _add(session, cats["food"], date(2026, 6, 3), 12_000)
    session.commit()
    service = StatisticsService(session, user_id=1)

    result = service.budget_vs_actual("month", now=NOW)

    assert len(result["items"]) == 10
    march = result["items"][2]
    assert march["label"] == "March 2026"
    assert march["variance_cents"] == -100_000
    assert march["variance_percentage"] == -100
    june = result["items"][5]
    assert june["budget_amount_cents"] == 0
    assert june["variance_percentage"] == 0
    assert result["items"][9]["actual_amount_cents"] == 40_000
    assert result["total_budget_cents"] == 350_000
    assert result["total_actual_cents"] == 52_000

    with pytest.raises(InvalidFilterError):
        service.budget_vs_actual("week", now=NOW)
