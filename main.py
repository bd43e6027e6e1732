import logging
from datetime import date
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.responses import JSONResponse, Response
from sqlalchemy.orm import Session

from database import get_db
from errors import ForbiddenError, InvalidFilterError, NotFoundError
from models import BudgetTimeframe, PlanItemType, PlanType
from periods import Granularity
from schemas import (
    AddFundsIn,
    BillIn,
    BillUpdate,
    BudgetIn,
    BudgetOut,
    BudgetUpdate,
    CategoryIn,
    CategoryOut,
    CategoryUpdate,
    PayBillIn,
    PlanItemIn,
    PlanItemOut,
    PlanItemUpdate,
    SavePlanIn,
    SavingsGoalIn,
    SavingsGoalUpdate,
    TransactionIn,
    TransactionOut,
    TransactionUpdate,
)
from services import (
    BillService,
    BudgetService,
    CategoryService,
    DashboardService,
    PlanService,
    SavingsGoalService,
    StatisticsService,
    TransactionFilters,
    TransactionService,
    parse_bill_status,
    parse_goal_status,
    parse_transaction_type,
)

logging.basicConfig(level=logging.INFO)

app = FastAPI(title="Budget Manager")


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    if isinstance(exc, NotFoundError):
        status_code = 404
    elif isinstance(exc, ForbiddenError):
        status_code = 403
    else:
        status_code = 400
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


def current_user_id(x_user_id: Optional[str] = Header(default=None)) -> int:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        return int(x_user_id)
    except ValueError as exc:
        raise HTTPException(status_code=401, detail="Not authenticated") from exc


def _enum_param(enum_cls, value: Optional[str], label: str):
    if value is None:
        return None
    raw = value.strip()
    for candidate in (raw, raw.upper(), raw.lower()):
        try:
            return enum_cls(candidate)
        except ValueError:
            continue
    allowed = ", ".join(member.value for member in enum_cls)
    raise InvalidFilterError(f"Invalid {label}. Must be one of: {allowed}")


def plan_type_param(plan_type: str) -> PlanType:
    return _enum_param(PlanType, plan_type, "plan type")


def item_type_param(item_type: str) -> PlanItemType:
    return _enum_param(PlanItemType, item_type, "item type")


# Categories


@app.get("/api/categories")
def list_categories(
    type: Optional[str] = None,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    service = CategoryService(db, user_id)
    category_type = parse_transaction_type(type)
    service.ensure_defaults()
    return [CategoryOut.model_validate(c) for c in service.list_all(category_type)]


@app.post("/api/categories", status_code=201)
def create_category(
    data: CategoryIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return CategoryOut.model_validate(CategoryService(db, user_id).create(data))


@app.get("/api/categories/{category_id}")
def get_category(
    category_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return CategoryOut.model_validate(CategoryService(db, user_id).get(category_id))


@app.put("/api/categories/{category_id}")
def update_category(
    category_id: int,
    data: CategoryUpdate,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    category = CategoryService(db, user_id).update(category_id, data)
    return CategoryOut.model_validate(category)


@app.delete("/api/categories/{category_id}", status_code=204)
def delete_category(
    category_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    CategoryService(db, user_id).delete(category_id)
    return Response(status_code=204)


# Transactions


@app.get("/api/transactions")
def list_transactions(
    start: Optional[date] = None,
    end: Optional[date] = None,
    type: Optional[str] = None,
    category_id: Optional[int] = None,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    filters = TransactionFilters(
        start=start,
        end=end,
        type=parse_transaction_type(type),
        category_id=category_id,
    )
    items = TransactionService(db, user_id).list(filters)
    return [TransactionOut.model_validate(txn) for txn in items]


@app.get("/api/transactions/stats")
def transaction_stats(
    start: Optional[date] = None,
    end: Optional[date] = None,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return TransactionService(db, user_id).stats(start, end)


@app.post("/api/transactions", status_code=201)
def create_transaction(
    data: TransactionIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return TransactionOut.model_validate(TransactionService(db, user_id).create(data))


@app.get("/api/transactions/{transaction_id}")
def get_transaction(
    transaction_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    txn = TransactionService(db, user_id).get(transaction_id)
    return TransactionOut.model_validate(txn)


@app.put("/api/transactions/{transaction_id}")
def update_transaction(
    transaction_id: int,
    data: TransactionUpdate,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    txn = TransactionService(db, user_id).update(transaction_id, data)
    return TransactionOut.model_validate(txn)


@app.delete("/api/transactions/{transaction_id}", status_code=204)
def delete_transaction(
    transaction_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    TransactionService(db, user_id).delete(transaction_id)
    return Response(status_code=204)


# Budgets


@app.get("/api/budgets")
def list_budgets(
    timeframe: Optional[str] = None,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    parsed = _enum_param(BudgetTimeframe, timeframe, "timeframe")
    return [BudgetOut.model_validate(b) for b in BudgetService(db, user_id).list_all(parsed)]


@app.post("/api/budgets", status_code=201)
def create_budget(
    data: BudgetIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return BudgetOut.model_validate(BudgetService(db, user_id).create(data))


@app.get("/api/budgets/{budget_id}")
def get_budget(
    budget_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return BudgetOut.model_validate(BudgetService(db, user_id).get(budget_id))


@app.put("/api/budgets/{budget_id}")
def update_budget(
    budget_id: int,
    data: BudgetUpdate,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return BudgetOut.model_validate(BudgetService(db, user_id).update(budget_id, data))


@app.delete("/api/budgets/{budget_id}", status_code=204)
def delete_budget(
    budget_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    BudgetService(db, user_id).delete(budget_id)
    return Response(status_code=204)


# Bills


@app.get("/api/bills")
def list_bills(
    status: Optional[str] = None,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return BillService(db, user_id).list(parse_bill_status(status))


@app.get("/api/bills/reminders")
def bill_reminders(
    days: int = Query(default=7, ge=0, le=366),
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return BillService(db, user_id).reminders(days)


@app.post("/api/bills", status_code=201)
def create_bill(
    data: BillIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return BillService(db, user_id).create(data)


@app.get("/api/bills/{bill_id}")
def get_bill(
    bill_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return BillService(db, user_id).get(bill_id)


@app.put("/api/bills/{bill_id}")
def update_bill(
    bill_id: int,
    data: BillUpdate,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return BillService(db, user_id).update(bill_id, data)


@app.delete("/api/bills/{bill_id}", status_code=204)
def delete_bill(
    bill_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    BillService(db, user_id).delete(bill_id)
    return Response(status_code=204)


@app.post("/api/bills/{bill_id}/pay")
def pay_bill(
    bill_id: int,
    data: Optional[PayBillIn] = None,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return BillService(db, user_id).pay(bill_id, data)


# Savings goals


@app.get("/api/savings-goals")
def list_goals(
    status: Optional[str] = None,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return SavingsGoalService(db, user_id).list(parse_goal_status(status))


@app.post("/api/savings-goals", status_code=201)
def create_goal(
    data: SavingsGoalIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return SavingsGoalService(db, user_id).create(data)


@app.get("/api/savings-goals/{goal_id}")
def get_goal(
    goal_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return SavingsGoalService(db, user_id).get(goal_id)


@app.put("/api/savings-goals/{goal_id}")
def update_goal(
    goal_id: int,
    data: SavingsGoalUpdate,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return SavingsGoalService(db, user_id).update(goal_id, data)


@app.delete("/api/savings-goals/{goal_id}", status_code=204)
def delete_goal(
    goal_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    SavingsGoalService(db, user_id).delete(goal_id)
    return Response(status_code=204)


@app.post("/api/savings-goals/{goal_id}/add-funds")
def add_goal_funds(
    goal_id: int,
    data: AddFundsIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return SavingsGoalService(db, user_id).add_funds(goal_id, data.amount_cents)


@app.post("/api/savings-goals/{goal_id}/complete")
def complete_goal(
    goal_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return SavingsGoalService(db, user_id).complete(goal_id)


# Plans


@app.get("/api/plans/{plan_type}")
def get_plan(
    plan_type: str,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return PlanService(db, user_id).get_plan(plan_type_param(plan_type))


@app.put("/api/plans/{plan_type}")
def save_plan(
    plan_type: str,
    data: SavePlanIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return PlanService(db, user_id).save_plan(plan_type_param(plan_type), data)


@app.post("/api/plans/{plan_type}/{item_type}", status_code=201)
def add_plan_item(
    plan_type: str,
    item_type: str,
    data: PlanItemIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    item = PlanService(db, user_id).add_item(
        plan_type_param(plan_type), item_type_param(item_type), data
    )
    return PlanItemOut.model_validate(item)


@app.put("/api/plans/{plan_type}/{item_type}/{item_id}")
def update_plan_item(
    plan_type: str,
    item_type: str,
    item_id: int,
    data: PlanItemUpdate,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    item = PlanService(db, user_id).update_item(
        plan_type_param(plan_type), item_type_param(item_type), item_id, data
    )
    return PlanItemOut.model_validate(item)


@app.delete("/api/plans/{plan_type}/{item_type}/{item_id}", status_code=204)
def delete_plan_item(
    plan_type: str,
    item_type: str,
    item_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    PlanService(db, user_id).delete_item(
        plan_type_param(plan_type), item_type_param(item_type), item_id
    )
    return Response(status_code=204)


# Dashboard


@app.get("/api/dashboard/summary")
def dashboard_summary(
    start: Optional[date] = None,
    end: Optional[date] = None,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return DashboardService(db, user_id).financial_summary(start, end)


@app.get("/api/dashboard/today")
def dashboard_today(
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return DashboardService(db, user_id).today_spending()


@app.get("/api/dashboard/budget-progress")
def dashboard_budget_progress(
    period: str = "MONTHLY",
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    timeframe = _enum_param(BudgetTimeframe, period, "period")
    return DashboardService(db, user_id).budget_progress(timeframe)


@app.get("/api/dashboard/recent-expenses")
def dashboard_recent_expenses(
    limit: int = Query(default=10, ge=1, le=100),
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return DashboardService(db, user_id).recent_expenses(limit)


# Statistics


@app.get("/api/statistics/income-expenses")
def stats_income_expenses(
    period: str = "month",
    months: int = Query(default=3, ge=1, le=36),
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    granularity = _enum_param(Granularity, period, "period")
    return StatisticsService(db, user_id).income_expenses_chart(granularity, months)


@app.get("/api/statistics/expense-categories")
def stats_expense_categories(
    start: date,
    end: date,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return StatisticsService(db, user_id).expense_categories(start, end)


@app.get("/api/statistics/savings-goals")
def stats_savings_goals(
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return StatisticsService(db, user_id).savings_goals_progress()


@app.get("/api/statistics/monthly-trends")
def stats_monthly_trends(
    months: int = Query(default=6, ge=1, le=36),
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return StatisticsService(db, user_id).monthly_trends(months)


@app.get("/api/statistics/daily-spending")
def stats_daily_spending(
    days: int = Query(default=14, ge=1, le=366),
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return StatisticsService(db, user_id).daily_spending(days)


@app.get("/api/statistics/budget-vs-actual")
def stats_budget_vs_actual(
    group_by: str = "month",
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return StatisticsService(db, user_id).budget_vs_actual(group_by.strip().lower())


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
