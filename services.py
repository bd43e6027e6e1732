from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Optional, TypeVar

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session, joinedload

from aggregation import (
    aggregate_buckets,
    average,
    category_breakdown,
    change_percent,
    merge_budget_and_actuals,
    percent,
    split_by_type,
    variance_row,
    variance_totals,
)
from errors import ForbiddenError, InvalidFilterError, NotFoundError
from models import (
    Bill,
    BillStatus,
    Budget,
    BudgetTimeframe,
    Category,
    CategoryAllocation,
    PlanItem,
    PlanItemType,
    PlanType,
    SavingsGoal,
    Transaction,
    TransactionType,
)
from periods import (
    Granularity,
    bucketize,
    current_month,
    current_week,
    current_year,
    last_days,
    last_months,
    month_end,
    month_start,
    resolve_range,
)
from recurrence import (
    advance,
    days_in_month,
    days_until,
    local_now,
    to_local_naive,
)
from schemas import (
    AllocationIn,
    BillIn,
    BillUpdate,
    BudgetIn,
    BudgetUpdate,
    CategoryIn,
    CategoryUpdate,
    PayBillIn,
    PlanItemIn,
    PlanItemOut,
    PlanItemUpdate,
    SavePlanIn,
    SavingsGoalIn,
    SavingsGoalUpdate,
    TransactionIn,
    TransactionUpdate,
)

logger = logging.getLogger(__name__)

M = TypeVar("M")

DEFAULT_CATEGORIES: list[tuple[str, TransactionType, str, str]] = [
    ("Housing", TransactionType.expense, "#4B89DC", "home"),
    ("Utilities", TransactionType.expense, "#5D9CEC", "flash"),
    ("Groceries", TransactionType.expense, "#48CFAD", "cart"),
    ("Dining Out", TransactionType.expense, "#A0D468", "restaurant"),
    ("Transportation", TransactionType.expense, "#FFCE54", "car"),
    ("Entertainment", TransactionType.expense, "#FC6E51", "film"),
    ("Healthcare", TransactionType.expense, "#ED5565", "medkit"),
    ("Shopping", TransactionType.expense, "#EC87C0", "bag"),
    ("Personal Care", TransactionType.expense, "#AC92EC", "person"),
    ("Education", TransactionType.expense, "#967ADC", "school"),
    ("Salary", TransactionType.income, "#3BAFDA", "cash"),
    ("Freelance", TransactionType.income, "#4FC1E9", "laptop"),
    ("Investments", TransactionType.income, "#37BC9B", "trending-up"),
    ("Gifts", TransactionType.income, "#D770AD", "gift"),
]


def get_owned(session: Session, model: type[M], entity_id: int, user_id: int, label: str) -> M:
    """Load an entity, checking existence before ownership."""
    entity = session.get(model, entity_id)
    if entity is None:
        raise NotFoundError(f"{label} not found")
    if entity.user_id != user_id:
        raise ForbiddenError("Access to resource denied")
    return entity


def _require_category(session: Session, user_id: int, category_id: int) -> Category:
    category = session.scalar(
        select(Category).where(Category.id == category_id, Category.user_id == user_id)
    )
    if not category:
        raise NotFoundError("Category not found or does not belong to user")
    return category


def category_ref(category: Optional[Category]) -> Optional[dict[str, object]]:
    if category is None:
        return None
    return {
        "id": category.id,
        "name": category.name,
        "icon": category.icon,
        "color": category.color,
    }


def transaction_payload(txn: Transaction) -> dict[str, object]:
    return {
        "id": txn.id,
        "amount_cents": txn.amount_cents,
        "type": txn.type.value,
        "date": txn.date,
        "occurred_at": txn.occurred_at,
        "description": txn.description,
        "notes": txn.notes,
        "bill_id": txn.bill_id,
        "category": category_ref(txn.category),
    }


def parse_transaction_type(value: Optional[str]) -> Optional[TransactionType]:
    if not value:
        return None
    try:
        return TransactionType(value.strip().upper())
    except ValueError as exc:
        allowed = ", ".join(t.value for t in TransactionType)
        raise InvalidFilterError(f"Invalid type. Must be one of: {allowed}") from exc


def parse_bill_status(value: Optional[str]) -> Optional[BillStatus]:
    if not value:
        return None
    try:
        return BillStatus(value.strip().upper())
    except ValueError as exc:
        allowed = ", ".join(s.value for s in BillStatus)
        raise InvalidFilterError(f"Invalid status. Must be one of: {allowed}") from exc


GOAL_STATUSES = ("active", "completed")


def parse_goal_status(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    status = value.strip().lower()
    if status not in GOAL_STATUSES:
        raise InvalidFilterError('Status must be either "active" or "completed"')
    return status


@dataclass(frozen=True)
class BillState:
    status: BillStatus
    days_until_due: int


def classify_bill(due_date: datetime, now: datetime) -> BillState:
    """Derive a bill's status from its due date; a negative day count means overdue."""
    remaining = days_until(due_date, now)
    status = BillStatus.overdue if remaining < 0 else BillStatus.upcoming
    return BillState(status=status, days_until_due=remaining)


@dataclass(frozen=True)
class GoalProgress:
    percentage: float
    days_remaining: Optional[int]


def goal_progress(
    target_amount_cents: int,
    current_amount_cents: int,
    target_date: Optional[datetime],
    now: datetime,
) -> GoalProgress:
    if target_amount_cents > 0:
        pct = max(0.0, min(100.0, current_amount_cents / target_amount_cents * 100))
    else:
        pct = 0.0
    remaining = max(0, days_until(target_date, now)) if target_date else None
    return GoalProgress(percentage=pct, days_remaining=remaining)


@dataclass
class TransactionFilters:
    start: Optional[date] = None
    end: Optional[date] = None
    type: Optional[TransactionType] = None
    category_id: Optional[int] = None


def _transactions_between(
    session: Session,
    user_id: int,
    start: date,
    end: date,
    transaction_type: Optional[TransactionType] = None,
) -> list[Transaction]:
    stmt = (
        select(Transaction)
        .options(joinedload(Transaction.category))
        .where(
            Transaction.user_id == user_id,
            Transaction.date.between(start, end),
        )
        .order_by(Transaction.date.asc(), Transaction.occurred_at.asc())
    )
    if transaction_type:
        stmt = stmt.where(Transaction.type == transaction_type)
    return session.scalars(stmt).all()


def _active_budget(
    session: Session, user_id: int, timeframe: BudgetTimeframe, on: date
) -> Optional[Budget]:
    stmt = (
        select(Budget)
        .options(joinedload(Budget.allocations).joinedload(CategoryAllocation.category))
        .where(
            Budget.user_id == user_id,
            Budget.timeframe == timeframe,
            Budget.start_date <= on,
            Budget.end_date >= on,
        )
        .order_by(Budget.start_date.desc(), Budget.id.asc())
    )
    return session.scalars(stmt).unique().first()


class CategoryService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list_all(self, category_type: Optional[TransactionType] = None) -> list[Category]:
        stmt = (
            select(Category)
            .where(Category.user_id == self.user_id)
            .order_by(Category.name)
        )
        if category_type:
            stmt = stmt.where(Category.type == category_type)
        return self.session.scalars(stmt).all()

    def ensure_defaults(self) -> int:
        existing = {
            (row.name.lower(), row.type)
            for row in self.session.scalars(
                select(Category).where(
                    Category.user_id == self.user_id, Category.is_default.is_(True)
                )
            )
        }
        created = 0
        for name, category_type, color, icon in DEFAULT_CATEGORIES:
            if (name.lower(), category_type) in existing:
                continue
            self.session.add(
                Category(
                    user_id=self.user_id,
                    name=name,
                    type=category_type,
                    color=color,
                    icon=icon,
                    is_default=True,
                )
            )
            created += 1
        if created:
            self.session.commit()
            logger.info("seeded %d default categories for user %s", created, self.user_id)
        return created

    def get(self, category_id: int) -> Category:
        return get_owned(self.session, Category, category_id, self.user_id, "Category")

    def create(self, data: CategoryIn) -> Category:
        category = Category(
            user_id=self.user_id,
            name=data.name.strip(),
            type=data.type,
            color=data.color,
            icon=data.icon,
            description=data.description,
            is_default=False,
        )
        self.session.add(category)
        self.session.commit()
        self.session.refresh(category)
        return category

    def update(self, category_id: int, data: CategoryUpdate) -> Category:
        category = self.get(category_id)
        if category.is_default:
            raise ForbiddenError("Default categories cannot be edited")

        if data.name:
            category.name = data.name.strip()
        if data.type:
            category.type = data.type
        if data.icon:
            category.icon = data.icon
        if data.color:
            category.color = data.color
        if data.description is not None:
            category.description = data.description
        self.session.commit()
        self.session.refresh(category)
        return category

    def usage_count(self, category_id: int) -> int:
        transactions = self.session.execute(
            select(func.count(Transaction.id)).where(
                Transaction.category_id == category_id
            )
        ).scalar_one()
        bills = self.session.execute(
            select(func.count(Bill.id)).where(Bill.category_id == category_id)
        ).scalar_one()
        allocations = self.session.execute(
            select(func.count(CategoryAllocation.id)).where(
                CategoryAllocation.category_id == category_id
            )
        ).scalar_one()
        plan_items = self.session.execute(
            select(func.count(PlanItem.id)).where(PlanItem.category_id == category_id)
        ).scalar_one()
        return sum(int(n or 0) for n in (transactions, bills, allocations, plan_items))

    def delete(self, category_id: int) -> None:
        category = self.get(category_id)
        if category.is_default:
            raise ForbiddenError("Default categories cannot be deleted")
        if self.usage_count(category.id) > 0:
            raise ForbiddenError(
                "Cannot delete a category that is used in transactions, bills, budgets or plans. "
                "Please reassign those items to a different category first."
            )
        self.session.delete(category)
        self.session.commit()


class TransactionService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list(self, filters: Optional[TransactionFilters] = None) -> list[Transaction]:
        filters = filters or TransactionFilters()
        stmt = (
            select(Transaction)
            .options(joinedload(Transaction.category))
            .where(Transaction.user_id == self.user_id)
            .order_by(Transaction.date.desc(), Transaction.occurred_at.desc(), Transaction.id.desc())
        )
        if filters.start:
            stmt = stmt.where(Transaction.date >= filters.start)
        if filters.end:
            stmt = stmt.where(Transaction.date <= filters.end)
        if filters.type:
            stmt = stmt.where(Transaction.type == filters.type)
        if filters.category_id:
            stmt = stmt.where(Transaction.category_id == filters.category_id)
        return self.session.scalars(stmt).all()

    def get(self, transaction_id: int) -> Transaction:
        return get_owned(
            self.session, Transaction, transaction_id, self.user_id, "Transaction"
        )

    def create(self, data: TransactionIn) -> Transaction:
        _require_category(self.session, self.user_id, data.category_id)
        if data.bill_id is not None:
            get_owned(self.session, Bill, data.bill_id, self.user_id, "Bill")

        occurred_at = (
            to_local_naive(data.occurred_at)
            if data.occurred_at
            else datetime.combine(data.date, time(12, 0))
        )
        txn = Transaction(
            user_id=self.user_id,
            amount_cents=data.amount_cents,
            type=data.type,
            date=data.date,
            occurred_at=occurred_at,
            category_id=data.category_id,
            bill_id=data.bill_id,
            description=data.description,
            notes=data.notes,
        )
        self.session.add(txn)
        self.session.commit()
        self.session.refresh(txn)
        return txn

    def update(self, transaction_id: int, data: TransactionUpdate) -> Transaction:
        txn = self.get(transaction_id)
        if data.category_id:
            _require_category(self.session, self.user_id, data.category_id)
        if data.bill_id is not None:
            get_owned(self.session, Bill, data.bill_id, self.user_id, "Bill")

        if data.amount_cents is not None:
            txn.amount_cents = data.amount_cents
        if data.date:
            txn.date = data.date
            if not data.occurred_at:
                txn.occurred_at = datetime.combine(data.date, txn.occurred_at.time())
        if data.occurred_at:
            txn.occurred_at = to_local_naive(data.occurred_at)
        if data.type:
            txn.type = data.type
        if data.category_id:
            txn.category_id = data.category_id
        if data.bill_id is not None:
            txn.bill_id = data.bill_id
        if data.description is not None:
            txn.description = data.description
        if data.notes is not None:
            txn.notes = data.notes
        self.session.commit()
        self.session.refresh(txn)
        return txn

    def delete(self, transaction_id: int) -> None:
        txn = self.get(transaction_id)
        self.session.delete(txn)
        self.session.commit()

    def stats(
        self, start: Optional[date] = None, end: Optional[date] = None
    ) -> dict[str, object]:
        transactions = self.list(TransactionFilters(start=start, end=end))
        income, expenses = split_by_type(transactions)
        categories, _ = category_breakdown(
            transactions,
            key_of=lambda t: t.category_id,
            describe=lambda t: category_ref(t.category),
        )
        return {
            "summary": {
                "total_income_cents": income,
                "total_expenses_cents": expenses,
                "balance_cents": income - expenses,
                "transaction_count": len(transactions),
            },
            "categories": categories,
        }


class BudgetService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list_all(self, timeframe: Optional[BudgetTimeframe] = None) -> list[Budget]:
        stmt = (
            select(Budget)
            .options(joinedload(Budget.allocations))
            .where(Budget.user_id == self.user_id)
            .order_by(Budget.start_date.desc(), Budget.id.desc())
        )
        if timeframe:
            stmt = stmt.where(Budget.timeframe == timeframe)
        return self.session.scalars(stmt).unique().all()

    def get(self, budget_id: int) -> Budget:
        return get_owned(self.session, Budget, budget_id, self.user_id, "Budget")

    def active(self, timeframe: BudgetTimeframe, on: date) -> Optional[Budget]:
        return _active_budget(self.session, self.user_id, timeframe, on)

    def _build_allocations(
        self, allocations: list[AllocationIn]
    ) -> list[CategoryAllocation]:
        seen: set[int] = set()
        rows: list[CategoryAllocation] = []
        for allocation in allocations:
            if allocation.category_id in seen:
                raise ValueError("Only one allocation per category is allowed")
            seen.add(allocation.category_id)
            _require_category(self.session, self.user_id, allocation.category_id)
            rows.append(
                CategoryAllocation(
                    category_id=allocation.category_id,
                    amount_cents=allocation.amount_cents,
                )
            )
        return rows

    def create(self, data: BudgetIn) -> Budget:
        budget = Budget(
            user_id=self.user_id,
            name=data.name.strip(),
            amount_cents=data.amount_cents,
            start_date=data.start_date,
            end_date=data.end_date,
            timeframe=data.timeframe,
        )
        budget.allocations = self._build_allocations(data.allocations)
        self.session.add(budget)
        self.session.commit()
        self.session.refresh(budget)
        return budget

    def update(self, budget_id: int, data: BudgetUpdate) -> Budget:
        budget = self.get(budget_id)
        start = data.start_date or budget.start_date
        end = data.end_date or budget.end_date
        if start > end:
            raise ValueError("Start date must be before end date")

        if data.name:
            budget.name = data.name.strip()
        if data.amount_cents is not None:
            budget.amount_cents = data.amount_cents
        if data.timeframe:
            budget.timeframe = data.timeframe
        budget.start_date = start
        budget.end_date = end
        if data.allocations is not None:
            rows = self._build_allocations(data.allocations)
            budget.allocations.clear()
            self.session.flush()
            budget.allocations.extend(rows)
        self.session.commit()
        self.session.refresh(budget)
        return budget

    def delete(self, budget_id: int) -> None:
        budget = self.get(budget_id)
        self.session.delete(budget)
        self.session.commit()


class BillService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def view(
        self,
        bill: Bill,
        now: datetime,
        last_payment_date: Optional[datetime] = None,
    ) -> dict[str, object]:
        state = classify_bill(bill.due_date, now)
        return {
            "id": bill.id,
            "name": bill.name,
            "amount_cents": bill.amount_cents,
            "due_date": bill.due_date,
            "frequency": bill.frequency.value,
            "autopay": bill.autopay,
            "notes": bill.notes,
            "category_id": bill.category_id,
            "category": category_ref(bill.category),
            "status": state.status.value,
            "days_until_due": state.days_until_due,
            "last_payment_date": last_payment_date,
        }

    def _query(self):
        return (
            select(Bill)
            .options(joinedload(Bill.category))
            .where(Bill.user_id == self.user_id)
            .order_by(Bill.due_date.asc(), Bill.id.asc())
        )

    def list(
        self, status: Optional[BillStatus] = None, now: Optional[datetime] = None
    ) -> list[dict[str, object]]:
        now = now or local_now()
        bills = [self.view(bill, now) for bill in self.session.scalars(self._query())]
        if status:
            return [bill for bill in bills if bill["status"] == status.value]
        return bills

    def reminders(
        self, days: int, now: Optional[datetime] = None
    ) -> list[dict[str, object]]:
        now = now or local_now()
        horizon = now + timedelta(days=days)
        stmt = self._query().where(Bill.due_date >= now, Bill.due_date <= horizon)
        return [self.view(bill, now) for bill in self.session.scalars(stmt)]

    def get(self, bill_id: int, now: Optional[datetime] = None) -> dict[str, object]:
        bill = get_owned(self.session, Bill, bill_id, self.user_id, "Bill")
        return self.view(bill, now or local_now())

    def create(self, data: BillIn, now: Optional[datetime] = None) -> dict[str, object]:
        _require_category(self.session, self.user_id, data.category_id)
        bill = Bill(
            user_id=self.user_id,
            name=data.name.strip(),
            amount_cents=data.amount_cents,
            due_date=to_local_naive(data.due_date),
            frequency=data.frequency,
            autopay=data.autopay,
            notes=data.notes,
            category_id=data.category_id,
        )
        self.session.add(bill)
        self.session.commit()
        self.session.refresh(bill)
        return self.view(bill, now or local_now())

    def update(
        self, bill_id: int, data: BillUpdate, now: Optional[datetime] = None
    ) -> dict[str, object]:
        bill = get_owned(self.session, Bill, bill_id, self.user_id, "Bill")
        if data.category_id:
            _require_category(self.session, self.user_id, data.category_id)

        if data.name:
            bill.name = data.name.strip()
        if data.amount_cents is not None:
            bill.amount_cents = data.amount_cents
        if data.due_date:
            bill.due_date = to_local_naive(data.due_date)
        if data.frequency:
            bill.frequency = data.frequency
        if data.autopay is not None:
            bill.autopay = data.autopay
        if data.notes is not None:
            bill.notes = data.notes
        if data.category_id:
            bill.category_id = data.category_id
        self.session.commit()
        self.session.refresh(bill)
        return self.view(bill, now or local_now())

    def delete(self, bill_id: int) -> None:
        bill = get_owned(self.session, Bill, bill_id, self.user_id, "Bill")
        self.session.delete(bill)
        self.session.commit()

    def settle(
        self,
        bill: Bill,
        *,
        payment_date: datetime,
        create_transaction: bool = True,
    ) -> Optional[Transaction]:
        """Advance the due date one period and optionally book the payment. Does not commit."""
        previous_due = bill.due_date
        bill.due_date = advance(bill.due_date, bill.frequency)
        txn = None
        if create_transaction:
            txn = Transaction(
                user_id=bill.user_id,
                amount_cents=bill.amount_cents,
                date=payment_date.date(),
                occurred_at=payment_date,
                description=f"Payment for {bill.name}",
                type=TransactionType.expense,
                category_id=bill.category_id,
                bill_id=bill.id,
            )
            self.session.add(txn)
        self.session.flush()
        logger.info(
            "bill_paid: bill_id=%s due=%s next_due=%s transaction=%s",
            bill.id,
            previous_due.isoformat(),
            bill.due_date.isoformat(),
            txn.id if txn else None,
        )
        return txn

    def pay(
        self,
        bill_id: int,
        data: Optional[PayBillIn] = None,
        now: Optional[datetime] = None,
    ) -> dict[str, object]:
        data = data or PayBillIn()
        now = now or local_now()
        bill = get_owned(self.session, Bill, bill_id, self.user_id, "Bill")
        payment_date = to_local_naive(data.payment_date) if data.payment_date else now
        self.settle(
            bill,
            payment_date=payment_date,
            create_transaction=data.create_transaction,
        )
        self.session.commit()
        self.session.refresh(bill)
        return self.view(bill, now, last_payment_date=payment_date)


class SavingsGoalService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def view(
        self,
        goal: SavingsGoal,
        now: datetime,
        *,
        days_remaining: Optional[int] = None,
    ) -> dict[str, object]:
        progress = goal_progress(
            goal.target_amount_cents,
            goal.current_amount_cents,
            goal.target_date,
            now,
        )
        return {
            "id": goal.id,
            "name": goal.name,
            "target_amount_cents": goal.target_amount_cents,
            "current_amount_cents": goal.current_amount_cents,
            "target_date": goal.target_date,
            "completed": goal.completed,
            "notes": goal.notes,
            "created_at": goal.created_at,
            "progress_percentage": progress.percentage,
            "days_remaining": (
                days_remaining if days_remaining is not None else progress.days_remaining
            ),
        }

    def _get(self, goal_id: int) -> SavingsGoal:
        return get_owned(self.session, SavingsGoal, goal_id, self.user_id, "Goal")

    def list(
        self, status: Optional[str] = None, now: Optional[datetime] = None
    ) -> list[dict[str, object]]:
        now = now or local_now()
        stmt = (
            select(SavingsGoal)
            .where(SavingsGoal.user_id == self.user_id)
            .order_by(SavingsGoal.created_at.desc(), SavingsGoal.id.desc())
        )
        if status == "active":
            stmt = stmt.where(SavingsGoal.completed.is_(False))
        elif status == "completed":
            stmt = stmt.where(SavingsGoal.completed.is_(True))
        return [self.view(goal, now) for goal in self.session.scalars(stmt)]

    def get(self, goal_id: int, now: Optional[datetime] = None) -> dict[str, object]:
        return self.view(self._get(goal_id), now or local_now())

    def create(
        self, data: SavingsGoalIn, now: Optional[datetime] = None
    ) -> dict[str, object]:
        goal = SavingsGoal(
            user_id=self.user_id,
            name=data.name.strip(),
            target_amount_cents=data.target_amount_cents,
            current_amount_cents=data.current_amount_cents,
            target_date=to_local_naive(data.target_date) if data.target_date else None,
            notes=data.notes,
            completed=False,
        )
        self.session.add(goal)
        self.session.commit()
        self.session.refresh(goal)
        return self.view(goal, now or local_now())

    def update(
        self, goal_id: int, data: SavingsGoalUpdate, now: Optional[datetime] = None
    ) -> dict[str, object]:
        goal = self._get(goal_id)
        if data.name:
            goal.name = data.name.strip()
        if data.target_amount_cents:
            goal.target_amount_cents = data.target_amount_cents
        if data.target_date:
            goal.target_date = to_local_naive(data.target_date)
        if data.notes is not None:
            goal.notes = data.notes
        self.session.commit()
        self.session.refresh(goal)
        return self.view(goal, now or local_now())

    def delete(self, goal_id: int) -> None:
        goal = self._get(goal_id)
        self.session.delete(goal)
        self.session.commit()

    def add_funds(
        self, goal_id: int, amount_cents: int, now: Optional[datetime] = None
    ) -> dict[str, object]:
        if amount_cents <= 0:
            raise ValueError("Amount must be positive")
        goal = self._get(goal_id)
        if goal.completed:
            raise ForbiddenError("Cannot add funds to a completed goal")

        goal.current_amount_cents += amount_cents
        if goal.current_amount_cents >= goal.target_amount_cents:
            goal.completed = True
            logger.info("goal_completed: goal_id=%s by funding", goal.id)
        self.session.commit()
        self.session.refresh(goal)
        return self.view(goal, now or local_now())

    def complete(self, goal_id: int, now: Optional[datetime] = None) -> dict[str, object]:
        goal = self._get(goal_id)
        if goal.completed:
            raise ForbiddenError("Goal is already completed")
        goal.completed = True
        self.session.commit()
        self.session.refresh(goal)
        return self.view(goal, now or local_now(), days_remaining=0)


class PlanService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    @staticmethod
    def _total(items: list[PlanItem]) -> int:
        return sum(item.amount_cents for item in items)

    def _view(self, plan_type: PlanType, items: list[PlanItem]) -> dict[str, object]:
        grouped: dict[PlanItemType, list[PlanItem]] = {t: [] for t in PlanItemType}
        for item in items:
            grouped[item.item_type].append(item)

        income_total = self._total(grouped[PlanItemType.income])
        expenses_total = self._total(grouped[PlanItemType.expense])
        savings_total = self._total(grouped[PlanItemType.savings])
        updated = [item.updated_at for item in items if item.updated_at]

        def dump(rows: list[PlanItem]) -> list[dict[str, object]]:
            return [PlanItemOut.model_validate(row).model_dump() for row in rows]

        return {
            "type": plan_type.value,
            "income": dump(grouped[PlanItemType.income]),
            "expenses": dump(grouped[PlanItemType.expense]),
            "savings": dump(grouped[PlanItemType.savings]),
            "income_total_cents": income_total,
            "expenses_total_cents": expenses_total,
            "savings_total_cents": savings_total,
            "balance_cents": income_total - expenses_total - savings_total,
            "updated_at": max(updated) if updated else None,
        }

    def _items(self, plan_type: PlanType) -> list[PlanItem]:
        stmt = (
            select(PlanItem)
            .where(PlanItem.user_id == self.user_id, PlanItem.plan_type == plan_type)
            .order_by(PlanItem.item_type.asc(), PlanItem.amount_cents.desc(), PlanItem.id.asc())
        )
        return self.session.scalars(stmt).all()

    def get_plan(self, plan_type: PlanType) -> dict[str, object]:
        return self._view(plan_type, self._items(plan_type))

    def _get_scoped(
        self, plan_type: PlanType, item_type: PlanItemType, item_id: int
    ) -> PlanItem:
        item = get_owned(self.session, PlanItem, item_id, self.user_id, "Plan item")
        if item.plan_type != plan_type or item.item_type != item_type:
            raise ForbiddenError(
                "Item does not belong to the specified plan or item type"
            )
        return item

    def _check_category(self, category_id: Optional[int]) -> None:
        if category_id is not None:
            _require_category(self.session, self.user_id, category_id)

    def add_item(
        self, plan_type: PlanType, item_type: PlanItemType, data: PlanItemIn
    ) -> PlanItem:
        self._check_category(data.category_id)
        item = PlanItem(
            user_id=self.user_id,
            description=data.description.strip(),
            amount_cents=data.amount_cents,
            category_id=data.category_id,
            notes=data.notes,
            plan_type=plan_type,
            item_type=item_type,
        )
        self.session.add(item)
        self.session.commit()
        self.session.refresh(item)
        return item

    def update_item(
        self,
        plan_type: PlanType,
        item_type: PlanItemType,
        item_id: int,
        data: PlanItemUpdate,
    ) -> PlanItem:
        item = self._get_scoped(plan_type, item_type, item_id)
        self._check_category(data.category_id)
        if data.description is not None:
            item.description = data.description.strip()
        if data.amount_cents is not None:
            item.amount_cents = data.amount_cents
        if data.category_id is not None:
            item.category_id = data.category_id
        if data.notes is not None:
            item.notes = data.notes
        self.session.commit()
        self.session.refresh(item)
        return item

    def delete_item(
        self, plan_type: PlanType, item_type: PlanItemType, item_id: int
    ) -> None:
        item = self._get_scoped(plan_type, item_type, item_id)
        self.session.delete(item)
        self.session.commit()

    def save_plan(self, plan_type: PlanType, data: SavePlanIn) -> dict[str, object]:
        """Replace every item of the plan in one transaction."""
        sections = (
            (PlanItemType.income, data.income),
            (PlanItemType.expense, data.expenses),
            (PlanItemType.savings, data.savings),
        )
        try:
            self.session.execute(
                delete(PlanItem).where(
                    PlanItem.user_id == self.user_id,
                    PlanItem.plan_type == plan_type,
                )
            )
            created: list[PlanItem] = []
            for item_type, entries in sections:
                for entry in entries:
                    self._check_category(entry.category_id)
                    item = PlanItem(
                        user_id=self.user_id,
                        description=entry.description.strip(),
                        amount_cents=entry.amount_cents,
                        category_id=entry.category_id,
                        notes=entry.notes,
                        plan_type=plan_type,
                        item_type=item_type,
                    )
                    self.session.add(item)
                    created.append(item)
            self.session.flush()
        except Exception:
            self.session.rollback()
            raise
        self.session.commit()
        logger.info(
            "plan_saved: user_id=%s plan_type=%s items=%d",
            self.user_id,
            plan_type.value,
            len(created),
        )
        return self._view(plan_type, created)


def _savings_items(session: Session, user_id: int) -> list[PlanItem]:
    return session.scalars(
        select(PlanItem).where(
            PlanItem.user_id == user_id,
            PlanItem.item_type == PlanItemType.savings,
        )
    ).all()


class DashboardService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def financial_summary(
        self,
        start: Optional[date] = None,
        end: Optional[date] = None,
        now: Optional[datetime] = None,
    ) -> dict[str, object]:
        today = (now or local_now()).date()
        period = resolve_range(start, end, today=today)
        transactions = _transactions_between(
            self.session, self.user_id, period.start, period.end
        )
        income, expenses = split_by_type(transactions)
        # Savings come from the plan, not from dated records.
        savings = sum(item.amount_cents for item in _savings_items(self.session, self.user_id))
        return {
            "income_total_cents": income,
            "expense_total_cents": expenses,
            "savings_total_cents": savings,
            "remaining_amount_cents": income - expenses - savings,
            "start_date": period.start,
            "end_date": period.end,
        }

    def today_spending(self, now: Optional[datetime] = None) -> dict[str, object]:
        now = now or local_now()
        today = now.date()
        expenses = _transactions_between(
            self.session, self.user_id, today, today, TransactionType.expense
        )
        spent = sum(txn.amount_cents for txn in expenses)

        budget = _active_budget(
            self.session, self.user_id, BudgetTimeframe.monthly, today
        )
        month_days = days_in_month(today.year, today.month)
        daily_budget = budget.amount_cents / month_days if budget else 0.0
        return {
            "total_spent_today_cents": spent,
            "transaction_count": len(expenses),
            "daily_budget_cents": daily_budget,
            "remaining_budget_cents": max(0.0, daily_budget - spent),
            "date": today,
        }

    def budget_progress(
        self,
        period: BudgetTimeframe = BudgetTimeframe.monthly,
        now: Optional[datetime] = None,
    ) -> dict[str, object]:
        today = (now or local_now()).date()
        if period == BudgetTimeframe.weekly:
            window = current_week(today)
        elif period == BudgetTimeframe.monthly:
            window = current_month(today)
        else:
            raise InvalidFilterError("Budget progress period must be WEEKLY or MONTHLY")

        expenses = _transactions_between(
            self.session, self.user_id, window.start, window.end, TransactionType.expense
        )
        spending = sum(txn.amount_cents for txn in expenses)
        budget = _active_budget(self.session, self.user_id, period, today)
        target = budget.amount_cents if budget else 0
        return {
            "current_spending_cents": spending,
            "target_budget_cents": target,
            "percentage_used": percent(spending, target),
            "remaining_amount_cents": max(0, target - spending),
            "period": period.value,
            "start_date": window.start,
            "end_date": window.end,
        }

    def recent_expenses(self, limit: int = 10) -> dict[str, object]:
        stmt = (
            select(Transaction)
            .options(joinedload(Transaction.category))
            .where(
                Transaction.user_id == self.user_id,
                Transaction.type == TransactionType.expense,
            )
            .order_by(
                Transaction.date.desc(),
                Transaction.occurred_at.desc(),
                Transaction.id.desc(),
            )
            .limit(limit)
        )
        expenses = self.session.scalars(stmt).all()

        days: dict[date, dict[str, object]] = {}
        for txn in expenses:
            day = days.setdefault(
                txn.date, {"date": txn.date, "expenses": [], "total_amount_cents": 0}
            )
            day["expenses"].append(transaction_payload(txn))
            day["total_amount_cents"] = int(day["total_amount_cents"]) + txn.amount_cents

        return {
            "days": sorted(days.values(), key=lambda d: d["date"], reverse=True),
            "total_amount_cents": sum(txn.amount_cents for txn in expenses),
            "count": len(expenses),
        }


class StatisticsService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def income_expenses_chart(
        self,
        granularity: Granularity = Granularity.month,
        months: int = 3,
        now: Optional[datetime] = None,
    ) -> dict[str, object]:
        granularity = Granularity(granularity)
        if granularity == Granularity.day:
            raise InvalidFilterError("Chart period must be week or month")
        today = (now or local_now()).date()
        window = last_months(today, months)
        buckets = bucketize(window.start, window.end, granularity)
        transactions = _transactions_between(
            self.session, self.user_id, window.start, window.end
        )
        totals = aggregate_buckets(transactions, buckets)
        data = [
            {
                "label": slot.bucket.label,
                "start_date": slot.bucket.start,
                "end_date": slot.bucket.end,
                "income_cents": slot.income_cents,
                "expense_cents": slot.expense_cents,
                "net_cents": slot.net_cents,
            }
            for slot in totals
        ]
        return {
            "data": data,
            "total_income_cents": sum(slot.income_cents for slot in totals),
            "total_expenses_cents": sum(slot.expense_cents for slot in totals),
            "period": granularity.value,
        }

    def expense_categories(self, start: date, end: date) -> dict[str, object]:
        if start > end:
            raise ValueError("Start date must be before end date")
        expenses = _transactions_between(
            self.session, self.user_id, start, end, TransactionType.expense
        )
        categories, total = category_breakdown(
            expenses,
            key_of=lambda t: t.category_id,
            describe=lambda t: category_ref(t.category),
        )
        return {
            "categories": categories,
            "total_amount_cents": total,
            "start_date": start,
            "end_date": end,
        }

    def savings_goals_progress(self, now: Optional[datetime] = None) -> dict[str, object]:
        now = now or local_now()
        goals = self.session.scalars(
            select(SavingsGoal)
            .where(SavingsGoal.user_id == self.user_id)
            .order_by(SavingsGoal.id)
        ).all()
        rows = []
        for goal in goals:
            progress = goal_progress(
                goal.target_amount_cents, goal.current_amount_cents, goal.target_date, now
            )
            rows.append(
                {
                    "id": goal.id,
                    "name": goal.name,
                    "current_amount_cents": goal.current_amount_cents,
                    "target_amount_cents": goal.target_amount_cents,
                    "progress_percentage": progress.percentage,
                    "remaining_amount_cents": max(
                        0, goal.target_amount_cents - goal.current_amount_cents
                    ),
                    "target_date": goal.target_date,
                    "completed": goal.completed,
                }
            )
        return {
            "goals": rows,
            "total_saved_cents": sum(goal.current_amount_cents for goal in goals),
            "total_target_cents": sum(goal.target_amount_cents for goal in goals),
            "average_progress": average([r["progress_percentage"] for r in rows]),
        }

    def monthly_trends(
        self, months: int = 6, now: Optional[datetime] = None
    ) -> dict[str, object]:
        today = (now or local_now()).date()
        window = last_months(today, months)
        buckets = bucketize(window.start, window.end, Granularity.month)
        transactions = _transactions_between(
            self.session, self.user_id, window.start, window.end
        )
        flows = aggregate_buckets(transactions, buckets)
        # Savings are attributed to the month the plan item was created in.
        savings = aggregate_buckets(
            _savings_items(self.session, self.user_id),
            buckets,
            date_of=lambda item: item.created_at.date(),
            type_of=None,
        )

        rows = []
        for flow, saved in zip(flows, savings):
            rows.append(
                {
                    "month": flow.bucket.label,
                    "date": flow.bucket.start,
                    "income_cents": flow.income_cents,
                    "expenses_cents": flow.expense_cents,
                    "savings_cents": saved.expense_cents,
                    "net_cents": flow.income_cents - flow.expense_cents - saved.expense_cents,
                }
            )

        def series(key: str) -> list[int]:
            return [int(row[key]) for row in rows]

        income, expenses, saved = series("income_cents"), series("expenses_cents"), series("savings_cents")
        return {
            "months": rows,
            "average_income_cents": average(income),
            "average_expenses_cents": average(expenses),
            "average_savings_cents": average(saved),
            "income_trend": change_percent(income[0], income[-1]),
            "expenses_trend": change_percent(expenses[0], expenses[-1]),
            "savings_trend": change_percent(saved[0], saved[-1]),
        }

    def daily_spending(
        self, days: int = 14, now: Optional[datetime] = None
    ) -> dict[str, object]:
        today = (now or local_now()).date()
        window = last_days(today, days)
        buckets = bucketize(window.start, window.end, Granularity.day)
        expenses = _transactions_between(
            self.session, self.user_id, window.start, window.end, TransactionType.expense
        )
        totals = aggregate_buckets(expenses, buckets, type_of=None)

        total = sum(slot.expense_cents for slot in totals)
        mean = total / len(totals)
        non_zero = [slot.expense_cents for slot in totals if slot.expense_cents > 0]
        rows = [
            {
                "day": slot.bucket.label,
                "date": slot.bucket.start,
                "amount_cents": slot.expense_cents,
                "transaction_count": slot.count,
                "comparison_to_average": change_percent(mean, slot.expense_cents),
            }
            for slot in totals
        ]
        return {
            "days": rows,
            "total_amount_cents": total,
            "average_amount_cents": mean,
            "highest_amount_cents": max((slot.expense_cents for slot in totals), default=0),
            "lowest_amount_cents": min(non_zero) if non_zero else 0,
        }

    def budget_vs_actual(
        self, group_by: str = "month", now: Optional[datetime] = None
    ) -> dict[str, object]:
        today = (now or local_now()).date()
        if group_by == "month":
            items = self._budget_vs_actual_by_month(today)
        elif group_by == "category":
            items = self._budget_vs_actual_by_category(today)
        else:
            raise InvalidFilterError('group_by must be either "month" or "category"')
        return {"items": items, **variance_totals(items), "group_by": group_by}

    def _budget_vs_actual_by_month(self, today: date) -> list[dict[str, object]]:
        year = current_year(today)
        budgets = self.session.scalars(
            select(Budget)
            .where(
                Budget.user_id == self.user_id,
                Budget.timeframe == BudgetTimeframe.monthly,
                Budget.start_date >= year.start,
                Budget.end_date <= year.end,
            )
            .order_by(Budget.start_date.asc(), Budget.id.asc())
        ).all()
        budget_by_month: dict[int, int] = {}
        for budget in budgets:
            budget_by_month.setdefault(budget.start_date.month, budget.amount_cents)

        expenses = _transactions_between(
            self.session, self.user_id, year.start, today, TransactionType.expense
        )
        actual_by_month: dict[int, int] = {}
        for txn in expenses:
            actual_by_month[txn.date.month] = (
                actual_by_month.get(txn.date.month, 0) + txn.amount_cents
            )

        rows = []
        for month in range(1, today.month + 1):
            first = date(today.year, month, 1)
            rows.append(
                variance_row(
                    label=f"{first:%B %Y}",
                    budget_cents=budget_by_month.get(month, 0),
                    actual_cents=actual_by_month.get(month, 0),
                )
            )
        return rows

    def _budget_vs_actual_by_category(self, today: date) -> list[dict[str, object]]:
        budget = _active_budget(
            self.session, self.user_id, BudgetTimeframe.monthly, today
        )
        allocations = [
            (a.category_id, a.category.name, a.category.color, a.amount_cents)
            for a in (budget.allocations if budget else [])
        ]
        expenses = _transactions_between(
            self.session,
            self.user_id,
            month_start(today),
            month_end(today),
            TransactionType.expense,
        )
        actuals = [
            (t.category_id, t.category.name, t.category.color, t.amount_cents)
            for t in expenses
        ]
        return merge_budget_and_actuals(allocations, actuals)
