import datetime as dt
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from models import (
    BillFrequency,
    BudgetTimeframe,
    PlanItemType,
    PlanType,
    TransactionType,
)


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: TransactionType
    color: Optional[str] = Field(default=None, max_length=9)
    icon: Optional[str] = Field(default=None, max_length=50)
    description: Optional[str] = None


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    type: Optional[TransactionType] = None
    color: Optional[str] = Field(default=None, max_length=9)
    icon: Optional[str] = Field(default=None, max_length=50)
    description: Optional[str] = None


class CategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    type: TransactionType
    color: Optional[str]
    icon: Optional[str]
    is_default: bool
    description: Optional[str]


class TransactionIn(BaseModel):
    amount_cents: int = Field(..., gt=0)
    type: TransactionType
    date: dt.date
    occurred_at: Optional[datetime] = None
    category_id: int
    bill_id: Optional[int] = None
    description: Optional[str] = Field(default=None, max_length=200)
    notes: Optional[str] = None


class TransactionUpdate(BaseModel):
    amount_cents: Optional[int] = Field(default=None, gt=0)
    type: Optional[TransactionType] = None
    date: Optional[dt.date] = None
    occurred_at: Optional[datetime] = None
    category_id: Optional[int] = None
    bill_id: Optional[int] = None
    description: Optional[str] = Field(default=None, max_length=200)
    notes: Optional[str] = None


class TransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    amount_cents: int
    type: TransactionType
    date: dt.date
    occurred_at: datetime
    category_id: int
    bill_id: Optional[int]
    description: Optional[str]
    notes: Optional[str]


class AllocationIn(BaseModel):
    category_id: int
    amount_cents: int = Field(..., ge=0)


class AllocationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    category_id: int
    amount_cents: int


class BudgetIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    amount_cents: int = Field(..., ge=0)
    start_date: date
    end_date: date
    timeframe: BudgetTimeframe
    allocations: list[AllocationIn] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_range(self) -> "BudgetIn":
        if self.start_date > self.end_date:
            raise ValueError("start_date must not be after end_date")
        return self


class BudgetUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    amount_cents: Optional[int] = Field(default=None, ge=0)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    timeframe: Optional[BudgetTimeframe] = None
    allocations: Optional[list[AllocationIn]] = None


class BudgetOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    amount_cents: int
    start_date: date
    end_date: date
    timeframe: BudgetTimeframe
    allocations: list[AllocationOut]


class BillIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    amount_cents: int = Field(..., gt=0)
    due_date: datetime
    frequency: BillFrequency
    category_id: int
    autopay: bool = False
    notes: Optional[str] = None


class BillUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    amount_cents: Optional[int] = Field(default=None, gt=0)
    due_date: Optional[datetime] = None
    frequency: Optional[BillFrequency] = None
    category_id: Optional[int] = None
    autopay: Optional[bool] = None
    notes: Optional[str] = None


class PayBillIn(BaseModel):
    payment_date: Optional[datetime] = None
    create_transaction: bool = True


class SavingsGoalIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    target_amount_cents: int = Field(..., gt=0)
    current_amount_cents: int = Field(default=0, ge=0)
    target_date: Optional[datetime] = None
    notes: Optional[str] = None


class SavingsGoalUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    target_amount_cents: Optional[int] = Field(default=None, gt=0)
    target_date: Optional[datetime] = None
    notes: Optional[str] = None


class AddFundsIn(BaseModel):
    amount_cents: int = Field(..., gt=0)


class PlanItemIn(BaseModel):
    description: str = Field(..., min_length=1, max_length=200)
    amount_cents: int = Field(..., ge=0)
    category_id: Optional[int] = None
    notes: Optional[str] = None


class PlanItemUpdate(BaseModel):
    description: Optional[str] = Field(default=None, min_length=1, max_length=200)
    amount_cents: Optional[int] = Field(default=None, ge=0)
    category_id: Optional[int] = None
    notes: Optional[str] = None


class PlanItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    description: str
    amount_cents: int
    category_id: Optional[int]
    notes: Optional[str]
    plan_type: PlanType
    item_type: PlanItemType
    created_at: datetime


class SavePlanIn(BaseModel):
    income: list[PlanItemIn] = Field(default_factory=list)
    expenses: list[PlanItemIn] = Field(default_factory=list)
    savings: list[PlanItemIn] = Field(default_factory=list)
