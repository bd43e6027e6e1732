"""Pure aggregation helpers shared by the dashboard and statistics views.

Everything here works on already-loaded records and never touches the
session. Amounts are integer cents; percentages are floats and every division
by a zero total yields 0.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Callable, Hashable, Iterable, Optional, Sequence, TypeVar

from models import TransactionType
from periods import Bucket, bucket_index

R = TypeVar("R")


def percent(part: float, whole: float) -> float:
    return (part / whole * 100) if whole else 0.0


def change_percent(first: float, last: float) -> float:
    """Two-point change between the first and last value of a window."""
    return ((last - first) / first * 100) if first > 0 else 0.0


def average(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def _txn_date(record) -> date:
    return record.date


def _txn_amount(record) -> int:
    return record.amount_cents


def _txn_type(record) -> TransactionType:
    return record.type


def split_by_type(
    records: Iterable[R],
    *,
    amount_of: Callable[[R], int] = _txn_amount,
    type_of: Callable[[R], TransactionType] = _txn_type,
) -> tuple[int, int]:
    income = 0
    expense = 0
    for record in records:
        if type_of(record) == TransactionType.income:
            income += amount_of(record)
        else:
            expense += amount_of(record)
    return income, expense


@dataclass
class BucketTotal:
    bucket: Bucket
    income_cents: int = 0
    expense_cents: int = 0
    count: int = 0

    @property
    def net_cents(self) -> int:
        return self.income_cents - self.expense_cents

    @property
    def total_cents(self) -> int:
        return self.income_cents + self.expense_cents


def aggregate_buckets(
    records: Iterable[R],
    buckets: Sequence[Bucket],
    *,
    date_of: Callable[[R], date] = _txn_date,
    amount_of: Callable[[R], int] = _txn_amount,
    type_of: Optional[Callable[[R], TransactionType]] = _txn_type,
) -> list[BucketTotal]:
    """Sum records into their buckets; every bucket is reported, empty ones as zero.

    Without ``type_of`` all amounts are counted as expenses.
    """
    totals = [BucketTotal(bucket) for bucket in buckets]
    for record in records:
        idx = bucket_index(buckets, date_of(record))
        if idx is None:
            continue
        slot = totals[idx]
        amount = amount_of(record)
        if type_of is not None and type_of(record) == TransactionType.income:
            slot.income_cents += amount
        else:
            slot.expense_cents += amount
        slot.count += 1
    return totals


def category_breakdown(
    records: Iterable[R],
    *,
    key_of: Callable[[R], Hashable],
    describe: Callable[[R], dict[str, object]],
    amount_of: Callable[[R], int] = _txn_amount,
) -> tuple[list[dict[str, object]], int]:
    """Group records per category with amount, count and share of the total.

    Rows are sorted by descending amount. ``describe`` supplies the static
    fields (id, name, color, ...) from the first record of each group.
    """
    groups: dict[Hashable, dict[str, object]] = {}
    total = 0
    for record in records:
        key = key_of(record)
        row = groups.get(key)
        if row is None:
            row = {**describe(record), "amount_cents": 0, "count": 0}
            groups[key] = row
        amount = amount_of(record)
        row["amount_cents"] = int(row["amount_cents"]) + amount
        row["count"] = int(row["count"]) + 1
        total += amount

    rows = sorted(groups.values(), key=lambda r: int(r["amount_cents"]), reverse=True)
    for row in rows:
        row["percentage"] = percent(int(row["amount_cents"]), total)
    return rows, total


def variance_row(
    *,
    label: str,
    budget_cents: int,
    actual_cents: int,
    id: Optional[int] = None,
    color: Optional[str] = None,
) -> dict[str, object]:
    variance = actual_cents - budget_cents
    return {
        "label": label,
        "id": id,
        "color": color,
        "budget_amount_cents": budget_cents,
        "actual_amount_cents": actual_cents,
        "variance_cents": variance,
        "variance_percentage": percent(variance, budget_cents),
    }


def merge_budget_and_actuals(
    allocations: Iterable[tuple[int, str, Optional[str], int]],
    actuals: Iterable[tuple[int, str, Optional[str], int]],
) -> list[dict[str, object]]:
    """Outer-join budgeted and spent amounts per category.

    Both inputs yield ``(category_id, name, color, amount_cents)``. Categories
    only present on one side get zero on the other. Sorted by budget descending.
    """
    merged: dict[int, dict[str, object]] = {}
    for category_id, name, color, amount in allocations:
        merged[category_id] = {
            "id": category_id,
            "label": name,
            "color": color,
            "budget": amount,
            "actual": 0,
        }
    for category_id, name, color, amount in actuals:
        entry = merged.setdefault(
            category_id,
            {"id": category_id, "label": name, "color": color, "budget": 0, "actual": 0},
        )
        entry["actual"] = int(entry["actual"]) + amount

    rows = [
        variance_row(
            label=str(entry["label"]),
            id=int(entry["id"]),
            color=entry["color"],
            budget_cents=int(entry["budget"]),
            actual_cents=int(entry["actual"]),
        )
        for entry in merged.values()
    ]
    rows.sort(key=lambda r: int(r["budget_amount_cents"]), reverse=True)
    return rows


def variance_totals(rows: Sequence[dict[str, object]]) -> dict[str, object]:
    total_budget = sum(int(r["budget_amount_cents"]) for r in rows)
    total_actual = sum(int(r["actual_amount_cents"]) for r in rows)
    total_variance = total_actual - total_budget
    return {
        "total_budget_cents": total_budget,
        "total_actual_cents": total_actual,
        "total_variance_cents": total_variance,
        "total_variance_percentage": percent(total_variance, total_budget),
    }
