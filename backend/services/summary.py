"""
Dashboard summary: period totals, change versus the previous period,
top spending categories and a day-by-day income/expense series.

All amounts are milliunits. Expenses are reported as negative totals in the
period figures and as absolute values in the category and day breakdowns.

Author: Finance Dashboard Team
"""

from datetime import date, datetime, timedelta
from typing import Optional, Tuple

import pandas as pd
from sqlalchemy import case, desc, func
from sqlalchemy.orm import Session as DBSession

from models import Account, Category, Transaction


DEFAULT_PERIOD_DAYS = 30
TOP_CATEGORIES = 3
DATE_FORMAT = "%Y-%m-%d"


def resolve_period(
    date_from: Optional[str], date_to: Optional[str], today: Optional[date] = None
) -> Tuple[date, date]:
    """
    Turn optional ``from``/``to`` query strings into an inclusive date range.

    Defaults to the last 30 days ending today.

    Raises:
        ValueError: If a date is malformed or the range is reversed.
    """
    end = datetime.strptime(date_to, DATE_FORMAT).date() if date_to else (today or date.today())
    start = (
        datetime.strptime(date_from, DATE_FORMAT).date()
        if date_from
        else end - timedelta(days=DEFAULT_PERIOD_DAYS)
    )
    if start > end:
        raise ValueError("'from' must not be after 'to'")
    return start, end


def calculate_percentage_change(current: int, previous: int) -> float:
    if previous == 0:
        return 0.0 if current == previous else 100.0
    return (current - previous) / previous * 100


class SummaryCalculator:
    """Aggregate a user's transactions for the dashboard cards and charts."""

    def __init__(self, db: DBSession, user_id: str, account_id: Optional[str] = None):
        self.db = db
        self.user_id = user_id
        self.account_id = account_id

    def _scoped(self, query, start: date, end: date):
        query = (
            query.join(Account, Transaction.account_id == Account.id)
            .filter(Account.user_id == self.user_id)
            .filter(Transaction.date >= start)
            .filter(Transaction.date <= end)
        )
        if self.account_id:
            query = query.filter(Transaction.account_id == self.account_id)
        return query

    def period_totals(self, start: date, end: date) -> dict:
        income = func.sum(case((Transaction.amount >= 0, Transaction.amount), else_=0))
        expenses = func.sum(case((Transaction.amount < 0, Transaction.amount), else_=0))
        remaining = func.sum(Transaction.amount)

        row = self._scoped(
            self.db.query(income, expenses, remaining).select_from(Transaction), start, end
        ).one()
        return {
            "income": int(row[0] or 0),
            "expenses": int(row[1] or 0),
            "remaining": int(row[2] or 0),
        }

    def top_categories(self, start: date, end: date) -> list[dict]:
        """Expense totals per category; everything past the top three becomes "Other"."""
        value = func.sum(func.abs(Transaction.amount))
        rows = (
            self._scoped(
                self.db.query(Category.name, value).select_from(Transaction), start, end
            )
            .join(Category, Transaction.category_id == Category.id)
            .filter(Transaction.amount < 0)
            .group_by(Category.name)
            .order_by(desc(value))
            .all()
        )

        categories = [{"name": name, "value": int(total or 0)} for name, total in rows]
        top = categories[:TOP_CATEGORIES]
        rest = categories[TOP_CATEGORIES:]
        if rest:
            top.append({"name": "Other", "value": sum(c["value"] for c in rest)})
        return top

    def daily_series(self, start: date, end: date) -> list[dict]:
        """Income and expenses per day, with zero rows for days without activity."""
        income = func.sum(case((Transaction.amount >= 0, Transaction.amount), else_=0))
        expenses = func.sum(case((Transaction.amount < 0, func.abs(Transaction.amount)), else_=0))
        rows = (
            self._scoped(
                self.db.query(Transaction.date, income, expenses).select_from(Transaction),
                start, end,
            )
            .group_by(Transaction.date)
            .order_by(Transaction.date)
            .all()
        )

        frame = pd.DataFrame(
            [(d, int(i or 0), int(e or 0)) for d, i, e in rows],
            columns=["date", "income", "expenses"],
        ).set_index("date")
        days = pd.date_range(start, end, freq="D").date
        frame = frame.reindex(days, fill_value=0)

        return [
            {"date": day, "income": int(r.income), "expenses": int(r.expenses)}
            for day, r in zip(frame.index, frame.itertuples(index=False))
        ]

    def calculate(self, start: date, end: date) -> dict:
        period_length = (end - start).days + 1
        previous_start = start - timedelta(days=period_length)
        previous_end = end - timedelta(days=period_length)

        current = self.period_totals(start, end)
        previous = self.period_totals(previous_start, previous_end)

        return {
            "remainingAmount": current["remaining"],
            "remainingChange": calculate_percentage_change(current["remaining"], previous["remaining"]),
            "incomeAmount": current["income"],
            "incomeChange": calculate_percentage_change(current["income"], previous["income"]),
            "expensesAmount": current["expenses"],
            "expensesChange": calculate_percentage_change(current["expenses"], previous["expenses"]),
            "categories": self.top_categories(start, end),
            "days": self.daily_series(start, end),
        }
