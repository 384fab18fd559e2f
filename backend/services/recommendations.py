"""
Spending suggestions from the last 30 days of expenses.

One aggregate query picks the five payees the user spent the most with; the
text is built from fixed templates plus keyword hints on the payee name.

Author: Finance Dashboard Team
"""

from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from sqlalchemy import desc, func
from sqlalchemy.orm import Session as DBSession

from models import Account, Transaction
from services.normalizer import MILLIUNITS


WINDOW_DAYS = 30
TOP_PAYEES = 5

NO_SPENDING_MESSAGE = (
    "Keep up the great work! No significant spending patterns detected in the last 30 days."
)
HEADER_MESSAGE = "Here are some areas where you spent the most in the last 30 days:"
CLOSING_MESSAGE = "Reviewing these top spending areas might help you save!"
UNCATEGORIZED_PAYEE = "Uncategorized"

# (payee substrings, suggestion) checked in order against the lowercased payee
PAYEE_HINTS = [
    (("coffee", "starbucks"), "Making coffee/tea at home could save money."),
    (("amazon", "flipkart"), "Check if your recent online purchases were essential."),
    (("uber", "ola", "rapido"), "Could you use public transport, walk, or cycle more often?"),
    (("zomato", "swiggy"), "Ordering food frequently? Cooking at home can lead to significant savings."),
]


def format_inr(milliunits: int) -> str:
    """
    Format milliunits as Indian rupees with lakh/crore grouping.

    >>> format_inr(123456500)
    '₹1,23,456.50'
    """
    paise = int(
        (Decimal(abs(milliunits)) * 100 / MILLIUNITS).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    )
    rupees, fraction = divmod(paise, 100)

    digits = str(rupees)
    if len(digits) > 3:
        head, tail = digits[:-3], digits[-3:]
        groups = []
        while len(head) > 2:
            groups.insert(0, head[-2:])
            head = head[:-2]
        if head:
            groups.insert(0, head)
        digits = ",".join(groups + [tail])

    sign = "-" if milliunits < 0 else ""
    return f"{sign}₹{digits}.{fraction:02d}"


def hints_for_payee(payee: Optional[str]) -> list[str]:
    name = (payee or "").lower()
    return [
        suggestion
        for keywords, suggestion in PAYEE_HINTS
        if any(keyword in name for keyword in keywords)
    ]


def build_recommendations(spending_by_payee: list[tuple[Optional[str], int]]) -> list[str]:
    """
    Turn ``(payee, total_milliunits)`` rows, largest first, into suggestion lines.

    Duplicate lines are dropped while keeping first-seen order.
    """
    if not spending_by_payee:
        return [NO_SPENDING_MESSAGE]

    recommendations = [HEADER_MESSAGE]
    for payee, total in spending_by_payee:
        recommendations.append(
            f'Consider reviewing your spending with "{payee or UNCATEGORIZED_PAYEE}" '
            f"(Total: {format_inr(total)})."
        )
        recommendations.extend(hints_for_payee(payee))

    if len(spending_by_payee) >= 3:
        recommendations.append(CLOSING_MESSAGE)

    return list(dict.fromkeys(recommendations))


class RecommendationEngine:
    """Read-only recommendations for one user."""

    def __init__(self, db: DBSession, user_id: str):
        self.db = db
        self.user_id = user_id

    def top_payees(self, today: Optional[date] = None) -> list[tuple[Optional[str], int]]:
        end = today or date.today()
        start = end - timedelta(days=WINDOW_DAYS)
        total = func.sum(func.abs(Transaction.amount))

        rows = (
            self.db.query(Transaction.payee, total)
            .join(Account, Transaction.account_id == Account.id)
            .filter(Account.user_id == self.user_id)
            .filter(Transaction.date >= start)
            .filter(Transaction.date <= end)
            .filter(Transaction.amount <= 0)
            .group_by(Transaction.payee)
            .order_by(desc(total))
            .limit(TOP_PAYEES)
            .all()
        )
        return [(payee, int(amount or 0)) for payee, amount in rows]

    def generate(self, today: Optional[date] = None) -> list[str]:
        return build_recommendations(self.top_payees(today))
