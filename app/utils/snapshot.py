from __future__ import annotations

import math
import re
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional

from app.utils.amounts import format_currency, normalize_amount
from app.utils.categorization import INCOME, TRANSFER, category_name
from app.utils.due_dates import parse_date

LIABILITY_ACCOUNT_TYPES = {"credit", "loan", "mortgage", "liability", "other liability"}

_CARD_ISSUERS = "american express|amex|chase|discover|capital one|citibank"
CARD_PAYMENT_PATTERNS = (
    re.compile(rf"payment.*({_CARD_ISSUERS}|card)", re.IGNORECASE),
    re.compile(rf"({_CARD_ISSUERS}).*payment", re.IGNORECASE),
    re.compile(r"ach.*(payment|transfer)", re.IGNORECASE),
    re.compile(r"payment.*thank you", re.IGNORECASE),
    re.compile(r"online transfer", re.IGNORECASE),
    re.compile(r"zelle|venmo|paypal|cash app", re.IGNORECASE),
)


@dataclass
class Totals:
    total_assets: float = 0.0
    total_liabilities: float = 0.0
    net_worth: float = 0.0
    liquid_cash: float = 0.0
    invested: float = 0.0


@dataclass
class Spending:
    total_spending_30: float = 0.0
    prev_spending_30: float = 0.0
    spending_change: float = 0.0
    average_daily: float = 0.0
    total_income_30: float = 0.0
    net_cash_flow_30: float = 0.0
    top_categories: List[Dict[str, Any]] = field(default_factory=list)
    large_purchases: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class RecurringSummary:
    subscription_count: int = 0
    monthly_recurring: float = 0.0
    upcoming_charges: List[Dict[str, Any]] = field(default_factory=list)
    largest_charges: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class FinancialSnapshot:
    """Aggregated view of a user's finances, ready to be summarized for a prompt."""

    totals: Totals = field(default_factory=Totals)
    spending: Spending = field(default_factory=Spending)
    recurring: RecurringSummary = field(default_factory=RecurringSummary)
    top_accounts: List[Dict[str, Any]] = field(default_factory=list)
    insights: List[str] = field(default_factory=list)
    generated_at: str = ""


def is_card_payment(tx: Mapping[str, Any]) -> bool:
    full_name = f"{(tx.get('name') or '').lower()} {(tx.get('merchant_name') or '').lower()}"
    return any(pattern.search(full_name) for pattern in CARD_PAYMENT_PATTERNS)


def _current_balance(account: Mapping[str, Any]) -> float:
    value = account.get("balance_current")
    if value is None:
        value = account.get("balance_available")
    return normalize_amount(value)


def _available_balance(account: Mapping[str, Any]) -> float:
    value = account.get("balance_available")
    if value is None:
        value = account.get("balance_current")
    return normalize_amount(value)


class SnapshotBuilder:
    """
    Builds a FinancialSnapshot from rows already fetched from the datastore.

    Accounts feed the balance totals, recurring rows the bill summary and a
    60 day transaction window the spending/income figures. Nothing here talks
    to the datastore.
    """

    def __init__(
        self,
        window_days: int = 30,
        top_category_count: int = 4,
        large_purchase_count: int = 3,
        recurring_list_count: int = 5,
        top_account_count: int = 5,
        change_threshold: float = 0.1,
    ) -> None:
        self._window_days = window_days
        self._top_category_count = top_category_count
        self._large_purchase_count = large_purchase_count
        self._recurring_list_count = recurring_list_count
        self._top_account_count = top_account_count
        self._change_threshold = change_threshold

    def account_totals(self, accounts: List[Mapping[str, Any]]) -> Totals:
        totals = Totals()
        for account in accounts:
            account_type = (account.get("type") or "").lower()
            current = _current_balance(account)

            if account_type in LIABILITY_ACCOUNT_TYPES:
                totals.total_liabilities += abs(current)
                continue

            totals.total_assets += current
            if account_type == "depository":
                totals.liquid_cash += _available_balance(account)
            if account_type == "investment":
                totals.invested += current

        totals.net_worth = totals.total_assets - totals.total_liabilities
        return totals

    def top_accounts(self, accounts: List[Mapping[str, Any]]) -> List[Dict[str, Any]]:
        ranked = [
            {
                "name": account.get("name"),
                "institution": account.get("institution_name"),
                "type": account.get("type"),
                "balance": _current_balance(account),
            }
            for account in accounts
        ]
        ranked.sort(key=lambda item: item["balance"], reverse=True)
        return ranked[: self._top_account_count]

    @staticmethod
    def is_expense(tx: Mapping[str, Any]) -> bool:
        category = category_name(tx)
        return (
            tx.get("transaction_type") == "expense"
            and normalize_amount(tx.get("amount")) > 0
            and bool(tx.get("date"))
            and not tx.get("is_transfer")
            and not is_card_payment(tx)
            and category != INCOME
            and category != TRANSFER
        )

    @staticmethod
    def is_income(tx: Mapping[str, Any]) -> bool:
        # Only the category label counts here, transaction_type is not consulted
        return category_name(tx) == INCOME and bool(tx.get("date"))

    def spending(self, transactions: List[Mapping[str, Any]], today: date) -> Spending:
        window_start = today - timedelta(days=self._window_days)
        prior_start = today - timedelta(days=self._window_days * 2)

        def in_window(tx: Mapping[str, Any]) -> bool:
            tx_date = parse_date(tx.get("date"))
            return tx_date is not None and tx_date > window_start

        def in_prior_window(tx: Mapping[str, Any]) -> bool:
            tx_date = parse_date(tx.get("date"))
            return tx_date is not None and prior_start < tx_date <= window_start

        expenses = [tx for tx in transactions if self.is_expense(tx)]
        expenses_last = [tx for tx in expenses if in_window(tx)]
        expenses_prior = [tx for tx in expenses if in_prior_window(tx)]
        incomes_last = [tx for tx in transactions if self.is_income(tx) and in_window(tx)]

        result = Spending()
        result.total_spending_30 = sum(normalize_amount(tx.get("amount")) for tx in expenses_last)
        result.prev_spending_30 = sum(normalize_amount(tx.get("amount")) for tx in expenses_prior)
        result.spending_change = result.total_spending_30 - result.prev_spending_30
        result.average_daily = (
            result.total_spending_30 / self._window_days if result.total_spending_30 > 0 else 0.0
        )
        result.total_income_30 = sum(abs(normalize_amount(tx.get("amount"))) for tx in incomes_last)
        result.net_cash_flow_30 = result.total_income_30 - result.total_spending_30

        category_totals: Dict[str, float] = defaultdict(float)
        for tx in expenses_last:
            category_totals[category_name(tx)] += normalize_amount(tx.get("amount"))

        top = sorted(category_totals.items(), key=lambda item: item[1], reverse=True)
        result.top_categories = [
            {
                "name": name,
                "amount": amount,
                "percent": (
                    math.floor(amount / result.total_spending_30 * 100 + 0.5)
                    if result.total_spending_30 > 0
                    else 0
                ),
            }
            for name, amount in top[: self._top_category_count]
        ]

        largest = sorted(expenses_last, key=lambda tx: normalize_amount(tx.get("amount")), reverse=True)
        result.large_purchases = [
            {
                "name": tx.get("merchant_name") or tx.get("name") or "Transaction",
                "amount": normalize_amount(tx.get("amount")),
                "date": tx.get("date"),
                "category": tx.get("plaid_primary_category") or "General",
            }
            for tx in largest[: self._large_purchase_count]
        ]
        return result

    def recurring_summary(self, recurring: List[Mapping[str, Any]]) -> RecurringSummary:
        expense_recurring = [item for item in recurring if item.get("transaction_type") == "expense"]

        summary = RecurringSummary()
        summary.subscription_count = len(expense_recurring)
        summary.monthly_recurring = sum(
            normalize_amount(item.get("expected_amount")) for item in expense_recurring
        )

        upcoming = sorted(
            (item for item in expense_recurring if item.get("next_due_date")),
            key=lambda item: parse_date(item["next_due_date"]) or date.max,
        )
        summary.upcoming_charges = [
            {
                "name": item.get("name"),
                "amount": normalize_amount(item.get("expected_amount")),
                "frequency": item.get("frequency") or "monthly",
                "next_due_date": item.get("next_due_date"),
            }
            for item in upcoming[: self._recurring_list_count]
        ]

        largest = sorted(
            expense_recurring,
            key=lambda item: normalize_amount(item.get("expected_amount")),
            reverse=True,
        )
        summary.largest_charges = [
            {
                "name": item.get("name"),
                "amount": normalize_amount(item.get("expected_amount")),
                "frequency": item.get("frequency") or "monthly",
                "is_subscription": bool(item.get("is_subscription")),
            }
            for item in largest[: self._recurring_list_count]
        ]
        return summary

    def insights(self, spending: Spending, recurring: RecurringSummary) -> List[str]:
        insights: List[str] = []
        prior = spending.prev_spending_30
        if prior > 0 and abs(spending.spending_change) > prior * self._change_threshold:
            change_percent = spending.spending_change / prior * 100
            direction = "up" if change_percent > 0 else "down"
            insights.append(f"Spending is {direction} {abs(change_percent):.1f}% vs the prior 30 days.")
        if recurring.subscription_count > 0 and spending.total_spending_30 > 0:
            recurring_percent = recurring.monthly_recurring / spending.total_spending_30 * 100
            insights.append(f"Recurring charges represent {recurring_percent:.1f}% of monthly spend.")
        return insights

    def build(
        self,
        accounts: List[Mapping[str, Any]],
        recurring: List[Mapping[str, Any]],
        transactions: List[Mapping[str, Any]],
        now: Optional[datetime] = None,
    ) -> FinancialSnapshot:
        now = now or datetime.now(timezone.utc)
        spending = self.spending(transactions, now.date())
        recurring_summary = self.recurring_summary(recurring)

        return FinancialSnapshot(
            totals=self.account_totals(accounts),
            spending=spending,
            recurring=recurring_summary,
            top_accounts=self.top_accounts(accounts),
            insights=self.insights(spending, recurring_summary),
            generated_at=now.isoformat(),
        )


def summarize_snapshot(snapshot: Optional[FinancialSnapshot]) -> str:
    """Render the snapshot as the plain-text block injected into the chat prompt."""
    if snapshot is None:
        return "No financial data is available yet."

    totals, spending, recurring = snapshot.totals, snapshot.spending, snapshot.recurring
    lines = [
        f"Net worth {format_currency(totals.net_worth)} = assets {format_currency(totals.total_assets)} "
        f"minus liabilities {format_currency(totals.total_liabilities)}.",
        f"Liquid cash {format_currency(totals.liquid_cash)} | "
        f"Invested assets {format_currency(totals.invested)}.",
        f"30-day spending {format_currency(spending.total_spending_30)} "
        f"({format_currency(spending.spending_change, include_sign=True)} vs prior 30 days). "
        f"Avg daily spend {format_currency(spending.average_daily, decimals=2)}.",
        f"30-day income {format_currency(spending.total_income_30)} | "
        f"Net cash flow {format_currency(spending.net_cash_flow_30, include_sign=True)}.",
    ]

    if spending.top_categories:
        category_text = "; ".join(
            f"{cat['name']}: {format_currency(cat['amount'])} ({cat['percent'] or 0}% of spend)"
            for cat in spending.top_categories
        )
        lines.append(f"Top categories last 30 days: {category_text}.")
    else:
        lines.append("Top categories last 30 days: no categorized spending recorded.")

    if spending.large_purchases:
        purchases_text = "; ".join(
            f"{tx['name']} {format_currency(tx['amount'])} on {tx['date']}"
            for tx in spending.large_purchases
        )
        lines.append(f"Largest recent purchases: {purchases_text}.")

    if recurring.subscription_count > 0:
        lines.append(
            f"Recurring/subscription expenses: {recurring.subscription_count} active, "
            f"about {format_currency(recurring.monthly_recurring)} per month."
        )

    if recurring.upcoming_charges:
        upcoming_text = "; ".join(
            f"{charge['name']} {format_currency(charge['amount'])} due {charge['next_due_date'] or 'soon'}"
            for charge in recurring.upcoming_charges
        )
        lines.append(f"Upcoming bills: {upcoming_text}.")

    if snapshot.top_accounts:
        accounts_text = "; ".join(
            f"{account['name'] or account['institution'] or 'Account'} "
            f"({account['type'] or 'account'}): {format_currency(account['balance'])}"
            for account in snapshot.top_accounts
        )
        lines.append(f"Key accounts: {accounts_text}.")

    if snapshot.insights:
        lines.append(f"Insights: {' | '.join(snapshot.insights)}")

    return "\n".join(lines)
