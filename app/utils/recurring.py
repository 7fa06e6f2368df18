from __future__ import annotations

import re
import statistics
from dataclasses import asdict, dataclass
from datetime import date
from typing import Any, Dict, List, Mapping, Optional

from app.utils.amounts import normalize_amount
from app.utils.due_dates import next_due_date, parse_date

SUBSCRIPTION_KEYWORDS = ("subscription", "chatgpt", "cursor", "netflix", "spotify", "apple", "openai")
SUBSCRIPTION_AMOUNT_CEILING = 100

# (exclusive upper bound on the mean gap in days, frequency label)
FREQUENCY_THRESHOLDS = (
    (10, "weekly"),
    (20, "biweekly"),
    (45, "monthly"),
    (100, "quarterly"),
)

_NON_ALNUM = re.compile(r"[^a-z0-9]")


@dataclass
class RecurringCandidate:
    """A detected repeating charge, shaped like a ``recurring_transactions`` row."""

    user_id: Optional[str]
    account_id: Optional[str]
    name: str
    merchant_name: Optional[str]
    expected_amount: float
    average_amount: float
    frequency: str
    start_date: Optional[str]
    last_transaction_date: Optional[str]
    next_due_date: Optional[str]
    total_occurrences: int
    is_subscription: bool
    transaction_type: str = "expense"
    is_active: bool = True
    notes: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def merchant_key(tx: Mapping[str, Any]) -> str:
    merchant = (tx.get("merchant_name") or tx.get("name") or "").lower().strip()
    return _NON_ALNUM.sub("", merchant)


def classify_frequency(average_gap_days: float) -> str:
    for upper_bound, label in FREQUENCY_THRESHOLDS:
        if average_gap_days < upper_bound:
            return label
    return "yearly"


def looks_like_subscription(name: str, average_amount: float) -> bool:
    lowered = name.lower()
    if any(keyword in lowered for keyword in SUBSCRIPTION_KEYWORDS):
        return True
    return average_amount < SUBSCRIPTION_AMOUNT_CEILING


def detect_recurring_patterns(
    transactions: List[Mapping[str, Any]],
    today: Optional[date] = None,
) -> List[RecurringCandidate]:
    """
    Find merchants charged at least twice and describe each as a recurring charge.

    Only expense rows with a positive amount and a usable date take part.
    Rows are grouped on the normalized merchant (or description), and the mean
    gap between consecutive charges picks the frequency.
    """
    groups: Dict[str, List[Mapping[str, Any]]] = {}
    for tx in transactions:
        if tx.get("transaction_type") != "expense" or normalize_amount(tx.get("amount")) <= 0:
            continue
        if parse_date(tx.get("date")) is None:
            continue
        groups.setdefault(merchant_key(tx), []).append(tx)

    candidates: List[RecurringCandidate] = []
    for txs in groups.values():
        if len(txs) < 2:
            continue

        txs = sorted(txs, key=lambda t: parse_date(t["date"]))
        dates = [parse_date(t["date"]) for t in txs]
        amounts = [normalize_amount(t.get("amount")) for t in txs]

        average_amount = statistics.fmean(amounts)
        gaps = [(later - earlier).days for earlier, later in zip(dates, dates[1:])]
        frequency = classify_frequency(statistics.fmean(gaps))

        first = txs[0]
        name = first.get("merchant_name") or first.get("name") or ""
        due = next_due_date(dates[-1], frequency, today=today)

        candidates.append(
            RecurringCandidate(
                user_id=first.get("user_id"),
                account_id=first.get("account_id"),
                name=name,
                merchant_name=first.get("merchant_name") or None,
                expected_amount=amounts[-1],
                average_amount=average_amount,
                frequency=frequency,
                start_date=dates[0].isoformat(),
                last_transaction_date=dates[-1].isoformat(),
                next_due_date=due.isoformat() if due else None,
                total_occurrences=len(txs),
                is_subscription=looks_like_subscription(name, average_amount),
                notes=f"Auto-detected from {len(txs)} transactions",
            )
        )
    return candidates
