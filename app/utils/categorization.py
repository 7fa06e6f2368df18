"""
Keyword based transaction categorization.

Rules are evaluated top to bottom and the first rule with a keyword contained
in the lower-cased "description merchant" text wins, so ORDER MATTERS: more
specific patterns come first (grocery chains before the generic restaurant
words, card-payment phrases before generic transfers).
"""
from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Tuple

UNCATEGORIZED = "Uncategorized"
INCOME = "Income"
TRANSFER = "Transfer"

CategoryRule = Tuple[Tuple[str, ...], str]

CATEGORY_RULES: Tuple[CategoryRule, ...] = (
    # Credits and refunds
    (("credit", "refund", "cashback", "reward"), INCOME),

    # Entertainment & streaming
    (("netflix", "hulu", "disney", "hbo", "peacock", "paramount", "showtime", "spotify",
      "apple music", "youtube premium", "twitch"), "Entertainment"),
    (("amc", "regal", "cinemark", "movie", "cinema"), "Entertainment"),
    (("entertainment", "streaming"), "Entertainment"),

    # Food & dining, grocery stores before the generic restaurant words
    (("uber eats", "doordash", "grubhub", "postmates", "seamless"), "Food and Drink"),
    (("whole foods", "trader joe", "safeway", "kroger", "publix", "albertsons", "heb",
      "wegmans", "aldi", "costco", "grocery", "supermarket", "market", "7-eleven",
      "7 eleven", "7eleven", "cloud 9 smoke"), "Groceries"),
    (("mcdonalds", "burger king", "taco bell", "chipotle", "five guys", "raising cane",
      "starbucks", "dunkin", "subway", "panera", "chick-fil-a", "shake shack", "in-n-out",
      "popeyes", "kfc", "wendys", "cooks & soldiers", "cooks and soldiers",
      "buffalo wild wings", "buffalo wild wngs", "bww"), "Restaurants"),
    (("picowrap", "twisted branch tea", "twisted branch", "twisted branch tea b"), "Restaurants"),
    # no "pub" here, it matches "publix"
    (("restaurant", "cafe", "coffee", "diner", "bistro", "grill", "pizza", "sushi", "bar"), "Restaurants"),
    (("dining", "food", "meal"), "Food and Drink"),

    # Transportation
    (("uber", "lyft", "taxi", "cab", "ride"), "Transportation"),
    # no "mobil" here, it matches "mobile payment"
    (("shell", "chevron", "exxon", "bp", "gas station", "gasoline", "fuel", "petrol"), "Gas Stations"),
    (("parking", "toll"), "Transportation"),
    (("transit", "metro", "bus", "train", "subway", "rail"), "Transportation"),

    # Travel
    (("travel", "airline", "airways", "flight", "united", "american airlines", "delta",
      "southwest", "jetblue"), "Travel"),
    (("airbnb", "hotel", "motel", "marriott", "hilton", "hyatt", "ihg", "expedia", "booking"), "Hotels"),

    # Shopping
    (("amazon", "ebay", "etsy", "target", "walmart", "best buy", "apple store", "nike", "adidas"), "Shopping"),
    (("shop", "store", "retail"), "Shopping"),

    # Technology & software
    (("cursor", "github", "openai", "chatgpt", "adobe", "microsoft", "google", "aws", "azure",
      "digitalocean", "heroku", "vercel", "netlify"), "Service"),
    (("software", "saas", "app", "digital"), "Service"),

    # Recreation & sports
    (("golf", "gym", "fitness", "sport", "athletic", "workout"), "Recreation"),
    (("game", "gaming", "steam", "playstation", "xbox", "nintendo"), "Recreation"),

    # Healthcare
    (("cvs", "walgreens", "rite aid", "pharmacy", "drug", "prescription"), "Pharmacy"),
    (("hospital", "clinic", "medical", "doctor", "dentist", "dental", "physician",
      "healthcare", "health"), "Healthcare"),

    # Bills & utilities
    (("at&t", "verizon", "t-mobile", "sprint", "comcast", "xfinity", "spectrum", "cox",
      "directv", "dish"), "Bills & Utilities"),
    (("electric", "electricity", "gas", "water", "power", "energy", "utility", "utilities"), "Utilities"),
    (("internet", "cable", "phone", "mobile", "wireless"), "Bills & Utilities"),

    # Professional services
    (("insurance", "geico", "progressive", "state farm"), "Insurance"),
    (("lawyer", "attorney", "legal", "tax", "accountant", "cpa", "negotiate", "negotiation",
      "rkt money", "rocket money"), "Service"),

    # Education
    (("tuition", "school", "college", "university", "coursera", "udemy", "education"), "Education"),

    # Banking & transfers, card payments first
    (("mobile payment - thank you", "payment thank you-mobile", "payment thank you mobile",
      "mobile payment thank you", "mobile payment"), TRANSFER),
    (("ach pmt", "ach payment", "ach transfer"), TRANSFER),
    (("american express ach", "amex ach", "chase ach", "discover ach", "capital one ach",
      "citibank ach"), TRANSFER),
    (("payment to chase card", "payment to american express", "payment to amex",
      "payment to discover", "payment to capital one"), TRANSFER),
    (("card ending in",), TRANSFER),
    (("zelle", "venmo", "paypal", "cash app", "transfer"), TRANSFER),
    (("interest charge", "late fee", "overdraft", "atm fee", "bank fee", "service charge",
      "annual fee"), "Bank Fees"),
    (("interest payment", "dividend", "capital gain", "investment"), "Investments"),

    # Very generic payments, checked last
    (("payment to", "payment from"), TRANSFER),
)

CATEGORY_ICONS: Dict[str, str] = {
    "Food and Drink": "🍽️",
    "Restaurants": "🍴",
    "Groceries": "🛒",
    "Transportation": "🚗",
    "Gas Stations": "⛽",
    "Shopping": "🛍️",
    "Home": "🏠",
    "Entertainment": "🎬",
    "Hotels": "🏨",
    "Travel": "✈️",
    "Pharmacy": "💊",
    "Healthcare": "🏥",
    "Bills & Utilities": "📋",
    "Utilities": "💡",
    "Insurance": "🛡️",
    "Services": "🔧",
    "Service": "🔧",
    "Education": "📚",
    "Personal Care": "💇",
    "Gifts & Donations": "🎁",
    "Transfer": "💸",
    "Bank Fees": "🏦",
    "Investments": "📈",
    "Income": "💰",
    "Shops": "🛍️",
    "Recreation": "🎮",
    "Supermarkets": "🏪",
    "Auto & Transport": "🚗",
    "Dining & Drinks": "🍽️",
    "Health & Wellness": "🏋️",
    "Travel & Vacation": "✈️",
    "Fees": "💳",
    UNCATEGORIZED: "❓",
}


def classify(description: Optional[str], merchant: Optional[str] = None) -> str:
    """Map a transaction description (and optional merchant) to a category label."""
    search_text = f"{description or ''} {merchant or ''}".lower()

    for keywords, category in CATEGORY_RULES:
        if any(keyword in search_text for keyword in keywords):
            return category
    return UNCATEGORIZED


def category_display(category_name: str) -> Dict[str, str]:
    return {
        "name": category_name,
        "icon": CATEGORY_ICONS.get(category_name, CATEGORY_ICONS[UNCATEGORIZED]),
    }


def category_name(tx: Mapping[str, Any]) -> str:
    """Effective category: user override, then provider category, then Uncategorized."""
    return tx.get("user_category_name") or tx.get("plaid_primary_category") or UNCATEGORIZED


def plan_auto_categorization(
    transactions: List[Mapping[str, Any]],
) -> Tuple[List[Dict[str, str]], Dict[str, int]]:
    """
    Decide which stored transactions get a new ``user_category_name``.

    Uncategorized rows with no meaningful provider category are assigned a
    category; rows whose user category disagrees with the classifier are
    re-assigned. Returns the updates and the new/recategorized counts.
    """
    updates: List[Dict[str, str]] = []
    categorized = 0
    recategorized = 0

    for tx in transactions:
        category = classify(tx.get("name"), tx.get("merchant_name"))
        if category == UNCATEGORIZED:
            continue

        user_category = tx.get("user_category_name")
        if not user_category:
            provider_category = tx.get("plaid_primary_category")
            if provider_category and provider_category.lower() != UNCATEGORIZED.lower():
                continue
            updates.append({"transaction_id": tx["transaction_id"], "user_category_name": category})
            categorized += 1
        elif user_category != category:
            updates.append({"transaction_id": tx["transaction_id"], "user_category_name": category})
            recategorized += 1

    return updates, {"categorized": categorized, "recategorized": recategorized}
