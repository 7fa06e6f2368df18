import logging
from datetime import date, timedelta

from fastapi import APIRouter, Depends, HTTPException

from app.core.config import settings
from app.core.security import get_current_user_id
from app.db import dynamo
from app.models.chat import ChatContext, ChatRequest, ChatResponse
from app.utils import ai_advisor
from app.utils.amounts import normalize_amount
from app.utils.snapshot import SnapshotBuilder, summarize_snapshot

router = APIRouter()
logger = logging.getLogger(__name__)

CONTEXT_TRANSACTION_DAYS = 60
CONTEXT_TRANSACTION_LIMIT = 600
CONTEXT_RECURRING_LIMIT = 20


def _load_context_rows(user_id: str):
    accounts = dynamo.get_accounts_for_user(user_id)

    recurring = dynamo.get_recurring_for_user(user_id)
    recurring.sort(key=lambda row: normalize_amount(row.get("expected_amount")), reverse=True)

    start_date = (date.today() - timedelta(days=CONTEXT_TRANSACTION_DAYS)).isoformat()
    transactions = dynamo.get_transactions_for_user(user_id, start_date=start_date)

    return accounts, recurring[:CONTEXT_RECURRING_LIMIT], transactions[:CONTEXT_TRANSACTION_LIMIT]


@router.post("/chat", response_model=ChatResponse)
def chat(body: ChatRequest, user_id: str = Depends(get_current_user_id)):
    if not ai_advisor.is_configured():
        raise HTTPException(status_code=503, detail="AI advisor is not configured. Please try again later.")

    message = (body.message or "").strip()
    if not message:
        raise HTTPException(status_code=400, detail="Message is required")

    accounts, recurring, transactions = _load_context_rows(user_id)
    snapshot = SnapshotBuilder().build(accounts, recurring, transactions)
    context_summary = summarize_snapshot(snapshot)

    try:
        reply = ai_advisor.request_advice(message, context_summary, body.conversation)
    except ai_advisor.AdvisorUnavailable as e:
        raise HTTPException(status_code=502, detail=str(e))

    logger.info(f"AI advice generated for user: {user_id}")
    return ChatResponse(
        message=reply,
        model=settings.OPENROUTER_MODEL,
        context=ChatContext(
            netWorth=snapshot.totals.net_worth,
            totalAssets=snapshot.totals.total_assets,
            totalLiabilities=snapshot.totals.total_liabilities,
            monthlySpending=snapshot.spending.total_spending_30,
            monthlyIncome=snapshot.spending.total_income_30,
            spendingChange=snapshot.spending.spending_change,
            recurringTotal=snapshot.recurring.monthly_recurring,
            generatedAt=snapshot.generated_at,
        ),
        context_summary=context_summary,
    )
