from typing import Any, List, Optional

from pydantic import BaseModel


class ChatRequest(BaseModel):
    message: Optional[str] = None
    # Raw history entries; malformed ones are dropped rather than rejected
    conversation: Optional[List[Any]] = None


class ChatContext(BaseModel):
    netWorth: float
    totalAssets: float
    totalLiabilities: float
    monthlySpending: float
    monthlyIncome: float
    spendingChange: float
    recurringTotal: float
    generatedAt: str


class ChatResponse(BaseModel):
    message: str
    model: str
    context: ChatContext
    context_summary: str
