"""
Chat advice through an OpenAI-compatible completion endpoint (OpenRouter).
"""
import logging
from typing import Any, Dict, List, Optional

from openai import OpenAI, OpenAIError

from app.core.config import settings

logger = logging.getLogger(__name__)

MAX_CHAT_HISTORY = 8
MAX_MESSAGE_LENGTH = 2000

SYSTEM_PROMPT = (
    "You are Rocket Bucks AI, a fiduciary-quality financial coach. Provide concise and actionable "
    "guidance covering budgets, savings, debt payoff, investing, and bill negotiation. Use Markdown "
    "formatting with short headings, numbered steps, and bullet lists when helpful. Reference exact "
    "numbers from the financial snapshot or chat history and acknowledge when information is "
    "unavailable. Encourage healthy financial habits and note that users should double-check details "
    "before acting."
)


class AdvisorUnavailable(Exception):
    """The completion endpoint failed or returned nothing usable."""


def is_configured() -> bool:
    return bool(settings.OPENROUTER_API_KEY)


def normalize_history(conversation: Any) -> List[Dict[str, str]]:
    """Keep the last user/assistant turns with string content, trimmed for the prompt."""
    if not isinstance(conversation, list):
        return []

    valid = [
        entry
        for entry in conversation
        if isinstance(entry, dict)
        and isinstance(entry.get("content"), str)
        and entry.get("role") in ("user", "assistant", "ai")
    ]
    return [
        {
            "role": "user" if entry["role"] == "user" else "assistant",
            "content": entry["content"][:MAX_MESSAGE_LENGTH],
        }
        for entry in valid[-MAX_CHAT_HISTORY:]
    ]


def build_messages(message: str, context_summary: str, history: List[Dict[str, str]]) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {
            "role": "system",
            "content": (
                f"Financial snapshot:\n{context_summary}\n"
                "Only rely on these values unless the user provides newer numbers."
            ),
        },
        *history,
        {"role": "user", "content": message},
    ]


def extract_message_text(completion: Any) -> str:
    """
    Pull the reply text out of a completion, tolerating string content, a list
    of content parts, or a single part object.
    """
    choices = getattr(completion, "choices", None)
    if choices is None and isinstance(completion, dict):
        choices = completion.get("choices")
    if not choices:
        return ""

    first = choices[0]
    message = getattr(first, "message", None)
    if message is None and isinstance(first, dict):
        message = first.get("message")
    content = getattr(message, "content", None)
    if content is None and isinstance(message, dict):
        content = message.get("content")

    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and isinstance(part.get("text"), str):
                parts.append(part["text"])
            elif isinstance(getattr(part, "text", None), str):
                parts.append(part.text)
        return "".join(parts).strip()
    if isinstance(content, dict) and isinstance(content.get("text"), str):
        return content["text"]
    return ""


def _client() -> OpenAI:
    return OpenAI(base_url=settings.OPENROUTER_BASE_URL, api_key=settings.OPENROUTER_API_KEY)


def request_advice(
    message: str,
    context_summary: str,
    conversation: Optional[List[Any]] = None,
) -> str:
    """Ask the model for advice; raises AdvisorUnavailable on any upstream failure."""
    messages = build_messages(
        message.strip()[:MAX_MESSAGE_LENGTH],
        context_summary,
        normalize_history(conversation),
    )
    try:
        completion = _client().chat.completions.create(
            model=settings.OPENROUTER_MODEL,
            messages=messages,
            temperature=0.35,
            max_tokens=600,
            top_p=0.9,
            extra_headers={
                "HTTP-Referer": settings.OPENROUTER_APP_URL,
                "X-Title": "Rocket Bucks AI",
            },
        )
    except OpenAIError as e:
        logger.error(f"OpenRouter error: {str(e)}")
        raise AdvisorUnavailable("AI advisor is temporarily unavailable.") from e

    reply = extract_message_text(completion).strip()
    if not reply:
        logger.error("OpenRouter returned an empty message payload")
        raise AdvisorUnavailable("AI advisor returned an empty response.")
    return reply
