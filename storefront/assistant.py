# storefront/assistant.py
import logging
import re

from langchain_core.messages import AIMessage, HumanMessage, SystemMessage
from langchain_openai import AzureChatOpenAI

from storefront.config import (
    AZURE_OPENAI_API_KEY,
    AZURE_OPENAI_DEPLOYMENT,
    AZURE_OPENAI_ENDPOINT,
    OPENAI_API_VERSION,
)

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = "You are a helpful e-commerce assistant for an online store."

BUDGET_PATTERN = re.compile(
    r"(?:under|below|less than|cheaper than|max(?:imum)?|up to|within)\s*(?:ksh|kes|usd)?\s*\$?\s*(\d[\d,]*(?:\.\d+)?)",
    re.I,
)

FILLER_WORDS = {
    "the", "and", "for", "with", "that", "this", "what", "which", "have", "has", "you", "your",
    "can", "could", "would", "should", "please", "show", "find", "want", "need", "looking",
    "look", "get", "buy", "some", "any", "one", "are", "there", "under", "below", "less", "than",
    "cheaper", "max", "maximum", "within", "about", "good", "best", "recommend", "me", "something",
    "from", "like", "how", "much", "does", "cost", "price", "budget", "hello", "hi", "hey",
}

_llm = None


def extract_budget(message: str):
    match = BUDGET_PATTERN.search(message or "")
    if not match:
        return None
    return float(match.group(1).replace(",", ""))


def extract_keywords(message: str) -> list:
    words = re.findall(r"[a-zA-Z][a-zA-Z0-9\-]+", (message or "").lower())
    keywords = [w for w in words if len(w) > 2 and w not in FILLER_WORDS]
    return list(dict.fromkeys(keywords))


def format_context(context: dict) -> str:
    return (
        f"User: {context.get('name') or 'Guest'}\n"
        f"Cart: {', '.join(context.get('cart') or []) or 'Empty'}\n"
        f"Last Order: {context.get('last_order_id') or 'None'}"
    )


def fallback_reply(message: str, context: dict, products) -> str:
    greeting = f"Hi {context['name']}!" if context.get("name") else "Hi!"
    if products:
        listing = "; ".join(f"{p.name} (${float(p.price):.2f})" for p in products)
        return f"{greeting} Here are some products that match what you asked for: {listing}."
    return (
        f"{greeting} I can't reach the AI service right now, but I can still help. "
        f'You asked: "{message}". For product info, try browsing categories or search. '
        "If you need specs, open the product page."
    )


def get_llm():
    """Azure chat model, or None when Azure OpenAI is not configured."""
    global _llm
    if not (AZURE_OPENAI_API_KEY and AZURE_OPENAI_ENDPOINT):
        return None
    if _llm is None:
        _llm = AzureChatOpenAI(
            azure_endpoint=AZURE_OPENAI_ENDPOINT,
            azure_deployment=AZURE_OPENAI_DEPLOYMENT,
            api_key=AZURE_OPENAI_API_KEY,
            api_version=OPENAI_API_VERSION,
            max_tokens=500,
            max_retries=2,
        )
    return _llm


def build_messages(message: str, context: dict, history, products) -> list:
    messages = [
        SystemMessage(content=SYSTEM_PROMPT),
        SystemMessage(content=f"Context:\n{format_context(context)}"),
    ]
    if products:
        catalog = "\n".join(f"- {p.name} (id {p.id}): ${float(p.price):.2f}" for p in products)
        messages.append(SystemMessage(content=f"Products matching the request:\n{catalog}"))
    for item in history:
        if item.role == "user":
            messages.append(HumanMessage(content=item.content))
        elif item.role == "assistant":
            messages.append(AIMessage(content=item.content))
    messages.append(HumanMessage(content=message))
    return messages


async def generate_reply(message: str, context: dict, history, products) -> str:
    llm = get_llm()
    if llm is None:
        return fallback_reply(message, context, products)
    try:
        response = await llm.ainvoke(build_messages(message, context, history, products))
        return response.content or fallback_reply(message, context, products)
    except Exception as e:
        logger.warning("Assistant model call failed, using fallback reply: %s", e)
        return fallback_reply(message, context, products)
