"""System prompts and knowledge-base context assembly for the response generator."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from chatbot.models import DocumentItem, PropertyRecord, QAItem, Role

FALLBACK_APOLOGY = "Sorry, I encountered an error while processing your request. Please try again."

BASE_SYSTEM_PROMPT = (
    "You are an AI assistant for a real estate business. Your goal is to provide helpful, accurate information "
    "about the business, its properties, and services. If you are asked about specific properties, share relevant "
    "information about them based on the property data provided. If you don't know the answer to a question, admit "
    "that you don't know rather than making up information. Keep your responses concise and professional, in a "
    "conversational, helpful tone."
)

GENERAL_GUIDELINES = (
    "Follow these guidelines:\n"
    "- Always be accurate and specific.\n"
    "- Never list more than 3 properties at a time; format each with price, location and key features.\n"
    "- Ask a clarifying question when the request is vague.\n"
    "- When a visitor shows interest in a property, ask for their name, email or phone to arrange a viewing."
)

IDENTITY_INSTRUCTIONS = (
    "This is a question about our agency. ONLY use the provided agency information to answer it. Do not make up "
    "information about the agency. If no such information is available, politely explain that you don't have that "
    "specific information."
)

LOW_CONFIDENCE_NOTE = (
    "The knowledge base below had no close match for this question; it is the agency's most important reference "
    "material. Use it only where it actually answers the question."
)

DEMO_PRODUCT_CONTEXT = (
    "You are the assistant on the Homebot marketing website, talking to a prospective customer (a real estate "
    "agency). Homebot gives agencies an AI chatbot for their website, a lead CRM, property listing management with "
    "CSV import, marketing automation and a chatbot that can be trained on their own FAQs, documents and website.\n"
    "Pricing (per month, billed monthly; 10% off when billed annually):\n"
    "- Starter: $99/month. AI chatbot for your website, basic CRM integration, email notifications, up to 10 "
    "active listings, 5/7 support.\n"
    "- Professional (Pro): $299/month. Everything in Starter plus the advanced AI agent, full CRM integration, 30 "
    "qualified leads per month, automated follow-ups, property matching, 24/7 support.\n"
    "- Enterprise: $599/month. Everything in Professional plus a social media AI agent, unlimited qualified leads, "
    "custom integrations and a dedicated account manager.\n"
    "Every plan starts with a free trial. Quote these prices exactly when asked."
)


def format_price(price: Any) -> str:
    """Listing prices are stored as plain numbers in euros."""
    if price is None or price == "":
        return "Price on request"
    if isinstance(price, str):
        if any(symbol in price for symbol in ("€", "$", "£")):
            return price
        cleaned = "".join(ch for ch in price if ch.isdigit() or ch in ".-")
        try:
            price = float(cleaned)
        except ValueError:
            return price
    try:
        return f"€{float(price):,.0f}"
    except (TypeError, ValueError):
        return f"€{price}"


def truncate_context(context: str, max_chars: int) -> str:
    if len(context) <= max_chars:
        return context
    return context[:max_chars] + "..."


def _property_block(index: int, record: PropertyRecord) -> str:
    lines = [f"Property {index}:", f"- Title: {record.title or 'N/A'}", f"- Price: {format_price(record.price)}"]
    lines.append(f"- Bedrooms: {record.bedrooms if record.bedrooms is not None else 'N/A'}")
    lines.append(f"- Bathrooms: {record.bathrooms if record.bathrooms is not None else 'N/A'}")
    if record.living_area:
        lines.append(f"- Living Area: {record.living_area:g} m2")
    if record.plot_area:
        lines.append(f"- Plot Area: {record.plot_area:g} m2")
    if record.location:
        lines.append(f"- Location: {record.location}")
    if record.has_pool:
        lines.append("- Pool: yes")
    if record.description:
        lines.append(f"- Description: {record.description}")
    lines.append(f"- Link: {record.url or f'/properties/{record.id}'}")
    return "\n".join(lines)


def build_knowledge_context(
    qa: Sequence[QAItem],
    documents: Sequence[DocumentItem],
    properties: Sequence[PropertyRecord],
    *,
    max_chars: int,
) -> str:
    """Labelled Q&A, document and listing sections, truncated to `max_chars`."""
    sections: List[str] = []
    if qa:
        body = "\n\n".join(f"Q: {item.question}\nA: {item.answer}" for item in qa)
        sections.append(f"### Q&A CONTENT ###\n{body}")
    if documents:
        body = "\n\n".join(item.text for item in documents)
        sections.append(f"### DOCUMENT CONTENT ###\n{body}")
    if properties:
        body = "\n\n".join(_property_block(i, rec) for i, rec in enumerate(properties, start=1))
        sections.append(f"### PROPERTY LISTINGS ###\n{body}")
    if not sections:
        return ""
    return truncate_context("\n\n".join(sections), max_chars)


def build_system_prompt(
    knowledge: str,
    *,
    demo: bool = False,
    identity_question: bool = False,
    low_confidence: bool = False,
    safety_reminder: Optional[str] = None,
) -> str:
    if demo:
        parts = [DEMO_PRODUCT_CONTEXT]
    else:
        parts = [BASE_SYSTEM_PROMPT]
        parts.append(IDENTITY_INSTRUCTIONS if identity_question else GENERAL_GUIDELINES)
        if knowledge:
            if low_confidence:
                parts.append(LOW_CONFIDENCE_NOTE)
            parts.append(
                "Use the following knowledge base content to answer questions about the business, its services, "
                f"policies and listings:\n\n{knowledge}"
            )
    if safety_reminder:
        parts.append(safety_reminder)
    return "\n\n".join(parts)


def history_messages(prior_turns: Sequence[Dict[str, Any]], max_history: int) -> List[Dict[str, str]]:
    """Prior turns oldest to newest as chat-completion messages, without the welcome message."""
    turns: List[Dict[str, str]] = []
    for turn in prior_turns or []:
        try:
            role = Role.parse(turn.get("role"))
        except ValueError:
            continue
        content = str(turn.get("content") or "").strip()
        if not content:
            continue
        turns.append({"role": "user" if role is Role.USER else "assistant", "content": content})
    # A conversation can only open with a bot message when it is the widget's welcome.
    if turns and turns[0]["role"] == "assistant":
        turns = turns[1:]
    if max_history > 0:
        turns = turns[-max_history:]
    return turns


def build_chat_messages(
    system_prompt: str,
    prior_turns: Sequence[Dict[str, Any]],
    message: str,
    *,
    max_history: int,
) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": system_prompt},
        *history_messages(prior_turns, max_history),
        {"role": "user", "content": message},
    ]
