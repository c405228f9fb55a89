from __future__ import annotations

from typing import Dict

from inbox_sorter.models import TAXONOMY, Category, NormalizedMessage

SYSTEM_PROMPT = "You are an expert email analyst. Always respond with valid JSON only."

MAX_BODY_CHARS = 2000

# Per-category heuristics shown to the model.
CATEGORY_GUIDE: Dict[Category, str] = {
    Category.PERSONAL: "Family, friends and private matters written by a person, not a system.",
    Category.WORK: "Meetings, projects, clients, colleagues and other job duties.",
    Category.PROMOTIONAL: "Marketing, newsletters, sales, discounts; usually has an unsubscribe link.",
    Category.SOCIAL: "Social networks and communities: LinkedIn, Facebook, X, Reddit, Discord, Meetup.",
    Category.NOTIFICATION: "Automated notices: security alerts, shipping, password resets, system updates.",
    Category.FINANCE: "Banking, invoices, receipts, payments, taxes, insurance, investments.",
    Category.CAREER: "Job applications, recruiters, interviews, consulting and career opportunities.",
    Category.URGENT: "Anything demanding action soon: deadlines, emergencies, explicit follow-up requests.",
}


def build_prompt(message: NormalizedMessage) -> str:
    """Single structured prompt; the answer must be one JSON object."""
    categories = "\n".join(
        f'{i}. "{category.value}" - {CATEGORY_GUIDE[category]}' for i, category in enumerate(TAXONOMY, start=1)
    )
    body = (message.body_text or message.snippet or "")[:MAX_BODY_CHARS]

    return f"""Classify the email below into exactly one category.

EMAIL:
Subject: {message.subject or "(no subject)"}
From: {message.from_email or "(unknown sender)"}
Body:
{body}

CATEGORIES (choose EXACTLY ONE, spelled exactly as given):
{categories}

CONFIDENCE:
- 0.8 to 1.0 when the category is clear
- 0.5 to 0.8 when the email could fit more than one category

RESPONSE FORMAT (JSON ONLY, no markdown, no extra text):
{{
  "category": "one of the categories above",
  "confidence": 0.85,
  "sentiment": 0.2,
  "needsFollowUp": true,
  "followUpSuggestion": "short suggested next step",
  "suggestedResponse": "short reply draft, or empty string",
  "priority": "high | medium | low",
  "reasoning": "one sentence explaining the decision"
}}"""
