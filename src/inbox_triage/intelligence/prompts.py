"""Prompt templates for message analysis and reply drafting."""

from __future__ import annotations

from textwrap import dedent

SENTIMENTS = ("positive", "negative", "neutral", "urgent")
CATEGORIES = ("inquiry", "complaint", "support", "sales", "general")

TONE_INSTRUCTIONS = {
    "professional": "Write in a professional and courteous tone.",
    "casual": "Write in a casual and friendly tone.",
    "friendly": "Write in a warm and friendly tone.",
    "formal": "Write in a formal and respectful tone.",
}


def build_analysis_prompt(sender: str, subject: str, body: str) -> str:
    """Compose a JSON-only classification prompt."""
    prompt = f"""
    You are an email analysis assistant. Classify the email below.
    Respond strictly with JSON using this schema:
    {{
      "sentiment": one of {", ".join(SENTIMENTS)},
      "category": one of {", ".join(CATEGORIES)}
    }}

    Do not include any additional keys or prose outside the JSON object.

    From: {sender or "(unknown sender)"}
    Subject: {subject or "(no subject)"}

    Email body:
    {body}
    """
    return dedent(prompt).strip()


def build_reply_prompt(sender: str, subject: str, body: str, tone: str) -> str:
    """Compose a prompt asking for a reply body in ``tone``."""
    instruction = TONE_INSTRUCTIONS.get(tone, TONE_INSTRUCTIONS["professional"])
    prompt = f"""
    You are an email assistant. Write a reply to the email below.
    {instruction} Keep the reply concise and helpful.
    Return only the reply body, without a subject line or signature.

    From: {sender or "(unknown sender)"}
    Subject: {subject or "(no subject)"}

    {body}
    """
    return dedent(prompt).strip()


__all__ = [
    "CATEGORIES",
    "SENTIMENTS",
    "TONE_INSTRUCTIONS",
    "build_analysis_prompt",
    "build_reply_prompt",
]
