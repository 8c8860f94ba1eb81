"""Sentiment and category analysis with deterministic fallback."""

from __future__ import annotations

import json
import logging
import re

from ..core.interfaces import ContentAnalyzer
from ..core.models import ContentAnalysis
from .llm import LLMClient, LLMError
from .prompts import CATEGORIES, SENTIMENTS, build_analysis_prompt, build_reply_prompt

LOGGER = logging.getLogger(__name__)

_JSON_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)


class AnalysisError(RuntimeError):
    """Raised when no reply can be produced and fallback is disabled."""


class ContentAnalysisService(ContentAnalyzer):
    """Classify messages and draft replies using an optional LLM."""

    def __init__(
        self,
        llm_client: LLMClient | None,
        *,
        fallback_enabled: bool = True,
    ) -> None:
        """Initialise the service with an optional LLM client and fallback flag."""
        self._llm_client = llm_client
        self._fallback_enabled = fallback_enabled

    def analyze(self, sender: str, subject: str, body: str) -> ContentAnalysis:
        """Return sentiment and category; never raises for LLM faults."""
        if self._llm_client is None:
            return ContentAnalysis()
        prompt = build_analysis_prompt(sender, subject, body)
        try:
            raw_output = self._llm_client.generate(prompt)
            return _parse_analysis_output(raw_output)
        except (LLMError, ValueError) as exc:
            LOGGER.warning("LLM analysis failed for %r: %s", subject, exc)
            return ContentAnalysis()

    def draft_reply(self, sender: str, subject: str, body: str, tone: str) -> str:
        """Return a reply body in ``tone``."""
        reply: str | None = None
        if self._llm_client is not None:
            prompt = build_reply_prompt(sender, subject, body, tone)
            try:
                reply = self._llm_client.generate(prompt).strip()
            except LLMError as exc:
                LOGGER.warning("LLM drafting failed for %r: %s", subject, exc)

        if not reply and self._fallback_enabled:
            reply = _fallback_reply(sender, subject)
        if not reply:
            raise AnalysisError("Reply could not be generated")
        return reply


def _parse_analysis_output(raw: str) -> ContentAnalysis:
    match = _JSON_OBJECT_RE.search(raw)
    try:
        payload = json.loads(match.group(0) if match else raw)
    except json.JSONDecodeError as exc:
        raise ValueError("Analysis output was not valid JSON") from exc
    if not isinstance(payload, dict):
        raise ValueError("Analysis output must be a JSON object")

    sentiment = str(payload.get("sentiment") or "").strip().lower()
    category = str(payload.get("category") or "").strip().lower()
    return ContentAnalysis(
        sentiment=sentiment if sentiment in SENTIMENTS else "neutral",
        category=category if category in CATEGORIES else "general",
    )


def _fallback_reply(sender: str, subject: str) -> str:
    name_hint = sender.split("<")[0].strip().strip('"') if sender else ""
    if not name_hint or "@" in name_hint:
        name_hint = "there"
    topic = subject or "your message"
    lines = [
        f"Hi {name_hint},",
        "",
        f"Thanks for reaching out about {topic}.",
        "I have received your message and will get back to you shortly.",
        "",
        "Best regards",
    ]
    return "\n".join(lines)


__all__ = ["AnalysisError", "ContentAnalysisService"]
