"""Tests for the content analysis service."""

from __future__ import annotations

import pytest

from inbox_triage.core.models import ContentAnalysis
from inbox_triage.intelligence.analysis import AnalysisError, ContentAnalysisService
from inbox_triage.intelligence.llm import LLMError


class StubLLM:
    """LLM stub returning a predetermined response."""

    def __init__(self, response: str) -> None:
        self.response = response
        self.provider_id = "stub-llm"
        self.last_prompt: str | None = None

    def generate(self, prompt: str) -> str:
        self.last_prompt = prompt
        return self.response


class FailingLLM:
    """LLM stub that always raises an error."""

    provider_id = "failing-llm"

    def generate(self, prompt: str) -> str:
        del prompt
        raise LLMError("failure")


def test_analyze_parses_json_wrapped_in_prose() -> None:
    llm = StubLLM('Sure! {"sentiment": "Urgent", "category": "support"} Hope it helps.')
    service = ContentAnalysisService(llm)

    analysis = service.analyze("bob@example.com", "Server down", "Nothing works")

    assert analysis == ContentAnalysis(sentiment="urgent", category="support")
    assert llm.last_prompt is not None
    assert "Server down" in llm.last_prompt


def test_analyze_replaces_unknown_labels_with_defaults() -> None:
    service = ContentAnalysisService(StubLLM('{"sentiment": "ecstatic", "category": "spam"}'))

    assert service.analyze("a", "b", "c") == ContentAnalysis()


@pytest.mark.parametrize("llm", [StubLLM("not json at all"), FailingLLM(), None])
def test_analyze_degrades_to_neutral_general(llm) -> None:
    analysis = ContentAnalysisService(llm).analyze("a", "b", "c")

    assert analysis.sentiment == "neutral"
    assert analysis.category == "general"


def test_draft_reply_uses_llm_text_and_tone() -> None:
    llm = StubLLM("  Thanks, we will look into it.  ")
    service = ContentAnalysisService(llm)

    reply = service.draft_reply("bob@example.com", "Question", "Hi", "formal")

    assert reply == "Thanks, we will look into it."
    assert "formal and respectful" in (llm.last_prompt or "")


def test_draft_reply_falls_back_when_llm_fails() -> None:
    service = ContentAnalysisService(FailingLLM(), fallback_enabled=True)

    reply = service.draft_reply('"Bob Smith" <bob@example.com>', "Invoice", "Hi", "casual")

    assert reply.startswith("Hi Bob Smith,")
    assert "Invoice" in reply


def test_draft_reply_without_fallback_raises() -> None:
    service = ContentAnalysisService(FailingLLM(), fallback_enabled=False)

    with pytest.raises(AnalysisError):
        service.draft_reply("bob@example.com", "Invoice", "Hi", "casual")
