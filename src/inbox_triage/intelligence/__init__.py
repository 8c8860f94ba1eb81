"""Message analysis and automatic replies."""

from .analysis import AnalysisError, ContentAnalysisService
from .llm import LLMClient, LLMError, OllamaClient
from .responder import PENDING_BATCH_SIZE, AutoReplyReport, AutoReplyWorkflow

__all__ = [
    "AnalysisError",
    "AutoReplyReport",
    "AutoReplyWorkflow",
    "ContentAnalysisService",
    "LLMClient",
    "LLMError",
    "OllamaClient",
    "PENDING_BATCH_SIZE",
]
