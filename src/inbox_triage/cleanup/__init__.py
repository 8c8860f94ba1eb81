"""Category based mailbox cleanup."""

from .orchestrator import CleanupOrchestrator

__all__ = ["CleanupOrchestrator"]
