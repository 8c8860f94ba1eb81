"""Ingestion pipeline components."""

from .parser import EmailParser
from .reconciler import EmailParserProtocol, FetchPipeline

__all__ = ["EmailParser", "EmailParserProtocol", "FetchPipeline"]
