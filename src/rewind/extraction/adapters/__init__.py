"""Interchangeable guest extraction backends."""

from .base import ExtractionAdapter
from .heuristic import HeuristicAdapter
from .llm import LLMAdapter
from .ner import NERAdapter

__all__ = [
    "ExtractionAdapter",
    "HeuristicAdapter",
    "LLMAdapter",
    "NERAdapter",
]
