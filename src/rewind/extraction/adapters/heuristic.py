"""Local regex heuristics: zero cost, no external dependency."""

from __future__ import annotations

import re

from rewind.extraction.models import ExtractionMethod, ExtractionRequest, Guest
from rewind.extraction.parsing import dedupe_guests

from .base import ExtractionAdapter, context_window

HEURISTIC_CONFIDENCE = 0.6

# Capitalized two-token name; cue words around it are matched case-insensitively.
_NAME = r"([A-Z][a-z]+ [A-Z][a-z]+)"

GUEST_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\b(?i:with|featuring|guest|interview with|joined by)\s+" + _NAME + r"\b"),
    re.compile(r"\b(?i:comedian|actor|author|host)\s+" + _NAME + r"\b"),
    re.compile(_NAME + r"\s+(?i:joins us|stops by|is here)\b"),
    re.compile(r"\b(?i:today|this week),?\s+" + _NAME + r"\b"),
)

_VALID_NAME = re.compile(r"^[A-Z][a-z]+ [A-Z]")


def is_valid_person_name(name: str) -> bool:
    trimmed = name.strip()
    return len(trimmed) >= 3 and len(trimmed.split(" ")) >= 2 and bool(_VALID_NAME.match(trimmed))


def find_guest_names(text: str) -> list[tuple[int, str]]:
    """Return ``(position, name)`` for every template match, in text order."""
    matches: list[tuple[int, str]] = []
    for pattern in GUEST_PATTERNS:
        for match in pattern.finditer(text):
            name = match.group(1)
            if is_valid_person_name(name):
                matches.append((match.start(1), name))
    return sorted(matches)


class HeuristicAdapter(ExtractionAdapter):
    """Pattern matching against fixed linguistic templates. Zero matches is still a success."""

    method = ExtractionMethod.heuristic

    def _extract(self, request: ExtractionRequest) -> tuple[list[Guest], float]:
        text = request.text
        guests = [
            Guest(
                name=name,
                confidence=HEURISTIC_CONFIDENCE,
                source=self.method.value,
                context=context_window(name, text),
            )
            for _, name in find_guest_names(text)
        ]
        return dedupe_guests(guests), 0.0
