"""Parsing of raw LLM guest-extraction responses into a tagged result."""

from __future__ import annotations

import json
import logging
import re
from json import JSONDecodeError

from pydantic import BaseModel, Field, ValidationError

from .models import ErrorKind, Guest

logger = logging.getLogger(__name__)

MAX_LLM_GUESTS = 5
DEFAULT_LLM_CONFIDENCE = 0.5

_FENCE_PATTERN = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)
_WHITESPACE_PATTERN = re.compile(r"\s+")


class LLMGuest(BaseModel):
    name: str
    confidence: float = DEFAULT_LLM_CONFIDENCE
    context: str | None = None


class LLMGuestPayload(BaseModel):
    """Structured JSON the LLM is asked to return."""

    guests: list[LLMGuest] = Field(default_factory=list)


class GuestParseResult(BaseModel):
    """Either ``ok`` with guests, or a ``MalformedResponse`` error."""

    ok: bool
    guests: list[Guest] = Field(default_factory=list)
    error_kind: ErrorKind | None = None
    error: str | None = None


def normalize_name(name: str) -> str:
    return _WHITESPACE_PATTERN.sub(" ", name).strip()


def dedupe_guests(guests: list[Guest]) -> list[Guest]:
    """Drop later guests whose name matches an earlier one case-insensitively."""
    seen: set[str] = set()
    unique: list[Guest] = []
    for guest in guests:
        key = guest.name.lower()
        if key in seen:
            continue
        seen.add(key)
        unique.append(guest)
    return unique


def _strip_json_fence(response_text: str) -> str:
    return _FENCE_PATTERN.sub("", response_text.strip()).strip()


def _malformed(reason: str) -> GuestParseResult:
    return GuestParseResult(ok=False, error_kind=ErrorKind.MalformedResponse, error=reason)


def parse_guest_response(raw: str, source: str = "llm") -> GuestParseResult:
    """Parse ``{"guests": [{name, confidence, context}]}`` out of raw LLM text."""
    if not raw or not raw.strip():
        return _malformed("Raw LLM response was empty.")

    cleaned = _strip_json_fence(raw)
    try:
        parsed = json.loads(cleaned)
    except JSONDecodeError as err:
        return _malformed(f"Response was not valid JSON: {err.msg}")

    try:
        payload = LLMGuestPayload.model_validate(parsed)
    except ValidationError as err:
        logger.debug("Guest response JSON did not match schema: %s", err)
        return _malformed("Response JSON did not match the guest schema.")

    guests = [
        Guest(
            name=normalize_name(item.name),
            confidence=min(1.0, max(0.0, item.confidence)),
            source=source,
            context=item.context or None,
        )
        for item in payload.guests
        if normalize_name(item.name)
    ]
    return GuestParseResult(ok=True, guests=dedupe_guests(guests)[:MAX_LLM_GUESTS])
