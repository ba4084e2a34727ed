"""Deterministic token and cost estimation."""

from __future__ import annotations

import math

from .models import CostEstimate

# Claude 3 Haiku on Bedrock, USD per 1K tokens.
LLM_INPUT_PRICE_PER_1K = 0.00025
LLM_OUTPUT_PRICE_PER_1K = 0.00125

# Comprehend DetectEntities, USD per request.
NER_REQUEST_COST = 0.0001

CHARS_PER_UNIT = 4
OUTPUT_RATIO = 0.3


def price_units(input_units: int, output_units: int) -> float:
    """Return the USD cost of the given input and output token counts."""
    return (input_units / 1000) * LLM_INPUT_PRICE_PER_1K + (
        output_units / 1000
    ) * LLM_OUTPUT_PRICE_PER_1K


def estimate_cost(text: str) -> CostEstimate:
    """Estimate LLM usage for *text*: ~4 characters per token, output at 30% of input."""
    input_units = math.ceil(len(text) / CHARS_PER_UNIT)
    # Rounded first so that e.g. 100 * 0.3 yields 30, not 31.
    output_units = math.ceil(round(input_units * OUTPUT_RATIO, 6))
    return CostEstimate(
        input_units=input_units,
        output_units=output_units,
        estimated_cost=price_units(input_units, output_units),
    )
