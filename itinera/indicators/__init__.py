"""Indicator registry and tree readers."""

from itinera.indicators.registry import (
    Indicator,
    INDICATORS,
    AI_CALCULABLE_KEYS,
    STEP_SCOPED_KEYS,
    INTERVENTION_SCOPED_KEYS,
    get_indicator,
    to_number,
    raw_value,
    weighted_value,
    get_status,
    display_value,
    formatted_value,
    format_indicator_value,
)

__all__ = [
    "Indicator",
    "INDICATORS",
    "AI_CALCULABLE_KEYS",
    "STEP_SCOPED_KEYS",
    "INTERVENTION_SCOPED_KEYS",
    "get_indicator",
    "to_number",
    "raw_value",
    "weighted_value",
    "get_status",
    "display_value",
    "formatted_value",
    "format_indicator_value",
]
