"""Pydantic models for the rotation tree, LLM answers, and engine results."""

from itinera.pydantic_models.system_models import (
    FieldKey,
    Status,
    Confidence,
    Role,
    NOT_APPLICABLE_VALUE,
    ConversationMessage,
    ValueEntry,
    Intervention,
    Step,
    SystemData,
    normalize_assumptions,
    normalize_confidence,
    CONFIDENCE_ALIASES,
    utc_timestamp,
)
from itinera.pydantic_models.llm_responses import IndicatorResponse
from itinera.pydantic_models.results import CalculationResult, SummaryEntry

__all__ = [
    # Tree
    "FieldKey",
    "Status",
    "Confidence",
    "Role",
    "NOT_APPLICABLE_VALUE",
    "ConversationMessage",
    "ValueEntry",
    "Intervention",
    "Step",
    "SystemData",
    "normalize_assumptions",
    "normalize_confidence",
    "CONFIDENCE_ALIASES",
    "utc_timestamp",
    # LLM answers
    "IndicatorResponse",
    # Results
    "CalculationResult",
    "SummaryEntry",
]
