"""Prompt templates for indicator calculation and refinement.

One template per AI-calculable indicator, plus the refinement prompt.
"""

from itinera.core.errors import RegistryError
from itinera.prompts.indicator_prompts import (
    RESPONSE_CONTRACT,
    INDICATOR_TEMPLATES,
    IndicatorPromptTemplate,
)
from itinera.prompts.refine_prompt import REFINE_SYSTEM_PROMPT, build_refine_prompt
from itinera.pydantic_models import FieldKey


def get_template(key: str | FieldKey) -> IndicatorPromptTemplate:
    """Return the template for an indicator.

    Raises:
        RegistryError: If the key is unknown or has no template (derived totals).
    """
    try:
        return INDICATOR_TEMPLATES[FieldKey(key)]
    except (KeyError, ValueError):
        raise RegistryError(f"No prompt template for indicator '{key}'") from None


__all__ = [
    # Indicators
    "RESPONSE_CONTRACT",
    "INDICATOR_TEMPLATES",
    "IndicatorPromptTemplate",
    "get_template",
    # Refine
    "REFINE_SYSTEM_PROMPT",
    "build_refine_prompt",
]
