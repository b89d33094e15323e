"""Pydantic model for the structured answer returned by the inference service.

Every indicator template asks for the same JSON object; this model is the
single place that decides what counts as a valid answer.
"""

from pydantic import BaseModel, field_validator

from itinera.pydantic_models.system_models import NOT_APPLICABLE_VALUE, Confidence, normalize_confidence


class IndicatorResponse(BaseModel):
    """Answer to one calculate or refine request.

    Attributes:
        applicable: False when the indicator does not apply to the intervention.
        value: The estimate, or "N/A".
        confidence: high / medium / low.
        reasoning: Free-text explanation shown to the user.
        assumptions: COMPLETE list of intervention assumptions (replaces the stored one).
        calculation_steps: Ordered calculation trace.
        sources: References used.
        caveats: Limitations worth surfacing.
    """

    applicable: bool = True
    value: float | str | None = None
    confidence: Confidence = "medium"
    reasoning: str = ""
    assumptions: list[str] = []
    calculation_steps: list[str] = []
    sources: list[str] = []
    caveats: list[str] = []

    @field_validator("applicable", mode="before")
    @classmethod
    def _default_applicable(cls, v):
        return True if v is None else v

    @field_validator("value", mode="before")
    @classmethod
    def _parse_value(cls, v):
        if isinstance(v, bool):
            raise ValueError("value must be a number or 'N/A'")
        if v is None:
            return None
        if isinstance(v, (int, float)):
            return float(v)
        if isinstance(v, str):
            text = v.strip()
            if text.upper() == NOT_APPLICABLE_VALUE:
                return NOT_APPLICABLE_VALUE
            try:
                return float(text.replace(",", "."))
            except ValueError:
                raise ValueError(f"value must be a number or 'N/A', got {v!r}") from None
        raise ValueError(f"value must be a number or 'N/A', got {type(v).__name__}")

    @field_validator("confidence", mode="before")
    @classmethod
    def _normalize_confidence(cls, v):
        if v is None or (isinstance(v, str) and not v.strip()):
            return "medium"
        return normalize_confidence(v)

    @field_validator("reasoning", mode="before")
    @classmethod
    def _default_reasoning(cls, v):
        return "" if v is None else v

    @field_validator("assumptions", "calculation_steps", "sources", "caveats", mode="before")
    @classmethod
    def _coerce_text_list(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            return [v] if v.strip() else []
        if isinstance(v, list):
            return [str(item) for item in v]
        return v
