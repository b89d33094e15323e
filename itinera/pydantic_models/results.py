"""Pydantic models for engine outputs.

- CalculationResult: one calculate/refine answer, not yet merged into a tree
- SummaryEntry: one line of a batch summary
"""

from pydantic import BaseModel, Field

from itinera.pydantic_models.system_models import (
    Confidence,
    ConversationMessage,
    FieldKey,
    Status,
)


class CalculationResult(BaseModel):
    """Result of a single calculation or refinement.

    Attributes:
        value: Estimated value (float), "N/A", or None.
        confidence: Confidence reported by the model.
        conversation: Full dialogue to store on the value entry.
        sources: References used for the estimate.
        calculation_steps: Calculation trace.
        caveats: Limitations to show next to the value.
        status: "ia" when applicable, "n/a" otherwise.
        intervention_assumptions: Replacement for the intervention's assumption
            list, or None to keep the stored list.
    """

    value: float | str | None
    confidence: Confidence
    conversation: list[ConversationMessage]
    sources: list[str] = Field(default_factory=list)
    calculation_steps: list[str] = Field(default_factory=list)
    caveats: list[str] = Field(default_factory=list)
    status: Status
    intervention_assumptions: list[str] | None = None


class SummaryEntry(BaseModel):
    """Outcome of one scheduled target in a batch run."""

    step_index: int
    intervention_index: int
    key: FieldKey
    value: float | str | None = None
    confidence: Confidence = "low"
    error: str | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None
