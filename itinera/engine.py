"""Calculation engine: one calculate or refine request per call.

The engine builds the request (template + context), calls the inference
client, and turns the raw answer into a CalculationResult. It never mutates
the tree it is given; ``apply_result`` returns an updated copy for callers
that want the single-cell write.

Flow for calculate:
  validate target → build_context → template prompts → infer
  → strip code fences → JSON → IndicatorResponse → CalculationResult
"""

import json
import logging
import re

from pydantic import ValidationError

from itinera.core.context_assembler import build_context
from itinera.core.errors import InferenceParseError
from itinera.core.llm_client import InferenceClient
from itinera.core.value_store import clone_system, get_intervention, get_values, upsert_entry
from itinera.indicators import get_indicator
from itinera.prompts import REFINE_SYSTEM_PROMPT, build_refine_prompt, get_template
from itinera.pydantic_models import (
    CalculationResult,
    ConversationMessage,
    FieldKey,
    IndicatorResponse,
    NOT_APPLICABLE_VALUE,
    Status,
    SystemData,
    ValueEntry,
)

logger = logging.getLogger(__name__)

_OPENING_FENCE = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_CLOSING_FENCE = re.compile(r"\s*```\s*$")


def strip_code_fences(text: str) -> str:
    """Remove a leading ```json / ``` marker and a trailing ``` marker."""
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = _OPENING_FENCE.sub("", cleaned, count=1)
        cleaned = _CLOSING_FENCE.sub("", cleaned, count=1)
    return cleaned.strip()


def parse_response(raw: str) -> IndicatorResponse:
    """Parse a raw completion into an IndicatorResponse.

    Raises:
        InferenceParseError: If the text is not a JSON object matching the
            response contract.
    """
    try:
        data = json.loads(strip_code_fences(raw))
    except json.JSONDecodeError as e:
        raise InferenceParseError(f"Response is not valid JSON: {e}", raw_response=raw) from e

    if not isinstance(data, dict):
        raise InferenceParseError(
            f"Response must be a JSON object, got {type(data).__name__}", raw_response=raw
        )

    try:
        return IndicatorResponse.model_validate(data)
    except ValidationError as e:
        errors = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise InferenceParseError(f"Invalid response: {errors}", raw_response=raw) from e


def _assistant_message(response: IndicatorResponse, fallback: str) -> ConversationMessage:
    return ConversationMessage(
        role="assistant",
        content=response.reasoning or fallback,
        assumptions=response.assumptions,
        calculation_steps=response.calculation_steps,
        sources=response.sources,
        confidence=response.confidence,
        caveats=response.caveats,
    )


def _to_result(response: IndicatorResponse, conversation: list[ConversationMessage]) -> CalculationResult:
    if response.applicable:
        status, value = Status.IA, response.value
    else:
        status, value = Status.NOT_APPLICABLE, NOT_APPLICABLE_VALUE
    return CalculationResult(
        value=value,
        confidence=response.confidence,
        conversation=conversation,
        sources=response.sources,
        calculation_steps=response.calculation_steps,
        caveats=response.caveats,
        status=status,
        # Non-empty list replaces the intervention's assumptions; empty keeps them
        intervention_assumptions=list(response.assumptions) or None,
    )


class CalculationEngine:
    """Runs calculate and refine requests against an inference client.

    Usage:
        engine = CalculationEngine(LLMClient())
        result = await engine.calculate(system, 0, 2, "ift")
        system = apply_result(system, 0, 2, "ift", result)
    """

    def __init__(self, inference: InferenceClient):
        self.inference = inference

    async def calculate(
        self,
        system: SystemData,
        step_index: int,
        intervention_index: int,
        key: str | FieldKey,
    ) -> CalculationResult:
        """Estimate one indicator for one intervention.

        Raises:
            InvalidTarget: If the step or intervention does not exist.
            RegistryError: If the key has no template (derived totals).
            InferenceTransportError: Propagated from the inference client.
            InferenceParseError: If the answer is not a valid structured result.
        """
        intervention = get_intervention(system, step_index, intervention_index)
        key = get_indicator(key).key
        template = get_template(key)

        context = build_context(system, step_index, intervention_index, key)
        raw = await self.inference.infer(
            template.get_system_prompt(),
            template.get_prompt(context),
            indicator=str(key),
        )
        response = parse_response(raw)
        logger.debug(f"{step_index}.{intervention_index}/{key}: value={response.value} ({response.confidence})")

        conversation = [
            ConversationMessage(
                role="system",
                content=f'Calcul de l\'indicateur "{key}" pour l\'intervention "{intervention.name}"',
            ),
            _assistant_message(response, "Calcul effectué"),
        ]
        return _to_result(response, conversation)

    async def refine(
        self,
        system: SystemData,
        step_index: int,
        intervention_index: int,
        key: str | FieldKey,
        user_message: str,
        existing_conversation: list[ConversationMessage],
    ) -> CalculationResult:
        """Reconsider a value in light of a user message.

        Prior non-system turns are replayed as history. The returned
        conversation is ``existing_conversation`` plus the new user turn and
        the new assistant turn.

        Raises:
            Same as calculate.
        """
        get_intervention(system, step_index, intervention_index)
        key = get_indicator(key).key

        history = [
            {"role": msg.role, "content": msg.content}
            for msg in existing_conversation
            if msg.role != "system"
        ]
        raw = await self.inference.infer(
            REFINE_SYSTEM_PROMPT,
            build_refine_prompt(user_message),
            history=history,
            indicator=f"refine:{key}",
        )
        response = parse_response(raw)

        conversation = [msg.model_copy(deep=True) for msg in existing_conversation]
        conversation.append(ConversationMessage(role="user", content=user_message))
        conversation.append(_assistant_message(response, "Valeur raffinée"))
        return _to_result(response, conversation)


def apply_result(
    system: SystemData,
    step_index: int,
    intervention_index: int,
    key: str | FieldKey,
    result: CalculationResult,
    reviewed: bool = False,
) -> SystemData:
    """Return a copy of ``system`` with ``result`` written to its target.

    The entry is replaced by key match (or appended), and the intervention's
    assumptions are replaced when the result carries a new list.
    """
    updated = clone_system(system)
    merge_result(updated, step_index, intervention_index, key, result, reviewed=reviewed)
    return updated


def merge_result(
    system: SystemData,
    step_index: int,
    intervention_index: int,
    key: str | FieldKey,
    result: CalculationResult,
    reviewed: bool = False,
) -> ValueEntry:
    """Write ``result`` into ``system`` in place. Callers own the tree."""
    intervention = get_intervention(system, step_index, intervention_index)
    entry = ValueEntry(
        key=get_indicator(key).key,
        value=result.value,
        status=result.status,
        confidence=result.confidence,
        reviewed=reviewed,
        conversation=result.conversation,
    )
    upsert_entry(get_values(system, step_index, intervention_index), entry)
    if result.intervention_assumptions is not None:
        intervention.assumptions = list(result.intervention_assumptions)
    return entry
