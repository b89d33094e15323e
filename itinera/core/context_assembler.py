"""Context document for one calculation target.

Builds the French markdown block sent as user context to the inference
service: system, step and intervention assumptions, the intervention's date
and description, and the sibling indicators already known for the
intervention (so that, for example, a GES estimate can reuse the GNR value).

The output is deterministic: same tree and target, same text.
"""

from datetime import datetime, timedelta

from itinera.core.config import DisplayConfig
from itinera.core.value_store import get_intervention, get_step
from itinera.indicators import format_indicator_value, get_indicator
from itinera.pydantic_models import FieldKey, Status, SystemData, normalize_assumptions

_NOT_SPECIFIED = "Non spécifiée"


def format_intervention_date(start_date: str | None, day: int | str | None) -> str:
    """Intervention date as DD/MM, i.e. step start date + day offset.

    Returns DisplayConfig.DATE_FALLBACK when either part is unusable.
    """
    text = str(start_date).strip()
    # JS timestamps end in "Z", which fromisoformat only accepts from 3.11
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        start = datetime.fromisoformat(text)
        offset = int(day or 0)
        date = start + timedelta(days=offset)
    except (TypeError, ValueError, OverflowError):
        return DisplayConfig.DATE_FALLBACK
    return date.strftime("%d/%m")


def _bullets(items: list[str]) -> str:
    return "\n".join(f"- {item}" for item in items)


def _known_indicators(
    system: SystemData,
    step_index: int,
    intervention_index: int,
    key: FieldKey,
) -> list[str]:
    intervention = system.steps[step_index].interventions[intervention_index]
    lines = []
    for entry in intervention.values:
        if entry.key == key or entry.value is None or entry.status == Status.UNSET:
            continue
        indicator = get_indicator(entry.key)
        value = format_indicator_value(system, entry.key, step_index, intervention_index)
        lines.append(f"- **{indicator.label}** : {value}")
    return lines


def build_context(
    system: SystemData,
    step_index: int,
    intervention_index: int,
    key: str | FieldKey,
) -> str:
    """Build the context document for (step, intervention, key).

    Args:
        system: Full rotation tree (read only).
        step_index: Index of the step.
        intervention_index: Index of the intervention within the step.
        key: Indicator being calculated; its own entry is left out.

    Returns:
        Markdown text.

    Raises:
        InvalidTarget: If either index is out of range.
        RegistryError: If ``key`` is not a known indicator.
    """
    key = get_indicator(key).key
    step = get_step(system, step_index)
    intervention = get_intervention(system, step_index, intervention_index)

    system_assumptions = normalize_assumptions(system.assumptions)
    step_assumptions = normalize_assumptions(step.assumptions)
    intervention_assumptions = normalize_assumptions(intervention.assumptions)

    sections = ["# Contexte du système de culture"]

    if system_assumptions:
        sections.append(f"## Hypothèses générales du système\n\n{_bullets(system_assumptions)}")

    step_block = (
        "## Étape de culture\n\n"
        f"**Nom de l'étape** : {step.name}\n"
        f"**Description de l'étape** : {step.description or _NOT_SPECIFIED}\n"
        f"**Période** : {step.start_date or _NOT_SPECIFIED} → {step.end_date or _NOT_SPECIFIED}"
    )
    if step_assumptions:
        step_block += f"\n\n**Hypothèses de l'étape** :\n{_bullets(step_assumptions)}"
    sections.append(step_block)

    if intervention_assumptions:
        sections.append(
            f"## Hypothèses spécifiques à l'intervention\n\n{_bullets(intervention_assumptions)}"
        )

    sections.append(
        "# Intervention à analyser\n\n"
        f"**Nom de l'intervention** : {intervention.name}\n"
        f"**Date de l'intervention** : {format_intervention_date(step.start_date, intervention.day)}\n"
        f"**Description** : {intervention.description or _NOT_SPECIFIED}"
    )

    known = _known_indicators(system, step_index, intervention_index, key)
    if known:
        known_lines = "\n".join(known)
        sections.append(
            "# Indicateurs connus pour cette intervention\n\n"
            "Pour assurer la cohérence entre les calculs, voici les valeurs déjà connues "
            "pour cette intervention :\n\n"
            f"{known_lines}\n\n"
            "**Utilise ces valeurs si elles sont pertinentes pour ton calcul** "
            "(par exemple, la valeur de GNR pour les émissions GES du carburant)."
        )

    return "\n\n".join(sections) + "\n"