"""Indicator registry: one record per FieldKey.

Each indicator is a small frozen record of data and pure functions (label,
scope, display rule, per-hectare flag). Behaviour that reads the tree
(raw value, weighted value, status, display) is written once as module
functions that look up the record, so adding an indicator means adding one
row to ``INDICATORS``.

Usage:
    from itinera.indicators import get_indicator, raw_value, format_indicator_value

    indicator = get_indicator("ift")
    indicator.label                                      # "IFT"
    raw_value(system, "ift", step_index=0, intervention_index=2)
    format_indicator_value(system, "semences", 0, 2)     # "85 €/ha"
"""

import math
from dataclasses import dataclass, field
from typing import Callable, Final, Literal

from itinera.core.config import DisplayConfig
from itinera.core.errors import RegistryError
from itinera.pydantic_models import FieldKey, Intervention, Status, SystemData, ValueEntry

Scope = Literal["step", "intervention"]


# Display rules

def _round_half_up(value: float) -> int:
    """Round .5 away from zero for positives, like spreadsheet rounding."""
    return int(math.floor(value + 0.5))


def _one_decimal(value: float) -> str:
    return f"{value:.1f}"


def _whole_or_one_decimal(value: float) -> str:
    return f"{value:.0f}" if value % 1 == 0 else f"{value:.1f}"


def _integer(value: float) -> str:
    return str(_round_half_up(value))


def _with_unit(render: Callable[[float], str], unit: str) -> Callable[[float], str]:
    def formatter(value: float) -> str:
        return f"{render(value)} {unit}"
    return formatter


def _always_applicable(intervention: Intervention) -> bool:
    return True


@dataclass(frozen=True)
class Indicator:
    """Static description of one indicator.

    Attributes:
        key: Identifier stored in ValueEntry.key.
        label: Human-readable name (French, as shown in the table).
        scope: Where users edit the value ("step" or "intervention").
        formatter: Renders a non-zero finite number with its unit.
        per_hectare: Whether "/ha" is appended in prompt context.
        derived: Computed by the external aggregator, never by inference.
        is_applicable: Whether the indicator can apply to an intervention.
    """

    key: FieldKey
    label: str
    scope: Scope
    formatter: Callable[[float], str]
    per_hectare: bool = True
    derived: bool = False
    is_applicable: Callable[[Intervention], bool] = field(default=_always_applicable)

    @property
    def ai_calculable(self) -> bool:
        return not self.derived

    def format(self, value: float) -> str:
        """Render a raw number (no sentinel handling)."""
        return self.formatter(value)


_EURO = _with_unit(_integer, "€")

INDICATORS: Final[dict[FieldKey, Indicator]] = {
    ind.key: ind
    for ind in [
        Indicator(FieldKey.FREQUENCE, "Fréquence", "intervention", _one_decimal, per_hectare=False),
        Indicator(FieldKey.AZOTE_MINERAL, "Azote minéral", "intervention", _with_unit(_whole_or_one_decimal, "U")),
        Indicator(FieldKey.AZOTE_ORGANIQUE, "Azote organique", "intervention", _with_unit(_whole_or_one_decimal, "U")),
        Indicator(FieldKey.RENDEMENT_TMS, "Rendement", "step", _with_unit(_integer, "qtx")),
        Indicator(FieldKey.IFT, "IFT", "intervention", _one_decimal, per_hectare=False),
        Indicator(FieldKey.EIQ, "EIQ", "intervention", _integer, per_hectare=False),
        Indicator(FieldKey.GES, "GES", "intervention", _with_unit(_integer, "kg")),
        Indicator(FieldKey.TEMPS_TRAVAIL, "Temps de travail", "intervention", _with_unit(_whole_or_one_decimal, "h")),
        Indicator(FieldKey.COUTS_PHYTOS, "Coûts phytos", "intervention", _EURO),
        Indicator(FieldKey.SEMENCES, "Semences", "intervention", _EURO),
        Indicator(FieldKey.ENGRAIS, "Engrais", "intervention", _EURO),
        Indicator(FieldKey.MECANISATION, "Mécanisation", "intervention", _EURO),
        Indicator(FieldKey.GNR, "GNR", "intervention", _EURO),
        Indicator(FieldKey.IRRIGATION, "Irrigation", "step", _EURO),
        Indicator(FieldKey.TOTAL_PRODUITS, "Total produits", "step", _EURO, derived=True),
        Indicator(FieldKey.TOTAL_CHARGES, "Total charges", "intervention", _EURO, derived=True),
        Indicator(FieldKey.PRIX_VENTE, "Prix de vente", "step", _EURO),
        Indicator(FieldKey.MARGE_BRUTE, "Marge brute", "intervention", _EURO, derived=True),
    ]
}

_missing = [k for k in FieldKey if k not in INDICATORS]
if _missing:
    raise RegistryError(f"No indicator registered for: {', '.join(map(str, _missing))}")

AI_CALCULABLE_KEYS: Final[tuple[FieldKey, ...]] = tuple(k for k in FieldKey if INDICATORS[k].ai_calculable)
"""Keys the engine may compute, in scheduling order."""

STEP_SCOPED_KEYS: Final[frozenset[FieldKey]] = frozenset(k for k, i in INDICATORS.items() if i.scope == "step")
INTERVENTION_SCOPED_KEYS: Final[frozenset[FieldKey]] = frozenset(INDICATORS) - STEP_SCOPED_KEYS


def get_indicator(key: str | FieldKey) -> Indicator:
    """Look up an indicator by key.

    Raises:
        RegistryError: If the key is not a known FieldKey.
    """
    try:
        return INDICATORS[FieldKey(key)]
    except ValueError:
        raise RegistryError(f"Unknown indicator key: {key}") from None


# Tree readers

def to_number(value: object) -> float | None:
    """Parse a stored value. None stays None; anything unparseable is NaN."""
    if value is None:
        return None
    if isinstance(value, bool):
        return math.nan
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip().replace(",", "."))
        except ValueError:
            return math.nan
    return math.nan


def _lookup_entry(
    system: SystemData,
    key: str | FieldKey,
    step_index: int,
    intervention_index: int | None,
) -> ValueEntry | None:
    """Find a value entry without raising on bad indices."""
    if not 0 <= step_index < len(system.steps):
        return None
    step = system.steps[step_index]
    if intervention_index is None:
        values = step.values
    else:
        if not 0 <= intervention_index < len(step.interventions):
            return None
        values = step.interventions[intervention_index].values
    for entry in values:
        if entry.key == key:
            return entry
    return None


def get_status(
    system: SystemData,
    key: str | FieldKey,
    step_index: int,
    intervention_index: int | None = None,
) -> Status:
    """Status of the entry; UNSET when there is none."""
    get_indicator(key)
    entry = _lookup_entry(system, key, step_index, intervention_index)
    return entry.status if entry else Status.UNSET


def raw_value(
    system: SystemData,
    key: str | FieldKey,
    step_index: int,
    intervention_index: int | None = None,
) -> float | None:
    """Raw numeric value at a scope.

    Returns None when there is no entry or the entry is marked n/a. Numeric
    strings are parsed; other stored junk reads as NaN.
    """
    get_indicator(key)
    entry = _lookup_entry(system, key, step_index, intervention_index)
    if entry is None or entry.status == Status.NOT_APPLICABLE:
        return None
    return to_number(entry.value)


def weighted_value(
    system: SystemData,
    key: str | FieldKey,
    step_index: int,
    intervention_index: int | None = None,
) -> float:
    """Raw value multiplied by the intervention's frequency.

    Always a finite number: a missing or invalid raw value counts as 0, a
    missing or invalid frequency as 1.
    """
    raw = raw_value(system, key, step_index, intervention_index)
    if raw is None or not math.isfinite(raw):
        return 0.0

    frequency = 1.0
    if intervention_index is not None:
        freq = raw_value(system, FieldKey.FREQUENCE, step_index, intervention_index)
        if freq is not None and math.isfinite(freq):
            frequency = freq

    weighted = raw * frequency
    return weighted if math.isfinite(weighted) else 0.0


def display_value(indicator: Indicator, raw: float | None, status: Status) -> str:
    """Render a value with the sentinel rules applied."""
    if status == Status.NOT_APPLICABLE:
        return DisplayConfig.NOT_APPLICABLE
    if raw is None or not math.isfinite(raw) or raw == 0:
        return DisplayConfig.EMPTY
    return indicator.format(raw)


def formatted_value(
    system: SystemData,
    key: str | FieldKey,
    step_index: int,
    intervention_index: int | None = None,
) -> str:
    """Display text: "N/A", "-", or the rounded value with its unit."""
    indicator = get_indicator(key)
    return display_value(
        indicator,
        raw_value(system, key, step_index, intervention_index),
        get_status(system, key, step_index, intervention_index),
    )


def format_indicator_value(
    system: SystemData,
    key: str | FieldKey,
    step_index: int,
    intervention_index: int | None = None,
) -> str:
    """Display text with "/ha" appended for per-hectare indicators."""
    indicator = get_indicator(key)
    text = formatted_value(system, key, step_index, intervention_index)
    if (
        indicator.per_hectare
        and text not in (DisplayConfig.EMPTY, DisplayConfig.NOT_APPLICABLE)
        and DisplayConfig.PER_HECTARE_SUFFIX not in text
    ):
        return text + DisplayConfig.PER_HECTARE_SUFFIX
    return text
