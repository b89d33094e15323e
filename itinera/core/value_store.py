"""Tree access, key-match writes, and JSON persistence for rotation documents.

Everything that touches a ValueEntry list goes through ``find_entry`` /
``upsert_entry`` so the per-scope key uniqueness holds: entries are created on
first write and afterwards replaced in place, never deleted.
"""

import json
import logging
from pathlib import Path
from typing import Protocol

from itinera.core.errors import InvalidTarget
from itinera.pydantic_models import Intervention, Step, SystemData, ValueEntry

logger = logging.getLogger(__name__)


def get_step(system: SystemData, step_index: int) -> Step:
    """Return the step at ``step_index`` or raise InvalidTarget."""
    if not 0 <= step_index < len(system.steps):
        raise InvalidTarget(
            f"Invalid step index {step_index} (system has {len(system.steps)} steps)",
            step_index=step_index,
        )
    return system.steps[step_index]


def get_intervention(system: SystemData, step_index: int, intervention_index: int) -> Intervention:
    """Return the intervention at the given indices or raise InvalidTarget."""
    step = get_step(system, step_index)
    if not 0 <= intervention_index < len(step.interventions):
        raise InvalidTarget(
            f"Invalid intervention index {intervention_index} for step {step_index} "
            f"({len(step.interventions)} interventions)",
            step_index=step_index,
            intervention_index=intervention_index,
        )
    return step.interventions[intervention_index]


def get_values(system: SystemData, step_index: int, intervention_index: int | None = None) -> list[ValueEntry]:
    """Return the value list of a step (intervention_index None) or an intervention."""
    if intervention_index is None:
        return get_step(system, step_index).values
    return get_intervention(system, step_index, intervention_index).values


def find_entry(values: list[ValueEntry], key: str) -> ValueEntry | None:
    """Find the entry for ``key`` in one scope, or None."""
    for entry in values:
        if entry.key == key:
            return entry
    return None


def upsert_entry(values: list[ValueEntry], entry: ValueEntry) -> ValueEntry:
    """Replace the entry with the same key in place, or append it."""
    for i, existing in enumerate(values):
        if existing.key == entry.key:
            values[i] = entry
            return entry
    values.append(entry)
    return entry


def clone_system(system: SystemData) -> SystemData:
    """Deep copy of the whole tree."""
    return system.model_copy(deep=True)


# Persistence

def load_system(path: str | Path) -> SystemData:
    """Load a rotation document from a JSON file."""
    path = Path(path)
    with path.open(encoding="utf-8") as f:
        raw = json.load(f)
    # Some exports wrap the tree as {"json": {...}} or store it as a string
    if isinstance(raw, dict) and "steps" not in raw and "json" in raw:
        raw = raw["json"]
    if isinstance(raw, str):
        raw = json.loads(raw)
    system = SystemData.model_validate(raw)
    logger.debug(f"Loaded {path.name}: {len(system.steps)} steps")
    return system


def save_system(system: SystemData, path: str | Path) -> Path:
    """Write a rotation document to a JSON file."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        json.dump(system.to_json_dict(), f, indent=2, ensure_ascii=False)
    logger.debug(f"Saved {path}")
    return path


class SystemRepository(Protocol):
    """Persistence collaborator.

    Implementations own storage and recompute aggregate totals
    (totalCharges, totalProduits, margeBrute) on save.
    """

    def load(self, system_id: str) -> SystemData: ...

    def save(self, system_id: str, system: SystemData) -> None: ...


class JsonFileRepository:
    """SystemRepository storing one ``<system_id>.json`` file per system."""

    def __init__(self, root: str | Path):
        self.root = Path(root)

    def _path(self, system_id: str) -> Path:
        return self.root / f"{system_id}.json"

    def load(self, system_id: str) -> SystemData:
        return load_system(self._path(system_id))

    def save(self, system_id: str, system: SystemData) -> None:
        save_system(system, self._path(system_id))
