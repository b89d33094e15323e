"""Pydantic models for the crop-rotation document tree.

The tree is stored as one JSON document per system:

    SystemData
    ├── assumptions: list[str]
    └── steps: list[Step]
        ├── values: list[ValueEntry]          (step-scoped indicators)
        └── interventions: list[Intervention]
            └── values: list[ValueEntry]      (intervention-scoped indicators)

Field names on the wire keep the stored camelCase spelling (``startDate``,
``endDate``); Python code uses snake_case. Unknown fields are kept so that a
load/save round-trip never drops data written by other parts of the app.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class FieldKey(str, Enum):
    """Closed set of indicator identifiers.

    Declaration order is the fixed key order used when scheduling
    calculations.
    """

    FREQUENCE = "frequence"
    AZOTE_MINERAL = "azoteMineral"
    AZOTE_ORGANIQUE = "azoteOrganique"
    RENDEMENT_TMS = "rendementTMS"
    IFT = "ift"
    EIQ = "eiq"
    GES = "ges"
    TEMPS_TRAVAIL = "tempsTravail"
    COUTS_PHYTOS = "coutsPhytos"
    SEMENCES = "semences"
    ENGRAIS = "engrais"
    MECANISATION = "mecanisation"
    GNR = "gnr"
    IRRIGATION = "irrigation"
    TOTAL_PRODUITS = "totalProduits"
    TOTAL_CHARGES = "totalCharges"
    PRIX_VENTE = "prixVente"
    MARGE_BRUTE = "margeBrute"

    def __str__(self) -> str:
        return self.value


class Status(str, Enum):
    """Provenance of a stored value.

    - USER: entered manually
    - CALCULATED: deterministic derivation (aggregates)
    - IA: produced by inference
    - NOT_APPLICABLE: explicitly not applicable to this intervention
    - UNSET: no provenance recorded
    """

    USER = "user"
    CALCULATED = "calculated"
    IA = "ia"
    NOT_APPLICABLE = "n/a"
    UNSET = "unset"

    def __str__(self) -> str:
        return self.value


Confidence = Literal["high", "medium", "low"]
Role = Literal["system", "user", "assistant"]

NOT_APPLICABLE_VALUE = "N/A"
"""Sentinel stored in ``ValueEntry.value`` when the indicator does not apply."""

CONFIDENCE_ALIASES: dict[str, str] = {
    "haute": "high",
    "élevée": "high",
    "elevee": "high",
    "moyenne": "medium",
    "faible": "low",
    "basse": "low",
}
"""French spellings of the confidence levels."""

_CONFIDENCE_LEVELS = ("high", "medium", "low")


def normalize_confidence(raw: object) -> object:
    """Lower-case, strip and translate a confidence level.

    Strings outside the three levels are returned as-is (lowered) so the
    caller decides whether to reject or drop them.
    """
    if not isinstance(raw, str):
        return raw
    lowered = raw.strip().lower()
    return CONFIDENCE_ALIASES.get(lowered, lowered)


def _stored_confidence(raw: object) -> str | None:
    # Older documents stored whatever the model answered ("Medium", "moyenne", "")
    level = normalize_confidence(raw)
    return level if level in _CONFIDENCE_LEVELS else None


def utc_timestamp() -> str:
    """Current time as an ISO-8601 string (conversation timestamps)."""
    return datetime.now(timezone.utc).isoformat()


def normalize_assumptions(raw: object) -> list[str]:
    """Normalize stored assumptions to a list of text lines.

    Older documents stored assumptions as one text block; those are split on
    line breaks with blank lines dropped. Lists are returned as-is (copied).
    """
    if raw is None:
        return []
    if isinstance(raw, str):
        return [line.rstrip("\r") for line in raw.split("\n") if line.strip()]
    if isinstance(raw, (list, tuple)):
        return [str(item) for item in raw]
    raise ValueError(f"assumptions must be text or a list of text, got {type(raw).__name__}")


class ConversationMessage(BaseModel):
    """One turn of the calculation dialogue attached to a value."""

    model_config = ConfigDict(extra="allow")

    role: Role
    content: str = ""
    timestamp: str = Field(default_factory=utc_timestamp)
    assumptions: list[str] | None = None
    calculation_steps: list[str] | None = None
    sources: list[str] | None = None
    confidence: Confidence | None = None
    caveats: list[str] | None = None

    @field_validator("confidence", mode="before")
    @classmethod
    def _normalize_confidence(cls, v):
        return _stored_confidence(v)


class ValueEntry(BaseModel):
    """Persisted value of one indicator at one scope."""

    model_config = ConfigDict(extra="allow")

    key: FieldKey
    value: int | float | str | None = None
    status: Status = Status.UNSET
    confidence: Confidence | None = None
    reviewed: bool | Literal["n/a"] = False
    conversation: list[ConversationMessage] = Field(default_factory=list)

    @field_validator("status", mode="before")
    @classmethod
    def _missing_status_is_unset(cls, v):
        return Status.UNSET if v is None or v == "" else v

    @field_validator("confidence", mode="before")
    @classmethod
    def _normalize_confidence(cls, v):
        return _stored_confidence(v)

    @field_validator("reviewed", mode="before")
    @classmethod
    def _missing_reviewed_is_false(cls, v):
        return False if v is None else v

    @field_validator("conversation", mode="before")
    @classmethod
    def _missing_conversation_is_empty(cls, v):
        return [] if v is None else v

    @property
    def is_reviewed(self) -> bool:
        """True when the value was accepted by a user or marked n/a."""
        return self.reviewed is True or self.reviewed == "n/a"


def _check_unique_keys(values: list[ValueEntry]) -> list[ValueEntry]:
    seen: set[str] = set()
    for entry in values:
        if entry.key in seen:
            raise ValueError(f"duplicate value key '{entry.key}'")
        seen.add(entry.key)
    return values


class Intervention(BaseModel):
    """One operation within a step (sowing, spraying, harvest...)."""

    model_config = ConfigDict(extra="allow")

    name: str = ""
    description: str = ""
    day: int = Field(default=0, ge=0, description="Offset in days from step.startDate")
    assumptions: list[str] = Field(default_factory=list)
    values: list[ValueEntry] = Field(default_factory=list)

    @field_validator("assumptions", mode="before")
    @classmethod
    def _normalize_assumptions(cls, v):
        return normalize_assumptions(v)

    @field_validator("day", mode="before")
    @classmethod
    def _missing_day_is_zero(cls, v):
        return 0 if v is None or v == "" else v

    @field_validator("values", mode="before")
    @classmethod
    def _missing_values_is_empty(cls, v):
        return [] if v is None else v

    @field_validator("values")
    @classmethod
    def _unique_keys(cls, v):
        return _check_unique_keys(v)


class Step(BaseModel):
    """One crop (or fallow) period of the rotation."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    name: str = ""
    start_date: str | None = Field(default=None, alias="startDate")
    end_date: str | None = Field(default=None, alias="endDate")
    description: str = ""
    assumptions: list[str] = Field(default_factory=list)
    interventions: list[Intervention] = Field(default_factory=list)
    values: list[ValueEntry] = Field(default_factory=list)

    @field_validator("assumptions", mode="before")
    @classmethod
    def _normalize_assumptions(cls, v):
        return normalize_assumptions(v)

    @field_validator("interventions", "values", mode="before")
    @classmethod
    def _missing_list_is_empty(cls, v):
        return [] if v is None else v

    @field_validator("values")
    @classmethod
    def _unique_keys(cls, v):
        return _check_unique_keys(v)


class SystemData(BaseModel):
    """Root of the rotation document."""

    model_config = ConfigDict(extra="allow")

    steps: list[Step] = Field(default_factory=list)
    assumptions: list[str] = Field(default_factory=list)

    @field_validator("assumptions", mode="before")
    @classmethod
    def _normalize_assumptions(cls, v):
        return normalize_assumptions(v)

    @field_validator("steps", mode="before")
    @classmethod
    def _missing_steps_is_empty(cls, v):
        return [] if v is None else v

    def to_json_dict(self) -> dict:
        """Dump using the stored field names."""
        return self.model_dump(by_alias=True, mode="json")
