"""Structured error types for the indicator engine.

Provides:
- Exceptions raised by single calculate/refine calls (propagated unchanged)
- CalculationError records for per-target failures inside a batch
- BatchErrors accumulator for partial-success reporting
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from itinera.core.config import ParseConfig


class ItineraError(Exception):
    """Base class for every error raised by the engine."""


class InvalidTarget(ItineraError):
    """Step or intervention index does not exist in the tree."""

    def __init__(self, message: str, step_index: int | None = None, intervention_index: int | None = None):
        super().__init__(message)
        self.step_index = step_index
        self.intervention_index = intervention_index


class InferenceTransportError(ItineraError):
    """The inference collaborator failed after its own retries."""

    def __init__(self, message: str, original: Exception | None = None):
        super().__init__(message)
        self.original = original


class InferenceParseError(ItineraError):
    """The inference response is not a valid structured result."""

    def __init__(self, message: str, raw_response: str | None = None):
        super().__init__(message)
        self.raw_response = raw_response[:ParseConfig.RAW_RESPONSE_PREVIEW] if raw_response else None


class RegistryError(ItineraError):
    """Unknown indicator key or missing template. A programming defect."""


class ErrorCategory(Enum):
    """Categories of recorded errors."""
    INFERENCE = "inference"       # Transport / provider failures
    PARSE = "parse"               # JSON or schema errors in the response
    TARGET = "target"             # Index out of range
    REGISTRY = "registry"         # Unknown key / missing template
    UNKNOWN = "unknown"           # Unclassified errors


_CATEGORY_BY_TYPE: dict[type[Exception], ErrorCategory] = {
    InferenceTransportError: ErrorCategory.INFERENCE,
    InferenceParseError: ErrorCategory.PARSE,
    InvalidTarget: ErrorCategory.TARGET,
    RegistryError: ErrorCategory.REGISTRY,
}


def categorize(exc: Exception) -> ErrorCategory:
    """Map an exception to its error category."""
    for exc_type, category in _CATEGORY_BY_TYPE.items():
        if isinstance(exc, exc_type):
            return category
    return ErrorCategory.UNKNOWN


@dataclass
class CalculationError:
    """Structured per-target error with context."""

    category: ErrorCategory
    message: str
    key: str | None = None
    step_index: int | None = None
    intervention_index: int | None = None
    original_error: Exception | None = None
    context: dict[str, Any] = field(default_factory=dict)

    @property
    def target(self) -> str:
        """Short location label, e.g. ``1.0/ift``."""
        return f"{self.step_index}.{self.intervention_index}/{self.key}"

    def __str__(self) -> str:
        parts = [f"{self.category.value}: {self.message}"]
        if self.key:
            parts.append(f"target={self.target}")
        return " | ".join(parts)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "category": self.category.value,
            "message": self.message,
            "key": self.key,
            "step_index": self.step_index,
            "intervention_index": self.intervention_index,
            "context": self.context,
        }


@dataclass
class BatchErrors:
    """Aggregate errors across one batch run."""

    errors: list[CalculationError] = field(default_factory=list)

    def add(self, error: CalculationError):
        """Record one failed target."""
        self.errors.append(error)

    @property
    def error_count(self) -> int:
        return len(self.errors)

    @property
    def failed_targets(self) -> list[str]:
        return [e.target for e in self.errors]

    def summary(self) -> dict:
        """Get summary statistics."""
        by_category = {}
        for error in self.errors:
            cat = error.category.value
            by_category[cat] = by_category.get(cat, 0) + 1

        return {
            "total_errors": self.error_count,
            "errors_by_category": by_category,
        }

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "errors": [e.to_dict() for e in self.errors],
            "failed_targets": self.failed_targets,
            "summary": self.summary(),
        }


# Factory functions for common error records

def inference_error(
    message: str,
    key: str | None = None,
    step_index: int | None = None,
    intervention_index: int | None = None,
    original: Exception | None = None,
) -> CalculationError:
    """Create an inference transport error record."""
    return CalculationError(
        category=ErrorCategory.INFERENCE,
        message=message,
        key=key,
        step_index=step_index,
        intervention_index=intervention_index,
        original_error=original,
    )


def parse_error(
    message: str,
    key: str | None = None,
    step_index: int | None = None,
    intervention_index: int | None = None,
    raw_response: str | None = None,
) -> CalculationError:
    """Create a response parse error record."""
    return CalculationError(
        category=ErrorCategory.PARSE,
        message=message,
        key=key,
        step_index=step_index,
        intervention_index=intervention_index,
        context={"raw_response": raw_response[:ParseConfig.RAW_RESPONSE_PREVIEW] if raw_response else None},
    )


def target_error(
    exc: Exception,
    key: str,
    step_index: int,
    intervention_index: int,
) -> CalculationError:
    """Create an error record from any exception raised for one target."""
    category = categorize(exc)
    if category == ErrorCategory.PARSE:
        return parse_error(
            str(exc), key, step_index, intervention_index,
            raw_response=getattr(exc, "raw_response", None),
        )
    if category == ErrorCategory.INFERENCE:
        return inference_error(str(exc), key, step_index, intervention_index, original=exc)
    return CalculationError(
        category=category,
        message=str(exc),
        key=key,
        step_index=step_index,
        intervention_index=intervention_index,
        original_error=exc,
    )
