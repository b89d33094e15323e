"""Core utilities for the indicator engine."""

from itinera.core.config import (
    LLM_PROVIDER,
    API_KEY_ENV_VAR,
    API_KEY_ENV_VARS,
    DEFAULT_MODEL,
    FALLBACK_MODEL,
    LLMConfig,
    RouterConfig,
    BatchConfig,
    DisplayConfig,
    ParseConfig,
)
from itinera.core.errors import (
    ItineraError,
    InvalidTarget,
    InferenceTransportError,
    InferenceParseError,
    RegistryError,
    ErrorCategory,
    CalculationError,
    BatchErrors,
    categorize,
    inference_error,
    parse_error,
    target_error,
)
from itinera.core.cancellation import Cancellable, CancellationToken
from itinera.core.cost_tracker import CostTracker, CallUsage
from itinera.core.batch_logger import BatchLogger, get_logger, reset_logger
from itinera.core.llm_client import InferenceClient, LLMClient
from itinera.core.value_store import (
    get_step,
    get_intervention,
    get_values,
    find_entry,
    upsert_entry,
    clone_system,
    load_system,
    save_system,
    SystemRepository,
    JsonFileRepository,
)

__all__ = [
    # Config
    "LLM_PROVIDER",
    "API_KEY_ENV_VAR",
    "API_KEY_ENV_VARS",
    "DEFAULT_MODEL",
    "FALLBACK_MODEL",
    "LLMConfig",
    "RouterConfig",
    "BatchConfig",
    "DisplayConfig",
    "ParseConfig",
    # Errors
    "ItineraError",
    "InvalidTarget",
    "InferenceTransportError",
    "InferenceParseError",
    "RegistryError",
    "ErrorCategory",
    "CalculationError",
    "BatchErrors",
    "categorize",
    "inference_error",
    "parse_error",
    "target_error",
    # Cancellation
    "Cancellable",
    "CancellationToken",
    # Usage and logging
    "CostTracker",
    "CallUsage",
    "BatchLogger",
    "get_logger",
    "reset_logger",
    # Inference
    "InferenceClient",
    "LLMClient",
    # Tree access and persistence
    "get_step",
    "get_intervention",
    "get_values",
    "find_entry",
    "upsert_entry",
    "clone_system",
    "load_system",
    "save_system",
    "SystemRepository",
    "JsonFileRepository",
]
