"""Centralized configuration for the indicator engine.

All magic numbers, thresholds, and configuration constants are documented here.
Each constant includes:
- What it controls
- Why this value was chosen
- What changing it affects
"""

import os
from typing import Final


# =============================================================================
# LLM Provider Configuration
# =============================================================================
#
# To switch providers, set the LLM_PROVIDER environment variable:
#   - "openai" (default): Uses the OpenAI API directly
#   - "openrouter": Uses OpenRouter API gateway
#   - "azure": Uses Azure OpenAI Service
#
# For Azure, also set:
#   - AZURE_API_KEY: Your Azure OpenAI API key
#   - AZURE_API_BASE: Your Azure endpoint (e.g., https://your-resource.openai.azure.com/)
#   - AZURE_API_VERSION: API version (e.g., 2024-02-15-preview)
#   - AZURE_DEPLOYMENT_GPT_4O_MINI: Deployment name for the default model
#
# =============================================================================

LLM_PROVIDER: Final[str] = os.environ.get("LLM_PROVIDER", "openai")
"""LLM provider to use. Set via LLM_PROVIDER env var.

Supported values:
- "openai": OpenAI API (default)
- "openrouter": OpenRouter API gateway
- "azure": Azure OpenAI Service
"""

API_KEY_ENV_VARS: Final[dict[str, str]] = {
    "openai": "OPENAI_API_KEY",
    "openrouter": "OPENROUTER_API_KEY",
    "azure": "AZURE_API_KEY",
}

API_KEY_ENV_VAR: Final[str] = API_KEY_ENV_VARS.get(LLM_PROVIDER, "OPENAI_API_KEY")
"""Environment variable name for the LLM API key (provider-dependent)."""


def _get_model_name(base_model: str) -> str:
    """Convert a base model name to provider-specific format.

    Args:
        base_model: Base model name (e.g., "gpt-4o", "gpt-4o-mini")

    Returns:
        Provider-specific model identifier.
    """
    if LLM_PROVIDER == "azure":
        deployment_env = f"AZURE_DEPLOYMENT_{base_model.upper().replace('-', '_')}"
        return f"azure/{os.environ.get(deployment_env, base_model)}"
    if LLM_PROVIDER == "openrouter":
        return f"openrouter/openai/{base_model}"
    return base_model


DEFAULT_MODEL: Final[str] = os.environ.get("ITINERA_MODEL") or _get_model_name("gpt-4o-mini")
"""Model used for every indicator calculation and refinement.

A whole rotation easily holds 20+ interventions × 15 indicators, so a batch
run makes hundreds of calls. The mini model keeps that affordable; set
ITINERA_MODEL (or pass --model on the CLI) to use something larger.
"""

FALLBACK_MODEL: Final[str] = _get_model_name("gpt-4o")
"""Model the Router falls back to once retries on DEFAULT_MODEL are exhausted."""


# LLM Call Configuration

class LLMConfig:
    """Parameters sent with every completion request."""

    TEMPERATURE: Final[float] = float(os.environ.get("ITINERA_TEMPERATURE", "0.3"))
    """Sampling temperature.

    Slightly above zero: estimates need some latitude in picking a plausible
    reference value, but the same intervention should give stable numbers
    across reruns.
    """

    MAX_TOKENS: Final[int] = int(os.environ.get("ITINERA_MAX_TOKENS", "2000"))
    """Completion budget. A full answer (reasoning, steps, sources, caveats)
    stays well under 1500 tokens; 2000 leaves headroom for long assumption lists.
    """


class RouterConfig:
    """Retry and fallback settings for the litellm Router.

    Transport retries live here and nowhere else: the engine treats any error
    the client raises as terminal for that target.
    """

    NUM_RETRIES: Final[int] = 3
    """Retries per request before falling back to FALLBACK_MODEL."""

    RETRY_AFTER: Final[int] = 1
    """Minimum seconds between retries (backoff grows per attempt)."""

    COOLDOWN_TIME: Final[int] = 60
    """Seconds a failing deployment is taken out of rotation."""

    ALLOWED_FAILS: Final[int] = 2
    """Failures per minute before a deployment enters cooldown."""


# Batch Configuration

class BatchConfig:
    """Scheduling parameters for calculate_all_missing."""

    MAX_PARALLEL: Final[int] = 5
    """Default chunk size, i.e. the peak number of in-flight inference calls.

    Higher values finish large rotations faster but hit provider rate limits
    sooner; 5 stays below the default tier limits of the common providers.
    """

    SECONDS_PER_INDICATOR: Final[float] = 4.0
    """Average wall time per indicator, used for pre-run estimates.

    Measured on gpt-4o-mini with sequential calls. With chunking the real
    duration is lower; the estimate is deliberately pessimistic.
    """


# Display Configuration

class DisplayConfig:
    """Sentinels used when rendering indicator values."""

    EMPTY: Final[str] = "-"
    """Shown for missing, zero, or unparseable values."""

    NOT_APPLICABLE: Final[str] = "N/A"
    """Shown when an entry is explicitly not applicable (status n/a)."""

    PER_HECTARE_SUFFIX: Final[str] = "/ha"
    """Appended to per-hectare indicators in prompt context."""

    DATE_FALLBACK: Final[str] = "non calculable"
    """Rendered instead of DD/MM when the intervention date cannot be computed."""

    DEFAULT_STEP_NAME: Final[str] = "Étape {n}"
    """Progress label for a step without a name (n is 1-based)."""

    DEFAULT_INTERVENTION_NAME: Final[str] = "Intervention {n}"
    """Progress label for an intervention without a name (n is 1-based)."""


class ParseConfig:
    """Limits applied when handling raw LLM responses."""

    RAW_RESPONSE_PREVIEW: Final[int] = 500
    """Characters of the raw response kept on parse errors for debugging."""
