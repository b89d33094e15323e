"""LiteLLM Router configuration for retry, fallback, and cooldown.

All transport retries for inference calls happen here, at Router level; the
calculation engine never retries. Once retries on DEFAULT_MODEL are
exhausted the Router falls back to FALLBACK_MODEL.

Supports multiple LLM providers:
- OpenAI (default): Uses OPENAI_API_KEY
- OpenRouter: Uses OPENROUTER_API_KEY
- Azure OpenAI: Uses AZURE_API_KEY, AZURE_API_BASE, AZURE_API_VERSION

The Router is built on first use so that importing the package (and running
the tests) never needs an API key.
"""

import os

from litellm import Router

from itinera.core.config import (
    LLM_PROVIDER,
    API_KEY_ENV_VAR,
    DEFAULT_MODEL,
    FALLBACK_MODEL,
    RouterConfig,
)

_router: Router | None = None


def _deployment(model: str) -> dict:
    """One model_list entry for the configured provider."""
    params: dict = {"model": model}
    if LLM_PROVIDER == "azure":
        params["api_key"] = os.environ.get("AZURE_API_KEY", "")
        params["api_base"] = os.environ.get("AZURE_API_BASE", "")
        params["api_version"] = os.environ.get("AZURE_API_VERSION", "2024-02-15-preview")
    else:
        params["api_key"] = f"os.environ/{API_KEY_ENV_VAR}"
    return {"model_name": model, "litellm_params": params}


def _build_model_list(model: str) -> list[dict]:
    models = [model]
    if FALLBACK_MODEL not in models:
        models.append(FALLBACK_MODEL)
    return [_deployment(m) for m in models]


def build_router(model: str | None = None) -> Router:
    """Build the LLM Router with retry and fallback configuration.

    The router handles:
    - Automatic retries with backoff
    - Fallback from the primary model to FALLBACK_MODEL
    - Cooldown tracking for failed deployments

    Args:
        model: Primary model. Defaults to DEFAULT_MODEL.
    """
    model = model or DEFAULT_MODEL
    fallbacks = [{model: [FALLBACK_MODEL]}] if model != FALLBACK_MODEL else []

    return Router(
        model_list=_build_model_list(model),
        num_retries=RouterConfig.NUM_RETRIES,
        retry_after=RouterConfig.RETRY_AFTER,
        cooldown_time=RouterConfig.COOLDOWN_TIME,
        allowed_fails=RouterConfig.ALLOWED_FAILS,
        fallbacks=fallbacks,
    )


def get_router(model: str | None = None) -> Router:
    """Return the shared Router, building it on first call.

    Passing a model different from the one the cached Router was built for
    rebuilds it.
    """
    global _router
    model = model or DEFAULT_MODEL
    if _router is None or model not in _router.model_names:
        _router = build_router(model)
    return _router


def reset_router():
    """Drop the cached Router (for testing)."""
    global _router
    _router = None
