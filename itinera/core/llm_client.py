"""Inference client for indicator calculations.

Wraps the litellm Router behind the one call the engine needs:

    text = await client.infer(system_prompt, user_prompt, history=[...])

The client owns message building, usage tracking, and turning every provider
failure into InferenceTransportError. It does NOT parse the answer: the raw
text goes back to the engine, which strips code fences and validates the
JSON itself, so a malformed answer is reported as a parse error rather than
silently repaired.

Retry and fallback are handled by the Router (core/llm_router.py); by the
time an exception reaches this module, retries are exhausted.
"""

import logging
from typing import Protocol

from itinera.core.config import DEFAULT_MODEL, LLMConfig
from itinera.core.cost_tracker import CostTracker
from itinera.core.errors import InferenceTransportError
from itinera.core.llm_router import get_router

logger = logging.getLogger(__name__)

# Suppress LiteLLM debug noise (done once at module load)
logging.getLogger("litellm").setLevel(logging.ERROR)
logging.getLogger("LiteLLM").setLevel(logging.ERROR)
logging.getLogger("httpx").setLevel(logging.ERROR)


class InferenceClient(Protocol):
    """What the engine needs from an inference service."""

    async def infer(
        self,
        system_prompt: str,
        user_prompt: str,
        history: list[dict[str, str]] | None = None,
        indicator: str = "",
    ) -> str: ...


class LLMClient:
    """InferenceClient backed by the litellm Router.

    Usage:
        client = LLMClient(cost_tracker=tracker)
        text = await client.infer(
            system_prompt=template.get_system_prompt(),
            user_prompt=template.get_prompt(context),
            indicator="ift",
        )

        # Refinement: prior turns go between the system and the new user turn
        text = await client.infer(
            system_prompt=REFINE_SYSTEM_PROMPT,
            user_prompt=build_refine_prompt("augmente de 10%"),
            history=[{"role": "assistant", "content": "..."}],
            indicator="refine:ift",
        )
    """

    def __init__(
        self,
        model: str | None = None,
        cost_tracker: CostTracker | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            model: Model identifier. Defaults to DEFAULT_MODEL.
            cost_tracker: Optional tracker; every successful call is recorded.
            temperature: Sampling temperature. Defaults to LLMConfig.TEMPERATURE.
            max_tokens: Completion budget. Defaults to LLMConfig.MAX_TOKENS.
        """
        self.model = model or DEFAULT_MODEL
        self.cost_tracker = cost_tracker
        self.temperature = LLMConfig.TEMPERATURE if temperature is None else temperature
        self.max_tokens = max_tokens or LLMConfig.MAX_TOKENS

    async def infer(
        self,
        system_prompt: str,
        user_prompt: str,
        history: list[dict[str, str]] | None = None,
        indicator: str = "",
    ) -> str:
        """Send one request and return the raw completion text.

        Args:
            system_prompt: Instructions (system message).
            user_prompt: The request (last user message).
            history: Prior user/assistant turns, oldest first.
            indicator: Indicator key, used for usage tracking.

        Returns:
            Raw completion text.

        Raises:
            InferenceTransportError: On any provider error or an empty completion.
        """
        messages = [{"role": "system", "content": system_prompt}]
        messages.extend(history or [])
        messages.append({"role": "user", "content": user_prompt})

        try:
            response = await get_router(self.model).acompletion(
                model=self.model,
                messages=messages,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except Exception as e:
            logger.debug(f"Inference failed for {indicator or 'request'}: {type(e).__name__}: {e}")
            raise InferenceTransportError(f"Inference call failed: {e}", original=e) from e

        if self.cost_tracker:
            self.cost_tracker.record(self.model, getattr(response, "usage", None), indicator=indicator)

        content = response.choices[0].message.content if response.choices else None
        if not content or not content.strip():
            raise InferenceTransportError("Inference returned an empty completion")
        return content
