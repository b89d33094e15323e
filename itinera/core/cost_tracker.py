"""Token and cost tracking for inference calls.

A batch over a full rotation makes hundreds of calls; the tracker records each
one against the indicator it was made for, so the summary shows which
indicators are the expensive ones.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

# Fallback pricing per 1M tokens (USD) when litellm lookup fails.
_FALLBACK_PRICING: dict[str, tuple[float, float]] = {
    # (input_cost_per_1M, output_cost_per_1M)
    "gpt-4o": (2.50, 10.00),
    "gpt-4o-mini": (0.15, 0.60),
    "gpt-4-turbo": (10.00, 30.00),
}

_warned_models: set[str] = set()


def _normalize_model_name(model: str) -> str:
    """Strip provider routing prefixes for pricing lookup.

    'openrouter/openai/gpt-4o-mini' and 'azure/gpt-4o-mini' both price as
    'gpt-4o-mini'.
    """
    for prefix in ("openrouter/openai/", "openrouter/", "azure/", "openai/"):
        if model.startswith(prefix):
            return model[len(prefix):]
    return model


@dataclass
class CallUsage:
    """Usage for a single inference call."""

    model: str
    prompt_tokens: int
    completion_tokens: int
    indicator: str = ""  # FieldKey the call was made for, "refine:<key>" for refinements

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens

    @property
    def cost(self) -> float:
        """Cost in USD from litellm's pricing database, else the fallback table."""
        normalized = _normalize_model_name(self.model)
        try:
            from litellm import cost_per_token
            prompt_cost, completion_cost = cost_per_token(
                model=normalized,
                prompt_tokens=self.prompt_tokens,
                completion_tokens=self.completion_tokens,
            )
            return prompt_cost + completion_cost
        except Exception:
            if normalized in _FALLBACK_PRICING:
                input_rate, output_rate = _FALLBACK_PRICING[normalized]
                return (self.prompt_tokens * input_rate + self.completion_tokens * output_rate) / 1_000_000
            if self.model not in _warned_models:
                _warned_models.add(self.model)
                logger.warning(f"No pricing available for model '{self.model}', cost will show as $0")
            return 0.0


@dataclass
class CostTracker:
    """Accumulates token usage and costs across a batch."""

    calls: list[CallUsage] = field(default_factory=list)

    def record(self, model: str, usage: Any, indicator: str = "") -> CallUsage:
        """Record usage from a LiteLLM response.

        Args:
            model: Model identifier.
            usage: The usage object from response.usage (may be None).
            indicator: Indicator key the call was made for.
        """
        call = CallUsage(
            model=model,
            prompt_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            completion_tokens=getattr(usage, "completion_tokens", 0) or 0,
            indicator=indicator,
        )
        if usage is not None:
            self.calls.append(call)
        return call

    @property
    def total_prompt_tokens(self) -> int:
        return sum(c.prompt_tokens for c in self.calls)

    @property
    def total_completion_tokens(self) -> int:
        return sum(c.completion_tokens for c in self.calls)

    @property
    def total_tokens(self) -> int:
        return self.total_prompt_tokens + self.total_completion_tokens

    @property
    def total_cost(self) -> float:
        return sum(c.cost for c in self.calls)

    @property
    def call_count(self) -> int:
        return len(self.calls)

    def by_indicator(self) -> dict[str, dict[str, Any]]:
        """Breakdown of calls, tokens and cost per indicator key."""
        breakdown: dict[str, dict[str, Any]] = {}
        for call in self.calls:
            stats = breakdown.setdefault(
                call.indicator or "unknown",
                {"calls": 0, "tokens": 0, "cost": 0.0},
            )
            stats["calls"] += 1
            stats["tokens"] += call.total_tokens
            stats["cost"] += call.cost
        return breakdown

    def summary(self) -> str:
        """Formatted usage report."""
        lines = [
            "=" * 50,
            "COST SUMMARY",
            "=" * 50,
            f"Total API calls: {self.call_count}",
            f"Total tokens: {self.total_tokens:,}",
            f"  - Prompt: {self.total_prompt_tokens:,}",
            f"  - Completion: {self.total_completion_tokens:,}",
            f"Total cost: ${self.total_cost:.4f}",
            "",
            "By indicator:",
        ]
        for indicator, stats in sorted(self.by_indicator().items()):
            lines.append(
                f"  {indicator}: {stats['calls']} calls, {stats['tokens']:,} tokens, ${stats['cost']:.4f}"
            )
        lines.append("=" * 50)
        return "\n".join(lines)

    def to_dict(self) -> dict:
        """Export as dict for JSON serialization."""
        return {
            "total_calls": self.call_count,
            "total_tokens": self.total_tokens,
            "prompt_tokens": self.total_prompt_tokens,
            "completion_tokens": self.total_completion_tokens,
            "total_cost_usd": round(self.total_cost, 6),
            "by_indicator": self.by_indicator(),
        }
