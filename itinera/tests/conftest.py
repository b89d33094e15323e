"""Pytest configuration and shared fixtures.

Provides reusable test fixtures for:
- Sample rotation documents (raw dicts and SystemData)
- A scripted inference client that records calls and peak concurrency
- A silent batch logger
"""

import asyncio
import json
from unittest.mock import MagicMock

import pytest

from itinera.core.batch_logger import BatchLogger
from itinera.core.errors import InferenceTransportError
from itinera.pydantic_models import SystemData


# =============================================================================
# Sample documents
# =============================================================================


SAMPLE_SYSTEM = {
    "name": "Rotation test",
    "assumptions": "Agriculture conventionnelle\n\nSol limoneux profond",
    "steps": [
        {
            "name": "Blé tendre",
            "startDate": "2024-10-01",
            "endDate": "2025-07-20",
            "description": "Blé d'hiver après colza",
            "assumptions": ["Précédent colza"],
            "values": [
                {"key": "rendementTMS", "value": 72, "status": "user", "reviewed": True},
            ],
            "interventions": [
                {
                    "name": "Labour",
                    "description": "Labour 25 cm, tracteur 150 CV",
                    "day": 0,
                    "assumptions": [],
                    "values": [
                        {"key": "frequence", "value": 1, "status": "user", "reviewed": True},
                        {"key": "gnr", "value": 25, "status": "ia", "confidence": "medium", "reviewed": False},
                        {"key": "ift", "value": None, "status": "unset"},
                    ],
                },
                {
                    "name": "Désherbage",
                    "description": "Herbicide demi-dose",
                    "day": 160,
                    "assumptions": ["Demi-dose"],
                    "values": [
                        {"key": "frequence", "value": "0.5", "status": "user", "reviewed": True},
                        {"key": "ift", "value": 1.2, "status": "ia", "confidence": "high", "reviewed": True},
                        {"key": "coutsPhytos", "value": "N/A", "status": "n/a", "reviewed": "n/a"},
                        {"key": "eiq", "value": "abc", "status": "ia", "reviewed": False},
                    ],
                },
            ],
        },
    ],
}


@pytest.fixture
def sample_dict():
    """Raw JSON document, as stored."""
    return json.loads(json.dumps(SAMPLE_SYSTEM))


@pytest.fixture
def sample_system(sample_dict):
    """Two interventions with a mix of user, ia, n/a and missing values."""
    return SystemData.model_validate(sample_dict)


@pytest.fixture
def labour_system():
    """One step "Labour" with one intervention and no stored values."""
    return SystemData.model_validate({
        "steps": [{
            "name": "Labour",
            "startDate": "2024-09-01",
            "interventions": [{"name": "Labour", "description": "Labour 25 cm", "day": 0}],
        }],
    })


@pytest.fixture
def empty_names_system():
    """Three interventions without names or values."""
    return SystemData.model_validate({
        "steps": [{
            "startDate": "2024-09-01",
            "interventions": [{"day": 0}, {"day": 10}, {"day": 20}],
        }],
    })


# =============================================================================
# Inference responses
# =============================================================================


DEFAULT_RESPONSE = {
    "applicable": True,
    "value": 10,
    "confidence": "medium",
    "reasoning": "x",
    "assumptions": [],
    "calculation_steps": [],
    "sources": [],
    "caveats": [],
}


@pytest.fixture
def default_response():
    return dict(DEFAULT_RESPONSE)


class ScriptedInference:
    """InferenceClient double.

    Returns a fixed answer per indicator key (or the default), records every
    call, and tracks how many calls are unresolved at the same time.
    """

    model = "fake-model"

    def __init__(self, responses=None, default=None, fail_on=(), delay=0.01):
        self.responses = responses or {}
        self.default = DEFAULT_RESPONSE if default is None else default
        self.fail_on = set(fail_on)
        self.delay = delay
        self.calls: list[dict] = []
        self.in_flight = 0
        self.peak = 0

    async def infer(self, system_prompt, user_prompt, history=None, indicator=""):
        self.calls.append({
            "system_prompt": system_prompt,
            "user_prompt": user_prompt,
            "history": history,
            "indicator": indicator,
        })
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            if indicator in self.fail_on:
                raise InferenceTransportError(f"provider unavailable for {indicator}")
            answer = self.responses.get(indicator, self.default)
            return answer if isinstance(answer, str) else json.dumps(answer)
        finally:
            self.in_flight -= 1


@pytest.fixture
def scripted_inference():
    """Factory for ScriptedInference clients."""
    def _create(**kwargs):
        return ScriptedInference(**kwargs)
    return _create


# =============================================================================
# Logging
# =============================================================================


@pytest.fixture
def silent_logger():
    """BatchLogger double that records calls and prints nothing."""
    return MagicMock(spec=BatchLogger)
