"""Crop-rotation indicator engine.

Fills missing agronomic and economic indicators of a rotation plan
(steps → interventions → values) by asking an LLM, one indicator at a time,
and keeps each value's provenance, confidence and calculation dialogue.

Architecture:
    pydantic_models/  - Rotation tree, LLM answer and result models
    indicators/       - Closed registry of the 18 indicators (labels, units, readers)
    prompts/          - One prompt template per calculable indicator, plus refine
    core/             - Config, errors, logging, LLM client/router, context, storage
    engine.py         - calculate / refine for a single target
    orchestrator.py   - calculate_all_missing over a whole rotation

Usage:
    from itinera import BatchOrchestrator, CalculationEngine, LLMClient, load_system

    system = load_system("rotation.json")
    orchestrator = BatchOrchestrator(CalculationEngine(LLMClient()))
    result = await orchestrator.calculate_all_missing(system, max_parallel=5)
    print(result.report())

CLI:
    itinera calculate-missing rotation.json
"""

from itinera.core import (
    CancellationToken,
    CostTracker,
    LLMClient,
    load_system,
    save_system,
)
from itinera.engine import CalculationEngine, apply_result
from itinera.orchestrator import (
    BatchOrchestrator,
    BatchResult,
    CalculationEstimate,
    Target,
    find_missing_targets,
    prepare_calculation,
)
from itinera.pydantic_models import (
    FieldKey,
    Status,
    ConversationMessage,
    ValueEntry,
    Intervention,
    Step,
    SystemData,
    CalculationResult,
    SummaryEntry,
)

__all__ = [
    # Entry points
    "BatchOrchestrator",
    "CalculationEngine",
    "LLMClient",
    "CancellationToken",
    "CostTracker",
    "apply_result",
    "find_missing_targets",
    "prepare_calculation",
    "load_system",
    "save_system",
    # Results
    "BatchResult",
    "CalculationEstimate",
    "Target",
    "CalculationResult",
    "SummaryEntry",
    # Tree
    "FieldKey",
    "Status",
    "ConversationMessage",
    "ValueEntry",
    "Intervention",
    "Step",
    "SystemData",
]
