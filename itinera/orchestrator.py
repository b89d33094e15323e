"""Batch orchestrator: fill every missing indicator of a rotation.

The batch works on a private deep copy of the tree. Targets are scheduled in
a fixed order (step, intervention, key) and run in chunks of ``max_parallel``
concurrent calls; a chunk is merged into the copy only after all of its calls
settle, so the copy is only ever written from this module's own control flow.

High-level flow:
  find_missing_targets → chunk → [progress → calculate] × chunk (gather)
  → merge in scheduling order → check cancellation → next chunk
"""

import asyncio
from dataclasses import dataclass, field
from typing import Callable

from itinera.core.batch_logger import BatchLogger, get_logger
from itinera.core.cancellation import Cancellable
from itinera.core.config import BatchConfig, DisplayConfig
from itinera.core.errors import BatchErrors, target_error
from itinera.core.value_store import clone_system, find_entry
from itinera.engine import CalculationEngine, merge_result
from itinera.indicators import AI_CALCULABLE_KEYS, get_indicator
from itinera.pydantic_models import FieldKey, Status, SummaryEntry, SystemData, ValueEntry

ProgressCallback = Callable[[int, int, str, str, str], None]
"""(current 1-based, total, key, step name, intervention name)"""


@dataclass(frozen=True)
class Target:
    """One computation unit: (step index, intervention index, key)."""

    step_index: int
    intervention_index: int
    key: FieldKey

    def __str__(self) -> str:
        return f"{self.step_index}.{self.intervention_index}/{self.key}"


@dataclass
class CalculationEstimate:
    """Pre-run counts for a rotation, shown before the user starts a batch."""

    without_value: int
    to_calculate: int
    to_recalculate: int
    estimated_seconds: float

    def to_dict(self) -> dict:
        return {
            "without_value": self.without_value,
            "to_calculate": self.to_calculate,
            "to_recalculate": self.to_recalculate,
            "estimated_seconds": self.estimated_seconds,
        }


@dataclass
class BatchResult:
    """Outcome of calculate_all_missing.

    Attributes:
        system_data: The updated copy of the tree.
        calculated_count: Summary entries without an error.
        summary: One entry per attempted target, in scheduling order.
        total: Number of targets that were scheduled.
        cancelled: True when the run stopped before the last chunk.
        errors: Structured records of every failed target.
    """

    system_data: SystemData
    calculated_count: int
    summary: list[SummaryEntry]
    total: int
    cancelled: bool = False
    errors: BatchErrors = field(default_factory=BatchErrors)

    @property
    def failed_count(self) -> int:
        return sum(1 for entry in self.summary if entry.failed)

    def report(self) -> str:
        """Partial-success line, e.g. '13 of 15 calculated, 2 failed: ...'."""
        text = f"{self.calculated_count} of {self.total} calculated"
        failed = [entry for entry in self.summary if entry.failed]
        if failed:
            reasons = "; ".join(
                f"{entry.step_index}.{entry.intervention_index}/{entry.key}: {entry.error}"
                for entry in failed
            )
            text += f", {len(failed)} failed: {reasons}"
        if self.cancelled:
            text += f" (cancelled after {len(self.summary)} targets)"
        return text

    def to_dict(self) -> dict:
        return {
            "calculated_count": self.calculated_count,
            "total": self.total,
            "cancelled": self.cancelled,
            "summary": [entry.model_dump(mode="json") for entry in self.summary],
            "errors": self.errors.to_dict(),
        }


def needs_calculation(entry: ValueEntry | None, recalculate_all: bool = False) -> bool:
    """Whether a stored entry (or its absence) should be (re)calculated.

    Missing entries, null values and unreviewed values always qualify. With
    ``recalculate_all``, every value not entered by a user qualifies too.
    """
    if entry is None or entry.value is None or not entry.is_reviewed:
        return True
    return recalculate_all and entry.status != Status.USER


def find_missing_targets(system: SystemData, recalculate_all: bool = False) -> list[Target]:
    """Every (step, intervention, key) target that needs calculation, in order."""
    targets = []
    for step_index, step in enumerate(system.steps):
        for intervention_index, intervention in enumerate(step.interventions):
            for key in AI_CALCULABLE_KEYS:
                if not get_indicator(key).is_applicable(intervention):
                    continue
                entry = find_entry(intervention.values, key)
                if needs_calculation(entry, recalculate_all):
                    targets.append(Target(step_index, intervention_index, key))
    return targets


def prepare_calculation(system: SystemData) -> CalculationEstimate:
    """Count what a batch would do, without calling anything."""
    without_value = 0
    for step in system.steps:
        for intervention in step.interventions:
            for key in AI_CALCULABLE_KEYS:
                entry = find_entry(intervention.values, key)
                if entry is None or entry.value is None:
                    without_value += 1

    to_calculate = len(find_missing_targets(system))
    return CalculationEstimate(
        without_value=without_value,
        to_calculate=to_calculate,
        to_recalculate=len(find_missing_targets(system, recalculate_all=True)),
        estimated_seconds=to_calculate * BatchConfig.SECONDS_PER_INDICATOR,
    )


def _chunks(targets: list[Target], size: int) -> list[list[Target]]:
    return [targets[i:i + size] for i in range(0, len(targets), size)]


def _display_names(system: SystemData, target: Target) -> tuple[str, str]:
    step = system.steps[target.step_index]
    intervention = step.interventions[target.intervention_index]
    step_name = step.name or DisplayConfig.DEFAULT_STEP_NAME.format(n=target.step_index + 1)
    intervention_name = intervention.name or DisplayConfig.DEFAULT_INTERVENTION_NAME.format(
        n=target.intervention_index + 1
    )
    return step_name, intervention_name


class BatchOrchestrator:
    """Runs calculate_all_missing over a rotation."""

    def __init__(
        self,
        engine: CalculationEngine,
        name: str = "system",
        logger: BatchLogger | None = None,
    ):
        """Initialize the orchestrator.

        Args:
            engine: Engine used for each target.
            name: Label for log output (usually the document name).
            logger: Batch logger. Defaults to the global one.
        """
        self.engine = engine
        self.name = name
        self.logger = logger or get_logger()

    def find_missing_targets(self, system: SystemData, recalculate_all: bool = False) -> list[Target]:
        return find_missing_targets(system, recalculate_all)

    def prepare_calculation(self, system: SystemData) -> CalculationEstimate:
        return prepare_calculation(system)

    async def calculate_all_missing(
        self,
        system: SystemData,
        max_parallel: int = BatchConfig.MAX_PARALLEL,
        on_progress: ProgressCallback | None = None,
        cancellation: Cancellable | None = None,
        recalculate_all: bool = False,
    ) -> BatchResult:
        """Calculate every missing or unreviewed indicator.

        Args:
            system: Rotation tree. Not modified; the result carries a copy.
            max_parallel: Chunk size, i.e. peak number of in-flight calls.
            on_progress: Called right before each individual call.
            cancellation: Polled before each chunk; in-flight chunks finish.
            recalculate_all: Also recompute reviewed values not entered by a user.

        Returns:
            BatchResult with the updated copy and one summary entry per
            attempted target. Per-target failures never abort the batch.

        Raises:
            ValueError: If max_parallel is below 1.
        """
        if isinstance(max_parallel, bool) or not isinstance(max_parallel, int) or max_parallel < 1:
            raise ValueError(f"max_parallel must be a positive integer, got {max_parallel!r}")

        working = clone_system(system)
        targets = find_missing_targets(working, recalculate_all)
        total = len(targets)
        chunks = _chunks(targets, max_parallel)

        summary: list[SummaryEntry] = []
        errors = BatchErrors()
        cancelled = False

        self.logger.start_batch(
            self.name, total, max_parallel, model=getattr(self.engine.inference, "model", ""),
        )

        for chunk_number, chunk in enumerate(chunks, 1):
            if cancellation is not None and cancellation.is_cancelled:
                cancelled = True
                self.logger.cancelled(len(summary), total)
                break

            self.logger.start_chunk(chunk_number, len(chunk), len(chunks))
            first_index = len(summary) + 1
            tasks = [
                self._run_target(working, target, first_index + offset, total, on_progress)
                for offset, target in enumerate(chunk)
            ]
            results = await asyncio.gather(*tasks, return_exceptions=True)

            # Merge sequentially, in scheduling order, after the chunk has settled
            for target, result in zip(chunk, results):
                summary.append(self._merge(working, target, result, errors))

        calculated_count = sum(1 for entry in summary if not entry.failed)
        batch = BatchResult(
            system_data=working,
            calculated_count=calculated_count,
            summary=summary,
            total=total,
            cancelled=cancelled,
            errors=errors,
        )
        stats = {
            "scheduled": total,
            "calculated": calculated_count,
            "failed": batch.failed_count,
            "cancelled": cancelled,
        }
        if errors.error_count:
            stats["errors_by_category"] = errors.summary()["errors_by_category"]
        self.logger.end_batch(success=not cancelled and batch.failed_count == 0, stats=stats)
        return batch

    async def _run_target(
        self,
        working: SystemData,
        target: Target,
        index: int,
        total: int,
        on_progress: ProgressCallback | None,
    ):
        if on_progress:
            step_name, intervention_name = _display_names(working, target)
            on_progress(index, total, str(target.key), step_name, intervention_name)
        return await self.engine.calculate(
            working, target.step_index, target.intervention_index, target.key,
        )

    def _merge(
        self,
        working: SystemData,
        target: Target,
        result,
        errors: BatchErrors,
    ) -> SummaryEntry:
        """Apply one settled result to the working copy, or record its failure."""
        if isinstance(result, BaseException) and not isinstance(result, Exception):
            raise result

        if not isinstance(result, Exception):
            try:
                merge_result(working, target.step_index, target.intervention_index, target.key, result)
            except Exception as e:
                result = e

        if isinstance(result, Exception):
            error = target_error(result, str(target.key), target.step_index, target.intervention_index)
            errors.add(error)
            self.logger.tick(f"{target}: {result}", failed=True)
            self.logger.debug(str(error))
            return SummaryEntry(
                step_index=target.step_index,
                intervention_index=target.intervention_index,
                key=target.key,
                value=None,
                confidence="low",
                error=str(result) or type(result).__name__,
            )

        self.logger.tick(f"{target} = {result.value}")
        return SummaryEntry(
            step_index=target.step_index,
            intervention_index=target.intervention_index,
            key=target.key,
            value=result.value,
            confidence=result.confidence,
        )
