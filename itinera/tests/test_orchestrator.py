"""Tests for itinera.orchestrator.

Tests batch calculation with a scripted inference client:
- Target discovery and pre-run estimate
- Scheduling order and chunked concurrency
- Cancellation between chunks
- Per-target failure isolation and partial-success reporting
- Merge semantics on the working copy
"""

import pytest

from itinera.core.cancellation import CancellationToken
from itinera.core.errors import ErrorCategory
from itinera.engine import CalculationEngine
from itinera.indicators import AI_CALCULABLE_KEYS
from itinera.orchestrator import (
    BatchOrchestrator,
    Target,
    find_missing_targets,
    needs_calculation,
    prepare_calculation,
)
from itinera.pydantic_models import FieldKey, Status, ValueEntry


def _orchestrator(inference, logger) -> BatchOrchestrator:
    return BatchOrchestrator(CalculationEngine(inference), name="test", logger=logger)


# =============================================================================
# Target discovery
# =============================================================================


class TestNeedsCalculation:
    @pytest.mark.parametrize("entry, expected", [
        (None, True),
        (ValueEntry(key="ift", value=None, reviewed=True), True),
        (ValueEntry(key="ift", value=1, status="ia", reviewed=False), True),
        (ValueEntry(key="ift", value=1, status="ia", reviewed=True), False),
        (ValueEntry(key="ift", value=1, status="user", reviewed=True), False),
        (ValueEntry(key="ift", value="N/A", status="n/a", reviewed="n/a"), False),
    ])
    def test_missing_only(self, entry, expected):
        assert needs_calculation(entry) is expected

    @pytest.mark.parametrize("entry, expected", [
        (ValueEntry(key="ift", value=1, status="ia", reviewed=True), True),
        (ValueEntry(key="ift", value="N/A", status="n/a", reviewed="n/a"), True),
        (ValueEntry(key="ift", value=1, status="calculated", reviewed=True), True),
        (ValueEntry(key="ift", value=1, status="user", reviewed=True), False),
    ])
    def test_recalculate_all(self, entry, expected):
        assert needs_calculation(entry, recalculate_all=True) is expected


class TestFindMissingTargets:
    def test_counts(self, sample_system):
        assert len(find_missing_targets(sample_system)) == 26
        assert len(find_missing_targets(sample_system, recalculate_all=True)) == 28

    def test_reviewed_values_are_skipped(self, sample_system):
        targets = find_missing_targets(sample_system)
        assert Target(0, 0, FieldKey.FREQUENCE) not in targets
        assert Target(0, 1, FieldKey.IFT) not in targets
        assert Target(0, 1, FieldKey.COUTS_PHYTOS) not in targets
        assert Target(0, 0, FieldKey.GNR) in targets
        assert Target(0, 1, FieldKey.EIQ) in targets

    def test_recalculate_all_keeps_user_values(self, sample_system):
        targets = find_missing_targets(sample_system, recalculate_all=True)
        assert Target(0, 1, FieldKey.IFT) in targets
        assert Target(0, 1, FieldKey.COUTS_PHYTOS) in targets
        assert Target(0, 1, FieldKey.FREQUENCE) not in targets

    def test_order_is_step_intervention_key(self, sample_system):
        targets = find_missing_targets(sample_system)
        ordering = [
            (t.step_index, t.intervention_index, AI_CALCULABLE_KEYS.index(t.key)) for t in targets
        ]
        assert ordering == sorted(ordering)

    def test_derived_totals_are_never_targets(self, labour_system):
        keys = {t.key for t in find_missing_targets(labour_system)}
        assert keys == set(AI_CALCULABLE_KEYS)
        assert FieldKey.MARGE_BRUTE not in keys

    def test_target_label(self):
        assert str(Target(1, 0, FieldKey.IFT)) == "1.0/ift"


class TestPrepareCalculation:
    def test_estimate(self, sample_system):
        estimate = prepare_calculation(sample_system)
        assert estimate.without_value == 24
        assert estimate.to_calculate == 26
        assert estimate.to_recalculate == 28
        assert estimate.estimated_seconds == 26 * 4.0

    def test_no_calls(self, sample_system, scripted_inference, silent_logger):
        inference = scripted_inference()
        estimate = _orchestrator(inference, silent_logger).prepare_calculation(sample_system)
        assert estimate.to_dict()["to_calculate"] == 26
        assert inference.calls == []


# =============================================================================
# Batch run
# =============================================================================


class TestCalculateAllMissing:
    """End-to-end batch runs over small trees."""

    @pytest.mark.asyncio
    async def test_fills_every_key_of_a_bare_intervention(self, labour_system, scripted_inference, silent_logger):
        inference = scripted_inference()
        result = await _orchestrator(inference, silent_logger).calculate_all_missing(labour_system)

        values = result.system_data.steps[0].interventions[0].values
        assert len(values) == 15
        assert [v.key for v in values] == list(AI_CALCULABLE_KEYS)
        for entry in values:
            assert entry.status == Status.IA
            assert entry.reviewed is False
            assert entry.value == 10.0
        assert result.calculated_count == 15
        assert result.total == 15
        assert result.cancelled is False

    @pytest.mark.asyncio
    async def test_input_is_not_mutated(self, sample_system, scripted_inference, silent_logger):
        before = sample_system.model_dump()
        result = await _orchestrator(scripted_inference(), silent_logger).calculate_all_missing(sample_system)
        assert sample_system.model_dump() == before
        assert result.system_data is not sample_system

    @pytest.mark.asyncio
    async def test_calls_follow_scheduling_order(self, sample_system, scripted_inference, silent_logger):
        inference = scripted_inference()
        result = await _orchestrator(inference, silent_logger).calculate_all_missing(sample_system, max_parallel=3)

        expected = [str(t.key) for t in find_missing_targets(sample_system)]
        assert [c["indicator"] for c in inference.calls] == expected
        assert [str(e.key) for e in result.summary] == expected

    @pytest.mark.asyncio
    @pytest.mark.parametrize("max_parallel", [1, 3, 5, 10])
    async def test_peak_concurrency_bounded(self, labour_system, scripted_inference, silent_logger, max_parallel):
        inference = scripted_inference()
        await _orchestrator(inference, silent_logger).calculate_all_missing(
            labour_system, max_parallel=max_parallel,
        )
        assert inference.peak == min(max_parallel, 15)
        assert len(inference.calls) == 15

    @pytest.mark.asyncio
    async def test_later_chunks_see_earlier_results(self, labour_system, scripted_inference, silent_logger):
        inference = scripted_inference()
        await _orchestrator(inference, silent_logger).calculate_all_missing(labour_system, max_parallel=1)

        assert "**Fréquence**" not in inference.calls[0]["user_prompt"]
        assert "- **Fréquence** : 10.0" in inference.calls[1]["user_prompt"]

    @pytest.mark.asyncio
    async def test_existing_entry_replaced_in_place(self, sample_system, scripted_inference, silent_logger):
        result = await _orchestrator(scripted_inference(), silent_logger).calculate_all_missing(sample_system)

        values = result.system_data.steps[0].interventions[0].values
        assert [v.key for v in values[:3]] == [FieldKey.FREQUENCE, FieldKey.GNR, FieldKey.IFT]
        assert values[0].value == 1
        assert values[0].status == Status.USER
        assert values[1].value == 10.0
        assert len({v.key for v in values}) == len(values)

    @pytest.mark.asyncio
    async def test_assumptions_replaced_then_kept(self, labour_system, scripted_inference, silent_logger):
        inference = scripted_inference(responses={
            "ift": {"value": 1, "assumptions": ["Glyphosate 1 L/ha"]},
        })
        result = await _orchestrator(inference, silent_logger).calculate_all_missing(labour_system, max_parallel=1)
        assert result.system_data.steps[0].interventions[0].assumptions == ["Glyphosate 1 L/ha"]

    @pytest.mark.asyncio
    async def test_not_applicable_answer(self, labour_system, scripted_inference, silent_logger):
        inference = scripted_inference(responses={
            "coutsPhytos": {"applicable": False, "value": "N/A", "reasoning": "Aucun produit"},
        })
        result = await _orchestrator(inference, silent_logger).calculate_all_missing(labour_system)

        entry = next(v for v in result.system_data.steps[0].interventions[0].values if v.key == "coutsPhytos")
        assert entry.status == Status.NOT_APPLICABLE
        assert entry.value == "N/A"
        assert result.calculated_count == 15

    @pytest.mark.asyncio
    async def test_nothing_to_do(self, labour_system, scripted_inference, silent_logger):
        inference = scripted_inference()
        orchestrator = _orchestrator(inference, silent_logger)
        first = await orchestrator.calculate_all_missing(labour_system)
        for entry in first.system_data.steps[0].interventions[0].values:
            entry.reviewed = True
        calls_before = len(inference.calls)

        second = await orchestrator.calculate_all_missing(first.system_data)
        assert second.total == 0
        assert second.summary == []
        assert len(inference.calls) == calls_before

    @pytest.mark.asyncio
    @pytest.mark.parametrize("max_parallel", [0, -1, True, 2.5, "5"])
    async def test_invalid_max_parallel(self, labour_system, scripted_inference, silent_logger, max_parallel):
        inference = scripted_inference()
        with pytest.raises(ValueError, match="max_parallel"):
            await _orchestrator(inference, silent_logger).calculate_all_missing(
                labour_system, max_parallel=max_parallel,
            )
        assert inference.calls == []


# =============================================================================
# Progress
# =============================================================================


class TestProgress:
    @pytest.mark.asyncio
    async def test_progress_arguments(self, empty_names_system, scripted_inference, silent_logger):
        seen = []

        def on_progress(current, total, key, step_name, intervention_name):
            seen.append((current, total, key, step_name, intervention_name))

        await _orchestrator(scripted_inference(), silent_logger).calculate_all_missing(
            empty_names_system, max_parallel=4, on_progress=on_progress,
        )

        assert len(seen) == 45
        assert [s[0] for s in seen] == list(range(1, 46))
        assert all(s[1] == 45 for s in seen)
        assert seen[0] == (1, 45, "frequence", "Étape 1", "Intervention 1")
        assert seen[15][4] == "Intervention 2"
        assert seen[-1][2:] == ("prixVente", "Étape 1", "Intervention 3")

    @pytest.mark.asyncio
    async def test_progress_precedes_call(self, labour_system, scripted_inference, silent_logger):
        inference = scripted_inference()
        calls_seen = []

        def on_progress(current, total, key, step_name, intervention_name):
            calls_seen.append(len(inference.calls))

        await _orchestrator(inference, silent_logger).calculate_all_missing(
            labour_system, max_parallel=1, on_progress=on_progress,
        )
        assert calls_seen == list(range(15))

    @pytest.mark.asyncio
    async def test_failing_callback_fails_only_its_target(self, labour_system, scripted_inference, silent_logger):
        def on_progress(current, total, key, step_name, intervention_name):
            if key == "ges":
                raise RuntimeError("display closed")

        result = await _orchestrator(scripted_inference(), silent_logger).calculate_all_missing(
            labour_system, on_progress=on_progress,
        )
        assert result.calculated_count == 14
        assert [e.key for e in result.summary if e.failed] == [FieldKey.GES]


# =============================================================================
# Cancellation
# =============================================================================


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_during_first_chunk(self, labour_system, scripted_inference, silent_logger):
        inference = scripted_inference()
        token = CancellationToken()

        def on_progress(current, total, key, step_name, intervention_name):
            if current == 5:
                token.cancel()

        result = await _orchestrator(inference, silent_logger).calculate_all_missing(
            labour_system, max_parallel=5, on_progress=on_progress, cancellation=token,
        )

        assert result.cancelled is True
        assert len(result.summary) == 5
        assert len(inference.calls) == 5
        assert len(result.system_data.steps[0].interventions[0].values) == 5
        assert result.total == 15
        silent_logger.cancelled.assert_called_once_with(5, 15)

    @pytest.mark.asyncio
    async def test_cancelled_before_start(self, sample_system, scripted_inference, silent_logger):
        inference = scripted_inference()
        token = CancellationToken()
        token.cancel()

        result = await _orchestrator(inference, silent_logger).calculate_all_missing(
            sample_system, cancellation=token,
        )

        assert result.cancelled is True
        assert result.summary == []
        assert result.calculated_count == 0
        assert inference.calls == []
        assert result.system_data.model_dump() == sample_system.model_dump()

    @pytest.mark.asyncio
    async def test_any_flag_object_works(self, labour_system, scripted_inference, silent_logger):
        class Flag:
            is_cancelled = True

        result = await _orchestrator(scripted_inference(), silent_logger).calculate_all_missing(
            labour_system, cancellation=Flag(),
        )
        assert result.cancelled is True

    @pytest.mark.asyncio
    async def test_cancel_after_last_chunk_is_not_reported(self, labour_system, scripted_inference, silent_logger):
        token = CancellationToken()

        def on_progress(current, total, key, step_name, intervention_name):
            if current == total:
                token.cancel()

        result = await _orchestrator(scripted_inference(), silent_logger).calculate_all_missing(
            labour_system, max_parallel=5, on_progress=on_progress, cancellation=token,
        )
        assert result.cancelled is False
        assert len(result.summary) == 15


# =============================================================================
# Failure isolation
# =============================================================================


class TestFailureIsolation:
    """One failing target never aborts the batch."""

    @pytest.mark.asyncio
    async def test_transport_failure(self, labour_system, scripted_inference, silent_logger):
        inference = scripted_inference(fail_on={"ift"})
        result = await _orchestrator(inference, silent_logger).calculate_all_missing(labour_system)

        assert len(result.summary) == 15
        assert result.calculated_count == 14
        assert result.failed_count == 1

        failed = [e for e in result.summary if e.failed]
        assert failed[0].key == FieldKey.IFT
        assert failed[0].value is None
        assert failed[0].confidence == "low"
        assert "provider unavailable" in failed[0].error

        values = result.system_data.steps[0].interventions[0].values
        assert len(values) == 14
        assert all(v.key != FieldKey.IFT for v in values)

        assert result.errors.failed_targets == ["0.0/ift"]
        assert result.errors.errors[0].category == ErrorCategory.INFERENCE

    @pytest.mark.asyncio
    async def test_parse_failure(self, labour_system, scripted_inference, silent_logger):
        inference = scripted_inference(responses={"eiq": "Je ne sais pas."})
        result = await _orchestrator(inference, silent_logger).calculate_all_missing(labour_system)

        assert result.calculated_count == 14
        assert result.errors.errors[0].category == ErrorCategory.PARSE
        assert result.errors.errors[0].context["raw_response"] == "Je ne sais pas."

    @pytest.mark.asyncio
    async def test_failed_target_keeps_stored_value(self, sample_system, scripted_inference, silent_logger):
        inference = scripted_inference(fail_on={"gnr"})
        result = await _orchestrator(inference, silent_logger).calculate_all_missing(sample_system)

        gnr = result.system_data.steps[0].interventions[0].values[1]
        assert gnr.key == FieldKey.GNR
        assert gnr.value == 25

    @pytest.mark.asyncio
    async def test_every_target_fails(self, labour_system, scripted_inference, silent_logger):
        inference = scripted_inference(fail_on=set(str(k) for k in AI_CALCULABLE_KEYS))
        result = await _orchestrator(inference, silent_logger).calculate_all_missing(labour_system)

        assert result.calculated_count == 0
        assert result.failed_count == 15
        assert result.system_data.steps[0].interventions[0].values == []

    @pytest.mark.asyncio
    async def test_base_exceptions_propagate(self, labour_system, silent_logger):
        class Abort(BaseException):
            pass

        class AbortingInference:
            async def infer(self, system_prompt, user_prompt, history=None, indicator=""):
                raise Abort()

        with pytest.raises(Abort):
            await _orchestrator(AbortingInference(), silent_logger).calculate_all_missing(labour_system)


# =============================================================================
# Reporting
# =============================================================================


class TestReporting:
    @pytest.mark.asyncio
    async def test_partial_success_report(self, labour_system, scripted_inference, silent_logger):
        inference = scripted_inference(fail_on={"ift"})
        result = await _orchestrator(inference, silent_logger).calculate_all_missing(labour_system)
        assert result.report() == "14 of 15 calculated, 1 failed: 0.0/ift: provider unavailable for ift"

    @pytest.mark.asyncio
    async def test_clean_report(self, labour_system, scripted_inference, silent_logger):
        result = await _orchestrator(scripted_inference(), silent_logger).calculate_all_missing(labour_system)
        assert result.report() == "15 of 15 calculated"

    @pytest.mark.asyncio
    async def test_cancelled_report(self, labour_system, scripted_inference, silent_logger):
        token = CancellationToken()
        token.cancel()
        result = await _orchestrator(scripted_inference(), silent_logger).calculate_all_missing(
            labour_system, cancellation=token,
        )
        assert result.report() == "0 of 15 calculated (cancelled after 0 targets)"

    @pytest.mark.asyncio
    async def test_to_dict(self, labour_system, scripted_inference, silent_logger):
        inference = scripted_inference(fail_on={"ift"})
        result = await _orchestrator(inference, silent_logger).calculate_all_missing(labour_system)
        data = result.to_dict()
        assert data["calculated_count"] == 14
        assert len(data["summary"]) == 15
        assert data["errors"]["failed_targets"] == ["0.0/ift"]

    @pytest.mark.asyncio
    async def test_logger_lifecycle(self, labour_system, scripted_inference, silent_logger):
        inference = scripted_inference(fail_on={"ift"})
        await _orchestrator(inference, silent_logger).calculate_all_missing(labour_system, max_parallel=5)

        silent_logger.start_batch.assert_called_once_with("test", 15, 5, model="fake-model")
        assert silent_logger.start_chunk.call_count == 3
        assert silent_logger.tick.call_count == 15
        _, kwargs = silent_logger.end_batch.call_args
        assert kwargs["success"] is False
        assert kwargs["stats"]["failed"] == 1
        assert kwargs["stats"]["errors_by_category"] == {"inference": 1}
