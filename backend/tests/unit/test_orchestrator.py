"""Unit tests for the ensemble orchestrator: fan-out, barrier, fail-fast."""

from __future__ import annotations

import asyncio

import pytest

from app.modules.pricing.errors import EnsembleError
from app.modules.pricing.orchestrator import EnsembleOrchestrator
from app.modules.pricing.schemas import (
    BASE_PERSONAS,
    EnsembleProgress,
    Persona,
    TargetTier,
)
from app.modules.scraping.schemas import ScrapedFacts
from conftest import ScriptedEvaluator

TIER = TargetTier(name="Analytics", features="Dashboards; Alerts")
FACTS = ScrapedFacts(
    url="https://acme.io/product",
    title="Acme",
    description="Revenue analytics for SaaS teams.",
    company_name="Acme",
    product_name="Analytics",
    features=("real-time dashboards and alerts", "SSO and audit logs"),
    content="Acme helps revenue teams forecast.",
)


async def _run(orchestrator: EnsembleOrchestrator, **kwargs):
    return await asyncio.wait_for(
        orchestrator.run("Acme", FACTS.description, TIER, FACTS, **kwargs), timeout=5
    )


# ---------------------------------------------------------------------------
# Success
# ---------------------------------------------------------------------------


async def test_full_committee_produces_result() -> None:
    """Three personas plus synthesis → EnsembleResult."""
    evaluator = ScriptedEvaluator()
    result = await _run(EnsembleOrchestrator(evaluator))

    assert result.market_analyst.estimated_price_range == "$5,000 - $7,000/month"
    assert result.value_engineer.justified_price_point == "$10,000/month"
    assert result.quantitative_analyst.optimal_price_point == "$8,500/month"
    assert result.head_of_pricing.recommended_price == "$9,000/month"
    assert result.head_of_pricing.confidence_percentage == 82

    payload = result.to_payload()
    assert set(payload) == {"marketAnalyst", "valueEngineer", "quantitativeAnalyst", "headOfPricing"}
    assert payload["headOfPricing"]["recommendedPrice"] == "$9,000/month"


async def test_base_personas_run_concurrently_before_synthesis() -> None:
    """Base personas overlap; synthesis starts after all three finish."""
    delays = {p: 0.05 for p in BASE_PERSONAS}
    evaluator = ScriptedEvaluator(delays=delays)

    await _run(EnsembleOrchestrator(evaluator))

    assert evaluator.max_in_flight == 3
    assert set(evaluator.calls[:3]) == set(BASE_PERSONAS)
    assert evaluator.calls[3] is Persona.head_of_pricing
    assert len(evaluator.calls) == 4


async def test_synthesis_prompt_embeds_the_three_opinions() -> None:
    """The synthesis prompt carries all three opinions."""
    evaluator = ScriptedEvaluator()
    await _run(EnsembleOrchestrator(evaluator))

    prompt = evaluator.prompts[Persona.head_of_pricing]
    assert '"estimatedPriceRange": "$5,000 - $7,000/month"' in prompt
    assert '"justifiedPricePoint": "$10,000/month"' in prompt
    assert '"optimalPricePoint": "$8,500/month"' in prompt


async def test_separate_synthesis_evaluator() -> None:
    """A dedicated synthesis evaluator handles only HeadOfPricing."""
    base = ScriptedEvaluator()
    head = ScriptedEvaluator()
    await _run(EnsembleOrchestrator(base, synthesis_evaluator=head))

    assert Persona.head_of_pricing not in base.calls
    assert head.calls == [Persona.head_of_pricing]


# ---------------------------------------------------------------------------
# Failure
# ---------------------------------------------------------------------------


async def test_invalid_json_fails_run_and_skips_synthesis() -> None:
    """Invalid persona JSON → EnsembleError, no synthesis call."""
    evaluator = ScriptedEvaluator({Persona.quant_analyst: "not json at all"})

    with pytest.raises(EnsembleError) as exc_info:
        await _run(EnsembleOrchestrator(evaluator))

    assert exc_info.value.failed_persona is Persona.quant_analyst
    assert exc_info.value.stage == "json_parse"
    assert Persona.head_of_pricing not in evaluator.calls


async def test_first_failure_cancels_in_flight_siblings() -> None:
    """First failure cancels the siblings still running."""
    evaluator = ScriptedEvaluator(
        {Persona.market_analyst: ConnectionError("connection reset by peer")},
        delays={Persona.value_engineer: 10, Persona.quant_analyst: 10},
    )

    with pytest.raises(EnsembleError) as exc_info:
        await _run(EnsembleOrchestrator(evaluator))

    err = exc_info.value
    assert err.failed_persona is Persona.market_analyst
    assert err.stage == "transport"
    assert "connection reset by peer" in str(err)
    assert set(err.cancelled_personas) == {Persona.value_engineer, Persona.quant_analyst}
    assert set(evaluator.cancelled) == {Persona.value_engineer, Persona.quant_analyst}
    assert Persona.head_of_pricing not in evaluator.calls


async def test_empty_payload_fails_run() -> None:
    """Empty persona response → EnsembleError at stage "empty"."""
    evaluator = ScriptedEvaluator({Persona.value_engineer: None})

    with pytest.raises(EnsembleError) as exc_info:
        await _run(EnsembleOrchestrator(evaluator))

    assert exc_info.value.failed_persona is Persona.value_engineer
    assert exc_info.value.stage == "empty"


async def test_slow_persona_times_out() -> None:
    """Persona slower than the timeout → stage "timeout"."""
    evaluator = ScriptedEvaluator(delays={Persona.value_engineer: 2})

    with pytest.raises(EnsembleError) as exc_info:
        await _run(EnsembleOrchestrator(evaluator, timeout_seconds=0.05))

    assert exc_info.value.failed_persona is Persona.value_engineer
    assert exc_info.value.stage == "timeout"
    assert Persona.head_of_pricing not in evaluator.calls


async def test_out_of_range_confidence_fails_synthesis() -> None:
    """Synthesis confidence out of range → EnsembleError."""
    evaluator = ScriptedEvaluator(
        {
            Persona.head_of_pricing: (
                '{"synthesis": "x", "recommendedPrice": "$9,000/month", '
                '"confidencePercentage": 150}'
            )
        }
    )

    with pytest.raises(EnsembleError) as exc_info:
        await _run(EnsembleOrchestrator(evaluator))

    assert exc_info.value.failed_persona is Persona.head_of_pricing
    assert exc_info.value.stage == "schema"
    assert exc_info.value.cancelled_personas == []


async def test_caller_cancellation_cancels_all_personas() -> None:
    """Cancelling the run cancels every persona call."""
    evaluator = ScriptedEvaluator(delays={p: 10 for p in BASE_PERSONAS})
    task = asyncio.create_task(
        EnsembleOrchestrator(evaluator).run("Acme", "desc", TIER, FACTS)
    )
    await asyncio.sleep(0.02)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert set(evaluator.cancelled) == set(BASE_PERSONAS)


# ---------------------------------------------------------------------------
# Progress
# ---------------------------------------------------------------------------


async def test_progress_events_count_up_to_four() -> None:
    """Progress events count completions up to 4/4."""
    events: list[EnsembleProgress] = []
    await _run(EnsembleOrchestrator(ScriptedEvaluator()), on_progress=events.append)

    completed = [e for e in events if e.state == "completed"]
    assert [e.completed for e in completed] == [1, 2, 3, 4]
    assert completed[-1].persona is Persona.head_of_pricing
    assert all(e.total == 4 for e in events)
    assert sum(e.state == "started" for e in events) == 4


async def test_progress_reports_failure_and_cancellation() -> None:
    """Progress reports the failed persona and the cancelled ones."""
    events: list[EnsembleProgress] = []
    evaluator = ScriptedEvaluator(
        {Persona.market_analyst: RuntimeError("boom")},
        delays={Persona.value_engineer: 10, Persona.quant_analyst: 10},
    )

    with pytest.raises(EnsembleError):
        await _run(EnsembleOrchestrator(evaluator), on_progress=events.append)

    states = {(e.persona, e.state) for e in events}
    assert (Persona.market_analyst, "failed") in states
    assert (Persona.value_engineer, "cancelled") in states
    assert (Persona.quant_analyst, "cancelled") in states


async def test_broken_progress_callback_does_not_break_run() -> None:
    """A raising progress callback is logged, the run still completes."""
    def explode(event: EnsembleProgress) -> None:
        raise RuntimeError("ui went away")

    result = await _run(EnsembleOrchestrator(ScriptedEvaluator()), on_progress=explode)
    assert result.head_of_pricing.recommended_price == "$9,000/month"
