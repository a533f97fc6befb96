"""Ensemble orchestrator.

Runs the pricing committee for one target tier:

  MarketAnalyst  ┐
  ValueEngineer  ├─ concurrently ─> barrier ─> HeadOfPricing ─> EnsembleResult
  QuantAnalyst   ┘

Fail-fast: the first base persona that fails cancels its still-running
siblings and the run raises EnsembleError. Synthesis never sees a partial
committee.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from typing import Any

import structlog

from app.core.config import settings
from app.modules.pricing.errors import EnsembleError, EvaluationError
from app.modules.pricing.evaluators import PersonaEvaluator
from app.modules.pricing.prompts import build_persona_prompt, build_synthesis_prompt
from app.modules.pricing.schemas import (
    BASE_PERSONAS,
    EnsembleProgress,
    EnsembleResult,
    Persona,
    TargetTier,
)
from app.modules.pricing.validator import parse_opinion
from app.modules.scraping.schemas import ScrapedFacts

logger = structlog.get_logger()

ProgressCallback = Callable[[EnsembleProgress], Any]


class _Progress:
    """Counts finished personas and forwards events to an optional callback."""

    def __init__(self, callback: ProgressCallback | None) -> None:
        self.callback = callback
        self.completed = 0

    def emit(self, persona: Persona, state: str) -> None:
        if state == "completed":
            self.completed += 1
        if self.callback is None:
            return
        try:
            self.callback(
                EnsembleProgress(persona=persona, state=state, completed=self.completed)
            )
        except Exception:
            logger.warning("progress_callback_failed", persona=persona.value, exc_info=True)


class EnsembleOrchestrator:
    """Three base personas in parallel, then the Head of Pricing."""

    def __init__(
        self,
        evaluator: PersonaEvaluator,
        synthesis_evaluator: PersonaEvaluator | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        self.evaluator = evaluator
        self.synthesis_evaluator = synthesis_evaluator or evaluator
        self.timeout_seconds = (
            settings.evaluator_timeout_seconds if timeout_seconds is None else timeout_seconds
        )

    # ------------------------------------------------------------------
    # Single persona call
    # ------------------------------------------------------------------

    async def _evaluate(
        self,
        evaluator: PersonaEvaluator,
        persona: Persona,
        prompt: str,
        progress: _Progress,
    ) -> Any:
        start = time.monotonic()
        logger.info("persona_started", persona=persona.value)
        progress.emit(persona, "started")

        try:
            try:
                raw = await asyncio.wait_for(
                    evaluator.evaluate(prompt), timeout=self.timeout_seconds
                )
            except asyncio.TimeoutError as e:
                raise EvaluationError(
                    persona, "timeout", [f"No response within {self.timeout_seconds:g}s"]
                ) from e
            except EvaluationError:
                raise
            except Exception as e:
                raise EvaluationError(
                    persona, "transport", [str(e) or e.__class__.__name__]
                ) from e
            opinion = parse_opinion(persona, raw)
        except EvaluationError as e:
            logger.warning(
                "persona_failed",
                persona=persona.value,
                stage=e.stage,
                errors=e.errors,
                duration_ms=int((time.monotonic() - start) * 1000),
            )
            progress.emit(persona, "failed")
            raise

        logger.info(
            "persona_completed",
            persona=persona.value,
            duration_ms=int((time.monotonic() - start) * 1000),
        )
        progress.emit(persona, "completed")
        return opinion

    # ------------------------------------------------------------------
    # Fan-out / barrier
    # ------------------------------------------------------------------

    async def _run_base_personas(
        self,
        prompts: dict[Persona, str],
        progress: _Progress,
    ) -> dict[Persona, Any]:
        tasks = {
            persona: asyncio.create_task(
                self._evaluate(self.evaluator, persona, prompt, progress),
                name=f"persona-{persona.value}",
            )
            for persona, prompt in prompts.items()
        }

        try:
            done, pending = await asyncio.wait(
                tasks.values(), return_when=asyncio.FIRST_EXCEPTION
            )
        except asyncio.CancelledError:
            for task in tasks.values():
                task.cancel()
            await asyncio.gather(*tasks.values(), return_exceptions=True)
            raise

        failures = [
            (persona, task.exception())
            for persona, task in tasks.items()
            if task in done and not task.cancelled() and task.exception() is not None
        ]
        if not failures:
            return {persona: task.result() for persona, task in tasks.items()}

        cancelled = [persona for persona, task in tasks.items() if task in pending]
        for persona in cancelled:
            tasks[persona].cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        for persona in cancelled:
            progress.emit(persona, "cancelled")

        failed_persona, cause = failures[0]
        if cancelled:
            logger.warning(
                "siblings_cancelled",
                failed_persona=failed_persona.value,
                cancelled=[p.value for p in cancelled],
            )
        if not isinstance(cause, EvaluationError):
            cause = EvaluationError(
                failed_persona, "transport", [str(cause) or cause.__class__.__name__]
            )
        raise EnsembleError(cause, cancelled_personas=cancelled)

    # ------------------------------------------------------------------
    # Public entry point
    # ------------------------------------------------------------------

    async def run(
        self,
        company_name: str,
        description: str,
        target_tier: TargetTier,
        facts: ScrapedFacts | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> EnsembleResult:
        """Run the full committee.

        Raises:
            EnsembleError: any persona (base or synthesis) failed. No partial
                result is returned.
        """
        start = time.monotonic()
        progress = _Progress(on_progress)
        prompts = {
            persona: build_persona_prompt(
                persona, company_name, description, target_tier, facts
            )
            for persona in BASE_PERSONAS
        }

        opinions = await self._run_base_personas(prompts, progress)

        synthesis_prompt = build_synthesis_prompt(
            company_name,
            target_tier,
            market_analyst=opinions[Persona.market_analyst],
            value_engineer=opinions[Persona.value_engineer],
            quantitative_analyst=opinions[Persona.quant_analyst],
            facts=facts,
        )
        try:
            synthesis = await self._evaluate(
                self.synthesis_evaluator,
                Persona.head_of_pricing,
                synthesis_prompt,
                progress,
            )
        except EvaluationError as e:
            raise EnsembleError(e) from e

        logger.info(
            "synthesis_complete",
            company=company_name,
            tier=target_tier.name,
            recommended_price=synthesis.recommended_price,
            confidence=synthesis.confidence_percentage,
            duration_ms=int((time.monotonic() - start) * 1000),
        )
        return EnsembleResult(
            market_analyst=opinions[Persona.market_analyst],
            value_engineer=opinions[Persona.value_engineer],
            quantitative_analyst=opinions[Persona.quant_analyst],
            head_of_pricing=synthesis,
        )
