"""Shared test fixtures for the Price Wizard backend test suite.

No test touches the network: the browser is replaced by FakeRenderer and
the LLM vendor by ScriptedEvaluator.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncGenerator
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient

from app.main import app
from app.modules.analysis.router import get_analysis_service
from app.modules.analysis.service import AnalysisService
from app.modules.analysis.store import InMemoryAnalysisStore
from app.modules.pricing.evaluators import PersonaEvaluator
from app.modules.pricing.orchestrator import EnsembleOrchestrator
from app.modules.pricing.schemas import Persona
from app.modules.scraping.coordinator import ScrapeCoordinator
from app.modules.scraping.schemas import PageContent, RenderFailure

# ---------------------------------------------------------------------------
# Canned persona responses
# ---------------------------------------------------------------------------

MARKET_ANALYST_JSON = {
    "analysis": "Positioned against mid-market workflow suites.",
    "estimatedPriceRange": "$5,000 - $7,000/month",
}
VALUE_ENGINEER_JSON = {
    "analysis": "Saves two analyst FTEs per customer.",
    "estimatedValueToCustomer": "$40,000/month",
    "justifiedPricePoint": "$10,000/month",
}
QUANT_ANALYST_JSON = {
    "analysis": "Van Westendorp band centres near eight and a half thousand.",
    "optimalPricePoint": "$8,500/month",
    "acceptablePriceRange": "$6,000 - $11,000/month",
}
HEAD_OF_PRICING_JSON = {
    "synthesis": "Blend of value ceiling and market floor.",
    "recommendedPrice": "$9,000/month",
    "confidencePercentage": 82,
}

# Prompt text that identifies which persona a prompt is for
PERSONA_MARKERS = {
    Persona.head_of_pricing: "You are the Head of Pricing",
    Persona.market_analyst: "Act as a Market Analyst",
    Persona.value_engineer: "Act as a Value Engineer",
    Persona.quant_analyst: "Act as a Quantitative Analyst",
}


def persona_of(prompt: str) -> Persona:
    for persona, marker in PERSONA_MARKERS.items():
        if marker in prompt:
            return persona
    raise AssertionError(f"Unrecognised prompt: {prompt[:80]!r}")


def default_responses() -> dict[Persona, Any]:
    return {
        Persona.market_analyst: json.dumps(MARKET_ANALYST_JSON),
        Persona.value_engineer: json.dumps(VALUE_ENGINEER_JSON),
        Persona.quant_analyst: json.dumps(QUANT_ANALYST_JSON),
        Persona.head_of_pricing: json.dumps(HEAD_OF_PRICING_JSON),
    }


class ScriptedEvaluator(PersonaEvaluator):
    """Answers each persona from a script.

    A script value may be a response string, None (empty payload) or an
    exception instance to raise. ``delays`` holds per-persona sleeps.
    """

    def __init__(
        self,
        responses: dict[Persona, Any] | None = None,
        delays: dict[Persona, float] | None = None,
    ) -> None:
        super().__init__(model="scripted", temperature=0.0)
        self.responses = default_responses()
        self.responses.update(responses or {})
        self.delays = delays or {}
        self.calls: list[Persona] = []
        self.prompts: dict[Persona, str] = {}
        self.finished: list[Persona] = []
        self.cancelled: list[Persona] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def evaluate(self, prompt: str) -> str | None:
        persona = persona_of(prompt)
        self.calls.append(persona)
        self.prompts[persona] = prompt
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delays.get(persona, 0))
        except asyncio.CancelledError:
            self.cancelled.append(persona)
            raise
        finally:
            self.in_flight -= 1

        self.finished.append(persona)
        response = self.responses[persona]
        if isinstance(response, BaseException):
            raise response
        return response


class FakeRenderer:
    """Returns a fixed outcome for every URL and records what was asked."""

    def __init__(self, outcome: PageContent | RenderFailure | Exception) -> None:
        self.outcome = outcome
        self.urls: list[str] = []

    async def render(self, url: str) -> PageContent | RenderFailure:
        self.urls.append(url)
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome


def page(url: str, text: str, title: str = "", html: str = "") -> PageContent:
    return PageContent(
        url=url,
        title=title,
        raw_text=text,
        rendered_html=html or f"<html><body><p>{text}</p></body></html>",
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def evaluator() -> ScriptedEvaluator:
    return ScriptedEvaluator()


@pytest.fixture
def store() -> InMemoryAnalysisStore:
    return InMemoryAnalysisStore()


@pytest.fixture
def timeout_renderer() -> FakeRenderer:
    return FakeRenderer(
        RenderFailure(url="https://acme.io/product", kind="timeout", message="Timeout 30000ms exceeded")
    )


@pytest.fixture
def make_service(store: InMemoryAnalysisStore, evaluator: ScriptedEvaluator):
    """Build an AnalysisService around a renderer and (optionally) an evaluator."""

    def _make(
        renderer: FakeRenderer, persona_evaluator: PersonaEvaluator | None = None
    ) -> AnalysisService:
        return AnalysisService(
            scraper=ScrapeCoordinator(renderer),
            orchestrator=EnsembleOrchestrator(persona_evaluator or evaluator, timeout_seconds=5),
            store=store,
        )

    return _make


@pytest.fixture
async def client(
    make_service, timeout_renderer: FakeRenderer
) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client that talks directly to the FastAPI ASGI app."""
    service = make_service(timeout_renderer)
    app.dependency_overrides[get_analysis_service] = lambda: service
    transport = ASGITransport(app=app)  # type: ignore[arg-type]
    try:
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            yield ac
    finally:
        app.dependency_overrides.pop(get_analysis_service, None)
