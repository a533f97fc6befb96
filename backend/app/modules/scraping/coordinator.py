"""ScrapeCoordinator: render and extract behind one call.

This is the failure-containment boundary for the whole pipeline: whatever
happens in the browser, ``scrape()`` returns well-formed ScrapedFacts.
A failed render degrades to facts derived from the URL alone.
"""

from __future__ import annotations

import time
from typing import Protocol

import structlog

from app.modules.scraping import extractor
from app.modules.scraping.schemas import PageContent, RenderFailure, ScrapedFacts

logger = structlog.get_logger()


class Renderer(Protocol):
    async def render(self, url: str) -> PageContent | RenderFailure: ...


def degraded_facts(url: str) -> ScrapedFacts:
    """Minimal facts built from the URL only."""
    company_name = extractor.company_name_from_url(url)
    return ScrapedFacts(
        url=url,
        title=company_name,
        description=extractor.generic_description(company_name),
        company_name=company_name,
        product_name=extractor.GENERIC_PRODUCT_NAME,
    )


class ScrapeCoordinator:
    def __init__(self, renderer: Renderer) -> None:
        self.renderer = renderer

    async def scrape(self, url: str) -> ScrapedFacts:
        start = time.monotonic()
        try:
            outcome = await self.renderer.render(url)
        except Exception as e:
            outcome = RenderFailure(url=url, kind="browser", message=str(e) or type(e).__name__)

        if isinstance(outcome, RenderFailure):
            logger.warning(
                "scrape_degraded",
                url=url,
                reason=outcome.kind,
                error=outcome.message,
            )
            return degraded_facts(url)

        try:
            facts = extractor.extract(url, outcome)
        except Exception as e:
            logger.error("scrape_degraded", url=url, reason="extraction", error=str(e))
            return degraded_facts(url)

        logger.info(
            "scrape_complete",
            url=url,
            company=facts.company_name,
            features=len(facts.features),
            pricing_snippets=len(facts.pricing_snippets),
            duration_ms=int((time.monotonic() - start) * 1000),
        )
        return facts
