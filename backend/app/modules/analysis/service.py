"""Analysis workflow: scrape, short-circuit or run the committee, persist.

  URL -> ScrapeCoordinator -> ScrapedFacts
           pricing found?  yes -> record born Completed {pricingFound: true}
                           no  -> company + tier bookkeeping
                                  record Running -> EnsembleOrchestrator
                                  -> Completed (price, confidence) | Failed
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Protocol

import structlog

from app.core.config import Settings, settings as default_settings
from app.modules.analysis.lifecycle import AnalysisStatus
from app.modules.analysis.schemas import (
    AnalysisNotFoundError,
    AnalysisRecord,
    AnalysisRequest,
    Company,
    CompanyCreate,
    CompanyNotFoundError,
    PricingTier,
)
from app.modules.analysis.store import AnalysisStore
from app.modules.pricing.errors import EnsembleError
from app.modules.pricing.orchestrator import EnsembleOrchestrator, ProgressCallback
from app.modules.pricing.schemas import TargetTier
from app.modules.scraping.schemas import ScrapedFacts

logger = structlog.get_logger()

QUALITATIVE_NOTES_CHARS = 500
COMPANY_SEARCH_LIMIT = 10


class Scraper(Protocol):
    async def scrape(self, url: str) -> ScrapedFacts: ...


def pricing_found_result(facts: ScrapedFacts) -> dict[str, Any]:
    return {
        "pricingFound": True,
        "url": facts.url,
        "pricingInfo": list(facts.pricing_snippets),
        "companyName": facts.company_name,
        "productName": facts.product_name,
        "features": list(facts.features),
    }


def select_target_tier(tiers: list[PricingTier]) -> PricingTier:
    """Second tier when there are several (the usual mid tier), else the only one."""
    return tiers[1] if len(tiers) > 1 else tiers[0]


class AnalysisService:
    def __init__(
        self,
        scraper: Scraper,
        orchestrator: EnsembleOrchestrator,
        store: AnalysisStore,
        config: Settings | None = None,
    ) -> None:
        self.scraper = scraper
        self.orchestrator = orchestrator
        self.store = store
        self.config = config or default_settings

    # ------------------------------------------------------------------
    # Company / tier bookkeeping
    # ------------------------------------------------------------------

    async def _find_or_create_company(
        self, facts: ScrapedFacts, *, with_context: bool
    ) -> Company:
        company = await self.store.find_company_by_name(facts.company_name)
        if company is not None:
            return company

        fields: dict[str, Any] = {
            "name": facts.company_name,
            "description": facts.description,
            "industry": self.config.default_company_industry,
            "size": self.config.default_company_size,
        }
        if with_context:
            fields["qualitative"] = facts.content[:QUALITATIVE_NOTES_CHARS]
            fields["website"] = facts.url
        company = await self.store.create_company(**fields)
        logger.info("company_created", company_id=company.id, name=company.name)
        return company

    async def _target_tier(
        self, company: Company, facts: ScrapedFacts, target_market: str
    ) -> PricingTier:
        tiers = await self.store.get_pricing_tiers(company.id)
        if not tiers:
            tier = await self.store.create_pricing_tier(
                company_id=company.id,
                name=facts.product_name or self.config.default_tier_name,
                features=(
                    "; ".join(facts.features)
                    if facts.features
                    else self.config.default_tier_features
                ),
                target_market=target_market,
            )
            tiers = [tier]
        return select_target_tier(tiers)

    # ------------------------------------------------------------------
    # Workflow
    # ------------------------------------------------------------------

    async def run_analysis(
        self,
        request: AnalysisRequest,
        on_progress: ProgressCallback | None = None,
    ) -> AnalysisRecord:
        """Run one analysis end to end and return the persisted record.

        Raises:
            EnsembleError: the committee failed; the record is already
                stored as Failed.
            asyncio.CancelledError: the run was cancelled; a Running record
                is stored as Failed before the cancellation propagates.
        """
        start = time.monotonic()
        log = logger.bind(url=request.url, user_id=request.user_id)
        facts = await self.scraper.scrape(request.url)

        if facts.has_pricing:
            company = await self._find_or_create_company(facts, with_context=False)
            record = await self.store.create_record(
                AnalysisRecord(
                    company_id=company.id,
                    user_id=request.user_id,
                    status=AnalysisStatus.completed,
                    analysis_depth=request.analysis_depth,
                    target_market=request.target_market,
                    result=pricing_found_result(facts),
                )
            )
            log.info(
                "pricing_found",
                analysis_id=record.id,
                pricing_snippets=list(facts.pricing_snippets),
            )
            return record

        company = await self._find_or_create_company(facts, with_context=True)
        tier = await self._target_tier(company, facts, request.target_market)

        record = await self.store.create_record(
            AnalysisRecord(
                company_id=company.id,
                user_id=request.user_id,
                status=AnalysisStatus.running,
                analysis_depth=request.analysis_depth,
                target_market=request.target_market,
            )
        )
        log = log.bind(analysis_id=record.id)
        log.info("analysis_created", company=company.name, tier=tier.name)

        try:
            result = await self.orchestrator.run(
                company_name=facts.company_name,
                description=facts.description,
                target_tier=TargetTier(name=tier.name, features=tier.features),
                facts=facts,
                on_progress=on_progress,
            )
        except EnsembleError as e:
            await self._mark_failed(record.id, str(e), failed_persona=e.failed_persona.value)
            log.warning(
                "analysis_failed",
                failed_persona=e.failed_persona.value,
                stage=e.stage,
                error=str(e),
            )
            raise
        except asyncio.CancelledError:
            # Shielded so the Failed write lands even though this task is cancelled
            await asyncio.shield(self._mark_failed(record.id, "Analysis cancelled"))
            log.warning("analysis_cancelled")
            raise
        except Exception as e:
            await self._mark_failed(record.id, str(e) or e.__class__.__name__)
            log.error("analysis_failed", error=str(e), exc_info=True)
            raise

        try:
            record = await self.store.update_record(
                record.id,
                status=AnalysisStatus.completed,
                result=result.to_payload(),
                recommended_price=result.head_of_pricing.recommended_price,
                confidence_score=result.head_of_pricing.confidence_percentage,
            )
        except Exception as e:
            await self._mark_failed(record.id, str(e) or e.__class__.__name__)
            log.error("analysis_failed", error=str(e), exc_info=True)
            raise
        except asyncio.CancelledError:
            await asyncio.shield(self._mark_failed(record.id, "Analysis cancelled"))
            log.warning("analysis_cancelled")
            raise

        log.info(
            "analysis_completed",
            recommended_price=record.recommended_price,
            confidence=record.confidence_score,
            duration_ms=int((time.monotonic() - start) * 1000),
        )
        return record

    async def _mark_failed(
        self, analysis_id: str, message: str, failed_persona: str | None = None
    ) -> None:
        payload: dict[str, Any] = {"error": message or "Analysis failed"}
        if failed_persona:
            payload["failedPersona"] = failed_persona
        try:
            await self.store.update_record(
                analysis_id, status=AnalysisStatus.failed, result=payload
            )
        except Exception:
            # Caller still gets the original exception
            logger.error("mark_failed_failed", analysis_id=analysis_id, exc_info=True)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_analysis(self, analysis_id: str) -> AnalysisRecord:
        record = await self.store.get_record(analysis_id)
        if record is None:
            raise AnalysisNotFoundError(analysis_id)
        return record

    async def get_history(self, user_id: str, limit: int = 20) -> list[AnalysisRecord]:
        return await self.store.list_records_by_user(user_id, limit=limit)

    async def get_company(self, company_id: str) -> Company:
        company = await self.store.get_company(company_id)
        if company is None:
            raise CompanyNotFoundError(company_id)
        return company

    async def search_companies(
        self, query: str, limit: int = COMPANY_SEARCH_LIMIT
    ) -> list[Company]:
        """Case-insensitive substring match on company name; blank query -> []."""
        query = query.strip()
        if not query:
            return []
        return await self.store.search_companies(query, limit=limit)

    async def create_company(self, data: CompanyCreate) -> Company:
        company = await self.store.create_company(**data.model_dump())
        logger.info("company_created", company_id=company.id, name=company.name)
        return company
