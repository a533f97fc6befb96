from __future__ import annotations

import re
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.modules.analysis.models import CompanyRow, PricingAnalysisRow, PricingTierRow
from app.modules.analysis.schemas import (
    AnalysisNotFoundError,
    AnalysisRecord,
    Company,
    PricingTier,
)
from app.modules.analysis.store import AnalysisStore, check_changes, check_new_record


class SqlAlchemyAnalysisStore(AnalysisStore):
    """AnalysisStore on an async SQLAlchemy engine.

    Every call runs in its own short transaction so an ensemble run that takes
    minutes never holds a connection.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    # --- analysis records ---

    async def create_record(self, record: AnalysisRecord) -> AnalysisRecord:
        check_new_record(record)
        async with self.session_factory() as db:
            row = PricingAnalysisRow(**record.model_dump(mode="python"))
            row.status = record.status.value
            db.add(row)
            await db.commit()
            await db.refresh(row)
            return AnalysisRecord.model_validate(row)

    async def update_record(self, analysis_id: str, **changes: Any) -> AnalysisRecord:
        async with self.session_factory() as db:
            result = await db.execute(
                select(PricingAnalysisRow)
                .where(PricingAnalysisRow.id == analysis_id)
                .with_for_update()
            )
            row = result.scalar_one_or_none()
            if row is None:
                raise AnalysisNotFoundError(analysis_id)

            for key, value in check_changes(row.status, changes).items():
                setattr(row, key, value.value if key == "status" else value)

            await db.commit()
            await db.refresh(row)
            return AnalysisRecord.model_validate(row)

    async def get_record(self, analysis_id: str) -> AnalysisRecord | None:
        async with self.session_factory() as db:
            row = await db.get(PricingAnalysisRow, analysis_id)
            return AnalysisRecord.model_validate(row) if row else None

    async def list_records_by_user(
        self, user_id: str, limit: int = 20
    ) -> list[AnalysisRecord]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(PricingAnalysisRow)
                .where(PricingAnalysisRow.user_id == user_id)
                .order_by(PricingAnalysisRow.created_at.desc())
                .limit(limit)
            )
            return [AnalysisRecord.model_validate(r) for r in result.scalars().all()]

    # --- companies and tiers ---

    async def find_company_by_name(self, name: str) -> Company | None:
        async with self.session_factory() as db:
            result = await db.execute(
                select(CompanyRow)
                .where(func.lower(CompanyRow.name) == name.lower())
                .order_by(CompanyRow.created_at)
                .limit(1)
            )
            row = result.scalar_one_or_none()
            return Company.model_validate(row) if row else None

    async def get_company(self, company_id: str) -> Company | None:
        async with self.session_factory() as db:
            row = await db.get(CompanyRow, company_id)
            return Company.model_validate(row) if row else None

    async def search_companies(self, query: str, limit: int = 10) -> list[Company]:
        pattern = "%" + re.sub(r"([\\%_])", r"\\\1", query) + "%"
        async with self.session_factory() as db:
            result = await db.execute(
                select(CompanyRow)
                .where(CompanyRow.name.ilike(pattern, escape="\\"))
                .order_by(CompanyRow.created_at)
                .limit(limit)
            )
            return [Company.model_validate(r) for r in result.scalars().all()]

    async def create_company(self, **fields: Any) -> Company:
        company = Company(**fields)
        async with self.session_factory() as db:
            row = CompanyRow(**company.model_dump(mode="python"))
            db.add(row)
            await db.commit()
            await db.refresh(row)
            return Company.model_validate(row)

    async def get_pricing_tiers(self, company_id: str) -> list[PricingTier]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(PricingTierRow)
                .where(PricingTierRow.company_id == company_id)
                .order_by(PricingTierRow.created_at)
            )
            return [PricingTier.model_validate(r) for r in result.scalars().all()]

    async def create_pricing_tier(self, **fields: Any) -> PricingTier:
        tier = PricingTier(**fields)
        async with self.session_factory() as db:
            row = PricingTierRow(**tier.model_dump(mode="python"))
            db.add(row)
            await db.commit()
            await db.refresh(row)
            return PricingTier.model_validate(row)
