"""Persistence collaborator for the analysis workflow.

AnalysisStore is the contract; InMemoryAnalysisStore backs tests and the
CLI, SqlAlchemyAnalysisStore (sql_store.py) backs the API.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Any

from app.modules.analysis.lifecycle import (
    INITIAL_STATES,
    AnalysisStatus,
    InvalidTransitionError,
    transition,
)
from app.modules.analysis.schemas import (
    MUTABLE_RECORD_FIELDS,
    AnalysisNotFoundError,
    AnalysisRecord,
    Company,
    PricingTier,
    utcnow,
)


def check_new_record(record: AnalysisRecord) -> None:
    if record.status not in INITIAL_STATES:
        raise InvalidTransitionError(AnalysisStatus.pending, record.status)


def check_changes(current: AnalysisStatus, changes: dict[str, Any]) -> dict[str, Any]:
    """Validate an update against the lifecycle; returns the normalized changes.

    Raises:
        InvalidTransitionError: the record is terminal, or the status move
            is not allowed.
        ValueError: an immutable field was named.
    """
    unknown = set(changes) - MUTABLE_RECORD_FIELDS
    if unknown:
        raise ValueError(f"Cannot update analysis fields: {', '.join(sorted(unknown))}")

    current = AnalysisStatus(current)
    target = AnalysisStatus(changes.get("status", current))
    if current.is_terminal:
        raise InvalidTransitionError(current, target)

    normalized = dict(changes)
    if "status" in changes:
        normalized["status"] = transition(current, target)
    normalized["updated_at"] = utcnow()
    return normalized


class AnalysisStore(ABC):
    """Async persistence contract used by AnalysisService."""

    # --- analysis records ---

    @abstractmethod
    async def create_record(self, record: AnalysisRecord) -> AnalysisRecord: ...

    @abstractmethod
    async def update_record(self, analysis_id: str, **changes: Any) -> AnalysisRecord:
        """Apply ``changes`` under lifecycle rules.

        Raises:
            AnalysisNotFoundError: no such record.
            InvalidTransitionError: see check_changes().
        """
        ...

    @abstractmethod
    async def get_record(self, analysis_id: str) -> AnalysisRecord | None: ...

    @abstractmethod
    async def list_records_by_user(
        self, user_id: str, limit: int = 20
    ) -> list[AnalysisRecord]:
        """Newest first."""
        ...

    # --- companies and tiers ---

    @abstractmethod
    async def find_company_by_name(self, name: str) -> Company | None:
        """Case-insensitive exact match."""
        ...

    @abstractmethod
    async def get_company(self, company_id: str) -> Company | None: ...

    @abstractmethod
    async def search_companies(self, query: str, limit: int = 10) -> list[Company]:
        """Case-insensitive substring match on name, oldest first."""
        ...

    @abstractmethod
    async def create_company(self, **fields: Any) -> Company: ...

    @abstractmethod
    async def get_pricing_tiers(self, company_id: str) -> list[PricingTier]:
        """Oldest first."""
        ...

    @abstractmethod
    async def create_pricing_tier(self, **fields: Any) -> PricingTier: ...


class InMemoryAnalysisStore(AnalysisStore):
    def __init__(self) -> None:
        self.records: dict[str, AnalysisRecord] = {}
        self.companies: dict[str, Company] = {}
        self.tiers: dict[str, PricingTier] = {}
        self._lock = asyncio.Lock()

    async def create_record(self, record: AnalysisRecord) -> AnalysisRecord:
        check_new_record(record)
        async with self._lock:
            if record.id in self.records:
                raise ValueError(f"Analysis {record.id} already exists")
            self.records[record.id] = record
        return record

    async def update_record(self, analysis_id: str, **changes: Any) -> AnalysisRecord:
        async with self._lock:
            current = self.records.get(analysis_id)
            if current is None:
                raise AnalysisNotFoundError(analysis_id)
            updated = current.model_copy(update=check_changes(current.status, changes))
            self.records[analysis_id] = updated
        return updated

    async def get_record(self, analysis_id: str) -> AnalysisRecord | None:
        return self.records.get(analysis_id)

    async def list_records_by_user(
        self, user_id: str, limit: int = 20
    ) -> list[AnalysisRecord]:
        mine = [r for r in reversed(self.records.values()) if r.user_id == user_id]
        mine.sort(key=lambda r: r.created_at, reverse=True)
        return mine[:limit]

    async def find_company_by_name(self, name: str) -> Company | None:
        wanted = name.lower()
        for company in self.companies.values():
            if company.name.lower() == wanted:
                return company
        return None

    async def get_company(self, company_id: str) -> Company | None:
        return self.companies.get(company_id)

    async def search_companies(self, query: str, limit: int = 10) -> list[Company]:
        wanted = query.lower()
        return [c for c in self.companies.values() if wanted in c.name.lower()][:limit]

    async def create_company(self, **fields: Any) -> Company:
        company = Company(**fields)
        self.companies[company.id] = company
        return company

    async def get_pricing_tiers(self, company_id: str) -> list[PricingTier]:
        return [t for t in self.tiers.values() if t.company_id == company_id]

    async def create_pricing_tier(self, **fields: Any) -> PricingTier:
        if fields.get("company_id") not in self.companies:
            raise LookupError(f"Company {fields.get('company_id')} not found")
        tier = PricingTier(**fields)
        self.tiers[tier.id] = tier
        return tier
