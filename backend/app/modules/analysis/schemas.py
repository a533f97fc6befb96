from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from app.modules.analysis.lifecycle import AnalysisStatus

AnalysisDepth = Literal["standard", "deep", "competitive"]
TargetMarket = Literal["enterprise", "mid-market", "smb", "startup"]


def _new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AnalysisNotFoundError(LookupError):
    def __init__(self, analysis_id: str) -> None:
        self.analysis_id = analysis_id
        super().__init__(f"Analysis {analysis_id} not found")


class CompanyNotFoundError(LookupError):
    def __init__(self, company_id: str) -> None:
        self.company_id = company_id
        super().__init__(f"Company {company_id} not found")


class AnalysisRequest(BaseModel):
    """One URL to price. ``companyName`` is accepted as a legacy name for ``url``."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    url: str = Field(..., min_length=1, validation_alias=AliasChoices("url", "companyName"))
    analysis_depth: AnalysisDepth = Field(
        "standard", validation_alias=AliasChoices("analysis_depth", "analysisDepth")
    )
    target_market: TargetMarket = Field(
        "enterprise", validation_alias=AliasChoices("target_market", "targetMarket")
    )
    user_id: str | None = Field(None, validation_alias=AliasChoices("user_id", "userId"))


class Company(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str = Field(default_factory=_new_id)
    name: str
    description: str | None = None
    industry: str | None = None
    size: str | None = None
    revenue: str | None = None
    website: str | None = None
    logo_url: str | None = None
    qualitative: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class CompanyCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    name: str = Field(..., min_length=1)
    description: str | None = None
    industry: str | None = None
    size: str | None = None
    revenue: str | None = None
    website: str | None = None
    logo_url: str | None = Field(None, validation_alias=AliasChoices("logo_url", "logoUrl"))
    qualitative: str | None = None


class PricingTier(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str = Field(default_factory=_new_id)
    company_id: str
    name: str
    features: str
    target_market: str | None = None
    created_at: datetime = Field(default_factory=utcnow)


class AnalysisRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str = Field(default_factory=_new_id)
    company_id: str
    user_id: str | None = None
    status: AnalysisStatus = AnalysisStatus.pending
    analysis_depth: str = "standard"
    target_market: str = "enterprise"
    result: dict[str, Any] = Field(default_factory=dict)
    recommended_price: str | None = None
    confidence_score: int | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


# Fields update_record() may change; everything else is fixed at creation
MUTABLE_RECORD_FIELDS = frozenset({"status", "result", "recommended_price", "confidence_score"})
