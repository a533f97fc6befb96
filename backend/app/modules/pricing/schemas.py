"""Pricing ensemble contracts — Pydantic models for persona communication.

  Persona evaluators -> Orchestrator:  MarketAnalystOpinion
                                       ValueEngineerOpinion
                                       QuantAnalystOpinion
  Head of Pricing    -> Orchestrator:  SynthesisOpinion
  Orchestrator       -> caller:        EnsembleResult

Wire format is the camelCase JSON the prompts ask for; every model rejects
missing, unknown and out-of-range fields.
"""

from __future__ import annotations

from enum import Enum
from typing import ClassVar, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Persona(str, Enum):
    market_analyst = "MarketAnalyst"
    value_engineer = "ValueEngineer"
    quant_analyst = "QuantAnalyst"
    head_of_pricing = "HeadOfPricing"


BASE_PERSONAS: tuple[Persona, ...] = (
    Persona.market_analyst,
    Persona.value_engineer,
    Persona.quant_analyst,
)


class _Opinion(BaseModel):
    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    persona: ClassVar[Persona]


# ---------------------------------------------------------------------------
# Base persona opinions
# ---------------------------------------------------------------------------


class MarketAnalystOpinion(_Opinion):
    """Competitive positioning -> monthly price range."""

    persona: ClassVar[Persona] = Persona.market_analyst

    analysis: str = Field(..., min_length=1)
    estimated_price_range: str = Field(
        ..., alias="estimatedPriceRange", min_length=1, max_length=100
    )


class ValueEngineerOpinion(_Opinion):
    """Customer ROI -> justified monthly price point."""

    persona: ClassVar[Persona] = Persona.value_engineer

    analysis: str = Field(..., min_length=1)
    justified_price_point: str = Field(
        ..., alias="justifiedPricePoint", min_length=1, max_length=100
    )
    estimated_value_to_customer: str | None = Field(
        None, alias="estimatedValueToCustomer", max_length=200
    )


class QuantAnalystOpinion(_Opinion):
    """Van Westendorp simulation -> optimal monthly price point."""

    persona: ClassVar[Persona] = Persona.quant_analyst

    analysis: str = Field(..., min_length=1)
    optimal_price_point: str = Field(
        ..., alias="optimalPricePoint", min_length=1, max_length=100
    )
    acceptable_price_range: str | None = Field(
        None, alias="acceptablePriceRange", max_length=100
    )


PersonaOpinion = Union[MarketAnalystOpinion, ValueEngineerOpinion, QuantAnalystOpinion]


# ---------------------------------------------------------------------------
# Head of Pricing
# ---------------------------------------------------------------------------


class SynthesisOpinion(_Opinion):
    """The single final recommendation."""

    persona: ClassVar[Persona] = Persona.head_of_pricing

    synthesis: str = Field(..., min_length=1)
    recommended_price: str = Field(..., alias="recommendedPrice", min_length=1, max_length=100)
    confidence_percentage: int = Field(..., alias="confidencePercentage", ge=0, le=100)

    @field_validator("confidence_percentage", mode="before")
    @classmethod
    def _reject_bool(cls, value: object) -> object:
        if isinstance(value, bool):
            raise ValueError("confidencePercentage must be an integer, not a boolean")
        return value


OPINION_MODELS: dict[Persona, type[_Opinion]] = {
    Persona.market_analyst: MarketAnalystOpinion,
    Persona.value_engineer: ValueEngineerOpinion,
    Persona.quant_analyst: QuantAnalystOpinion,
    Persona.head_of_pricing: SynthesisOpinion,
}


# ---------------------------------------------------------------------------
# Orchestrator input / output
# ---------------------------------------------------------------------------


class TargetTier(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    features: str


class EnsembleResult(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    market_analyst: MarketAnalystOpinion = Field(..., alias="marketAnalyst")
    value_engineer: ValueEngineerOpinion = Field(..., alias="valueEngineer")
    quantitative_analyst: QuantAnalystOpinion = Field(..., alias="quantitativeAnalyst")
    head_of_pricing: SynthesisOpinion = Field(..., alias="headOfPricing")

    def to_payload(self) -> dict:
        """camelCase dict, as stored on the analysis record."""
        return self.model_dump(mode="json", by_alias=True)


class EnsembleProgress(BaseModel):
    """One progress event: '3/4 personas complete'."""

    model_config = ConfigDict(frozen=True)

    persona: Persona
    state: Literal["started", "completed", "failed", "cancelled"]
    completed: int = Field(..., ge=0)
    total: int = len(OPINION_MODELS)
