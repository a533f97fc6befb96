"""Scraping contracts.

  PageRenderer      -> ScrapeCoordinator:  PageContent | RenderFailure
  StructuredExtractor -> everything else:  ScrapedFacts
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

MAX_FEATURES = 10
MAX_PRICING_SNIPPETS = 5
MAX_CONTENT_CHARS = 2000


class PageContent(BaseModel):
    """One rendered page, scripts/styles already stripped."""

    model_config = ConfigDict(frozen=True)

    url: str
    title: str = ""
    raw_text: str = Field("", description="document.body.innerText after render")
    rendered_html: str = ""


class RenderFailure(BaseModel):
    """Typed render failure: returned by the renderer, never raised."""

    model_config = ConfigDict(frozen=True)

    url: str
    kind: Literal["timeout", "navigation", "network", "browser"]
    message: str


class PageMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    headings: tuple[str, ...] = ()
    image_refs: tuple[str, ...] = ()
    link_refs: tuple[str, ...] = ()


class ScrapedFacts(BaseModel):
    """The hand-off artifact between extraction and pricing analysis.

    Immutable once produced so the three persona builders can share it.
    """

    model_config = ConfigDict(frozen=True)

    url: str
    title: str
    description: str
    company_name: str
    product_name: str
    features: tuple[str, ...] = Field(default=(), max_length=MAX_FEATURES)
    pricing_snippets: tuple[str, ...] = Field(default=(), max_length=MAX_PRICING_SNIPPETS)
    content: str = Field(default="", max_length=MAX_CONTENT_CHARS)
    metadata: PageMetadata = Field(default_factory=PageMetadata)

    @property
    def has_pricing(self) -> bool:
        return bool(self.pricing_snippets)
