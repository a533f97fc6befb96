"""Structured extraction: rendered page -> ScrapedFacts.

Pure and deterministic. No I/O, no logging side effects that change output,
and no exceptions for malformed input: a rule that finds nothing yields an
empty collection.

The heuristics are an ordered table of independent rules
(pattern, target field, length bounds), so each one can be tested and
swapped on its own:

  features   <- label-anchored text rules + feature-like headings
  pricing    <- currency-anchored text rules
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal
from urllib.parse import urlparse

from bs4 import BeautifulSoup

from app.modules.scraping.schemas import (
    MAX_CONTENT_CHARS,
    MAX_FEATURES,
    MAX_PRICING_SNIPPETS,
    PageContent,
    PageMetadata,
    ScrapedFacts,
)

UNKNOWN_COMPANY = "Unknown Company"
GENERIC_PRODUCT_NAME = "Professional Software"

# Suffix labels dropped when deriving the company label from a hostname
_COMMON_TLDS = frozenset({
    "com", "io", "net", "org", "co", "ai", "app", "dev", "so", "xyz",
    "biz", "info", "us", "uk", "de", "eu", "ca", "au", "in",
})

_FEATURE_LABEL = re.compile(
    r"^(features?|benefits?|capabilities?|includes?):?\s*", re.IGNORECASE
)
_DISALLOWED_CHARS = re.compile(r"[^\w\s.,!?$%-]", re.ASCII)
_WHITESPACE = re.compile(r"\s+")
_NAME_EDGE_PUNCTUATION = " \t-|:,.–—"


@dataclass(frozen=True)
class ExtractionRule:
    """One extraction heuristic.

    ``source="text"``: every regex match over the page text is a candidate
    (after ``strip_label`` is removed from its start).
    ``source="headings"``: a heading the pattern matches is itself the
    candidate.

    Length bounds are exclusive: ``min_length < len(candidate) < max_length``.
    """

    name: str
    target: Literal["features", "pricing"]
    source: Literal["text", "headings"]
    pattern: re.Pattern[str]
    min_length: int
    max_length: int
    strip_label: re.Pattern[str] | None = None

    def accepts(self, candidate: str) -> bool:
        return self.min_length < len(candidate) < self.max_length

    def apply(self, text: str, headings: tuple[str, ...]) -> list[str]:
        if self.source == "headings":
            candidates = [h for h in headings if self.pattern.search(h)]
        else:
            candidates = []
            for match in self.pattern.finditer(text):
                value = match.group(0)
                if self.strip_label is not None:
                    value = self.strip_label.sub("", value, count=1)
                candidates.append(value.strip())
        return [c for c in candidates if self.accepts(c)]


FEATURE_RULES: tuple[ExtractionRule, ...] = (
    ExtractionRule(
        name="features_label",
        target="features",
        source="text",
        pattern=re.compile(r"\bfeatures?\b:?\s*[^.]*", re.IGNORECASE),
        min_length=10,
        max_length=100,
        strip_label=_FEATURE_LABEL,
    ),
    ExtractionRule(
        name="benefits_label",
        target="features",
        source="text",
        pattern=re.compile(r"\bbenefits?\b:?\s*[^.]*", re.IGNORECASE),
        min_length=10,
        max_length=100,
        strip_label=_FEATURE_LABEL,
    ),
    ExtractionRule(
        name="capabilities_label",
        target="features",
        source="text",
        pattern=re.compile(r"\bcapabilit(?:y|ies)\b:?\s*[^.]*", re.IGNORECASE),
        min_length=10,
        max_length=100,
        strip_label=re.compile(r"^capabilit(?:y|ies):?\s*", re.IGNORECASE),
    ),
    ExtractionRule(
        name="includes_label",
        target="features",
        source="text",
        pattern=re.compile(r"\bincludes?\b:?\s*[^.]*", re.IGNORECASE),
        min_length=10,
        max_length=100,
        strip_label=_FEATURE_LABEL,
    ),
    ExtractionRule(
        name="feature_heading",
        target="features",
        source="headings",
        pattern=re.compile(
            r"^(feature|benefit|capability|solution|tool|platform)", re.IGNORECASE
        ),
        min_length=10,
        max_length=80,
    ),
)

PRICING_RULES: tuple[ExtractionRule, ...] = (
    ExtractionRule(
        name="bare_amount",
        target="pricing",
        source="text",
        pattern=re.compile(
            r"\$[\d,]+(?:\.\d{2})?(?:\s*/?\s*(?:month|mo|year|yr|user|seat))?",
            re.IGNORECASE,
        ),
        min_length=0,
        max_length=100,
    ),
    ExtractionRule(
        name="starting_at",
        target="pricing",
        source="text",
        pattern=re.compile(r"(?:starts?|from|starting)\s+(?:at\s+)?\$[\d,]+", re.IGNORECASE),
        min_length=0,
        max_length=100,
    ),
    ExtractionRule(
        name="pricing_sentence",
        target="pricing",
        source="text",
        pattern=re.compile(r"pricing:?\s*[^.]*\$[^.]*", re.IGNORECASE),
        min_length=0,
        max_length=100,
    ),
    ExtractionRule(
        name="plans_sentence",
        target="pricing",
        source="text",
        pattern=re.compile(r"plans?:?\s*[^.]*\$[^.]*", re.IGNORECASE),
        min_length=0,
        max_length=100,
    ),
)


def _unique(values: list[str], limit: int) -> tuple[str, ...]:
    """De-duplicate preserving first occurrence, then cap."""
    return tuple(dict.fromkeys(values))[:limit]


def run_rules(
    rules: tuple[ExtractionRule, ...],
    text: str,
    headings: tuple[str, ...],
    limit: int,
) -> tuple[str, ...]:
    matches: list[str] = []
    for rule in rules:
        matches.extend(rule.apply(text, headings))
    return _unique(matches, limit)


def extract_features(text: str, headings: tuple[str, ...]) -> tuple[str, ...]:
    return run_rules(FEATURE_RULES, text, headings, MAX_FEATURES)


def extract_pricing(text: str) -> tuple[str, ...]:
    return run_rules(PRICING_RULES, text, (), MAX_PRICING_SNIPPETS)


# ---------------------------------------------------------------------------
# Naming
# ---------------------------------------------------------------------------


def hostname_of(url: str) -> str | None:
    try:
        host = urlparse(url).hostname
    except ValueError:
        return None
    if not host:
        return None
    return host.removeprefix("www.")


def company_name_from_url(url: str) -> str:
    """Registrable domain label, common TLDs stripped, first letter upper-cased.

    ``https://www.acme.io/product`` -> ``Acme``;
    ``https://app.acme.co.uk`` -> ``Acme``.
    """
    host = hostname_of(url)
    if not host:
        return UNKNOWN_COMPANY

    labels = [label for label in host.split(".") if label]
    while len(labels) > 1 and labels[-1].lower() in _COMMON_TLDS:
        labels.pop()
    label = labels[-1] if labels else host
    return label[:1].upper() + label[1:]


def product_name_from(title: str, headings: tuple[str, ...], company_name: str) -> str:
    candidate = headings[0] if headings else title
    if company_name:
        candidate = re.sub(re.escape(company_name), "", candidate, flags=re.IGNORECASE)
    candidate = candidate.strip(_NAME_EDGE_PUNCTUATION)
    if len(candidate) < 3:
        return GENERIC_PRODUCT_NAME
    return candidate


def generic_description(company_name: str) -> str:
    return f"Professional software solution from {company_name}"


# ---------------------------------------------------------------------------
# Text
# ---------------------------------------------------------------------------


def clean_text(text: str) -> str:
    """Allow-list characters, collapse whitespace, truncate."""
    text = _DISALLOWED_CHARS.sub("", text)
    text = _WHITESPACE.sub(" ", text).strip()
    return text[:MAX_CONTENT_CHARS]


def summarize(content: str) -> str:
    """First two sentences longer than 20 chars."""
    sentences = [s.strip() for s in content.split(".") if len(s.strip()) > 20]
    if not sentences:
        return ""
    return ". ".join(sentences[:2]) + "."


def _meta_description(soup: BeautifulSoup) -> str:
    tag = soup.find("meta", attrs={"name": re.compile(r"^description$", re.IGNORECASE)})
    if tag is None:
        return ""
    content = tag.get("content") or ""
    return content.strip() if isinstance(content, str) else ""


def _attr_values(soup: BeautifulSoup, tag_name: str, attr: str) -> tuple[str, ...]:
    values = []
    for tag in soup.find_all(tag_name):
        value = tag.get(attr)
        if isinstance(value, str) and value.strip():
            values.append(value.strip())
    return tuple(values)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def extract(url: str, page: PageContent) -> ScrapedFacts:
    """Turn one rendered page into ScrapedFacts."""
    soup = BeautifulSoup(page.rendered_html or "", "html.parser")
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()

    text = page.raw_text
    if not text.strip():
        body = soup.body or soup
        text = body.get_text(" ", strip=True)

    headings = tuple(
        heading
        for heading in (h.get_text(" ", strip=True) for h in soup.find_all(["h1", "h2", "h3"]))
        if heading
    )

    company_name = company_name_from_url(url)
    title = page.title.strip()
    if not title and soup.title and soup.title.string:
        title = soup.title.string.strip()

    content = clean_text(text)
    description = (
        _meta_description(soup)
        or summarize(content)
        or generic_description(company_name)
    )

    return ScrapedFacts(
        url=url,
        title=title or company_name,
        description=description,
        company_name=company_name,
        product_name=product_name_from(title, headings, company_name),
        features=extract_features(text, headings),
        pricing_snippets=extract_pricing(text),
        content=content,
        metadata=PageMetadata(
            headings=headings,
            image_refs=_attr_values(soup, "img", "src"),
            link_refs=_attr_values(soup, "a", "href"),
        ),
    )
