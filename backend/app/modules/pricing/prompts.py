from __future__ import annotations

import json

from app.modules.pricing.schemas import (
    MarketAnalystOpinion,
    Persona,
    QuantAnalystOpinion,
    TargetTier,
    ValueEngineerOpinion,
)
from app.modules.scraping.schemas import ScrapedFacts

# How much scraped context goes into each prompt
PROMPT_MAX_FEATURES = 5
PROMPT_MAX_PRICING = 3
PROMPT_MAX_CONTENT_CHARS = 800
SYNTHESIS_MAX_FEATURES = 3

PERSONA_INSTRUCTIONS: dict[Persona, str] = {
    Persona.market_analyst: (
        "Act as a Market Analyst. Using the website content and features listed above, "
        "analyze competitive positioning.{pricing_context} Provide a justifiable monthly "
        "price range for the {tier} tier. The 'estimatedPriceRange' field must contain "
        "ONLY the price string (e.g., '$5,000 - $7,000/month') with no other text. "
        "Keep your 'analysis' concise (under 50 words). "
        'Respond in JSON format: {{"analysis": "...", "estimatedPriceRange": "..."}}'
    ),
    Persona.value_engineer: (
        "Act as a Value Engineer. Based on the features and content above, estimate the "
        "financial value (ROI) for customers.{pricing_context} Consider productivity gains, "
        "cost savings, and business impact. Provide a justified monthly price point. "
        "The 'justifiedPricePoint' field must contain ONLY the price string "
        "(e.g., '$10,000/month'). Keep your 'analysis' concise (under 50 words). "
        'Respond in JSON format: {{"analysis": "...", "estimatedValueToCustomer": "...", '
        '"justifiedPricePoint": "..."}}'
    ),
    Persona.quant_analyst: (
        "Act as a Quantitative Analyst. Using the scraped content and feature analysis, "
        "simulate Van Westendorp price sensitivity for this product.{pricing_context} "
        "Consider feature complexity and market positioning. Provide an optimal monthly "
        "price point. The 'optimalPricePoint' field must contain ONLY the price string "
        "(e.g., '$8,500/month'). Keep your 'analysis' concise (under 50 words). "
        'Respond in JSON format: {{"analysis": "...", "optimalPricePoint": "...", '
        '"acceptablePriceRange": "..."}}'
    ),
}


def _context_block(
    company_name: str, description: str, tier: TargetTier, facts: ScrapedFacts | None
) -> str:
    lines = [
        f'Company: "{company_name}"',
        f"Description: {description}",
        f'Target Tier for Analysis: "{tier.name}" with features: "{tier.features}"',
        "",
    ]
    if facts is not None:
        lines.append(f"URL Analyzed: {facts.url}")
        lines.append(f"Page Title: {facts.title}")
        if facts.features:
            lines.append(
                "Key Features from Website: "
                + ", ".join(facts.features[:PROMPT_MAX_FEATURES])
            )
        if facts.pricing_snippets:
            lines.append(
                "Existing Pricing Information: "
                + ", ".join(facts.pricing_snippets[:PROMPT_MAX_PRICING])
            )
        if facts.content:
            lines.append(
                f"Website Content Summary: {facts.content[:PROMPT_MAX_CONTENT_CHARS]}..."
            )
        lines.append("")
    return "\n".join(lines) + "\n"


def _pricing_context(facts: ScrapedFacts | None) -> str:
    if facts is None or not facts.pricing_snippets:
        return ""
    return (
        f" Existing pricing found: {', '.join(facts.pricing_snippets)}. Use this as "
        "reference but consider the target market size differences."
    )


def build_persona_prompt(
    persona: Persona,
    company_name: str,
    description: str,
    tier: TargetTier,
    facts: ScrapedFacts | None = None,
) -> str:
    """Prompt for one of the three base personas."""
    if persona not in PERSONA_INSTRUCTIONS:
        raise ValueError(f"Not a base persona: {persona.value}")
    instruction = PERSONA_INSTRUCTIONS[persona].format(
        pricing_context=_pricing_context(facts),
        tier=tier.name,
    )
    return _context_block(company_name, description, tier, facts) + instruction


def build_synthesis_prompt(
    company_name: str,
    tier: TargetTier,
    market_analyst: MarketAnalystOpinion,
    value_engineer: ValueEngineerOpinion,
    quantitative_analyst: QuantAnalystOpinion,
    facts: ScrapedFacts | None = None,
) -> str:
    """Head of Pricing prompt; embeds the three validated opinions as JSON."""

    def dump(opinion) -> str:
        return json.dumps(
            opinion.model_dump(by_alias=True, exclude_none=True), indent=2
        )

    website = ""
    if facts is not None:
        website = (
            "Website analysis shows features: "
            + ", ".join(facts.features[:SYNTHESIS_MAX_FEATURES])
            + _pricing_context(facts)
        )

    return (
        f"You are the Head of Pricing for {company_name}. You have analyzed their website "
        f'and have three expert reports for the "{tier.name}" tier:\n\n'
        f"1. Market Analyst:\n{dump(market_analyst)}\n\n"
        f"2. Value Engineer:\n{dump(value_engineer)}\n\n"
        f"3. Quantitative Analyst:\n{dump(quantitative_analyst)}\n\n"
        f"{website}\n\n"
        "Synthesize these analyses considering the actual website content and provide a "
        "final recommended monthly price. The 'recommendedPrice' field must contain ONLY "
        "the price string (e.g., '$9,000/month'). Explain your reasoning in 'synthesis' "
        "(under 80 words). Respond in JSON format: "
        '{"synthesis": "...", "recommendedPrice": "...", "confidencePercentage": 0-100}'
    )
