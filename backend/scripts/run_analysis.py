#!/usr/bin/env python3
"""Price Wizard one-shot analysis runner.

Renders a URL, extracts pricing facts and, when the page publishes no
prices, runs the four-persona pricing committee. Prints the final record
as JSON. Nothing is written to the database.

Usage:
    # Default provider/model from .env
    python -m scripts.run_analysis https://acme.io/product

    # Deep analysis for the SMB market
    python -m scripts.run_analysis https://acme.io/product --depth deep --market smb

    # Specific provider/model
    python -m scripts.run_analysis https://acme.io --provider openai --model gpt-4.1-mini

    # Machine-readable logs on stderr
    python -m scripts.run_analysis https://acme.io --json-logs
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

# Add backend to path for imports
_backend = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(_backend))

# Load .env before importing app modules
from dotenv import load_dotenv
load_dotenv(_backend / ".env")

import structlog

from app.core.logging import configure_logging
from app.modules.analysis.schemas import AnalysisRequest
from app.modules.analysis.service import AnalysisService
from app.modules.analysis.store import InMemoryAnalysisStore
from app.modules.pricing.errors import EnsembleError
from app.modules.pricing.evaluators import EVALUATORS, get_evaluator
from app.modules.pricing.orchestrator import EnsembleOrchestrator
from app.modules.pricing.schemas import EnsembleProgress
from app.modules.scraping.coordinator import ScrapeCoordinator
from app.modules.scraping.renderer import PageRenderer

logger = structlog.get_logger()


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run one Price Wizard analysis")
    parser.add_argument("url", help="Product or company page to analyze")
    parser.add_argument(
        "--depth",
        choices=["standard", "deep", "competitive"],
        default="standard",
        help="Analysis depth tag (default: standard)",
    )
    parser.add_argument(
        "--market",
        choices=["enterprise", "mid-market", "smb", "startup"],
        default="enterprise",
        help="Target market tag (default: enterprise)",
    )
    parser.add_argument("--provider", choices=sorted(EVALUATORS), help="LLM provider")
    parser.add_argument("--model", help="LLM model (default: provider default)")
    parser.add_argument("--user-id", help="Attribute the analysis to this user id")
    parser.add_argument("--json-logs", action="store_true", help="Emit JSON logs")
    return parser.parse_args(argv)


def print_progress(event: EnsembleProgress) -> None:
    print(
        f"  [{event.completed}/{event.total}] {event.persona.value}: {event.state}",
        file=sys.stderr,
    )


async def run(args: argparse.Namespace) -> int:
    request = AnalysisRequest(
        url=args.url,
        analysis_depth=args.depth,
        target_market=args.market,
        user_id=args.user_id,
    )
    store = InMemoryAnalysisStore()

    async with PageRenderer() as renderer:
        service = AnalysisService(
            scraper=ScrapeCoordinator(renderer),
            orchestrator=EnsembleOrchestrator(
                get_evaluator(provider=args.provider, model=args.model)
            ),
            store=store,
        )
        try:
            record = await service.run_analysis(request, on_progress=print_progress)
        except EnsembleError as e:
            print(f"\nAnalysis failed: {e}", file=sys.stderr)
            for failed in store.records.values():
                print(json.dumps(failed.model_dump(mode="json"), indent=2))
            return 1

    print(json.dumps(record.model_dump(mode="json"), indent=2))
    return 0


def main() -> None:
    args = parse_args()
    configure_logging(json_logs=args.json_logs)
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
