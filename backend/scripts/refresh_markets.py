import argparse
import asyncio
import json
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from loguru import logger

from app.db import SessionLocal, init_db
from app.domain import MarketSource, Period
from app.services.market_service import MarketService
from ingestion.kalshi import KalshiAdapter
from ingestion.manifold import ManifoldAdapter
from ingestion.polymarket import PolymarketAdapter
from ingestion.refresh import RefreshOrchestrator

ADAPTERS = {
    MarketSource.KALSHI: KalshiAdapter,
    MarketSource.POLYMARKET: PolymarketAdapter,
    MarketSource.MANIFOLD: ManifoldAdapter,
}


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Refresh prediction markets from all sources")
    parser.add_argument(
        "--source",
        action="append",
        choices=[source.value for source in MarketSource],
        default=None,
        help="Only refresh this source (repeatable; defaults to all sources)",
    )
    parser.add_argument(
        "--show-movers",
        choices=[period.value for period in Period],
        default=None,
        metavar="PERIOD",
        help="Print the top movers for PERIOD (1d, 1w, 1m) after refreshing",
    )
    parser.add_argument(
        "--summary-path",
        type=Path,
        default=None,
        help="Write the refresh summary as JSON to this path",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    init_db()

    sources = [MarketSource(value) for value in args.source] if args.source else list(MarketSource)
    orchestrator = RefreshOrchestrator(adapters=[ADAPTERS[source]() for source in sources])
    summary = asyncio.run(orchestrator.refresh_all())

    for result in summary.results.values():
        logger.info(
            "{}: {} added, {} updated, {} errors",
            result.source.value,
            result.added,
            result.updated,
            result.errors,
        )

    if args.summary_path:
        args.summary_path.parent.mkdir(parents=True, exist_ok=True)
        args.summary_path.write_text(json.dumps(summary.to_dict(), indent=2), encoding="utf-8")
        logger.info("Wrote refresh summary to {}", args.summary_path)

    if args.show_movers:
        with SessionLocal() as session:
            movers = MarketService(session).top_movers(args.show_movers)
            if movers.fallback_mode:
                logger.warning("No price history for {} yet; listing recent markets", args.show_movers)
            change_field = movers.period.change_field
            for rank, market in enumerate(movers.markets, start=1):
                change = getattr(market, change_field)
                print(
                    f"{rank:>2}. [{market.source}] {market.market_name} "
                    f"{market.current_price:g}% ({'n/a' if change is None else f'{change:+d}'})"
                )

    return 0 if summary.total_updated + summary.total_added > 0 or summary.total_errors == 0 else 1


if __name__ == "__main__":
    sys.exit(main())
