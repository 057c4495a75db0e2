from __future__ import annotations

import argparse
import asyncio
import json
from typing import List, Optional, Tuple

from edgefinder import api
from edgefinder.config.settings import Settings
from edgefinder.connectors.base import VenueConnector
from edgefinder.connectors.demo import DemoConnector
from edgefinder.connectors.kalshi import KalshiConnector
from edgefinder.connectors.polymarket import PolymarketConnector
from edgefinder.core.errors import ConfigurationError
from edgefinder.core.models import Venue
from edgefinder.core.pipeline import Pipeline
from edgefinder.storage.db import Database
from edgefinder.utils.embeddings import Embedder, HashingEmbedder, build_embedder
from edgefinder.utils.logging import get_logger


logger = get_logger("main")


def build_connectors(settings: Settings) -> Tuple[VenueConnector, VenueConnector]:
    if settings.demo:
        return DemoConnector(Venue.POLYMARKET), DemoConnector(Venue.KALSHI)
    return (
        PolymarketConnector(settings.polymarket, retry=settings.retry),
        KalshiConnector(settings.kalshi, retry=settings.retry),
    )


def build_pipeline(settings: Settings, db: Database) -> Pipeline:
    polymarket, kalshi = build_connectors(settings)
    embedder: Optional[Embedder] = None
    embedder_error: Optional[ConfigurationError] = None
    if settings.demo:
        embedder = HashingEmbedder()
    else:
        try:
            embedder = build_embedder(settings.embeddings, settings.retry)
        except ConfigurationError as exc:
            # Surfaces as a failed embedding stage on the run
            logger.error("Embedding provider unavailable: %s", exc.message)
            embedder_error = exc
    return Pipeline(db, polymarket, kalshi, embedder, settings, embedder_error=embedder_error)


async def run_once(settings: Settings) -> dict:
    async with Database(settings.storage.db_path, settings.storage.chunk_size) as db:
        pipeline = build_pipeline(settings, db)
        try:
            run = await pipeline.run_once()
        finally:
            await pipeline.polymarket.close()
            await pipeline.kalshi.close()
    return run.to_dict()


async def show_analytics(settings: Settings, opportunity_id: str, window_hours: float, threshold: float) -> dict:
    async with Database(settings.storage.db_path, settings.storage.chunk_size) as db:
        return await api.get_opportunity_analytics(
            db, opportunity_id, window_hours, threshold, config=settings.scoring
        )


async def show_dataset(settings: Settings) -> dict:
    async with Database(settings.storage.db_path, settings.storage.chunk_size) as db:
        return await api.get_current_dataset(db)


async def grant(settings: Settings, wallet: str) -> dict:
    async with Database(settings.storage.db_path, settings.storage.chunk_size) as db:
        return await api.grant_access(db, wallet)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="edgefinder", description="Cross-venue prediction market edge finder")
    parser.add_argument("--demo", action="store_true", help="use synthetic listings and the offline embedder")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("run", help="run the pipeline once")

    p = sub.add_parser("analytics", help="edge quality for one opportunity")
    p.add_argument("opportunity_id")
    p.add_argument("--window-hours", type=float, default=24.0)
    p.add_argument("--threshold", type=float, default=5.0)

    sub.add_parser("dataset", help="print the current shared dataset")

    p = sub.add_parser("grant", help="grant a wallet access to the current dataset")
    p.add_argument("wallet")
    return parser.parse_args(argv)


def cli(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    settings = Settings.from_env()
    if args.demo:
        settings.demo = True

    command = args.command or "run"
    if command == "run":
        result = asyncio.run(run_once(settings))
        ok = result["status"] == "completed"
    elif command == "analytics":
        result = asyncio.run(show_analytics(settings, args.opportunity_id, args.window_hours, args.threshold))
        ok = result["ok"]
    elif command == "dataset":
        result = asyncio.run(show_dataset(settings))
        ok = result["ok"]
    else:
        result = asyncio.run(grant(settings, args.wallet))
        ok = result["ok"]

    print(json.dumps(result, indent=2, default=str))
    return 0 if ok else 1


if __name__ == "__main__":
    raise SystemExit(cli())
