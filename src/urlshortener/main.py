from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import List

from dotenv import load_dotenv

from urlshortener.common.logging import setup_logging
from urlshortener.common.metrics import MetricsEmitter
from urlshortener.common.settings import load_settings
from urlshortener.shortener.service import ShortenOutcome, ShortenService, build_service


def parse_args(argv: List[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Shorten URLs through a rate limiter and circuit breaker")
    parser.add_argument(
        "--config",
        default="config/settings.yaml",
        help="Path to settings YAML (default: config/settings.yaml)",
    )
    parser.add_argument(
        "--schema",
        default="config/schema.json",
        help="Path to settings schema (default: config/schema.json)",
    )
    parser.add_argument("urls", nargs="+", help="URLs to shorten, in order")
    return parser.parse_args(argv)


async def shorten_all(service: ShortenService, urls: List[str]) -> List[ShortenOutcome]:
    outcomes = []
    for url in urls:
        outcomes.append(await service.shorten(url))
    return outcomes


def main(argv: List[str] | None = None) -> int:
    args = parse_args(argv)

    load_dotenv()
    settings = load_settings(Path(args.config), Path(args.schema))
    logger = setup_logging(settings.app_log_path, settings.log_level)
    metrics = MetricsEmitter(settings.metrics_log_path, stream=sys.stderr)
    try:
        logger.info("boot_start", extra={"environment": settings.environment})
        service = build_service(settings.raw, metrics=metrics, logger=logger)
        outcomes = asyncio.run(shorten_all(service, args.urls))
    finally:
        metrics.close()

    for outcome in outcomes:
        print(json.dumps(outcome.to_dict(), ensure_ascii=True))
    return 0 if all(outcome.ok for outcome in outcomes) else 1


if __name__ == "__main__":
    raise SystemExit(main())
