"""
Variant scrape runner.

Processes product pages (saved HTML files or live URLs) concurrently using
asyncio.gather, running each through: fetch -> extract -> backfill prices,
then writes all results to JSON and prints a report.

  python main.py                         # every data/*.html
  python main.py page.html https://www.amazon.com/dp/B0XXXXXXXX
  python main.py --sequential URL        # one-at-a-time backfill with progress
"""

import argparse
import asyncio
import json
import logging
import random
import time
from dataclasses import dataclass
from pathlib import Path

import httpx

from backfill import RunToken, backfill_sequential
from config import ScraperSettings, get_settings
from extractor import extract_variants
from fetcher import PageFetcher, validate_target_url
from models import PriceState, ScrapingResult, Variant, parse_price_amount
from pipeline import scrape_html, scrape_url

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).parent / "data"
OUTPUT_FILE = Path(__file__).parent / "results.json"


@dataclass
class TargetRun:
    target: str
    result: ScrapingResult
    elapsed: float


def _is_url(target: str) -> bool:
    return target.startswith(("http://", "https://"))


def _variant_fetcher(client: httpx.AsyncClient, settings: ScraperSettings, referer: str | None) -> PageFetcher:
    return PageFetcher(
        client,
        timeout=settings.variant_timeout,
        rng=random.Random(),
        min_length=settings.min_document_length,
        referer=referer,
    )


async def process_target(
    target: str,
    client: httpx.AsyncClient,
    settings: ScraperSettings,
    backfill: bool,
) -> TargetRun:
    """Run one file or URL through the pipeline. URL errors propagate."""
    logger.info(f"Processing {target}...")
    t0 = time.monotonic()

    if _is_url(target):
        result = await scrape_url(target, client=client, settings=settings, backfill=backfill)
    else:
        html = Path(target).read_text(encoding="utf-8")
        result = await scrape_html(
            html,
            fetch=_variant_fetcher(client, settings, referer=None),
            settings=settings,
            backfill=backfill,
        )

    elapsed = time.monotonic() - t0
    logger.info(
        f"  Result: {len(result.variants)} variants via {result.strategy or 'none'} | "
        f"page price {result.parent_price} | {result.message}"
    )
    return TargetRun(target=target, result=result, elapsed=elapsed)


async def process_all(
    targets: list[str],
    settings: ScraperSettings,
    backfill: bool,
) -> tuple[list[TargetRun], int]:
    """Process all targets concurrently. Returns (runs, failure_count)."""
    async with httpx.AsyncClient() as client:
        results = await asyncio.gather(
            *[process_target(t, client, settings, backfill) for t in targets],
            return_exceptions=True,
        )

    runs: list[TargetRun] = []
    failures = 0
    for target, result in zip(targets, results):
        if isinstance(result, Exception):
            logger.error(f"Failed to process {target}: {result}", exc_info=result)
            failures += 1
        else:
            runs.append(result)
    return runs, failures


async def process_sequential(target: str, settings: ScraperSettings) -> TargetRun:
    """Interactive mode for one target: extract, then backfill one variant at a time."""
    t0 = time.monotonic()
    async with httpx.AsyncClient() as client:
        if _is_url(target):
            url = validate_target_url(target)
            page_fetcher = PageFetcher(
                client,
                timeout=settings.page_timeout,
                min_length=settings.min_document_length,
            )
            document = await page_fetcher(url)
            if isinstance(document, ScrapingResult):
                result = document
            else:
                result = extract_variants(document, url, default_origin=settings.default_origin)
        else:
            url = None
            html = Path(target).read_text(encoding="utf-8")
            result = extract_variants(html, default_origin=settings.default_origin)

        def _progress(done: int, total: int, variant: Variant) -> None:
            print(f"  [{done}/{total}] {variant.name}: {variant.price}")

        token = RunToken()
        report = await backfill_sequential(
            result.variants,
            _variant_fetcher(client, settings, referer=url),
            token=token,
            run_id=token.start(),
            request_timeout=settings.variant_timeout,
            delay=settings.interactive_delay,
            on_progress=_progress,
        )
        result.fetched_count = report.attempted

    return TargetRun(target=target, result=result, elapsed=time.monotonic() - t0)


def print_report(runs: list[TargetRun], failures: int, wall_clock: float) -> None:
    """Print a per-target extraction report."""
    total = len(runs) + failures

    print(f"\n{'='*70}")
    print("VARIANT SCRAPE REPORT")
    print(f"{'='*70}")

    print(f"\n── Reliability ──")
    print(f"  Targets attempted:   {total}")
    print(f"  Processed:           {len(runs)}")
    print(f"  Failed:              {failures}")
    found = sum(1 for r in runs if r.result.success)
    print(f"  With variants:       {found}/{len(runs)}")

    if not runs:
        print("\n  Nothing processed.")
        return

    print(f"\n── Variants ──")
    print(f"  {'Target':<32} {'Strategy':<9} {'Variants':>8} {'Priced':>7} {'Pending':>8} {'Failed':>7} {'Range':>18}")
    print(f"  {'-'*95}")
    for run in runs:
        r = run.result
        amounts = [a for a in (parse_price_amount(v.price) for v in r.variants) if a is not None]
        pending = sum(1 for v in r.variants if v.price == PriceState.REQUIRES_FETCH.value)
        failed = sum(1 for v in r.variants if v.price == PriceState.FETCH_FAILED.value)
        price_range = f"{min(amounts):.2f}-{max(amounts):.2f}" if amounts else "-"
        name = Path(run.target).name if not _is_url(run.target) else run.target
        print(f"  {name[:32]:<32} {r.strategy or '-':<9} {len(r.variants):>8} {len(amounts):>7} "
              f"{pending:>8} {failed:>7} {price_range:>18}")

    print(f"\n── Timing ──")
    print(f"  Wall clock (total):  {wall_clock:.2f}s")
    for run in runs:
        print(f"    {run.target[:50]:<50} {run.elapsed:>7.2f}s  fetched {run.result.fetched_count}")

    print(f"\n{'='*70}")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(description="Extract Amazon product variants and their prices.")
    ap.add_argument("targets", nargs="*", help="HTML files or product URLs (default: data/*.html)")
    ap.add_argument("--no-backfill", action="store_true", help="skip per-variant price fetches")
    ap.add_argument("--sequential", action="store_true",
                    help="backfill one variant at a time with a delay, printing progress")
    ap.add_argument("--output", type=Path, default=OUTPUT_FILE, help="where to write results JSON")
    return ap.parse_args(argv)


async def main(argv: list[str] | None = None) -> None:
    args = _parse_args(argv)
    settings = get_settings()

    targets = args.targets or [str(p) for p in sorted(DATA_DIR.glob("*.html"))]
    if not targets:
        logger.warning(f"No targets given and no HTML files in {DATA_DIR}")
        return

    t_wall_start = time.monotonic()
    if args.sequential:
        runs: list[TargetRun] = []
        failures = 0
        for target in targets:
            try:
                runs.append(await process_sequential(target, settings))
            except Exception as e:
                logger.error(f"Failed to process {target}: {e}", exc_info=e)
                failures += 1
    else:
        runs, failures = await process_all(targets, settings, backfill=not args.no_backfill)
    wall_clock = time.monotonic() - t_wall_start

    payload = [{"target": run.target, **run.result.to_json_dict()} for run in runs]
    args.output.write_text(json.dumps(payload, indent=2))
    logger.info(f"Wrote {len(runs)} results to {args.output}")

    print_report(runs, failures, wall_clock)


if __name__ == "__main__":
    logging.basicConfig(
        level=get_settings().log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    asyncio.run(main())
