"""
Price backfill: fetch each variant's own page and read the price off it.

Two modes over the same per-variant step:
  - backfill_prices      bulk; every target fetched concurrently, one barrier
  - backfill_sequential  interactive; one at a time with a delay, progress
                         callback after each, cancellable through a RunToken

Only Variant.price is ever written, and only for variants still marked
"Requires Page Visit". Each concurrent task owns one list index.
"""

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from models import PriceState, ScrapingResult, Variant
from parser import extract_price

logger = logging.getLogger(__name__)

FetchFn = Callable[[str], Awaitable[str | ScrapingResult]]
ProgressFn = Callable[[int, int, Variant], None]

DEFAULT_MAX_COUNT = 48
DEFAULT_REQUEST_TIMEOUT = 8.0
DEFAULT_INTERACTIVE_DELAY = 1.0


@dataclass
class BackfillReport:
    attempted: int = 0
    priced: int = 0
    unavailable: int = 0
    failed: int = 0
    cancelled: bool = False


class RunToken:
    """Monotonic run counter shared between a caller and its backfill runs.

    start() begins a new run and invalidates every earlier one; a run whose
    id is no longer current must not write results.
    """

    def __init__(self) -> None:
        self._current = 0

    @property
    def current(self) -> int:
        return self._current

    def start(self) -> int:
        self._current += 1
        return self._current

    def cancel(self) -> None:
        self._current += 1

    def is_current(self, run_id: int | None) -> bool:
        return run_id == self._current


def select_targets(variants: list[Variant], max_count: int | None) -> list[int]:
    """Indices of variants still needing a price, in list order, capped at max_count."""
    indices = [i for i, v in enumerate(variants) if v.needs_fetch]
    if max_count is not None:
        indices = indices[:max(max_count, 0)]
    return indices


async def fetch_variant_price(fetch: FetchFn, url: str, timeout: float) -> str:
    """Fetch one variant page and return its price or a PriceState value.

    Never raises: timeouts and fetch errors become "Fetch Failed", a page
    without a price becomes "Unavailable".
    """
    try:
        body = await asyncio.wait_for(fetch(url), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(f"Timed out after {timeout}s fetching {url}")
        return PriceState.FETCH_FAILED.value
    except Exception as e:
        logger.warning(f"Failed to fetch price for {url}: {e}")
        return PriceState.FETCH_FAILED.value

    if isinstance(body, ScrapingResult):
        price = body.parent_price or PriceState.NOT_FOUND.value
    else:
        price = extract_price(body)

    if price == PriceState.NOT_FOUND.value:
        return PriceState.UNAVAILABLE.value
    return price


def _apply_price(variants: list[Variant], index: int, price: str, report: BackfillReport) -> None:
    variants[index].price = price
    if price == PriceState.FETCH_FAILED.value:
        report.failed += 1
    elif price == PriceState.UNAVAILABLE.value:
        report.unavailable += 1
    else:
        report.priced += 1


async def backfill_prices(
    variants: list[Variant],
    fetch: FetchFn,
    *,
    max_count: int | None = DEFAULT_MAX_COUNT,
    concurrency_limit: int | None = None,
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
    token: RunToken | None = None,
    run_id: int | None = None,
) -> BackfillReport:
    """Bulk mode: fetch up to max_count missing prices concurrently.

    With concurrency_limit=None every fetch starts at once. Mutates
    `variants` in place and returns counts. A `token` given without `run_id` binds to the token's current run.
    """
    targets = select_targets(variants, max_count)
    report = BackfillReport()
    if not targets:
        return report

    if token is not None and run_id is None:
        run_id = token.current
    semaphore = asyncio.Semaphore(concurrency_limit) if concurrency_limit else None

    def _stale() -> bool:
        return token is not None and not token.is_current(run_id)

    async def _backfill_one(index: int) -> None:
        async with semaphore if semaphore is not None else contextlib.nullcontext():
            if _stale():
                report.cancelled = True
                return
            report.attempted += 1
            price = await fetch_variant_price(fetch, variants[index].url, request_timeout)
        if _stale():
            # Result arrived after the run was invalidated
            report.cancelled = True
            return
        _apply_price(variants, index, price, report)

    logger.info(f"Backfilling prices for {len(targets)} variants")
    await asyncio.gather(*[_backfill_one(i) for i in targets])
    logger.info(
        f"Backfill done: {report.priced} priced, {report.unavailable} unavailable, "
        f"{report.failed} failed{' (cancelled)' if report.cancelled else ''}"
    )
    return report


async def backfill_sequential(
    variants: list[Variant],
    fetch: FetchFn,
    *,
    token: RunToken,
    run_id: int,
    max_count: int | None = None,
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
    delay: float = DEFAULT_INTERACTIVE_DELAY,
    on_progress: ProgressFn | None = None,
) -> BackfillReport:
    """Interactive mode: one variant at a time, `delay` seconds apart.

    Stops as soon as `run_id` is no longer the token's current run; a result
    that arrives after that is dropped.
    """
    targets = select_targets(variants, max_count)
    report = BackfillReport()

    for done, index in enumerate(targets):
        if not token.is_current(run_id):
            report.cancelled = True
            break
        if done > 0 and delay > 0:
            await asyncio.sleep(delay)
            if not token.is_current(run_id):
                report.cancelled = True
                break

        report.attempted += 1
        price = await fetch_variant_price(fetch, variants[index].url, request_timeout)
        if not token.is_current(run_id):
            report.cancelled = True
            break

        _apply_price(variants, index, price, report)
        if on_progress is not None:
            on_progress(done + 1, len(targets), variants[index])

    return report
