"""
End-to-end scrape: fetch the product page, extract variants, backfill prices.

The primary fetch is the only step allowed to fail the whole call; everything
after it is reported through the ScrapingResult.
"""

import logging
import random

import httpx

from backfill import FetchFn, backfill_prices
from config import ScraperSettings, get_settings
from extractor import extract_variants
from fetcher import PageFetcher, validate_target_url
from models import ScrapingResult

logger = logging.getLogger(__name__)


async def scrape_html(
    html: str,
    *,
    context_url: str | None = None,
    fetch: FetchFn | None = None,
    settings: ScraperSettings | None = None,
    backfill: bool | None = None,
) -> ScrapingResult:
    """Extract variants from HTML already in hand, then backfill missing prices.

    Backfill runs only when a `fetch` callable is given and `backfill`
    (default: settings.auto_backfill) is on.
    """
    settings = settings or get_settings()
    if backfill is None:
        backfill = settings.auto_backfill

    result = extract_variants(html, context_url, default_origin=settings.default_origin)
    if not result.success or not backfill or fetch is None:
        return result

    pending = sum(1 for v in result.variants if v.needs_fetch)
    if pending == 0:
        return result

    report = await backfill_prices(
        result.variants,
        fetch,
        max_count=settings.max_backfill,
        concurrency_limit=settings.concurrency_limit,
        request_timeout=settings.variant_timeout,
    )
    result.fetched_count = report.attempted
    if report.attempted:
        result.message += f" Bulk scraping {report.attempted} items..."
    return result


async def scrape_url(
    url: str,
    *,
    client: httpx.AsyncClient,
    settings: ScraperSettings | None = None,
    rng: random.Random | None = None,
    backfill: bool | None = None,
) -> ScrapingResult:
    """Fetch `url` and run the full pipeline on it.

    Raises InvalidTargetURL for a bad URL and FetchError when the product page
    itself can't be fetched. A JSON response (another scrape API) is returned
    as-is.
    """
    settings = settings or get_settings()
    url = validate_target_url(url)
    rng = rng or random.Random()

    page_fetcher = PageFetcher(
        client,
        timeout=settings.page_timeout,
        rng=rng,
        min_length=settings.min_document_length,
    )
    document = await page_fetcher(url)
    if isinstance(document, ScrapingResult):
        logger.info(f"{url} answered with a pre-computed result")
        return document

    variant_fetcher = PageFetcher(
        client,
        timeout=settings.variant_timeout,
        rng=rng,
        min_length=settings.min_document_length,
        referer=url,
    )
    return await scrape_html(
        document,
        context_url=url,
        fetch=variant_fetcher,
        settings=settings,
        backfill=backfill,
    )
