"""
FastAPI server for variant scraping.

Fetches an Amazon product page server-side, extracts its variants and
backfills their prices in bulk mode:
- GET /api/scrape?url=...  → ScrapingResult JSON (camelCase keys)
"""

import logging

import httpx
from fastapi import Depends, FastAPI, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import ORJSONResponse

from config import ScraperSettings, get_settings
from fetcher import FetchError, InvalidTargetURL
from pipeline import scrape_url

logger = logging.getLogger("server")

DEBUG_INFO = "Variant Scraper API v2"

# ---------------------------------------------------------------------------
# Shared HTTP client
# ---------------------------------------------------------------------------

_http_client: httpx.AsyncClient | None = None


def get_http_client() -> httpx.AsyncClient:
    if _http_client is None:
        raise RuntimeError("HTTP client not initialised; server startup has not run")
    return _http_client


# ---------------------------------------------------------------------------
# App setup
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Variant Scraper API",
    default_response_class=ORJSONResponse,
)

app.add_middleware(GZipMiddleware, minimum_size=500)
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_methods=["GET", "OPTIONS"],
    allow_headers=["Content-Type"],
    max_age=86400,
)


@app.on_event("startup")
async def startup() -> None:
    global _http_client
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    _http_client = httpx.AsyncClient()
    logger.info(
        f"HTTP client ready (page timeout {settings.page_timeout}s, "
        f"variant timeout {settings.variant_timeout}s, max backfill {settings.max_backfill})"
    )


@app.on_event("shutdown")
async def shutdown() -> None:
    global _http_client
    if _http_client is not None:
        await _http_client.aclose()
        _http_client = None


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


def _error(status_code: int, message: str) -> ORJSONResponse:
    return ORJSONResponse({"error": message}, status_code=status_code)


@app.get("/api/scrape")
async def scrape(
    url: str | None = Query(default=None),
    client: httpx.AsyncClient = Depends(get_http_client),
    settings: ScraperSettings = Depends(get_settings),
):
    """Scrape the product page at `url` and return its variants."""
    if not url:
        return _error(400, "Missing url parameter")

    try:
        result = await scrape_url(url, client=client, settings=settings)
    except InvalidTargetURL as e:
        return _error(400, str(e))
    except FetchError as e:
        logger.warning(f"Scrape of {url} failed: {e}")
        return _error(502, str(e))

    if not result.success and not result.variants:
        logger.info(f"No variants found for {url}: {result.message}")
    result.debug_info = result.debug_info or DEBUG_INFO
    return ORJSONResponse(result.to_json_dict())
