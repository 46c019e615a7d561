"""
HTTP fetching for product pages.

Request headers rotate the user agent; the choice is a pure function of the
random source passed in so tests can pin it. Responses are either raw HTML or,
when the target is another scrape API, a pre-computed ScrapingResult.
"""

import logging
import random
from urllib.parse import urlsplit

import httpx
import orjson
from pydantic import ValidationError

from models import ScrapingResult

logger = logging.getLogger(__name__)

USER_AGENTS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/123.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/123.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:124.0) Gecko/20100101 Firefox/124.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_4) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.4 Safari/605.1.15",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/123.0.0.0 Safari/537.36",
)

# 503 is common for Amazon and the body often still has the full page
_TOLERATED_STATUSES = frozenset({503})


class FetchError(Exception):
    """A page could not be fetched or the response was not usable."""


class InvalidTargetURL(ValueError):
    """The caller passed something that isn't an absolute http(s) URL."""


def validate_target_url(url: str | None) -> str:
    """Return the stripped URL, or raise InvalidTargetURL."""
    if not url or not isinstance(url, str):
        raise InvalidTargetURL("URL is required")
    url = url.strip()
    try:
        parts = urlsplit(url)
    except ValueError as e:
        raise InvalidTargetURL(f"Malformed URL: {url!r}") from e
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise InvalidTargetURL("URL must start with http:// or https://")
    return url


def pick_user_agent(rng: random.Random) -> str:
    return rng.choice(USER_AGENTS)


def build_headers(rng: random.Random, referer: str | None = None) -> dict[str, str]:
    """Browser-like request headers with a user agent drawn from `rng`."""
    headers = {
        "User-Agent": pick_user_agent(rng),
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
        "Accept-Language": "en-US,en;q=0.5",
        "Cache-Control": "no-cache",
        "Pragma": "no-cache",
        "Upgrade-Insecure-Requests": "1",
    }
    if referer:
        headers["Referer"] = referer
    return headers


class PageFetcher:
    """Callable that GETs a URL and returns HTML text or a ScrapingResult.

    Usable directly as the `fetch` argument of the backfill functions.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        timeout: float = 15.0,
        rng: random.Random | None = None,
        min_length: int = 500,
        referer: str | None = None,
    ) -> None:
        self.client = client
        self.timeout = timeout
        self.rng = rng or random.Random()
        self.min_length = min_length
        self.referer = referer

    async def __call__(self, url: str) -> str | ScrapingResult:
        headers = build_headers(self.rng, referer=self.referer)
        try:
            resp = await self.client.get(
                url,
                headers=headers,
                follow_redirects=True,
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            raise FetchError(f"Timed out after {self.timeout}s fetching {url}") from e
        except httpx.HTTPError as e:
            raise FetchError(f"Request to {url} failed: {e}") from e

        if not resp.is_success and resp.status_code not in _TOLERATED_STATUSES:
            raise FetchError(f"{url} returned status {resp.status_code}")
        if resp.status_code in _TOLERATED_STATUSES:
            logger.debug(f"{url} returned {resp.status_code}, using body anyway")

        content_type = resp.headers.get("content-type", "").split(";")[0].strip().lower()
        if content_type == "application/json":
            return self._parse_json_result(resp, url)

        text = resp.text
        if not text or len(text) < self.min_length:
            raise FetchError(f"Response from {url} too short or empty ({len(text or '')} chars)")
        return text

    @staticmethod
    def _parse_json_result(resp: httpx.Response, url: str) -> ScrapingResult:
        try:
            data = orjson.loads(resp.content)
        except orjson.JSONDecodeError as e:
            raise FetchError(f"Invalid JSON from {url}") from e
        if not isinstance(data, dict):
            raise FetchError(f"Unexpected JSON payload from {url}")
        if data.get("error"):
            raise FetchError(str(data["error"]))
        try:
            return ScrapingResult.model_validate(data)
        except ValidationError as e:
            raise FetchError(f"JSON from {url} is not a scrape result") from e
