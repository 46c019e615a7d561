import re
from enum import Enum

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel


class PriceState(str, Enum):
    """Sentinel values stored in Variant.price when no literal price is known."""

    REQUIRES_FETCH = "Requires Page Visit"  # known variant, price not fetched yet
    UNAVAILABLE = "Unavailable"  # page fetched, no price on it
    FETCH_FAILED = "Fetch Failed"  # fetch errored or timed out
    NOT_FOUND = "N/A"  # Price Extractor found nothing


_SENTINEL_PRICES = frozenset(s.value for s in PriceState)
_NON_NUMERIC_RE = re.compile(r"[^0-9.]")


class _CamelModel(BaseModel):
    # Serialized as the flat camelCase JSON the scrape API returns;
    # snake_case names are accepted on input too.
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Variant(_CamelModel):
    """One purchasable SKU discovered on a product page."""

    name: str  # dimension values joined with " / "
    asin: str
    price: str = PriceState.REQUIRES_FETCH.value  # literal price or a PriceState value
    url: str  # {origin}/dp/{asin}
    dimensions: dict[str, str] = {}  # e.g. {"Color": "Red", "Size": "M"}, ordered

    @field_validator("price", mode="before")
    @classmethod
    def unwrap_price_state(cls, v):
        if isinstance(v, PriceState):
            return v.value
        return v

    @property
    def needs_fetch(self) -> bool:
        return self.price == PriceState.REQUIRES_FETCH.value


class ScrapingResult(_CamelModel):
    """Outcome of one extraction attempt against one document."""

    success: bool
    variants: list[Variant] = []
    parent_price: str | None = None
    message: str = ""
    debug_info: str | None = None
    # Which strategy produced the variants ("classic", "twister", "swatch")
    strategy: str | None = None
    current_asin: str | None = None
    title: str | None = None
    fetched_count: int = 0

    def to_json_dict(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


def parse_price_amount(price: str | None) -> float | None:
    """Parse a display price like "$1,299.00" into a float.

    Sentinels and anything without digits return None. Only digits and periods
    survive, so thousands separators are dropped.
    """
    if not price or price in _SENTINEL_PRICES:
        return None
    cleaned = _NON_NUMERIC_RE.sub("", price)
    if not cleaned:
        return None
    try:
        return float(cleaned)
    except ValueError:
        return None
