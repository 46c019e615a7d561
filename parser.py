"""
HTML parser for Amazon product pages.

Pulls out the pieces the variant extractor works from: embedded JSON blocks
(located by marker and brace-matched), inline <script type="a-state"> blocks,
the current ASIN, the canonical URL, and the displayed price.

No variant logic lives here; see extractor.py.
"""

import html as html_lib
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator
from urllib.parse import urlsplit

from bs4 import BeautifulSoup

from models import PriceState

logger = logging.getLogger(__name__)

DEFAULT_ORIGIN = "https://www.amazon.com"


@dataclass
class ParsedPage:
    """Everything the variant strategies need from one HTML document."""

    html: str
    soup: BeautifulSoup
    current_asin: str | None = None
    canonical_url: str | None = None
    title: str | None = None
    # (data-a-state attribute, script text) for every <script type="a-state">
    state_scripts: list[tuple[str, str]] = field(default_factory=list)

    def state_blocks(self, key: str) -> Iterator[str]:
        """Texts of every a-state script whose state key contains `key`, in page order."""
        for state_attr, text in self.state_scripts:
            if key in state_attr:
                yield text

    def state_block(self, key: str) -> str | None:
        return next(self.state_blocks(key), None)


def parse_html(html: str) -> ParsedPage:
    """Parse an HTML page and extract the page-level fields."""
    soup = BeautifulSoup(html, "lxml")
    return ParsedPage(
        html=html,
        soup=soup,
        current_asin=_extract_current_asin(soup),
        canonical_url=_extract_canonical_url(soup),
        title=_extract_title(soup),
        state_scripts=_extract_state_scripts(soup),
    )


# ---------------------------------------------------------------------------
# Page-level fields
# ---------------------------------------------------------------------------


def _extract_current_asin(soup: BeautifulSoup) -> str | None:
    """ASIN of the product the page itself shows (hidden form input)."""
    for selector in ("input#ASIN", 'input[name="ASIN.0"]', 'input[name="ASIN"]'):
        tag = soup.select_one(selector)
        if tag is None:
            continue
        value = tag.get("value")
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _extract_canonical_url(soup: BeautifulSoup) -> str | None:
    link = soup.find("link", attrs={"rel": "canonical"})
    if link is None:
        return None
    href = link.get("href")
    return href.strip() if isinstance(href, str) and href.strip() else None


def _extract_title(soup: BeautifulSoup) -> str | None:
    tag = soup.find(id="productTitle")
    if tag is None:
        return None
    text = re.sub(r"\s+", " ", tag.get_text()).strip()
    return text or None


def _extract_state_scripts(soup: BeautifulSoup) -> list[tuple[str, str]]:
    """Collect inline <script type="a-state" data-a-state="{...}"> blocks."""
    blocks: list[tuple[str, str]] = []
    for tag in soup.find_all("script", attrs={"type": "a-state"}):
        state_attr = tag.get("data-a-state") or ""
        text = tag.string
        if not text or not text.strip():
            continue
        blocks.append((state_attr, text.strip()))
    return blocks


def resolve_base_url(
    canonical_url: str | None,
    context_url: str | None,
    default: str = DEFAULT_ORIGIN,
) -> str:
    """Origin used to build variant URLs: canonical link, then context URL, then default."""
    for candidate in (canonical_url, context_url):
        origin = _origin_of(candidate)
        if origin:
            return origin
    return default.rstrip("/")


def _origin_of(url: str | None) -> str | None:
    if not url:
        return None
    try:
        parts = urlsplit(url.strip())
    except ValueError:
        return None
    if parts.scheme not in ("http", "https") or not parts.netloc:
        return None
    return f"{parts.scheme}://{parts.netloc}"


# ---------------------------------------------------------------------------
# Embedded JSON blocks
# ---------------------------------------------------------------------------


def locate_json_block(source: str, marker: str | re.Pattern) -> str | None:
    """Find `marker` in `source` and return the JSON object that follows it.

    The object is cut out by brace matching rather than a non-greedy regex,
    which stops at the first inner "}". Returns None when the marker is
    absent, when the next non-whitespace character is not "{", or when the
    input ends before the braces balance.
    """
    pattern = re.compile(marker) if isinstance(marker, str) else marker
    match = pattern.search(source)
    if not match:
        return None

    start = match.end()
    while start < len(source) and source[start] in " \t\n\r":
        start += 1

    if start >= len(source) or source[start] != "{":
        return None

    return _brace_match(source, start)


def _brace_match(text: str, start: int) -> str | None:
    """Extract a balanced JSON object/array from text starting at position start.

    Handles nested braces/brackets. Braces inside string literals (labels
    like "size {XL}") are skipped so they don't unbalance the count.
    """
    if start >= len(text) or text[start] not in ("{", "["):
        return None

    depth = 0
    in_string = False
    escape_next = False

    for i in range(start, len(text)):
        c = text[i]

        if escape_next:
            escape_next = False
            continue

        if c == "\\" and in_string:
            escape_next = True
            continue

        if c == '"':
            in_string = not in_string
            continue

        if in_string:
            continue

        if c in ("{", "["):
            depth += 1
        elif c in ("}", "]"):
            depth -= 1
            if depth == 0:
                return text[start : i + 1]

    return None


_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")


def load_embedded_json(raw: str) -> Any:
    """json.loads for blocks lifted out of inline scripts.

    Tries the block as-is, then with trailing commas removed, then
    HTML-unescaped (a-state blocks are sometimes served as &quot;-encoded
    text). Raises json.JSONDecodeError if every attempt fails.
    """
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        pass

    repaired = _TRAILING_COMMA_RE.sub(r"\1", raw)
    try:
        return json.loads(repaired)
    except json.JSONDecodeError:
        unescaped = html_lib.unescape(repaired)
        if unescaped == repaired:
            raise
        return json.loads(_TRAILING_COMMA_RE.sub(r"\1", unescaped))


# ---------------------------------------------------------------------------
# Price extraction
# ---------------------------------------------------------------------------

# Cuts "$19.99" out of "$19.99 with 20 percent savings"; also "AU$19.99", "19,99 €"
_CURRENCY_TOKEN_RE = re.compile(r"[A-Z]{0,3}[$€£¥₹￥]\s?\d[\d.,]*|\d[\d.,]*\s?€")
_WHOLE_STRIP_RE = re.compile(r"[^\d,]")

_OFFSCREEN_SELECTORS = (
    "#corePriceDisplay_desktop_feature_div .a-price .a-offscreen",
    ".apexPriceToPay .a-offscreen",
    'div[id^="corePrice"] span.a-offscreen',
    "span.a-price span.a-offscreen",
    "span.a-offscreen",
)
_AOK_OFFSCREEN_SELECTORS = (
    "#corePriceDisplay_desktop_feature_div .aok-offscreen",
    'div[id^="corePrice"] span.aok-offscreen',
    "span.a-price span.aok-offscreen",
    ".aok-offscreen",
)
_LEGACY_PRICE_SELECTORS = (
    "#priceblock_ourprice",
    "#priceblock_dealprice",
    "#priceblock_saleprice",
)
_METADATA_PRICE_RES = (
    re.compile(r'"priceAmount"\s*:\s*([\d.]+)'),
    re.compile(r'"price"\s*:\s*"([\d.,$€£]+)"'),
)


def _clean_price_text(text: str | None) -> str | None:
    """Whitespace-collapsed price text, or None when it has no digit.

    Currency codes and local formats ("AED 49.00", "19.99 USD", "129,00 zł")
    are kept as shown. Only a symbol-led price embedded in a longer sentence
    is cut down to the price itself.
    """
    if not text:
        return None
    text = re.sub(r"\s+", " ", text).strip()
    if not text or not re.search(r"\d", text):
        return None
    token = _CURRENCY_TOKEN_RE.search(text)
    if token and len(text.split()) > 2:
        return token.group(0).strip()
    return text


def _price_from_whole_fraction(soup: BeautifulSoup, raw: str) -> str | None:
    for whole in soup.select("span.a-price-whole"):
        container = whole.find_parent(class_="a-price") or whole.parent
        fraction = container.select_one("span.a-price-fraction") if container else None
        if fraction is None:
            continue
        whole_digits = _WHOLE_STRIP_RE.sub("", whole.get_text())
        fraction_digits = re.sub(r"\D", "", fraction.get_text())
        if whole_digits and fraction_digits:
            return f"{whole_digits}.{fraction_digits}"
    return None


def _first_matching_selector(soup: BeautifulSoup, selectors: tuple[str, ...]) -> str | None:
    for selector in selectors:
        for el in soup.select(selector):
            price = _clean_price_text(el.get_text())
            if price:
                return price
    return None


def _price_from_offscreen(soup: BeautifulSoup, raw: str) -> str | None:
    return _first_matching_selector(soup, _OFFSCREEN_SELECTORS)


def _price_from_aok_offscreen(soup: BeautifulSoup, raw: str) -> str | None:
    return _first_matching_selector(soup, _AOK_OFFSCREEN_SELECTORS)


def _price_from_legacy_ids(soup: BeautifulSoup, raw: str) -> str | None:
    return _first_matching_selector(soup, _LEGACY_PRICE_SELECTORS)


def _price_from_metadata(soup: BeautifulSoup, raw: str) -> str | None:
    for pattern in _METADATA_PRICE_RES:
        match = pattern.search(raw)
        if match and re.search(r"\d", match.group(1)):
            return match.group(1).strip()
    return None


# Highest priority first: structured price containers before generic ones.
PRICE_RULES: list[tuple[str, Callable[[BeautifulSoup, str], str | None]]] = [
    ("whole_fraction", _price_from_whole_fraction),
    ("offscreen", _price_from_offscreen),
    ("aok_offscreen", _price_from_aok_offscreen),
    ("legacy_priceblock", _price_from_legacy_ids),
    ("metadata", _price_from_metadata),
]


def find_price(doc: str | BeautifulSoup | ParsedPage) -> tuple[str, str | None]:
    """Run the price rules in order. Returns (price, rule_name) or ("N/A", None)."""
    if isinstance(doc, ParsedPage):
        soup, raw = doc.soup, doc.html
    elif isinstance(doc, BeautifulSoup):
        soup, raw = doc, str(doc)
    else:
        soup, raw = BeautifulSoup(doc or "", "lxml"), doc or ""

    for rule_name, rule in PRICE_RULES:
        price = rule(soup, raw)
        if price:
            return price, rule_name
    return PriceState.NOT_FOUND.value, None


def extract_price(doc: str | BeautifulSoup | ParsedPage) -> str:
    """Displayed product price, or "N/A" when the page shows none."""
    return find_price(doc)[0]
