"""
Variant extractor: ordered strategies over one product page.

Each strategy knows one embedded data shape:
  A) Classic   dimension-value table + ASIN-to-index map in inline JS
  B) Twister   <script type="a-state"> block with sortedDimValuesForAllDims
  C) Swatch    the rendered #twister swatch rows (no JSON at all)

Strategies run in order and the first one that yields variants wins;
results from different strategies are never merged.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any

from models import PriceState, ScrapingResult, Variant
from parser import (
    DEFAULT_ORIGIN,
    ParsedPage,
    extract_price,
    load_embedded_json,
    locate_json_block,
    parse_html,
    resolve_base_url,
)

logger = logging.getLogger(__name__)

UNKNOWN = "Unknown"
NAME_SEPARATOR = " / "

# Marker keys the page producer may rename without notice.
CLASSIC_VALUE_TABLE_MARKERS = (
    re.compile(r"\bdimensionValuesDisplayData[\"']?\s*:"),
    re.compile(r"\bvariationValues[\"']?\s*:"),
)
CLASSIC_INDEX_MAP_MARKER = re.compile(r"\basinToDimensionIndexMap[\"']?\s*:")
TWISTER_STATE_KEY = "desktop-twister-sort-filter-data"
# Raw-text fallback for when the a-state tag didn't survive HTML parsing intact
_TWISTER_RAW_MARKER = re.compile(re.escape(TWISTER_STATE_KEY) + r"[^>]*>")

_DP_URL_RE = re.compile(r"/dp/([A-Z0-9]{10})", re.IGNORECASE)
_SELECTED_SWATCH_CLASSES = {"swatchSelect", "selected"}


@dataclass
class VariantDraft:
    """A variant as a strategy sees it: no URL or price yet."""

    asin: str
    dimensions: dict[str, str]

    @property
    def name(self) -> str:
        return NAME_SEPARATOR.join(self.dimensions.values())


@dataclass
class DimensionOption:
    """One selectable value under a dimension (a swatch or twister value record)."""

    label: str
    selected: bool = False
    asin: str | None = None


# =====================================================================
# Strategy base
# =====================================================================


class VariantStrategy:
    """One way of finding variant data in a page.

    Subclasses implement try_parse and return an empty list when their data
    shape isn't present. They may raise on malformed data; the orchestrator
    treats that the same as an empty result.
    """

    name = ""
    label = ""
    marker_hint = ""  # shown in the "nothing found" message

    def try_parse(self, page: ParsedPage) -> list[VariantDraft]:
        raise NotImplementedError

    def success_message(self, count: int) -> str:
        return f"Found {count} variants ({self.label})."


def _expand_cross_section(options_by_dim: dict[str, list[DimensionOption]]) -> list[VariantDraft]:
    """Turn per-dimension option lists into variants around the current selection.

    The selected option of each dimension is the baseline. Every option that
    carries an ASIN yields one variant: the baseline with only its own
    dimension changed. Only single-axis deviations can be discovered this
    way, not the full cross-product. The first occurrence of an ASIN wins.
    """
    baseline: dict[str, str] = {}
    for dim, options in options_by_dim.items():
        for option in options:
            if option.selected:
                baseline[dim] = option.label
                break

    seen: set[str] = set()
    drafts: list[VariantDraft] = []
    for target_dim, options in options_by_dim.items():
        for option in options:
            if not option.asin or option.asin in seen:
                continue
            dimensions = {
                dim: option.label if dim == target_dim else baseline.get(dim, UNKNOWN)
                for dim in options_by_dim
            }
            drafts.append(VariantDraft(asin=option.asin, dimensions=dimensions))
            seen.add(option.asin)
    return drafts


# =====================================================================
# Strategy A: Classic dimension-index map
# =====================================================================


def _lookup_dimension_value(values: Any, indices: Any, position: int) -> str:
    """values[indices[position]], or UNKNOWN when any step doesn't resolve."""
    if not isinstance(values, list) or not isinstance(indices, list):
        return UNKNOWN
    if position >= len(indices):
        return UNKNOWN
    index = indices[position]
    if isinstance(index, bool) or not isinstance(index, int):
        return UNKNOWN
    if index < 0 or index >= len(values):
        return UNKNOWN
    value = values[index]
    if value is None or value == "":
        return UNKNOWN
    return str(value)


class ClassicStrategy(VariantStrategy):
    name = "classic"
    label = "Classic Method"
    marker_hint = "'dimensionValuesDisplayData'"

    def try_parse(self, page: ParsedPage) -> list[VariantDraft]:
        values_raw = None
        for marker in CLASSIC_VALUE_TABLE_MARKERS:
            values_raw = locate_json_block(page.html, marker)
            if values_raw:
                break
        index_raw = locate_json_block(page.html, CLASSIC_INDEX_MAP_MARKER)
        if not values_raw or not index_raw:
            return []

        value_table = load_embedded_json(values_raw)
        index_map = load_embedded_json(index_raw)
        if not isinstance(value_table, dict) or not isinstance(index_map, dict):
            return []

        dimension_names = list(value_table.keys())
        drafts: list[VariantDraft] = []
        for asin, indices in index_map.items():
            dimensions = {
                dim: _lookup_dimension_value(value_table[dim], indices, position)
                for position, dim in enumerate(dimension_names)
            }
            drafts.append(VariantDraft(asin=str(asin), dimensions=dimensions))
        return drafts


# =====================================================================
# Strategy B: Twister a-state block
# =====================================================================


class TwisterStrategy(VariantStrategy):
    name = "twister"
    label = "Twister Plus Method"
    marker_hint = f"'{TWISTER_STATE_KEY}'"

    def success_message(self, count: int) -> str:
        return (
            f"Found {count} variants ({self.label}). "
            "Note: Some combinations may require page visits to reveal."
        )

    def try_parse(self, page: ParsedPage) -> list[VariantDraft]:
        blocks = list(page.state_blocks(TWISTER_STATE_KEY))
        if not blocks:
            raw = locate_json_block(page.html, _TWISTER_RAW_MARKER)
            blocks = [raw] if raw else []

        # Pages can carry several matching blocks; only some hold the dimensions
        for position, raw in enumerate(blocks):
            try:
                drafts = self._parse_block(raw)
            except json.JSONDecodeError as e:
                logger.debug(f"Skipping malformed twister block #{position}: {e}")
                continue
            if drafts:
                return drafts
        return []

    def _parse_block(self, raw: str) -> list[VariantDraft]:
        data = load_embedded_json(raw)
        if not isinstance(data, dict):
            return []
        dims_data = data.get("sortedDimValuesForAllDims")
        if not isinstance(dims_data, dict):
            return []

        options_by_dim: dict[str, list[DimensionOption]] = {}
        for dim, records in dims_data.items():
            if not isinstance(records, list):
                records = []
            options_by_dim[dim] = [
                DimensionOption(
                    label=str(record.get("dimensionValueDisplayText") or UNKNOWN),
                    selected=record.get("dimensionValueState") == "SELECTED",
                    asin=str(record["defaultAsin"]) if record.get("defaultAsin") else None,
                )
                for record in records
                if isinstance(record, dict)
            ]

        return _expand_cross_section(options_by_dim)


# =====================================================================
# Strategy C: Swatch rows in the rendered twister widget
# =====================================================================


def _swatch_asin(swatch) -> str | None:
    asin = swatch.get("data-defaultasin")
    if isinstance(asin, str) and asin.strip():
        return asin.strip()
    dp_url = swatch.get("data-dp-url")
    if isinstance(dp_url, str):
        match = _DP_URL_RE.search(dp_url)
        if match:
            return match.group(1)
    return None


def _swatch_label(swatch) -> str:
    img = swatch.find("img")
    if img is not None and img.get("alt"):
        return img["alt"].strip()
    text = swatch.select_one(".a-size-base")
    if text is not None and text.get_text(strip=True):
        return text.get_text(strip=True)
    title = swatch.get("title")
    if isinstance(title, str) and title.strip():
        return re.sub(r"^Click to select\s+", "", title.strip())
    return UNKNOWN


class SwatchStrategy(VariantStrategy):
    name = "swatch"
    label = "Swatch Fallback Method"
    marker_hint = "'#twister' swatches"

    def success_message(self, count: int) -> str:
        return (
            f"Found {count} variants ({self.label}). "
            "Note: Some combinations may require page visits to reveal."
        )

    def try_parse(self, page: ParsedPage) -> list[VariantDraft]:
        options_by_dim: dict[str, list[DimensionOption]] = {}
        for row in page.soup.select("#twister .a-row"):
            label_node = row.select_one(".a-form-label")
            if label_node is None:
                continue
            dim = re.sub(r"\s+", " ", label_node.get_text()).replace(":", "").strip()
            if not dim or dim in options_by_dim:
                continue

            options = []
            for swatch in row.find_all("li"):
                asin = _swatch_asin(swatch)
                if not asin:
                    continue
                classes = set(swatch.get("class") or [])
                options.append(DimensionOption(
                    label=_swatch_label(swatch),
                    selected=bool(classes & _SELECTED_SWATCH_CLASSES),
                    asin=asin,
                ))
            if options:
                options_by_dim[dim] = options

        return _expand_cross_section(options_by_dim)


DEFAULT_STRATEGIES: tuple[VariantStrategy, ...] = (
    ClassicStrategy(),
    TwisterStrategy(),
    SwatchStrategy(),
)


# =====================================================================
# Orchestrator
# =====================================================================


def _build_variant(
    draft: VariantDraft,
    base_url: str,
    current_asin: str | None,
    parent_price: str,
) -> Variant:
    is_current = current_asin is not None and draft.asin == current_asin
    if is_current and parent_price != PriceState.NOT_FOUND.value:
        price = parent_price
    else:
        price = PriceState.REQUIRES_FETCH.value
    return Variant(
        name=draft.name,
        asin=draft.asin,
        price=price,
        url=f"{base_url}/dp/{draft.asin}",
        dimensions=draft.dimensions,
    )


def extract_variants(
    html: str,
    context_url: str | None = None,
    *,
    strategies: tuple[VariantStrategy, ...] | list[VariantStrategy] | None = None,
    default_origin: str = DEFAULT_ORIGIN,
) -> ScrapingResult:
    """Extract the variant list from one product page.

    Never raises for shape problems: a page none of the strategies understand
    comes back as success=False with an explanatory message. The page price
    and current ASIN are reported either way.
    """
    if strategies is None:
        strategies = DEFAULT_STRATEGIES

    page = parse_html(html or "")
    parent_price = extract_price(page)
    base_url = resolve_base_url(page.canonical_url, context_url, default_origin)

    for strategy in strategies:
        try:
            drafts = strategy.try_parse(page)
        except (json.JSONDecodeError, KeyError, TypeError, AttributeError) as e:
            logger.debug(f"{strategy.name} strategy could not parse its block: {e}")
            continue
        except Exception:
            logger.warning(f"{strategy.name} strategy failed unexpectedly", exc_info=True)
            continue

        if not drafts:
            logger.debug(f"{strategy.name} strategy found no variants")
            continue

        variants = [
            _build_variant(d, base_url, page.current_asin, parent_price)
            for d in drafts
        ]
        logger.info(f"{strategy.name} strategy found {len(variants)} variants (current ASIN {page.current_asin})")
        return ScrapingResult(
            success=True,
            variants=variants,
            parent_price=parent_price,
            message=strategy.success_message(len(variants)),
            strategy=strategy.name,
            current_asin=page.current_asin,
            title=page.title,
        )

    checked = " and ".join(s.marker_hint or s.name for s in strategies)
    return ScrapingResult(
        success=False,
        variants=[],
        parent_price=parent_price,
        message=f"Could not find variant map (checked {checked}). This might be a single item page.",
        current_asin=page.current_asin,
        title=page.title,
    )
