# conftest.py
# Put the repository root on sys.path so the flat top-level modules
# (models, parser, extractor, ...) import the same way they do at runtime.

import html as html_lib
import json
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
ROOT_STR = str(ROOT)

if ROOT_STR not in sys.path:
    sys.path.insert(0, ROOT_STR)

# Enough filler to get past the fetcher's short-response check
FILLER = "<p>" + ("lorem ipsum dolor sit amet " * 30) + "</p>"


def build_page(
    *,
    scripts: str = "",
    body: str = "",
    asin: str | None = None,
    canonical: str | None = None,
    title: str | None = None,
) -> str:
    head = f'<link rel="canonical" href="{canonical}">' if canonical else ""
    asin_input = f'<input type="hidden" id="ASIN" name="ASIN" value="{asin}">' if asin else ""
    title_tag = f'<span id="productTitle">  {title}  </span>' if title else ""
    return (
        f"<html><head>{head}</head><body>"
        f"{title_tag}{asin_input}{body}{FILLER}"
        f"<script>{scripts}</script>"
        f"</body></html>"
    )


def classic_script(values: dict, index_map: dict, quoted: bool = False) -> str:
    q = '"' if quoted else ""
    return (
        "P.register('twister-js-init-dpx-data', function() { var dataToReturn = {"
        f"{q}dimensionValuesDisplayData{q}:{json.dumps(values)},"
        f'"unrelated":{{"a":{{"b":1}}}},'
        f"{q}asinToDimensionIndexMap{q}:{json.dumps(index_map)},"
        '"parentAsin":"PARENT01"}; return dataToReturn; });'
    )


def twister_state_tag(dims: dict, escape: bool = False) -> str:
    payload = json.dumps({"sortedDimValuesForAllDims": dims, "otherKey": {"x": [1, 2]}})
    if escape:
        payload = html_lib.escape(payload)
    return (
        '<script type="a-state" data-a-state="{&quot;key&quot;:&quot;desktop-twister-sort-filter-data&quot;}">'
        f"{payload}</script>"
    )


def twister_value(text: str, asin: str | None = None, selected: bool = False) -> dict:
    record = {
        "dimensionValueDisplayText": text,
        "dimensionValueState": "SELECTED" if selected else "AVAILABLE",
    }
    if asin:
        record["defaultAsin"] = asin
    return record


def whole_fraction_price(whole: str, fraction: str) -> str:
    return (
        '<span class="a-price">'
        f'<span class="a-price-whole">{whole}<span class="a-price-decimal">.</span></span>'
        f'<span class="a-price-fraction">{fraction}</span>'
        "</span>"
    )


def offscreen_price(text: str) -> str:
    return f'<span class="a-price"><span class="a-offscreen">{text}</span></span>'


@pytest.fixture
def two_color_page() -> str:
    """Two colors, current ASIN A1 showing $10.00."""
    return build_page(
        scripts=classic_script({"Color": ["Red", "Blue"]}, {"A1": [0], "A2": [1]}),
        body=offscreen_price("$10.00"),
        asin="A1",
    )
