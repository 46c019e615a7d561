import json
import re

import pytest
from bs4 import BeautifulSoup

from conftest import build_page, offscreen_price, whole_fraction_price
from parser import (
    extract_price,
    find_price,
    load_embedded_json,
    locate_json_block,
    parse_html,
    resolve_base_url,
)


class TestLocateJsonBlock:
    def test_returns_nested_object_intact(self):
        obj = {"a": {"b": {"c": [1, {"d": {}}]}}, "e": "f"}
        source = f"var x = {{marker: {json.dumps(obj)}, tail: {{}}}};"
        raw = locate_json_block(source, r"marker:")
        assert json.loads(raw) == obj

    def test_deep_nesting(self):
        obj: dict = {}
        node = obj
        for i in range(40):
            node["k"] = {"level": i}
            node = node["k"]
        source = "prefix key = " + json.dumps(obj) + " suffix }}}"
        assert json.loads(locate_json_block(source, "key =")) == obj

    def test_braces_inside_strings_are_not_counted(self):
        obj = {"label": "size {XL}", "quote": 'a "}" b', "n": 1}
        source = "data: " + json.dumps(obj) + ", other: {}"
        assert json.loads(locate_json_block(source, r"data:")) == obj

    def test_stops_at_balance_even_if_text_follows(self):
        source = 'm: {"a": 1} {"b": 2}'
        assert locate_json_block(source, "m:") == '{"a": 1}'

    def test_skips_whitespace_after_marker(self):
        assert locate_json_block("m:\n\t   {\"a\": 1}", "m:") == '{"a": 1}'

    def test_marker_absent(self):
        assert locate_json_block('{"a": 1}', "nope") is None

    def test_marker_not_followed_by_object(self):
        assert locate_json_block('m: "string", n: {"a": 1}', "m:") is None

    def test_unbalanced_input(self):
        assert locate_json_block('m: {"a": {"b": 1}', "m:") is None

    def test_accepts_compiled_pattern(self):
        pattern = re.compile(r"\bkey[\"']?\s*:")
        assert locate_json_block('{"key" : {"x": 2}}', pattern) == '{"x": 2}'

    def test_first_occurrence_wins(self):
        source = 'm: {"first": 1} m: {"second": 2}'
        assert json.loads(locate_json_block(source, "m:")) == {"first": 1}


class TestLoadEmbeddedJson:
    def test_plain(self):
        assert load_embedded_json('{"a": [1, 2]}') == {"a": [1, 2]}

    def test_trailing_commas(self):
        assert load_embedded_json('{"a": [1, 2,], "b": {"c": 1,},}') == {"a": [1, 2], "b": {"c": 1}}

    def test_html_escaped(self):
        assert load_embedded_json("{&quot;a&quot;: &quot;x&amp;y&quot;}") == {"a": "x&y"}

    def test_garbage_raises(self):
        with pytest.raises(json.JSONDecodeError):
            load_embedded_json("{not json at all")


class TestExtractPrice:
    def test_whole_and_fraction(self):
        html = f"<html><body>{whole_fraction_price('19', '99')}</body></html>"
        assert extract_price(html) == "19.99"

    def test_whole_with_thousands_separator(self):
        html = f"<html><body>{whole_fraction_price('1,299', '00')}</body></html>"
        assert extract_price(html) == "1,299.00"

    def test_no_price_returns_na(self):
        assert extract_price("<html><body><p>Currently unavailable.</p></body></html>") == "N/A"

    def test_empty_document(self):
        assert extract_price("") == "N/A"

    def test_whole_fraction_beats_offscreen(self):
        body = offscreen_price("$25.00") + whole_fraction_price("19", "99")
        price, rule = find_price(f"<html><body>{body}</body></html>")
        assert price == "19.99"
        assert rule == "whole_fraction"

    def test_offscreen_keeps_currency_symbol(self):
        html = f"<html><body>{offscreen_price('  $1,234.56 ')}</body></html>"
        assert extract_price(html) == "$1,234.56"

    def test_aok_offscreen_sentence(self):
        html = '<html><body><span class="aok-offscreen"> $19.99 with 20 percent savings </span></body></html>'
        price, rule = find_price(html)
        assert price == "$19.99"
        assert rule == "aok_offscreen"

    @pytest.mark.parametrize("text", ["AED 49.00", "CHF 12.50", "19.99 USD", "129,00 zł", "￥1,980"])
    def test_local_currency_formats_are_kept(self, text):
        html = f"<html><body>{offscreen_price(text)}</body></html>"
        price, rule = find_price(html)
        assert price == text
        assert rule == "offscreen"

    def test_whole_without_fraction_falls_back_to_offscreen(self):
        html = (
            '<html><body><span class="a-price">'
            '<span class="a-offscreen">￥1,980</span>'
            '<span class="a-price-whole">1,980</span>'
            "</span></body></html>"
        )
        assert extract_price(html) == "￥1,980"

    def test_legacy_priceblock_with_currency_code(self):
        html = '<html><body><span id="priceblock_ourprice"> EUR  24,90 </span></body></html>'
        assert extract_price(html) == "EUR 24,90"

    def test_offscreen_without_digits_is_skipped(self):
        html = (
            '<html><body><span class="a-offscreen">Price not shown</span>'
            '<span id="priceblock_ourprice">£12.50</span></body></html>'
        )
        price, rule = find_price(html)
        assert price == "£12.50"
        assert rule == "legacy_priceblock"

    def test_deal_price_block(self):
        html = '<html><body><span id="priceblock_dealprice">$7.49</span></body></html>'
        assert extract_price(html) == "$7.49"

    def test_metadata_price_amount(self):
        html = '<html><body><script>var d = {"priceAmount": 42.5, "x": 1};</script></body></html>'
        price, rule = find_price(html)
        assert price == "42.5"
        assert rule == "metadata"

    def test_metadata_price_string(self):
        html = '<html><body><script>var d = {"price":"$8.00"};</script></body></html>'
        assert extract_price(html) == "$8.00"

    def test_accepts_soup(self):
        soup = BeautifulSoup(f"<html><body>{offscreen_price('$3.10')}</body></html>", "lxml")
        assert extract_price(soup) == "$3.10"


class TestParseHtml:
    def test_page_fields(self):
        html = build_page(
            asin="B000TEST01",
            canonical="https://www.amazon.co.uk/Some-Product/dp/B000TEST01",
            title="Some   Product\n Title",
        )
        page = parse_html(html)
        assert page.current_asin == "B000TEST01"
        assert page.canonical_url == "https://www.amazon.co.uk/Some-Product/dp/B000TEST01"
        assert page.title == "Some Product Title"

    def test_asin_from_legacy_input(self):
        page = parse_html('<html><body><input type="hidden" name="ASIN.0" value="B0LEGACY01"></body></html>')
        assert page.current_asin == "B0LEGACY01"

    def test_state_block_lookup(self):
        html = (
            '<html><body>'
            '<script type="a-state" data-a-state="{&quot;key&quot;:&quot;other&quot;}">{"o": 1}</script>'
            '<script type="a-state" data-a-state="{&quot;key&quot;:&quot;wanted&quot;}">{"w": 2}</script>'
            "</body></html>"
        )
        page = parse_html(html)
        assert page.state_block("wanted") == '{"w": 2}'
        assert page.state_block("missing") is None

    def test_state_blocks_yields_every_match_in_order(self):
        html = (
            '<html><body>'
            '<script type="a-state" data-a-state="{&quot;key&quot;:&quot;wanted-a&quot;}">{"a": 1}</script>'
            '<script type="a-state" data-a-state="{&quot;key&quot;:&quot;other&quot;}">{"o": 1}</script>'
            '<script type="a-state" data-a-state="{&quot;key&quot;:&quot;wanted-b&quot;}">{"b": 2}</script>'
            "</body></html>"
        )
        page = parse_html(html)
        assert list(page.state_blocks("wanted")) == ['{"a": 1}', '{"b": 2}']
        assert list(page.state_blocks("missing")) == []


class TestResolveBaseUrl:
    def test_canonical_first(self):
        assert resolve_base_url("https://www.amazon.de/x/dp/B1", "https://www.amazon.com/dp/B1") == "https://www.amazon.de"

    def test_context_url_when_canonical_invalid(self):
        assert resolve_base_url("/relative/only", "https://www.amazon.ca/dp/B1?th=1") == "https://www.amazon.ca"

    def test_default(self):
        assert resolve_base_url(None, "not a url") == "https://www.amazon.com"
        assert resolve_base_url(None, None, default="https://example.test/") == "https://example.test"
