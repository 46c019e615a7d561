import pytest

from models import PriceState, ScrapingResult, Variant, parse_price_amount


@pytest.mark.parametrize(
    "price, expected",
    [
        ("$19.99", 19.99),
        ("$1,299.00", 1299.0),
        ("19.99", 19.99),
        ("EUR 5.50", 5.5),
        ("Requires Page Visit", None),
        ("Fetch Failed", None),
        ("N/A", None),
        ("", None),
        (None, None),
        ("free", None),
    ],
)
def test_parse_price_amount(price, expected):
    assert parse_price_amount(price) == expected


def test_variant_defaults_and_price_state():
    v = Variant(name="Red", asin="A1", url="https://www.amazon.com/dp/A1")
    assert v.price == "Requires Page Visit"
    assert v.needs_fetch

    v = Variant(name="Red", asin="A1", url="u", price=PriceState.UNAVAILABLE)
    assert v.price == "Unavailable"
    assert not v.needs_fetch


def test_result_serializes_camel_case():
    result = ScrapingResult(
        success=True,
        variants=[Variant(name="Red", asin="A1", url="u", dimensions={"Color": "Red"})],
        parent_price="$1.00",
        current_asin="A1",
        debug_info="dbg",
    )
    data = result.to_json_dict()
    assert data["parentPrice"] == "$1.00"
    assert data["currentAsin"] == "A1"
    assert data["debugInfo"] == "dbg"
    assert data["fetchedCount"] == 0
    assert data["variants"][0]["dimensions"] == {"Color": "Red"}
    assert "parent_price" not in data


def test_result_accepts_either_key_style():
    assert ScrapingResult.model_validate({"success": True, "parentPrice": "$2"}).parent_price == "$2"
    assert ScrapingResult(success=True, parent_price="$3").parent_price == "$3"
