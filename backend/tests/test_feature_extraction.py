import pytest

from backend.finledger.norma.normalize import (
    amount_range,
    descriptions_similar,
    extract_features,
    normalize_text,
)


def test_normalize_text_strips_accents_and_punctuation():
    assert normalize_text("Café  Brasília!") == "cafe  brasilia"
    assert normalize_text("  UBER *TRIP  ") == "uber trip"
    assert normalize_text(None) == ""


def test_normalize_text_drops_non_ascii_letters():
    assert normalize_text("Straße 東京 taxi") == "strae  taxi"
    assert normalize_text("naïve café_bar") == "naive cafe_bar"


@pytest.mark.parametrize(
    "amount, bucket",
    [
        (-49.99, "amount_very_low"),
        (50, "amount_low"),
        (99.99, "amount_low"),
        (100, "amount_medium"),
        (499.99, "amount_medium"),
        (500, "amount_high"),
        (999.99, "amount_high"),
        (1000, "amount_very_high"),
    ],
)
def test_amount_range_boundaries(amount, bucket):
    assert amount_range(amount) == bucket


def test_extract_features_for_expense():
    assert extract_features("Uber *Trip", -23.5) == "uber trip expense amount_very_low"


def test_extract_features_zero_amount_is_income_polarity():
    assert extract_features("Refund", 0) == "refund income amount_very_low"


def test_extract_features_blank_description_keeps_amount_tokens():
    assert extract_features("", -1500) == "expense amount_very_high"


def test_descriptions_similar_is_containment_both_ways():
    assert descriptions_similar("netflix", "netflix com monthly")
    assert descriptions_similar("netflix com monthly", "netflix")
    assert not descriptions_similar("netflix", "spotify")
