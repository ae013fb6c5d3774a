from __future__ import annotations

from decimal import Decimal

import pytest

from receipt_lens.modules.extraction.models import Category
from receipt_lens.modules.extraction.normalizer import CATEGORY_RULES, categorize


@pytest.mark.parametrize(
    ("merchant", "expected"),
    [
        ("Uber Technologies", Category.TRANSPORTATION),
        ("LYFT RIDE", Category.TRANSPORTATION),
        ("Yellow Taxi Co", Category.TRANSPORTATION),
        ("Joe's Pizza", Category.FOOD_AND_DINING),
        ("STARBUCKS COFFEE", Category.FOOD_AND_DINING),
        ("Hilton Hotel", Category.TRAVEL_AND_LODGING),
        ("Airbnb Payments", Category.TRAVEL_AND_LODGING),
        ("Staples", Category.OFFICE_SUPPLIES),
        ("Exxon Mobil", Category.FUEL),
        ("BP Connect", Category.FUEL),
    ],
)
def test_categorize_by_merchant_keyword(merchant, expected):
    assert categorize(merchant, Decimal("20.00")) == expected


def test_fuel_keyword_wins_over_major_purchase_threshold():
    assert categorize("Shell Gas Station", Decimal("900.00")) == Category.FUEL


def test_unknown_merchant_uses_amount_threshold():
    assert categorize("Acme Corp", Decimal("600")) == Category.MAJOR_PURCHASE
    assert categorize("Acme Corp", Decimal("40")) == Category.GENERAL
    assert categorize("Acme Corp", Decimal("500.00")) == Category.GENERAL


def test_earliest_rule_wins_when_several_keyword_sets_match():
    # "uber" (transportation) and "food" (dining) both appear.
    assert categorize("Uber Food Delivery", Decimal("15")) == Category.TRANSPORTATION
    # "cafe" (dining) precedes "hotel" (lodging).
    assert categorize("Hotel Cafe Royal", Decimal("15")) == Category.FOOD_AND_DINING


def test_matching_is_plain_substring_containment():
    # "bp" inside an unrelated word still counts.
    assert categorize("Abpex Ltd", Decimal("10")) == Category.FUEL
    assert categorize("", Decimal("10")) == Category.GENERAL


def test_rule_table_order():
    assert [category for _keywords, category in CATEGORY_RULES] == [
        Category.TRANSPORTATION,
        Category.FOOD_AND_DINING,
        Category.TRAVEL_AND_LODGING,
        Category.OFFICE_SUPPLIES,
        Category.FUEL,
    ]
