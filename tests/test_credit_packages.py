"""
Tests for the credit package catalog and custom amount validation.
"""

from decimal import Decimal

import pytest
from hypothesis import given
from hypothesis import strategies as st

from pawbook.config import settings
from pawbook.exceptions import ValidationError
from pawbook.services.credit_packages import (
    SUGGESTED_PACKAGES,
    build_packages,
    format_price,
    price_for,
    shortfall,
    validate_custom_amount,
)


class TestSuggestedPackages:
    def test_catalog(self):
        assert [(p.credits, p.price) for p in SUGGESTED_PACKAGES] == [
            (250, Decimal("2.50")),
            (500, Decimal("5.00")),
            (1000, Decimal("10.00")),
        ]
        assert [p.popular for p in SUGGESTED_PACKAGES] == [False, True, False]


class TestShortfall:
    def test_no_shortfall_when_covered(self):
        assert shortfall(100, 150) == 0
        assert build_packages(100, 150) == list(SUGGESTED_PACKAGES)

    def test_shortfall_package_listed_first(self):
        packages = build_packages(required_credits=160, current_balance=40)
        first = packages[0]
        assert first.is_shortfall is True
        assert first.credits == 120
        assert first.price == Decimal("1.20")
        assert packages[1:] == list(SUGGESTED_PACKAGES)

    @given(
        required=st.integers(min_value=0, max_value=10_000),
        balance=st.integers(min_value=0, max_value=10_000),
    )
    def test_shortfall_never_negative(self, required, balance):
        missing = shortfall(required, balance)
        assert missing >= 0
        assert balance + missing >= required


class TestPricing:
    def test_price_for(self):
        assert price_for(250) == Decimal("2.50")
        assert price_for(1) == Decimal("0.01")

    def test_format_price(self):
        assert format_price(Decimal("2.5")) == "$2.50"
        assert format_price(Decimal("10")) == "$10.00"


class TestValidateCustomAmount:
    @pytest.mark.parametrize("value,expected", [(1, 1), ("42", 42), (" 500 ", 500)])
    def test_accepts_valid_amounts(self, value, expected):
        assert validate_custom_amount(value) == expected

    def test_accepts_maximum(self):
        assert validate_custom_amount(settings.max_credit_purchase) == settings.max_credit_purchase

    @pytest.mark.parametrize("value", [0, -5, "abc", "", "1.5", None, True, 2.0])
    def test_rejects_invalid_amounts(self, value):
        with pytest.raises(ValidationError) as exc_info:
            validate_custom_amount(value)
        assert exc_info.value.field == "creditAmount"

    def test_rejects_above_maximum(self):
        with pytest.raises(ValidationError):
            validate_custom_amount(settings.max_credit_purchase + 1)
