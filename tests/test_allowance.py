"""
Tests for the regeneration allowance calculator.

Table checks for the known page counts plus Hypothesis properties over
arbitrary inputs.
"""

import pytest
from hypothesis import given
from hypothesis import strategies as st

from pawbook.services.allowance import (
    FREE_REGENERATION_LIMITS,
    REGENERATION_COST_CREDITS,
    allowance,
    free_limit,
    has_exceeded_limit,
    remaining,
    requires_payment,
    status_level,
)

page_counts = st.one_of(st.sampled_from([12, 16, 24]), st.integers(min_value=-100, max_value=1000))
used_counts = st.integers(min_value=-10, max_value=100)


class TestFreeLimit:
    @pytest.mark.parametrize("pages,expected", [(12, 3), (16, 4), (24, 5)])
    def test_known_page_counts(self, pages, expected):
        assert free_limit(pages) == expected

    @pytest.mark.parametrize("pages", [0, 8, 13, 20, 32, -1])
    def test_unknown_page_count_has_no_free_regenerations(self, pages):
        assert free_limit(pages) == 0
        assert has_exceeded_limit(pages, 0) is True

    def test_regeneration_cost(self):
        assert REGENERATION_COST_CREDITS == 16


class TestRemaining:
    def test_counts_down(self):
        assert remaining(16, 0) == 4
        assert remaining(16, 3) == 1
        assert remaining(16, 4) == 0

    def test_never_negative(self):
        assert remaining(12, 10) == 0

    def test_exceeded_exactly_at_limit(self):
        assert has_exceeded_limit(24, 4) is False
        assert has_exceeded_limit(24, 5) is True
        assert requires_payment(24, 5) is True


class TestStatusLevel:
    def test_levels(self):
        assert status_level(12, 0) == "available"
        assert status_level(12, 2) == "last"
        assert status_level(12, 3) == "exceeded"


class TestAllowanceValue:
    def test_matches_functions(self):
        value = allowance(16, used=1)
        assert value.free_limit == 4
        assert value.remaining == 3
        assert value.has_exceeded_limit is False

    def test_negative_used_is_clamped(self):
        assert allowance(12, used=-5).used == 0


class TestAllowanceProperties:
    @given(pages=page_counts, used=used_counts)
    def test_remaining_within_bounds(self, pages, used):
        assert 0 <= remaining(pages, used) <= free_limit(pages)

    @given(pages=page_counts, used=used_counts)
    def test_exceeded_iff_nothing_remaining(self, pages, used):
        assert has_exceeded_limit(pages, used) == (remaining(pages, used) == 0)

    @given(pages=page_counts, used=st.integers(min_value=0, max_value=100))
    def test_remaining_non_increasing_in_used(self, pages, used):
        assert remaining(pages, used + 1) <= remaining(pages, used)

    @given(pages=page_counts)
    def test_free_limit_only_for_known_counts(self, pages):
        assert free_limit(pages) == FREE_REGENERATION_LIMITS.get(pages, 0)
