"""Unit tests for the packaging classifier."""

from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal

import pytest

from fleetflow.models.enums import PackagingType
from fleetflow.modules.packaging.classifier import classify


class TestClassifyThresholds:
    @pytest.mark.parametrize(
        ("weight", "volume", "expected"),
        [
            (30.0, 0.10, PackagingType.BOX_L),
            (30.1, 0.0, PackagingType.CRATE_XL),
            (0.0, 0.13, PackagingType.CRATE_XL),
            (2, 0.01, PackagingType.BAG_S),
            (8, 0.01, PackagingType.BOX_M),
            (40, 0.01, PackagingType.CRATE_XL),
            (15, 0.05, PackagingType.BOX_M),
            (15.01, 0.0, PackagingType.BOX_L),
            (5, 0.02, PackagingType.BAG_S),
            (0, 0.021, PackagingType.BOX_M),
            (0, 0.12, PackagingType.BOX_L),
        ],
    )
    def test_smallest_fitting_tier(self, weight, volume, expected):
        assert classify(weight, volume) == expected

    def test_thresholds_are_exclusive(self):
        # Exactly at a tier's upper bound stays in the smaller tier
        assert classify(Decimal("30"), Decimal("0.12")) == PackagingType.BOX_L
        assert classify(Decimal("30.00"), Decimal("0.120")) == PackagingType.BOX_L

    def test_none_counts_as_zero(self):
        assert classify(None, None) == PackagingType.BAG_S
        assert classify(None, 0.2) == PackagingType.CRATE_XL
        assert classify(31, None) == PackagingType.CRATE_XL

    def test_weight_alone_or_volume_alone_is_enough(self):
        assert classify(16, 0.0) == PackagingType.BOX_L
        assert classify(0.0, 0.06) == PackagingType.BOX_L


class TestClassifyDeterminism:
    def test_repeated_calls_agree(self):
        results = {classify(12.5, 0.03) for _ in range(100)}
        assert results == {PackagingType.BOX_M}

    def test_float_and_decimal_inputs_agree(self):
        assert classify(0.12, 0.0) == classify(Decimal("0.12"), Decimal("0"))
        assert classify(0.0, 0.12) == classify(Decimal("0"), Decimal("0.12"))

    def test_concurrent_calls_agree(self):
        inputs = [(w / 2, v / 100) for w in range(0, 80) for v in range(0, 15)]
        expected = [classify(w, v) for w, v in inputs]
        with ThreadPoolExecutor(max_workers=8) as pool:
            actual = list(pool.map(lambda args: classify(*args), inputs))
        assert actual == expected
