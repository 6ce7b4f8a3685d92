"""
Unit tests for the pricing rule evaluator.
"""

from decimal import Decimal
from types import SimpleNamespace

import pytest

from storefront.services.pricing_service import compute_discount


def rule(special_type, value):
    return SimpleNamespace(type=special_type, value=value)


def items(*quantities):
    return [SimpleNamespace(quantity=q) for q in quantities]


class TestPercentageDiscount:
    """Tests for discount_percentage and bundle_discount."""

    def test_ten_percent_of_subtotal(self):
        assert compute_discount(rule('discount_percentage', 10), '59.90') == Decimal('5.99')

    def test_rounds_half_up_to_cents(self):
        # 12.5% of 0.20 = 0.025
        assert compute_discount(rule('discount_percentage', 12.5), '0.20') == Decimal('0.03')

    def test_monotonic_and_bounded(self):
        """Never decreases as the subtotal grows and never exceeds subtotal x rate."""
        special = rule('discount_percentage', 15)
        previous = Decimal('0')
        for cents in range(0, 20001, 137):
            subtotal = Decimal(cents) / 100
            discount = compute_discount(special, subtotal)
            assert discount >= previous
            assert discount <= subtotal * Decimal('0.15') + Decimal('0.005')
            previous = discount

    def test_bundle_discount_applies_to_whole_cart(self):
        assert compute_discount(rule('bundle_discount', 20), 100) == Decimal('20.00')

    def test_negative_subtotal_clamped(self):
        assert compute_discount(rule('discount_percentage', 10), -50) == Decimal('0.00')


class TestFixedDiscount:
    """Tests for fixed_price."""

    def test_fixed_amount(self):
        assert compute_discount(rule('fixed_price', 5), 30) == Decimal('5.00')

    def test_never_exceeds_subtotal(self):
        assert compute_discount(rule('fixed_price', 25), '19.99') == Decimal('19.99')

    def test_value_stored_as_object(self):
        assert compute_discount(rule('fixed_price', {'amount': 7.5}), 30) == Decimal('7.50')


class TestBuyXGetY:
    """Tests for buy_x_get_y."""

    def test_two_plus_one_on_five_items(self):
        special = rule('buy_x_get_y', {'buyQuantity': 2, 'getQuantity': 1})
        assert compute_discount(special, 50, items(5)) == Decimal('10.00')

    def test_quantities_summed_across_lines(self):
        special = rule('buy_x_get_y', {'buyQuantity': 2, 'getQuantity': 1})
        assert compute_discount(special, 60, items(2, 2, 2)) == Decimal('20.00')

    def test_defaults_to_two_plus_one(self):
        assert compute_discount(rule('buy_x_get_y', {}), 30, items(3)) == Decimal('10.00')

    def test_fewer_items_than_required(self):
        special = rule('buy_x_get_y', {'buyQuantity': 3, 'getQuantity': 1})
        assert compute_discount(special, 20, items(2)) == Decimal('0.00')

    def test_no_lines_means_no_discount(self):
        assert compute_discount(rule('buy_x_get_y', {'buyQuantity': 2, 'getQuantity': 1}), 50) == Decimal('0.00')

    def test_accepts_generator_of_lines(self):
        special = rule('buy_x_get_y', {'buy_quantity': 1, 'get_quantity': 1})
        lines = (line for line in items(4))
        assert compute_discount(special, 40, lines) == Decimal('20.00')


class TestUnknownType:

    def test_unknown_type_gives_zero(self):
        assert compute_discount(rule('loyalty_points', 10), 100) == Decimal('0.00')

    def test_invalid_subtotal_raises(self):
        with pytest.raises(ValueError):
            compute_discount(rule('discount_percentage', 10), 'abc')
