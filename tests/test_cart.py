"""
Tests for the cart models, local cache and totals
"""

import random
from decimal import Decimal

import pytest

from storefront.cart import Cart, LineItem, LocalCartCache, MutationStatus, compute_totals
from storefront.cart.totals import shipping_for
from storefront.errors import ERROR_ITEM_NOT_IN_CART, InvalidQuantityError, NotFoundError

from .conftest import make_product


class TestLineItem:
    """Tests for LineItem dataclass."""

    def test_line_total(self):
        item = LineItem(product_id="p1", quantity=3, unit_price="19.99")

        assert item.unit_price == Decimal("19.99")
        assert item.line_total == Decimal("59.97")

    def test_from_product_snapshots_price_and_stock(self):
        product = make_product("p1", price=250, stock=4, name="Lamp")

        item = LineItem.from_product(product, 2)

        assert item.unit_price == Decimal("250")
        assert item.stock_quantity == 4
        assert item.name == "Lamp"

    def test_dict_keeps_decimal_precision(self):
        item = LineItem(product_id="p1", quantity=1, unit_price=Decimal("0.10"))

        data = item.to_dict()
        assert data["unit_price"] == "0.10"
        assert LineItem.from_dict(data).unit_price == Decimal("0.10")


class TestCart:
    """Tests for Cart dataclass."""

    def test_empty_cart(self):
        cart = Cart()

        assert cart.is_empty
        assert cart.total_item_count == 0
        assert cart.subtotal == 0

    def test_from_dict_drops_bad_rows_and_folds_duplicates(self):
        data = {
            "items": [
                {"product_id": "a", "quantity": 2, "unit_price": "10"},
                {"product_id": "b", "quantity": 0, "unit_price": "10"},
                {"product_id": "a", "quantity": 3, "unit_price": "10"},
            ]
        }

        cart = Cart.from_dict(data)

        assert cart.quantities() == {"a": 5}

    def test_insertion_order_kept(self):
        cache = LocalCartCache()
        for pid in ("c", "a", "b"):
            cache.add_item(make_product(pid))

        assert [item.product_id for item in cache.cart] == ["c", "a", "b"]


class TestLocalCartCache:
    """Tests for cache mutations."""

    def test_add_new_item(self):
        cache = LocalCartCache()

        result = cache.add_item(make_product("x", stock=5))

        assert result.status is MutationStatus.ADDED
        assert result.quantity == 1
        assert cache.cart.quantities() == {"x": 1}

    def test_add_same_product_twice_sums(self):
        cache = LocalCartCache()
        product = make_product("x", stock=10)

        cache.add_item(product, 3)
        result = cache.add_item(product, 4)

        assert result.status is MutationStatus.UPDATED
        assert len(cache.cart) == 1
        assert cache.cart.get("x").quantity == 7

    def test_add_over_stock_clamps(self):
        cache = LocalCartCache()
        product = make_product("x", stock=5)

        cache.add_item(product, 3)
        result = cache.add_item(product, 4)

        assert result.status is MutationStatus.CLAMPED
        assert result.quantity == 5
        assert cache.cart.get("x").quantity == 5

    def test_new_item_clamped_to_stock(self):
        cache = LocalCartCache()

        result = cache.add_item(make_product("x", stock=2), 10)

        assert result.clamped
        assert result.quantity == 2

    def test_out_of_stock_product_not_inserted(self):
        cache = LocalCartCache()

        result = cache.add_item(make_product("x", stock=0))

        assert result.clamped
        assert result.quantity == 0
        assert cache.cart.is_empty

    def test_unknown_stock_is_unbounded(self):
        cache = LocalCartCache()

        result = cache.add_item(make_product("x", stock=None), 1000)

        assert result.status is MutationStatus.ADDED
        assert result.quantity == 1000

    def test_price_snapshot_kept_on_re_add(self):
        cache = LocalCartCache()
        cache.add_item(make_product("x", price="100"))

        cache.add_item(make_product("x", price="120"))

        assert cache.cart.get("x").unit_price == Decimal("100")

    @pytest.mark.parametrize("qty", [0, -1, 1.5, True])
    def test_add_rejects_non_positive_quantity(self, qty):
        cache = LocalCartCache()

        with pytest.raises(InvalidQuantityError):
            cache.add_item(make_product("x"), qty)

    def test_remove_decrements(self):
        cache = LocalCartCache()
        cache.add_item(make_product("x"), 3)

        result = cache.remove_item("x")

        assert result.status is MutationStatus.UPDATED
        assert cache.cart.get("x").quantity == 2

    def test_remove_to_zero_deletes(self):
        cache = LocalCartCache()
        cache.add_item(make_product("x"), 2)

        result = cache.remove_item("x", 5)

        assert result.status is MutationStatus.REMOVED
        assert "x" not in cache.cart

    def test_remove_absent_is_not_found(self):
        cache = LocalCartCache()

        result = cache.remove_item("missing")

        assert result.status is MutationStatus.NOT_FOUND
        assert not result.changed
        assert isinstance(result.error, NotFoundError)
        assert result.error.code == "NOT_FOUND"
        assert result.error.message == ERROR_ITEM_NOT_IN_CART
        assert result.error.product_id == "missing"
        # Repeating it changes nothing either
        assert cache.remove_item("missing").status is MutationStatus.NOT_FOUND

    def test_set_quantity(self):
        cache = LocalCartCache()
        cache.add_item(make_product("x", stock=8))

        result = cache.set_quantity("x", 6)

        assert result.status is MutationStatus.UPDATED
        assert cache.cart.get("x").quantity == 6

    def test_set_quantity_clamps(self):
        cache = LocalCartCache()
        cache.add_item(make_product("x", stock=8))

        result = cache.set_quantity("x", 20)

        assert result.clamped
        assert cache.cart.get("x").quantity == 8

    def test_set_quantity_zero_deletes(self):
        cache = LocalCartCache()
        cache.add_item(make_product("x"))

        result = cache.set_quantity("x", 0)

        assert result.status is MutationStatus.REMOVED
        assert cache.cart.is_empty

    def test_set_quantity_negative_rejected(self):
        cache = LocalCartCache()
        cache.add_item(make_product("x"), 2)

        with pytest.raises(InvalidQuantityError) as exc:
            cache.set_quantity("x", -1)

        assert exc.value.code == "INVALID_QUANTITY"
        assert cache.cart.get("x").quantity == 2

    def test_set_quantity_absent(self):
        cache = LocalCartCache()

        result = cache.set_quantity("missing", 3)

        assert result.status is MutationStatus.NOT_FOUND
        assert isinstance(result.error, NotFoundError)

    def test_clear(self):
        cache = LocalCartCache()
        cache.add_item(make_product("x"), 2)
        cache.add_item(make_product("y"))

        result = cache.clear()

        assert result.status is MutationStatus.CLEARED
        assert cache.cart.is_empty

    def test_random_sequences_keep_invariants(self):
        rng = random.Random(1234)
        products = [make_product(f"p{i}", stock=rng.choice([None, 3, 7])) for i in range(4)]
        cache = LocalCartCache()

        for _ in range(500):
            product = rng.choice(products)
            if rng.random() < 0.6:
                cache.add_item(product, rng.randint(1, 4))
            else:
                cache.remove_item(product.id, rng.randint(1, 4))

            quantities = cache.cart.quantities()
            assert cache.cart.total_item_count == sum(quantities.values())
            assert all(qty >= 1 for qty in quantities.values())
            for item in cache.cart:
                if item.stock_quantity is not None:
                    assert item.quantity <= item.stock_quantity


class TestTotals:
    """Tests for derived cart values."""

    def test_subtotal_and_count(self, settings):
        cache = LocalCartCache()
        cache.add_item(make_product("a", price="100"), 2)
        cache.add_item(make_product("b", price="25.50"))

        totals = compute_totals(cache.cart, settings)

        assert totals.total_item_count == 3
        assert totals.subtotal == Decimal("225.50")
        assert totals.shipping == 0
        assert totals.total == Decimal("225.50")

    def test_shipping_charged_below_threshold(self, settings):
        assert shipping_for(Decimal("149.99"), settings) > 0
        assert shipping_for(Decimal("149.99"), settings) == Decimal("10")

    def test_shipping_free_at_threshold(self, settings):
        assert shipping_for(Decimal("150.00"), settings) == 0

    def test_empty_cart_has_no_shipping(self, settings):
        totals = compute_totals(Cart(), settings)

        assert totals.shipping == 0
        assert totals.total == 0

    def test_total_adds_shipping(self, settings):
        cache = LocalCartCache()
        cache.add_item(make_product("a", price="40"))

        totals = compute_totals(cache.cart, settings)

        assert totals.total == Decimal("50.00")
        assert totals.to_dict()["shipping"] == 10.0
        assert totals.formatted()["total"] == "₹50.00"

    def test_totals_follow_mutations(self, settings):
        cache = LocalCartCache()
        cache.add_item(make_product("a", price="100"))
        assert compute_totals(cache.cart, settings).subtotal == Decimal("100.00")

        cache.add_item(make_product("a", price="100"))

        assert compute_totals(cache.cart, settings).subtotal == Decimal("200.00")
