import unittest
from decimal import Decimal

from helpers import make_product

from core.cart import Cart
from core.errors import (
    ErrorKind,
    InvalidDiscountError,
    InvalidQuantityError,
    NotFoundError,
)
from db.models import CartItem, Unit


class CartTotalsTestCase(unittest.TestCase):
    def setUp(self):
        self.cart = Cart(Decimal("0.13"))

    def test_worked_example(self):
        self.cart.add(make_product(1, 1500), 2)
        totals = self.cart.totals()
        self.assertEqual(totals.subtotal_without_tax, 3000)
        self.assertEqual(totals.tax_amount, 390)
        self.assertEqual(totals.discount_amount, 0)
        self.assertEqual(totals.total, 3390)

    def test_empty_cart_totals_are_zero(self):
        totals = self.cart.totals()
        self.assertEqual(
            (totals.subtotal_without_tax, totals.tax_amount, totals.total), (0, 0, 0)
        )
        self.assertTrue(self.cart.is_empty)

    def test_totals_are_sum_of_line_totals(self):
        self.cart.add(make_product(1, 1999, unit=Unit.WEIGHT), Decimal("0.333"))
        self.cart.add(make_product(2, 250), 3)
        self.cart.add(make_product(3, 1), 7)
        self.assertEqual([i.total_price for i in self.cart], [666, 750, 7])  # 665.667 rounds up
        totals = self.cart.totals()
        self.assertEqual(totals.subtotal_without_tax, sum(i.total_price for i in self.cart))
        self.assertEqual(totals.subtotal_without_tax, 666 + 750 + 7)
        self.assertEqual(totals.tax_amount, 185)  # 184.99 -> 185
        self.assertEqual(
            totals.total, totals.subtotal_without_tax + totals.tax_amount
        )

    def test_totals_is_pure(self):
        self.cart.add(make_product(1, 1500), 2)
        self.assertEqual(self.cart.totals(), self.cart.totals())
        self.assertEqual(len(self.cart), 1)


class CartMutationTestCase(unittest.TestCase):
    def setUp(self):
        self.cart = Cart()
        self.apple = make_product(1, 300, name="Apple")
        self.rice = make_product(2, 1200, name="Rice", unit=Unit.WEIGHT)

    def test_add_merges_same_product(self):
        self.cart.add(self.apple, 2)
        item = self.cart.add(self.apple, 3)
        self.assertEqual(len(self.cart), 1)
        self.assertEqual(item.quantity, Decimal(5))
        self.assertEqual(item.total_price, 1500)

    def test_merge_keeps_captured_price_and_name(self):
        self.cart.add(self.apple, 1)
        repriced = make_product(1, 999, name="Apple (new)")
        item = self.cart.add(repriced, 1)
        self.assertEqual(item.unit_price, 300)
        self.assertEqual(item.product_name, "Apple")
        self.assertEqual(item.total_price, 600)

    def test_insertion_order_is_kept(self):
        self.cart.add(self.rice, 1)
        self.cart.add(self.apple, 1)
        self.cart.add(self.rice, 1)
        self.assertEqual([i.product_id for i in self.cart.items], [2, 1])

    def test_invalid_quantities(self):
        for qty in (0, -1, 10000, "abc"):
            with self.subTest(qty=qty):
                with self.assertRaises(InvalidQuantityError) as ctx:
                    self.cart.add(self.apple, qty)
                self.assertIs(ctx.exception.kind, ErrorKind.INVALID_QUANTITY)
        self.assertTrue(self.cart.is_empty)

    def test_fractional_only_for_weight(self):
        with self.assertRaises(InvalidQuantityError):
            self.cart.add(self.apple, Decimal("1.5"))
        item = self.cart.add(self.rice, Decimal("1.25"))
        self.assertEqual(item.total_price, 1500)

    def test_merge_beyond_limit_rejected(self):
        self.cart.add(self.apple, 9999)
        with self.assertRaises(InvalidQuantityError):
            self.cart.add(self.apple, 1)
        self.assertEqual(self.cart.get(1).quantity, Decimal(9999))

    def test_set_quantity(self):
        self.cart.add(self.apple, 1)
        item = self.cart.set_quantity(1, 4)
        self.assertEqual(item.total_price, 1200)
        with self.assertRaises(InvalidQuantityError):
            self.cart.set_quantity(1, -2)
        with self.assertRaises(InvalidQuantityError):
            self.cart.set_quantity(1, Decimal("0.5"))
        self.assertIsNone(self.cart.set_quantity(1, 0))
        self.assertTrue(self.cart.is_empty)

    def test_set_quantity_missing_product(self):
        with self.assertRaises(NotFoundError):
            self.cart.set_quantity(42, 1)

    def test_remove_missing_product_raises(self):
        self.cart.add(self.apple, 1)
        with self.assertRaises(NotFoundError) as ctx:
            self.cart.remove(42)
        self.assertIsInstance(ctx.exception, LookupError)
        self.assertEqual(len(self.cart), 1)

    def test_remove(self):
        self.cart.add(self.apple, 1)
        self.cart.add(self.rice, 1)
        removed = self.cart.remove(1)
        self.assertEqual(removed.product_name, "Apple")
        self.assertEqual([i.product_id for i in self.cart], [2])

    def test_items_snapshot_is_isolated(self):
        self.cart.add(self.apple, 1)
        snapshot = self.cart.items
        self.cart.add(self.apple, 1)
        self.cart.add(self.rice, 1)
        self.assertEqual(len(snapshot), 1)
        self.assertEqual(snapshot[0].quantity, Decimal(1))

    def test_clear_resets_items_and_discount(self):
        self.cart.add(self.apple, 10)
        self.cart.set_discount(100)
        self.cart.clear()
        self.assertTrue(self.cart.is_empty)
        self.assertEqual(self.cart.discount, 0)
        self.assertEqual(self.cart.totals().total, 0)


class CartDiscountTestCase(unittest.TestCase):
    def setUp(self):
        self.cart = Cart(Decimal("0.13"))
        self.cart.add(make_product(1, 1000), 2)

    def test_discount_applies_after_tax(self):
        self.cart.set_discount(500)
        totals = self.cart.totals()
        self.assertEqual(totals.discount_amount, 500)
        self.assertEqual(totals.total, 2000 + 260 - 500)

    def test_discount_limits(self):
        with self.assertRaises(InvalidDiscountError):
            self.cart.set_discount(-1)
        with self.assertRaises(InvalidDiscountError):
            self.cart.set_discount(1001)
        self.cart.set_discount(1000)
        self.assertEqual(self.cart.discount, 1000)

    def test_applied_discount_shrinks_with_subtotal(self):
        self.cart.set_discount(1000)
        self.cart.set_quantity(1, 1)
        totals = self.cart.totals()
        self.assertEqual(totals.discount_amount, 500)
        self.assertEqual(totals.total, 1000 + 130 - 500)


class CartRestoreTestCase(unittest.TestCase):
    def test_restore_keeps_frozen_values(self):
        cart = Cart()
        item = CartItem(
            product_id=7,
            product_name="Old name",
            unit_price=450,
            quantity=Decimal("1.5"),
            total_price=675,
        )
        restored = cart.restore(item)
        self.assertEqual(restored, item)
        self.assertEqual(cart.items, (item,))

    def test_restore_merges(self):
        cart = Cart()
        cart.add(make_product(7, 450), 1)
        item = CartItem(7, "Product 7", 450, Decimal(2), 900)
        merged = cart.restore(item, unit=Unit.PIECE)
        self.assertEqual(merged.quantity, Decimal(3))
        self.assertEqual(merged.total_price, 1350)

    def test_restore_checks_known_unit(self):
        cart = Cart()
        weighed = CartItem(7, "Ham", 1000, Decimal("0.5"), 500)
        with self.assertRaises(InvalidQuantityError):
            cart.restore(weighed, unit=Unit.PIECE)
        self.assertTrue(cart.is_empty)
        self.assertEqual(cart.restore(weighed, unit=Unit.WEIGHT), weighed)


if __name__ == "__main__":
    unittest.main()
