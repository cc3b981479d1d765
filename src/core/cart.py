from __future__ import annotations

from dataclasses import replace
from decimal import Decimal
from typing import Dict, Iterator, List, Optional, Tuple

from core import money
from core.errors import InvalidDiscountError, InvalidQuantityError, NotFoundError
from db.models import CartItem, Product, Totals, Unit

MAX_QUANTITY = Decimal(9999)
# a discount may take at most half of the subtotal
MAX_DISCOUNT_RATIO = Decimal("0.5")


class Cart:
    """
    In-progress sale of the active session.

    Items are frozen CartItem values kept in insertion order; every mutation
    replaces the affected item, so a tuple handed out by `items` is a
    snapshot that later edits cannot touch.
    """

    def __init__(self, tax_rate: Decimal | str = Decimal("0.13")):
        self.tax_rate = money.to_decimal(tax_rate)
        self._items: List[CartItem] = []
        self._units: Dict[int, Unit] = {}
        self._discount = 0

    # ---------------------------
    # Reads
    # ---------------------------

    @property
    def items(self) -> Tuple[CartItem, ...]:
        return tuple(self._items)

    @property
    def discount(self) -> int:
        return self._discount

    @property
    def is_empty(self) -> bool:
        return not self._items

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[CartItem]:
        return iter(tuple(self._items))

    def get(self, product_id: int) -> Optional[CartItem]:
        idx = self._index(product_id)
        return None if idx is None else self._items[idx]

    def totals(self) -> Totals:
        subtotal = money.add(*(item.total_price for item in self._items))
        tax = money.apply_rate(subtotal, self.tax_rate)
        discount = min(self._discount, self._max_discount(subtotal))
        total = money.subtract(money.add(subtotal, tax), discount)
        return Totals(
            subtotal_without_tax=subtotal,
            tax_amount=tax,
            discount_amount=discount,
            total=total,
        )

    # ---------------------------
    # Mutations
    # ---------------------------

    def add(self, product: Product, quantity=1) -> CartItem:
        qty = _validate_quantity(quantity, product.unit)
        idx = self._index(product.pid)
        if idx is None:
            item = CartItem(
                product_id=product.pid,
                product_name=product.name,
                unit_price=product.price,
                quantity=qty,
                total_price=money.line_total(product.price, qty),
            )
            self._items.append(item)
            self._units[product.pid] = product.unit
            return item

        existing = self._items[idx]
        new_qty = _check_bounds(existing.quantity + qty)
        item = _with_quantity(existing, new_qty)
        self._items[idx] = item
        return item

    def set_quantity(self, product_id: int, quantity) -> Optional[CartItem]:
        """Set an absolute quantity; 0 removes the line and returns None."""
        idx = self._index(product_id)
        if idx is None:
            raise NotFoundError(f"Product {product_id} is not in the cart.")
        if money.to_quantity(quantity) == 0:
            self.remove(product_id)
            return None

        # lines restored without a known unit accept fractional quantities
        unit = self._units.get(product_id, Unit.WEIGHT)
        item = _with_quantity(self._items[idx], _validate_quantity(quantity, unit))
        self._items[idx] = item
        return item

    def remove(self, product_id: int) -> CartItem:
        """Remove a line. Raises NotFoundError when the product is not in the cart."""
        idx = self._index(product_id)
        if idx is None:
            raise NotFoundError(f"Product {product_id} is not in the cart.")
        self._units.pop(product_id, None)
        return self._items.pop(idx)

    def clear(self) -> None:
        self._items.clear()
        self._units.clear()
        self._discount = 0

    def set_discount(self, amount: int) -> None:
        amount = money.check_range(int(amount))
        if amount < 0:
            raise InvalidDiscountError("Discount cannot be negative.")
        subtotal = self.totals().subtotal_without_tax
        if amount > self._max_discount(subtotal):
            raise InvalidDiscountError(
                "Discount cannot exceed 50% of the subtotal."
            )
        self._discount = amount

    def restore(self, item: CartItem, unit: Optional[Unit] = None) -> CartItem:
        """
        Put a previously captured line back as-is (name, unit price and
        quantity), merging with an existing line for the same product.
        With a known `unit` the quantity rule of that unit applies too.
        """
        if unit is None:
            qty = _check_bounds(item.quantity)
        else:
            qty = _validate_quantity(item.quantity, unit)
        idx = self._index(item.product_id)
        if idx is None:
            restored = _with_quantity(item, qty)
            self._items.append(restored)
            if unit is not None:
                self._units[item.product_id] = unit
            return restored
        existing = self._items[idx]
        merged = _with_quantity(existing, _check_bounds(existing.quantity + qty))
        self._items[idx] = merged
        return merged

    # ---------------------------
    # Helpers
    # ---------------------------

    def _index(self, product_id: int) -> Optional[int]:
        for i, item in enumerate(self._items):
            if item.product_id == product_id:
                return i
        return None

    @staticmethod
    def _max_discount(subtotal: int) -> int:
        return money.multiply(subtotal, MAX_DISCOUNT_RATIO)


def _check_bounds(qty: Decimal) -> Decimal:
    if qty <= 0:
        raise InvalidQuantityError("Quantity must be greater than zero.")
    if qty > MAX_QUANTITY:
        raise InvalidQuantityError(f"Quantity cannot exceed {MAX_QUANTITY}.")
    return qty


def _validate_quantity(quantity, unit: Unit) -> Decimal:
    qty = _check_bounds(money.to_quantity(quantity))
    if unit is Unit.PIECE and not money.is_integral(qty):
        raise InvalidQuantityError("Piece-sold products need a whole quantity.")
    return qty


def _with_quantity(item: CartItem, qty: Decimal) -> CartItem:
    return replace(
        item, quantity=qty, total_price=money.line_total(item.unit_price, qty)
    )
