from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Dict, List, Optional
from uuid import uuid4

from core.cart import Cart
from core.errors import InvalidQuantityError, InvalidStateError, NotFoundError
from core.ledger import SaleLedger
from db.database import Store
from db.models import (
    CartItem,
    Customer,
    HoldSale,
    Invoice,
    PaymentMethod,
    Product,
    decode_list,
    encode,
)
from utils.logger import get_logger

_logger = get_logger(__name__)

HOLD_SALES_KEY = "hold_sales"

ProductLookup = Callable[[int], Awaitable[Optional[Product]]]


@dataclass
class RecoveryResult:
    restored: List[CartItem] = field(default_factory=list)
    skipped: List[CartItem] = field(default_factory=list)

    @property
    def partial(self) -> bool:
        return bool(self.skipped)


class HoldSaleRegistry:
    """
    Parks cart snapshots so the till can serve someone else, and brings them
    back later.

    A parked sale stays in the registry until it is completed or deleted;
    recovering it into a cart does not remove it.
    """

    def __init__(self, store: Store, ledger: SaleLedger, lookup_product: ProductLookup):
        self._store = store
        self._ledger = ledger
        self._lookup_product = lookup_product

    async def park(
        self,
        cart: Cart,
        cashier_name: str,
        customer_name: str = "",
        notes: str = "",
    ) -> str:
        """
        Persist a snapshot of `cart` and return its id. The cart itself is
        left untouched; callers that want to free the till clear it.
        """
        if cart.is_empty:
            raise InvalidStateError("Cannot park an empty cart.")
        hold = HoldSale(
            id=uuid4().hex,
            cashier_name=cashier_name,
            items=cart.items,
            totals=cart.totals(),
            created_at=datetime.now(),
            customer_name=customer_name,
            notes=notes,
        )

        def append(raw: Optional[bytes]) -> bytes:
            return encode([*decode_list(raw), hold.to_wire()])

        await self._store.update(HOLD_SALES_KEY, append)
        _logger.info(f"Parked sale {hold.id[-8:]} for {cashier_name} ({len(hold.items)} item(s))")
        return hold.id

    async def list(self) -> List[HoldSale]:
        """All parked sales, most recent first."""
        holds = [HoldSale.from_wire(row) for row in decode_list(await self._store.get(HOLD_SALES_KEY))]
        # newest appended first, then a stable sort keeps that order on equal timestamps
        holds.reverse()
        return sorted(holds, key=lambda h: h.created_at, reverse=True)

    async def get(self, hold_id: str) -> Optional[HoldSale]:
        for hold in await self.list():
            if hold.id == hold_id:
                return hold
        return None

    async def _require(self, hold_id: str) -> HoldSale:
        hold = await self.get(hold_id)
        if hold is None:
            raise NotFoundError(f"Parked sale {hold_id} not found.")
        return hold

    async def recover(self, hold_id: str, target_cart: Cart) -> RecoveryResult:
        """
        Append the parked items to `target_cart`. Items whose product has
        left the catalog, or whose quantity no longer fits the product's
        unit, are skipped and reported instead of failing.
        """
        hold = await self._require(hold_id)
        result = RecoveryResult()
        for item in hold.items:
            product = await self._lookup_product(item.product_id)
            if product is None:
                _logger.warning(
                    f"Parked sale {hold_id[-8:]}: product {item.product_id} "
                    f"({item.product_name}) no longer exists, skipped"
                )
                result.skipped.append(item)
                continue
            try:
                target_cart.restore(item, unit=product.unit)
            except InvalidQuantityError as exc:
                # e.g. a weighed quantity for a product now sold by the piece
                _logger.warning(
                    f"Parked sale {hold_id[-8:]}: {item.product_name} skipped, {exc}"
                )
                result.skipped.append(item)
                continue
            result.restored.append(item)
        _logger.info(
            f"Recovered parked sale {hold_id[-8:]}: {len(result.restored)} restored, "
            f"{len(result.skipped)} skipped"
        )
        return result

    async def complete(
        self,
        hold_id: str,
        payment_method: PaymentMethod | str,
        tendered: Optional[int] = None,
        split: Optional[Dict[PaymentMethod, int]] = None,
    ) -> Invoice:
        hold = await self._require(hold_id)
        customer = Customer(name=hold.customer_name) if hold.customer_name else None
        invoice = await self._ledger.finalize(
            hold.items,
            hold.totals,
            payment_method,
            hold.cashier_name,
            customer=customer,
            tendered=tendered,
            split=split,
        )
        await self.delete(hold_id)
        return invoice

    async def delete(self, hold_id: str) -> None:
        def drop(raw: Optional[bytes]) -> bytes:
            rows = decode_list(raw)
            kept = [row for row in rows if row["id"] != hold_id]
            if len(kept) == len(rows):
                raise NotFoundError(f"Parked sale {hold_id} not found.")
            return encode(kept)

        await self._store.update(HOLD_SALES_KEY, drop)
        _logger.info(f"Deleted parked sale {hold_id[-8:]}")
