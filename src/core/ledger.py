from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple
from uuid import uuid4

from core import money
from core.errors import InvalidStateError, InvoiceNotFoundError
from db.database import Store
from db.models import (
    CartItem,
    CashClosing,
    ClosingStatus,
    Customer,
    Invoice,
    InvoiceStatus,
    PaymentMethod,
    Totals,
    decode_list,
    encode,
)
from utils.logger import get_logger

_logger = get_logger(__name__)

INVOICES_KEY = "invoices"
COUNTER_KEY = "invoice_counter"
COUNTER_RESETS_KEY = "invoice_counter_resets"
CLOSINGS_KEY = "cash_closings"


def format_number(invoice_number: int) -> str:
    return f"{invoice_number:08d}"


@dataclass(frozen=True)
class SalesFilter:
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    cashier: str = ""
    payment_method: Optional[PaymentMethod] = None
    customer: str = ""
    status: Optional[InvoiceStatus] = None

    def matches(self, invoice: Invoice) -> bool:
        day = invoice.created_at.date()
        if self.start_date and day < self.start_date:
            return False
        if self.end_date and day > self.end_date:
            return False
        if self.cashier and self.cashier.lower() not in invoice.cashier_name.lower():
            return False
        if self.payment_method and invoice.payment_method is not self.payment_method:
            return False
        if self.status and invoice.status is not self.status:
            return False
        if self.customer:
            cust = invoice.customer
            if not cust:
                return False
            if (
                self.customer.lower() not in cust.name.lower()
                and self.customer not in cust.phone
            ):
                return False
        return True


@dataclass(frozen=True)
class DailySummary:
    day: date
    total_sales: int = 0
    transaction_count: int = 0
    voided_count: int = 0
    by_method: Dict[PaymentMethod, int] = field(default_factory=dict)

    @property
    def cash_sales(self) -> int:
        return self.by_method.get(PaymentMethod.CASH, 0)


class SaleLedger:
    """
    Turns carts (or parked snapshots) into persisted, numbered invoices.

    Numbers come from an atomic store counter, so two terminals sharing a
    store never issue the same number. Invoices are immutable apart from the
    completed -> voided transition.
    """

    def __init__(self, store: Store):
        self._store = store

    async def finalize(
        self,
        items: Iterable[CartItem],
        totals: Totals,
        payment_method: PaymentMethod | str,
        cashier_name: str,
        customer: Optional[Customer] = None,
        tendered: Optional[int] = None,
        split: Optional[Dict[PaymentMethod | str, int]] = None,
    ) -> Invoice:
        """
        Number and persist a sale. The counter bump and the invoice append
        share one store transaction, so a failed write never burns a number.
        """
        items = tuple(items)
        if not items:
            raise InvalidStateError("Cannot finalize a sale without items.")
        method = PaymentMethod(payment_method)
        parts = _check_split(method, split, totals.total)

        change = None
        if tendered is not None:
            if method is not PaymentMethod.CASH:
                raise InvalidStateError("Only cash payments take a tendered amount.")
            if tendered < totals.total:
                raise InvalidStateError("Tendered amount does not cover the total.")
            change = money.subtract(tendered, totals.total)

        issued: List[Invoice] = []

        def append(current: Dict[str, Optional[bytes]]) -> Dict[str, bytes]:
            issued.clear()
            number = _counter_value(current[COUNTER_KEY]) + 1
            invoice = Invoice(
                id=uuid4().hex,
                invoice_number=number,
                items=items,
                totals=totals,
                payment_method=method,
                status=InvoiceStatus.COMPLETED,
                created_at=datetime.now(),
                cashier_name=cashier_name,
                customer=customer,
                tendered=tendered,
                change=change,
                split=parts,
            )
            issued.append(invoice)
            return {
                COUNTER_KEY: str(number).encode("ascii"),
                INVOICES_KEY: encode([*decode_list(current[INVOICES_KEY]), invoice.to_wire()]),
            }

        await self._store.update_many([COUNTER_KEY, INVOICES_KEY], append)
        invoice = issued[0]
        _logger.info(
            f"Invoice {format_number(invoice.invoice_number)} issued by {cashier_name}: "
            f"{len(items)} item(s), total {totals.total}, {method.value}"
        )
        return invoice

    async def void(self, invoice_id: str, reason: str = "") -> Invoice:
        voided: List[Invoice] = []

        def transition(raw: Optional[bytes]) -> bytes:
            rows = decode_list(raw)
            for i, row in enumerate(rows):
                if row["id"] != invoice_id:
                    continue
                invoice = Invoice.from_wire(row)
                if invoice.status is not InvoiceStatus.COMPLETED:
                    raise InvalidStateError(
                        f"Invoice {format_number(invoice.invoice_number)} is already voided."
                    )
                invoice = replace(
                    invoice,
                    status=InvoiceStatus.VOIDED,
                    voided_at=datetime.now(),
                    void_reason=reason,
                )
                rows[i] = invoice.to_wire()
                voided.append(invoice)
                return encode(rows)
            raise InvoiceNotFoundError(f"Invoice {invoice_id} not found.")

        await self._store.update(INVOICES_KEY, transition)
        invoice = voided[0]
        _logger.info(
            f"Invoice {format_number(invoice.invoice_number)} voided"
            + (f": {reason}" if reason else "")
        )
        return invoice

    async def reset_counter(self, actor_name: str) -> int:
        """
        Restart invoice numbering at 1. Irreversible: previously issued
        numbers will be issued again. Returns the last number before reset.
        """
        previous: List[int] = []

        def reset(current: Dict[str, Optional[bytes]]) -> Dict[str, bytes]:
            previous[:] = [_counter_value(current[COUNTER_KEY])]
            entry = {
                "actor": actor_name,
                "previous": previous[0],
                "at": datetime.now().isoformat(),
            }
            return {
                COUNTER_KEY: b"0",
                COUNTER_RESETS_KEY: encode([*decode_list(current[COUNTER_RESETS_KEY]), entry]),
            }

        await self._store.update_many([COUNTER_KEY, COUNTER_RESETS_KEY], reset)
        _logger.warning(
            f"Invoice counter reset by {actor_name}; last issued number was "
            f"{format_number(previous[0])}. This cannot be undone."
        )
        return previous[0]

    async def last_number(self) -> int:
        return _counter_value(await self._store.get(COUNTER_KEY))

    # ---------------------------
    # Queries
    # ---------------------------

    async def _all(self) -> List[Invoice]:
        return [Invoice.from_wire(row) for row in decode_list(await self._store.get(INVOICES_KEY))]

    async def get(self, invoice_id: str) -> Optional[Invoice]:
        for invoice in await self._all():
            if invoice.id == invoice_id:
                return invoice
        return None

    async def find_by_number(self, invoice_number: int) -> Optional[Invoice]:
        # after a counter reset numbers repeat; the newest one wins
        for invoice in reversed(await self._all()):
            if invoice.invoice_number == invoice_number:
                return invoice
        return None

    async def list(self, filters: Optional[SalesFilter] = None) -> List[Invoice]:
        """Invoices matching `filters`, most recent first."""
        invoices = list(reversed(await self._all()))
        if filters:
            invoices = [inv for inv in invoices if filters.matches(inv)]
        return sorted(invoices, key=lambda inv: inv.created_at, reverse=True)

    async def daily_summary(self, day: date) -> DailySummary:
        by_method: Dict[PaymentMethod, int] = defaultdict(int)
        total = 0
        count = 0
        voided = 0
        for invoice in await self.list(SalesFilter(start_date=day, end_date=day)):
            if invoice.status is InvoiceStatus.VOIDED:
                voided += 1
                continue
            total = money.add(total, invoice.totals.total)
            # mixed payments are booked under the methods that covered them
            for method, amount in invoice.amounts_by_method().items():
                by_method[method] = money.add(by_method[method], amount)
            count += 1
        return DailySummary(
            day=day,
            total_sales=total,
            transaction_count=count,
            voided_count=voided,
            by_method=dict(by_method),
        )

    async def top_products(self, k: int = 3) -> List[Tuple[int, str, Decimal]]:
        """
        Best sellers by quantity over completed invoices: [(pid, name, qty), ...],
        including every product tied at the kth position.
        """
        if k < 1:
            return []
        sold: Dict[int, Decimal] = defaultdict(Decimal)
        names: Dict[int, str] = {}
        for invoice in await self._all():
            if invoice.status is not InvoiceStatus.COMPLETED:
                continue
            for item in invoice.items:
                sold[item.product_id] += item.quantity
                names[item.product_id] = item.product_name
        rows = sorted(sold.items(), key=lambda kv: (-kv[1], kv[0]))
        if not rows:
            return []
        threshold = rows[min(k, len(rows)) - 1][1]
        return [(pid, names[pid], qty) for pid, qty in rows if qty >= threshold]

    # ---------------------------
    # Cash closing
    # ---------------------------

    async def _closings(self) -> List[CashClosing]:
        return [CashClosing.from_wire(row) for row in decode_list(await self._store.get(CLOSINGS_KEY))]

    async def current_closing(self) -> Optional[CashClosing]:
        for closing in await self._closings():
            if closing.status is ClosingStatus.OPEN:
                return closing
        return None

    async def get_closing(self, closing_id: str) -> Optional[CashClosing]:
        for closing in await self._closings():
            if closing.id == closing_id:
                return closing
        return None

    async def list_closings(self) -> List[CashClosing]:
        """Finalized closings, most recent first."""
        closed = [c for c in await self._closings() if c.status is ClosingStatus.CLOSED]
        return sorted(closed, key=lambda c: c.closed_at, reverse=True)

    async def open_closing(self, cashier_name: str, initial_amount: int) -> CashClosing:
        """Start a till session with `initial_amount` of float in the drawer."""
        if initial_amount < 0:
            raise InvalidStateError("Starting cash cannot be negative.")
        now = datetime.now()
        closing = CashClosing(
            id=uuid4().hex,
            day=now.date(),
            cashier_name=cashier_name,
            opened_at=now,
            initial_amount=money.check_range(initial_amount),
            expected_cash=initial_amount,
        )

        def append(raw: Optional[bytes]) -> bytes:
            rows = decode_list(raw)
            if any(row["status"] == ClosingStatus.OPEN.value for row in rows):
                raise InvalidStateError("A cash closing is already open.")
            return encode([*rows, closing.to_wire()])

        await self._store.update(CLOSINGS_KEY, append)
        _logger.info(f"Cash closing opened by {cashier_name} with {initial_amount} in the drawer")
        return closing

    async def finalize_closing(self, physical_count: int, notes: str = "") -> CashClosing:
        """
        Close the open session against the counted drawer. Sales come from
        the daily summary of the day the session was opened; the expected
        cash is the float plus cash sales.
        """
        if physical_count < 0:
            raise InvalidStateError("Counted cash cannot be negative.")
        current = await self.current_closing()
        if current is None:
            raise InvalidStateError("No cash closing is open.")
        summary = await self.daily_summary(current.day)
        expected = money.add(current.initial_amount, summary.cash_sales)
        closed = replace(
            current,
            status=ClosingStatus.CLOSED,
            closed_at=datetime.now(),
            total_sales=summary.total_sales,
            by_method=dict(summary.by_method),
            transaction_count=summary.transaction_count,
            physical_count=money.check_range(physical_count),
            expected_cash=expected,
            difference=money.subtract(physical_count, expected),
            notes=notes,
        )

        def close(raw: Optional[bytes]) -> bytes:
            rows = decode_list(raw)
            for i, row in enumerate(rows):
                if row["id"] == closed.id and row["status"] == ClosingStatus.OPEN.value:
                    rows[i] = closed.to_wire()
                    return encode(rows)
            raise InvalidStateError("The cash closing was closed elsewhere.")

        await self._store.update(CLOSINGS_KEY, close)
        log = _logger.warning if closed.difference else _logger.info
        log(
            f"Cash closing by {closed.cashier_name}: expected {closed.expected_cash}, "
            f"counted {closed.physical_count}, difference {closed.difference}"
        )
        return closed


def _counter_value(raw: Optional[bytes]) -> int:
    return int(raw.decode("ascii")) if raw else 0


def _check_split(
    method: PaymentMethod, split: Optional[Dict[PaymentMethod | str, int]], total: int
) -> Dict[PaymentMethod, int]:
    """Normalize a mixed payment's split; only MIXED takes one and it must add up."""
    if method is not PaymentMethod.MIXED:
        if split:
            raise InvalidStateError("Only mixed payments take a split.")
        return {}
    parts: Dict[PaymentMethod, int] = {}
    for key, amount in (split or {}).items():
        part = PaymentMethod(key)
        if part is PaymentMethod.MIXED:
            raise InvalidStateError("A split cannot contain a mixed part.")
        if amount < 0:
            raise InvalidStateError("Split amounts cannot be negative.")
        if amount:
            parts[part] = money.add(parts.get(part, 0), amount)
    if len(parts) < 2:
        raise InvalidStateError("A mixed payment needs at least two methods.")
    if money.add(*parts.values()) != total:
        raise InvalidStateError("Split amounts must add up to the total.")
    return parts
