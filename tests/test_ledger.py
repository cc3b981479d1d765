import asyncio
import unittest
from dataclasses import replace
from datetime import date, datetime, timedelta
from decimal import Decimal

from helpers import StoreTestCase, make_product

from core.cart import Cart
from core.errors import InvalidStateError, InvoiceNotFoundError, NotFoundError, StorageError
from core.ledger import (
    CLOSINGS_KEY,
    COUNTER_RESETS_KEY,
    INVOICES_KEY,
    SaleLedger,
    SalesFilter,
    format_number,
)
from db.database import SqliteStore
from db.models import (
    ClosingStatus,
    Customer,
    Invoice,
    InvoiceStatus,
    PaymentMethod,
    Unit,
    decode_list,
    encode,
)


class FlakyInvoiceStore(SqliteStore):
    """Fails the first `failures` writes of the invoice collection."""

    def __init__(self, path: str, failures: int = 1):
        super().__init__(path, timeout=1.0)
        self.failures = failures

    async def _write(self, conn, key, value):
        if key == INVOICES_KEY and self.failures:
            self.failures -= 1
            raise StorageError("disk I/O error")
        await super()._write(conn, key, value)


class LedgerTestCase(StoreTestCase):
    def setUp(self):
        super().setUp()
        self.ledger = SaleLedger(self.store)
        self.cart = Cart(Decimal("0.13"))
        self.cart.add(make_product(1, 1500, name="Coffee"), 2)

    async def sell(self, method=PaymentMethod.CARD, cashier="Ana", **kwargs) -> Invoice:
        return await self.ledger.finalize(
            self.cart.items, self.cart.totals(), method, cashier, **kwargs
        )

    # ---------- finalize ----------

    async def test_finalize_builds_completed_invoice(self):
        invoice = await self.sell(customer=Customer("Luis", phone="8888-0000"))
        self.assertEqual(invoice.invoice_number, 1)
        self.assertEqual(invoice.status, InvoiceStatus.COMPLETED)
        self.assertEqual(invoice.items, self.cart.items)
        self.assertEqual(invoice.totals.total, 3390)
        self.assertEqual(invoice.payment_method, PaymentMethod.CARD)
        self.assertEqual(invoice.customer.name, "Luis")
        self.assertEqual(await self.ledger.get(invoice.id), invoice)

    async def test_finalize_leaves_cart_alone(self):
        before = self.cart.items
        await self.sell()
        self.assertEqual(self.cart.items, before)

    async def test_numbers_strictly_increase(self):
        numbers = [(await self.sell()).invoice_number for _ in range(5)]
        self.assertEqual(numbers, [1, 2, 3, 4, 5])

    async def test_numbers_continue_after_reopening(self):
        await self.sell()
        await self.sell()
        reopened = SaleLedger(SqliteStore(self.db_path))
        invoice = await reopened.finalize(
            self.cart.items, self.cart.totals(), "cash", "Ana"
        )
        self.assertEqual(invoice.invoice_number, 3)
        self.assertEqual(len(await reopened.list()), 3)

    async def test_concurrent_finalize_never_duplicates(self):
        other = SaleLedger(SqliteStore(self.db_path, timeout=1.0))
        invoices = await asyncio.gather(
            *(
                ledger.finalize(self.cart.items, self.cart.totals(), "cash", "Ana")
                for ledger in (self.ledger, other) * 5
            )
        )
        numbers = sorted(inv.invoice_number for inv in invoices)
        self.assertEqual(numbers, list(range(1, 11)))
        self.assertEqual(len(await self.ledger.list()), 10)

    async def test_finalize_empty_items_rejected(self):
        with self.assertRaises(InvalidStateError):
            await self.ledger.finalize([], self.cart.totals(), "cash", "Ana")
        self.assertEqual(await self.ledger.last_number(), 0)

    async def test_cash_tendered_and_change(self):
        invoice = await self.sell(PaymentMethod.CASH, tendered=5000)
        self.assertEqual(invoice.tendered, 5000)
        self.assertEqual(invoice.change, 1610)

    async def test_tendered_validation(self):
        with self.assertRaises(InvalidStateError):
            await self.sell(PaymentMethod.CASH, tendered=3389)
        with self.assertRaises(InvalidStateError):
            await self.sell(PaymentMethod.CARD, tendered=5000)
        self.assertEqual(await self.ledger.list(), [])

    async def test_failed_invoice_write_does_not_burn_a_number(self):
        ledger = SaleLedger(FlakyInvoiceStore(self.db_path))
        with self.assertRaises(StorageError):
            await ledger.finalize(self.cart.items, self.cart.totals(), "cash", "Ana")
        self.assertEqual(await ledger.last_number(), 0)

        invoice = await ledger.finalize(self.cart.items, self.cart.totals(), "cash", "Ana")
        self.assertEqual(invoice.invoice_number, 1)
        rows = decode_list(await self.store.get(INVOICES_KEY))
        self.assertEqual([row["invoiceNumber"] for row in rows], [1])

    async def test_mixed_payment_split(self):
        invoice = await self.sell(
            PaymentMethod.MIXED, split={"cash": 2000, PaymentMethod.SINPE: 1390}
        )
        self.assertEqual(invoice.split, {PaymentMethod.CASH: 2000, PaymentMethod.SINPE: 1390})
        self.assertEqual(await self.ledger.get(invoice.id), invoice)

        (row,) = decode_list(await self.store.get(INVOICES_KEY))
        self.assertEqual(row["paymentMethod"], "mixed")
        self.assertEqual(row["paymentDetails"], {"cashAmount": 2000, "sinpeAmount": 1390})

        await self.sell(PaymentMethod.CASH)
        summary = await self.ledger.daily_summary(date.today())
        self.assertEqual(
            summary.by_method, {PaymentMethod.CASH: 2000 + 3390, PaymentMethod.SINPE: 1390}
        )
        self.assertEqual(summary.cash_sales, 5390)
        self.assertEqual(summary.total_sales, 2 * 3390)

    async def test_split_validation(self):
        for method, split in (
            (PaymentMethod.MIXED, None),
            (PaymentMethod.MIXED, {"cash": 3390}),
            (PaymentMethod.MIXED, {"cash": 2000, "card": 1000}),
            (PaymentMethod.MIXED, {"cash": 4000, "card": -610}),
            (PaymentMethod.MIXED, {"cash": 2000, "mixed": 1390}),
            (PaymentMethod.CARD, {"cash": 2000, "card": 1390}),
        ):
            with self.subTest(method=method, split=split):
                with self.assertRaises(InvalidStateError):
                    await self.sell(method, split=split)
        self.assertEqual(await self.ledger.last_number(), 0)

    async def test_persisted_wire_shape(self):
        weighed = Cart()
        weighed.add(make_product(9, 1000, unit=Unit.WEIGHT), Decimal("0.25"))
        weighed.add(make_product(3, 100), 2)
        await self.ledger.finalize(weighed.items, weighed.totals(), "sinpe", "Ana")
        (row,) = decode_list(await self.store.get(INVOICES_KEY))
        self.assertEqual(row["invoiceNumber"], 1)
        self.assertEqual(row["paymentMethod"], "sinpe")
        self.assertEqual(row["status"], "completed")
        self.assertEqual(row["items"][0]["quantity"], "0.25")
        self.assertEqual(row["items"][1]["quantity"], 2)
        self.assertEqual(row["subtotalWithoutTax"], 450)
        self.assertIn("taxAmount", row)

    # ---------- void ----------

    async def test_void_once(self):
        invoice = await self.sell()
        voided = await self.ledger.void(invoice.id, "customer changed mind")
        self.assertEqual(voided.status, InvoiceStatus.VOIDED)
        self.assertEqual(voided.void_reason, "customer changed mind")
        self.assertIsNotNone(voided.voided_at)
        self.assertEqual((await self.ledger.get(invoice.id)).status, InvoiceStatus.VOIDED)

        with self.assertRaises(InvalidStateError):
            await self.ledger.void(invoice.id)
        # the original value is untouched
        self.assertEqual(invoice.status, InvoiceStatus.COMPLETED)

    async def test_void_unknown_invoice(self):
        with self.assertRaises(InvoiceNotFoundError) as ctx:
            await self.ledger.void("nope")
        self.assertIsInstance(ctx.exception, NotFoundError)
        self.assertIsInstance(ctx.exception, InvalidStateError)

    # ---------- counter reset ----------

    async def test_reset_counter(self):
        await self.sell()
        await self.sell()
        with self.assertLogs("core.ledger", level="WARNING"):
            previous = await self.ledger.reset_counter("Admin")
        self.assertEqual(previous, 2)
        fresh = await self.sell()
        self.assertEqual(fresh.invoice_number, 1)

        (entry,) = decode_list(await self.store.get(COUNTER_RESETS_KEY))
        self.assertEqual(entry["actor"], "Admin")
        self.assertEqual(entry["previous"], 2)

        # after a reset the newest invoice owns a repeated number
        self.assertEqual((await self.ledger.find_by_number(1)).id, fresh.id)

    # ---------- queries ----------

    async def test_list_and_filters(self):
        await self.sell(PaymentMethod.CASH, cashier="Ana")
        second = await self.sell(
            PaymentMethod.CARD, cashier="Beto", customer=Customer("Luis", phone="8888")
        )
        listed = await self.ledger.list()
        self.assertEqual([i.invoice_number for i in listed], [2, 1])

        by_cashier = await self.ledger.list(SalesFilter(cashier="bet"))
        self.assertEqual([i.id for i in by_cashier], [second.id])
        by_method = await self.ledger.list(SalesFilter(payment_method=PaymentMethod.CASH))
        self.assertEqual([i.invoice_number for i in by_method], [1])
        by_phone = await self.ledger.list(SalesFilter(customer="8888"))
        self.assertEqual([i.id for i in by_phone], [second.id])
        tomorrow = date.today() + timedelta(days=1)
        self.assertEqual(await self.ledger.list(SalesFilter(start_date=tomorrow)), [])

    async def test_daily_summary_excludes_voided(self):
        cash = await self.sell(PaymentMethod.CASH)
        await self.sell(PaymentMethod.CARD)
        await self.sell(PaymentMethod.CARD)
        await self.ledger.void(cash.id)

        summary = await self.ledger.daily_summary(date.today())
        self.assertEqual(summary.transaction_count, 2)
        self.assertEqual(summary.voided_count, 1)
        self.assertEqual(summary.total_sales, 2 * 3390)
        self.assertEqual(summary.by_method, {PaymentMethod.CARD: 2 * 3390})

        empty = await self.ledger.daily_summary(date.today() - timedelta(days=1))
        self.assertEqual(empty.transaction_count, 0)

    async def test_daily_summary_uses_invoice_day(self):
        old = await self.sell()

        def backdate(raw):
            rows = decode_list(raw)
            rows[0] = replace(
                Invoice.from_wire(rows[0]), created_at=datetime.now() - timedelta(days=2)
            ).to_wire()
            return encode(rows)

        await self.store.update(INVOICES_KEY, backdate)
        summary = await self.ledger.daily_summary(date.today() - timedelta(days=2))
        self.assertEqual(summary.transaction_count, 1)
        self.assertEqual(summary.total_sales, old.totals.total)

    async def test_top_products_with_ties(self):
        cart = Cart()
        cart.add(make_product(1, 100, name="A"), 5)
        cart.add(make_product(2, 100, name="B"), 3)
        cart.add(make_product(3, 100, name="C"), 3)
        cart.add(make_product(4, 100, name="D"), 1)
        await self.ledger.finalize(cart.items, cart.totals(), "cash", "Ana")

        top = await self.ledger.top_products(k=2)
        self.assertEqual([pid for pid, _, _ in top], [1, 2, 3])
        self.assertEqual(top[0], (1, "A", Decimal(5)))
        self.assertEqual(await self.ledger.top_products(k=0), [])

    async def test_top_products_ignores_voided(self):
        invoice = await self.sell()
        await self.ledger.void(invoice.id)
        self.assertEqual(await self.ledger.top_products(), [])

    def test_format_number(self):
        self.assertEqual(format_number(12), "00000012")

    # ---------- cash closing ----------

    async def test_cash_closing_lifecycle(self):
        self.assertIsNone(await self.ledger.current_closing())
        opened = await self.ledger.open_closing("Ana", 10000)
        self.assertIs(opened.status, ClosingStatus.OPEN)
        self.assertEqual(opened.day, date.today())
        self.assertEqual((await self.ledger.current_closing()).id, opened.id)

        await self.sell(PaymentMethod.CASH)
        await self.sell(PaymentMethod.CARD)
        await self.sell(PaymentMethod.MIXED, split={"cash": 390, "card": 3000})
        voided = await self.sell(PaymentMethod.CASH)
        await self.ledger.void(voided.id)

        with self.assertLogs("core.ledger", level="WARNING"):
            closed = await self.ledger.finalize_closing(13700, notes="short by 80")
        self.assertIs(closed.status, ClosingStatus.CLOSED)
        self.assertIsNotNone(closed.closed_at)
        self.assertEqual(closed.transaction_count, 3)
        self.assertEqual(closed.total_sales, 3 * 3390)
        self.assertEqual(closed.cash_sales, 3390 + 390)
        self.assertEqual(closed.by_method[PaymentMethod.CARD], 3390 + 3000)
        self.assertEqual(closed.expected_cash, 10000 + 3780)
        self.assertEqual(closed.difference, -80)
        self.assertEqual(closed.notes, "short by 80")

        self.assertIsNone(await self.ledger.current_closing())
        self.assertEqual(await self.ledger.get_closing(closed.id), closed)
        self.assertEqual([c.id for c in await self.ledger.list_closings()], [closed.id])

    async def test_balanced_closing_persists_original_field_names(self):
        await self.ledger.open_closing("Ana", 5000)
        await self.sell(PaymentMethod.CASH)
        closed = await self.ledger.finalize_closing(8390)
        self.assertEqual(closed.difference, 0)

        (row,) = decode_list(await self.store.get(CLOSINGS_KEY))
        self.assertEqual(row["status"], "closed")
        self.assertEqual(row["initialAmount"], 5000)
        self.assertEqual(row["cashSales"], 3390)
        self.assertEqual(row["physicalCashCount"], 8390)
        self.assertEqual(row["expectedCash"], 8390)
        self.assertNotIn("cardSales", row)

    async def test_cash_closing_state_errors(self):
        with self.assertRaises(InvalidStateError):
            await self.ledger.finalize_closing(0)
        with self.assertRaises(InvalidStateError):
            await self.ledger.open_closing("Ana", -1)

        await self.ledger.open_closing("Ana", 0)
        with self.assertRaises(InvalidStateError):
            await self.ledger.open_closing("Beto", 100)
        with self.assertRaises(InvalidStateError):
            await self.ledger.finalize_closing(-5)
        self.assertEqual(len(decode_list(await self.store.get(CLOSINGS_KEY))), 1)

        await self.ledger.finalize_closing(0)
        # a new session can start once the previous one is closed
        await self.ledger.open_closing("Beto", 100)
        self.assertEqual((await self.ledger.current_closing()).cashier_name, "Beto")


if __name__ == "__main__":
    unittest.main()
