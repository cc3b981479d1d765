from decimal import Decimal
from typing import Dict, List

from textual import on, work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.events import ScreenResume
from textual.widgets import Button, DataTable, Input, Label, Rule

import db.crud as crud
from core.access import Capability
from core.errors import PosError
from core.ledger import format_number
from core.money import parse_amount
from db.models import Product, Unit
from utils.logger import get_logger
from utils.messages import (
    CartChangedMessage,
    HoldSalesChangedMessage,
    InvoiceCreatedMessage,
    ModeSwitchedMessage,
)
from utils.pure import format_quantity
from views.base_screen import BaseScreen
from views.modal_checkout import CheckoutChoice, CheckoutModal
from views.modal_dialog import DialogModal, InputDialogModal
from views.modal_quantity import QuantityModal

_logger = get_logger(__name__)


class PosScreen(BaseScreen):
    """
    The till: product search on the left, the cart on the right.

    Enter on a product asks for a quantity and adds it; Enter on a cart line
    edits its quantity (0 removes it). F9 parks the sale, F12 checks out.
    """

    BINDINGS = [
        Binding("f9", "hold", "Hold Sale", show=True),
        Binding("f12", "checkout", "Checkout", show=True),
        Binding("delete", "remove_line", "Remove Line", show=True),
    ]

    def __init__(self):
        super().__init__()
        self._results: Dict[int, Product] = {}

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Horizontal(id="hort-pos"):
            with Vertical(id="div-search"):
                yield Input(
                    id="input-search",
                    placeholder="Scan a barcode or type to search...",
                )
                yield DataTable(id="table-search-result")
            with Vertical(id="div-cart"):
                yield DataTable(id="table-cart")
                yield Label("", id="label-cart-totals")
                yield Rule(line_style="dashed")
                with Horizontal(id="hort-buttons"):
                    yield Button("Clear", id="btn-clear-cart")
                    yield Button("Discount", id="btn-discount")
                    yield Button("Hold (F9)", id="btn-hold", variant="warning")
                    yield Button("Checkout (F12)", id="btn-checkout", variant="primary")

    def on_mount(self):
        search_table = self.query_one("#table-search-result", DataTable)
        search_table.cursor_type = "row"
        search_table.zebra_stripes = True
        search_table.add_columns("ID", "Name", "Price", "Unit", "Stock")

        cart_table = self.query_one("#table-cart", DataTable)
        cart_table.cursor_type = "row"
        cart_table.zebra_stripes = True
        cart_table.add_columns("Product", "Qty", "Unit Price", "Total")

        self.update_search_result("")
        self.refresh_cart()
        self.query_one("#input-search").focus()

    @property
    def cart(self):
        return self.app.state.cart

    # ---------------------------
    # Search
    # ---------------------------

    @on(Input.Changed, "#input-search")
    def handle_search_changed(self, message: Input.Changed) -> None:
        self.update_search_result(message.value)

    @work(exclusive=True, group="search")
    async def update_search_result(self, query: str) -> None:
        results: List[Product] = await crud.search_products(self.app.state.store, query)
        self._results = {p.pid: p for p in results}

        table = self.query_one("#table-search-result", DataTable)
        table.clear()
        for p in results:
            stock = "-" if p.stock is None else format_quantity(p.stock)
            table.add_row(p.pid, p.name, self.fmt(p.price), p.unit.value, stock, key=str(p.pid))

    @on(Input.Submitted, "#input-search")
    @work(exclusive=True)
    async def handle_search_submitted(self, message: Input.Submitted) -> None:
        # a barcode scanner types the code and presses enter
        query = message.value.strip()
        if not query:
            return
        results = await crud.search_products(self.app.state.store, query)
        exact = [p for p in results if p.barcode == query or str(p.pid) == query]
        if len(exact) != 1:
            _logger.debug(f"{len(exact)} exact matches for scanned code {query!r}")
            self.query_one("#table-search-result").focus()
            return
        product = exact[0]
        if product.unit is Unit.WEIGHT:
            await self._add_with_prompt(product)
        else:
            self._add(product, Decimal(1))
        message.input.value = ""

    @on(DataTable.RowSelected, "#table-search-result")
    @work(exclusive=True)
    async def handle_product_selected(self, event: DataTable.RowSelected) -> None:
        product = self._results.get(int(event.row_key.value))
        if product is not None:
            await self._add_with_prompt(product)

    async def _add_with_prompt(self, product: Product) -> None:
        qty = await self.app.push_screen_wait(QuantityModal(product, fmt=self.fmt))
        if qty is not None:
            self._add(product, qty)

    def _add(self, product: Product, qty: Decimal) -> None:
        try:
            self.app.state.access.require(Capability.SELL)
            item = self.cart.add(product, qty)
        except PosError as exc:
            self.report_error(exc)
            return
        self.notify(f"{item.product_name} x {format_quantity(item.quantity)}")
        self.post_message(CartChangedMessage())

    # ---------------------------
    # Cart
    # ---------------------------

    @on(CartChangedMessage)
    @on(ModeSwitchedMessage)
    @on(ScreenResume)
    def refresh_cart(self) -> None:
        table = self.query_one("#table-cart", DataTable)
        table.clear()
        for item in self.cart:
            table.add_row(
                item.product_name,
                format_quantity(item.quantity),
                self.fmt(item.unit_price),
                self.fmt(item.total_price),
                key=str(item.product_id),
            )

        totals = self.cart.totals()
        text = (
            f"Subtotal {self.fmt(totals.subtotal_without_tax)}   "
            f"Tax {self.fmt(totals.tax_amount)}   "
        )
        if totals.discount_amount:
            text += f"Discount -{self.fmt(totals.discount_amount)}   "
        text += f"TOTAL {self.fmt(totals.total)}"
        self.query_one("#label-cart-totals", Label).update(text)

    def _selected_line(self):
        table = self.query_one("#table-cart", DataTable)
        if table.row_count == 0:
            return None
        row_key, _ = table.coordinate_to_cell_key(table.cursor_coordinate)
        return self.cart.get(int(row_key.value))

    @on(DataTable.RowSelected, "#table-cart")
    @work(exclusive=True)
    async def handle_line_selected(self, event: DataTable.RowSelected) -> None:
        pid = int(event.row_key.value)
        item = self.cart.get(pid)
        if item is None:
            return
        product = await crud.get_product(self.app.state.store, pid)
        if product is None:
            # gone from the catalog; still editable from the captured line
            product = Product(pid=pid, name=item.product_name, price=item.unit_price, unit=Unit.WEIGHT)
        qty = await self.app.push_screen_wait(
            QuantityModal(product, current=item.quantity, fmt=self.fmt, allow_zero=True)
        )
        if qty is None:
            return
        try:
            self.cart.set_quantity(pid, qty)
        except PosError as exc:
            self.report_error(exc)
            return
        self.post_message(CartChangedMessage())

    @work(exclusive=True)
    async def action_remove_line(self) -> None:
        item = self._selected_line()
        if item is None:
            return
        if not await self.app.push_screen_wait(
            DialogModal(
                f"Remove {item.product_name} from the cart?",
                primary_text="Yes",
                secondary_text="No",
                tone="warning",
            )
        ):
            return
        try:
            self.cart.remove(item.product_id)
        except PosError as exc:
            self.report_error(exc)
            return
        self.post_message(CartChangedMessage())

    @on(Button.Pressed, "#btn-clear-cart")
    @work(exclusive=True)
    async def handle_clear_cart(self) -> None:
        if self.cart.is_empty:
            self.notify("Cart is empty.", severity="warning")
            return

        if await self.app.push_screen_wait(
            DialogModal(
                "Do you really want to remove all items from the cart?",
                primary_text="Yes",
                secondary_text="No",
                tone="error",
            )
        ):
            self.cart.clear()
            self.post_message(CartChangedMessage())

    @on(Button.Pressed, "#btn-discount")
    @work(exclusive=True)
    async def handle_discount(self) -> None:
        if self.cart.is_empty:
            self.notify("Cart is empty.", severity="warning")
            return
        raw = await self.app.push_screen_wait(
            InputDialogModal("Discount amount (0 removes it)", placeholder="0.00", required=True)
        )
        if raw is None:
            return
        try:
            self.cart.set_discount(parse_amount(raw, self.app.state.settings.currency_exponent))
        except PosError as exc:
            self.report_error(exc)
            return
        self.post_message(CartChangedMessage())

    # ---------------------------
    # Hold & checkout
    # ---------------------------

    @on(Button.Pressed, "#btn-hold")
    def handle_hold_pressed(self) -> None:
        self.action_hold()

    @work(exclusive=True)
    async def action_hold(self) -> None:
        state = self.app.state
        if self.cart.is_empty:
            self.notify("Cart is empty.", severity="warning")
            return
        try:
            state.access.require(Capability.HOLD_SALES)
        except PosError as exc:
            self.report_error(exc)
            return

        customer_name = await self.app.push_screen_wait(
            InputDialogModal("Customer name for this parked sale (optional)", primary_text="Hold")
        )
        if customer_name is None:
            return
        try:
            hold_id = await state.holds.park(self.cart, state.cashier_name, customer_name=customer_name)
        except PosError as exc:
            self.report_error(exc)
            return

        self.cart.clear()
        self.post_message(CartChangedMessage())
        self.app.post_message(HoldSalesChangedMessage())
        self.notify(f"Sale parked ({hold_id[-8:]}).")

    @on(Button.Pressed, "#btn-checkout")
    def handle_checkout_pressed(self) -> None:
        self.action_checkout()

    @work(exclusive=True)
    async def action_checkout(self) -> None:
        state = self.app.state
        if self.cart.is_empty:
            self.notify("Cart is empty.", severity="warning")
            return
        try:
            state.access.require(Capability.SELL)
        except PosError as exc:
            self.report_error(exc)
            return

        choice: CheckoutChoice = await self.app.push_screen_wait(
            CheckoutModal(
                self.cart.items,
                self.cart.totals(),
                fmt=self.fmt,
                exponent=state.settings.currency_exponent,
            )
        )
        if choice is None:
            return

        try:
            invoice = await state.ledger.finalize(
                self.cart.items,
                self.cart.totals(),
                choice.payment_method,
                state.cashier_name,
                customer=choice.customer,
                tendered=choice.tendered,
                split=choice.split,
            )
        except PosError as exc:
            self.report_error(exc)
            return

        self.cart.clear()
        self.post_message(CartChangedMessage())
        self.app.post_message(InvoiceCreatedMessage(invoice.id))
        await self.deduct_stock(invoice)

        text = f"Invoice #{format_number(invoice.invoice_number)} recorded."
        if invoice.change is not None:
            text += f" Change: {self.fmt(invoice.change)}"
        self.notify(text, timeout=8)
        self.update_search_result(self.query_one("#input-search", Input).value)
