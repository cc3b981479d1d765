from typing import List, Optional

from textual import on, work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.events import ScreenResume
from textual.widgets import Button, DataTable, MarkdownViewer, Select

from core.access import Capability
from core.errors import PosError
from core.ledger import format_number
from db.models import SPLIT_METHODS, HoldSale, PaymentMethod
from utils.messages import (
    CartChangedMessage,
    HoldSalesChangedMessage,
    InvoiceCreatedMessage,
    ModeSwitchedMessage,
)
from utils.pure import hold_markdown
from views.base_screen import BaseScreen
from views.modal_dialog import DialogModal


class HoldSalesScreen(BaseScreen):
    """
    Parked sales, most recent first, with a detail pane for the highlighted
    one. A parked sale can be recovered into the till's cart (it stays parked
    until completed or deleted), completed directly, or deleted.
    """

    BINDINGS = [
        Binding("enter", "noop", "View Parked Sale", show=True, key_display="⏎"),
    ]

    def __init__(self) -> None:
        super().__init__()
        self._holds: List[HoldSale] = []

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical():
            yield MarkdownViewer(id="md-hold-detail", show_table_of_contents=False)
            yield DataTable(id="table-holds")
        with Horizontal(id="hort-table-control"):
            yield Button("Refresh", id="btn-refresh")
            yield Button("Delete", id="btn-delete", variant="error")
            # a split payment needs the checkout form: recover the sale first
            yield Select(
                [(m.value.title(), m) for m in SPLIT_METHODS],
                value=PaymentMethod.CASH,
                allow_blank=False,
                id="select-method",
            )
            yield Button("Complete", id="btn-complete", variant="success")
            yield Button("Recover to cart", id="btn-recover", variant="primary")

    def on_mount(self) -> None:
        table = self.query_one(DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        table.add_columns("Parked", "Cashier", "Customer", "Items", "Total")
        self.handle_refresh()

    @on(Button.Pressed, "#btn-refresh")
    @on(HoldSalesChangedMessage)
    @on(ModeSwitchedMessage)
    @on(ScreenResume)
    @work(exclusive=True, group="holds")
    async def handle_refresh(self) -> None:
        self._holds = await self.app.state.holds.list()
        table = self.query_one(DataTable)
        table.clear()
        for hold in self._holds:
            table.add_row(
                f"{hold.created_at:%Y-%m-%d %H:%M}",
                hold.cashier_name,
                hold.customer_name or "-",
                len(hold.items),
                self.fmt(hold.totals.total),
                key=hold.id,
            )
        self._render_detail(self._selected())

    @on(DataTable.RowHighlighted)
    def handle_row_highlight(self) -> None:
        self._render_detail(self._selected())

    def _selected(self) -> Optional[HoldSale]:
        table = self.query_one(DataTable)
        if table.row_count == 0:
            return None
        row_key, _ = table.coordinate_to_cell_key(table.cursor_coordinate)
        for hold in self._holds:
            if hold.id == row_key.value:
                return hold
        return None

    def _render_detail(self, hold: Optional[HoldSale]) -> None:
        md = "### No parked sales." if hold is None else hold_markdown(hold, self.fmt)
        self.query_one("#md-hold-detail", MarkdownViewer).document.update(md)

    @on(Button.Pressed, "#btn-recover")
    @work(exclusive=True)
    async def handle_recover(self) -> None:
        state = self.app.state
        hold = self._selected()
        if hold is None:
            return
        try:
            state.access.require(Capability.HOLD_SALES)
            result = await state.holds.recover(hold.id, state.cart)
        except PosError as exc:
            self.report_error(exc)
            return

        if result.partial:
            names = ", ".join(item.product_name for item in result.skipped)
            self.notify(
                f"Some items are no longer in the catalog and were skipped: {names}",
                severity="warning",
                timeout=8,
            )
        else:
            self.notify(f"Recovered {len(result.restored)} item(s) into the cart.")
        self.app.post_message(CartChangedMessage())
        await self.app.navigate("pos")

    @on(Button.Pressed, "#btn-complete")
    @work(exclusive=True)
    async def handle_complete(self) -> None:
        state = self.app.state
        hold = self._selected()
        if hold is None:
            return
        method: PaymentMethod = self.query_one("#select-method", Select).value
        if not await self.app.push_screen_wait(
            DialogModal(
                f"Charge {self.fmt(hold.totals.total)} by {method.value} and close this parked sale?",
                primary_text="Yes",
                secondary_text="No",
                tone="positive",
            )
        ):
            return
        try:
            state.access.require(Capability.SELL)
            invoice = await state.holds.complete(hold.id, method)
        except PosError as exc:
            self.report_error(exc)
            return

        await self.deduct_stock(invoice)
        self.notify(f"Invoice #{format_number(invoice.invoice_number)} recorded.")
        self.app.post_message(InvoiceCreatedMessage(invoice.id))
        self.post_message(HoldSalesChangedMessage())

    @on(Button.Pressed, "#btn-delete")
    @work(exclusive=True)
    async def handle_delete(self) -> None:
        hold = self._selected()
        if hold is None:
            return
        if not await self.app.push_screen_wait(
            DialogModal(
                "Delete this parked sale? This cannot be undone.",
                primary_text="Delete",
                secondary_text="Keep",
                tone="error",
            )
        ):
            return
        try:
            self.app.state.access.require(Capability.HOLD_SALES)
            await self.app.state.holds.delete(hold.id)
        except PosError as exc:
            self.report_error(exc)
            return
        self.notify("Parked sale deleted.")
        self.post_message(HoldSalesChangedMessage())
