from datetime import date
from math import ceil
from typing import List, Optional

from textual import on, work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.events import ScreenResume
from textual.reactive import reactive
from textual.validation import Number
from textual.widgets import Button, DataTable, Input, Label, MarkdownViewer, Select

from core.access import Capability
from core.errors import PosError
from core.ledger import SalesFilter, format_number
from db.models import Invoice, InvoiceStatus, PaymentMethod
from utils.messages import InvoiceCreatedMessage, InvoiceVoidedMessage, ModeSwitchedMessage
from utils.pure import invoice_markdown
from views.base_screen import BaseScreen
from views.modal_dialog import DialogModal, InputDialogModal

PAGE_SIZE = 10


class SalesHistoryScreen(BaseScreen):
    """
    Admins browse issued invoices with filters and pagination, read the
    receipt of the highlighted one, and void completed invoices.

    Layout:
    - Filter bar (date range, cashier, customer, payment method).
    - Markdown receipt view of the selected invoice.
    - Invoices table (most recent first), PAGE_SIZE per page with Prev/Next.
    """

    BINDINGS = [
        Binding("enter", "noop", "View Invoice", show=True, key_display="⏎"),
    ]

    page_idx = reactive(1)
    page_cnt = reactive(1)

    def __init__(self) -> None:
        super().__init__()
        self._invoices: List[Invoice] = []

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Horizontal(id="hort-filters"):
            yield Input(placeholder="From YYYY-MM-DD", id="input-from")
            yield Input(placeholder="To YYYY-MM-DD", id="input-to")
            yield Input(placeholder="Cashier", id="input-cashier")
            yield Input(placeholder="Customer name/phone", id="input-customer")
            yield Select(
                [(m.value.title(), m) for m in PaymentMethod],
                prompt="Any method",
                id="select-method",
            )
            yield Button("Search", id="btn-search", variant="primary")
        with Vertical():
            yield MarkdownViewer(id="md-invoice-detail", show_table_of_contents=False)
            yield DataTable(id="table-invoices")
        with Horizontal(id="hort-table-control"):
            yield Button("Refresh", id="btn-refresh")
            yield Button("<", id="btn-prev")
            yield Input("1", id="input-page", type="integer")
            yield Label(" / 1", id="label-total-page-cnt")
            yield Button(">", id="btn-next")
            yield Button("Void invoice", id="btn-void", variant="error")

    def on_mount(self) -> None:
        table = self.query_one(DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        table.add_columns("Invoice", "Date", "Cashier", "Customer", "Method", "Total", "Status")
        self.handle_refresh()

    def _filters(self) -> Optional[SalesFilter]:
        def parse_day(input_id: str) -> Optional[date]:
            raw = self.query_one(input_id, Input).value.strip()
            return date.fromisoformat(raw) if raw else None

        try:
            start, end = parse_day("#input-from"), parse_day("#input-to")
        except ValueError:
            self.notify("Dates must look like 2024-01-31.", severity="error")
            return None
        method = self.query_one("#select-method", Select).value
        return SalesFilter(
            start_date=start,
            end_date=end,
            cashier=self.query_one("#input-cashier", Input).value.strip(),
            customer=self.query_one("#input-customer", Input).value.strip(),
            payment_method=None if method is Select.BLANK else method,
        )

    @on(Button.Pressed, "#btn-refresh")
    @on(Button.Pressed, "#btn-search")
    @on(InvoiceCreatedMessage)
    @on(InvoiceVoidedMessage)
    @on(ModeSwitchedMessage)
    @on(ScreenResume)
    def handle_refresh(self) -> None:
        self._load_invoices(self.page_idx)

    @on(DataTable.RowHighlighted)
    def handle_row_highlight(self) -> None:
        self._render_detail(self._selected())

    def watch_page_idx(self, old: int, new: int) -> None:
        self.query_one("#input-page", Input).value = str(new)
        self._refresh_buttons()
        self._load_invoices(new)

    def _refresh_buttons(self) -> None:
        self.query_one("#btn-prev", Button).disabled = self.page_idx <= 1
        self.query_one("#btn-next", Button).disabled = self.page_idx >= self.page_cnt
        self.query_one("#input-page", Input).validators = [
            Number(minimum=1, maximum=self.page_cnt)
        ]

    @on(Button.Pressed, "#btn-prev")
    def handle_prev(self) -> None:
        if self.page_idx > 1:
            self.page_idx -= 1

    @on(Button.Pressed, "#btn-next")
    def handle_next(self) -> None:
        if self.page_idx < self.page_cnt:
            self.page_idx += 1

    @on(Input.Changed, "#input-page")
    def handle_page_input(self, ev: Input.Changed) -> None:
        if ev.value and ev.value.isdigit():
            new_idx = max(1, min(int(ev.value), self.page_cnt))
            if new_idx != self.page_idx:
                self.page_idx = new_idx

    @work(exclusive=True, group="invoices")
    async def _load_invoices(self, page: int) -> None:
        state = self.app.state
        try:
            state.access.require(Capability.VIEW_SALES_HISTORY)
        except PosError as exc:
            self.report_error(exc)
            return
        filters = self._filters()
        if filters is None:
            return

        invoices = await state.ledger.list(filters)
        self.page_cnt = max(ceil(len(invoices) / PAGE_SIZE), 1)
        page = max(1, min(page, self.page_cnt))
        self._invoices = invoices[(page - 1) * PAGE_SIZE : page * PAGE_SIZE]

        table = self.query_one(DataTable)
        table.clear()
        for inv in self._invoices:
            table.add_row(
                format_number(inv.invoice_number),
                f"{inv.created_at:%Y-%m-%d %H:%M}",
                inv.cashier_name,
                inv.customer.name if inv.customer else "-",
                inv.payment_method.value,
                self.fmt(inv.totals.total),
                inv.status.value,
                key=inv.id,
            )
        self.query_one("#label-total-page-cnt", Label).update(f" / {self.page_cnt}")
        self._refresh_buttons()
        if self._invoices:
            table.cursor_coordinate = (0, 0)
        self._render_detail(self._selected())

    def _selected(self) -> Optional[Invoice]:
        table = self.query_one(DataTable)
        if table.row_count == 0:
            return None
        row_key, _ = table.coordinate_to_cell_key(table.cursor_coordinate)
        for inv in self._invoices:
            if inv.id == row_key.value:
                return inv
        return None

    def _render_detail(self, invoice: Optional[Invoice]) -> None:
        viewer = self.query_one("#md-invoice-detail", MarkdownViewer)
        if invoice is None:
            viewer.document.update("### Select an invoice to view its details.")
            return
        viewer.document.update(
            invoice_markdown(invoice, self.fmt, self.app.state.settings.business_name)
        )
        self.query_one("#btn-void", Button).disabled = (
            invoice.status is not InvoiceStatus.COMPLETED
        )

    @on(Button.Pressed, "#btn-void")
    @work(exclusive=True)
    async def handle_void(self) -> None:
        state = self.app.state
        invoice = self._selected()
        if invoice is None:
            return
        number = format_number(invoice.invoice_number)
        reason = await self.app.push_screen_wait(
            InputDialogModal(
                f"Void invoice #{number}? Give a reason.",
                primary_text="Void",
                required=True,
                tone="error",
            )
        )
        if reason is None:
            return
        if not await self.app.push_screen_wait(
            DialogModal(
                f"Invoice #{number} will be voided. This cannot be undone.",
                primary_text="Void",
                secondary_text="Cancel",
                tone="error",
            )
        ):
            return
        try:
            state.access.require(Capability.VOID_INVOICE)
            await state.ledger.void(invoice.id, reason)
        except PosError as exc:
            self.report_error(exc)
            return
        self.notify(f"Invoice #{number} voided.")
        self.post_message(InvoiceVoidedMessage(invoice.id))
