from datetime import date, timedelta
from typing import List, Tuple

from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.events import ScreenResume
from textual.widgets import Button, Input, MarkdownViewer

from core.access import Capability
from core.errors import PosError
from core.ledger import format_number
from utils.messages import InvoiceCreatedMessage, InvoiceVoidedMessage, ModeSwitchedMessage
from utils.pure import format_quantity, generate_markdown_table
from views.base_screen import BaseScreen
from views.modal_dialog import DialogModal, InputDialogModal


class ReportsScreen(BaseScreen):
    """
    Daily summary by payment method, best sellers, and the invoice counter
    reset (admin only, confirmed twice).
    """

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Horizontal(id="hort-report-controls"):
            yield Button("<", id="btn-prev-day")
            yield Input(value=date.today().isoformat(), id="input-day")
            yield Button(">", id="btn-next-day")
            yield Button("Today", id="btn-today")
            yield Button("Reset invoice counter", id="btn-reset-counter", variant="error")
        with Vertical():
            yield MarkdownViewer(id="md-top", show_table_of_contents=False)

    def on_mount(self) -> None:
        self.query_one("#btn-reset-counter").display = self.app.state.permits(
            Capability.RESET_INVOICE_COUNTER
        )
        self.handle_reload()

    def _day(self) -> date:
        try:
            return date.fromisoformat(self.query_one("#input-day", Input).value.strip())
        except ValueError:
            return date.today()

    def _set_day(self, day: date) -> None:
        self.query_one("#input-day", Input).value = day.isoformat()
        self.handle_reload()

    @on(Button.Pressed, "#btn-prev-day")
    def handle_prev_day(self) -> None:
        self._set_day(self._day() - timedelta(days=1))

    @on(Button.Pressed, "#btn-next-day")
    def handle_next_day(self) -> None:
        self._set_day(self._day() + timedelta(days=1))

    @on(Button.Pressed, "#btn-today")
    def handle_today(self) -> None:
        self._set_day(date.today())

    @on(Input.Submitted, "#input-day")
    @on(InvoiceCreatedMessage)
    @on(InvoiceVoidedMessage)
    @on(ScreenResume)
    @on(ModeSwitchedMessage)
    @work(exclusive=True)
    async def handle_reload(self) -> None:
        state = self.app.state
        try:
            state.access.require(Capability.VIEW_REPORTS)
        except PosError as exc:
            self.report_error(exc)
            return

        day = self._day()
        summary = await state.ledger.daily_summary(day)
        top = await state.ledger.top_products(k=5)
        last_number = await state.ledger.last_number()

        method_rows = [
            [method.value.title(), self.fmt(amount)]
            for method, amount in sorted(summary.by_method.items(), key=lambda kv: kv[0].value)
        ]

        def mk_table(title: str, rows: List[Tuple[int, str, object]]) -> str:
            table = generate_markdown_table(
                ["PID", "Name", "Qty Sold"],
                [[pid, name, format_quantity(qty)] for pid, name, qty in rows],
                ["r", "l", "r"],
            )
            return f"#### {title}\n\n" + (table or "_No sales yet._") + "\n"

        daily_md = (
            f"### Daily Summary ({day.isoformat()})\n\n"
            f"- Transactions: {summary.transaction_count}\n"
            f"- Voided: {summary.voided_count}\n"
            f"- Total Sales: {self.fmt(summary.total_sales)}\n\n"
        )
        if method_rows:
            daily_md += generate_markdown_table(["Method", "Amount"], method_rows, ["l", "r"]) + "\n\n"

        md = (
            daily_md
            + "### Top Products\n\n"
            + mk_table("By Quantity Sold", top)
            + f"\n_Last issued invoice number: {format_number(last_number)}_\n"
        )
        self.query_one("#md-top", MarkdownViewer).document.update(md)

    @on(Button.Pressed, "#btn-reset-counter")
    @work(exclusive=True)
    async def handle_reset_counter(self) -> None:
        state = self.app.state
        if not await self.app.push_screen_wait(
            DialogModal(
                "Reset the invoice counter?",
                primary_text="Reset",
                secondary_text="Cancel",
                tone="error",
                detail="Numbering restarts at 1 and earlier numbers will be issued again. "
                "This cannot be undone.",
            )
        ):
            return
        typed = await self.app.push_screen_wait(
            InputDialogModal("Type RESET to confirm.", primary_text="Reset", tone="error")
        )
        if typed != "RESET":
            self.notify("Counter reset cancelled.", severity="warning")
            return
        try:
            state.access.require(Capability.RESET_INVOICE_COUNTER)
            previous = await state.ledger.reset_counter(state.cashier_name)
        except PosError as exc:
            self.report_error(exc)
            return
        self.notify(f"Invoice counter reset (was {format_number(previous)}).", severity="warning")
        self.handle_reload()
