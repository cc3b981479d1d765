from typing import List, Optional

from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.events import ScreenResume
from textual.widgets import Button, DataTable, Input, MarkdownViewer

from core.access import Capability
from core.errors import PosError
from core.money import parse_amount
from db.models import CashClosing
from utils.messages import InvoiceCreatedMessage, InvoiceVoidedMessage, ModeSwitchedMessage
from utils.pure import closing_markdown
from views.base_screen import BaseScreen
from views.modal_dialog import DialogModal

# differences above this many major units ask for a second confirmation
LARGE_DIFFERENCE = 10_000


class CashClosingScreen(BaseScreen):
    """
    Opens the till with a starting float and closes it against the counted
    drawer. Past closings are listed below the current one.
    """

    def __init__(self) -> None:
        super().__init__()
        self._closings: List[CashClosing] = []
        self._current: Optional[CashClosing] = None

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Horizontal(id="hort-controls"):
            yield Input(placeholder="Starting cash", id="input-initial")
            yield Button("Open till", id="btn-open", variant="primary")
            yield Input(placeholder="Counted cash", id="input-counted")
            yield Input(placeholder="Notes", id="input-closing-notes")
            yield Button("Close till", id="btn-close", variant="warning")
        with Vertical():
            yield MarkdownViewer(id="md-closing", show_table_of_contents=False)
            yield DataTable(id="table-closings")

    def on_mount(self) -> None:
        table = self.query_one(DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        table.add_columns("Date", "Cashier", "Sales", "Expected", "Counted", "Difference")
        self.handle_refresh()

    def _amount(self, input_id: str) -> Optional[int]:
        field = self.query_one(input_id, Input)
        try:
            amount = parse_amount(field.value, self.app.state.settings.currency_exponent)
        except PosError:
            field.add_class("-invalid")
            field.focus()
            self.notify("Enter an amount.", severity="error")
            return None
        field.remove_class("-invalid")
        return amount

    @on(InvoiceCreatedMessage)
    @on(InvoiceVoidedMessage)
    @on(ModeSwitchedMessage)
    @on(ScreenResume)
    @work(exclusive=True, group="closings")
    async def handle_refresh(self) -> None:
        ledger = self.app.state.ledger
        self._current = await ledger.current_closing()
        self._closings = await ledger.list_closings()

        is_open = self._current is not None
        for widget_id in ("#input-initial", "#btn-open"):
            self.query_one(widget_id).disabled = is_open
        for widget_id in ("#input-counted", "#input-closing-notes", "#btn-close"):
            self.query_one(widget_id).disabled = not is_open

        table = self.query_one(DataTable)
        table.clear()
        for closing in self._closings:
            table.add_row(
                f"{closing.day.isoformat()} {closing.opened_at:%H:%M}",
                closing.cashier_name,
                self.fmt(closing.total_sales),
                self.fmt(closing.expected_cash),
                self.fmt(closing.physical_count),
                self.fmt(closing.difference),
                key=closing.id,
            )
        await self._render_current()

    async def _render_current(self) -> None:
        if self._current is None:
            md = "### The till is closed.\n\nEnter the starting cash to open it."
            if self._closings:
                md += "\n\n" + closing_markdown(self._closings[0], self.fmt)
        else:
            summary = await self.app.state.ledger.daily_summary(self._current.day)
            expected = self._current.initial_amount + summary.cash_sales
            md = (
                closing_markdown(self._current, self.fmt)
                + f"\n\nCash sales so far: {self.fmt(summary.cash_sales)}  "
                + f"\nExpected in drawer: {self.fmt(expected)}"
            )
        self.query_one("#md-closing", MarkdownViewer).document.update(md)

    @on(DataTable.RowSelected)
    def handle_row_selected(self, event: DataTable.RowSelected) -> None:
        for closing in self._closings:
            if closing.id == event.row_key.value:
                self.query_one("#md-closing", MarkdownViewer).document.update(
                    closing_markdown(closing, self.fmt)
                )
                return

    @on(Input.Submitted, "#input-initial")
    @on(Button.Pressed, "#btn-open")
    @work(exclusive=True)
    async def handle_open(self) -> None:
        state = self.app.state
        initial = self._amount("#input-initial")
        if initial is None:
            return
        try:
            state.access.require(Capability.CASH_CLOSING)
            await state.ledger.open_closing(state.cashier_name, initial)
        except PosError as exc:
            self.report_error(exc)
            return
        self.query_one("#input-initial", Input).value = ""
        self.notify(f"Till opened with {self.fmt(initial)}.")
        self.handle_refresh()

    @on(Button.Pressed, "#btn-close")
    @work(exclusive=True)
    async def handle_close(self) -> None:
        state = self.app.state
        counted = self._amount("#input-counted")
        if counted is None or self._current is None:
            return

        summary = await state.ledger.daily_summary(self._current.day)
        difference = counted - (self._current.initial_amount + summary.cash_sales)
        if difference > 0:
            detail = f"The drawer is over by {self.fmt(difference)}."
        elif difference < 0:
            detail = f"The drawer is short by {self.fmt(-difference)}."
        else:
            detail = "The drawer balances."
        if not await self.app.push_screen_wait(
            DialogModal(
                "Close the till?",
                primary_text="Close",
                secondary_text="Cancel",
                tone="warning" if difference else "positive",
                detail=detail,
            )
        ):
            return
        limit = LARGE_DIFFERENCE * 10**state.settings.currency_exponent
        if abs(difference) > limit and not await self.app.push_screen_wait(
            DialogModal(
                f"The difference is larger than {self.fmt(limit)}. Close anyway?",
                primary_text="Close",
                secondary_text="Recount",
                tone="error",
            )
        ):
            return

        notes = self.query_one("#input-closing-notes", Input).value.strip()
        try:
            state.access.require(Capability.CASH_CLOSING)
            await state.ledger.finalize_closing(counted, notes)
        except PosError as exc:
            self.report_error(exc)
            return
        for widget_id in ("#input-counted", "#input-closing-notes"):
            self.query_one(widget_id, Input).value = ""
        self.notify(f"Till closed. {detail}", timeout=8)
        self.handle_refresh()
