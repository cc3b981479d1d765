from dataclasses import dataclass
from typing import Dict, Optional, Sequence

from textual import events, on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, Input, Label, MarkdownViewer, Select

from core.errors import PosError
from core.money import parse_amount
from db.models import SPLIT_METHODS, CartItem, Customer, PaymentMethod, Totals
from utils.pure import items_table, totals_lines
from views.modal_dialog import DialogModal


@dataclass(frozen=True)
class CheckoutChoice:
    payment_method: PaymentMethod
    customer: Optional[Customer] = None
    tendered: Optional[int] = None
    split: Optional[Dict[PaymentMethod, int]] = None


class CheckoutModal(ModalScreen[Optional[CheckoutChoice]]):
    """
    Order summary plus payment details. Dismisses with a CheckoutChoice once
    the operator confirms, None otherwise; the caller finalizes the sale.
    Payment confirmation is local: nothing is sent to a gateway.
    """

    def __init__(
        self,
        items: Sequence[CartItem],
        totals: Totals,
        fmt=str,
        exponent: int = 2,
        customer_name: str = "",
    ):
        super().__init__()
        self._items = tuple(items)
        self._totals = totals
        self._fmt = fmt
        self._exponent = exponent
        self._customer_name = customer_name

    def compose(self) -> ComposeResult:
        with Vertical():
            yield MarkdownViewer("", show_table_of_contents=False)
            yield Label("Payment method")
            yield Select(
                [(m.value.title(), m) for m in PaymentMethod],
                value=PaymentMethod.CASH,
                allow_blank=False,
                id="select-method",
            )
            with Horizontal(id="div-customer"):
                yield Input(value=self._customer_name, placeholder="Customer name (optional)", id="input-cust-name")
                yield Input(placeholder="Phone", id="input-cust-phone")
                yield Input(placeholder="Email", id="input-cust-email")
            yield Label("Amount tendered (cash)", id="label-tendered")
            yield Input(placeholder="leave blank for exact amount", id="input-tendered")
            with Horizontal(id="div-split", classes="hidden"):
                for method in SPLIT_METHODS:
                    yield Input(placeholder=method.value.title(), id=f"input-split-{method.value}")
            yield Label("", id="label-change")
            with Horizontal():
                yield Button("Go Back", id="btn-quit")
                yield Button("Charge " + self._fmt(self._totals.total), id="btn-submit", variant="primary")

    async def on_mount(self):
        md = "### Order Summary\n\n" + items_table(self._items, self._fmt)
        md += "\n\n" + totals_lines(self._totals, self._fmt)
        await self.query_one(MarkdownViewer).document.update(md)
        self.query_one("#input-tendered").focus()

    def on_key(self, event: events.Key) -> None:
        if event.key == "escape":
            self.dismiss(None)

    def _method(self) -> PaymentMethod:
        return self.query_one("#select-method", Select).value

    @on(Select.Changed, "#select-method")
    def handle_method_changed(self) -> None:
        method = self._method()
        is_cash = method is PaymentMethod.CASH
        tendered = self.query_one("#input-tendered", Input)
        tendered.disabled = not is_cash
        if not is_cash:
            tendered.value = ""
        is_mixed = method is PaymentMethod.MIXED
        self.query_one("#div-split").set_class(not is_mixed, "hidden")
        self.query_one("#label-tendered").set_class(is_mixed, "hidden")
        tendered.set_class(is_mixed, "hidden")
        self.query_one("#label-change", Label).update("")

    @on(Input.Changed, "#div-split Input")
    def handle_split_changed(self) -> None:
        label = self.query_one("#label-change", Label)
        try:
            covered = sum(self._split().values())
        except PosError:
            label.update("Not an amount")
            return
        remaining = self._totals.total - covered
        if remaining > 0:
            label.update(f"Remaining {self._fmt(remaining)}")
        elif remaining < 0:
            label.update(f"Over by {self._fmt(-remaining)}")
        else:
            label.update("Split covers the total")

    def _split(self) -> Dict[PaymentMethod, int]:
        parts = {}
        for method in SPLIT_METHODS:
            raw = self.query_one(f"#input-split-{method.value}", Input).value.strip()
            if raw:
                parts[method] = parse_amount(raw, self._exponent)
        return parts

    @on(Input.Changed, "#input-tendered")
    def handle_tendered_changed(self, ev: Input.Changed) -> None:
        label = self.query_one("#label-change", Label)
        try:
            tendered = self._tendered()
        except PosError:
            label.update("Not an amount")
            return
        if tendered is None:
            label.update("")
        elif tendered < self._totals.total:
            label.update(f"Missing {self._fmt(self._totals.total - tendered)}")
        else:
            label.update(f"Change: {self._fmt(tendered - self._totals.total)}")

    def _tendered(self) -> Optional[int]:
        raw = self.query_one("#input-tendered", Input).value.strip()
        if not raw or self._method() is not PaymentMethod.CASH:
            return None
        return parse_amount(raw, self._exponent)

    def _customer(self) -> Optional[Customer]:
        name = self.query_one("#input-cust-name", Input).value.strip()
        if not name:
            return None
        return Customer(
            name=name,
            phone=self.query_one("#input-cust-phone", Input).value.strip(),
            email=self.query_one("#input-cust-email", Input).value.strip(),
        )

    @on(Button.Pressed, "#btn-submit")
    @work(exclusive=True)
    async def handle_submit(self):
        tendered_input = self.query_one("#input-tendered", Input)
        try:
            tendered = self._tendered()
        except PosError:
            tendered_input.add_class("-invalid")
            tendered_input.focus()
            self.notify("Tendered amount is not a valid amount.", severity="error")
            return
        if tendered is not None and tendered < self._totals.total:
            tendered_input.add_class("-invalid")
            tendered_input.focus()
            self.notify("Tendered amount does not cover the total.", severity="error")
            return

        split = None
        if self._method() is PaymentMethod.MIXED:
            try:
                split = {m: amount for m, amount in self._split().items() if amount}
            except PosError:
                self.notify("Split amounts must be valid amounts.", severity="error")
                return
            if len(split) < 2 or sum(split.values()) != self._totals.total:
                self.notify(
                    "Split at least two methods so they add up to the total.", severity="error"
                )
                return

        if not await self.app.push_screen_wait(
            DialogModal(
                f"Charge {self._fmt(self._totals.total)} by {self._method().value}?",
                primary_text="Yes",
                secondary_text="No",
                tone="positive",
                detail=self._confirm_detail(tendered, split),
            )
        ):
            return

        self.dismiss(CheckoutChoice(self._method(), self._customer(), tendered, split))

    def _confirm_detail(self, tendered: Optional[int], split: Optional[Dict[PaymentMethod, int]]) -> str:
        if split:
            return ", ".join(f"{m.value} {self._fmt(amount)}" for m, amount in split.items())
        if tendered is not None:
            return f"Tendered {self._fmt(tendered)}, change {self._fmt(tendered - self._totals.total)}"
        return ""

    @on(Button.Pressed, "#btn-quit")
    def handle_quit(self):
        self.dismiss(None)
