from decimal import Decimal
from typing import Optional

from textual import events, on
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, Input, Label, MarkdownViewer

from core.cart import MAX_QUANTITY
from core.errors import InvalidQuantityError
from core.money import is_integral, parse_quantity
from db.models import Product, Unit
from utils.pure import format_quantity, generate_markdown_table


class QuantityModal(ModalScreen[Optional[Decimal]]):
    """
    Product detail plus a quantity prompt.
    Dismisses with the chosen quantity, or None when cancelled.
    Piece-sold products step by 1; weight-sold ones accept decimals.
    """

    def __init__(
        self,
        product: Product,
        current: Optional[Decimal] = None,
        fmt=str,
        allow_zero: bool = False,
    ) -> None:
        super().__init__()
        self._prod = product
        self._current = current
        self._fmt = fmt
        self._allow_zero = allow_zero

    def compose(self) -> ComposeResult:
        with Horizontal(id="hort-prod-detail"):
            yield MarkdownViewer("", show_table_of_contents=False)
            with Vertical():
                yield Label("Quantity" + (" (kg)" if self._prod.unit is Unit.WEIGHT else ""))
                with Horizontal():
                    yield Button("-", id="btn-sub-qty")
                    yield Input(
                        value=format_quantity(self._current) if self._current else "1",
                        id="input-qty",
                    )
                    yield Button("+", id="btn-add-qty")
                with Horizontal():
                    yield Button("Go Back", id="btn-quit")
                    yield Button(
                        "Update" if self._current else "Add to Cart",
                        id="btn-addcart",
                        variant="primary",
                    )

    async def on_mount(self):
        prod = self._prod
        stock = "unbounded" if prod.stock is None else format_quantity(prod.stock)
        table_rows = [
            ["ID", prod.pid],
            ["Name", prod.name],
            ["Price", self._fmt(prod.price)],
            ["Sold by", prod.unit.value],
            ["Stock", stock],
            ["Category", prod.category or "-"],
            ["Barcode", prod.barcode or "-"],
        ]
        md_table_str = generate_markdown_table(["Attribute", "Value"], table_rows, ["l", "l"])
        await self.query_one(MarkdownViewer).document.update(
            f"### {prod.name}\n\n" + md_table_str
        )
        qty_input = self.query_one("#input-qty", Input)
        qty_input.focus()

    def on_key(self, event: events.Key) -> None:
        if event.key == "escape":
            self.dismiss(None)

    def _read(self) -> Decimal:
        qty = parse_quantity(self.query_one("#input-qty", Input).value)
        if qty == 0 and self._allow_zero:
            return qty
        if qty <= 0:
            raise InvalidQuantityError("Quantity must be greater than zero.")
        if qty > MAX_QUANTITY:
            raise InvalidQuantityError(f"Quantity cannot exceed {MAX_QUANTITY}.")
        if self._prod.unit is Unit.PIECE and not is_integral(qty):
            raise InvalidQuantityError("This product is sold by the piece.")
        return qty

    def _step(self, delta: int) -> None:
        qty_input = self.query_one("#input-qty", Input)
        try:
            qty = parse_quantity(qty_input.value)
        except InvalidQuantityError:
            qty = Decimal(1)
        qty = min(max(qty + delta, Decimal(1)), MAX_QUANTITY)
        qty_input.value = format_quantity(qty)

    @on(Button.Pressed, "#btn-add-qty")
    def handle_add_qty(self):
        self._step(1)

    @on(Button.Pressed, "#btn-sub-qty")
    def handle_sub_qty(self):
        self._step(-1)

    @on(Button.Pressed, "#btn-quit")
    def handle_quit(self):
        self.dismiss(None)

    @on(Input.Submitted, "#input-qty")
    @on(Button.Pressed, "#btn-addcart")
    def handle_addcart(self):
        qty_input = self.query_one("#input-qty", Input)
        try:
            qty = self._read()
        except InvalidQuantityError as exc:
            qty_input.add_class("-invalid")
            qty_input.focus()
            self.notify(exc.message, severity="error")
            return
        self.dismiss(qty)
