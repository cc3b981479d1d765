from __future__ import annotations

from dataclasses import replace
from decimal import Decimal
from typing import List, Optional

from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.widgets import (
    Button,
    Input,
    Label,
    MarkdownViewer,
    OptionList,
    Select,
    TabbedContent,
    TabPane,
)
from textual.widgets.option_list import Option

import db.crud as crud
from core.access import Capability
from core.errors import PosError
from core.money import parse_amount, parse_quantity
from db.models import Product, Unit
from utils.pure import format_quantity, generate_markdown_table
from views.base_screen import BaseScreen


class InventoryScreen(BaseScreen):
    """
    Admins look up a product to change its price, stock or visibility, or add
    a new product to the catalog.
    """

    current_pid: Optional[int] = None

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with TabbedContent(id="tabs-inventory"):
            with TabPane("Edit product", id="tab-edit"):
                with Vertical():
                    yield Input(id="input-search", placeholder="Search for product...")
                    yield OptionList(id="optlist-prods")
                    yield MarkdownViewer(id="md-prod", show_table_of_contents=False)
                    with Horizontal(id="hort-controls"):
                        with Vertical():
                            yield Label("New Price:")
                            yield Input(placeholder="leave blank to keep", id="input-price")
                        with Vertical():
                            yield Label("New Stock:")
                            yield Input(placeholder="leave blank to keep", id="input-stock")
                        with Horizontal(id="div-button"):
                            yield Button("Update", id="btn-update", variant="success")
                            yield Button("Deactivate", id="btn-toggle", variant="warning")

            with TabPane("New product", id="tab-new"):
                with Vertical(id="div-new-product"):
                    yield Input(placeholder="Name", id="input-new-name")
                    with Horizontal():
                        yield Input(placeholder="Price", id="input-new-price")
                        yield Input(placeholder="Cost (optional)", id="input-new-cost")
                    with Horizontal():
                        yield Select(
                            [("Sold by piece", Unit.PIECE), ("Sold by weight", Unit.WEIGHT)],
                            value=Unit.PIECE,
                            allow_blank=False,
                            id="select-new-unit",
                        )
                        yield Input(placeholder="Stock (blank = unbounded)", id="input-new-stock")
                    with Horizontal():
                        yield Input(placeholder="Category", id="input-new-category")
                        yield Input(placeholder="Barcode", id="input-new-barcode")
                    yield Button("Add product", id="btn-create", variant="primary")

    def on_mount(self) -> None:
        self.query_one("#input-search", Input).focus()
        self.query_one("#md-prod").add_class("hidden")
        self.query_one("#hort-controls").add_class("hidden")
        self.update_optlist("")

    def _require(self) -> bool:
        try:
            self.app.state.access.require(Capability.MANAGE_INVENTORY)
        except PosError as exc:
            self.report_error(exc)
            return False
        return True

    @on(Input.Changed, "#input-search")
    def handle_search_changed(self, message: Input.Changed) -> None:
        self.query_one("#optlist-prods").remove_class("hidden")
        self.update_optlist(message.value)

    def on_option_list_option_selected(self, message: OptionList.OptionSelected):
        self.current_pid = int(message.option.id)
        self.render_product()

        self.query_one("#optlist-prods").add_class("hidden")
        self.query_one("#md-prod").remove_class("hidden")
        self.query_one("#hort-controls").remove_class("hidden")

    @work(exclusive=True, group="search")
    async def update_optlist(self, query: str):
        """
        fill option list with search results, inactive products included
        """
        search_results: List[Product] = await crud.search_products(
            self.app.state.store, query, include_inactive=True
        )
        opt_list = self.query_one("#optlist-prods", OptionList)
        opt_list.clear_options()
        opt_list.add_options(
            [
                Option(
                    f"{p.pid} {p.name}" + ("" if p.is_active else " (inactive)"),
                    id=str(p.pid),
                )
                for p in search_results
            ]
        )

    @work(exclusive=True)
    async def render_product(self) -> None:
        prod = await crud.get_product(self.app.state.store, self.current_pid)
        if prod is None:
            self.notify("Product no longer exists.", severity="error")
            return

        rows = [
            ["ID", prod.pid],
            ["Name", prod.name],
            ["Price", self.fmt(prod.price)],
            ["Cost", self.fmt(prod.cost)],
            ["Sold by", prod.unit.value],
            ["Stock", "unbounded" if prod.stock is None else format_quantity(prod.stock)],
            ["Category", prod.category or "-"],
            ["Barcode", prod.barcode or "-"],
            ["Active", "yes" if prod.is_active else "no"],
        ]
        md_table = generate_markdown_table(["Attribute", "Value"], rows, ["l", "l"])
        await self.query_one("#md-prod", MarkdownViewer).document.update(
            f"### Product Detail: {prod.name}\n\n" + md_table
        )
        self.query_one("#input-price", Input).value = ""
        self.query_one("#input-stock", Input).value = ""
        self.query_one("#btn-toggle", Button).label = "Deactivate" if prod.is_active else "Activate"

    @on(Button.Pressed, "#btn-update")
    @work(exclusive=True)
    async def handle_update(self) -> None:
        if self.current_pid is None or not self._require():
            return
        exponent = self.app.state.settings.currency_exponent
        price_input = self.query_one("#input-price", Input)
        stock_input = self.query_one("#input-stock", Input)

        try:
            new_price = parse_amount(price_input.value, exponent) if price_input.value.strip() else None
        except PosError:
            price_input.focus()
            price_input.add_class("-invalid")
            return
        try:
            new_stock = parse_quantity(stock_input.value) if stock_input.value.strip() else None
        except PosError:
            stock_input.focus()
            stock_input.add_class("-invalid")
            return
        if (new_price is not None and new_price < 0) or (new_stock is not None and new_stock < 0):
            self.notify("Price and stock cannot be negative.", severity="error")
            return

        if await crud.update_product_price_stock(
            self.app.state.store, self.current_pid, new_price, new_stock
        ):
            self.notify("Product updated successfully.")
        else:
            self.notify("Nothing to update.", severity="warning")

        self.render_product()

    @on(Button.Pressed, "#btn-toggle")
    @work(exclusive=True)
    async def handle_toggle(self) -> None:
        if self.current_pid is None or not self._require():
            return
        store = self.app.state.store
        prod = await crud.get_product(store, self.current_pid)
        if prod is None:
            return
        await crud.save_product(store, replace(prod, is_active=not prod.is_active))
        self.notify(f"{prod.name} is now {'inactive' if prod.is_active else 'active'}.")
        self.render_product()
        self.update_optlist(self.query_one("#input-search", Input).value)

    @on(Button.Pressed, "#btn-create")
    @work(exclusive=True)
    async def handle_create(self) -> None:
        if not self._require():
            return
        store = self.app.state.store
        exponent = self.app.state.settings.currency_exponent

        name = self.query_one("#input-new-name", Input).value.strip()
        raw_price = self.query_one("#input-new-price", Input).value
        raw_cost = self.query_one("#input-new-cost", Input).value.strip()
        raw_stock = self.query_one("#input-new-stock", Input).value.strip()
        if not name or not raw_price.strip():
            self.notify("Name and price are required.", severity="error")
            return

        try:
            price = parse_amount(raw_price, exponent)
            cost = parse_amount(raw_cost, exponent) if raw_cost else 0
            stock: Optional[Decimal] = parse_quantity(raw_stock) if raw_stock else None
        except PosError as exc:
            self.notify(exc.message, severity="error")
            return

        product = Product(
            pid=await crud.next_product_id(store),
            name=name,
            price=price,
            cost=cost,
            stock=stock,
            unit=self.query_one("#select-new-unit", Select).value,
            category=self.query_one("#input-new-category", Input).value.strip(),
            barcode=self.query_one("#input-new-barcode", Input).value.strip(),
        )
        try:
            await crud.save_product(store, product)
        except ValueError as exc:
            self.notify(str(exc), severity="error")
            return

        self.notify(f"Added {product.name} as product {product.pid}.")
        for input_id in ("name", "price", "cost", "stock", "category", "barcode"):
            self.query_one(f"#input-new-{input_id}", Input).value = ""
        self.update_optlist(self.query_one("#input-search", Input).value)
