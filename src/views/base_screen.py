from textual import on, work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Container
from textual.events import ScreenResume
from textual.screen import Screen
from textual.widgets import Button, Footer, Header, Label, ListItem, ListView, Markdown

import db.crud as crud
from core.errors import AuthorizationError, PosError
from db.models import Invoice
from utils.logger import get_logger
from utils.messages import UserLoginMessage, UserLogoutMessage
from utils.pure import generate_markdown_table
from views.modal_dialog import DialogModal, QuitDialogModal

_logger = get_logger(__name__)


class Sidebar(Container):
    init_mode = ""

    def compose(self) -> ComposeResult:
        yield Label("User Info", id="label-info-1")
        yield Markdown("", id="md-userinfo")
        yield Button("Log out", id="btn-logout", variant="error")
        yield Label("Menu", id="label-info-2")
        yield ListView(id="list-menu")

    async def on_mount(self):
        # menu is filled when the owning screen resumes
        self.init_mode = self.app.current_mode

    async def populate(self):
        """(Re)build user info and menu for whoever is logged in now."""
        state = self.app.state
        if not state.user:
            return

        table_rows = [
            ["Name", state.user.name],
            ["Email", state.user.email],
            ["Role", state.user.role.value.title()],
        ]
        md_table_str = generate_markdown_table(["", ""], table_rows, ["l", "l"])
        await self.query_one(Markdown).update(md_table_str)

        # only the modes this role may open are listed
        list_menu: ListView = self.query_one("#list-menu")
        await list_menu.clear()
        await list_menu.extend(
            [
                ListItem(Label(title), id="list-menu-item-" + mode)
                for mode, title in self.app.MODE_TITLES.items()
                if self.app.mode_permitted(mode)
            ]
        )
        self.highlight_item(self.init_mode)

    async def on_list_view_selected(self, event: ListView.Selected):
        selected_mode = event.item.id.removeprefix("list-menu-item-")
        self.highlight_item(self.init_mode)
        if self.app.current_mode != selected_mode:
            await self.app.navigate(selected_mode)

    @on(Button.Pressed, "#btn-logout")
    @work()
    async def handle_logout(self):
        if not await self.app.push_screen_wait(
            DialogModal(
                "Are you sure you want to log out?",
                primary_text="Yes",
                secondary_text="No",
                tone="warning",
            )
        ):
            return

        self.post_message(UserLogoutMessage())

    def highlight_item(self, mode_str: str):
        list_menu = self.query_one("#list-menu")
        for item in list_menu.children:
            item.highlighted = item.id == "list-menu-item-" + mode_str


class BaseScreen(Screen):
    """
    Inherited by all screens, contains common elements like
    headers, footers, sidebar, and keybindings.
    """

    BINDINGS = [
        Binding("ctrl+z", "quit", "Quit App", show=True),
    ]

    def __init__(self):
        super().__init__()

        self.configure()

    def configure(
        self,
        header_sub_title: str = "",
        show_sidebar: bool = True,
    ) -> None:
        """
        configure behavior of the base screen
        """
        self.app.title = self.app.state.settings.business_name
        self.sub_title = header_sub_title
        for mode, screen_cls in self.app.MODES.items():
            if type(self) is screen_cls and mode in self.app.MODE_TITLES:
                self.sub_title = self.app.MODE_TITLES[mode]

        self._show_sidebar = show_sidebar

    def compose(self) -> ComposeResult:
        if self._show_sidebar:
            yield Sidebar()
        yield Header()
        yield Footer(show_command_palette=False)

    def fmt(self, amount: int) -> str:
        return self.app.state.fmt(amount)

    def report_error(self, exc: PosError) -> None:
        """
        Tell the operator what went wrong. A denied capability never renders
        anything protected: it moves the app to the unauthorized screen.
        """
        if isinstance(exc, AuthorizationError):
            _logger.warning(f"Denied: {exc.message}")
            self.app.call_later(self.app.navigate, "unauthorized")
            return
        self.notify(exc.message or exc.kind.value, severity="error")

    async def deduct_stock(self, invoice: Invoice) -> None:
        """Take the sold quantities off tracked stock. The invoice stands either way."""
        sold = {item.product_id: item.quantity for item in invoice.items}
        try:
            await crud.adjust_stock(self.app.state.store, sold)
        except PosError as exc:
            _logger.error(f"Stock update after invoice {invoice.id} failed: {exc.message}")
            self.notify("Sale recorded, but stock could not be updated.", severity="warning")

    @on(ScreenResume)
    async def handle_screen_resume(self):
        # the session may have changed while this screen was in the background
        if self._show_sidebar:
            await self.query_one(Sidebar).populate()

    @on(UserLoginMessage)
    def handle_user_login(self):
        self.refresh()

    @work()
    async def action_quit(self):
        await self.app.push_screen_wait(QuitDialogModal(len(self.app.state.cart)))
