from typing import Dict, Optional

from textual import on, work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.widgets import LoadingIndicator

from core.access import Capability
from utils.config import Settings, load_settings
from utils.logger import get_logger, set_level
from utils.messages import ModeSwitchedMessage, QuitRequestedMessage, UserLogoutMessage
from utils.state import GlobalState
from views.scr_cash_closing import CashClosingScreen
from views.scr_hold_sales import HoldSalesScreen
from views.scr_inventory import InventoryScreen
from views.scr_login import LoginScreen
from views.scr_pos import PosScreen
from views.scr_reports import ReportsScreen
from views.scr_sales_history import SalesHistoryScreen
from views.scr_unauthorized import UnauthorizedScreen
from views.scr_users import UsersScreen

_logger = get_logger(__name__)


class PosApp(App):
    BINDINGS = [
        Binding("ctrl+t", "switch_light", "Toggle Theme", show=True),
    ]

    MODES = {
        "pos": PosScreen,
        "hold_sales": HoldSalesScreen,
        "sales": SalesHistoryScreen,
        "inventory": InventoryScreen,
        "users": UsersScreen,
        "reports": ReportsScreen,
        "closing": CashClosingScreen,
        "unauthorized": UnauthorizedScreen,
    }

    # sidebar entries, in display order
    MODE_TITLES = {
        "pos": "Point of Sale",
        "hold_sales": "Parked Sales",
        "sales": "Sales History",
        "inventory": "Inventory",
        "users": "Users",
        "reports": "Reports",
        "closing": "Cash Closing",
    }

    # None: any authenticated user
    MODE_CAPABILITIES: Dict[str, Optional[Capability]] = {
        "pos": Capability.SELL,
        "hold_sales": Capability.HOLD_SALES,
        "sales": Capability.VIEW_SALES_HISTORY,
        "inventory": Capability.MANAGE_INVENTORY,
        "users": Capability.MANAGE_USERS,
        "reports": Capability.VIEW_REPORTS,
        "closing": Capability.CASH_CLOSING,
        "unauthorized": None,
    }

    CSS_PATH = [
        "styles/index.tcss",
        "styles/login.tcss",
        "styles/pos.tcss",
        "styles/tables.tcss",
    ]

    state: GlobalState

    def __init__(self, settings: Optional[Settings] = None, state: Optional[GlobalState] = None):
        super().__init__()
        self.state = state or GlobalState.create(settings or load_settings())
        set_level(self.state.settings.log_level)

    def compose(self) -> ComposeResult:
        yield LoadingIndicator()

    async def on_mount(self) -> None:
        self.main_flow()

    def action_switch_light(self):
        if self.theme == "textual-dark":
            self.theme = "solarized-light"
        else:
            self.theme = "textual-dark"
        self.notify(f"Theme changed to {self.theme}")

    def mode_permitted(self, mode: str) -> bool:
        if not self.state.access.is_authenticated:
            return False
        capability = self.MODE_CAPABILITIES[mode]
        return capability is None or self.state.permits(capability)

    async def navigate(self, mode: str) -> None:
        """
        Switch to `mode` if the session may open it, otherwise to the
        unauthorized screen. Every mode change goes through here.
        """
        if not self.mode_permitted(mode):
            _logger.warning(
                f"{self.state.cashier_name or 'anonymous'} denied access to '{mode}'"
            )
            mode = "unauthorized"
        self.post_message(ModeSwitchedMessage(self.current_mode, mode))
        await self.switch_mode(mode)

    @on(UserLogoutMessage)
    @work
    async def handle_user_logout(self):
        await self.state.end_session()
        self.notify("Logout successful.")
        self.main_flow()

    @on(QuitRequestedMessage)
    @work
    async def handle_quit(self):
        # a session is kept across restarts; quitting only drops the cart
        self.state.cart.clear()
        self.exit()

    @work(exclusive=True, group="main_flow")
    async def main_flow(self):
        if not await self.state.start_session():
            await self.push_screen_wait(LoginScreen())
        await self.navigate("pos")


def run() -> None:
    PosApp().run()


if __name__ == "__main__":
    run()
