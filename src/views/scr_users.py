from typing import List, Optional

from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.events import ScreenResume
from textual.widgets import Button, DataTable, Input, Label, Select

import db.crud as crud
from core.access import Capability
from core.errors import InvalidStateError, PosError
from db.models import Role, User
from views.base_screen import BaseScreen


class UsersScreen(BaseScreen):
    """
    Admins register cashier (or admin) accounts and enable/disable them.
    """

    def __init__(self) -> None:
        super().__init__()
        self._users: List[User] = []

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical():
            yield DataTable(id="table-users")
            with Horizontal(id="hort-table-control"):
                yield Button("Enable / Disable", id="btn-toggle", variant="warning")
            yield Label("New account")
            with Horizontal(id="div-new-user"):
                yield Input(placeholder="Name", id="input-user-name")
                yield Input(placeholder="Email", id="input-user-email")
                yield Input(placeholder="Password", password=True, id="input-user-pwd")
                yield Select(
                    [("Cashier", Role.CASHIER), ("Admin", Role.ADMIN)],
                    value=Role.CASHIER,
                    allow_blank=False,
                    id="select-user-role",
                )
                yield Button("Register", id="btn-register", variant="primary")

    def on_mount(self) -> None:
        table = self.query_one(DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        table.add_columns("Name", "Email", "Role", "Active", "Last login")
        self.handle_refresh()

    def _require(self) -> bool:
        try:
            self.app.state.access.require(Capability.MANAGE_USERS)
        except PosError as exc:
            self.report_error(exc)
            return False
        return True

    @on(ScreenResume)
    @work(exclusive=True, group="users")
    async def handle_refresh(self) -> None:
        if not self._require():
            return
        self._users = await crud.list_users(self.app.state.store)
        table = self.query_one(DataTable)
        table.clear()
        for user in self._users:
            table.add_row(
                user.name,
                user.email,
                user.role.value,
                "yes" if user.is_active else "no",
                f"{user.last_login:%Y-%m-%d %H:%M}" if user.last_login else "-",
                key=user.uid,
            )

    def _selected(self) -> Optional[User]:
        table = self.query_one(DataTable)
        if table.row_count == 0:
            return None
        row_key, _ = table.coordinate_to_cell_key(table.cursor_coordinate)
        for user in self._users:
            if user.uid == row_key.value:
                return user
        return None

    @on(Button.Pressed, "#btn-toggle")
    @work(exclusive=True)
    async def handle_toggle(self) -> None:
        user = self._selected()
        if user is None or not self._require():
            return
        if user.uid == self.app.state.user.uid:
            self.notify("You cannot disable your own account.", severity="error")
            return
        try:
            updated = await crud.set_user_active(self.app.state.store, user.uid, not user.is_active)
        except PosError as exc:
            self.report_error(exc)
            return
        self.notify(f"{updated.email} is now {'enabled' if updated.is_active else 'disabled'}.")
        self.handle_refresh()

    @on(Input.Submitted, "#input-user-pwd")
    @on(Button.Pressed, "#btn-register")
    @work(exclusive=True)
    async def handle_register(self) -> None:
        if not self._require():
            return
        name_input = self.query_one("#input-user-name", Input)
        email_input = self.query_one("#input-user-email", Input)
        pwd_input = self.query_one("#input-user-pwd", Input)
        role: Role = self.query_one("#select-user-role", Select).value

        try:
            user = await crud.register_user(
                self.app.state.store, name_input.value, email_input.value, pwd_input.value, role
            )
        except (ValueError, InvalidStateError) as exc:
            self.notify(str(exc), severity="error")
            return

        self.notify(f"Registered {user.role.value} {user.email}.")
        for field in (name_input, email_input, pwd_input):
            field.value = ""
        self.handle_refresh()
