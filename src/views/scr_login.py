from textual import on, work
from textual.app import ComposeResult
from textual.containers import Container, Horizontal, Vertical
from textual.widgets import Button, Input, Label, TabbedContent, TabPane

import db.crud as crud
from core.errors import AuthenticationError, InvalidStateError, PosError
from db.models import Role
from utils.messages import UserLoginMessage
from views.base_screen import BaseScreen
from views.modal_dialog import QuitDialogModal, SimpleDialogModal


class LoginScreen(BaseScreen):
    """
    Email/password login. While the store has no accounts at all, a setup tab
    registers the first administrator. Dismisses once a session is
    authenticated.
    """

    def __init__(self):
        super().__init__()
        self.configure(header_sub_title="Login", show_sidebar=False)

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with TabbedContent(id="super-tab-loginscr"):
            with TabPane("Login", id="tab-login"):
                with Vertical(id="div-login"):
                    yield Label("Email")
                    yield Input(placeholder="cashier@example.com", id="input-login-email")
                    yield Label("Password")
                    yield Input(
                        placeholder="*********", password=True, id="input-login-pwd"
                    )
                    with Horizontal(id="div-login-btns"):
                        yield Button("Quit", id="btn-quit")
                        yield Button("Login", id="btn-login", variant="primary")

            with TabPane("First-time setup", id="tab-setup"):
                with Vertical(id="div-reg"):
                    yield Label("Administrator name")
                    yield Input(placeholder="Jane Doe", id="input-reg-name")
                    yield Label("Email")
                    yield Input(placeholder="admin@example.com", id="input-reg-email")
                    yield Label("Password")
                    yield Input(
                        placeholder="*********", password=True, id="input-reg-pwd"
                    )
                    with Container(id="div-reg-btns"):
                        yield Button("Create administrator", id="btn-reg", variant="primary")

    async def on_mount(self):
        self.query_one("#input-login-email").focus()
        has_users = await crud.has_users(self.app.state.store)
        tabs = self.query_one(TabbedContent)
        if has_users:
            tabs.hide_tab("tab-setup")
        else:
            tabs.active = "tab-setup"
            self.query_one("#input-reg-name").focus()

    @on(Input.Submitted, "#input-login-pwd")
    @on(Button.Pressed, "#btn-login")
    @work(exclusive=True)
    async def handle_login_submit(self) -> None:
        email = self.query_one("#input-login-email", Input).value.strip()
        pwd = self.query_one("#input-login-pwd", Input).value

        if not email or not pwd:
            self.notify("Email or password cannot be empty!", severity="error")
            return

        try:
            user = await self.app.state.access.login(email, pwd)
        except AuthenticationError as exc:
            self.notify(exc.message, severity="error")
            input_login_pwd = self.query_one("#input-login-pwd", Input)
            input_login_pwd.value = ""
            input_login_pwd.focus()
            input_login_pwd.add_class("-invalid")
            return
        except PosError as exc:
            self.report_error(exc)
            return

        self.notify(f"Hello {user.name}!")
        self.app.post_message(UserLoginMessage())
        self.dismiss()

    @on(Input.Submitted, "#input-reg-pwd")
    @on(Button.Pressed, "#btn-reg")
    @work(exclusive=True)
    async def handle_registration_submit(self) -> None:
        name = self.query_one("#input-reg-name", Input).value.strip()
        email = self.query_one("#input-reg-email", Input).value.strip()
        pwd = self.query_one("#input-reg-pwd", Input).value

        if not name or not email or not pwd:
            self.notify("Make sure all inputs are filled.", severity="error")
            return

        store = self.app.state.store
        # the setup tab only ever creates the very first account
        if await crud.has_users(store):
            self.notify("An administrator already exists.", severity="error")
            self.query_one(TabbedContent).hide_tab("tab-setup")
            return

        try:
            await crud.register_user(store, name, email, pwd, Role.ADMIN)
        except (ValueError, InvalidStateError) as exc:
            self.notify(str(exc), severity="error")
            return

        await self.app.push_screen_wait(
            SimpleDialogModal(f"Administrator {email} created. Log in to continue.")
        )
        tabs = self.query_one(TabbedContent)
        tabs.active = "tab-login"
        tabs.hide_tab("tab-setup")
        self.query_one("#input-login-email", Input).value = email.lower()
        self.query_one("#input-login-pwd", Input).focus()

    @on(Button.Pressed, "#btn-quit")
    def handle_quit_(self) -> None:
        self.app.push_screen(QuitDialogModal())
