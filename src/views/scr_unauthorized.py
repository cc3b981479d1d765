from textual import on
from textual.app import ComposeResult
from textual.containers import Vertical
from textual.widgets import Button, Label

from views.base_screen import BaseScreen


class UnauthorizedScreen(BaseScreen):
    """Shown instead of any screen the current role may not open."""

    def __init__(self):
        super().__init__()
        self.configure(header_sub_title="Access denied")

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical(id="div-unauthorized"):
            yield Label("Access denied", id="label-denied-title")
            yield Label(
                "Your role does not allow this action. Ask an administrator.",
                id="label-denied-body",
            )
            yield Button("Back to the till", id="btn-back", variant="primary")

    @on(Button.Pressed, "#btn-back")
    async def handle_back(self) -> None:
        await self.app.navigate("pos")
