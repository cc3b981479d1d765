from typing import Dict, Literal, Optional, Tuple, override

from textual import events, on
from textual.app import ComposeResult
from textual.containers import Container, Horizontal
from textual.screen import ModalScreen
from textual.widgets import Button, Input, Label

from utils.messages import QuitRequestedMessage

Tone = Literal["default", "positive", "warning", "error"]
ButtonVariant = Literal["primary", "default", "success", "warning", "error"]

# (primary, secondary) button variants per tone
TONE_VARIANTS: Dict[str, Tuple[ButtonVariant, ButtonVariant]] = {
    "default": ("primary", "default"),
    "positive": ("success", "default"),
    "warning": ("warning", "default"),
    "error": ("error", "primary"),
}


class DialogModal(ModalScreen[bool]):
    """
    Confirmation prompt used before anything that moves money or deletes data.
    Dismisses with True for the primary button, False for the secondary one
    or escape. `detail` is an optional second line (an amount, a consequence).
    """

    def __init__(
        self,
        caption: str,
        primary_text: str = "OK",
        secondary_text: str = "",
        tone: Tone = "default",
        detail: str = "",
    ):
        super().__init__()
        self.caption = caption
        self.detail = detail
        self.primary_text = primary_text
        self.secondary_text = secondary_text
        self.tone = tone

    def compose(self) -> ComposeResult:
        primary, secondary = TONE_VARIANTS[self.tone]
        with Container(id="div-dialog"):
            yield Label(self.caption, id="caption")
            if self.detail:
                yield Label(self.detail, id="detail")
            with Horizontal(id="dialog"):
                if self.secondary_text:
                    yield Button(self.secondary_text, variant=secondary, id="btn-secondary")
                yield Button(self.primary_text, variant=primary, id="btn-primary")

    def on_mount(self):
        # destructive prompts focus the safe answer
        if self.secondary_text and self.tone == "error":
            self.query_one("#btn-secondary").focus()
        else:
            self.query_one("#btn-primary").focus()

    def on_key(self, event: events.Key) -> None:
        if event.key == "escape":
            self.dismiss(False)

    def on_button_pressed(self, event: Button.Pressed) -> None:
        self.dismiss(event.button.id == "btn-primary")


class SimpleDialogModal(DialogModal):
    """A notice with a single OK button."""

    def __init__(self, caption: str, detail: str = ""):
        super().__init__(caption, detail=detail)


class QuitDialogModal(DialogModal):
    def __init__(self, open_lines: int = 0):
        super().__init__(
            "Are you sure you want to quit?",
            "Yes",
            "No",
            "error",
            detail=f"The open sale ({open_lines} line(s)) will be discarded." if open_lines else "",
        )

    @override
    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "btn-primary":
            self.post_message(QuitRequestedMessage())
            self.dismiss(True)
        else:
            self.dismiss(False)


class InputDialogModal(ModalScreen[Optional[str]]):
    """
    Asks for one line of text (a void reason, a discount, a customer name).
    Dismisses with the stripped text, or None when cancelled.
    """

    def __init__(
        self,
        caption: str,
        placeholder: str = "",
        primary_text: str = "OK",
        required: bool = False,
        tone: Tone = "default",
    ):
        super().__init__()
        self.caption = caption
        self.placeholder = placeholder
        self.primary_text = primary_text
        self.required = required
        self.tone = tone

    def compose(self) -> ComposeResult:
        primary, secondary = TONE_VARIANTS[self.tone]
        with Container(id="div-dialog"):
            yield Label(self.caption, id="caption")
            yield Input(placeholder=self.placeholder, id="input-dialog")
            with Horizontal(id="dialog"):
                yield Button("Cancel", variant=secondary, id="btn-secondary")
                yield Button(self.primary_text, variant=primary, id="btn-primary")

    def on_mount(self):
        self.query_one("#input-dialog").focus()

    def on_key(self, event: events.Key) -> None:
        if event.key == "escape":
            self.dismiss(None)

    @on(Input.Submitted, "#input-dialog")
    @on(Button.Pressed, "#btn-primary")
    def handle_submit(self) -> None:
        field = self.query_one("#input-dialog", Input)
        value = field.value.strip()
        if self.required and not value:
            field.add_class("-invalid")
            field.focus()
            self.notify("This field is required.", severity="error")
            return
        self.dismiss(value)

    @on(Button.Pressed, "#btn-secondary")
    def handle_cancel(self) -> None:
        self.dismiss(None)
