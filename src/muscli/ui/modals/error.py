"""Modal for startup notices that need acknowledgement."""

from __future__ import annotations

from textual.app import ComposeResult
from textual.containers import Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, Label, Static


class ErrorModal(ModalScreen[None]):
    """Show a headline and a multi-line "what / cause / next step" message."""

    BINDINGS = [
        ("escape", "close", "Close"),
        ("enter", "close", "Close"),
    ]

    def __init__(self, message: str, *, heading: str = "Notice") -> None:
        super().__init__()
        self.heading = heading
        self.message = message

    def compose(self) -> ComposeResult:
        yield Vertical(
            Label(self.heading, id="modal-heading"),
            Static(self.message, id="modal-message"),
            Button("OK", id="ok", variant="primary"),
            id="modal-body",
        )

    def on_mount(self) -> None:
        self.query_one("#ok", Button).focus()

    def on_button_pressed(self, event: Button.Pressed) -> None:
        event.stop()
        self.action_close()

    def action_close(self) -> None:
        self.dismiss(None)
