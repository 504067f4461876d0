from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Literal

from textual import events, on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, Input, Label

from db.errors import AuthorizationError, ValidationError


@dataclass(frozen=True)
class FormField:
    key: str
    label: str
    value: str = ""
    placeholder: str = ""
    password: bool = False
    type: Literal["text", "number", "integer"] = "text"


class RecordFormModal(ModalScreen[Any]):
    """
    Create/edit form for a single record.

    ``submit`` receives the raw input values keyed by field and performs the
    write. Validation errors keep the form open; on success the modal returns
    whatever ``submit`` returned. Escape/Cancel returns None.
    """

    def __init__(
        self,
        title: str,
        fields: List[FormField],
        submit: Callable[[Dict[str, str]], Awaitable[Any]],
        submit_text: str = "Save",
    ) -> None:
        super().__init__()
        self._title = title
        self._fields = fields
        self._submit = submit
        self._submit_text = submit_text

    def compose(self) -> ComposeResult:
        with Vertical(id="div-form"):
            yield Label(self._title, id="label-form-title")
            for f in self._fields:
                yield Label(f.label)
                yield Input(
                    value=f.value,
                    placeholder=f.placeholder,
                    password=f.password,
                    type=f.type,
                    id=f"input-{f.key}",
                )
            with Horizontal(id="div-form-btns"):
                yield Button("Cancel", id="btn-cancel")
                yield Button(self._submit_text, id="btn-submit", variant="primary")

    def on_mount(self) -> None:
        if self._fields:
            self.query_one(f"#input-{self._fields[0].key}", Input).focus()

    def on_key(self, event: events.Key) -> None:
        if event.key == "escape":
            self.dismiss(None)

    @on(Button.Pressed, "#btn-cancel")
    def handle_cancel(self) -> None:
        self.dismiss(None)

    @on(Button.Pressed, "#btn-submit")
    @work(exclusive=True)
    async def handle_submit(self) -> None:
        values = {
            f.key: self.query_one(f"#input-{f.key}", Input).value for f in self._fields
        }
        try:
            result = await self._submit(values)
        except (ValidationError, AuthorizationError) as e:
            self.notify(str(e), severity="error")
            return
        self.dismiss(result)
