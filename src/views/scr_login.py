from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.events import Key
from textual.widgets import Button, Input, Label, RadioButton, RadioSet

from db.errors import ValidationError
from views.base_screen import BaseScreen
from views.modal_dialog import QuitDialogModal


class LoginScreen(BaseScreen):
    """
    Role + username + password. Dismissed once a session is established.
    """

    def __init__(self):
        super().__init__()
        self.configure(header_sub_title="Login", show_sidebar=False)

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical(id="div-login"):
            yield Label("Role")
            with RadioSet(id="radio-role"):
                yield RadioButton("Salesperson", value=True, id="radio-salesperson")
                yield RadioButton("Admin", id="radio-admin")
            yield Label("Username")
            yield Input(placeholder="username", id="input-login-username")
            yield Label("Password")
            yield Input(placeholder="*********", password=True, id="input-login-pwd")
            with Horizontal(id="div-login-btns"):
                yield Button("Quit", id="btn-quit")
                yield Button("Login", id="btn-login", variant="primary")

    def on_mount(self):
        self.query_one("#input-login-username").focus()

    def on_key(self, event: Key) -> None:
        if event.key == "enter" and self.focused == self.query_one("#input-login-pwd"):
            self.handle_login_submit()

    def _selected_role(self) -> str:
        pressed = self.query_one("#radio-role", RadioSet).pressed_button
        if pressed is not None and pressed.id == "radio-admin":
            return "admin"
        return "salesperson"

    @on(Button.Pressed, "#btn-login")
    @work(exclusive=True)
    async def handle_login_submit(self) -> None:
        role = self._selected_role()
        username = self.query_one("#input-login-username", Input).value.strip()
        pwd = self.query_one("#input-login-pwd", Input).value

        try:
            session = await self.app.state.start_session(role, username, pwd)
        except ValidationError as e:
            self.notify(str(e), severity="error")
            return

        if session:
            greeting = "Admin" if session.is_admin else "Salesperson"
            self.notify(f"Welcome, {greeting} {session.name}!")
            self.dismiss()
        else:
            self.notify("Invalid username or password.", severity="error")
            input_login_pwd = self.query_one("#input-login-pwd", Input)
            input_login_pwd.value = ""
            input_login_pwd.focus()
            input_login_pwd.add_class("-invalid")

    @on(Button.Pressed, "#btn-quit")
    def handle_quit_(self) -> None:
        self.app.push_screen(QuitDialogModal())
