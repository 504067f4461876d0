from textual import on, work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.widgets import LoadingIndicator

from utils.logger import get_logger
from utils.messages import ModeSwitchedMessage, QuitRequestedMessage, UserLogoutMessage
from utils.state import GlobalState, build_store
from views.scr_customers import CustomersScreen
from views.scr_login import LoginScreen
from views.scr_orders import OrdersScreen
from views.scr_products import ProductsScreen
from views.scr_salespersons import SalespersonsScreen

_logger = get_logger(__name__)


class OrderMgrApp(App):
    BINDINGS = [
        Binding("ctrl+t", "switch_light", "Toggle Theme", show=True),
    ]

    MODES = {
        "orders": OrdersScreen,
        "products": ProductsScreen,
        "customers": CustomersScreen,
        "salespersons": SalespersonsScreen,
    }

    ADMIN_MODES = {
        "orders": "Orders",
        "products": "Products",
        "customers": "Customers",
        "salespersons": "Salespersons",
    }
    SALES_MODES = {
        "orders": "My Orders",
        "products": "Products",
        "customers": "Customers",
    }

    CSS_PATH = "styles/app.tcss"

    state: GlobalState

    def __init__(self):
        super().__init__()
        self.state = GlobalState(
            store=build_store(notify=lambda msg: self.notify(msg, severity="warning"))
        )

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

    @on(ModeSwitchedMessage)
    def handle_mode_switched(self, event: ModeSwitchedMessage) -> None:
        _logger.debug(f"mode {event.old_mode} -> {event.new_mode}")

    @on(UserLogoutMessage)
    @work
    async def handle_user_logout(self):
        await self.state.end_session()
        self.notify("Logout successful.")
        self.main_flow()

    @on(QuitRequestedMessage)
    @work
    async def handle_quit(self):
        # the session is kept so the next start resumes it
        self.exit()

    @work
    async def main_flow(self):
        session = self.state.session or await self.state.resume_session()
        if session is None:
            await self.push_screen_wait(LoginScreen())
        else:
            self.notify(f"Welcome back, {session.name}!")

        target = "orders"
        self.post_message(ModeSwitchedMessage(self.current_mode, target))
        await self.switch_mode(target)


def run():
    app = OrderMgrApp()
    app.run()


if __name__ == "__main__":
    run()
