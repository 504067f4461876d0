from datetime import date
from pathlib import Path
from typing import List, Optional

from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.events import ScreenResume
from textual.widgets import (
    Button,
    DataTable,
    Input,
    MarkdownViewer,
    RadioButton,
    RadioSet,
    Select,
)

import db.crud as crud
from db.errors import AuthorizationError, ValidationError
from db.models import ORDER_STATUSES, STATUS_LABELS, Order
from utils import config
from utils.logger import get_logger
from utils.pure import format_price, generate_markdown_table
from views.base_screen import BaseScreen, selected_row_key
from views.modal_dialog import PasswordPromptModal
from views.modal_order_form import OrderFormModal
from views.modal_record_form import FormField, RecordFormModal

_logger = get_logger(__name__)


class OrdersScreen(BaseScreen):
    """
    Order list with search and a detail pane.

    Salespersons see and create their own orders. Admins see everything and
    can change status, delete (password confirmed) and export to CSV.
    """

    ADMIN_WIDGETS = ("#select-status", "#btn-set-status", "#btn-delete", "#btn-export")

    def __init__(self) -> None:
        super().__init__()
        self._orders: List[Order] = []

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical():
            with Horizontal(id="hort-order-search"):
                with RadioSet(id="radio-search-type"):
                    yield RadioButton(
                        "Salesperson", value=True, id="radio-search-salesperson"
                    )
                    yield RadioButton("Customer", id="radio-search-customer")
                yield Input(placeholder="Search orders...", id="input-search")
            yield DataTable(id="table-orders")
            yield MarkdownViewer(id="md-order-detail", show_table_of_contents=False)
            with Horizontal(id="hort-order-controls"):
                yield Button("New Order", id="btn-new", variant="primary")
                yield Button("Edit", id="btn-edit")
                yield Select(
                    [(STATUS_LABELS[s], s) for s in ORDER_STATUSES],
                    prompt="Status",
                    id="select-status",
                )
                yield Button("Set Status", id="btn-set-status", variant="success")
                yield Button("Delete", id="btn-delete", variant="error")
                yield Button("Export CSV", id="btn-export")

    def on_mount(self) -> None:
        table = self.query_one(DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        table.add_columns(
            "Order No", "Customer", "Total", "Delivery", "Status", "Salesperson", "Created"
        )
        self.handle_reload()

    def _search_type(self) -> str:
        pressed = self.query_one("#radio-search-type", RadioSet).pressed_button
        if pressed is not None and pressed.id == "radio-search-customer":
            return "customer"
        return "salesperson"

    @on(ScreenResume)
    @work(exclusive=True, group="orders")
    async def handle_reload(self) -> None:
        if self.session is None:
            return
        is_admin = self.app.state.is_admin
        for selector in self.ADMIN_WIDGETS:
            self.query_one(selector).display = is_admin
        self._orders = await crud.list_orders(self.store, self.session)
        self._fill_table()

    @on(Input.Changed, "#input-search")
    @on(RadioSet.Changed, "#radio-search-type")
    def handle_search(self) -> None:
        self._fill_table()

    def _fill_table(self) -> None:
        search = self.query_one("#input-search", Input).value
        shown = crud.filter_orders(self._orders, self._search_type(), search)
        table = self.query_one(DataTable)
        table.clear()
        for o in shown:
            table.add_row(
                o.id,
                o.customer_name,
                format_price(o.total_amount),
                o.delivery_date.isoformat() if o.delivery_date else "-",
                STATUS_LABELS.get(o.status, o.status),
                o.created_by,
                o.created_at.astimezone().strftime("%Y-%m-%d %H:%M"),
                key=o.id,
            )
        if shown:
            table.cursor_coordinate = (0, 0)
            self._render_detail(shown[0])
        else:
            self._render_detail(None)

    @on(DataTable.RowHighlighted, "#table-orders")
    def handle_row_highlight(self, event: DataTable.RowHighlighted) -> None:
        self._render_detail(self._order_by_id(event.row_key.value))

    def _order_by_id(self, order_id: Optional[str]) -> Optional[Order]:
        return next((o for o in self._orders if o.id == order_id), None)

    def _selected(self) -> Optional[Order]:
        order = self._order_by_id(selected_row_key(self.query_one(DataTable)))
        if order is None:
            self.notify("Select an order first.", severity="warning")
        return order

    def _render_detail(self, order: Optional[Order]) -> None:
        viewer = self.query_one("#md-order-detail", MarkdownViewer)
        if order is None:
            viewer.document.update("### Select an order to view its details.")
            return
        if self.app.state.is_admin:
            self.query_one("#select-status", Select).value = order.status

        header = (
            f"### Order #{order.id}\n"
            f"Customer: {order.customer_name}  \n"
            f"Ship To: {order.customer_address}  \n"
            f"Delivery: {order.delivery_date}  \n"
            f"Status: {STATUS_LABELS.get(order.status, order.status)}  \n"
            f"Salesperson: {order.created_by}  \n"
            f"Last Updated: {order.updated_at.astimezone():%Y-%m-%d %H:%M:%S}\n\n"
        )
        rows = []
        for item in order.products:
            price = format_price(item.unit_price)
            if item.original_price is not None:
                price += f" (list {format_price(item.original_price)})"
            rows.append(
                [item.product_name, item.quantity, price, format_price(item.line_total)]
            )
        table = generate_markdown_table(
            ["Product", "Qty", "Unit Price", "Line Total"], rows, ["l", "r", "r", "r"]
        )
        footer = f"\n\n**Total:** {format_price(order.total_amount)}"
        viewer.document.update(header + table + footer)

    @on(Button.Pressed, "#btn-new")
    @work(exclusive=True)
    async def handle_new(self) -> None:
        order = await self.app.push_screen_wait(OrderFormModal())
        if order is None:
            return
        if self.app.state.is_admin:
            self.notify(f"Order {order.id} created.")
        else:
            self.notify(f"Order {order.id} created, waiting for admin review.")

    @on(Button.Pressed, "#btn-edit")
    @work(exclusive=True)
    async def handle_edit(self) -> None:
        order = self._selected()
        if order is None:
            return

        async def submit(values):
            return await crud.update_order(
                self.store,
                self.session,
                order.id,
                customer_name=values["customer_name"],
                customer_address=values["customer_address"],
                delivery_date=values["delivery_date"].strip(),
            )

        fields = [
            FormField("customer_name", "Customer Name", order.customer_name),
            FormField("customer_address", "Delivery Address", order.customer_address),
            FormField(
                "delivery_date",
                "Delivery Date",
                order.delivery_date.isoformat() if order.delivery_date else "",
                "YYYY-MM-DD",
            ),
        ]
        updated = await self.app.push_screen_wait(
            RecordFormModal(f"Edit Order #{order.id}", fields, submit)
        )
        if updated is not None:
            self.notify("Order updated.")

    @on(Button.Pressed, "#btn-set-status")
    @work(exclusive=True)
    async def handle_set_status(self) -> None:
        order = self._selected()
        if order is None:
            return
        status = self.query_one("#select-status", Select).value
        if not isinstance(status, str) or status == order.status:
            return
        try:
            await crud.update_order_status(self.store, self.session, order.id, status)
        except (AuthorizationError, ValidationError) as e:
            self.notify(str(e), severity="error")
            return
        self.notify("Order status updated.")
        self.handle_reload()

    @on(Button.Pressed, "#btn-delete")
    @work(exclusive=True)
    async def handle_delete(self) -> None:
        order = self._selected()
        if order is None:
            return
        password = await self.app.push_screen_wait(
            PasswordPromptModal(f"Enter the password to delete order #{order.id}")
        )
        if password is None:
            return
        try:
            await crud.delete_order(self.store, self.session, order.id, password)
        except AuthorizationError as e:
            self.notify(str(e), severity="error")
            return
        self.notify("Order deleted.")
        self.handle_reload()

    @on(Button.Pressed, "#btn-export")
    @work(exclusive=True)
    async def handle_export(self) -> None:
        csv_text = await crud.export_orders_csv(self.store, self.session)
        export_dir = Path(config.EXPORT_DIR)
        path = export_dir / f"订单数据_{date.today().isoformat()}.csv"
        try:
            export_dir.mkdir(parents=True, exist_ok=True)
            path.write_text(csv_text, encoding="utf-8")
        except OSError as e:
            _logger.error(f"Export to {path} failed: {e}")
            self.notify("Exporting orders failed.", severity="error")
            return
        self.notify(f"Orders exported to {path}")
