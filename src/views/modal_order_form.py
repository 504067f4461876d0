from typing import Dict, Optional

from textual import events, on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.validation import Number
from textual.widgets import Button, DataTable, Input, Label, Select

import db.crud as crud
from db.errors import ValidationError
from db.models import Customer, Order, OrderItemDraft, Product
from utils.pure import format_price
from views.base_screen import selected_row_key


class OrderFormModal(ModalScreen[Optional[Order]]):
    """
    New order form: customer, delivery address, line items with optional
    price override, delivery date.
    Returns the created Order, or None when cancelled.
    """

    def __init__(self) -> None:
        super().__init__()
        self._customers: Dict[str, Customer] = {}
        self._catalog: Dict[str, Product] = {}
        self._drafts: Dict[str, OrderItemDraft] = {}

    def compose(self) -> ComposeResult:
        with Vertical(id="div-order-form"):
            yield Label("New Order", id="label-form-title")
            yield Label("Customer")
            yield Select([], prompt="Select a customer", id="select-customer")
            yield Label("Delivery Address")
            yield Input(
                placeholder="defaults to the customer's address", id="input-address"
            )
            yield Label("Add Product")
            with Horizontal(id="hort-add-item"):
                yield Select([], prompt="Select a product", id="select-product")
                yield Input(
                    "1",
                    type="integer",
                    id="input-qty",
                    validators=[Number(minimum=1)],
                )
                yield Input(
                    placeholder="unit price",
                    type="number",
                    id="input-unit-price",
                    validators=[Number(minimum=0.0)],
                )
                yield Button("Add", id="btn-add-item")
            yield DataTable(id="table-items")
            with Horizontal(id="hort-items-footer"):
                yield Button("Remove Item", id="btn-remove-item")
                yield Label(f"Subtotal: {format_price(0)}", id="label-subtotal")
            yield Label("Delivery Date")
            yield Input(placeholder="YYYY-MM-DD", id="input-delivery")
            with Horizontal(id="div-form-btns"):
                yield Button("Cancel", id="btn-cancel")
                yield Button("Create Order", id="btn-submit", variant="primary")

    async def on_mount(self) -> None:
        table = self.query_one("#table-items", DataTable)
        table.cursor_type = "row"
        table.add_columns("Product", "Qty", "Unit Price", "Line Total")

        store = self.app.state.store
        self._customers = {c.id: c for c in await crud.list_customers(store)}
        self._catalog = {p.id: p for p in await crud.list_catalog(store)}
        self.query_one("#select-customer", Select).set_options(
            [(c.name, c.id) for c in self._customers.values()]
        )
        self.query_one("#select-product", Select).set_options(
            [(f"{p.name} ({format_price(p.price)})", p.id) for p in self._catalog.values()]
        )
        if not self._customers:
            self.notify("Add a customer before creating orders.", severity="warning")

    def on_key(self, event: events.Key) -> None:
        if event.key == "escape":
            self.dismiss(None)

    @on(Select.Changed, "#select-customer")
    def handle_customer_changed(self, event: Select.Changed) -> None:
        # prefill the address but leave anything already typed alone
        address_input = self.query_one("#input-address", Input)
        customer = self._customers.get(event.value) if isinstance(event.value, str) else None
        if customer and not address_input.value:
            address_input.value = customer.address

    @on(Select.Changed, "#select-product")
    def handle_product_changed(self, event: Select.Changed) -> None:
        product = self._catalog.get(event.value) if isinstance(event.value, str) else None
        if product:
            self.query_one("#input-unit-price", Input).value = f"{product.price:g}"

    @on(Button.Pressed, "#btn-add-item")
    def handle_add_item(self) -> None:
        product_id = self.query_one("#select-product", Select).value
        if not isinstance(product_id, str):
            self.notify("Select a product first.", severity="warning")
            return
        if product_id in self._drafts:
            self.notify("That product is already on the order.", severity="warning")
            return

        qty_text = self.query_one("#input-qty", Input).value.strip()
        price_text = self.query_one("#input-unit-price", Input).value.strip()
        try:
            qty = int(qty_text or "1")
            price = float(price_text) if price_text else None
        except ValueError:
            self.notify("Quantity and price must be numbers.", severity="error")
            return
        if qty < 1 or (price is not None and price < 0):
            self.notify("Quantity must be at least 1 and price not negative.", severity="error")
            return

        self._drafts[product_id] = OrderItemDraft(product_id, qty, price)
        self.query_one("#input-qty", Input).value = "1"
        self._refresh_items()

    @on(Button.Pressed, "#btn-remove-item")
    def handle_remove_item(self) -> None:
        key = selected_row_key(self.query_one("#table-items", DataTable))
        if key is not None:
            self._drafts.pop(key, None)
            self._refresh_items()

    def _refresh_items(self) -> None:
        table = self.query_one("#table-items", DataTable)
        table.clear()
        subtotal = 0.0
        for draft in self._drafts.values():
            product = self._catalog[draft.product_id]
            price = draft.unit_price or product.price
            line_total = draft.quantity * price
            subtotal += line_total
            table.add_row(
                product.name,
                draft.quantity,
                format_price(price),
                format_price(line_total),
                key=draft.product_id,
            )
        self.query_one("#label-subtotal", Label).update(
            f"Subtotal: {format_price(subtotal)}"
        )

    @on(Button.Pressed, "#btn-cancel")
    def handle_cancel(self) -> None:
        self.dismiss(None)

    @on(Button.Pressed, "#btn-submit")
    @work(exclusive=True)
    async def handle_submit(self) -> None:
        customer_id = self.query_one("#select-customer", Select).value
        try:
            order = await crud.create_order(
                self.app.state.store,
                self.app.state.session,
                customer_id if isinstance(customer_id, str) else "",
                list(self._drafts.values()),
                self.query_one("#input-delivery", Input).value.strip(),
                self.query_one("#input-address", Input).value,
            )
        except ValidationError as e:
            self.notify(str(e), severity="error")
            return
        self.dismiss(order)
