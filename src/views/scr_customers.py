from typing import Dict, List, Optional

from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.events import ScreenResume
from textual.widgets import Button, DataTable

import db.crud as crud
from db.models import Customer
from views.base_screen import BaseScreen, selected_row_key
from views.modal_dialog import ConfirmDeleteModal
from views.modal_record_form import FormField, RecordFormModal


class CustomersScreen(BaseScreen):
    """Customer directory used by the order form."""

    def __init__(self) -> None:
        super().__init__()
        self._customers: Dict[str, Customer] = {}

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical():
            yield DataTable(id="table-customers")
            with Horizontal(id="hort-customer-controls"):
                yield Button("Add Customer", id="btn-add", variant="primary")
                yield Button("Edit", id="btn-edit")
                yield Button("Delete", id="btn-delete", variant="error")

    def on_mount(self) -> None:
        table = self.query_one(DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        table.add_columns("Name", "Address", "Contact", "Phone", "Created")
        self.handle_reload()

    @on(ScreenResume)
    @work(exclusive=True, group="customers")
    async def handle_reload(self) -> None:
        if self.session is None:
            return
        customers = await crud.list_customers(self.store)
        self._customers = {c.id: c for c in customers}
        table = self.query_one(DataTable)
        table.clear()
        for c in customers:
            table.add_row(
                c.name,
                c.address,
                c.contact,
                c.phone,
                c.created_at.astimezone().strftime("%Y-%m-%d"),
                key=c.id,
            )

    def _selected(self) -> Optional[Customer]:
        customer = self._customers.get(selected_row_key(self.query_one(DataTable)))
        if customer is None:
            self.notify("Select a customer first.", severity="warning")
        return customer

    @staticmethod
    def _form_fields(customer: Optional[Customer] = None) -> List[FormField]:
        return [
            FormField("name", "Name", customer.name if customer else ""),
            FormField("address", "Address", customer.address if customer else ""),
            FormField("contact", "Contact Person", customer.contact if customer else ""),
            FormField("phone", "Phone", customer.phone if customer else ""),
        ]

    @on(Button.Pressed, "#btn-add")
    @work(exclusive=True)
    async def handle_add(self) -> None:
        async def submit(values):
            return await crud.create_customer(
                self.store,
                values["name"],
                values["address"],
                values["contact"],
                values["phone"],
            )

        customer = await self.app.push_screen_wait(
            RecordFormModal("Add Customer", self._form_fields(), submit)
        )
        if customer is not None:
            self.notify(f"Customer {customer.name} added.")

    @on(Button.Pressed, "#btn-edit")
    @work(exclusive=True)
    async def handle_edit(self) -> None:
        customer = self._selected()
        if customer is None:
            return

        async def submit(values):
            return await crud.update_customer(
                self.store,
                customer.id,
                values["name"],
                values["address"],
                values["contact"],
                values["phone"],
            )

        updated = await self.app.push_screen_wait(
            RecordFormModal("Edit Customer", self._form_fields(customer), submit)
        )
        if updated is not None:
            self.notify("Customer updated.")

    @on(Button.Pressed, "#btn-delete")
    @work(exclusive=True)
    async def handle_delete(self) -> None:
        customer = self._selected()
        if customer is None:
            return
        if not await self.app.push_screen_wait(ConfirmDeleteModal(customer.name)):
            return
        await crud.delete_customer(self.store, customer.id)
        self.notify("Customer deleted.")
        self.handle_reload()
