from typing import Dict, List, Optional

from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.events import ScreenResume
from textual.widgets import Button, DataTable, TabbedContent, TabPane

import db.crud as crud
from db.errors import AuthorizationError, ValidationError
from db.models import Product
from utils.pure import format_price
from views.base_screen import BaseScreen, selected_row_key
from views.modal_dialog import ConfirmDeleteModal
from views.modal_record_form import FormField, RecordFormModal


class ProductsScreen(BaseScreen):
    """
    Approved catalog plus the pending-approval queue.

    Admin: add, edit, delete, approve and reject.
    Salesperson: submit new products for approval, withdraw own submissions.
    """

    ADMIN_BUTTONS = ("btn-edit", "btn-delete", "btn-approve", "btn-reject")
    SALES_BUTTONS = ("btn-withdraw",)

    def __init__(self) -> None:
        super().__init__()
        self._products: Dict[str, Product] = {}

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical():
            with TabbedContent(id="tabs-products"):
                with TabPane("Catalog", id="tab-catalog"):
                    yield DataTable(id="table-catalog")
                with TabPane("Pending Approval", id="tab-pending"):
                    yield DataTable(id="table-pending")
            with Horizontal(id="hort-product-controls"):
                yield Button("Add Product", id="btn-add", variant="primary")
                yield Button("Edit", id="btn-edit")
                yield Button("Delete", id="btn-delete", variant="error")
                yield Button("Approve", id="btn-approve", variant="success")
                yield Button("Reject", id="btn-reject", variant="warning")
                yield Button("Withdraw", id="btn-withdraw", variant="warning")

    def on_mount(self) -> None:
        for table_id in ("#table-catalog", "#table-pending"):
            table = self.query_one(table_id, DataTable)
            table.cursor_type = "row"
            table.zebra_stripes = True
        self.query_one("#table-catalog", DataTable).add_columns(
            "ID", "Name", "Price", "Created", "Image"
        )
        self.query_one("#table-pending", DataTable).add_columns(
            "ID", "Name", "Price", "Submitted By", "Created"
        )
        self.handle_reload()

    def _apply_role(self) -> None:
        is_admin = self.app.state.is_admin
        self.query_one("#btn-add", Button).label = (
            "Add Product" if is_admin else "Submit Product"
        )
        for btn_id in self.ADMIN_BUTTONS:
            self.query_one(f"#{btn_id}", Button).display = is_admin
        for btn_id in self.SALES_BUTTONS:
            self.query_one(f"#{btn_id}", Button).display = not is_admin

    @on(ScreenResume)
    @work(exclusive=True, group="products")
    async def handle_reload(self) -> None:
        if self.session is None:
            return
        self._apply_role()
        catalog = await crud.list_catalog(self.store)
        pending = await crud.list_pending_products(self.store, self.session)
        self._products = {p.id: p for p in catalog + pending}

        table = self.query_one("#table-catalog", DataTable)
        table.clear()
        for p in catalog:
            table.add_row(
                p.id,
                p.name,
                format_price(p.price),
                p.created_at.astimezone().strftime("%Y-%m-%d"),
                p.display_image,
                key=p.id,
            )

        table = self.query_one("#table-pending", DataTable)
        table.clear()
        for p in pending:
            table.add_row(
                p.id,
                p.name,
                format_price(p.price),
                p.created_by or "-",
                p.created_at.astimezone().strftime("%Y-%m-%d %H:%M"),
                key=p.id,
            )

    def _selected(self, table_id: str) -> Optional[Product]:
        key = selected_row_key(self.query_one(table_id, DataTable))
        if key is None:
            self.notify("Select a product first.", severity="warning")
            return None
        return self._products.get(key)

    def _form_fields(self, product: Optional[Product] = None) -> List[FormField]:
        return [
            FormField("name", "Name", product.name if product else "", "Product name"),
            FormField(
                "price",
                "Unit Price",
                f"{product.price:g}" if product else "",
                "0.00",
                type="number",
            ),
            FormField("image", "Image URL", product.image if product else "", "optional"),
        ]

    @on(Button.Pressed, "#btn-add")
    @work(exclusive=True)
    async def handle_add(self) -> None:
        session = self.session

        async def submit(values):
            return await crud.create_product(
                self.store, session, values["name"], values["price"], values["image"]
            )

        title = "Add Product" if session.is_admin else "Submit Product for Approval"
        product = await self.app.push_screen_wait(
            RecordFormModal(title, self._form_fields(), submit)
        )
        if product is None:
            return
        if product.is_pending_approval:
            self.notify("Product submitted, waiting for admin approval.")
        else:
            self.notify("Product added.")

    @on(Button.Pressed, "#btn-edit")
    @work(exclusive=True)
    async def handle_edit(self) -> None:
        product = self._selected("#table-catalog")
        if product is None:
            return

        async def submit(values):
            return await crud.update_product(
                self.store,
                self.session,
                product.id,
                values["name"],
                values["price"],
                values["image"],
            )

        updated = await self.app.push_screen_wait(
            RecordFormModal("Edit Product", self._form_fields(product), submit)
        )
        if updated is not None:
            self.notify("Product updated.")

    @on(Button.Pressed, "#btn-delete")
    @work(exclusive=True)
    async def handle_delete(self) -> None:
        product = self._selected("#table-catalog")
        if product is None:
            return
        if not await self.app.push_screen_wait(ConfirmDeleteModal(product.name)):
            return
        await self._delete(product)

    @on(Button.Pressed, "#btn-withdraw")
    @work(exclusive=True)
    async def handle_withdraw(self) -> None:
        product = self._selected("#table-pending")
        if product is None:
            return
        if not await self.app.push_screen_wait(ConfirmDeleteModal(product.name)):
            return
        await self._delete(product)

    async def _delete(self, product: Product) -> None:
        try:
            await crud.delete_product(self.store, self.session, product.id)
        except AuthorizationError as e:
            self.notify(str(e), severity="error")
            return
        self.notify("Product deleted.")
        self.handle_reload()

    @on(Button.Pressed, "#btn-approve")
    @work(exclusive=True)
    async def handle_approve(self) -> None:
        product = self._selected("#table-pending")
        if product is None:
            return
        try:
            await crud.approve_product(self.store, self.session, product.id)
        except AuthorizationError as e:
            self.notify(str(e), severity="error")
            return
        self.notify(f"{product.name} approved.")
        self.handle_reload()

    @on(Button.Pressed, "#btn-reject")
    @work(exclusive=True)
    async def handle_reject(self) -> None:
        product = self._selected("#table-pending")
        if product is None:
            return
        try:
            await crud.reject_product(self.store, self.session, product.id)
        except (AuthorizationError, ValidationError) as e:
            self.notify(str(e), severity="error")
            return
        self.notify(f"{product.name} rejected.")
        self.handle_reload()
