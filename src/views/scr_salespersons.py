from typing import Dict, List, Optional

from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.events import ScreenResume
from textual.widgets import Button, DataTable

import db.crud as crud
from db.errors import AuthorizationError
from db.models import Salesperson
from views.base_screen import BaseScreen, selected_row_key
from views.modal_dialog import ConfirmDeleteModal
from views.modal_record_form import FormField, RecordFormModal


class SalespersonsScreen(BaseScreen):
    """
    Admin-only account management for salespersons.
    These records are what the local login checks salesperson credentials against.
    """

    def __init__(self) -> None:
        super().__init__()
        self._salespersons: Dict[str, Salesperson] = {}

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical():
            yield DataTable(id="table-salespersons")
            with Horizontal(id="hort-salesperson-controls"):
                yield Button("Add Salesperson", id="btn-add", variant="primary")
                yield Button("Edit", id="btn-edit")
                yield Button("Delete", id="btn-delete", variant="error")

    def on_mount(self) -> None:
        table = self.query_one(DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        table.add_columns("Name", "Username", "Phone", "Created")
        self.handle_reload()

    @on(ScreenResume)
    @work(exclusive=True, group="salespersons")
    async def handle_reload(self) -> None:
        if self.session is None:
            return
        table = self.query_one(DataTable)
        table.clear()
        try:
            salespersons = await crud.list_salespersons(self.store, self.session)
        except AuthorizationError as e:
            self.notify(str(e), severity="error")
            return
        self._salespersons = {s.id: s for s in salespersons}
        for s in salespersons:
            table.add_row(
                s.name,
                s.username,
                s.phone,
                s.created_at.astimezone().strftime("%Y-%m-%d"),
                key=s.id,
            )

    def _selected(self) -> Optional[Salesperson]:
        salesperson = self._salespersons.get(
            selected_row_key(self.query_one(DataTable))
        )
        if salesperson is None:
            self.notify("Select a salesperson first.", severity="warning")
        return salesperson

    @staticmethod
    def _form_fields(salesperson: Optional[Salesperson] = None) -> List[FormField]:
        return [
            FormField("name", "Name", salesperson.name if salesperson else ""),
            FormField("username", "Username", salesperson.username if salesperson else ""),
            FormField(
                "password",
                "Password",
                placeholder="leave blank to keep" if salesperson else "",
                password=True,
            ),
            FormField("phone", "Phone", salesperson.phone if salesperson else ""),
        ]

    @on(Button.Pressed, "#btn-add")
    @work(exclusive=True)
    async def handle_add(self) -> None:
        async def submit(values):
            return await crud.create_salesperson(
                self.store,
                self.session,
                values["name"],
                values["username"],
                values["password"],
                values["phone"],
            )

        salesperson = await self.app.push_screen_wait(
            RecordFormModal("Add Salesperson", self._form_fields(), submit)
        )
        if salesperson is not None:
            self.notify(f"Salesperson {salesperson.username} added.")

    @on(Button.Pressed, "#btn-edit")
    @work(exclusive=True)
    async def handle_edit(self) -> None:
        salesperson = self._selected()
        if salesperson is None:
            return

        async def submit(values):
            return await crud.update_salesperson(
                self.store,
                self.session,
                salesperson.id,
                values["name"],
                values["username"],
                values["password"],
                values["phone"],
            )

        updated = await self.app.push_screen_wait(
            RecordFormModal("Edit Salesperson", self._form_fields(salesperson), submit)
        )
        if updated is not None:
            self.notify("Salesperson updated.")

    @on(Button.Pressed, "#btn-delete")
    @work(exclusive=True)
    async def handle_delete(self) -> None:
        salesperson = self._selected()
        if salesperson is None:
            return
        if not await self.app.push_screen_wait(ConfirmDeleteModal(salesperson.username)):
            return
        try:
            await crud.delete_salesperson(self.store, self.session, salesperson.id)
        except AuthorizationError as e:
            self.notify(str(e), severity="error")
            return
        self.notify("Salesperson deleted.")
        self.handle_reload()
