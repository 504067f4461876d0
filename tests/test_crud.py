import json
import os
import sqlite3
import sys
import tempfile
import unittest
from datetime import date, datetime, timedelta, timezone
from unittest import mock

# Ensure project src/ is on sys.path for imports
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
src_path = os.path.join(ROOT, "src")
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from db import crud  # noqa: E402
from db import database as db_database  # noqa: E402
from db.errors import AuthorizationError, ValidationError  # noqa: E402
from db.models import OrderItemDraft, Session  # noqa: E402
from db.storage import PersistenceAdapter  # noqa: E402
from utils import config  # noqa: E402

T0 = datetime(2025, 11, 1, 12, 0, tzinfo=timezone.utc)


class CrudTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        # Point the DB to a temporary file and force re-initialization
        self.temp_dir = tempfile.TemporaryDirectory()
        self.db_path = os.path.join(self.temp_dir.name, "test.sqlite")
        db_database.DB_PATH = self.db_path
        db_database._initialized = False

        patcher = mock.patch.multiple(
            config,
            ADMIN_USERNAME="admin",
            ADMIN_PASSWORD="password",
            DELETE_PASSWORD="password",
        )
        patcher.start()
        self.addCleanup(patcher.stop)

        self.store = PersistenceAdapter()
        self.admin = Session(id="user_1", role="admin", username="admin", name="admin")
        self.alice = Session(
            id="user_2", role="salesperson", username="alice", name="Alice"
        )
        self.bob = Session(id="user_3", role="salesperson", username="bob", name="Bob")

    async def asyncSetUp(self):
        # Touch initialization by opening a connection
        async with db_database.connect() as conn:
            cur = await conn.execute(
                "SELECT name FROM sqlite_master WHERE type='table';"
            )
            await cur.fetchall()
            await cur.close()

    def tearDown(self):
        self.temp_dir.cleanup()

    async def _seed_catalog(self):
        """Customer Acme plus approved products A (10) and B (5)."""
        customer = await crud.create_customer(
            self.store, "Acme", "1 Main St", "Wile", "555-0100", when=T0
        )
        a = await crud.create_product(self.store, self.admin, "A", 10, when=T0)
        b = await crud.create_product(self.store, self.admin, "B", "5", when=T0)
        return customer, a, b

    # ---------- Store initialization ----------

    async def test_store_initialized_with_schema_version(self):
        self.assertEqual(await db_database.schema_version(), db_database.SCHEMA_VERSION)
        self.assertEqual(await self.store.load("products"), [])
        with self.assertRaises(ValueError):
            await self.store.load("users")

    async def test_connection_closed_when_initialization_fails(self):
        db_database.DB_PATH = os.path.join(self.temp_dir.name, "fresh.sqlite")
        db_database._initialized = False
        opened, closed = [], []
        real_connect = db_database.aiosqlite.connect

        async def connect_spy(*args, **kwargs):
            conn = await real_connect(*args, **kwargs)
            real_close = conn.close

            async def close_spy():
                closed.append(conn)
                await real_close()

            conn.close = close_spy
            opened.append(conn)
            return conn

        failing_init = mock.AsyncMock(side_effect=sqlite3.OperationalError("disk I/O error"))
        with mock.patch.object(db_database.aiosqlite, "connect", connect_spy), \
                mock.patch.object(db_database, "_init_db", failing_init):
            with self.assertRaises(sqlite3.OperationalError):
                await db_database.read_key("products")

        self.assertEqual(len(opened), 1)
        self.assertEqual(closed, opened)
        self.assertFalse(db_database._initialized)

    # ---------- Auth ----------

    async def test_admin_login_logout_and_restore(self):
        session = await crud.login(self.store, "admin", "admin", "password", when=T0)
        self.assertIsNotNone(session)
        self.assertTrue(session.is_admin)
        self.assertEqual(session.username, "admin")
        self.assertEqual(session.id, f"user_{int(T0.timestamp() * 1000)}")

        restored = await crud.restore_session(self.store)
        self.assertEqual(restored, session)

        await crud.logout(self.store)
        self.assertIsNone(await crud.restore_session(self.store))

    async def test_login_rejections(self):
        self.assertIsNone(await crud.login(self.store, "admin", "admin", "wrong"))
        self.assertIsNone(await crud.restore_session(self.store))
        with self.assertRaises(ValidationError):
            await crud.login(self.store, "admin", "  ", "password")
        with self.assertRaises(ValidationError):
            await crud.login(self.store, "admin", "admin", "")
        with self.assertRaises(ValidationError):
            await crud.login(self.store, "customer", "admin", "password")
        # no salesperson accounts yet
        self.assertIsNone(await crud.login(self.store, "salesperson", "alice", "pw"))

    async def test_salesperson_login_uses_accounts(self):
        await crud.create_salesperson(
            self.store, self.admin, "Alice Smith", "alice", "pw", when=T0
        )
        session = await crud.login(self.store, "salesperson", "alice", "pw")
        self.assertIsNotNone(session)
        self.assertFalse(session.is_admin)
        self.assertEqual(session.name, "Alice Smith")
        self.assertIsNone(await crud.login(self.store, "salesperson", "alice", "nope"))
        # salesperson credentials do not open the admin role
        self.assertIsNone(await crud.login(self.store, "admin", "alice", "pw"))

    async def test_restore_ignores_garbage_session(self):
        await db_database.write_key("auth", "{not json")
        self.assertIsNone(await crud.restore_session(self.store))
        await db_database.write_key("auth", json.dumps({"role": "root", "username": "x"}))
        self.assertIsNone(await crud.restore_session(self.store))

    # ---------- Products ----------

    async def test_salesperson_submission_needs_approval(self):
        widget = await crud.create_product(
            self.store, self.alice, "Widget", 10, when=T0
        )
        self.assertTrue(widget.is_pending_approval)
        self.assertEqual(widget.created_by, "alice")
        self.assertEqual(await crud.list_catalog(self.store), [])
        self.assertEqual(
            [p.id for p in await crud.list_pending_products(self.store, self.alice)],
            [widget.id],
        )
        self.assertEqual(await crud.list_pending_products(self.store, self.bob), [])
        self.assertEqual(
            len(await crud.list_pending_products(self.store, self.admin)), 1
        )

        with self.assertRaises(AuthorizationError):
            await crud.approve_product(self.store, self.alice, widget.id)

        approved = await crud.approve_product(self.store, self.admin, widget.id)
        self.assertFalse(approved.is_pending_approval)
        self.assertEqual([p.name for p in await crud.list_catalog(self.store)], ["Widget"])
        raw = await self.store.load_local("products")
        self.assertNotIn("isPendingApproval", raw[0])

    async def test_admin_product_goes_straight_to_catalog(self):
        p = await crud.create_product(self.store, self.admin, "Gadget", "12.5", when=T0)
        self.assertFalse(p.is_pending_approval)
        self.assertEqual(p.price, 12.5)
        self.assertEqual(p.created_at, T0)
        self.assertEqual([x.id for x in await crud.list_catalog(self.store)], [p.id])

    async def test_product_validation(self):
        with self.assertRaises(ValidationError):
            await crud.create_product(self.store, self.admin, "", 10)
        with self.assertRaises(ValidationError):
            await crud.create_product(self.store, self.admin, "Free", 0)
        with self.assertRaises(ValidationError):
            await crud.create_product(self.store, self.admin, "Odd", "abc")
        for value in ("nan", float("nan"), "inf", "-inf", "1e400"):
            with self.assertRaises(ValidationError):
                await crud.create_product(self.store, self.admin, "Huge", value)
        self.assertEqual(await crud.list_products(self.store), [])

        p = await crud.create_product(self.store, self.admin, "Fine", 2, when=T0)
        with self.assertRaises(ValidationError):
            await crud.update_product(self.store, self.admin, p.id, "Fine", "inf")
        self.assertEqual((await crud.get_product(self.store, p.id)).price, 2.0)

    async def test_ids_unique_within_same_millisecond(self):
        p1 = await crud.create_product(self.store, self.admin, "One", 1, when=T0)
        p2 = await crud.create_product(self.store, self.admin, "Two", 2, when=T0)
        self.assertNotEqual(p1.id, p2.id)
        self.assertEqual(int(p2.id), int(p1.id) + 1)

    async def test_update_product(self):
        p = await crud.create_product(self.store, self.admin, "Old", 3, when=T0)
        t1 = T0 + timedelta(hours=1)
        updated = await crud.update_product(
            self.store, self.admin, p.id, "New", 4, "http://img", when=t1
        )
        self.assertEqual(updated.name, "New")
        self.assertEqual(updated.updated_at, t1)
        self.assertEqual((await crud.get_product(self.store, p.id)).price, 4.0)
        self.assertIsNone(
            await crud.update_product(self.store, self.admin, "missing", "X", 1)
        )
        with self.assertRaises(AuthorizationError):
            await crud.update_product(self.store, self.alice, p.id, "Mine", 1)

        pending = await crud.create_product(self.store, self.alice, "P", 2, when=T0)
        with self.assertRaises(ValidationError):
            await crud.update_product(self.store, self.admin, pending.id, "P2", 3)

    async def test_reject_and_withdraw(self):
        approved = await crud.create_product(self.store, self.admin, "Keep", 1, when=T0)
        mine = await crud.create_product(self.store, self.alice, "Mine", 1, when=T0)
        theirs = await crud.create_product(self.store, self.bob, "Theirs", 1, when=T0)

        with self.assertRaises(ValidationError):
            await crud.reject_product(self.store, self.admin, approved.id)
        self.assertTrue(await crud.reject_product(self.store, self.admin, theirs.id))
        self.assertFalse(await crud.reject_product(self.store, self.admin, theirs.id))

        with self.assertRaises(AuthorizationError):
            await crud.delete_product(self.store, self.alice, approved.id)
        self.assertTrue(await crud.delete_product(self.store, self.alice, mine.id))
        self.assertTrue(await crud.delete_product(self.store, self.admin, approved.id))
        self.assertFalse(await crud.delete_product(self.store, self.admin, approved.id))
        self.assertEqual(await crud.list_products(self.store), [])

    async def test_malformed_records_are_skipped_but_kept(self):
        bad = {"id": "x1", "price": "not a number"}
        await self.store.save("products", [bad])
        self.assertEqual(await crud.list_products(self.store), [])

        p = await crud.create_product(self.store, self.admin, "Good", 2, when=T0)
        raw = await self.store.load_local("products")
        self.assertEqual(raw[0], bad)
        self.assertEqual([x.id for x in await crud.list_products(self.store)], [p.id])

    # ---------- Orders ----------

    async def test_create_order_snapshots_and_total(self):
        customer, a, b = await self._seed_catalog()
        order = await crud.create_order(
            self.store,
            self.alice,
            customer.id,
            [OrderItemDraft(a.id, 2), OrderItemDraft(b.id, 1)],
            "2025-11-10",
            when=T0,
        )
        self.assertEqual(order.total_amount, 25)
        self.assertEqual(order.status, "pending")
        self.assertEqual(order.created_by, "alice")
        self.assertEqual(order.customer_name, "Acme")
        self.assertEqual(order.customer_address, "1 Main St")
        self.assertEqual(order.delivery_date, date(2025, 11, 10))
        self.assertEqual(order.created_at, order.updated_at)
        self.assertEqual([i.product_name for i in order.products], ["A", "B"])
        self.assertTrue(all(i.original_price is None for i in order.products))

        # later catalog edits do not touch the snapshot
        await crud.update_product(self.store, self.admin, a.id, "A v2", 99)
        stored = await crud.get_order(self.store, self.alice, order.id)
        self.assertEqual(stored.products[0].product_name, "A")
        self.assertEqual(stored.total_amount, 25)

    async def test_price_override_keeps_original(self):
        customer, a, b = await self._seed_catalog()
        order = await crud.create_order(
            self.store,
            self.alice,
            customer.id,
            [OrderItemDraft(a.id, 1, 8.0), OrderItemDraft(b.id, 2, 0)],
            date(2025, 11, 10),
            customer_address="Dock 9",
            when=T0,
        )
        first, second = order.products
        self.assertEqual(first.unit_price, 8.0)
        self.assertEqual(first.original_price, 10.0)
        self.assertEqual(second.unit_price, 5.0)
        self.assertIsNone(second.original_price)
        self.assertEqual(order.total_amount, 18)
        self.assertEqual(order.customer_address, "Dock 9")

        raw = (await self.store.load_local("orders"))[0]
        self.assertEqual(raw["products"][0]["originalPrice"], 10.0)
        self.assertNotIn("originalPrice", raw["products"][1])

    async def test_order_line_numbers_are_checked(self):
        customer, a, _ = await self._seed_catalog()
        bad_lines = [
            OrderItemDraft(a.id, "abc"),
            OrderItemDraft(a.id, None),
            OrderItemDraft(a.id, 1.7),
            OrderItemDraft(a.id, float("inf")),
            OrderItemDraft(a.id, 1, float("nan")),
            OrderItemDraft(a.id, 1, "1e400"),
        ]
        for draft in bad_lines:
            with self.assertRaises(ValidationError):
                await crud.create_order(
                    self.store, self.alice, customer.id, [draft], "2025-11-10"
                )
        self.assertEqual(await crud.list_all_orders(self.store), [])

        order = await crud.create_order(
            self.store, self.alice, customer.id, [OrderItemDraft(a.id, "3")], "2025-11-10"
        )
        self.assertEqual(order.products[0].quantity, 3)
        self.assertEqual(order.total_amount, 30)

    async def test_create_order_validation(self):
        customer, a, _ = await self._seed_catalog()
        with self.assertRaises(ValidationError):
            await crud.create_order(self.store, self.alice, customer.id, [], "2025-11-10")
        with self.assertRaises(ValidationError):
            await crud.create_order(
                self.store, self.alice, customer.id, [OrderItemDraft(a.id)], ""
            )
        with self.assertRaises(ValidationError):
            await crud.create_order(
                self.store, self.alice, "nobody", [OrderItemDraft(a.id)], "2025-11-10"
            )
        with self.assertRaises(ValidationError):
            await crud.create_order(
                self.store, self.alice, customer.id, [OrderItemDraft("ghost")], "2025-11-10"
            )
        with self.assertRaises(ValidationError):
            await crud.create_order(
                self.store, self.alice, customer.id, [OrderItemDraft(a.id, 0)], "2025-11-10"
            )
        with self.assertRaises(ValidationError):
            await crud.create_order(
                self.store,
                self.alice,
                customer.id,
                [OrderItemDraft(a.id, 1, -2.0)],
                "2025-11-10",
            )
        with self.assertRaises(ValidationError):
            await crud.create_order(
                self.store, self.alice, customer.id, [OrderItemDraft(a.id)], "11/10/2025"
            )
        self.assertEqual(await crud.list_all_orders(self.store), [])

    async def test_status_walk_updates_timestamp(self):
        customer, a, _ = await self._seed_catalog()
        order = await crud.create_order(
            self.store, self.alice, customer.id, [OrderItemDraft(a.id)], "2025-11-10", when=T0
        )
        with self.assertRaises(AuthorizationError):
            await crud.update_order_status(self.store, self.alice, order.id, "approved")
        with self.assertRaises(ValidationError):
            await crud.update_order_status(self.store, self.admin, order.id, "lost")

        previous = order.updated_at
        for hours, status in enumerate(["approved", "shipped", "delivered", "pending"], 1):
            when = T0 + timedelta(hours=hours)
            updated = await crud.update_order_status(
                self.store, self.admin, order.id, status, when=when
            )
            self.assertEqual(updated.status, status)
            self.assertEqual(updated.updated_at, when)
            self.assertGreater(updated.updated_at, previous)
            previous = updated.updated_at

        stored = await crud.get_order(self.store, self.admin, order.id)
        self.assertEqual(stored.status, "pending")
        self.assertEqual(stored.created_at, T0)
        self.assertIsNone(
            await crud.update_order_status(self.store, self.admin, "missing", "shipped")
        )

    async def test_update_order_by_owner_only(self):
        customer, a, _ = await self._seed_catalog()
        order = await crud.create_order(
            self.store, self.alice, customer.id, [OrderItemDraft(a.id, 3)], "2025-11-10", when=T0
        )
        with self.assertRaises(AuthorizationError):
            await crud.update_order(self.store, self.bob, order.id, customer_name="Bob Co")

        t1 = T0 + timedelta(days=1)
        updated = await crud.update_order(
            self.store,
            self.alice,
            order.id,
            customer_name="Acme Ltd",
            delivery_date="2025-12-01",
            when=t1,
        )
        self.assertEqual(updated.customer_name, "Acme Ltd")
        self.assertEqual(updated.customer_address, "1 Main St")
        self.assertEqual(updated.delivery_date, date(2025, 12, 1))
        self.assertEqual(updated.total_amount, 30)
        self.assertEqual(updated.updated_at, t1)

        with self.assertRaises(ValidationError):
            await crud.update_order(self.store, self.admin, order.id, customer_name=" ")

    async def test_delete_order_requires_password(self):
        customer, a, _ = await self._seed_catalog()
        order = await crud.create_order(
            self.store, self.alice, customer.id, [OrderItemDraft(a.id)], "2025-11-10", when=T0
        )
        with self.assertRaises(AuthorizationError):
            await crud.delete_order(self.store, self.admin, order.id, "guess")
        self.assertIsNotNone(await crud.get_order(self.store, self.admin, order.id))
        with self.assertRaises(AuthorizationError):
            await crud.delete_order(self.store, self.alice, order.id, "password")

        self.assertTrue(await crud.delete_order(self.store, self.admin, order.id, "password"))
        self.assertFalse(await crud.delete_order(self.store, self.admin, order.id, "password"))
        self.assertEqual(await crud.list_all_orders(self.store), [])

    async def test_order_visibility_and_search(self):
        customer, a, _ = await self._seed_catalog()
        other = await crud.create_customer(self.store, "Globex", "2 Side St", when=T0)
        by_alice = await crud.create_order(
            self.store, self.alice, customer.id, [OrderItemDraft(a.id)], "2025-11-10", when=T0
        )
        by_bob = await crud.create_order(
            self.store, self.bob, other.id, [OrderItemDraft(a.id)], "2025-11-10", when=T0
        )
        self.assertNotEqual(by_alice.id, by_bob.id)

        self.assertEqual(
            [o.id for o in await crud.list_orders(self.store, self.alice)], [by_alice.id]
        )
        self.assertEqual(
            [o.id for o in await crud.list_orders(self.store, self.bob)], [by_bob.id]
        )
        everything = await crud.list_orders(self.store, self.admin)
        self.assertEqual(len(everything), 2)
        self.assertIsNone(await crud.get_order(self.store, self.alice, by_bob.id))

        self.assertEqual(
            [o.id for o in crud.filter_orders(everything, "salesperson", "BO")], [by_bob.id]
        )
        self.assertEqual(
            [o.id for o in crud.filter_orders(everything, "customer", "acme")],
            [by_alice.id],
        )
        self.assertEqual(len(crud.filter_orders(everything, "customer", "  ")), 2)

    async def test_operation_sequence_matches_model(self):
        customer, a, b = await self._seed_catalog()
        model = {}
        actors = [self.alice, self.bob, self.alice]
        for n, actor in enumerate(actors):
            order = await crud.create_order(
                self.store,
                actor,
                customer.id,
                [OrderItemDraft(a.id, n + 1), OrderItemDraft(b.id, 1)],
                "2025-11-10",
                when=T0,
            )
            model[order.id] = {"status": "pending", "total": 10 * (n + 1) + 5}

        first, second, third = list(model)
        await crud.update_order_status(self.store, self.admin, second, "shipped")
        model[second]["status"] = "shipped"
        await crud.delete_order(self.store, self.admin, first, "password")
        del model[first]
        await crud.update_order_status(self.store, self.admin, third, "cancelled")
        model[third]["status"] = "cancelled"

        stored = {
            o.id: {"status": o.status, "total": o.total_amount}
            for o in await crud.list_orders(self.store, self.admin)
        }
        self.assertEqual(stored, model)

    async def test_export_csv(self):
        customer = await crud.create_customer(
            self.store, 'Acme, "East"', "1 Main St", when=T0
        )
        a = await crud.create_product(self.store, self.admin, "A", 10, when=T0)
        order = await crud.create_order(
            self.store, self.alice, customer.id, [OrderItemDraft(a.id, 2)], "2025-11-10", when=T0
        )
        await crud.create_order(
            self.store, self.bob, customer.id, [OrderItemDraft(a.id)], "2025-11-11", when=T0
        )

        lines = (await crud.export_orders_csv(self.store, self.alice)).splitlines()
        self.assertEqual(lines[0], "订单编号,客户名称,客户地址,总金额,发货日期,状态,创建时间")
        self.assertEqual(len(lines), 2)
        self.assertTrue(
            lines[1].startswith(f'{order.id},"Acme, ""East""","1 Main St",20,2025-11-10,待审核,')
        )
        admin_lines = (await crud.export_orders_csv(self.store, self.admin)).splitlines()
        self.assertEqual(len(admin_lines), 3)

    # ---------- Customers ----------

    async def test_customer_crud(self):
        c = await crud.create_customer(self.store, " Acme ", "1 Main St", when=T0)
        self.assertEqual(c.name, "Acme")
        with self.assertRaises(ValidationError):
            await crud.create_customer(self.store, "No Address", "")

        t1 = T0 + timedelta(hours=2)
        updated = await crud.update_customer(
            self.store, c.id, "Acme", "9 New Rd", "Road Runner", "555-0199", when=t1
        )
        self.assertEqual(updated.address, "9 New Rd")
        self.assertEqual(updated.updated_at, t1)
        self.assertIsNone(await crud.update_customer(self.store, "missing", "X", "Y"))

        self.assertTrue(await crud.delete_customer(self.store, c.id))
        self.assertFalse(await crud.delete_customer(self.store, c.id))
        self.assertEqual(await crud.list_customers(self.store), [])

    # ---------- Salespersons ----------

    async def test_salesperson_management(self):
        with self.assertRaises(AuthorizationError):
            await crud.list_salespersons(self.store, self.alice)
        with self.assertRaises(AuthorizationError):
            await crud.create_salesperson(self.store, self.alice, "Eve", "eve", "pw")

        sp = await crud.create_salesperson(
            self.store, self.admin, "Alice", "alice", "pw1", "555", when=T0
        )
        other = await crud.create_salesperson(
            self.store, self.admin, "Bob", "bob", "pw2", when=T0
        )
        with self.assertRaises(ValidationError):
            await crud.create_salesperson(self.store, self.admin, "Dup", "alice", "x")
        with self.assertRaises(ValidationError):
            await crud.update_salesperson(self.store, self.admin, other.id, "Bob", "alice")

        updated = await crud.update_salesperson(
            self.store, self.admin, sp.id, "Alice Smith", "alice", ""
        )
        self.assertEqual(updated.password, "pw1")
        self.assertIsNotNone(await crud.login(self.store, "salesperson", "alice", "pw1"))

        self.assertTrue(await crud.delete_salesperson(self.store, self.admin, sp.id))
        self.assertFalse(await crud.delete_salesperson(self.store, self.admin, sp.id))
        self.assertEqual(
            [s.username for s in await crud.list_salespersons(self.store, self.admin)],
            ["bob"],
        )
        self.assertIsNone(await crud.login(self.store, "salesperson", "alice", "pw1"))


if __name__ == "__main__":
    unittest.main()
