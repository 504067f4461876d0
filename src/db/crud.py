# src/db/crud.py
from __future__ import annotations

import math
from dataclasses import replace
from datetime import date, datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, TypeVar

from db.errors import AuthorizationError, ValidationError
from db.models import (
    ORDER_STATUSES,
    ROLES,
    Customer,
    Order,
    OrderItem,
    OrderItemDraft,
    Product,
    Salesperson,
    Session,
    compute_total,
    now_utc,
    parse_date,
)
from db.remote import RemoteError
from db.storage import PersistenceAdapter, RemoteCall
from utils import config
from utils.logger import get_logger
from utils.pure import orders_to_csv

_logger = get_logger(__name__)

T = TypeVar("T")


def _new_id(existing: Iterable[str], when: datetime) -> str:
    """Millisecond timestamp id, bumped until it is unused in the collection."""
    taken = set(existing)
    candidate = int(when.timestamp() * 1000)
    while str(candidate) in taken:
        candidate += 1
    return str(candidate)


def _ids(records: List[Dict[str, Any]]) -> List[str]:
    return [str(r.get("id")) for r in records if isinstance(r, dict)]


def _find(records: List[Dict[str, Any]], record_id: str) -> Optional[Dict[str, Any]]:
    for r in records:
        if isinstance(r, dict) and str(r.get("id")) == record_id:
            return r
    return None


def _replaced(
    records: List[Dict[str, Any]], record: Dict[str, Any]
) -> List[Dict[str, Any]]:
    return [
        record if isinstance(r, dict) and str(r.get("id")) == record["id"] else r
        for r in records
    ]


def _without(records: List[Dict[str, Any]], record_id: str) -> List[Dict[str, Any]]:
    return [
        r for r in records if not (isinstance(r, dict) and str(r.get("id")) == record_id)
    ]


def _parse_all(
    factory: Callable[[Dict[str, Any]], T],
    records: List[Dict[str, Any]],
    collection: str,
) -> List[T]:
    parsed: List[T] = []
    for r in records:
        try:
            parsed.append(factory(r))
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            _logger.warning(f"Skipping malformed {collection} record {r!r}: {e}")
    return parsed


def _require_admin(actor: Session, action: str) -> None:
    if actor is None or not actor.is_admin:
        raise AuthorizationError(f"Only an admin can {action}.")


def _to_price(value: Any) -> float:
    try:
        price = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid price: {value!r}")
    if not math.isfinite(price):
        raise ValidationError(f"Invalid price: {value!r}")
    return price


def _to_quantity(value: Any) -> int:
    try:
        quantity = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid quantity: {value!r}")
    if not math.isfinite(quantity) or quantity != int(quantity):
        raise ValidationError(f"Quantity must be a whole number: {value!r}")
    return int(quantity)


# ---------------------------
# Auth
# ---------------------------


async def _check_local_credentials(
    store: PersistenceAdapter, role: str, username: str, password: str
) -> Optional[str]:
    """Local mock rules. Returns the display name on success, otherwise None."""
    if role == "admin":
        if username == config.ADMIN_USERNAME and password == config.ADMIN_PASSWORD:
            return username
        return None
    salespersons = _parse_all(
        Salesperson.from_dict, await store.load("salespersons"), "salespersons"
    )
    for sp in salespersons:
        if sp.username == username and sp.password == password:
            return sp.name
    return None


async def login(
    store: PersistenceAdapter,
    role: str,
    username: str,
    password: str,
    when: Optional[datetime] = None,
) -> Optional[Session]:
    """Return a Session if the credentials are valid for the role; otherwise None.

    The remote service is asked first when configured. If it cannot be reached
    or answers non-2xx, the local mock rules decide. The session is persisted
    under the ``auth`` key.
    """
    role = (role or "").strip()
    username = (username or "").strip()
    if not username or not password:
        raise ValidationError("Username or password cannot be empty!")
    if role not in ROLES:
        raise ValidationError(f"Unknown role: {role!r}")

    session: Optional[Session] = None
    if store.remote:
        try:
            resp = await store.remote.post(
                "/auth/login",
                {"role": role, "username": username, "password": password},
            )
        except RemoteError as e:
            _logger.warning(f"Remote login unavailable, using local accounts: {e}")
            resp = None
        if isinstance(resp, dict) and resp.get("token"):
            user = resp.get("user") or {}
            session = Session.from_dict(
                {
                    **user,
                    "role": user.get("role") or role,
                    "username": user.get("username") or username,
                    "token": resp["token"],
                }
            )
        elif resp is not None:
            _logger.info(f"Remote login rejected for {role} {username}")
            return None

    if session is None:
        display_name = await _check_local_credentials(store, role, username, password)
        if display_name is None:
            _logger.info(f"Local login rejected for {role} {username}")
            return None
        when = when or now_utc()
        session = Session(
            id=f"user_{int(when.timestamp() * 1000)}",
            role=role,
            username=username,
            name=display_name,
        )

    await store.save_session(session.to_dict())
    store.token = session.token
    _logger.info(f"{session.role} {session.username} logged in")
    return session


async def logout(store: PersistenceAdapter) -> None:
    await store.clear_session()
    store.token = None


async def restore_session(store: PersistenceAdapter) -> Optional[Session]:
    """Return the persisted session, if any, and re-arm the bearer token."""
    record = await store.load_session()
    if not record:
        return None
    try:
        session = Session.from_dict(record)
    except (KeyError, TypeError, ValueError) as e:
        _logger.warning(f"Ignoring unreadable session record: {e}")
        return None
    if session.role not in ROLES or not session.username:
        return None
    store.token = session.token
    return session


# ---------------------------
# Products
# ---------------------------


async def list_products(store: PersistenceAdapter) -> List[Product]:
    """All products, approved and pending."""
    return _parse_all(Product.from_dict, await store.load("products"), "products")


async def list_catalog(store: PersistenceAdapter) -> List[Product]:
    """Approved products, visible to every role."""
    return [p for p in await list_products(store) if not p.is_pending_approval]


async def list_pending_products(
    store: PersistenceAdapter, actor: Session
) -> List[Product]:
    """Admin sees every pending submission; a salesperson only their own."""
    pending = [p for p in await list_products(store) if p.is_pending_approval]
    if actor.is_admin:
        return pending
    return [p for p in pending if p.created_by == actor.username]


async def get_product(store: PersistenceAdapter, product_id: str) -> Optional[Product]:
    for p in await list_products(store):
        if p.id == product_id:
            return p
    return None


def _validate_product_input(name: str, price: Any) -> tuple[str, float]:
    name = (name or "").strip()
    price = _to_price(price)
    if not name or price <= 0:
        raise ValidationError("Please enter a valid product name and price.")
    return name, price


async def create_product(
    store: PersistenceAdapter,
    actor: Session,
    name: str,
    price: Any,
    image: str = "",
    when: Optional[datetime] = None,
) -> Product:
    """
    Admin-created products go straight into the catalog.
    Salesperson submissions wait for approval.
    """
    name, price = _validate_product_input(name, price)
    when = when or now_utc()
    records = await store.load_local("products")
    product = Product(
        id=_new_id(_ids(records), when),
        name=name,
        price=price,
        image=(image or "").strip(),
        created_at=when,
        is_pending_approval=not actor.is_admin,
        created_by=actor.username,
    )
    await store.save(
        "products",
        records + [product.to_dict()],
        RemoteCall("POST", "/products", product.to_dict()),
    )
    _logger.info(
        f"Product {product.id} created by {actor.username}"
        + (" (pending approval)" if product.is_pending_approval else "")
    )
    return product


async def update_product(
    store: PersistenceAdapter,
    actor: Session,
    product_id: str,
    name: str,
    price: Any,
    image: str = "",
    when: Optional[datetime] = None,
) -> Optional[Product]:
    """Edit an approved product. Returns None if it does not exist."""
    _require_admin(actor, "edit products")
    name, price = _validate_product_input(name, price)
    records = await store.load_local("products")
    raw = _find(records, product_id)
    if raw is None:
        return None
    current = Product.from_dict(raw)
    if current.is_pending_approval:
        raise ValidationError("Pending products must be approved before editing.")
    updated = replace(
        current,
        name=name,
        price=price,
        image=(image or "").strip(),
        updated_at=when or now_utc(),
    )
    await store.save(
        "products",
        _replaced(records, updated.to_dict()),
        RemoteCall("PUT", f"/products/{product_id}", updated.to_dict()),
    )
    return updated


async def approve_product(
    store: PersistenceAdapter, actor: Session, product_id: str
) -> Optional[Product]:
    """Clear the pending flag so the product shows up in the catalog."""
    _require_admin(actor, "approve products")
    records = await store.load_local("products")
    raw = _find(records, product_id)
    if raw is None:
        return None
    current = Product.from_dict(raw)
    if not current.is_pending_approval:
        return current
    approved = replace(current, is_pending_approval=False)
    await store.save(
        "products",
        _replaced(records, approved.to_dict()),
        RemoteCall("POST", f"/products/{product_id}/approve"),
    )
    _logger.info(f"Product {product_id} approved by {actor.username}")
    return approved


async def reject_product(
    store: PersistenceAdapter, actor: Session, product_id: str
) -> bool:
    """Rejecting a submission deletes it. Returns True if a record was removed."""
    _require_admin(actor, "reject products")
    records = await store.load_local("products")
    raw = _find(records, product_id)
    if raw is None:
        return False
    if not Product.from_dict(raw).is_pending_approval:
        raise ValidationError("Only pending products can be rejected.")
    await store.save(
        "products",
        _without(records, product_id),
        RemoteCall("DELETE", f"/products/{product_id}"),
    )
    _logger.info(f"Product {product_id} rejected by {actor.username}")
    return True


async def delete_product(
    store: PersistenceAdapter, actor: Session, product_id: str
) -> bool:
    """
    Admins delete any product. A salesperson may only withdraw their own
    pending submission. Returns False if the product is already gone.
    """
    records = await store.load_local("products")
    raw = _find(records, product_id)
    if raw is None:
        return False
    if not actor.is_admin:
        product = Product.from_dict(raw)
        if not product.is_pending_approval or product.created_by != actor.username:
            raise AuthorizationError("You can only withdraw your own pending products.")
    await store.save(
        "products",
        _without(records, product_id),
        RemoteCall("DELETE", f"/products/{product_id}"),
    )
    return True


# ---------------------------
# Orders
# ---------------------------


def visible_orders(orders: Iterable[Order], actor: Session) -> List[Order]:
    """Admin sees everything; a salesperson sees the orders they created."""
    if actor.is_admin:
        return list(orders)
    return [o for o in orders if o.created_by == actor.username]


def filter_orders(orders: Iterable[Order], search_type: str, value: str) -> List[Order]:
    """
    Case-insensitive substring search.
    search_type "salesperson" matches createdBy, "customer" matches the customer name.
    Blank value returns everything.
    """
    needle = (value or "").strip().lower()
    if not needle:
        return list(orders)
    if search_type == "salesperson":
        return [o for o in orders if needle in o.created_by.lower()]
    return [o for o in orders if needle in o.customer_name.lower()]


async def list_all_orders(store: PersistenceAdapter) -> List[Order]:
    return _parse_all(Order.from_dict, await store.load("orders"), "orders")


async def list_orders(store: PersistenceAdapter, actor: Session) -> List[Order]:
    return visible_orders(await list_all_orders(store), actor)


async def get_order(
    store: PersistenceAdapter, actor: Session, order_id: str
) -> Optional[Order]:
    for o in await list_orders(store, actor):
        if o.id == order_id:
            return o
    return None


def _to_delivery_date(value: Any) -> date:
    try:
        parsed = parse_date(value)
    except ValueError:
        raise ValidationError(f"Invalid delivery date: {value!r}")
    if parsed is None:
        raise ValidationError("Delivery date is required.")
    return parsed


async def create_order(
    store: PersistenceAdapter,
    actor: Session,
    customer_id: str,
    items: Sequence[OrderItemDraft],
    delivery_date: Any,
    customer_address: str = "",
    when: Optional[datetime] = None,
) -> Order:
    """
    Create a pending order.

    Customer name/address and product names are snapshotted. A line without a
    price override (None or 0) uses the catalog price; an override keeps the
    catalog price in originalPrice. The total is computed once here.
    """
    if not customer_id or not items or not delivery_date:
        raise ValidationError("Please fill in the complete order information.")
    deliver_on = _to_delivery_date(delivery_date)

    customers = _parse_all(
        Customer.from_dict, await store.load("customers"), "customers"
    )
    customer = next((c for c in customers if c.id == customer_id), None)
    if customer is None:
        raise ValidationError("Customer not found.")

    catalog = {p.id: p for p in await list_products(store)}
    lines: List[OrderItem] = []
    for draft in items:
        product = catalog.get(draft.product_id)
        if product is None:
            raise ValidationError(f"Product not found: {draft.product_id}")
        quantity = _to_quantity(draft.quantity)
        if quantity < 1:
            raise ValidationError(f"Quantity for {product.name} must be at least 1.")
        unit_price = product.price
        if draft.unit_price:
            unit_price = _to_price(draft.unit_price)
            if unit_price < 0:
                raise ValidationError(f"Price for {product.name} cannot be negative.")
        lines.append(
            OrderItem(
                product_id=product.id,
                product_name=product.name,
                quantity=quantity,
                unit_price=unit_price,
                original_price=product.price if unit_price != product.price else None,
            )
        )

    when = when or now_utc()
    records = await store.load_local("orders")
    order = Order(
        id=_new_id(_ids(records), when),
        customer_id=customer.id,
        customer_name=customer.name,
        customer_address=(customer_address or "").strip() or customer.address,
        products=tuple(lines),
        total_amount=compute_total(lines),
        delivery_date=deliver_on,
        status="pending",
        created_by=actor.username,
        created_at=when,
        updated_at=when,
    )
    await store.save(
        "orders",
        records + [order.to_dict()],
        RemoteCall("POST", "/orders", order.to_dict()),
    )
    _logger.info(
        f"Order {order.id} created by {actor.username}, total {order.total_amount}"
    )
    return order


async def update_order(
    store: PersistenceAdapter,
    actor: Session,
    order_id: str,
    customer_name: Optional[str] = None,
    customer_address: Optional[str] = None,
    delivery_date: Any = None,
    when: Optional[datetime] = None,
) -> Optional[Order]:
    """Edit the snapshot fields and delivery date. The total is left as stored."""
    records = await store.load_local("orders")
    raw = _find(records, order_id)
    if raw is None:
        return None
    current = Order.from_dict(raw)
    if not actor.is_admin and current.created_by != actor.username:
        raise AuthorizationError("You can only edit your own orders.")

    changes: Dict[str, Any] = {}
    if customer_name is not None:
        if not customer_name.strip():
            raise ValidationError("Customer name cannot be empty.")
        changes["customer_name"] = customer_name.strip()
    if customer_address is not None:
        changes["customer_address"] = customer_address.strip()
    if delivery_date is not None:
        changes["delivery_date"] = _to_delivery_date(delivery_date)
    updated = replace(current, updated_at=when or now_utc(), **changes)
    await store.save(
        "orders",
        _replaced(records, updated.to_dict()),
        RemoteCall("PUT", f"/orders/{order_id}", updated.to_dict()),
    )
    return updated


async def update_order_status(
    store: PersistenceAdapter,
    actor: Session,
    order_id: str,
    status: str,
    when: Optional[datetime] = None,
) -> Optional[Order]:
    """Set the status directly. Any status may follow any other."""
    _require_admin(actor, "change order status")
    if status not in ORDER_STATUSES:
        raise ValidationError(f"Unknown order status: {status!r}")
    records = await store.load_local("orders")
    raw = _find(records, order_id)
    if raw is None:
        return None
    updated = replace(Order.from_dict(raw), status=status, updated_at=when or now_utc())
    await store.save(
        "orders",
        _replaced(records, updated.to_dict()),
        RemoteCall("PATCH", f"/orders/{order_id}/status", {"status": status}),
    )
    _logger.info(f"Order {order_id} -> {status} by {actor.username}")
    return updated


async def delete_order(
    store: PersistenceAdapter, actor: Session, order_id: str, password: str
) -> bool:
    """
    Remove an order after the confirmation password is typed.
    The password is a guard against accidental clicks, not access control.
    Returns False if the order is already gone.
    """
    _require_admin(actor, "delete orders")
    if password != config.DELETE_PASSWORD:
        raise AuthorizationError("Wrong password, the order was not deleted.")
    records = await store.load_local("orders")
    if _find(records, order_id) is None:
        return False
    await store.save(
        "orders",
        _without(records, order_id),
        RemoteCall("DELETE", f"/orders/{order_id}"),
    )
    _logger.info(f"Order {order_id} deleted by {actor.username}")
    return True


async def export_orders_csv(store: PersistenceAdapter, actor: Session) -> str:
    """CSV sheet of the orders visible to the actor."""
    return orders_to_csv(await list_orders(store, actor))


# ---------------------------
# Customers
# ---------------------------


async def list_customers(store: PersistenceAdapter) -> List[Customer]:
    return _parse_all(Customer.from_dict, await store.load("customers"), "customers")


def _validate_customer_input(name: str, address: str) -> tuple[str, str]:
    name = (name or "").strip()
    address = (address or "").strip()
    if not name or not address:
        raise ValidationError("Customer name and address are required.")
    return name, address


async def create_customer(
    store: PersistenceAdapter,
    name: str,
    address: str,
    contact: str = "",
    phone: str = "",
    when: Optional[datetime] = None,
) -> Customer:
    name, address = _validate_customer_input(name, address)
    when = when or now_utc()
    records = await store.load_local("customers")
    customer = Customer(
        id=_new_id(_ids(records), when),
        name=name,
        address=address,
        contact=(contact or "").strip(),
        phone=(phone or "").strip(),
        created_at=when,
    )
    await store.save(
        "customers",
        records + [customer.to_dict()],
        RemoteCall("POST", "/customers", customer.to_dict()),
    )
    return customer


async def update_customer(
    store: PersistenceAdapter,
    customer_id: str,
    name: str,
    address: str,
    contact: str = "",
    phone: str = "",
    when: Optional[datetime] = None,
) -> Optional[Customer]:
    """Existing orders keep their customer snapshot."""
    name, address = _validate_customer_input(name, address)
    records = await store.load_local("customers")
    raw = _find(records, customer_id)
    if raw is None:
        return None
    updated = replace(
        Customer.from_dict(raw),
        name=name,
        address=address,
        contact=(contact or "").strip(),
        phone=(phone or "").strip(),
        updated_at=when or now_utc(),
    )
    await store.save(
        "customers",
        _replaced(records, updated.to_dict()),
        RemoteCall("PUT", f"/customers/{customer_id}", updated.to_dict()),
    )
    return updated


async def delete_customer(store: PersistenceAdapter, customer_id: str) -> bool:
    """Orders referencing the customer are left untouched."""
    records = await store.load_local("customers")
    if _find(records, customer_id) is None:
        return False
    await store.save(
        "customers",
        _without(records, customer_id),
        RemoteCall("DELETE", f"/customers/{customer_id}"),
    )
    return True


# ---------------------------
# Salespersons (admin)
# ---------------------------


async def list_salespersons(
    store: PersistenceAdapter, actor: Session
) -> List[Salesperson]:
    _require_admin(actor, "manage salespersons")
    return _parse_all(
        Salesperson.from_dict, await store.load("salespersons"), "salespersons"
    )


def _check_username_free(
    records: List[Dict[str, Any]], username: str, exclude_id: Optional[str] = None
) -> None:
    for r in records:
        if not isinstance(r, dict) or str(r.get("id")) == exclude_id:
            continue
        if r.get("username") == username:
            raise ValidationError(f"Username {username!r} is already taken.")


async def create_salesperson(
    store: PersistenceAdapter,
    actor: Session,
    name: str,
    username: str,
    password: str,
    phone: str = "",
    when: Optional[datetime] = None,
) -> Salesperson:
    _require_admin(actor, "manage salespersons")
    name = (name or "").strip()
    username = (username or "").strip()
    if not name or not username or not password:
        raise ValidationError("Name, username and password are required.")
    records = await store.load_local("salespersons")
    _check_username_free(records, username)
    when = when or now_utc()
    salesperson = Salesperson(
        id=_new_id(_ids(records), when),
        name=name,
        username=username,
        password=password,
        phone=(phone or "").strip(),
        created_at=when,
    )
    await store.save(
        "salespersons",
        records + [salesperson.to_dict()],
        RemoteCall("POST", "/salespersons", salesperson.to_dict()),
    )
    return salesperson


async def update_salesperson(
    store: PersistenceAdapter,
    actor: Session,
    salesperson_id: str,
    name: str,
    username: str,
    password: str = "",
    phone: str = "",
    when: Optional[datetime] = None,
) -> Optional[Salesperson]:
    """A blank password keeps the current one."""
    _require_admin(actor, "manage salespersons")
    name = (name or "").strip()
    username = (username or "").strip()
    if not name or not username:
        raise ValidationError("Name and username are required.")
    records = await store.load_local("salespersons")
    raw = _find(records, salesperson_id)
    if raw is None:
        return None
    _check_username_free(records, username, exclude_id=salesperson_id)
    current = Salesperson.from_dict(raw)
    updated = replace(
        current,
        name=name,
        username=username,
        password=password or current.password,
        phone=(phone or "").strip(),
        updated_at=when or now_utc(),
    )
    await store.save(
        "salespersons",
        _replaced(records, updated.to_dict()),
        RemoteCall("PUT", f"/salespersons/{salesperson_id}", updated.to_dict()),
    )
    return updated


async def delete_salesperson(
    store: PersistenceAdapter, actor: Session, salesperson_id: str
) -> bool:
    _require_admin(actor, "manage salespersons")
    records = await store.load_local("salespersons")
    if _find(records, salesperson_id) is None:
        return False
    await store.save(
        "salespersons",
        _without(records, salesperson_id),
        RemoteCall("DELETE", f"/salespersons/{salesperson_id}"),
    )
    return True
