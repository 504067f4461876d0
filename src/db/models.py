# provide dataclass models and their JSON document shapes
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Literal, Optional, Tuple

Role = Literal["admin", "salesperson"]
ROLES: Tuple[str, ...] = ("admin", "salesperson")

OrderStatus = Literal["pending", "approved", "shipped", "delivered", "cancelled"]
ORDER_STATUSES: Tuple[str, ...] = (
    "pending",
    "approved",
    "shipped",
    "delivered",
    "cancelled",
)

STATUS_LABELS: Dict[str, str] = {
    "pending": "Pending",
    "approved": "Approved",
    "shipped": "Shipped",
    "delivered": "Delivered",
    "cancelled": "Cancelled",
}

PLACEHOLDER_IMAGE = (
    "https://space.coze.cn/api/coze_space/gen_image?image_size=square_hd"
    "&prompt=product%20placeholder&sign=5f01a548a7ff8f8fa96dc61046e75b54"
)


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def format_ts(ts: Optional[datetime]) -> Optional[str]:
    """ISO-8601 with milliseconds and a trailing Z, e.g. 2025-11-01T12:00:00.000Z"""
    if ts is None:
        return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    ts = ts.astimezone(timezone.utc)
    return ts.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_ts(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    ts = datetime.fromisoformat(str(value))
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def parse_date(value: Any) -> Optional[date]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


@dataclass(frozen=True)
class Session:
    """The logged-in actor. ``username`` is the identity stamped into createdBy."""

    id: str
    role: Role
    username: str
    name: str
    token: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> Session:
        username = d.get("username") or d.get("name") or ""
        return cls(
            id=str(d.get("id") or f"user_{username}"),
            role=d["role"],
            username=username,
            name=d.get("name") or username,
            token=d.get("token"),
        )

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "id": self.id,
            "username": self.username,
            "name": self.name,
            "role": self.role,
        }
        if self.token:
            d["token"] = self.token
        return d


@dataclass(frozen=True)
class Product:
    id: str
    name: str
    price: float
    image: str
    created_at: datetime
    is_pending_approval: bool = False
    created_by: Optional[str] = None
    updated_at: Optional[datetime] = None

    @property
    def display_image(self) -> str:
        return self.image or PLACEHOLDER_IMAGE

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> Product:
        return cls(
            id=str(d["id"]),
            name=d["name"],
            price=float(d["price"]),
            image=d.get("image") or "",
            created_at=parse_ts(d.get("createdAt")) or now_utc(),
            is_pending_approval=bool(d.get("isPendingApproval", False)),
            created_by=d.get("createdBy"),
            updated_at=parse_ts(d.get("updatedAt")),
        )

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "price": self.price,
            "image": self.image,
            "createdAt": format_ts(self.created_at),
        }
        # absent means approved
        if self.is_pending_approval:
            d["isPendingApproval"] = True
        if self.created_by is not None:
            d["createdBy"] = self.created_by
        if self.updated_at is not None:
            d["updatedAt"] = format_ts(self.updated_at)
        return d


@dataclass(frozen=True)
class Customer:
    id: str
    name: str
    address: str
    contact: str
    phone: str
    created_at: datetime
    updated_at: Optional[datetime] = None

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> Customer:
        return cls(
            id=str(d["id"]),
            name=d["name"],
            address=d.get("address") or "",
            contact=d.get("contact") or "",
            phone=d.get("phone") or "",
            created_at=parse_ts(d.get("createdAt")) or now_utc(),
            updated_at=parse_ts(d.get("updatedAt")),
        )

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "contact": self.contact,
            "phone": self.phone,
            "createdAt": format_ts(self.created_at),
        }
        if self.updated_at is not None:
            d["updatedAt"] = format_ts(self.updated_at)
        return d


@dataclass(frozen=True)
class Salesperson:
    id: str
    name: str
    username: str
    password: str  # checked by the local login mock
    phone: str
    created_at: datetime
    updated_at: Optional[datetime] = None

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> Salesperson:
        return cls(
            id=str(d["id"]),
            name=d.get("name") or d["username"],
            username=d["username"],
            password=d.get("password") or "",
            phone=d.get("phone") or "",
            created_at=parse_ts(d.get("createdAt")) or now_utc(),
            updated_at=parse_ts(d.get("updatedAt")),
        )

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "username": self.username,
            "password": self.password,
            "phone": self.phone,
            "createdAt": format_ts(self.created_at),
        }
        if self.updated_at is not None:
            d["updatedAt"] = format_ts(self.updated_at)
        return d


@dataclass(frozen=True)
class OrderItem:
    product_id: str
    product_name: str  # snapshot at order time
    quantity: int
    unit_price: float
    original_price: Optional[float] = None  # catalog price, only when overridden

    @property
    def line_total(self) -> float:
        return self.quantity * self.unit_price

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> OrderItem:
        original = d.get("originalPrice")
        return cls(
            product_id=str(d["productId"]),
            product_name=d.get("productName") or "",
            quantity=int(d["quantity"]),
            unit_price=float(d["unitPrice"]),
            original_price=float(original) if original is not None else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "productId": self.product_id,
            "productName": self.product_name,
            "quantity": self.quantity,
            "unitPrice": self.unit_price,
        }
        if self.original_price is not None:
            d["originalPrice"] = self.original_price
        return d


@dataclass(frozen=True)
class OrderItemDraft:
    """A line as entered on the order form, before the product snapshot is taken."""

    product_id: str
    quantity: int = 1
    unit_price: Optional[float] = None  # None or 0 -> catalog price


@dataclass(frozen=True)
class Order:
    id: str
    customer_id: str
    customer_name: str
    customer_address: str
    products: Tuple[OrderItem, ...]
    total_amount: float
    delivery_date: date
    status: OrderStatus
    created_by: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> Order:
        created_at = parse_ts(d.get("createdAt")) or now_utc()
        return cls(
            id=str(d["id"]),
            customer_id=str(d.get("customerId") or ""),
            customer_name=d.get("customerName") or "",
            customer_address=d.get("customerAddress") or "",
            products=tuple(OrderItem.from_dict(i) for i in d.get("products") or []),
            total_amount=float(d.get("totalAmount") or 0.0),
            delivery_date=parse_date(d.get("deliveryDate")),
            status=d.get("status") or "pending",
            created_by=d.get("createdBy") or "",
            created_at=created_at,
            updated_at=parse_ts(d.get("updatedAt")) or created_at,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "customerId": self.customer_id,
            "customerName": self.customer_name,
            "customerAddress": self.customer_address,
            "products": [i.to_dict() for i in self.products],
            "totalAmount": self.total_amount,
            "deliveryDate": self.delivery_date.isoformat()
            if self.delivery_date
            else "",
            "status": self.status,
            "createdBy": self.created_by,
            "createdAt": format_ts(self.created_at),
            "updatedAt": format_ts(self.updated_at),
        }


def compute_total(items: List[OrderItem]) -> float:
    """Sum of quantity x unit price over the lines."""
    return sum(item.quantity * item.unit_price for item in items)
