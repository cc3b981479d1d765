# provide dataclass models and their JSON wire shape

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from core.money import is_integral, to_quantity


class Unit(Enum):
    PIECE = "piece"
    WEIGHT = "weight"


class Role(Enum):
    ADMIN = "admin"
    CASHIER = "cashier"


class PaymentMethod(Enum):
    CASH = "cash"
    CARD = "card"
    SINPE = "sinpe"
    CREDIT = "credit"
    MIXED = "mixed"


class InvoiceStatus(Enum):
    COMPLETED = "completed"
    VOIDED = "voided"


class ClosingStatus(Enum):
    OPEN = "open"
    CLOSED = "closed"


# ---------------------------
# Codec helpers
# ---------------------------


def encode(payload: Any) -> bytes:
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":")).encode("utf-8")


def decode(raw: Optional[bytes], default: Any = None) -> Any:
    if raw is None:
        return default
    return json.loads(raw.decode("utf-8"))


def quantity_to_wire(quantity: Decimal) -> int | str:
    # integral quantities stay JSON numbers, fractional ones keep their exact digits
    if is_integral(quantity):
        return int(quantity)
    return str(quantity)


def _dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


# ---------------------------
# Catalog & accounts
# ---------------------------


@dataclass(frozen=True)
class Product:
    pid: int
    name: str
    price: int  # unit sale price, minor units
    cost: int = 0
    stock: Optional[Decimal] = None  # None -> unbounded (weight-sold goods)
    unit: Unit = Unit.PIECE
    is_active: bool = True
    category: str = ""
    barcode: str = ""

    def to_wire(self) -> Dict[str, Any]:
        return {
            "id": self.pid,
            "name": self.name,
            "price": self.price,
            "cost": self.cost,
            "stock": None if self.stock is None else quantity_to_wire(self.stock),
            "unit": self.unit.value,
            "isActive": self.is_active,
            "category": self.category,
            "barcode": self.barcode,
        }

    @classmethod
    def from_wire(cls, data: Dict[str, Any]) -> Product:
        stock = data.get("stock")
        return cls(
            pid=int(data["id"]),
            name=data["name"],
            price=int(data["price"]),
            cost=int(data.get("cost", 0)),
            stock=None if stock is None else to_quantity(stock),
            unit=Unit(data.get("unit", Unit.PIECE.value)),
            is_active=bool(data.get("isActive", True)),
            category=data.get("category", ""),
            barcode=data.get("barcode", ""),
        )


@dataclass(frozen=True)
class User:
    uid: str
    name: str
    email: str
    role: Role
    password_hash: str = field(repr=False, default="")
    is_active: bool = True
    created_at: Optional[datetime] = None
    last_login: Optional[datetime] = None

    def to_wire(self) -> Dict[str, Any]:
        return {
            "id": self.uid,
            "name": self.name,
            "email": self.email,
            "role": self.role.value,
            "passwordHash": self.password_hash,
            "isActive": self.is_active,
            "createdAt": _iso(self.created_at),
            "lastLogin": _iso(self.last_login),
        }

    @classmethod
    def from_wire(cls, data: Dict[str, Any]) -> User:
        return cls(
            uid=data["id"],
            name=data["name"],
            email=data["email"],
            role=Role(data["role"]),
            password_hash=data.get("passwordHash", ""),
            is_active=bool(data.get("isActive", True)),
            created_at=_dt(data.get("createdAt")),
            last_login=_dt(data.get("lastLogin")),
        )


@dataclass(frozen=True)
class Customer:
    name: str
    phone: str = ""
    email: str = ""

    def to_wire(self) -> Dict[str, Any]:
        return {"name": self.name, "phone": self.phone, "email": self.email}

    @classmethod
    def from_wire(cls, data: Optional[Dict[str, Any]]) -> Optional[Customer]:
        if not data:
            return None
        return cls(
            name=data.get("name", ""),
            phone=data.get("phone", ""),
            email=data.get("email", ""),
        )


# ---------------------------
# Sale entities
# ---------------------------


@dataclass(frozen=True)
class CartItem:
    product_id: int
    product_name: str
    unit_price: int
    quantity: Decimal
    total_price: int

    def to_wire(self) -> Dict[str, Any]:
        return {
            "productId": self.product_id,
            "productName": self.product_name,
            "unitPrice": self.unit_price,
            "quantity": quantity_to_wire(self.quantity),
            "totalPrice": self.total_price,
        }

    @classmethod
    def from_wire(cls, data: Dict[str, Any]) -> CartItem:
        return cls(
            product_id=int(data["productId"]),
            product_name=data["productName"],
            unit_price=int(data["unitPrice"]),
            quantity=to_quantity(data["quantity"]),
            total_price=int(data["totalPrice"]),
        )


@dataclass(frozen=True)
class Totals:
    subtotal_without_tax: int = 0
    tax_amount: int = 0
    discount_amount: int = 0
    total: int = 0

    def to_wire(self) -> Dict[str, int]:
        return {
            "subtotalWithoutTax": self.subtotal_without_tax,
            "taxAmount": self.tax_amount,
            "discountAmount": self.discount_amount,
            "total": self.total,
        }

    @classmethod
    def from_wire(cls, data: Dict[str, Any]) -> Totals:
        return cls(
            subtotal_without_tax=int(data["subtotalWithoutTax"]),
            tax_amount=int(data["taxAmount"]),
            discount_amount=int(data.get("discountAmount", 0)),
            total=int(data["total"]),
        )


@dataclass(frozen=True)
class HoldSale:
    id: str
    cashier_name: str
    items: Tuple[CartItem, ...]
    totals: Totals
    created_at: datetime
    customer_name: str = ""
    notes: str = ""

    def to_wire(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "cashierName": self.cashier_name,
            "customerName": self.customer_name,
            "notes": self.notes,
            "items": [item.to_wire() for item in self.items],
            **self.totals.to_wire(),
            "createdAt": _iso(self.created_at),
        }

    @classmethod
    def from_wire(cls, data: Dict[str, Any]) -> HoldSale:
        return cls(
            id=data["id"],
            cashier_name=data["cashierName"],
            items=tuple(CartItem.from_wire(i) for i in data["items"]),
            totals=Totals.from_wire(data),
            created_at=_dt(data["createdAt"]),
            customer_name=data.get("customerName") or "",
            notes=data.get("notes") or "",
        )


@dataclass(frozen=True)
class Invoice:
    id: str
    invoice_number: int
    items: Tuple[CartItem, ...]
    totals: Totals
    payment_method: PaymentMethod
    status: InvoiceStatus
    created_at: datetime
    cashier_name: str
    customer: Optional[Customer] = None
    tendered: Optional[int] = None
    change: Optional[int] = None
    voided_at: Optional[datetime] = None
    void_reason: str = ""
    # mixed payments only: the part of the total each method covered
    split: Dict[PaymentMethod, int] = field(default_factory=dict)

    def amounts_by_method(self) -> Dict[PaymentMethod, int]:
        if self.payment_method is PaymentMethod.MIXED:
            return dict(self.split)
        return {self.payment_method: self.totals.total}

    def to_wire(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "invoiceNumber": self.invoice_number,
            "cashierName": self.cashier_name,
            "customer": self.customer.to_wire() if self.customer else None,
            "items": [item.to_wire() for item in self.items],
            **self.totals.to_wire(),
            "paymentMethod": self.payment_method.value,
            "paymentDetails": split_to_wire(self.split) if self.split else None,
            "tendered": self.tendered,
            "change": self.change,
            "status": self.status.value,
            "createdAt": _iso(self.created_at),
            "voidedAt": _iso(self.voided_at),
            "voidReason": self.void_reason,
        }

    @classmethod
    def from_wire(cls, data: Dict[str, Any]) -> Invoice:
        return cls(
            id=data["id"],
            invoice_number=int(data["invoiceNumber"]),
            items=tuple(CartItem.from_wire(i) for i in data["items"]),
            totals=Totals.from_wire(data),
            payment_method=PaymentMethod(data["paymentMethod"]),
            status=InvoiceStatus(data["status"]),
            created_at=_dt(data["createdAt"]),
            cashier_name=data["cashierName"],
            customer=Customer.from_wire(data.get("customer")),
            tendered=data.get("tendered"),
            change=data.get("change"),
            voided_at=_dt(data.get("voidedAt")),
            void_reason=data.get("voidReason") or "",
            split=split_from_wire(data.get("paymentDetails")),
        )


@dataclass(frozen=True)
class CashClosing:
    """
    One till session from opening float to counted drawer. Sales figures
    are filled in when the closing is finalized.
    """

    id: str
    day: date
    cashier_name: str
    opened_at: datetime
    initial_amount: int
    status: ClosingStatus = ClosingStatus.OPEN
    closed_at: Optional[datetime] = None
    total_sales: int = 0
    by_method: Dict[PaymentMethod, int] = field(default_factory=dict)
    transaction_count: int = 0
    physical_count: int = 0
    expected_cash: int = 0
    difference: int = 0
    notes: str = ""

    @property
    def cash_sales(self) -> int:
        return self.by_method.get(PaymentMethod.CASH, 0)

    def to_wire(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "date": self.day.isoformat(),
            "cashierName": self.cashier_name,
            "startTime": _iso(self.opened_at),
            "endTime": _iso(self.closed_at),
            "initialAmount": self.initial_amount,
            "totalSales": self.total_sales,
            **split_to_wire(self.by_method, suffix="Sales"),
            "transactionCount": self.transaction_count,
            "physicalCashCount": self.physical_count,
            "expectedCash": self.expected_cash,
            "difference": self.difference,
            "notes": self.notes,
            "status": self.status.value,
        }

    @classmethod
    def from_wire(cls, data: Dict[str, Any]) -> CashClosing:
        return cls(
            id=data["id"],
            day=date.fromisoformat(data["date"]),
            cashier_name=data["cashierName"],
            opened_at=_dt(data["startTime"]),
            initial_amount=int(data["initialAmount"]),
            status=ClosingStatus(data["status"]),
            closed_at=_dt(data.get("endTime")),
            total_sales=int(data.get("totalSales", 0)),
            by_method=split_from_wire(data, suffix="Sales"),
            transaction_count=int(data.get("transactionCount", 0)),
            physical_count=int(data.get("physicalCashCount", 0)),
            expected_cash=int(data.get("expectedCash", 0)),
            difference=int(data.get("difference", 0)),
            notes=data.get("notes") or "",
        )


# every method except MIXED, in display order
SPLIT_METHODS = tuple(m for m in PaymentMethod if m is not PaymentMethod.MIXED)


def split_to_wire(amounts: Dict[PaymentMethod, int], suffix: str = "Amount") -> Dict[str, int]:
    # {"cashAmount": ..., "cardAmount": ...}; zero parts are left out
    return {f"{m.value}{suffix}": amounts[m] for m in SPLIT_METHODS if amounts.get(m)}


def split_from_wire(data: Optional[Dict[str, Any]], suffix: str = "Amount") -> Dict[PaymentMethod, int]:
    if not data:
        return {}
    return {
        m: int(data[f"{m.value}{suffix}"])
        for m in SPLIT_METHODS
        if data.get(f"{m.value}{suffix}")
    }


def decode_list(raw: Optional[bytes]) -> List[Dict[str, Any]]:
    return decode(raw, default=[])
