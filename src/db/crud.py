# src/db/crud.py
# catalog and user-account collaborators, stored as JSON collections in the Store
from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional
from uuid import uuid4

import bcrypt

from core.errors import InvalidStateError, NotFoundError
from db.database import Store
from db.models import Product, Role, User, decode_list, encode
from utils.logger import get_logger

_logger = get_logger(__name__)

PRODUCTS_KEY = "products"
USERS_KEY = "users"

BCRYPT_ROUNDS = 12
MIN_PASSWORD_LENGTH = 6


def _to_int(val) -> Optional[int]:
    try:
        return int(val)
    except (TypeError, ValueError):
        return None


# ---------------------------
# Products (Search, Read/Update)
# ---------------------------


async def list_products(store: Store, include_inactive: bool = False) -> List[Product]:
    """All products ordered by pid."""
    products = [Product.from_wire(row) for row in decode_list(await store.get(PRODUCTS_KEY))]
    if not include_inactive:
        products = [p for p in products if p.is_active]
    return sorted(products, key=lambda p: p.pid)


async def get_product(store: Store, pid: int) -> Optional[Product]:
    """Fetch a product by pid, active or not."""
    for row in decode_list(await store.get(PRODUCTS_KEY)):
        if int(row["id"]) == pid:
            return Product.from_wire(row)
    return None


async def save_product(store: Store, product: Product) -> Product:
    """Insert or replace a product by pid."""
    if product.price < 0 or product.cost < 0:
        raise ValueError("Price and cost cannot be negative.")

    def upsert(raw: Optional[bytes]) -> bytes:
        rows = [row for row in decode_list(raw) if int(row["id"]) != product.pid]
        rows.append(product.to_wire())
        return encode(rows)

    await store.update(PRODUCTS_KEY, upsert)
    return product


async def next_product_id(store: Store) -> int:
    pids = [int(row["id"]) for row in decode_list(await store.get(PRODUCTS_KEY))]
    return max(pids, default=1000) + 1


async def delete_product(store: Store, pid: int) -> None:
    def drop(raw: Optional[bytes]) -> bytes:
        rows = decode_list(raw)
        kept = [row for row in rows if int(row["id"]) != pid]
        if len(kept) == len(rows):
            raise NotFoundError(f"Product {pid} not found.")
        return encode(kept)

    await store.update(PRODUCTS_KEY, drop)


async def update_product_price_stock(
    store: Store,
    pid: int,
    new_price: Optional[int],
    new_stock: Optional[Decimal],
) -> bool:
    """
    Update price and/or stock (only provided fields). Return True if the product exists
    and something was given to update.
    """
    if new_price is None and new_stock is None:
        return False
    prod = await get_product(store, pid)
    if prod is None:
        return False
    await save_product(
        store,
        replace(
            prod,
            price=prod.price if new_price is None else new_price,
            stock=prod.stock if new_stock is None else new_stock,
        ),
    )
    return True


async def adjust_stock(store: Store, quantities: Dict[int, Decimal]) -> None:
    """
    Subtract sold quantities from tracked stock. Products with unbounded stock
    or no longer in the catalog are left alone; stock never goes below zero.
    """

    def apply(raw: Optional[bytes]) -> bytes:
        rows = []
        for row in decode_list(raw):
            prod = Product.from_wire(row)
            sold = quantities.get(prod.pid)
            if sold is not None and prod.stock is not None:
                prod = replace(prod, stock=max(prod.stock - sold, Decimal(0)))
            rows.append(prod.to_wire())
        return encode(rows)

    await store.update(PRODUCTS_KEY, apply)


async def search_products(
    store: Store, query: str, include_inactive: bool = False
) -> List[Product]:
    """
    Case-insensitive mixed search used by the till.
    Rules:
    - Empty string: return all products ordered by pid.
    - Numeric only: exact pid or barcode match first; fall back to keyword search
      over name/category only if nothing matched exactly.
    - Multiple words: exact phrase first, then each word individually; exact
      results come first and nothing is listed twice.
    - Single non-numeric word: keyword search over name/category/barcode.
    """
    phrase = (query or "").strip().lower()
    products = await list_products(store, include_inactive=include_inactive)
    if not phrase:
        return products

    results: List[Product] = []
    seen: set[int] = set()

    def add_matches(matches):
        for p in matches:
            if p.pid in seen:
                continue
            seen.add(p.pid)
            results.append(p)

    def keyword(term: str):
        return [
            p
            for p in products
            if term in p.name.lower()
            or term in p.category.lower()
            or term in p.barcode.lower()
        ]

    if phrase.isdigit():
        pid_val = _to_int(phrase)
        add_matches(p for p in products if p.pid == pid_val or p.barcode == phrase)
        if not results:
            add_matches(keyword(phrase))
        return results

    words = [w for w in phrase.split() if w]
    if len(words) > 1:
        add_matches(keyword(phrase))
        for w in dict.fromkeys(words):
            add_matches(keyword(w))
        return results

    return keyword(phrase)


# ---------------------------
# Accounts
# ---------------------------


def hash_password(password: str, rounds: int = BCRYPT_ROUNDS) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("ascii")


def check_password(password: str, password_hash: str) -> bool:
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("ascii"))
    except ValueError:
        # malformed hash in storage
        return False


async def list_users(store: Store) -> List[User]:
    return [User.from_wire(row) for row in decode_list(await store.get(USERS_KEY))]


async def has_users(store: Store) -> bool:
    return bool(decode_list(await store.get(USERS_KEY)))


async def get_user(store: Store, uid: str) -> Optional[User]:
    """Return a User for the given uid, or None if not found."""
    for user in await list_users(store):
        if user.uid == uid:
            return user
    return None


async def find_user_by_email(store: Store, email: str) -> Optional[User]:
    email = email.strip().lower()
    for user in await list_users(store):
        if user.email.lower() == email:
            return user
    return None


async def register_user(
    store: Store,
    name: str,
    email: str,
    password: str,
    role: Role,
    rounds: int = BCRYPT_ROUNDS,
) -> User:
    """Create a new account; email addresses are unique (case-insensitive)."""
    name, email = name.strip(), email.strip().lower()
    if not name or not email:
        raise ValueError("Name and email are required.")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValueError(f"Password must have at least {MIN_PASSWORD_LENGTH} characters.")

    # bcrypt is deliberately slow; keep it off the event loop
    password_hash = await asyncio.to_thread(hash_password, password, rounds)
    now = datetime.now()
    user = User(
        uid=f"user_{uuid4().hex[:12]}",
        name=name,
        email=email,
        role=Role(role),
        password_hash=password_hash,
        is_active=True,
        created_at=now,
    )

    def append(raw: Optional[bytes]) -> bytes:
        rows = decode_list(raw)
        if any(row["email"].lower() == email for row in rows):
            raise InvalidStateError(f"Email {email} is already registered.")
        rows.append(user.to_wire())
        return encode(rows)

    await store.update(USERS_KEY, append)
    _logger.info(f"Registered {user.role.value} account {email}")
    return user


async def set_user_active(store: Store, uid: str, is_active: bool) -> User:
    updated: List[User] = []

    def toggle(raw: Optional[bytes]) -> bytes:
        rows = decode_list(raw)
        for i, row in enumerate(rows):
            if row["id"] == uid:
                user = replace(User.from_wire(row), is_active=is_active)
                rows[i] = user.to_wire()
                updated.append(user)
                return encode(rows)
        raise NotFoundError(f"User {uid} not found.")

    await store.update(USERS_KEY, toggle)
    return updated[0]


async def verify_credentials(store: Store, email: str, password: str) -> Optional[User]:
    """
    Return the User if email/password match an account; otherwise None.
    Stamps last_login on success.
    """
    user = await find_user_by_email(store, email)
    if user is None:
        return None
    if not await asyncio.to_thread(check_password, password, user.password_hash):
        return None
    user = replace(user, last_login=datetime.now())

    def stamp(raw: Optional[bytes]) -> bytes:
        rows = decode_list(raw)
        for i, row in enumerate(rows):
            if row["id"] == user.uid:
                rows[i] = user.to_wire()
        return encode(rows)

    await store.update(USERS_KEY, stamp)
    return user

