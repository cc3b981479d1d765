from __future__ import annotations

from dataclasses import dataclass, field
from functools import partial
from typing import Optional

import db.crud as crud
from core.access import AccessControl, Capability
from core.cart import Cart
from core.holds import HoldSaleRegistry
from core.ledger import SaleLedger
from core.money import format_amount
from db.database import SqliteStore, Store
from db.models import Role, User
from utils.config import Settings


@dataclass
class GlobalState:
    """
    Centralized application state shared by screens.

    Fields:
      - settings: runtime configuration
      - store: the persistence capability every component is built on
      - access: session state machine (who is logged in, what they may do)
      - cart: the in-progress sale of this till
      - ledger / holds: invoice ledger and parked-sale registry
    """

    settings: Settings
    store: Store
    access: AccessControl
    ledger: SaleLedger
    holds: HoldSaleRegistry
    cart: Cart = field(default_factory=Cart)

    @classmethod
    def create(cls, settings: Settings, store: Optional[Store] = None) -> GlobalState:
        store = store or SqliteStore(settings.db_path, timeout=settings.store_timeout)
        ledger = SaleLedger(store)
        return cls(
            settings=settings,
            store=store,
            access=AccessControl(
                store,
                verify_credentials=partial(crud.verify_credentials, store),
                lookup_user=partial(crud.get_user, store),
                session_days=settings.session_days,
            ),
            ledger=ledger,
            holds=HoldSaleRegistry(store, ledger, partial(crud.get_product, store)),
            cart=Cart(settings.tax_rate),
        )

    @property
    def user(self) -> Optional[User]:
        return self.access.user

    @property
    def role(self) -> Optional[Role]:
        return self.user.role if self.user else None

    @property
    def cashier_name(self) -> str:
        return self.user.name if self.user else ""

    def permits(self, capability: Capability) -> bool:
        return self.access.permits(capability)

    def fmt(self, amount: int) -> str:
        return format_amount(
            amount, self.settings.currency_symbol, self.settings.currency_exponent
        )

    async def start_session(self) -> bool:
        """Resume a persisted session if possible. Returns True if one was resumed."""
        await self.access.restore()
        return self.access.is_authenticated

    async def end_session(self) -> None:
        """
        End the current session if one exists.
        The cart belongs to the session, so it is dropped as well.
        """
        self.cart.clear()
        await self.access.logout()
