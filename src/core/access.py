"""
Session state machine and role-based capability gating.

States: Anonymous -> Authenticating -> Authenticated(user), and back to
Anonymous on logout, failed login, or a stale persisted token.

`is_permitted` and `require` are pure functions of the session state and
the capability matrix below; they never touch the store.
"""

from __future__ import annotations

import json
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Awaitable, Callable, Dict, FrozenSet, Optional, Union

from core.errors import AuthenticationError, AuthorizationError, InvalidStateError
from db.database import Store
from db.models import Role, User
from utils.logger import get_logger

_logger = get_logger(__name__)

TOKEN_KEY = "auth_token"
USER_ID_KEY = "user_id"


class Capability(Enum):
    SELL = "sell"
    HOLD_SALES = "hold_sales"
    VIEW_SALES_HISTORY = "view_sales_history"
    VOID_INVOICE = "void_invoice"
    MANAGE_INVENTORY = "manage_inventory"
    MANAGE_USERS = "manage_users"
    VIEW_REPORTS = "view_reports"
    RESET_INVOICE_COUNTER = "reset_invoice_counter"
    CASH_CLOSING = "cash_closing"


class RequirementKind(Enum):
    ANY_AUTHENTICATED = "any_authenticated"
    ADMIN_ONLY = "admin_only"
    ROLE_OR_ADMIN = "role_or_admin"


@dataclass(frozen=True)
class Requirement:
    kind: RequirementKind
    role: Optional[Role] = None

    def satisfied_by(self, role: Role) -> bool:
        if role is Role.ADMIN:
            return True
        if self.kind is RequirementKind.ANY_AUTHENTICATED:
            return True
        if self.kind is RequirementKind.ADMIN_ONLY:
            return False
        if self.kind is RequirementKind.ROLE_OR_ADMIN:
            return role is self.role
        raise AssertionError(f"unhandled requirement {self.kind}")


ANY_AUTHENTICATED = Requirement(RequirementKind.ANY_AUTHENTICATED)
ADMIN_ONLY = Requirement(RequirementKind.ADMIN_ONLY)


def role_or_admin(role: Role) -> Requirement:
    return Requirement(RequirementKind.ROLE_OR_ADMIN, role)


# With only admin and cashier every entry is ANY_AUTHENTICATED or ADMIN_ONLY;
# role_or_admin is for capabilities scoped to a role added later.
CAPABILITY_REQUIREMENTS: Dict[Capability, Requirement] = {
    Capability.SELL: ANY_AUTHENTICATED,
    Capability.HOLD_SALES: ANY_AUTHENTICATED,
    Capability.VIEW_SALES_HISTORY: ADMIN_ONLY,
    Capability.VOID_INVOICE: ADMIN_ONLY,
    Capability.MANAGE_INVENTORY: ADMIN_ONLY,
    Capability.MANAGE_USERS: ADMIN_ONLY,
    Capability.VIEW_REPORTS: ADMIN_ONLY,
    Capability.RESET_INVOICE_COUNTER: ADMIN_ONLY,
    Capability.CASH_CLOSING: ANY_AUTHENTICATED,
}

# fixed per-role capability sets; checks only ever consult these
ROLE_CAPABILITIES: Dict[Role, FrozenSet[Capability]] = {
    role: frozenset(
        cap for cap, req in CAPABILITY_REQUIREMENTS.items() if req.satisfied_by(role)
    )
    for role in Role
}


# ---------------------------
# Session states
# ---------------------------


@dataclass(frozen=True)
class Anonymous:
    pass


@dataclass(frozen=True)
class Authenticating:
    email: str


@dataclass(frozen=True)
class Authenticated:
    user: User

    @property
    def role(self) -> Role:
        return self.user.role


SessionState = Union[Anonymous, Authenticating, Authenticated]


def is_permitted(state: SessionState, capability: Capability) -> bool:
    if not isinstance(state, Authenticated):
        return False
    return capability in ROLE_CAPABILITIES[state.role]


def require(state: SessionState, capability: Capability) -> None:
    if not is_permitted(state, capability):
        raise AuthorizationError(
            f"Access to '{capability.value}' denied.", capability=capability
        )


# ---------------------------
# State machine
# ---------------------------

CredentialVerifier = Callable[[str, str], Awaitable[Optional[User]]]
UserLookup = Callable[[str], Awaitable[Optional[User]]]


class AccessControl:
    """
    Owns the process-wide session. Credentials are checked by the injected
    verifier; the session token pair lives in the store so a restart can
    resume the session.
    """

    def __init__(
        self,
        store: Store,
        verify_credentials: CredentialVerifier,
        lookup_user: UserLookup,
        session_days: int = 7,
    ):
        self._store = store
        self._verify = verify_credentials
        self._lookup_user = lookup_user
        self._session_ttl = timedelta(days=session_days)
        self.state: SessionState = Anonymous()

    @property
    def user(self) -> Optional[User]:
        return self.state.user if isinstance(self.state, Authenticated) else None

    @property
    def is_authenticated(self) -> bool:
        return isinstance(self.state, Authenticated)

    def permits(self, capability: Capability) -> bool:
        return is_permitted(self.state, capability)

    def require(self, capability: Capability) -> None:
        require(self.state, capability)

    async def restore(self) -> SessionState:
        """Resolve the session once at start-up from the persisted token pair."""
        raw_token = await self._store.get(TOKEN_KEY)
        raw_uid = await self._store.get(USER_ID_KEY)
        if raw_token is None and raw_uid is None:
            self.state = Anonymous()
            return self.state

        user = None
        reason = "incomplete token pair"
        if raw_token is not None and raw_uid is not None:
            user, reason = await self._check_token(raw_token, raw_uid)

        if user is None:
            _logger.info(f"Discarding stored session: {reason}")
            await self._purge_tokens()
            self.state = Anonymous()
        else:
            _logger.info(f"Resumed session for {user.email}")
            self.state = Authenticated(user)
        return self.state

    async def _check_token(self, raw_token: bytes, raw_uid: bytes):
        try:
            uid = raw_uid.decode("utf-8")
            record = json.loads(raw_token.decode("utf-8"))
            expires_at = datetime.fromisoformat(record["expiresAt"])
        except (ValueError, KeyError, TypeError):
            return None, "malformed token"
        # tokens are written with naive local time
        if not record.get("token") or expires_at.tzinfo is not None:
            return None, "malformed token"
        if record.get("userId") != uid:
            return None, "token does not belong to stored user"
        if expires_at <= datetime.now():
            return None, "token expired"
        user = await self._lookup_user(uid)
        if user is None:
            return None, "unknown user"
        if not user.is_active:
            return None, "user is inactive"
        return user, ""

    async def login(self, email: str, password: str) -> User:
        if not isinstance(self.state, Anonymous):
            raise InvalidStateError("Log out before logging in again.")
        self.state = Authenticating(email)
        try:
            user = await self._verify(email, password)
            if user is None:
                raise AuthenticationError("Invalid email or password.")
            if not user.is_active:
                raise AuthenticationError("This account is disabled.")
            await self._write_tokens(user)
        except BaseException:
            self.state = Anonymous()
            _logger.info(f"Login failed for {email}")
            raise
        self.state = Authenticated(user)
        _logger.info(f"{user.email} logged in as {user.role.value}")
        return user

    async def logout(self) -> None:
        user = self.user
        await self._purge_tokens()
        self.state = Anonymous()
        if user:
            _logger.info(f"{user.email} logged out")

    async def _write_tokens(self, user: User) -> None:
        record = {
            "token": secrets.token_hex(32),
            "userId": user.uid,
            "expiresAt": (datetime.now() + self._session_ttl).isoformat(),
        }
        await self._store.set(TOKEN_KEY, json.dumps(record).encode("utf-8"))
        await self._store.set(USER_ID_KEY, user.uid.encode("utf-8"))

    async def _purge_tokens(self) -> None:
        await self._store.delete(TOKEN_KEY)
        await self._store.delete(USER_ID_KEY)
