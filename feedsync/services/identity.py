"""
Identity Provider abstraction.

Authenticates principals and exposes the current principal plus an auth-state
change stream. Implementations: static (local/tests), Firebase Auth (production).
Account emails (password reset, address verification) are delivered by the provider.
"""

import asyncio
import logging
import re
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Protocol, Tuple, Union

import firebase_admin
import httpx
from firebase_admin import auth
from firebase_admin import exceptions as firebase_exceptions
from google.auth import exceptions as google_auth_exceptions

from ..errors import NotFound, TransportError, Unauthenticated, ValidationError
from .firebase_app import ensure_firebase_app

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_PASSWORD_LENGTH = 6

# Identity Toolkit out-of-band email request types
PASSWORD_RESET = "PASSWORD_RESET"
VERIFY_EMAIL = "VERIFY_EMAIL"
SEND_OOB_CODE_URL = "https://identitytoolkit.googleapis.com/v1/projects/{project_id}/accounts:sendOobCode"


@dataclass(frozen=True)
class Principal:
    id: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    email_verified: bool = False


AuthStateHandler = Callable[[Optional[Principal]], None]


def validate_registration(email: str, password: str) -> str:
    """Return the normalized email or raise ValidationError."""
    email = (email or "").strip()
    if not email or not password:
        raise ValidationError("Please fill all fields")
    if not EMAIL_PATTERN.match(email):
        raise ValidationError("Please enter a valid email address")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password should be at least {MIN_PASSWORD_LENGTH} characters")
    return email


def _account_key(email: str) -> str:
    return (email or "").strip().lower()


class IdentityProvider(Protocol):
    """Protocol for authentication. Implement for static tokens or Firebase Auth."""

    def current_principal(self) -> Optional[Principal]:
        ...

    def on_auth_state_changed(self, handler: AuthStateHandler) -> Callable[[], None]:
        """Register handler; it is called immediately with the current principal. Returns a disposer."""
        ...

    def verify_token(self, token: str) -> Principal:
        """Resolve an identity token to its principal. Raises Unauthenticated."""
        ...

    def sign_in(self, principal: Principal) -> None:
        ...

    def sign_out(self) -> None:
        ...

    def create_account(self, email: str, password: str, display_name: str = "") -> Principal:
        ...

    def password_reset_link(self, email: str) -> str:
        ...

    def email_verification_link(self, email: str) -> str:
        ...

    async def send_password_reset_email(self, email: str) -> None:
        """Email a reset link to the account. Raises NotFound for unknown addresses."""
        ...

    async def send_email_verification(self, email: str) -> None:
        """Email an address-verification link to the account."""
        ...


class _AuthState:
    """Current principal plus change handlers, shared by the implementations."""

    def __init__(self) -> None:
        self._current: Optional[Principal] = None
        self._handlers: List[AuthStateHandler] = []

    def current_principal(self) -> Optional[Principal]:
        return self._current

    def on_auth_state_changed(self, handler: AuthStateHandler) -> Callable[[], None]:
        self._handlers.append(handler)
        handler(self._current)

        def _dispose() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return _dispose

    def _set_current(self, principal: Optional[Principal]) -> None:
        if principal == self._current:
            return
        self._current = principal
        for handler in list(self._handlers):
            handler(principal)

    def sign_in(self, principal: Principal) -> None:
        self._set_current(principal)

    def sign_out(self) -> None:
        self._set_current(None)


class StaticIdentityProvider(_AuthState):
    """
    Identity provider backed by an in-process token table.
    Used for local development and tests; tokens are opaque strings and
    account emails land in `outbox` as (request type, email, link).
    """

    def __init__(self, tokens: Optional[Dict[str, Principal]] = None):
        super().__init__()
        self._tokens: Dict[str, Principal] = dict(tokens or {})
        self._accounts: Dict[str, Tuple[Principal, str]] = {}
        self.outbox: List[Tuple[str, str, str]] = []

    def issue_token(self, principal: Principal) -> str:
        token = uuid.uuid4().hex
        self._tokens[token] = principal
        return token

    def verify_token(self, token: str) -> Principal:
        principal = self._tokens.get((token or "").strip())
        if principal is None:
            raise Unauthenticated("Invalid or expired token")
        return principal

    def create_account(self, email: str, password: str, display_name: str = "") -> Principal:
        email = validate_registration(email, password)
        key = email.lower()
        if key in self._accounts:
            raise ValidationError("This email is already in use. Please use a different email address")
        principal = Principal(id=uuid.uuid4().hex[:28], email=email, display_name=display_name or None)
        self._accounts[key] = (principal, password)
        return principal

    def _require_account(self, email: str) -> str:
        key = _account_key(email)
        if key not in self._accounts:
            raise NotFound(f"accounts/{key}")
        return key

    def password_reset_link(self, email: str) -> str:
        return f"https://localhost/reset-password?email={self._require_account(email)}"

    def email_verification_link(self, email: str) -> str:
        return f"https://localhost/verify-email?email={self._require_account(email)}"

    async def send_password_reset_email(self, email: str) -> None:
        link = self.password_reset_link(email)
        self.outbox.append((PASSWORD_RESET, _account_key(email), link))

    async def send_email_verification(self, email: str) -> None:
        link = self.email_verification_link(email)
        self.outbox.append((VERIFY_EMAIL, _account_key(email), link))


class FirebaseIdentityProvider(_AuthState):
    """
    Identity provider backed by Firebase Authentication (firebase-admin).
    Account emails go through the Identity Toolkit sendOobCode endpoint, authorized
    with the Firebase app's service-account credential.
    """

    def __init__(
        self,
        project_id: Optional[str] = None,
        credentials_path: Optional[Union[Path, str]] = None,
        timeout: float = 10.0,
    ):
        super().__init__()
        ensure_firebase_app(project_id, credentials_path)
        self._timeout = timeout

    def verify_token(self, token: str) -> Principal:
        try:
            decoded = auth.verify_id_token(token)
        except (auth.InvalidIdTokenError, auth.ExpiredIdTokenError, auth.RevokedIdTokenError) as e:
            raise Unauthenticated(str(e)) from e
        except ValueError as e:
            raise Unauthenticated("Malformed identity token") from e
        except firebase_exceptions.FirebaseError as e:
            logger.error("[FirebaseIdentityProvider] verify_token failed: %s", e)
            raise TransportError(str(e)) from e
        return Principal(
            id=decoded["uid"],
            email=decoded.get("email"),
            display_name=decoded.get("name"),
            email_verified=bool(decoded.get("email_verified", False)),
        )

    def create_account(self, email: str, password: str, display_name: str = "") -> Principal:
        email = validate_registration(email, password)
        try:
            record = auth.create_user(email=email, password=password, display_name=display_name or None)
        except auth.EmailAlreadyExistsError as e:
            raise ValidationError(
                "This email is already in use. Please use a different email address"
            ) from e
        except ValueError as e:
            raise ValidationError(str(e)) from e
        except firebase_exceptions.FirebaseError as e:
            logger.error("[FirebaseIdentityProvider] create_account failed: %s", e)
            raise TransportError(str(e)) from e
        return Principal(
            id=record.uid,
            email=record.email,
            display_name=record.display_name,
            email_verified=record.email_verified,
        )

    def password_reset_link(self, email: str) -> str:
        try:
            return auth.generate_password_reset_link(email.strip())
        except auth.UserNotFoundError as e:
            raise NotFound(f"accounts/{_account_key(email)}") from e
        except firebase_exceptions.FirebaseError as e:
            raise TransportError(str(e)) from e

    def email_verification_link(self, email: str) -> str:
        try:
            return auth.generate_email_verification_link(email.strip())
        except auth.UserNotFoundError as e:
            raise NotFound(f"accounts/{_account_key(email)}") from e
        except firebase_exceptions.FirebaseError as e:
            raise TransportError(str(e)) from e

    async def send_password_reset_email(self, email: str) -> None:
        await self._send_oob_code(PASSWORD_RESET, email)

    async def send_email_verification(self, email: str) -> None:
        await self._send_oob_code(VERIFY_EMAIL, email)

    async def _send_oob_code(self, request_type: str, email: str) -> None:
        app = firebase_admin.get_app()
        try:
            token = await asyncio.to_thread(lambda: app.credential.get_access_token().access_token)
        except google_auth_exceptions.GoogleAuthError as e:
            logger.error("[FirebaseIdentityProvider] access token refresh failed: %s", e)
            raise TransportError(str(e)) from e

        url = SEND_OOB_CODE_URL.format(project_id=app.project_id)
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(
                    url,
                    json={"requestType": request_type, "email": email.strip()},
                    headers={"Authorization": f"Bearer {token}"},
                )
        except httpx.HTTPError as e:
            logger.error("[FirebaseIdentityProvider] %s email to %s failed: %s", request_type, email, e)
            raise TransportError(f"{request_type} email failed: {e}") from e

        if response.status_code == 400 and "EMAIL_NOT_FOUND" in response.text:
            raise NotFound(f"accounts/{_account_key(email)}")
        if response.is_error:
            logger.error(
                "[FirebaseIdentityProvider] %s email to %s rejected: %s %s",
                request_type, email, response.status_code, response.text,
            )
            raise TransportError(f"{request_type} email rejected with status {response.status_code}")
        logger.info("[FirebaseIdentityProvider] sent %s email to %s", request_type, email)
