"""Request dependencies: the authenticated principal from a Bearer identity token."""

from typing import Optional

from fastapi import Header

from ..errors import Unauthenticated
from ..services import Principal
from ..state import get_state


def bearer_token(authorization: Optional[str]) -> str:
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise Unauthenticated("Missing bearer token")
    return token.strip()


def get_principal(authorization: Optional[str] = Header(default=None)) -> Principal:
    """Verify the Authorization header and return the caller's principal."""
    return get_state().identity.verify_token(bearer_token(authorization))
