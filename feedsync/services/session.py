"""
Process-wide session holder.

Owned by the application shell, not the engine: it follows the identity
provider's auth-state stream and hands explicit principal ids to engine calls.
"""

import logging
from typing import Callable, List, Optional

from ..errors import Unauthenticated
from .identity import IdentityProvider, Principal

logger = logging.getLogger(__name__)


class SessionHolder:
    def __init__(self, identity: IdentityProvider):
        self._principal: Optional[Principal] = None
        self._listeners: List[Callable[[Optional[Principal]], None]] = []
        self._dispose = identity.on_auth_state_changed(self._on_auth_state_changed)

    def _on_auth_state_changed(self, principal: Optional[Principal]) -> None:
        previous, self._principal = self._principal, principal
        if previous != principal:
            logger.info(
                "[SessionHolder] principal changed: %s -> %s",
                previous.id if previous else None,
                principal.id if principal else None,
            )
            for listener in list(self._listeners):
                listener(principal)

    @property
    def principal(self) -> Optional[Principal]:
        return self._principal

    def require_principal(self) -> Principal:
        if self._principal is None:
            raise Unauthenticated("Not signed in")
        return self._principal

    def on_change(self, listener: Callable[[Optional[Principal]], None]) -> None:
        self._listeners.append(listener)

    def close(self) -> None:
        self._dispose()
        self._listeners.clear()
