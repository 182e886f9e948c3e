"""Push token registration and inbound message dispatch."""

from typing import Optional

from fastapi import APIRouter, Depends

from ..models import NavigationIntent, PushMessage, RegisterTokenRequest
from ..services import Principal
from ..state import get_state
from .deps import get_principal

router = APIRouter()


@router.post("/token")
async def register_token(request: RegisterTokenRequest, principal: Principal = Depends(get_principal)):
    await get_state().relay.register_token(principal.id, request.token)
    return {"success": True}


@router.delete("/token")
async def remove_token(principal: Principal = Depends(get_principal)):
    await get_state().relay.remove_token(principal.id)
    return {"success": True}


@router.post("/dispatch", response_model=Optional[NavigationIntent])
def dispatch(message: PushMessage, foreground: bool = True, principal: Principal = Depends(get_principal)):
    """Hand an inbound message to the registered handlers; returns where to navigate, if anywhere."""
    return get_state().relay.dispatch(message, foreground=foreground)
