"""Admin endpoints for operational analytics."""

from fastapi import APIRouter, Depends, HTTPException, status
from loguru import logger

from ..memory.persona_registry import PersonaRegistry, get_persona_registry
from ..models.dashboard import DashboardData
from ..models.personality import Personality
from ..models.user import User
from ..services.chat_service import ChatService, get_chat_service

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.get("/dashboard", response_model=DashboardData)
async def dashboard_endpoint(
    service: ChatService = Depends(get_chat_service),
) -> DashboardData:
    """Return usage analytics for every known user."""
    try:
        return service.get_dashboard_data()
    except Exception as exc:  # pragma: no cover
        logger.exception("Failed to build dashboard data")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to build dashboard data",
        ) from exc


@router.get("/users/{user_id}", response_model=User)
async def get_user_endpoint(
    user_id: str,
    service: ChatService = Depends(get_chat_service),
) -> User:
    """Return a snapshot of one user's settings and usage."""
    user = service.store.snapshot(user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


@router.get("/personas", response_model=list[Personality])
async def list_personas_endpoint(
    registry: PersonaRegistry = Depends(get_persona_registry),
) -> list[Personality]:
    """Return the registered personas.  Runtime edits are not persisted."""
    return registry.list()
