"""Inbound interaction webhook.

The gateway (or a relay in front of it) posts each command here.  The
endpoint only validates and queues the event; acknowledging the
interaction and answering it happens in a background task so the
request returns immediately.
"""

from fastapi import APIRouter, BackgroundTasks, Depends, status
from loguru import logger

from ..models.interaction import CommandEvent, InteractionAccepted
from ..services.command_service import CommandService, get_command_service

router = APIRouter(prefix="", tags=["Interactions"])


@router.post(
    "/interactions",
    response_model=InteractionAccepted,
    status_code=status.HTTP_202_ACCEPTED,
)
async def interaction_endpoint(
    event: CommandEvent,
    background_tasks: BackgroundTasks,
    service: CommandService = Depends(get_command_service),
) -> InteractionAccepted:
    """Queue one command event for handling."""
    logger.debug("Received interaction {} (/{})", event.id, event.name)
    background_tasks.add_task(service.handle, event)
    return InteractionAccepted(interaction_id=event.id)
