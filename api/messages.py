"""
API endpoints bridging UI contexts and host events into the agent.

This module provides API endpoints for:
1. Delivering messages from UI and content contexts
2. Reporting permission grants and revocations
3. Running keyboard commands
4. Checking boot status
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, Path

from blocker import FilteringAgent
from blocker.crash_guard import BootOutcome
from blocker.utils.constants import COMMAND_SCRIPTS
from version import get_version_info

from .agent import get_agent
from .models import (
    CommandModel,
    CommandResponseModel,
    HealthModel,
    MessageModel,
    MessageResponseModel,
    PermissionsModel,
    PermissionsResponseModel,
)

router = APIRouter(
    prefix="/api",
    tags=["agent"],
)

logger = logging.getLogger(__name__)


@router.post("/messages", response_model=MessageResponseModel)
async def post_message(
    message: MessageModel,
    agent: FilteringAgent = Depends(get_agent)
) -> MessageResponseModel:
    """Deliver a message to the agent and return its reply."""
    response = await agent.dispatch(message.to_request(), message.sender.to_sender())
    return MessageResponseModel(response=response)


@router.post("/permissions/added", response_model=PermissionsResponseModel)
async def permissions_added(
    permissions: PermissionsModel,
    agent: FilteringAgent = Depends(get_agent)
) -> PermissionsResponseModel:
    """Report newly granted host permissions."""
    changed = await agent.on_permissions_added(permissions.origins)
    return PermissionsResponseModel(changed=changed)


@router.post("/permissions/removed", response_model=PermissionsResponseModel)
async def permissions_removed(
    permissions: PermissionsModel,
    agent: FilteringAgent = Depends(get_agent)
) -> PermissionsResponseModel:
    """Report revoked host permissions."""
    changed = await agent.on_permissions_removed(permissions.origins)
    return PermissionsResponseModel(changed=changed)


@router.post("/commands/{command}", response_model=CommandResponseModel)
async def run_command(
    body: CommandModel,
    command: str = Path(..., description="Keyboard command name"),
    agent: FilteringAgent = Depends(get_agent)
) -> CommandResponseModel:
    """Run a keyboard command against the active tab."""
    if command not in COMMAND_SCRIPTS:
        raise HTTPException(status_code=404, detail=f"Unknown command: {command}")
    handled = await agent.on_command(command, body.tab_id)
    return CommandResponseModel(command=command, handled=handled)


@router.get("/health", response_model=HealthModel)
async def health_check(agent: FilteringAgent = Depends(get_agent)) -> HealthModel:
    """Boot state of the agent."""
    outcome = agent.barrier.outcome
    if outcome is None:
        status = "booting"
    elif outcome is BootOutcome.READY:
        status = "healthy"
    else:
        status = "degraded"
    info = get_version_info()
    return HealthModel(
        status=status,
        version=info["version"],
        build=info["build"],
        components=info["components"],
        state=agent.state,
        outcome=outcome.value if outcome else None,
    )
