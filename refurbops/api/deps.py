from typing import Annotated, Optional
import hmac
import uuid
import logging

from fastapi import Depends, Header, HTTPException, status, Request

from refurbops.context import AppContext
from refurbops.core.exceptions import ConfigurationMissing
from refurbops.core.permissions import Actor, Role
from refurbops.models.user import User
from refurbops.services.workflow_service import WorkflowService


logger = logging.getLogger(__name__)


def get_context(request: Request) -> AppContext:
    """The application context built in the lifespan (or injected by tests)."""
    return request.app.state.ctx


def get_workflow_service(ctx: Annotated[AppContext, Depends(get_context)]) -> WorkflowService:
    return WorkflowService(ctx)


async def get_current_actor(
    ctx: Annotated[AppContext, Depends(get_context)],
    x_actor_id: Annotated[Optional[str], Header()] = None,
) -> Actor:
    """
    Resolve the acting user from the X-Actor-Id header.

    Identity comes from the upstream gateway; here it is only looked up
    against the user directory and mapped to role capabilities.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not identify the acting user",
    )
    if not x_actor_id:
        raise credentials_exception

    try:
        user_uuid = uuid.UUID(x_actor_id)
    except ValueError:
        logger.warning(f"Invalid X-Actor-Id header: {x_actor_id}")
        raise credentials_exception

    async with ctx.session() as db:
        user = await db.get(User, user_uuid)

    if user is None:
        logger.warning(f"Actor {x_actor_id} not found")
        raise credentials_exception

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is deactivated"
        )

    return Actor.for_role(user.id, Role(user.role), name=user.name)


async def verify_cron_secret(
    ctx: Annotated[AppContext, Depends(get_context)],
    authorization: Annotated[Optional[str], Header()] = None,
    x_cron_secret: Annotated[Optional[str], Header()] = None,
) -> None:
    """
    Accept `Authorization: Bearer <CRON_SECRET>` or `X-Cron-Secret: <CRON_SECRET>`.

    Compared in constant time. An unset secret refuses every caller.
    """
    expected = ctx.settings.CRON_SECRET
    if not expected:
        logger.warning("Cron endpoint called but CRON_SECRET is not configured")
        raise ConfigurationMissing("CRON_SECRET not configured")

    provided = x_cron_secret
    if authorization and authorization.lower().startswith("bearer "):
        provided = authorization[7:].strip()

    if not provided or not hmac.compare_digest(provided.encode(), expected.encode()):
        logger.warning("Cron endpoint called with an invalid secret")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )


# Type aliases for cleaner dependency injection
Context = Annotated[AppContext, Depends(get_context)]
Workflow = Annotated[WorkflowService, Depends(get_workflow_service)]
CurrentActor = Annotated[Actor, Depends(get_current_actor)]
