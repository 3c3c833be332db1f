"""Activation of work items: move to the active state and assign to the current user."""

import structlog

from workitem_linker.client import RemoteClient
from workitem_linker.errors import ActivationError

logger = structlog.get_logger()

ACTIVE_STATE = "Active"


async def activate_work_item(client: RemoteClient, item_id: int, state: str = ACTIVE_STATE) -> str:
    """Move a work item to ``state`` and assign it to the signed-in user.

    Args:
        client: Remote client
        item_id: Work item ID
        state: Target state name; process templates differ, e.g. "Doing"

    Returns:
        The user the work item was assigned to

    Raises:
        ActivationError: The signed-in user cannot be determined
    """
    user = await client.get_current_user()
    if not user:
        raise ActivationError("Could not determine current user")

    await client.update_item_state(item_id, state, assigned_to=user)
    logger.info("Activated work item", item_id=item_id, state=state, assigned_to=user)
    return user
