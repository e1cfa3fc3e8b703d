"""Access context endpoint for the active team."""

from fastapi import APIRouter, Depends

from ardine.core.auth import RequestUserContext, get_current_user_context
from ardine.core.permissions import team_capabilities

router = APIRouter(prefix="/access", tags=["access"])


@router.get("/context")
def get_access_context(context: RequestUserContext = Depends(get_current_user_context)) -> dict[str, object]:
    """Return the caller's role in the active team and the capabilities it grants.

    Clients use the capability flags to hide invoicing and rate displays.
    """

    return {
        "user_id": str(context.user_id),
        "instance_role": context.instance_role.value,
        "team_id": str(context.active_team_id) if context.active_team_id is not None else None,
        "team_role": context.team_role.value if context.team_role is not None else None,
        "has_access": context.is_team_member,
        "capabilities": team_capabilities(context.team_role),
    }
