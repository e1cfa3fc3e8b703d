"""Current user endpoint."""

from fastapi import APIRouter, Depends

from ardine.core.auth import RequestUserContext, get_current_user_context
from ardine.core.permissions import team_capabilities

router = APIRouter(prefix="/me", tags=["me"])


@router.get("")
def get_me(context: RequestUserContext = Depends(get_current_user_context)) -> dict[str, object]:
    """Return current authenticated user profile, instance role and active team role."""

    return {
        "id": str(context.user_id),
        "email": context.email,
        "display_name": context.display_name,
        "status": context.status,
        "instance_role": context.instance_role.value,
        "is_instance_admin": context.is_instance_admin,
        "team_id": str(context.active_team_id) if context.active_team_id is not None else None,
        "team_role": context.team_role.value if context.team_role is not None else None,
        "capabilities": team_capabilities(context.team_role),
    }
