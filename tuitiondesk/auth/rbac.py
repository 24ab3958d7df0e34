from fastapi import Depends, HTTPException, status

from tuitiondesk.auth.dependencies import get_current_user
from tuitiondesk.auth.schemas import CurrentUser
from tuitiondesk.core.enums import UserRole


def require_roles(*roles: UserRole):
    """
    Dependency factory restricting an endpoint to the given roles.

    Example:
        Depends(require_roles(UserRole.TEACHER))
    """
    allowed = frozenset(roles)

    async def _checker(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if current_user.role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Forbidden",
            )
        return current_user

    return _checker


require_teacher = require_roles(UserRole.TEACHER)
require_super_admin = require_roles(UserRole.SUPER_ADMIN)
