from fastapi import Depends, HTTPException, status

from salescrm.auth.deps import get_current_user
from salescrm.auth.models import User
from salescrm.hierarchy.deps import get_role_table
from salescrm.hierarchy.roles import RoleTable


def require_owner():
    def checker(
        user: User = Depends(get_current_user),
        roles: RoleTable = Depends(get_role_table),
    ) -> User:
        if not roles.is_owner(user.role):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Company admin only",
            )
        return user

    return checker
