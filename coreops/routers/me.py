from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from coreops.db.session import get_db
from coreops.schemas.security import GrantOut, MeOut
from coreops.security.auth import load_active_user
from coreops.security.context import AuthContext
from coreops.security.dependencies import get_auth_context
from coreops.security.grants import resolve_grants
from coreops.security.month_close import RouteGroup

router = APIRouter(prefix="/api/v1", tags=[RouteGroup.ME.value])


@router.get("/me", response_model=MeOut)
def me(auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)) -> MeOut:
    user = load_active_user(db, auth.user_id)
    grants = resolve_grants(db, auth.user_id)
    return MeOut(
        id=user.id,
        username=user.username,
        email=user.email,
        roles=sorted(grants.roles),
        permissions=sorted(grants.permissions),
        universal=grants.is_universal,
        grants=[
            GrantOut(
                role_name=g.role_name,
                scope=g.scope.value,
                division_id=g.division_id,
                permission_code=g.permission_code,
            )
            for g in grants.scoped
        ],
    )
