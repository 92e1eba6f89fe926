"""
Dependencies de FastAPI: usuario autenticado, tenant y permisos.
"""

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from clinicas.auth.jwt import ACCESS_TOKEN_TYPE, read_access_token
from clinicas.auth.rbac import has_permission
from clinicas.core.exceptions import CredentialsException, ForbiddenException
from clinicas.database import get_db, set_tenant_context
from clinicas.models.user import User

security = HTTPBearer()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Usuario activo del token. Debe pertenecer a la clínica que indica el
    token; si no, el token se rechaza como inválido. Fija el contexto RLS.
    """
    try:
        claims = read_access_token(credentials.credentials)
    except (jwt.InvalidTokenError, ValueError):
        raise CredentialsException("Token inválido o expirado")

    if claims.token_type != ACCESS_TOKEN_TYPE:
        raise CredentialsException("Tipo de token inválido")

    user = await db.scalar(
        select(User).where(
            User.id == claims.user_id,
            User.clinic_id == claims.clinic_id,
            User.is_active.is_(True),
        )
    )
    if user is None:
        raise CredentialsException("Usuario no encontrado o inactivo")

    await set_tenant_context(db, user.clinic_id)
    return user


def require_permission(resource: str, action: str):
    """
    Dependency que exige el permiso `resource.action` según el rol.

        user: User = Depends(require_permission("appointment", "pay"))
    """

    async def _check(user: User = Depends(get_current_user)) -> User:
        if not has_permission(user.role, resource, action):
            raise ForbiddenException(
                f"El rol {user.role.value} no puede realizar '{resource}.{action}'"
            )
        return user

    return _check
