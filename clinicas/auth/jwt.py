"""
Tokens de acceso RS256.

El servicio de autenticación emite los tokens; acá solo se verifican y
se traducen a `AccessClaims`. `issue_access_token` queda para
herramientas internas y tests de integración.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from uuid import UUID

import jwt

from clinicas.config import get_settings

settings = get_settings()

ACCESS_TOKEN_TYPE = "access"
REQUIRED_CLAIMS = ["exp", "sub", "clinic_id"]


@dataclass(frozen=True)
class AccessClaims:
    user_id: UUID
    clinic_id: UUID
    role: str
    token_type: str

    @classmethod
    def from_payload(cls, payload: dict) -> "AccessClaims":
        """Lanza ValueError si sub o clinic_id no son UUID."""
        return cls(
            user_id=UUID(payload["sub"]),
            clinic_id=UUID(payload["clinic_id"]),
            role=payload.get("role", ""),
            token_type=payload.get("type", ACCESS_TOKEN_TYPE),
        )


def issue_access_token(
    user_id: UUID,
    clinic_id: UUID,
    role: str,
    expires_in: timedelta | None = None,
) -> str:
    now = datetime.now(timezone.utc)
    lifetime = expires_in or timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES)
    return jwt.encode(
        {
            "sub": str(user_id),
            "clinic_id": str(clinic_id),
            "role": role,
            "type": ACCESS_TOKEN_TYPE,
            "iat": now,
            "exp": now + lifetime,
        },
        settings.jwt_private_key,
        algorithm=settings.JWT_ALGORITHM,
    )


def read_access_token(token: str) -> AccessClaims:
    """
    Verifica firma, expiración y claims obligatorios.

    Raises:
        jwt.InvalidTokenError: firma inválida, expirado o sin claims.
        ValueError: claims con formato inválido.
    """
    payload = jwt.decode(
        token,
        settings.jwt_public_key,
        algorithms=[settings.JWT_ALGORITHM],
        leeway=settings.JWT_LEEWAY_SECONDS,
        options={"require": REQUIRED_CLAIMS},
    )
    return AccessClaims.from_payload(payload)
