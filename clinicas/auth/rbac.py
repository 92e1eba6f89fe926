"""
Definición de permisos RBAC por rol.
Mapea qué acciones puede realizar cada rol.
"""

from clinicas.models.user import UserRole

_STAFF = [
    UserRole.OWNER,
    UserRole.ADMIN,
    UserRole.RECEPTIONIST,
    UserRole.ESTHETICIAN,
]

# ── Permisos por recurso ─────────────────────────────
# Formato: {recurso: {acción: [roles permitidos]}}
PERMISSIONS: dict[str, dict[str, list[UserRole]]] = {
    "appointment": {
        "create": _STAFF,
        "read": _STAFF,
        "update": _STAFF,
        "status": _STAFF,
        "pay": [UserRole.OWNER, UserRole.ADMIN],
    },
    "availability": {
        "read": _STAFF,
        "update": [UserRole.OWNER, UserRole.ADMIN],
    },
    "reconciliation": {
        "diagnose": [UserRole.OWNER, UserRole.ADMIN],
        "backfill": [UserRole.OWNER, UserRole.ADMIN],
        # Borra todos los gastos de insumos de la clínica
        "reset": [UserRole.OWNER],
    },
}


def has_permission(role: UserRole, resource: str, action: str) -> bool:
    """Verifica si un rol tiene permiso para una acción en un recurso."""
    resource_perms = PERMISSIONS.get(resource, {})
    allowed_roles = resource_perms.get(action, [])
    return role in allowed_roles
