# npwt/core/permissions.py
from typing import Any, Callable

from npwt.core.roles import Role, normalize_role

# Actions soumises à contrôle. La consultation simple est ouverte à tout
# utilisateur authentifié.
INVENTORY_CREATE = "inventory:create"
INVENTORY_EDIT = "inventory:edit"
STOCK_ADJUST = "stock:adjust"
STOCK_ENTRY = "stock:entry"
PROCEDURE_CREATE = "procedures:create"
PROCEDURE_SUPPLIES = "procedures:supplies"
PROCEDURE_CLOSE = "procedures:close"
PROCEDURE_EDIT = "procedures:edit"
PATIENT_EDIT = "patients:edit"
MACHINE_EDIT = "machines:edit"
MACHINE_DELETE = "machines:delete"
REPORTS_VIEW = "reports:view"
REPORTS_RECONCILE = "reports:reconcile"

ROLE_PERMISSIONS = {
    Role.ADMINISTRADOR: {"*"},
    Role.CIRUJANO: {
        PROCEDURE_CREATE,
        PROCEDURE_SUPPLIES,
        PROCEDURE_CLOSE,
    },
    Role.SOPORTE: {
        PROCEDURE_CREATE,
        PROCEDURE_SUPPLIES,
        PROCEDURE_CLOSE,
    },
    Role.FINANCIERO: {
        REPORTS_VIEW,
    },
}

# Signature du vérificateur de capacités injecté dans les services
Authorizer = Callable[[Any, str], bool]


def has_permission(role, permission: str) -> bool:
    role = normalize_role(role)
    perms = ROLE_PERMISSIONS.get(role, set())
    if "*" in perms or permission in perms:
        return True
    # Permission de module (ex: "procedures:*")
    return permission.split(":")[0] + ":*" in perms


def can(actor, action: str) -> bool:
    """Vérificateur par défaut, basé sur le rôle de l'utilisateur"""
    if actor is None or not getattr(actor, "is_active", True):
        return False
    return has_permission(getattr(actor, "role", None), action)
