# npwt/core/roles.py
from enum import Enum


class Role(str, Enum):
    ADMINISTRADOR = "administrador"
    CIRUJANO = "cirujano"
    SOPORTE = "soporte"
    FINANCIERO = "financiero"


# Anciens libellés encore présents dans certains profils
LEGACY_ROLES = {
    "enfermera": Role.SOPORTE,
}


def normalize_role(value) -> "Role | None":
    """Convertit un libellé de rôle (y compris ancien) en Role, ou None si inconnu"""
    if isinstance(value, Role):
        return value
    if not value:
        return None
    value = str(value).strip().lower()
    if value in LEGACY_ROLES:
        return LEGACY_ROLES[value]
    try:
        return Role(value)
    except ValueError:
        return None
