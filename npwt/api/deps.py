# npwt/api/deps.py

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID

from npwt.core.config import settings
from npwt.core.exceptions import PermissionDeniedError
from npwt.core.permissions import Authorizer, can
from npwt.core.security import decode_access_token
from npwt.db.session import get_db
from npwt.models.user import User

oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.API_V1_PREFIX}/auth/login")


# ======================================================
# AUTHENTIFICATION UTILISATEUR
# ======================================================

def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db)
) -> User:
    """Récupère l'utilisateur courant depuis le token JWT"""

    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Token invalide ou expiré",
        headers={"WWW-Authenticate": "Bearer"},
    )

    payload = decode_access_token(token)
    if not payload:
        raise credentials_exception

    user_id: Optional[str] = payload.get("sub")
    try:
        user_uuid = UUID(str(user_id))
    except ValueError:
        raise credentials_exception

    user = db.query(User).filter(User.id == user_uuid).first()
    if not user:
        raise credentials_exception

    return user


def get_current_active_user(
    current_user: User = Depends(get_current_user)
) -> User:
    """Vérifie que l'utilisateur est actif"""

    if not current_user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Utilisateur inactif"
        )

    return current_user


# ======================================================
# PERMISSIONS
# ======================================================

def get_authorizer() -> Authorizer:
    """Vérificateur de capacités injecté dans les services (remplaçable en test)"""
    return can


def require_permission(permission: str):
    """Vérifie une permission pour les routes en lecture seule (rapports)"""

    def permission_checker(
        current_user: User = Depends(get_current_active_user),
        authorizer: Authorizer = Depends(get_authorizer),
    ) -> User:

        if not authorizer(current_user, permission):
            raise PermissionDeniedError(permission, current_user.role)

        return current_user

    return permission_checker


__all__ = [
    "get_db",
    "get_current_user",
    "get_current_active_user",
    "get_authorizer",
    "require_permission",
    "oauth2_scheme",
]
