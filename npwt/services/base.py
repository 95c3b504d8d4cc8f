# npwt/services/base.py
import logging
from typing import Any, Dict, Optional

from pydantic import BaseModel
from sqlalchemy.orm import Session

from npwt.core.exceptions import PermissionDeniedError
from npwt.core.permissions import Authorizer, can

logger = logging.getLogger(__name__)


def as_dict(data: Any, exclude_unset: bool = False) -> Dict[str, Any]:
    """Accepte un schéma Pydantic ou un simple dict"""
    if isinstance(data, BaseModel):
        return data.model_dump(exclude_unset=exclude_unset)
    return dict(data or {})


class BaseService:
    """Session + vérificateur de capacités injecté"""

    def __init__(self, db: Session, authorizer: Optional[Authorizer] = None):
        self.db = db
        self.can = authorizer or can

    def _require(self, actor, action: str) -> None:
        if not self.can(actor, action):
            role = getattr(actor, "role", None)
            logger.warning(f"Action refusée: {action} pour le rôle {role}")
            raise PermissionDeniedError(action, role)
