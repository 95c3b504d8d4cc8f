# npwt/core/exceptions.py
"""
Hiérarchie d'exceptions métier.

Chaque exception porte un ``code`` lisible par machine et des ``details``
structurés, pour que l'API puisse les renvoyer sans analyser le message.

    NPWTError
    +-- ValidationError
    |   +-- DuplicateCodeError
    +-- NotFoundError
    +-- PermissionDeniedError
    +-- InsufficientStockError
    +-- ProcedureNotActiveError
    +-- MachineUnavailableError
    +-- PersistenceError
    +-- PartialFailure
"""
from typing import Any, Dict, List, Optional


class NPWTError(Exception):
    """Erreur de base de l'application"""

    code: str = "NPWT_ERROR"
    status_code: int = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"detail": self.message, "code": self.code, "details": self.details}


class ValidationError(NPWTError):
    """Champ requis vide, quantité non numérique, etc. Aucune écriture n'a eu lieu."""

    code = "VALIDATION_ERROR"
    status_code = 400


class DuplicateCodeError(ValidationError):
    code = "DUPLICATE_CODE"
    status_code = 409

    def __init__(self, product_code: str):
        super().__init__(
            f"Un produit avec le code {product_code} existe déjà",
            {"code": product_code},
        )
        self.product_code = product_code


class NotFoundError(NPWTError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(f"{entity} introuvable", {"entity": entity, "id": str(entity_id)})
        self.entity = entity
        self.entity_id = entity_id


class PermissionDeniedError(NPWTError):
    code = "PERMISSION_DENIED"
    status_code = 403

    def __init__(self, action: str, role: Optional[str] = None):
        super().__init__(
            f"Permission '{action}' requise. Rôle: {role}",
            {"action": action, "role": role},
        )
        self.action = action
        self.role = role


class InsufficientStockError(NPWTError):
    """Au moins un produit du lot n'a pas assez de stock : rien n'est écrit."""

    code = "INSUFFICIENT_STOCK"
    status_code = 409

    def __init__(self, items: List[Dict[str, Any]]):
        names = ", ".join(str(item.get("product_name")) for item in items)
        super().__init__(f"Stock insuffisant pour {names}", {"items": items})
        self.items = items


class ProcedureNotActiveError(NPWTError):
    code = "PROCEDURE_NOT_ACTIVE"
    status_code = 409

    def __init__(self, procedure_id: Any, status: Optional[str]):
        super().__init__(
            f"La procédure n'est pas active (statut: {status})",
            {"procedure_id": str(procedure_id), "status": status},
        )
        self.procedure_id = procedure_id
        self.status = status


class MachineUnavailableError(NPWTError):
    code = "MACHINE_UNAVAILABLE"
    status_code = 409

    def __init__(self, machine_id: Any, reason: str):
        super().__init__(
            f"Machine non disponible: {reason}",
            {"machine_id": str(machine_id), "reason": reason},
        )
        self.machine_id = machine_id
        self.reason = reason


class PersistenceError(NPWTError):
    """Échec de lecture/écriture dans la base après les reprises éventuelles"""

    code = "PERSISTENCE_ERROR"
    status_code = 503


class PartialFailure(NPWTError):
    """
    La première étape d'une opération en plusieurs étapes a été validée,
    la suivante a échoué. Rien n'est compensé automatiquement.
    """

    code = "PARTIAL_FAILURE"
    status_code = 207

    def __init__(self, message: str, completed: List[str], failed: List[str], details: Optional[Dict[str, Any]] = None):
        payload = {"completed": completed, "failed": failed}
        payload.update(details or {})
        super().__init__(message, payload)
        self.completed = completed
        self.failed = failed
