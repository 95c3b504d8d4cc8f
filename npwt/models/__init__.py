# npwt/models/__init__.py
"""
Importer tous les modèles ici pour qu'ils soient enregistrés sur Base.metadata
"""
from .user import User
from .patient import Patient, PatientStatus
from .machine import Machine, MachineStatus
from .product import Product
from .movement import InventoryMovement, MovementType, ReferenceType
from .procedure import Procedure, ProcedureProduct, ProcedureStatus

__all__ = [
    'User',
    'Patient',
    'PatientStatus',
    'Machine',
    'MachineStatus',
    'Product',
    'InventoryMovement',
    'MovementType',
    'ReferenceType',
    'Procedure',
    'ProcedureProduct',
    'ProcedureStatus',
]
