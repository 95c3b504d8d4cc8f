# npwt/services/procedure_service.py
"""
Procédures NPWT : création, consommation d'insumos, changement de
machine et clôture.

La consommation est tout ou rien : le lot complet est vérifié avant
toute écriture, puis chaque produit est décrémenté par un UPDATE
conditionnel (``stock >= quantité``) dans une seule transaction.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple
from uuid import UUID

from pydantic import ValidationError as SchemaValidationError
from sqlalchemy import update
from sqlalchemy.orm import joinedload, selectinload

from npwt.core.exceptions import (
    InsufficientStockError,
    NotFoundError,
    NPWTError,
    PartialFailure,
    PersistenceError,
    ProcedureNotActiveError,
    ValidationError,
)
from npwt.core.permissions import (
    MACHINE_EDIT,
    PATIENT_EDIT,
    PROCEDURE_CLOSE,
    PROCEDURE_CREATE,
    PROCEDURE_EDIT,
    PROCEDURE_SUPPLIES,
)
from npwt.core.retry import run_with_retry, with_db_retry
from npwt.models.movement import MovementType, ReferenceType
from npwt.models.patient import Patient, PatientStatus
from npwt.models.procedure import Procedure, ProcedureProduct, ProcedureStatus
from npwt.models.product import Product
from npwt.schemas.procedure import ProcedureCreate
from npwt.services.base import BaseService, as_dict
from npwt.services.ledger import record_movement
from npwt.services.machine_service import MachineService
from npwt.services.stock_service import to_int
from npwt.utils.dates import now_local

logger = logging.getLogger(__name__)


def consumption_note(patient_name: Optional[str]) -> str:
    return f"Consommation procédure - Patient : {patient_name or '-'}"


def parse_consumption_items(items: Mapping[Any, Any], allow_empty: bool = False) -> Dict[UUID, int]:
    """product_id -> quantité ; chaque quantité doit être un entier > 0"""
    if not items and not allow_empty:
        raise ValidationError("Il faut sélectionner au moins un produit", {"field": "products"})

    requested: Dict[UUID, int] = {}
    for raw_id, raw_quantity in (items or {}).items():
        try:
            product_id = raw_id if isinstance(raw_id, UUID) else UUID(str(raw_id))
        except ValueError:
            raise ValidationError("Identifiant de produit invalide", {"product_id": str(raw_id)})
        quantity = to_int(raw_quantity, "quantity")
        if quantity <= 0:
            raise ValidationError(
                "La quantité doit être supérieure à zéro",
                {"product_id": str(product_id), "quantity": quantity},
            )
        requested[product_id] = requested.get(product_id, 0) + quantity
    return requested


class ProcedureService(BaseService):
    """Cycle de vie d'une procédure et consommation d'insumos"""

    # ============================
    # LECTURE
    # ============================
    def _get_procedure(self, procedure_id: UUID, for_update: bool = False) -> Procedure:
        query = self.db.query(Procedure).filter(Procedure.id == procedure_id)
        if for_update:
            query = query.with_for_update().populate_existing()
        procedure = query.first()
        if not procedure:
            raise NotFoundError("Procédure", procedure_id)
        return procedure

    def get_procedure(self, procedure_id: UUID) -> Procedure:
        procedure = self.db.query(Procedure).options(
            joinedload(Procedure.patient),
            joinedload(Procedure.machine),
            selectinload(Procedure.products),
        ).filter(Procedure.id == procedure_id).first()
        if not procedure:
            raise NotFoundError("Procédure", procedure_id)
        return procedure

    def list_procedures(self, status: Optional[str] = None, limit: int = 100) -> List[Procedure]:
        query = self.db.query(Procedure).options(joinedload(Procedure.patient))
        if status:
            query = query.filter(Procedure.status == status)
        return query.order_by(Procedure.created_at.desc()).limit(limit).all()

    def get_patient(self, patient_id: UUID) -> Patient:
        patient = self.db.query(Patient).filter(Patient.id == patient_id).first()
        if not patient:
            raise NotFoundError("Patient", patient_id)
        return patient

    def list_patients(self, status: Optional[str] = None, search: Optional[str] = None) -> List[Patient]:
        query = self.db.query(Patient)
        if status:
            query = query.filter(Patient.status == status)
        if search:
            pattern = f"%{search.strip()}%"
            query = query.filter(Patient.name.ilike(pattern) | Patient.identification.ilike(pattern))
        return query.order_by(Patient.created_at.desc()).all()

    # ============================
    # CONSOMMATION
    # ============================
    def _apply_consumption(self, procedure: Procedure, requested: Dict[UUID, int], actor) -> List[Dict[str, Any]]:
        """Vérifie puis applique le lot ; ne valide pas la transaction"""
        products = {
            p.id: p for p in self.db.query(Product).filter(Product.id.in_(list(requested))).all()
        }
        for product_id in requested:
            if product_id not in products:
                raise NotFoundError("Produit", product_id)

        shortages = [
            {
                "product_id": str(product_id),
                "product_name": products[product_id].name,
                "requested": quantity,
                "available": products[product_id].stock,
            }
            for product_id, quantity in requested.items()
            if (products[product_id].stock or 0) < quantity
        ]
        if shortages:
            raise InsufficientStockError(shortages)

        note = consumption_note(procedure.patient.name if procedure.patient else None)
        consumed = []
        # Ordre stable des verrous de lignes
        for product_id, quantity in sorted(requested.items(), key=lambda item: str(item[0])):
            product = products[product_id]
            result = self.db.execute(
                update(Product)
                .where(Product.id == product_id, Product.stock >= quantity)
                .values(stock=Product.stock - quantity, updated_at=datetime.utcnow())
            )
            if result.rowcount == 0:
                # Une autre transaction a consommé le stock entre-temps
                raise InsufficientStockError([{
                    "product_id": str(product_id),
                    "product_name": product.name,
                    "requested": quantity,
                    "available": None,
                }])

            self.db.add(ProcedureProduct(
                procedure_id=procedure.id,
                product_id=product_id,
                quantity_used=quantity,
            ))
            record_movement(
                self.db,
                product_id,
                MovementType.OUT,
                quantity,
                ReferenceType.PROCEDURE,
                notes=note,
                actor=actor,
                reference_id=procedure.id,
            )
            consumed.append({
                "product_id": str(product_id),
                "product_name": product.name,
                "quantity": quantity,
                "remaining_stock": product.stock,
            })

        self.db.flush()
        return consumed

    @with_db_retry("consommation d'insumos")
    def consume_for_procedure(self, procedure_id: UUID, items: Mapping[Any, Any], actor=None) -> List[Dict[str, Any]]:
        """
        Ajoute des insumos à une procédure active.
        Lève InsufficientStockError (rien n'est écrit) si un seul produit manque.
        """
        self._require(actor, PROCEDURE_SUPPLIES)
        requested = parse_consumption_items(items)
        try:
            # Verrou partagé avec la clôture
            procedure = self._get_procedure(procedure_id, for_update=True)
            if not procedure.is_active:
                raise ProcedureNotActiveError(procedure.id, procedure.status)
            consumed = self._apply_consumption(procedure, requested, actor)
        except NPWTError as e:
            self.db.rollback()
            logger.warning(f"Consommation refusée pour la procédure {procedure_id}: {e.message}")
            raise

        self.db.commit()
        logger.info(f"{len(consumed)} insumo(s) consommé(s) pour la procédure {procedure_id}")
        return consumed

    # ============================
    # CRÉATION
    # ============================
    def _resolve_patient(self, data: ProcedureCreate) -> Patient:
        if data.patient_id:
            return self.get_patient(data.patient_id)

        identification = data.patient.identification.strip()
        name = data.patient.name.strip()
        if not name or not identification:
            raise ValidationError("Nom et identification du patient requis", {"field": "patient"})

        patient = self.db.query(Patient).filter(Patient.identification == identification).first()
        if patient:
            patient.name = name
            patient.age = data.patient.age
            patient.status = PatientStatus.ACTIVE.value
            return patient

        patient = Patient(name=name, identification=identification, age=data.patient.age)
        self.db.add(patient)
        self.db.flush()
        return patient

    @with_db_retry("création de la procédure")
    def create_procedure(self, data: Any, actor=None) -> Tuple[Procedure, List[Dict[str, Any]]]:
        """
        Enregistre le patient (ou le réutilise), vérifie la machine et crée
        la procédure active. Les insumos initiaux passent par le même chemin
        que la consommation, dans la même transaction.
        """
        self._require(actor, PROCEDURE_CREATE)
        if not isinstance(data, ProcedureCreate):
            try:
                data = ProcedureCreate.model_validate(as_dict(data))
            except SchemaValidationError as e:
                errors = [{"loc": [str(part) for part in err["loc"]], "msg": err["msg"]} for err in e.errors()]
                raise ValidationError("Données de procédure invalides", {"errors": errors})

        surgeon_name = data.surgeon_name.strip()
        diagnosis = data.diagnosis.strip()
        if not surgeon_name or not diagnosis:
            raise ValidationError("Chirurgien et diagnostic requis", {"field": "surgeon_name/diagnosis"})
        requested = parse_consumption_items(data.products, allow_empty=True)

        try:
            machine = MachineService(self.db, self.can).ensure_available(data.machine_id)
            patient = self._resolve_patient(data)

            procedure = Procedure(
                patient_id=patient.id,
                machine_id=machine.id,
                surgeon_name=surgeon_name,
                assistant_name=(data.assistant_name or "").strip() or None,
                procedure_date=data.procedure_date,
                start_time=data.start_time,
                diagnosis=diagnosis,
                location=(data.location or "").strip() or None,
                status=ProcedureStatus.ACTIVE.value,
                created_by=getattr(actor, "id", None),
            )
            procedure.patient = patient
            self.db.add(procedure)
            self.db.flush()

            consumed = self._apply_consumption(procedure, requested, actor) if requested else []
        except NPWTError as e:
            self.db.rollback()
            logger.warning(f"Création de procédure refusée: {e.message}")
            raise

        self.db.commit()
        logger.info(f"Procédure créée: {procedure.id} (machine {machine.name}, {len(consumed)} insumo(s))")
        return procedure, consumed

    # ============================
    # CLÔTURE
    # ============================
    def _complete_procedure(self, procedure_id: UUID) -> Procedure:
        procedure = self._get_procedure(procedure_id, for_update=True)
        if not procedure.is_active:
            raise ProcedureNotActiveError(procedure.id, procedure.status)

        procedure.status = ProcedureStatus.COMPLETED.value
        procedure.end_time = now_local().time().replace(microsecond=0)
        procedure.updated_at = datetime.utcnow()
        self.db.commit()
        return procedure

    def _complete_patient(self, patient_id: UUID) -> None:
        patient = self.get_patient(patient_id)
        patient.status = PatientStatus.COMPLETED.value
        patient.updated_at = datetime.utcnow()
        self.db.commit()

    def close_procedure(self, procedure_id: UUID, actor=None) -> Procedure:
        """
        Clôture en deux validations : la procédure, puis le patient.
        Si la seconde échoue, la première reste acquise et PartialFailure
        est levée ; aucune compensation n'est tentée.
        """
        self._require(actor, PROCEDURE_CLOSE)
        procedure = run_with_retry(
            self.db,
            lambda: self._complete_procedure(procedure_id),
            "clôture de la procédure",
        )
        logger.info(f"Procédure clôturée: {procedure.id}")

        if procedure.patient_id is None:
            return procedure

        try:
            run_with_retry(
                self.db,
                lambda: self._complete_patient(procedure.patient_id),
                "clôture du patient",
            )
        except (PersistenceError, NotFoundError) as e:
            logger.warning(
                f"Procédure {procedure.id} clôturée mais patient {procedure.patient_id} "
                f"non mis à jour: {e.message}"
            )
            raise PartialFailure(
                "La procédure a été clôturée mais le statut du patient n'a pas pu être mis à jour",
                completed=["procedure"],
                failed=["patient"],
                details={"procedure_id": str(procedure.id), "patient_id": str(procedure.patient_id)},
            ) from e
        return procedure

    # ============================
    # MODIFICATIONS
    # ============================
    @with_db_retry("changement de machine")
    def change_machine(self, procedure_id: UUID, machine_id: UUID, actor=None) -> Procedure:
        self._require(actor, MACHINE_EDIT)
        try:
            procedure = self._get_procedure(procedure_id, for_update=True)
            if not procedure.is_active:
                raise ProcedureNotActiveError(procedure.id, procedure.status)
            if procedure.machine_id == machine_id:
                return procedure

            machine = MachineService(self.db, self.can).ensure_available(machine_id, exclude_procedure_id=procedure.id)
            previous = procedure.machine_id
            procedure.machine_id = machine.id
            procedure.updated_at = datetime.utcnow()
        except NPWTError:
            self.db.rollback()
            raise

        self.db.commit()
        logger.info(f"Procédure {procedure.id}: machine {previous} -> {machine.id}")
        return procedure

    @with_db_retry("modification de la procédure")
    def update_procedure_info(self, procedure_id: UUID, data: Any, actor=None) -> Procedure:
        self._require(actor, PROCEDURE_EDIT)
        values = {k: v for k, v in as_dict(data, exclude_unset=True).items() if v is not None}
        for field in ("surgeon_name", "diagnosis"):
            if field in values and not str(values[field]).strip():
                raise ValidationError(f"{field} ne peut pas être vide", {"field": field})

        procedure = self._get_procedure(procedure_id, for_update=True)
        for field in ("surgeon_name", "assistant_name", "diagnosis", "location"):
            if field in values:
                setattr(procedure, field, str(values[field]).strip() or None)
        procedure.updated_at = datetime.utcnow()

        self.db.commit()
        logger.info(f"Procédure modifiée: {procedure.id}")
        return procedure

    @with_db_retry("modification du patient")
    def update_patient(self, patient_id: UUID, data: Any, actor=None) -> Patient:
        self._require(actor, PATIENT_EDIT)
        values = {k: v for k, v in as_dict(data, exclude_unset=True).items() if v is not None}
        for field in ("name", "identification"):
            if field in values:
                values[field] = str(values[field]).strip()
                if not values[field]:
                    raise ValidationError(f"{field} ne peut pas être vide", {"field": field})
        if "age" in values:
            values["age"] = to_int(values["age"], "age")
            if values["age"] < 0:
                raise ValidationError("L'âge ne peut pas être négatif", {"field": "age"})

        patient = self.get_patient(patient_id)
        for field in ("name", "identification", "age"):
            if field in values:
                setattr(patient, field, values[field])
        patient.updated_at = datetime.utcnow()

        self.db.commit()
        logger.info(f"Patient modifié: {patient.id}")
        return patient
