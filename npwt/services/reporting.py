# npwt/services/reporting.py
import logging
import unicodedata
from collections import defaultdict
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from npwt.core.config import settings
from npwt.core.exceptions import ValidationError
from npwt.core.retry import with_db_retry
from npwt.models.machine import Machine, MachineStatus
from npwt.models.movement import InventoryMovement, MovementType, ReferenceType
from npwt.models.patient import Patient, PatientStatus
from npwt.models.procedure import Procedure, ProcedureStatus
from npwt.models.product import Product, stock_status
from npwt.schemas.report import ConsumptionReport, InventoryReport
from npwt.utils.cache import cache_report, get_cache_key, get_cached_report
from npwt.utils.dates import today_local

logger = logging.getLogger(__name__)

EMPTY_PRODUCT = {"name": "-", "quantity": 0}


def day_range(start: date, end: date) -> Tuple[datetime, datetime]:
    """[start 00:00, end+1 jour 00:00) : la date de fin est incluse"""
    range_start = datetime.combine(start, time.min)
    if end >= date.max:
        return range_start, datetime.max
    return range_start, datetime.combine(end + timedelta(days=1), time.min)


def name_sort_key(name: str) -> str:
    """Clé alphabétique insensible aux accents et à la casse (Órtesis avant Tubo)"""
    decomposed = unicodedata.normalize("NFKD", name or "")
    return decomposed.encode("ascii", "ignore").decode("ascii").casefold()


def consumption_sort_key(row: Dict[str, Any]):
    """
    Lignes consommées d'abord (valeur décroissante, puis quantité
    décroissante), puis les lignes à zéro par ordre alphabétique.
    """
    if row["total_consumed"] > 0:
        return (0, -row["total_value"], -row["total_consumed"], "", "")
    return (1, 0, 0, name_sort_key(row["product_name"]), row["product_name"])


class ReportService:
    """Service de génération de rapports"""

    def __init__(self, db: Session):
        self.db = db

    # ============================
    # CONSOMMATION
    # ============================
    def _ledger_fingerprint(self, range_start: datetime, range_end: datetime) -> str:
        movements = self.db.query(
            func.count(InventoryMovement.id), func.max(InventoryMovement.created_at)
        ).one()
        products = self.db.query(func.count(Product.id), func.max(Product.updated_at)).one()
        procedures = self.db.query(func.count(Procedure.id)).filter(
            Procedure.created_at >= range_start,
            Procedure.created_at < range_end,
        ).scalar()
        return f"{movements[0]}|{movements[1]}|{products[0]}|{products[1]}|{procedures}"

    @with_db_retry("rapport de consommation")
    def consumption_report(self, start_date: date, end_date: date, use_cache: bool = True) -> ConsumptionReport:
        """
        Consommation par produit sur la période [start_date, end_date].

        Toutes les sorties sont valorisées au prix unitaire ACTUEL. Les
        compteurs de procédures et de patients sont des comptes distincts.
        """
        if start_date > end_date:
            raise ValidationError(
                "La date de début doit précéder la date de fin",
                {"start_date": str(start_date), "end_date": str(end_date)},
            )
        range_start, range_end = day_range(start_date, end_date)

        cache_key = None
        if use_cache:
            fingerprint = self._ledger_fingerprint(range_start, range_end)
            cache_key = get_cache_key("consumption", start_date, end_date, fingerprint)
            cached = get_cached_report(cache_key)
            if cached:
                logger.debug(f"Rapport de consommation servi depuis le cache: {start_date} - {end_date}")
                return ConsumptionReport.model_validate(cached)

        catalog = self.db.query(Product).all()
        prices = {p.id: Decimal(str(p.unit_price or 0)) for p in catalog}

        # Sorties de la période
        movements = self.db.query(
            InventoryMovement.product_id,
            InventoryMovement.quantity,
            InventoryMovement.reference_type,
        ).filter(
            InventoryMovement.movement_type == MovementType.OUT.value,
            InventoryMovement.created_at >= range_start,
            InventoryMovement.created_at < range_end,
        ).all()

        consumed: Dict[Any, Dict[str, Any]] = defaultdict(lambda: {"quantity": 0, "value": Decimal("0"), "mentions": 0})
        for movement in movements:
            magnitude = abs(movement.quantity or 0)
            entry = consumed[movement.product_id]
            entry["quantity"] += magnitude
            entry["value"] += magnitude * prices.get(movement.product_id, Decimal("0"))
            if movement.reference_type == ReferenceType.PROCEDURE.value:
                entry["mentions"] += 1

        # Comptes distincts : un même produit peut être ajouté deux fois à la même procédure
        for product_id, entry in consumed.items():
            entry["procedures"], entry["patients"] = (0, 0)
            if entry["mentions"]:
                entry["procedures"], entry["patients"] = self._distinct_usage(product_id, range_start, range_end)

        rows = []
        for product in catalog:
            entry = consumed.get(product.id)
            rows.append({
                "product_id": str(product.id),
                "product_name": product.name,
                "product_code": product.code,
                "category": product.category,
                "total_consumed": entry["quantity"] if entry else 0,
                "unit_price": float(prices[product.id]),
                "total_value": float(entry["value"]) if entry else 0.0,
                "procedures_count": entry["procedures"] if entry else 0,
                "patients_count": entry["patients"] if entry else 0,
            })
        rows.sort(key=consumption_sort_key)

        total_procedures = self.db.query(func.count(Procedure.id)).filter(
            Procedure.created_at >= range_start,
            Procedure.created_at < range_end,
        ).scalar() or 0
        total_value = float(sum((entry["value"] for entry in consumed.values()), Decimal("0")))
        most_used = next(
            ({"name": row["product_name"], "quantity": row["total_consumed"]} for row in rows if row["total_consumed"] > 0),
            EMPTY_PRODUCT,
        )

        report = ConsumptionReport(
            start_date=start_date,
            end_date=end_date,
            generated_at=datetime.utcnow(),
            rows=rows,
            summary={
                "total_procedures": total_procedures,
                "total_value": total_value,
                "avg_value_per_procedure": total_value / total_procedures if total_procedures else 0.0,
                "most_used_product": most_used,
            },
        )

        if cache_key:
            cache_report(cache_key, report.model_dump(mode="json"))
        logger.info(
            f"Rapport de consommation {start_date} - {end_date}: "
            f"{len(movements)} sortie(s), valeur {total_value:.2f} {settings.DEFAULT_CURRENCY}"
        )
        return report

    def _distinct_usage(self, product_id, range_start: datetime, range_end: datetime) -> Tuple[int, int]:
        """(procédures distinctes, patients distincts) pour un produit sur la période"""
        procedure_ids = {
            row.reference_id
            for row in self.db.query(InventoryMovement.reference_id).filter(
                InventoryMovement.product_id == product_id,
                InventoryMovement.movement_type == MovementType.OUT.value,
                InventoryMovement.reference_type == ReferenceType.PROCEDURE.value,
                InventoryMovement.reference_id.isnot(None),
                InventoryMovement.created_at >= range_start,
                InventoryMovement.created_at < range_end,
            ).distinct().all()
        }
        if not procedure_ids:
            return 0, 0

        patient_ids = {
            row.patient_id
            for row in self.db.query(Procedure.patient_id).filter(
                Procedure.id.in_(list(procedure_ids)),
                Procedure.patient_id.isnot(None),
            ).all()
        }
        return len(procedure_ids), len(patient_ids)

    # ============================
    # INVENTAIRE
    # ============================
    @with_db_retry("rapport d'inventaire")
    def inventory_report(self) -> InventoryReport:
        """Valorisation du catalogue actuel ; le journal n'est pas lu"""
        products = self.db.query(Product).order_by(Product.name).all()

        rows = []
        total_value = Decimal("0")
        low_stock_value = Decimal("0")
        highest = dict(EMPTY_PRODUCT)
        low_count = out_count = 0

        for product in products:
            stock = product.stock or 0
            price = Decimal(str(product.unit_price or 0))
            value = stock * price
            status = stock_status(stock, product.minimum_stock)

            total_value += value
            if status != "normal":
                low_stock_value += value
            if status == "low_stock":
                low_count += 1
            elif status == "out_of_stock":
                out_count += 1
            # Premier produit rencontré en cas d'égalité
            if stock > highest["quantity"]:
                highest = {"name": product.name, "quantity": stock}

            rows.append({
                "product_id": str(product.id),
                "product_name": product.name,
                "product_code": product.code,
                "category": product.category,
                "current_stock": stock,
                "minimum_stock": product.minimum_stock or 0,
                "unit_price": float(price),
                "stock_value": float(value),
                "status": status,
            })

        return InventoryReport(
            generated_at=datetime.utcnow(),
            rows=rows,
            totals={
                "total_inventory_value": float(total_value),
                "low_stock_value": float(low_stock_value),
                "highest_stock_product": highest,
                "total_products": len(products),
                "low_stock_count": low_count,
                "out_of_stock_count": out_count,
            },
        )

    def low_stock_products(self) -> List[Product]:
        """Produits dont le stock est inférieur ou égal au minimum (ruptures incluses)"""
        return self.db.query(Product).filter(
            Product.stock <= Product.minimum_stock
        ).order_by(Product.stock, Product.name).all()

    # ============================
    # TABLEAU DE BORD
    # ============================
    @with_db_retry("tableau de bord")
    def dashboard_overview(self, today: Optional[date] = None) -> Dict[str, Any]:
        today = today or today_local()

        active_patients = self.db.query(func.count(Patient.id)).filter(
            Patient.status == PatientStatus.ACTIVE.value
        ).scalar() or 0
        today_procedures = self.db.query(func.count(Procedure.id)).filter(
            Procedure.procedure_date == today
        ).scalar() or 0
        active_machines = self.db.query(func.count(Machine.id)).filter(
            Machine.status == MachineStatus.ACTIVE.value
        ).scalar() or 0
        low_stock = self.low_stock_products()

        active = self.db.query(Procedure).options(
            joinedload(Procedure.patient), joinedload(Procedure.machine)
        ).filter(
            Procedure.status == ProcedureStatus.ACTIVE.value
        ).order_by(Procedure.created_at.desc()).all()

        closed = self.db.query(Procedure).options(
            joinedload(Procedure.patient), joinedload(Procedure.machine)
        ).filter(
            Procedure.status == ProcedureStatus.COMPLETED.value
        ).order_by(Procedure.updated_at.desc()).limit(settings.CLOSED_PROCEDURES_LIMIT).all()

        return {
            "day": today,
            "active_patients": active_patients,
            "today_procedures": today_procedures,
            "low_stock_count": len(low_stock),
            "active_machines": active_machines,
            "low_stock_products": [
                {
                    "id": p.id,
                    "code": p.code,
                    "name": p.name,
                    "stock": p.stock,
                    "minimum_stock": p.minimum_stock,
                    "status": p.stock_status,
                }
                for p in low_stock
            ],
            "active_procedures": [_procedure_card(p) for p in active],
            "recent_closed_procedures": [_procedure_card(p) for p in closed],
        }


def _procedure_card(procedure: Procedure) -> Dict[str, Any]:
    return {
        "id": procedure.id,
        "patient_name": procedure.patient.name if procedure.patient else None,
        "machine_name": procedure.machine.name if procedure.machine else None,
        "surgeon_name": procedure.surgeon_name,
        "procedure_date": procedure.procedure_date,
        "start_time": procedure.start_time,
        "end_time": procedure.end_time,
        "status": procedure.status,
    }
