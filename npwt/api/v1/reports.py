# npwt/api/v1/reports.py
from datetime import date, timedelta
import logging
from typing import Optional, Tuple
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from npwt.api.deps import get_db, require_permission
from npwt.core.permissions import REPORTS_RECONCILE, REPORTS_VIEW
from npwt.models.user import User
from npwt.schemas.report import (
    ConsumptionReport,
    ExportFormat,
    InventoryReport,
    ReconciliationReport,
    ReconciliationRow,
    ReportKind,
)
from npwt.services.reconciliation import reconcile_all, reconcile_product
from npwt.services.reporting import ReportService
from npwt.utils.cache import clear_cache
from npwt.utils.dates import today_local
from npwt.utils.export import (
    CONSUMPTION_COLUMNS,
    INVENTORY_COLUMNS,
    export_to_csv_bytes,
    export_to_excel_bytes,
    generate_export_filename,
)

router = APIRouter(prefix="/reports", tags=["Rapports"])
logger = logging.getLogger(__name__)

EXCEL_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _period(start_date: Optional[date], end_date: Optional[date]) -> Tuple[date, date]:
    end_date = end_date or today_local()
    return start_date or end_date - timedelta(days=30), end_date


@router.get("/consumption", response_model=ConsumptionReport)
def consumption_report(
    start_date: Optional[date] = Query(None, description="Par défaut : il y a 30 jours"),
    end_date: Optional[date] = Query(None, description="Par défaut : aujourd'hui"),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(REPORTS_VIEW)),
):
    """Consommation d'insumos par produit sur la période (bornes incluses)"""
    start_date, end_date = _period(start_date, end_date)
    return ReportService(db).consumption_report(start_date, end_date)


@router.get("/inventory", response_model=InventoryReport)
def inventory_report(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(REPORTS_VIEW)),
):
    return ReportService(db).inventory_report()


@router.get("/reconciliation", response_model=ReconciliationReport)
def reconciliation_report(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(REPORTS_RECONCILE)),
):
    """Compare le stock en cache de chaque produit au solde du journal"""
    return reconcile_all(db)


@router.get("/reconciliation/{product_id}", response_model=ReconciliationRow)
def product_reconciliation(
    product_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(REPORTS_RECONCILE)),
):
    """Vérification à la demande d'un seul produit"""
    return reconcile_product(db, product_id)


@router.delete("/cache")
def clear_report_cache(
    current_user: User = Depends(require_permission(REPORTS_RECONCILE)),
):
    """Vide le cache des rapports"""
    cleared = clear_cache()
    logger.info(f"Cache des rapports vidé par {current_user.email}: {cleared} clé(s)")
    return {"cleared": cleared}


@router.get("/{kind}/export")
def export_report(
    kind: ReportKind,
    format: ExportFormat = ExportFormat.EXCEL,
    start_date: Optional[date] = Query(None, description="Par défaut : il y a 30 jours"),
    end_date: Optional[date] = Query(None, description="Par défaut : aujourd'hui"),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(REPORTS_VIEW)),
):
    """Téléchargement CSV ou Excel d'un rapport"""
    service = ReportService(db)
    if kind == ReportKind.CONSUMPTION:
        start_date, end_date = _period(start_date, end_date)
        report = service.consumption_report(start_date, end_date)
        columns = CONSUMPTION_COLUMNS
        title = f"Consommation du {start_date:%d/%m/%Y} au {end_date:%d/%m/%Y}"
    else:
        report = service.inventory_report()
        columns = INVENTORY_COLUMNS
        title = "Inventaire valorisé"
    rows = [row.model_dump() for row in report.rows]

    if format == ExportFormat.CSV:
        content = export_to_csv_bytes(rows, columns)
        filename = generate_export_filename(kind.value, "csv")
        media_type = "text/csv; charset=utf-8"
    else:
        content = export_to_excel_bytes(rows, columns, sheet_name=kind.value.capitalize(), title=title)
        filename = generate_export_filename(kind.value, "xlsx")
        media_type = EXCEL_MEDIA_TYPE

    logger.info(f"Export {kind.value} ({format.value}) par {current_user.email}")
    return StreamingResponse(
        content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
