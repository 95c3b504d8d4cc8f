# npwt/api/v1/dashboard.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from npwt.api.deps import get_current_active_user, get_db
from npwt.models.user import User
from npwt.schemas.dashboard import DashboardOverview
from npwt.services.reporting import ReportService

router = APIRouter(prefix="/dashboard", tags=["Tableau de bord"])


@router.get("/overview", response_model=DashboardOverview)
def dashboard_overview(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    """Compteurs du jour, alertes de stock bas et procédures en cours"""
    return ReportService(db).dashboard_overview()
