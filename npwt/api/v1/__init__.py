# npwt/api/v1/__init__.py
from fastapi import APIRouter

from npwt.api.v1.auth import router as auth_router
from npwt.api.v1.dashboard import router as dashboard_router
from npwt.api.v1.machines import router as machines_router
from npwt.api.v1.patients import router as patients_router
from npwt.api.v1.procedures import router as procedures_router
from npwt.api.v1.products import router as products_router
from npwt.api.v1.reports import router as reports_router

api_router = APIRouter()
api_router.include_router(auth_router)
api_router.include_router(products_router)
api_router.include_router(procedures_router)
api_router.include_router(patients_router)
api_router.include_router(machines_router)
api_router.include_router(reports_router)
api_router.include_router(dashboard_router)
