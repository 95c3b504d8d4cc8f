# npwt/main.py
import logging

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from npwt.api.v1 import api_router
from npwt.core.config import settings
from npwt.core.exceptions import NPWTError, PartialFailure
from npwt.core.logging_config import setup_logging
from npwt.db.immutability import ImmutableMovementError, register_immutability_listeners

setup_logging()
register_immutability_listeners()

logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    debug=settings.DEBUG,
)

# Middleware CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
    allow_methods=settings.CORS_ALLOW_METHODS,
    allow_headers=settings.CORS_ALLOW_HEADERS,
)


# ======================================================
# ERREURS MÉTIER
# ======================================================

@app.exception_handler(PartialFailure)
async def partial_failure_handler(request: Request, exc: PartialFailure):
    logger.warning(f"Échec partiel sur {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=status.HTTP_207_MULTI_STATUS, content=exc.to_dict())


@app.exception_handler(NPWTError)
async def npwt_error_handler(request: Request, exc: NPWTError):
    if exc.status_code >= 500:
        logger.error(f"{exc.code} sur {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(ImmutableMovementError)
async def immutable_movement_handler(request: Request, exc: ImmutableMovementError):
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={"detail": str(exc), "code": "IMMUTABLE_MOVEMENT", "details": {}},
    )


@app.get("/")
def root():
    return {"message": f"{settings.APP_NAME} actif", "version": settings.APP_VERSION}


@app.get("/health")
def health_check():
    """Endpoint de santé pour les load balancers"""
    return {"status": "healthy"}


# Inclure les routes
app.include_router(api_router, prefix=settings.API_V1_PREFIX)
