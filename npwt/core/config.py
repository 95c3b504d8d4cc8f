# npwt/core/config.py
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Configuration de l'application avec validation Pydantic"""

    # =====================================
    # APPLICATION
    # =====================================
    APP_NAME: str = "NPWT Inventario"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    API_V1_PREFIX: str = "/api/v1"

    # =====================================
    # SÉCURITÉ JWT
    # =====================================
    SECRET_KEY: str = "change-me-npwt-dev-secret"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 12  # 12h, une garde hospitalière

    # =====================================
    # BASE DE DONNÉES
    # =====================================
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_DB: str = "npwt"
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: str = "5432"

    # Permet de forcer une URL complète (sqlite pour les tests par exemple)
    DATABASE_URL_OVERRIDE: Optional[str] = None

    SQLALCHEMY_ECHO: bool = False

    @property
    def DATABASE_URL(self) -> str:
        if self.DATABASE_URL_OVERRIDE:
            return self.DATABASE_URL_OVERRIDE
        return (
            f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@"
            f"{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def SQLALCHEMY_ENGINE_OPTIONS(self) -> dict:
        if self.DATABASE_URL.startswith("sqlite"):
            return {"connect_args": {"check_same_thread": False}}
        return {
            "pool_size": 10,
            "max_overflow": 20,
            "pool_timeout": 30,
            "pool_recycle": 1800,
            "pool_pre_ping": True,
            "connect_args": {"client_encoding": "utf8", "connect_timeout": 10}
        }

    # =====================================
    # REPRISE SUR ERREUR RÉSEAU
    # =====================================
    DB_RETRY_ATTEMPTS: int = 3
    DB_RETRY_BASE_DELAY: float = 0.2  # secondes
    DB_RETRY_MAX_DELAY: float = 5.0

    # =====================================
    # CORS
    # =====================================
    CORS_ORIGINS: list = ["http://localhost:3000", "http://127.0.0.1:3000"]
    CORS_ALLOW_CREDENTIALS: bool = True
    CORS_ALLOW_METHODS: list = ["*"]
    CORS_ALLOW_HEADERS: list = ["*"]

    # =====================================
    # ÉTABLISSEMENT
    # =====================================
    DEFAULT_CURRENCY: str = "COP"
    DEFAULT_LANGUAGE: str = "es"
    DEFAULT_TIMEZONE: str = "America/Bogota"
    DEFAULT_MINIMUM_STOCK: int = 5
    PRODUCT_CATEGORIES: list = ["Apósitos", "Accesorios", "Canisters", "Tubos", "Otros"]

    # =====================================
    # RAPPORTS & CACHE
    # =====================================
    REDIS_URL: Optional[str] = None
    REPORT_CACHE_TTL: int = 600
    MOVEMENT_HISTORY_LIMIT: int = 50
    CLOSED_PROCEDURES_LIMIT: int = 10

    # =====================================
    # LOGGING
    # =====================================
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )


# Instance globale des paramètres
settings = Settings()
