from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional
from pydantic import field_validator

class Settings(BaseSettings):
    # Database settings
    POSTGRES_USER: str = 'invoicing_user'
    POSTGRES_PASSWORD: str = 'invoicing_pass'
    POSTGRES_DB: str = 'invoicing_db'
    POSTGRES_HOST: str = 'postgres'
    POSTGRES_PORT: int = 5432
    # Override completo de la URL (ej. sqlite:///./invoicing.db para desarrollo local)
    DATABASE_URL: Optional[str] = None

    # Tiempo máximo por sentencia en PostgreSQL; acota la duración de la finalización
    STATEMENT_TIMEOUT_MS: int = 5000

    # CORS
    CORS_ORIGINS: list = ["*"]

    # Facturación
    DEFAULT_CURRENCY: str = 'ILS'
    INVOICE_MAX_FUTURE_DAYS: int = 7
    STANDARD_VAT_RATE_BASIS_POINTS: int = 1700  # 17%

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+psycopg2://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def allowed_vat_rates(self) -> frozenset:
        """Tasas válidas para un negocio no exento: 0% o la tasa estándar"""
        return frozenset({0, self.STANDARD_VAT_RATE_BASIS_POINTS})

    model_config = SettingsConfigDict(
        extra="allow",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True
    )

    @field_validator("DEBUG", mode="before")
    @classmethod
    def parse_debug(cls, v):
        if isinstance(v, str):
            return v.lower().strip('"').strip("'") in ("true", "1", "yes", "on")
        return bool(v)

settings = Settings()
