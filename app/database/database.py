from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, declarative_base
from app.core.config import settings


def build_engine(url: str, **kwargs):
    """Crear engine con los ajustes por dialecto (SQLite vs PostgreSQL)"""
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
        return create_engine(url, **kwargs)

    engine = create_engine(
        url,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
        **kwargs
    )

    if engine.dialect.name == "postgresql":
        @event.listens_for(engine, "connect")
        def _set_statement_timeout(dbapi_connection, connection_record):
            # Una transacción de finalización que exceda el límite se aborta y la factura queda en draft
            cursor = dbapi_connection.cursor()
            cursor.execute(f"SET statement_timeout = {int(settings.STATEMENT_TIMEOUT_MS)}")
            cursor.close()

    return engine


engine = build_engine(settings.database_url, echo=settings.DEBUG and settings.ENVIRONMENT != "test")

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Genera una sesión de base de datos por request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        # close() descarta cualquier transacción abierta
        db.close()
