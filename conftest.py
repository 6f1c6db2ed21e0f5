"""
Fixtures compartidas para los tests

Cada test usa su propia base SQLite en archivo (tmp_path): los tests de
concurrencia abren varias conexiones y necesitan ver la misma base.
"""
import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("DATABASE_URL", "sqlite:///./test_invoicing.db")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from app.database.database import Base, build_engine, get_db  # noqa: E402
from app.main import app  # noqa: E402
from app.modules.businesses.models import Business, BusinessType  # noqa: E402
from app.modules.customers.models import Customer  # noqa: E402


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(
        f"sqlite:///{tmp_path / 'invoicing.db'}",
        connect_args={"check_same_thread": False, "timeout": 30}
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    db = session_factory()
    yield db
    db.close()


@pytest.fixture
def make_business(db_session):
    """Crear negocios de prueba (por defecto: licensed dealer, prefijo INV, semilla 1)"""
    def _make(**overrides):
        values = {
            "name": "Negocio de Prueba",
            "business_type": BusinessType.LICENSED_DEALER,
            "invoice_number_prefix": "INV",
            "starting_invoice_number": 1,
        }
        values.update(overrides)
        business = Business(**values)
        db_session.add(business)
        db_session.commit()
        return business
    return _make


@pytest.fixture
def make_customer(db_session):
    def _make(business, **overrides):
        values = {
            "business_id": business.id,
            "name": "Cliente Uno",
            "tax_id": "514000000",
            "email": "cliente@example.com",
            "street_address": "Herzl 10",
            "city": "Tel Aviv",
            "postal_code": "6100000",
            "is_active": True,
        }
        values.update(overrides)
        customer = Customer(**values)
        db_session.add(customer)
        db_session.commit()
        return customer
    return _make


@pytest.fixture
def business(make_business):
    return make_business()


@pytest.fixture
def customer(make_customer, business):
    return make_customer(business)


@pytest.fixture
def client(session_factory):
    def _get_test_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_test_db
    yield TestClient(app)
    app.dependency_overrides.clear()
