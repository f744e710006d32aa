"""Pytest configuration and fixtures."""

import os

# In-memory database for the app engine too (lifespan runs create_all on it)
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Generator

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.rbac import OrgRole
from app.core.security import create_access_token, get_password_hash
from app.db.base import Base
from app.db.session import get_db
from app.main import app
# Import all models to ensure they're registered with Base.metadata
from app.models import *
from app.models.delivery import Delivery, DeliveryItem, DeliveryStatus
from app.models.inventory import Inventory
from app.models.organization import Organization, OrganizationMember
from app.models.patient import EPS, Patient, PatientContract
from app.models.prescription import Prescription, PrescriptionItem, PrescriptionStatus
from app.models.product import Product
from app.models.supplier import Supplier
from app.models.user import User
from app.models.warehouse import Warehouse, WarehouseType

# Use in-memory SQLite for tests
TEST_DATABASE_URL = "sqlite:///:memory:"

API = "/api/v1"


@pytest.fixture(scope="function")
def db_engine():
    """Create a test database engine."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """Create a test database session."""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """Create a test client with database override."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    # Disable rate limiting during tests to avoid flaky failures
    from app.core.rate_limit import limiter
    limiter.enabled = False
    # Don't raise server exceptions so we can test error status codes
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    limiter.enabled = True
    app.dependency_overrides.clear()


@pytest.fixture
def organization(db_session: Session) -> Organization:
    org = Organization(name="Dispensario Central", nit="900123456")
    db_session.add(org)
    db_session.commit()
    db_session.refresh(org)
    return org


@pytest.fixture
def other_organization(db_session: Session) -> Organization:
    org = Organization(name="Otra IPS", nit="800999888")
    db_session.add(org)
    db_session.commit()
    db_session.refresh(org)
    return org


@pytest.fixture
def make_user(db_session: Session):
    """Factory: create a user, optionally as a member of an organization."""
    def _make(email: str, organization: Organization = None, role: OrgRole = OrgRole.DISPENSER,
              password: str = "testpass123") -> User:
        user = User(email=email, password_hash=get_password_hash(password), name=email.split("@")[0])
        db_session.add(user)
        db_session.flush()
        if organization is not None:
            db_session.add(OrganizationMember(organization_id=organization.id, user_id=user.id, role=role))
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make


@pytest.fixture
def make_headers():
    """Factory: Authorization headers for a user bound to an organization."""
    def _make(user: User, organization: Organization = None, role: OrgRole = None) -> dict:
        data = {"sub": str(user.id), "email": user.email}
        if organization is not None:
            data["organization_id"] = organization.id
            data["role"] = (role or OrgRole.OWNER).value
        return {"Authorization": f"Bearer {create_access_token(data)}"}

    return _make


@pytest.fixture
def test_user(make_user, organization: Organization) -> User:
    """Owner of the test organization."""
    return make_user("owner@dispensario.co", organization, OrgRole.OWNER)


@pytest.fixture
def auth_headers(test_user: User, organization: Organization, make_headers) -> dict:
    """Get authentication headers."""
    return make_headers(test_user, organization, OrgRole.OWNER)


@pytest.fixture
def dispensario(db_session: Session, organization: Organization) -> Warehouse:
    warehouse = Warehouse(
        organization_id=organization.id, code="DISP-01", name="Dispensario Norte",
        type=WarehouseType.DISPENSARIO, city="Bogotá",
    )
    db_session.add(warehouse)
    db_session.commit()
    db_session.refresh(warehouse)
    return warehouse


@pytest.fixture
def bodega(db_session: Session, organization: Organization) -> Warehouse:
    warehouse = Warehouse(
        organization_id=organization.id, code="BOD-01", name="Bodega Principal",
        type=WarehouseType.BODEGA, city="Bogotá",
    )
    db_session.add(warehouse)
    db_session.commit()
    db_session.refresh(warehouse)
    return warehouse


@pytest.fixture
def test_product(db_session: Session, organization: Organization) -> Product:
    product = Product(
        organization_id=organization.id,
        code="MED-001",
        name="Metformina 850mg",
        molecule="METFORMINA",
        concentration="850 mg",
        unit="TAB",
        price=Decimal("1200"),
        min_stock=10,
        max_stock=500,
    )
    db_session.add(product)
    db_session.commit()
    db_session.refresh(product)
    return product


@pytest.fixture
def make_lot(db_session: Session):
    """Factory: a stock lot of a product in a warehouse."""
    def _make(product: Product, warehouse: Warehouse, lot_number: str = "L-001", quantity: int = 100,
              unit_cost: str = "500", expiry_date: date = None) -> Inventory:
        lot = Inventory(
            product_id=product.id,
            warehouse_id=warehouse.id,
            lot_number=lot_number,
            quantity=quantity,
            unit_cost=Decimal(unit_cost),
            expiry_date=expiry_date or date.today() + timedelta(days=365),
        )
        db_session.add(lot)
        db_session.commit()
        db_session.refresh(lot)
        return lot

    return _make


@pytest.fixture
def lot(make_lot, test_product: Product, dispensario: Warehouse) -> Inventory:
    return make_lot(test_product, dispensario)


@pytest.fixture
def eps(db_session: Session, organization: Organization) -> EPS:
    entity = EPS(organization_id=organization.id, code="EPS037", name="Nueva EPS", nit="900156264")
    db_session.add(entity)
    db_session.commit()
    db_session.refresh(entity)
    return entity


@pytest.fixture
def patient(db_session: Session, organization: Organization, eps: EPS) -> Patient:
    person = Patient(
        organization_id=organization.id,
        document_type="CC",
        document_number="1020304050",
        name="María Pérez",
        sex="F",
        birth_date=date(1975, 3, 14),
        diagnosis="E119",
    )
    person.contracts.append(PatientContract(eps_id=eps.id))
    db_session.add(person)
    db_session.commit()
    db_session.refresh(person)
    return person


@pytest.fixture
def test_supplier(db_session: Session, organization: Organization) -> Supplier:
    supplier = Supplier(
        organization_id=organization.id,
        code="PROV-0001",
        name="Droguería Mayorista",
        email="ventas@mayorista.co",
        preferred_contact="email",
    )
    db_session.add(supplier)
    db_session.commit()
    db_session.refresh(supplier)
    return supplier


@pytest.fixture
def make_delivery(db_session: Session):
    """Factory: a completed dispensation written straight to the database.

    Does not touch stock; tests set stock explicitly through lots.
    """
    def _make(patient: Patient, warehouse: Warehouse, product: Product, quantity: int,
              when: datetime = None, status: DeliveryStatus = DeliveryStatus.COMPLETED,
              eps_id: int = None, unit_cost: str = "500") -> Delivery:
        when = when or datetime.now(timezone.utc)
        prescription = Prescription(
            organization_id=patient.organization_id,
            prescription_number=f"RX-T{quantity}-{int(when.timestamp())}",
            patient_id=patient.id,
            eps_id=eps_id,
            prescription_date=when,
            status=PrescriptionStatus.DELIVERED,
        )
        prescription.items.append(PrescriptionItem(product_id=product.id, quantity=quantity, delivered_qty=quantity))
        db_session.add(prescription)
        db_session.flush()
        delivery = Delivery(
            organization_id=patient.organization_id,
            prescription_id=prescription.id,
            warehouse_id=warehouse.id,
            delivery_date=when,
            status=status,
        )
        delivery.items.append(DeliveryItem(
            product_id=product.id, lot_number="L-001", quantity=quantity, unit_cost=Decimal(unit_cost),
        ))
        db_session.add(delivery)
        db_session.commit()
        db_session.refresh(delivery)
        return delivery

    return _make


@pytest.fixture
def foreign_product(db_session: Session, other_organization: Organization) -> Product:
    """A product owned by another organization."""
    product = Product(organization_id=other_organization.id, code="EXT-001", name="Losartán 50mg",
                      molecule="LOSARTAN")
    db_session.add(product)
    db_session.commit()
    db_session.refresh(product)
    return product


@pytest.fixture
def foreign_warehouse(db_session: Session, other_organization: Organization) -> Warehouse:
    warehouse = Warehouse(organization_id=other_organization.id, code="EXT-BOD", name="Bodega Externa",
                          type=WarehouseType.BODEGA)
    db_session.add(warehouse)
    db_session.commit()
    db_session.refresh(warehouse)
    return warehouse
