"""
Test configuration and fixtures.

Provides:
- A fresh in-memory SQLite database per test
- A controllable clock for expiry tests
- Workflow components wired with the default collaborators
- HTTPX AsyncClient against the FastAPI app
"""
import os
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Generator

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Settings are read at import time
os.environ["TESTING"] = "1"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["CUSTOMER_REFERENCE_SECRET"] = "test-reference-secret"
os.environ["EXTERNAL_API_KEYS"] = "test-api-key,rotated-api-key"
os.environ["FORM_LINK_BASE_URL"] = "https://forms.example.test"

from formlinks.main import app
from formlinks.core.deps import get_clock, get_db
from formlinks.db.base import Base
from formlinks.db.enums import Role
from formlinks.db.models import Customer, User
from formlinks.db.session import configure_sqlite
from formlinks.services.approval_service import ApprovalCoordinator
from formlinks.services.collaborators import (
    CustomerConsentChecker,
    DatabaseAuditSink,
    DatabaseCustomerDirectory,
    DatabaseNotificationEmitter,
    RolePermissionChecker,
    SettingsApiKeyAllowList,
)
from formlinks.services.offer_service import OfferSynthesizer
from formlinks.services.submission_service import SubmissionRecorder
from formlinks.services.token_service import LinkValidator, TokenIssuer
from formlinks.services.verification_service import ExternalVerificationGateway


# =============================================================================
# Clock
# =============================================================================

class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture(scope="function")
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc))


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    configure_sqlite(engine)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def db(engine: Engine) -> Generator[Session, None, None]:
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    yield session
    session.close()


@pytest.fixture(scope="function")
def customer(db: Session) -> Customer:
    customer = Customer(
        id=uuid.uuid4(),
        name="Acme Facilities",
        email="ops@acme.test",
        phone="+1 555 0100",
        address="1 Main Street",
        communication_consent=True,
    )
    db.add(customer)
    db.commit()
    return customer


def make_user(db: Session, role: Role = Role.MANAGER, is_active: bool = True) -> User:
    user = User(
        id=uuid.uuid4(),
        email=f"staff-{uuid.uuid4().hex[:8]}@test.com",
        display_name="Test Staff",
        role=role.value,
        is_active=is_active,
    )
    db.add(user)
    db.commit()
    return user


@pytest.fixture(scope="function")
def approver(db: Session) -> User:
    return make_user(db, Role.MANAGER)


@pytest.fixture(scope="function")
def read_only_user(db: Session) -> User:
    return make_user(db, Role.READ_ONLY)


# =============================================================================
# Components
# =============================================================================

@dataclass
class Components:
    issuer: TokenIssuer
    validator: LinkValidator
    recorder: SubmissionRecorder
    synthesizer: OfferSynthesizer
    coordinator: ApprovalCoordinator
    gateway: ExternalVerificationGateway


def build_components(db: Session, clock) -> Components:
    customers = DatabaseCustomerDirectory(db)
    audit = DatabaseAuditSink(db)
    notifier = DatabaseNotificationEmitter(db)
    permissions = RolePermissionChecker(db)
    validator = LinkValidator(db, customers=customers, clock=clock)
    synthesizer = OfferSynthesizer(db, customers=customers, audit=audit, clock=clock)
    return Components(
        issuer=TokenIssuer(
            db,
            customers=customers,
            audit=audit,
            notifier=notifier,
            consent=CustomerConsentChecker(db),
            clock=clock,
        ),
        validator=validator,
        recorder=SubmissionRecorder(
            db,
            validator=validator,
            audit=audit,
            notifier=notifier,
            permissions=permissions,
            clock=clock,
        ),
        synthesizer=synthesizer,
        coordinator=ApprovalCoordinator(
            db,
            permissions=permissions,
            synthesizer=synthesizer,
            audit=audit,
            notifier=notifier,
            clock=clock,
        ),
        gateway=ExternalVerificationGateway(
            db,
            validator=validator,
            api_keys=SettingsApiKeyAllowList(["test-api-key"]),
            audit=audit,
        ),
    )


@pytest.fixture(scope="function")
def components(db: Session, clock: FakeClock) -> Components:
    return build_components(db, clock)


# =============================================================================
# Client Fixtures
# =============================================================================

@pytest.fixture(scope="function")
async def client(db: Session, clock: FakeClock) -> AsyncGenerator[AsyncClient, None]:
    """
    Create AsyncClient for testing endpoints against the per-test database.
    """
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def component_factory():
    """Build components for a session other than ``db`` (e.g. per thread)."""
    return build_components


@pytest.fixture(scope="function")
def user_factory(db: Session):
    def _make(role: Role = Role.MANAGER, is_active: bool = True) -> User:
        return make_user(db, role, is_active)

    return _make
