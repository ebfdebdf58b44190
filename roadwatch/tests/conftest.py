"""
Pytest configuration and fixtures.

Provides shared fixtures for testing including:
- In-memory SQLite engine and sessions
- Seeded violation catalog and vehicles
- Fake payment gateways
- API test client
"""

import os

# Settings are read lazily; these must exist before the app module is imported
os.environ.setdefault("SECRET_KEY", "test-secret-key-0123456789")
os.environ.setdefault("API_KEY", "test-api-key-123")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("LOG_FORMAT", "text")

from decimal import Decimal
from typing import Any, AsyncIterator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from roadwatch.application.payment_orchestrator import PaymentOrchestrator
from roadwatch.application.vehicle_registry import VehicleRegistry
from roadwatch.application.violation_ledger import ViolationLedger
from roadwatch.core import security
from roadwatch.core.config import Settings, get_settings
from roadwatch.core.security import create_access_token
from roadwatch.domain.exceptions import GatewayError, InvalidInputError
from roadwatch.domain.models import (
    GatewayProvider,
    VehicleOwner,
    ViolationCategory,
    ViolationType,
)
from roadwatch.infrastructure.db.models import Base
from roadwatch.infrastructure.db.repository import ViolationTypeRepository
from roadwatch.infrastructure.db.session import create_session_factory, create_test_engine
from roadwatch.infrastructure.gateways import (
    GatewayInitialization,
    GatewayRefund,
    GatewayVerification,
    PaymentGateway,
    WebhookReference,
)
from roadwatch.infrastructure.notifications import RecordingEventPublisher


TEST_SECRET_KEY = "test-secret-key-0123456789"
TEST_API_KEY = "test-api-key-123"
WEBHOOK_SECRET = "sk_test_webhook_secret"


class FakeGateway(PaymentGateway):
    """
    In-memory gateway.

    Records every call; ``succeed`` decides the verification verdict and
    ``fail_initialize`` makes checkout creation raise.
    """

    provider = GatewayProvider.PAYSTACK

    def __init__(self, provider: GatewayProvider = GatewayProvider.PAYSTACK):
        super().__init__(secret_key=WEBHOOK_SECRET, base_url="https://gateway.test")
        self.provider = provider
        self.succeed = True
        self.fail_initialize = False
        self.initialized: list[dict[str, Any]] = []
        self.verified: list[str] = []
        self.refunded: list[tuple[str, Decimal | None]] = []

    async def initialize(
        self,
        payer_email: str,
        amount: Decimal,
        reference: str,
        metadata: dict[str, Any],
        payer_name: str | None = None,
        payer_phone: str | None = None,
        callback_url: str | None = None,
    ) -> GatewayInitialization:
        if self.fail_initialize:
            raise GatewayError(self.provider.value, "Transaction declined")
        self.initialized.append(
            {"email": payer_email, "amount": amount, "reference": reference, "metadata": metadata}
        )
        return GatewayInitialization(
            redirect_url=f"https://checkout.gateway.test/{reference}",
            provider_reference=reference,
        )

    async def verify(
        self,
        reference: str,
        provider_reference: str | None = None,
    ) -> GatewayVerification:
        self.verified.append(reference)
        return GatewayVerification(
            success=self.succeed,
            provider_transaction_id="TXN-1001",
            raw_response={"status": "success" if self.succeed else "failed"},
        )

    async def refund(
        self,
        provider_reference: str,
        amount: Decimal | None = None,
    ) -> GatewayRefund:
        if not self.supports_refund:
            raise InvalidInputError("Refunds not supported for this gateway yet")
        self.refunded.append((provider_reference, amount))
        return GatewayRefund(raw_response={"status": "processed"})

    def extract_webhook_reference(self, payload: dict[str, Any]) -> WebhookReference | None:
        data = payload.get("data") or {}
        reference = data.get("reference")
        if not reference:
            return None
        return WebhookReference(
            payment_reference=reference,
            gateway_reference=str(data["id"]) if data.get("id") else None,
        )


@pytest.fixture
def settings() -> Settings:
    """Settings with test secrets and default enforcement rules."""
    return Settings(
        secret_key=TEST_SECRET_KEY,
        api_key=TEST_API_KEY,
        database_url="sqlite+aiosqlite:///:memory:",
    )


@pytest.fixture
async def engine() -> AsyncIterator[AsyncEngine]:
    """Fresh in-memory database per test."""
    test_engine = create_test_engine()
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    await test_engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(engine)


@pytest.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def publisher() -> RecordingEventPublisher:
    return RecordingEventPublisher()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def gateways(gateway: FakeGateway) -> dict[GatewayProvider, PaymentGateway]:
    flutterwave = FakeGateway(GatewayProvider.FLUTTERWAVE)
    flutterwave.supports_refund = False
    return {GatewayProvider.PAYSTACK: gateway, GatewayProvider.FLUTTERWAVE: flutterwave}


@pytest.fixture
def registry(db_session, publisher, settings) -> VehicleRegistry:
    return VehicleRegistry(db_session, publisher=publisher, settings=settings)


@pytest.fixture
def ledger(db_session, registry, publisher, settings) -> ViolationLedger:
    return ViolationLedger(db_session, registry=registry, publisher=publisher, settings=settings)


@pytest.fixture
def orchestrator(db_session, gateways, publisher, settings) -> PaymentOrchestrator:
    return PaymentOrchestrator(db_session, gateways, publisher=publisher, settings=settings)


@pytest.fixture
async def violation_types(db_session: AsyncSession) -> dict[str, ViolationType]:
    """
    Seed the offence catalog.

    Returns:
        dict: Catalog entries by code; ``EXP`` is inactive.
    """
    repo = ViolationTypeRepository(db_session)
    entries = [
        ViolationType(
            code="SPD",
            title="Speeding",
            description="Exceeding the posted speed limit",
            fine_amount=Decimal("50000.00"),
            points=3,
            category=ViolationCategory.TRAFFIC,
        ),
        ViolationType(
            code="RLT",
            title="Red light violation",
            description="Driving through a red traffic light",
            fine_amount=Decimal("25000.00"),
            points=2,
            category=ViolationCategory.TRAFFIC,
        ),
        ViolationType(
            code="SBT",
            title="No seatbelt",
            description="Driving without a fastened seatbelt",
            fine_amount=Decimal("10000.00"),
            points=1,
            category=ViolationCategory.EQUIPMENT,
        ),
        ViolationType(
            code="EXP",
            title="Retired offence",
            description="No longer enforced",
            fine_amount=Decimal("5000.00"),
            points=1,
            category=ViolationCategory.DOCUMENTATION,
            is_active=False,
        ),
    ]
    created = {entry.code: await repo.create(entry) for entry in entries}
    await db_session.commit()
    return created


@pytest.fixture
async def vehicle(registry: VehicleRegistry) -> VehicleOwner:
    """A registered private vehicle with no points."""
    return await registry.register(
        VehicleOwner(
            plate_number="abc 123 de",
            full_name="Adaeze Okafor",
            license_number="lag-2020-000123",
            email="Adaeze.Okafor@example.com",
            phone="+2348012345678",
            state_of_residence="Lagos",
        )
    )


@pytest.fixture
def auth_headers() -> dict[str, str]:
    """API key plus a bearer token for actor 7."""
    return {
        "X-API-Key": get_settings().api_key,
        "Authorization": f"Bearer {create_access_token(7)}",
    }


@pytest.fixture
async def api_client(
    monkeypatch: pytest.MonkeyPatch,
    session_factory: async_sessionmaker[AsyncSession],
    gateways: dict[GatewayProvider, PaymentGateway],
    publisher: RecordingEventPublisher,
) -> AsyncIterator[AsyncClient]:
    """Async client against the app, bound to the test database."""
    from roadwatch.api.deps import get_event_publisher, get_gateways
    from roadwatch.infrastructure.db.session import get_session
    from roadwatch.main import app

    async def override_get_session() -> AsyncIterator[AsyncSession]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    monkeypatch.setattr(security, "_rate_limiter", None)
    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_gateways] = lambda: gateways
    app.dependency_overrides[get_event_publisher] = lambda: publisher

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
