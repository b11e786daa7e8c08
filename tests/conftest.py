import hashlib
import hmac
import json
import os
import tempfile

_test_db_dir = tempfile.mkdtemp(prefix="trekka-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_test_db_dir, 'test.db')}"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["PAYSTACK_SECRET_KEY"] = "sk_test_webhook_secret"
os.environ["WEBHOOK_ALLOW_UNSIGNED"] = "false"

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from src.auth.schemas import AuthenticatedPrincipal, Role
from src.auth.utils import create_access_token
from src.bookings.booking_service import BookingService
from src.database import Base, SessionLocal, engine
from src.fleet.schemas import VehicleCreate
from src.fleet.service import VehicleService
from src.main import app
from src.payments.dependencies import get_payment_gateway, get_payment_notifier
from src.payments.gateway import PaystackGateway
from src.payments.notifications import PaymentNotifier
from src.payments.payment_service import PaymentService
from src.payments.schemas import GatewayInitialization, GatewayRefund, GatewayStatus, GatewayVerification

WEBHOOK_SECRET = os.environ["PAYSTACK_SECRET_KEY"]


class FakeGateway(PaystackGateway):
    """Scripted stand-in for Paystack; signature checks stay real"""

    def __init__(self):
        super().__init__(secret_key=WEBHOOK_SECRET, base_url="https://paystack.invalid")
        self.initialize_error = None
        self.refund_error = None
        self.verify_results = {}
        self.calls = []

    def initialize(self, amount, currency, email, callback_url, reference):
        self.calls.append(("initialize", reference))
        if self.initialize_error:
            raise self.initialize_error
        return GatewayInitialization(
            authorization_url=f"https://checkout.paystack.com/{reference.lower()}",
            access_code=f"AC-{reference}",
            reference=reference,
        )

    def verify(self, reference):
        self.calls.append(("verify", reference))
        result = self.verify_results.get(reference, GatewayStatus.PENDING)
        if isinstance(result, Exception):
            raise result
        if isinstance(result, GatewayVerification):
            return result
        return GatewayVerification(reference=reference, status=result, payload={"reference": reference})

    def refund(self, reference, amount):
        self.calls.append(("refund", reference))
        if self.refund_error:
            raise self.refund_error
        return GatewayRefund(reference="RFND-1001", status="processed", payload={"id": "RFND-1001"})


class RecordingNotifier(PaymentNotifier):
    def __init__(self):
        self.sent = []

    def notify_payment_success(self, payment):
        self.sent.append(payment.transaction_reference)


def sign(body: bytes) -> str:
    return hmac.new(WEBHOOK_SECRET.encode(), body, hashlib.sha512).hexdigest()


def charge_success_body(reference: str, amount_kobo: int = None, **extra) -> bytes:
    data = {"id": 302961, "reference": reference, "status": "success", "currency": "NGN"}
    if amount_kobo is not None:
        data["amount"] = amount_kobo
    data.update(extra)
    return json.dumps({"event": "charge.success", "data": data}).encode()


@pytest.fixture(autouse=True)
def reset_database():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def client(gateway, notifier):
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    app.dependency_overrides[get_payment_notifier] = lambda: notifier
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def rider():
    return AuthenticatedPrincipal(id="user-1", role=Role.USER)


@pytest.fixture
def other_rider():
    return AuthenticatedPrincipal(id="user-2", role=Role.USER)


@pytest.fixture
def company():
    return AuthenticatedPrincipal(id="company-1", role=Role.COMPANY)


@pytest.fixture
def admin():
    return AuthenticatedPrincipal(id="admin-1", role=Role.ADMIN)


def auth_headers(principal: AuthenticatedPrincipal) -> dict:
    token = create_access_token({"sub": principal.id, "role": principal.role.value})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_vehicle(db, company):
    counter = {"n": 0}

    def _make(capacity=4, price=Decimal("2500.00")):
        counter["n"] += 1
        return VehicleService.register_vehicle(db, company, VehicleCreate(
            registration_number=f"LAG-{counter['n']:03d}-KJ",
            make="Toyota",
            model="Hiace",
            capacity=capacity,
            price_per_seat=price,
        ))

    return _make


@pytest.fixture
def booking_service(db):
    return BookingService(db)


@pytest.fixture
def payment_service(db, gateway, notifier):
    return PaymentService(db, gateway, notifier)


@pytest.fixture
def confirmed_booking(make_vehicle, booking_service, rider):
    vehicle = make_vehicle(capacity=4, price=Decimal("2500.00"))
    return booking_service.create_booking(rider, vehicle.id, 2)
