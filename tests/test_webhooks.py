import json

import pytest

from src.exceptions import SignatureInvalid
from src.models import Payment, WebhookEvent
from src.payments.schemas import GatewayStatus
from src.payments.webhook import WebhookOutcome, WebhookProcessor
from tests.conftest import auth_headers, charge_success_body, sign

WEBHOOK_URL = "/api/v1/payments/webhook"


@pytest.fixture
def payment(payment_service, confirmed_booking, rider):
    return payment_service.record_initialization(rider, confirmed_booking.id)


def post_webhook(client, body: bytes, signature: str = None):
    headers = {"Content-Type": "application/json"}
    if signature is not None:
        headers["x-paystack-signature"] = signature
    return client.post(WEBHOOK_URL, content=body, headers=headers)


def test_signed_charge_success_settles_payment(client, db, payment, notifier):
    body = charge_success_body(payment.transaction_reference, amount_kobo=500000)

    response = post_webhook(client, body, sign(body))

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "outcome": "applied"}
    db.refresh(payment)
    assert payment.status == "success"
    assert payment.gateway_reference == "302961"
    assert notifier.sent == [payment.transaction_reference]


def test_bad_signature_is_rejected_without_state_change(client, db, payment, notifier):
    body = charge_success_body(payment.transaction_reference)

    response = post_webhook(client, body, "0" * 128)

    assert response.status_code == 400
    db.refresh(payment)
    assert payment.status == "pending"
    assert notifier.sent == []


def test_signature_is_checked_against_raw_bytes(client, db, payment):
    # Same JSON, different byte layout than what was signed
    body = charge_success_body(payment.transaction_reference)
    reformatted = json.dumps(json.loads(body), indent=2).encode()

    response = post_webhook(client, reformatted, sign(body))

    assert response.status_code == 400


def test_unsigned_webhook_rejected_by_default(client, payment):
    response = post_webhook(client, charge_success_body(payment.transaction_reference))
    assert response.status_code == 400


def test_unsigned_webhook_accepted_when_configured(db, gateway, payment_service, payment):
    processor = WebhookProcessor(db, gateway, payment_service, allow_unsigned=True)

    outcome = processor.ingest(charge_success_body(payment.transaction_reference), None)

    assert outcome == WebhookOutcome.APPLIED


def test_replayed_webhook_notifies_once(client, db, payment, notifier):
    body = charge_success_body(payment.transaction_reference)

    first = post_webhook(client, body, sign(body))
    second = post_webhook(client, body, sign(body))

    assert first.json()["outcome"] == "applied"
    assert second.json()["outcome"] == "duplicate"
    assert second.status_code == 200
    assert notifier.sent == [payment.transaction_reference]
    assert db.query(WebhookEvent).count() == 1


def test_distinct_deliveries_for_same_charge_transition_once(db, gateway, payment_service, payment, notifier):
    processor = WebhookProcessor(db, gateway, payment_service)
    first = charge_success_body(payment.transaction_reference, paid_at="2026-10-17T09:00:00Z")
    retry = charge_success_body(payment.transaction_reference, paid_at="2026-10-17T09:00:05Z")

    assert processor.ingest(first, sign(first)) == WebhookOutcome.APPLIED
    assert processor.ingest(retry, sign(retry)) == WebhookOutcome.UNCHANGED
    assert notifier.sent == [payment.transaction_reference]


def test_unrecognized_event_is_acknowledged(client, db, payment):
    body = json.dumps({"event": "transfer.success", "data": {"reference": payment.transaction_reference}}).encode()

    response = post_webhook(client, body, sign(body))

    assert response.status_code == 200
    assert response.json()["outcome"] == "ignored"
    db.refresh(payment)
    assert payment.status == "pending"


def test_unknown_reference_is_acknowledged(client):
    body = charge_success_body("PAY-20261017-000000-DEADBEEF")

    response = post_webhook(client, body, sign(body))

    assert response.status_code == 200
    assert response.json()["outcome"] == "unknown_reference"


def test_malformed_body_is_acknowledged(client):
    body = b"not json"
    response = post_webhook(client, body, sign(body))

    assert response.status_code == 200
    assert response.json()["outcome"] == "malformed"


def test_amount_mismatch_is_acknowledged_without_settling(client, db, payment):
    body = charge_success_body(payment.transaction_reference, amount_kobo=100)

    response = post_webhook(client, body, sign(body))

    assert response.status_code == 200
    assert response.json()["outcome"] == "amount_mismatch"
    db.refresh(payment)
    assert payment.status == "pending"


def test_webhook_before_verify_does_not_notify_twice(client, db, payment, rider, gateway, notifier):
    reference = payment.transaction_reference
    body = charge_success_body(reference, amount_kobo=500000)
    post_webhook(client, body, sign(body))
    gateway.verify_results[reference] = GatewayStatus.SUCCESS

    response = client.get(f"/api/v1/payments/verify/{reference}", headers=auth_headers(rider))

    assert response.status_code == 200
    assert response.json()["status"] == "success"
    assert notifier.sent == [reference]
    db.expire_all()
    assert db.query(Payment).filter(Payment.transaction_reference == reference).one().status == "success"


def test_processor_raises_signature_invalid(db, gateway, payment_service):
    processor = WebhookProcessor(db, gateway, payment_service)
    with pytest.raises(SignatureInvalid):
        processor.ingest(b"{}", "deadbeef")


def test_non_ascii_signature_header_is_rejected(client, db, payment):
    body = charge_success_body(payment.transaction_reference)

    response = client.post(
        WEBHOOK_URL,
        content=body,
        headers={"Content-Type": "application/json", "x-paystack-signature": b"\xe9" * 10}
    )

    assert response.status_code == 400
    db.refresh(payment)
    assert payment.status == "pending"


@pytest.mark.parametrize("reference", [12345, ["PAY-1"], {"id": 1}, ""])
def test_charge_success_with_unusable_reference_is_acknowledged(client, db, reference):
    body = json.dumps({"event": "charge.success", "data": {"reference": reference}}).encode()

    response = post_webhook(client, body, sign(body))

    assert response.status_code == 200
    assert response.json()["outcome"] == "malformed"
    event = db.query(WebhookEvent).one()
    assert event.reference is None


def test_processing_error_is_acknowledged_and_not_recorded(db, gateway, payment_service, payment):
    def explode(*args, **kwargs):
        raise RuntimeError("database went away")
    payment_service.apply_gateway_result = explode
    processor = WebhookProcessor(db, gateway, payment_service)
    body = charge_success_body(payment.transaction_reference)

    assert processor.ingest(body, sign(body)) == WebhookOutcome.ERROR
    assert db.query(WebhookEvent).count() == 0
