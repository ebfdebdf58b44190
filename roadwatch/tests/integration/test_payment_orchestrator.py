"""
Integration tests for payment orchestration.

Gateways are in-memory fakes; the database is in-memory SQLite.
"""

import json
from datetime import timedelta
from decimal import Decimal

import pytest

from roadwatch.application.payment_orchestrator import PaymentOrchestrator, PaymentRequest
from roadwatch.application.vehicle_registry import VehicleRegistry
from roadwatch.application.violation_ledger import ViolationBatchRequest, ViolationLedger
from roadwatch.domain.events import PaymentConfirmed
from roadwatch.domain.exceptions import (
    GatewayError,
    IllegalStateTransitionError,
    InvalidInputError,
    NotFoundError,
    SignatureInvalidError,
)
from roadwatch.domain.models import (
    GatewayProvider,
    Location,
    OwnerStatus,
    PaymentStatus,
    VehicleOwner,
    Violation,
    ViolationStatus,
    ViolationType,
    utcnow,
)
from roadwatch.domain.queries import PaymentStatisticsQuery
from roadwatch.infrastructure.notifications import RecordingEventPublisher


def pay(*violation_ids: int, gateway=GatewayProvider.PAYSTACK) -> PaymentRequest:
    return PaymentRequest(
        violation_ids=list(violation_ids),
        payer_email="Payer@Example.com",
        gateway=gateway,
        payer_name="Adaeze Okafor",
        payer_phone="+2348012345678",
    )


def webhook_body(reference: str, transaction_id: int = 4455) -> bytes:
    return json.dumps(
        {"event": "charge.success", "data": {"reference": reference, "id": transaction_id}}
    ).encode()


@pytest.fixture
async def violations(
    ledger: ViolationLedger,
    vehicle: VehicleOwner,
    violation_types: dict[str, ViolationType],
) -> list[Violation]:
    """Speeding (50,000) and red light (25,000) against ABC-123-DE."""
    result = await ledger.create_batch(
        ViolationBatchRequest(
            plate_number="ABC-123-DE",
            officer_id=7,
            violation_type_ids=[violation_types["SPD"].id, violation_types["RLT"].id],
            location=Location(state="Lagos"),
        )
    )
    return result.violations


class TestInitiate:
    """Tests for opening a checkout."""

    @pytest.mark.asyncio
    async def test_one_payment_per_violation(
        self, orchestrator: PaymentOrchestrator, violations, gateway
    ):
        checkout = await orchestrator.initiate(pay(*(v.id for v in violations)))

        assert checkout.payment_reference.startswith("PAY_")
        assert checkout.total_amount == Decimal("75000.00")
        assert checkout.payment_url == f"https://checkout.gateway.test/{checkout.payment_reference}"
        assert len(checkout.payments) == 2
        assert {p.payment_reference for p in checkout.payments} == {checkout.payment_reference}
        assert all(p.status == PaymentStatus.PENDING for p in checkout.payments)
        assert all(p.payer_email == "payer@example.com" for p in checkout.payments)
        assert all(p.payment_url == checkout.payment_url for p in checkout.payments)

        sent = gateway.initialized[0]
        assert sent["amount"] == Decimal("75000.00")
        assert sent["metadata"]["plate_numbers"] == ["ABC-123-DE"]
        assert sorted(sent["metadata"]["violation_ids"]) == sorted(v.id for v in violations)

    @pytest.mark.asyncio
    async def test_gateway_failure_persists_nothing(
        self, orchestrator: PaymentOrchestrator, violations, gateway
    ):
        gateway.fail_initialize = True

        with pytest.raises(GatewayError):
            await orchestrator.initiate(pay(violations[0].id))

        assert (await orchestrator.search()).total_count == 0

    @pytest.mark.asyncio
    async def test_empty_request(self, orchestrator: PaymentOrchestrator):
        with pytest.raises(InvalidInputError):
            await orchestrator.initiate(pay())

    @pytest.mark.asyncio
    async def test_duplicate_ids(self, orchestrator: PaymentOrchestrator, violations):
        with pytest.raises(InvalidInputError, match="Duplicate"):
            await orchestrator.initiate(pay(violations[0].id, violations[0].id))

    @pytest.mark.asyncio
    async def test_unknown_violation(self, orchestrator: PaymentOrchestrator, violations):
        with pytest.raises(InvalidInputError) as exc_info:
            await orchestrator.initiate(pay(violations[0].id, 9999))

        assert exc_info.value.errors == ["Violation 9999 cannot be paid"]

    @pytest.mark.asyncio
    async def test_contested_violation_not_payable(
        self, orchestrator: PaymentOrchestrator, ledger: ViolationLedger, violations
    ):
        await ledger.contest(violations[0].id, "Not my car")

        with pytest.raises(InvalidInputError, match="not payable"):
            await orchestrator.initiate(pay(violations[0].id))

    @pytest.mark.asyncio
    async def test_bad_email(self, orchestrator: PaymentOrchestrator, violations):
        request = pay(violations[0].id)
        request.payer_email = "nobody"

        with pytest.raises(InvalidInputError, match="email"):
            await orchestrator.initiate(request)


class TestVerify:
    """Tests for confirming a checkout."""

    @pytest.mark.asyncio
    async def test_success_settles_every_violation(
        self,
        orchestrator: PaymentOrchestrator,
        ledger: ViolationLedger,
        violations,
        publisher: RecordingEventPublisher,
    ):
        checkout = await orchestrator.initiate(pay(*(v.id for v in violations)))

        result = await orchestrator.verify(checkout.payment_reference, GatewayProvider.PAYSTACK)

        assert result.success is True
        assert result.already_processed is False
        assert result.total_amount == Decimal("75000.00")
        assert all(p.status == PaymentStatus.COMPLETED for p in result.payments)
        assert all(p.gateway_reference == "TXN-1001" for p in result.payments)
        assert all(p.payment_date is not None for p in result.payments)

        for violation in violations:
            stored = await ledger.get(violation.id)
            assert stored.status == ViolationStatus.PAID
            assert stored.paid_date is not None

        confirmed = publisher.of_type(PaymentConfirmed)
        assert len(confirmed) == 1
        assert confirmed[0].payment_reference == checkout.payment_reference
        assert set(confirmed[0].ticket_numbers) == {v.ticket_number for v in violations}

    @pytest.mark.asyncio
    async def test_failure_leaves_violations_payable(
        self,
        orchestrator: PaymentOrchestrator,
        ledger: ViolationLedger,
        violations,
        gateway,
        publisher: RecordingEventPublisher,
    ):
        """Test a declined checkout fails every payment and pays nothing."""
        checkout = await orchestrator.initiate(pay(*(v.id for v in violations)))
        gateway.succeed = False

        result = await orchestrator.verify(checkout.payment_reference, GatewayProvider.PAYSTACK)

        assert result.success is False
        assert result.total_amount == Decimal("0.00")
        assert all(p.status == PaymentStatus.FAILED for p in result.payments)
        for violation in violations:
            assert (await ledger.get(violation.id)).status == ViolationStatus.PENDING
        assert publisher.of_type(PaymentConfirmed) == []

        retry = await orchestrator.initiate(pay(violations[0].id))
        assert retry.payment_reference != checkout.payment_reference

    @pytest.mark.asyncio
    async def test_second_verify_reports_stored_outcome(
        self, orchestrator: PaymentOrchestrator, violations, gateway
    ):
        checkout = await orchestrator.initiate(pay(violations[0].id))
        await orchestrator.verify(checkout.payment_reference, GatewayProvider.PAYSTACK)

        again = await orchestrator.verify(checkout.payment_reference, GatewayProvider.PAYSTACK)

        assert again.already_processed is True
        assert again.success is True
        assert again.total_amount == Decimal("50000.00")
        assert gateway.verified == [checkout.payment_reference]

    @pytest.mark.asyncio
    async def test_unknown_reference(self, orchestrator: PaymentOrchestrator):
        with pytest.raises(NotFoundError):
            await orchestrator.verify("PAY_0_DEADBEEF", GatewayProvider.PAYSTACK)

    @pytest.mark.asyncio
    async def test_wrong_gateway(self, orchestrator: PaymentOrchestrator, violations):
        checkout = await orchestrator.initiate(pay(violations[0].id))

        with pytest.raises(InvalidInputError, match="different gateway"):
            await orchestrator.verify(checkout.payment_reference, GatewayProvider.FLUTTERWAVE)


class TestWebhook:
    """Tests for signed provider callbacks."""

    @pytest.mark.asyncio
    async def test_valid_webhook_settles(
        self, orchestrator: PaymentOrchestrator, violations, gateway
    ):
        checkout = await orchestrator.initiate(pay(violations[0].id))
        body = webhook_body(checkout.payment_reference)

        result = await orchestrator.handle_webhook(
            GatewayProvider.PAYSTACK, gateway.sign(body), body
        )

        assert result is not None
        assert result.success is True
        assert result.payments[0].gateway_reference == "4455"

    @pytest.mark.asyncio
    async def test_replayed_webhook_is_harmless(
        self,
        orchestrator: PaymentOrchestrator,
        violations,
        gateway,
        publisher: RecordingEventPublisher,
    ):
        checkout = await orchestrator.initiate(pay(violations[0].id))
        body = webhook_body(checkout.payment_reference)
        signature = gateway.sign(body)

        await orchestrator.handle_webhook(GatewayProvider.PAYSTACK, signature, body)
        replay = await orchestrator.handle_webhook(GatewayProvider.PAYSTACK, signature, body)

        assert replay.already_processed is True
        assert len(publisher.of_type(PaymentConfirmed)) == 1

    @pytest.mark.asyncio
    async def test_bad_signature_rejected(
        self, orchestrator: PaymentOrchestrator, violations, gateway
    ):
        checkout = await orchestrator.initiate(pay(violations[0].id))
        body = webhook_body(checkout.payment_reference)

        with pytest.raises(SignatureInvalidError):
            await orchestrator.handle_webhook(GatewayProvider.PAYSTACK, "0" * 128, body)
        with pytest.raises(SignatureInvalidError):
            await orchestrator.handle_webhook(GatewayProvider.PAYSTACK, None, body)

        payments = (await orchestrator.search(payment_reference=checkout.payment_reference)).payments
        assert all(p.status == PaymentStatus.PENDING for p in payments)
        assert gateway.verified == []

    @pytest.mark.asyncio
    async def test_malformed_body_dropped(self, orchestrator: PaymentOrchestrator, gateway):
        body = b"{not json"

        assert await orchestrator.handle_webhook(
            GatewayProvider.PAYSTACK, gateway.sign(body), body
        ) is None

    @pytest.mark.asyncio
    async def test_body_without_reference_dropped(
        self, orchestrator: PaymentOrchestrator, gateway
    ):
        body = json.dumps({"event": "charge.success", "data": {}}).encode()

        assert await orchestrator.handle_webhook(
            GatewayProvider.PAYSTACK, gateway.sign(body), body
        ) is None


class TestRefund:
    """Tests for refunding completed payments."""

    @pytest.fixture
    async def completed(self, orchestrator: PaymentOrchestrator, violations):
        checkout = await orchestrator.initiate(pay(violations[0].id))
        result = await orchestrator.verify(checkout.payment_reference, GatewayProvider.PAYSTACK)
        return result.payments[0]

    @pytest.mark.asyncio
    async def test_full_refund_reopens_violation(
        self,
        orchestrator: PaymentOrchestrator,
        ledger: ViolationLedger,
        registry: VehicleRegistry,
        completed,
        gateway,
    ):
        """Test the violation is payable again and points stay."""
        refunded = await orchestrator.refund(
            completed.id, Decimal("50000.00"), "Paid twice", actor_id=3
        )

        assert refunded.status == PaymentStatus.REFUNDED
        assert refunded.refunded_amount == Decimal("50000.00")
        assert refunded.refund_reason == "Paid twice"
        assert refunded.gateway_response["refund"] == {"status": "processed"}
        assert gateway.refunded == [("TXN-1001", Decimal("50000.00"))]

        violation = await ledger.get(completed.violation_id)
        assert violation.status == ViolationStatus.PENDING
        assert violation.paid_date is None

        owner = (await registry.lookup("ABC-123-DE")).vehicle
        assert owner.current_points == 5

    @pytest.mark.asyncio
    async def test_full_refund_keeps_suspension(
        self,
        orchestrator: PaymentOrchestrator,
        ledger: ViolationLedger,
        registry: VehicleRegistry,
        vehicle: VehicleOwner,
        violation_types: dict[str, ViolationType],
    ):
        """Test refunding the violation that crossed the threshold does not reinstate."""
        await registry.adjust_points("ABC-123-DE", 10)
        result = await ledger.create_batch(
            ViolationBatchRequest(
                plate_number="ABC-123-DE",
                officer_id=7,
                violation_type_ids=[violation_types["RLT"].id],
                location=Location(state="Lagos"),
            )
        )
        assert result.suspension_triggered is True
        checkout = await orchestrator.initiate(pay(result.violations[0].id))
        verified = await orchestrator.verify(checkout.payment_reference, GatewayProvider.PAYSTACK)

        await orchestrator.refund(
            verified.payments[0].id, Decimal("25000.00"), "Paid twice", actor_id=3
        )

        owner = (await registry.lookup("ABC-123-DE")).vehicle
        assert owner.status == OwnerStatus.SUSPENDED
        assert owner.current_points == 12
        assert (await ledger.get(result.violations[0].id)).status == ViolationStatus.PENDING

    @pytest.mark.asyncio
    async def test_partial_refund_keeps_violation_paid(
        self, orchestrator: PaymentOrchestrator, ledger: ViolationLedger, completed
    ):
        refunded = await orchestrator.refund(
            completed.id, Decimal("20000.00"), "Reduced on appeal", actor_id=3
        )

        assert refunded.refunded_amount == Decimal("20000.00")
        assert (await ledger.get(completed.violation_id)).status == ViolationStatus.PAID

    @pytest.mark.asyncio
    async def test_amount_above_payment(self, orchestrator: PaymentOrchestrator, completed):
        with pytest.raises(InvalidInputError, match="exceed"):
            await orchestrator.refund(completed.id, Decimal("50000.01"), "Too much", actor_id=3)

        assert (await orchestrator.get(completed.id)).status == PaymentStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_non_positive_amount(self, orchestrator: PaymentOrchestrator, completed):
        with pytest.raises(InvalidInputError):
            await orchestrator.refund(completed.id, Decimal("0"), "Nothing", actor_id=3)

    @pytest.mark.asyncio
    async def test_second_refund_rejected(self, orchestrator: PaymentOrchestrator, completed):
        await orchestrator.refund(completed.id, Decimal("10.00"), "First", actor_id=3)

        with pytest.raises(IllegalStateTransitionError):
            await orchestrator.refund(completed.id, Decimal("10.00"), "Second", actor_id=3)

    @pytest.mark.asyncio
    async def test_pending_payment_rejected(self, orchestrator: PaymentOrchestrator, violations):
        checkout = await orchestrator.initiate(pay(violations[1].id))

        with pytest.raises(IllegalStateTransitionError, match="Only completed"):
            await orchestrator.refund(checkout.payments[0].id, Decimal("1.00"), "x", actor_id=3)

    @pytest.mark.asyncio
    async def test_gateway_without_refunds(self, orchestrator: PaymentOrchestrator, violations):
        checkout = await orchestrator.initiate(
            pay(violations[1].id, gateway=GatewayProvider.FLUTTERWAVE)
        )
        result = await orchestrator.verify(
            checkout.payment_reference, GatewayProvider.FLUTTERWAVE
        )

        with pytest.raises(InvalidInputError, match="not supported"):
            await orchestrator.refund(result.payments[0].id, Decimal("1.00"), "x", actor_id=3)

    @pytest.mark.asyncio
    async def test_missing_payment(self, orchestrator: PaymentOrchestrator):
        with pytest.raises(NotFoundError):
            await orchestrator.refund(9999, Decimal("1.00"), "x", actor_id=3)


class TestReporting:
    """Tests for receipts, search and statistics."""

    @pytest.mark.asyncio
    async def test_receipt_covers_reference(self, orchestrator: PaymentOrchestrator, violations):
        checkout = await orchestrator.initiate(pay(*(v.id for v in violations)))
        result = await orchestrator.verify(checkout.payment_reference, GatewayProvider.PAYSTACK)

        receipt = await orchestrator.receipt(result.payments[0].id)

        assert receipt.receipt_number == f"RCT-{checkout.payment_reference}"
        assert receipt.total_amount == Decimal("75000.00")
        assert {item.ticket_number for item in receipt.items} == {
            v.ticket_number for v in violations
        }
        assert receipt.payer_email == "payer@example.com"

    @pytest.mark.asyncio
    async def test_receipt_requires_completion(
        self, orchestrator: PaymentOrchestrator, violations
    ):
        checkout = await orchestrator.initiate(pay(violations[0].id))

        with pytest.raises(InvalidInputError, match="completed"):
            await orchestrator.receipt(checkout.payments[0].id)

    @pytest.mark.asyncio
    async def test_search_by_status(self, orchestrator: PaymentOrchestrator, violations):
        checkout = await orchestrator.initiate(pay(violations[0].id))
        await orchestrator.verify(checkout.payment_reference, GatewayProvider.PAYSTACK)
        await orchestrator.initiate(pay(violations[1].id))

        completed = await orchestrator.search(status=PaymentStatus.COMPLETED)
        by_email = await orchestrator.search(payer_email="PAYER@example.com")

        assert completed.total_count == 1
        assert completed.payments[0].violation_id == violations[0].id
        assert by_email.total_count == 2

    @pytest.mark.asyncio
    async def test_statistics(
        self,
        orchestrator: PaymentOrchestrator,
        ledger: ViolationLedger,
        violations,
        violation_types: dict[str, ViolationType],
        gateway,
    ):
        ok = await orchestrator.initiate(pay(*(v.id for v in violations)))
        await orchestrator.verify(ok.payment_reference, GatewayProvider.PAYSTACK)

        extra = await ledger.create_batch(
            ViolationBatchRequest(
                plate_number="KJA-555-XY",
                officer_id=7,
                violation_type_ids=[violation_types["SBT"].id],
                location=Location(state="Lagos"),
            )
        )
        declined = await orchestrator.initiate(pay(extra.violations[0].id))
        gateway.succeed = False
        await orchestrator.verify(declined.payment_reference, GatewayProvider.PAYSTACK)

        stats = await orchestrator.statistics(PaymentStatisticsQuery())

        assert stats.total_transactions == 3
        assert stats.total_amount == Decimal("85000.00")
        assert stats.successful_transactions == 2
        assert stats.successful_amount == Decimal("75000.00")
        assert stats.failed_transactions == 1
        assert stats.pending_transactions == 0
        assert stats.average_transaction_amount == Decimal("28333.33")
        assert stats.by_status == {"completed": 2, "failed": 1}
        assert stats.gateway_breakdown["paystack"].count == 3
        assert sum(trend.count for trend in stats.daily_trends) == 3

    @pytest.mark.asyncio
    async def test_statistics_window_filters(
        self, orchestrator: PaymentOrchestrator, violations
    ):
        await orchestrator.initiate(pay(violations[0].id))

        future = utcnow() + timedelta(days=1)
        stats = await orchestrator.statistics(PaymentStatisticsQuery(date_from=future))

        assert stats.total_transactions == 0
        assert stats.average_transaction_amount == Decimal("0.00")

    @pytest.mark.asyncio
    async def test_statistics_inverted_window(self, orchestrator: PaymentOrchestrator):
        now = utcnow()

        with pytest.raises(InvalidInputError):
            await orchestrator.statistics(
                PaymentStatisticsQuery(date_from=now, date_to=now - timedelta(days=1))
            )

    @pytest.mark.asyncio
    async def test_get_by_reference(self, orchestrator: PaymentOrchestrator, violations):
        checkout = await orchestrator.initiate(pay(*(v.id for v in violations)))

        found = await orchestrator.get_by_reference(checkout.payment_reference)

        assert len(found) == 2
        assert {p.violation_id for p in found} == {v.id for v in violations}

    @pytest.mark.asyncio
    async def test_get_by_unknown_reference(self, orchestrator: PaymentOrchestrator):
        with pytest.raises(NotFoundError):
            await orchestrator.get_by_reference("PAY-NOPE")

    @pytest.mark.asyncio
    async def test_violation_payments_totals(
        self, orchestrator: PaymentOrchestrator, violations
    ):
        """Test refunded attempts count towards refunds but not payments."""
        first = await orchestrator.initiate(pay(violations[0].id))
        settled = await orchestrator.verify(first.payment_reference, GatewayProvider.PAYSTACK)
        await orchestrator.refund(
            settled.payments[0].id, Decimal("50000.00"), "Paid twice", actor_id=3
        )
        second = await orchestrator.initiate(pay(violations[0].id))
        await orchestrator.verify(second.payment_reference, GatewayProvider.PAYSTACK)

        history = await orchestrator.violation_payments(violations[0].id)

        assert history.violation_id == violations[0].id
        assert len(history.payments) == 2
        assert history.payments[0].payment_reference == second.payment_reference
        assert history.total_paid == Decimal("50000.00")
        assert history.total_refunded == Decimal("50000.00")

    @pytest.mark.asyncio
    async def test_violation_payments_missing_violation(
        self, orchestrator: PaymentOrchestrator
    ):
        with pytest.raises(NotFoundError):
            await orchestrator.violation_payments(9999)
