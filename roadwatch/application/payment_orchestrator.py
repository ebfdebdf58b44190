"""
Payment orchestration use cases.

Turns a set of payable violations into one gateway checkout, confirms it
through explicit verification or a signed webhook, and handles refunds,
receipts and reporting. Payments created by one checkout share a payment
reference and always move between statuses together.
"""

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from roadwatch.application.transaction import transaction
from roadwatch.core.config import Settings, get_settings
from roadwatch.core.logging import get_logger, payment_context
from roadwatch.domain.events import EventPublisher, PaymentConfirmed
from roadwatch.domain.exceptions import (
    ConflictError,
    IllegalStateTransitionError,
    InvalidInputError,
    NotFoundError,
    SignatureInvalidError,
)
from roadwatch.domain.models import (
    GatewayProvider,
    Payment,
    PaymentMethod,
    PaymentStatus,
    Violation,
    ViolationStatus,
    as_naive_utc,
    utcnow,
)
from roadwatch.domain.queries import PaymentStatisticsQuery
from roadwatch.domain.services import IdentifierGenerator
from roadwatch.infrastructure.db.repository import PaymentRepository, ViolationRepository
from roadwatch.infrastructure.gateways import PaymentGateway
from roadwatch.infrastructure.notifications import LoggingEventPublisher

logger = get_logger(__name__)

MAX_REFERENCE_ATTEMPTS = 5

_ZERO = Decimal("0.00")


@dataclass
class PaymentRequest:
    """
    A payer's request to settle one or more violations.

    Attributes:
        violation_ids: Distinct violations, each pending or partially paid.
        payer_email: Receipt address, required by both gateways.
        gateway: Provider to check out with.
        callback_url: Where the provider redirects afterwards; the
            configured default if None.
    """

    violation_ids: list[int]
    payer_email: str
    gateway: GatewayProvider
    payment_method: PaymentMethod = PaymentMethod.CARD
    payer_name: str | None = None
    payer_phone: str | None = None
    callback_url: str | None = None


@dataclass
class PaymentInitiation:
    payment_reference: str
    payment_url: str
    total_amount: Decimal
    payments: list[Payment]
    violations: list[Violation]


@dataclass
class PaymentVerification:
    """
    Outcome of confirming a payment reference.

    ``already_processed`` is True when the reference had been settled
    before this call; the stored outcome is returned and the gateway is
    not asked again.
    """

    payment_reference: str
    success: bool
    payments: list[Payment]
    total_amount: Decimal
    already_processed: bool = False


@dataclass
class GatewayBreakdown:
    count: int = 0
    amount: Decimal = _ZERO


@dataclass
class DailyTrend:
    day: date
    count: int
    amount: Decimal


@dataclass
class PaymentStatistics:
    """Aggregates over payments in a window."""

    total_transactions: int
    total_amount: Decimal
    successful_transactions: int
    successful_amount: Decimal
    failed_transactions: int
    pending_transactions: int
    refunded_transactions: int
    refunded_amount: Decimal
    average_transaction_amount: Decimal
    by_status: dict[str, int] = field(default_factory=dict)
    gateway_breakdown: dict[str, GatewayBreakdown] = field(default_factory=dict)
    daily_trends: list[DailyTrend] = field(default_factory=list)


@dataclass
class ReceiptItem:
    violation_id: int
    ticket_number: str
    plate_number: str
    amount: Decimal


@dataclass
class PaymentReceipt:
    """Proof of a completed payment, with every violation it settled."""

    receipt_number: str
    payment_reference: str
    gateway: GatewayProvider
    gateway_reference: str | None
    payment_method: PaymentMethod
    payment_date: datetime | None
    payer_name: str | None
    payer_email: str | None
    payer_phone: str | None
    total_amount: Decimal
    items: list[ReceiptItem]


@dataclass
class ViolationPaymentHistory:
    """Every payment attempt against one violation with money totals."""

    violation_id: int
    payments: list[Payment]
    total_paid: Decimal
    total_refunded: Decimal


@dataclass
class PaymentSearchResult:
    payments: list[Payment]
    total_count: int
    page: int
    limit: int
    total_pages: int


class PaymentOrchestrator:
    """
    Use cases over payments.

    Example:
        orchestrator = PaymentOrchestrator(session, build_gateways(settings))
        checkout = await orchestrator.initiate(request)
        # payer completes checkout at checkout.payment_url
        await orchestrator.verify(checkout.payment_reference, request.gateway)
    """

    def __init__(
        self,
        session: AsyncSession,
        gateways: Mapping[GatewayProvider, PaymentGateway],
        publisher: EventPublisher | None = None,
        settings: Settings | None = None,
        identifiers: IdentifierGenerator | None = None,
    ):
        """
        Initialize orchestrator.

        Args:
            session: Database session.
            gateways: Gateway client per provider.
            publisher: Receiver of PaymentConfirmed events.
            settings: Callback URL default; application settings if None.
            identifiers: Payment reference generator.
        """
        self._session = session
        self._gateways = dict(gateways)
        self._settings = settings or get_settings()
        self._publisher = publisher or LoggingEventPublisher()
        self._identifiers = identifiers or IdentifierGenerator()
        self._payments = PaymentRepository(session)
        self._violations = ViolationRepository(session)

    async def initiate(self, request: PaymentRequest) -> PaymentInitiation:
        """
        Open a checkout covering every requested violation.

        Creates one pending payment per violation under a fresh reference
        and asks the gateway for a checkout URL for the summed amount. If
        the gateway call fails nothing is persisted.

        Args:
            request: Violations, payer and gateway.

        Returns:
            PaymentInitiation: Reference, checkout URL and pending payments.

        Raises:
            InvalidInputError: Empty or duplicated ids, unknown gateway, or
                a violation that does not exist or is not payable.
            GatewayError: If the provider rejects the checkout.
        """
        violation_ids = list(request.violation_ids)
        if not violation_ids:
            raise InvalidInputError("At least one violation is required")
        if len(set(violation_ids)) != len(violation_ids):
            raise InvalidInputError("Duplicate violation ids in payment request")
        if not request.payer_email or "@" not in request.payer_email:
            raise InvalidInputError("A valid payer email is required")

        gateway = self._gateway(request.gateway)

        async with transaction(self._session):
            violations = await self._violations.list_payable(violation_ids)
            if len(violations) != len(violation_ids):
                payable = {v.id for v in violations}
                missing = sorted(set(violation_ids) - payable)
                raise InvalidInputError(
                    "One or more violations are not found or not payable",
                    errors=[f"Violation {violation_id} cannot be paid" for violation_id in missing],
                )

            total_amount = sum((v.fine_amount for v in violations), _ZERO)
            reference = await self._allocate_reference()

            for violation in violations:
                await self._payments.create(
                    Payment(
                        violation_id=violation.id,
                        amount=violation.fine_amount,
                        payment_method=request.payment_method,
                        payment_reference=reference,
                        gateway_provider=request.gateway,
                        payer_name=request.payer_name,
                        payer_email=request.payer_email.lower(),
                        payer_phone=request.payer_phone,
                    )
                )

            checkout = await gateway.initialize(
                payer_email=request.payer_email.lower(),
                amount=total_amount,
                reference=reference,
                metadata={
                    "violation_ids": [v.id for v in violations],
                    "ticket_numbers": [v.ticket_number for v in violations],
                    "plate_numbers": sorted({v.plate_number for v in violations}),
                },
                payer_name=request.payer_name,
                payer_phone=request.payer_phone,
                callback_url=request.callback_url or self._settings.payment_callback_url,
            )

            await self._payments.update_by_reference(
                reference,
                PaymentStatus.PENDING,
                payment_url=checkout.redirect_url,
            )
            payments = await self._payments.list_by_reference(reference)

        logger.info(
            "payment_initiated",
            payment_reference=reference,
            gateway=request.gateway.value,
            violations=len(violations),
            total_amount=str(total_amount),
        )

        return PaymentInitiation(
            payment_reference=reference,
            payment_url=checkout.redirect_url,
            total_amount=total_amount,
            payments=payments,
            violations=violations,
        )

    async def verify(
        self,
        payment_reference: str,
        gateway: GatewayProvider,
        gateway_reference: str | None = None,
    ) -> PaymentVerification:
        """
        Confirm a checkout with the gateway and settle its violations.

        Pending payments under the reference are locked first, so two
        concurrent confirmations (an explicit verify racing a webhook)
        settle it exactly once. On success every payment completes and
        every covered violation becomes paid; on failure every payment
        fails and the violations stay payable.

        Args:
            payment_reference: Reference returned by ``initiate``.
            gateway: Provider the checkout was opened with.
            gateway_reference: Provider transaction id, when known.

        Returns:
            PaymentVerification: Outcome and the payments involved.

        Raises:
            NotFoundError: If no payment carries the reference.
            InvalidInputError: If the reference belongs to another gateway.
            GatewayError: If the provider call fails.
        """
        with payment_context(payment_reference):
            return await self._settle(payment_reference, gateway, gateway_reference)

    async def _settle(
        self,
        payment_reference: str,
        gateway: GatewayProvider,
        gateway_reference: str | None,
    ) -> PaymentVerification:
        provider = self._gateway(gateway)

        async with transaction(self._session):
            pending = await self._payments.list_by_reference(
                payment_reference,
                PaymentStatus.PENDING,
                for_update=True,
            )

            if not pending:
                existing = await self._payments.list_by_reference(payment_reference)
                if not existing:
                    raise NotFoundError("Payment reference", payment_reference)
                logger.info(
                    "payment_already_processed",
                    payment_reference=payment_reference,
                    status=existing[0].status.value,
                )
                success = existing[0].status in {PaymentStatus.COMPLETED, PaymentStatus.REFUNDED}
                return PaymentVerification(
                    payment_reference=payment_reference,
                    success=success,
                    payments=existing,
                    total_amount=sum((p.amount for p in existing), _ZERO) if success else _ZERO,
                    already_processed=True,
                )

            if pending[0].gateway_provider != gateway:
                raise InvalidInputError("Payment reference belongs to a different gateway")

            result = await provider.verify(payment_reference, gateway_reference)
            now = utcnow()

            if result.success:
                await self._payments.update_by_reference(
                    payment_reference,
                    PaymentStatus.PENDING,
                    status=PaymentStatus.COMPLETED,
                    gateway_reference=gateway_reference or result.provider_transaction_id,
                    gateway_response=result.raw_response,
                    payment_date=now,
                )
                await self._violations.mark_paid([p.violation_id for p in pending], now)
            else:
                await self._payments.update_by_reference(
                    payment_reference,
                    PaymentStatus.PENDING,
                    status=PaymentStatus.FAILED,
                    gateway_response=result.raw_response,
                )

            payments = await self._payments.list_by_reference(payment_reference)
            violations = await self._violations.get_many([p.violation_id for p in payments])

        total_amount = sum((p.amount for p in payments), _ZERO)
        logger.info(
            "payment_verified",
            payment_reference=payment_reference,
            gateway=gateway.value,
            success=result.success,
            payments=len(payments),
            total_amount=str(total_amount),
        )

        if result.success:
            await self._publisher.publish(
                PaymentConfirmed(
                    payment_reference=payment_reference,
                    gateway=gateway.value,
                    total_amount=total_amount,
                    ticket_numbers=tuple(sorted(v.ticket_number for v in violations)),
                    payer_email=payments[0].payer_email,
                    payer_phone=payments[0].payer_phone,
                )
            )

        return PaymentVerification(
            payment_reference=payment_reference,
            success=result.success,
            payments=payments,
            total_amount=total_amount if result.success else _ZERO,
        )

    async def handle_webhook(
        self,
        gateway: GatewayProvider,
        signature: str | None,
        raw_payload: bytes,
    ) -> PaymentVerification | None:
        """
        Process a provider webhook.

        The signature is checked over the raw body before anything is
        parsed. A body that is not JSON or carries no reference is logged
        and dropped. Otherwise the reference is confirmed through
        ``verify``, which makes replayed webhooks harmless.

        Args:
            gateway: Provider the webhook claims to come from.
            signature: Signature header value.
            raw_payload: Request body exactly as received.

        Returns:
            PaymentVerification: Verification outcome, None if dropped.

        Raises:
            SignatureInvalidError: If the signature does not match.
        """
        provider = self._gateway(gateway)

        if not provider.verify_webhook_signature(raw_payload, signature):
            logger.warning(
                "webhook_signature_invalid",
                gateway=gateway.value,
                signature_present=bool(signature),
                security_event=True,
            )
            raise SignatureInvalidError("Invalid webhook signature")

        try:
            payload = json.loads(raw_payload)
        except ValueError:
            logger.warning("webhook_payload_malformed", gateway=gateway.value)
            return None

        reference = provider.extract_webhook_reference(payload) if isinstance(payload, dict) else None
        if reference is None:
            logger.warning("webhook_reference_missing", gateway=gateway.value)
            return None

        logger.info(
            "webhook_received",
            gateway=gateway.value,
            payment_reference=reference.payment_reference,
            webhook_event=payload.get("event"),
        )
        return await self.verify(
            reference.payment_reference,
            gateway,
            reference.gateway_reference,
        )

    async def refund(
        self,
        payment_id: int,
        amount: Decimal,
        reason: str,
        actor_id: int,
    ) -> Payment:
        """
        Refund all or part of one completed payment.

        A full refund reopens the violation as pending. Penalty points are
        never restored.

        Args:
            payment_id: Payment to refund.
            amount: Amount to return, at most the payment amount.
            reason: Recorded with the refund.
            actor_id: Who authorized it.

        Returns:
            Payment: Refunded payment.

        Raises:
            NotFoundError: If the payment does not exist.
            IllegalStateTransitionError: If the payment is not completed.
            InvalidInputError: Bad amount, no gateway reference, or a
                gateway without refund support.
            GatewayError: If the provider rejects the refund.
        """
        if amount <= 0:
            raise InvalidInputError("Refund amount must be greater than zero")
        if not reason or not reason.strip():
            raise InvalidInputError("A refund reason is required")

        async with transaction(self._session):
            payment = await self._payments.get_by_id(payment_id, for_update=True)
            if payment is None:
                raise NotFoundError("Payment", payment_id)
            if payment.status != PaymentStatus.COMPLETED:
                raise IllegalStateTransitionError("Only completed payments can be refunded")
            if amount > payment.amount:
                raise InvalidInputError("Refund amount cannot exceed payment amount")

            provider = self._gateway(payment.gateway_provider)
            if not provider.supports_refund:
                raise InvalidInputError("Refunds not supported for this gateway yet")
            if not payment.gateway_reference:
                raise InvalidInputError("Gateway reference not found for this payment")

            refund = await provider.refund(payment.gateway_reference, amount)

            updated = await self._payments.update(
                payment_id,
                status=PaymentStatus.REFUNDED,
                refunded_amount=amount,
                refund_reason=reason.strip(),
                refund_date=utcnow(),
                gateway_response={**(payment.gateway_response or {}), "refund": refund.raw_response},
            )

            full_refund = amount == payment.amount
            if full_refund:
                await self._violations.update(
                    payment.violation_id,
                    status=ViolationStatus.PENDING,
                    paid_date=None,
                )

        logger.info(
            "payment_refunded",
            payment_id=payment_id,
            payment_reference=payment.payment_reference,
            amount=str(amount),
            full_refund=full_refund,
            actor_id=actor_id,
        )
        return updated

    async def get(self, payment_id: int) -> Payment:
        payment = await self._payments.get_by_id(payment_id)
        if payment is None:
            raise NotFoundError("Payment", payment_id)
        return payment

    async def get_by_reference(self, payment_reference: str) -> list[Payment]:
        """
        Every payment created by one checkout.

        Raises:
            NotFoundError: If no payment carries the reference.
        """
        payments = await self._payments.list_by_reference(payment_reference.strip())
        if not payments:
            raise NotFoundError("Payment reference", payment_reference)
        return payments

    async def violation_payments(self, violation_id: int) -> ViolationPaymentHistory:
        """
        Payment attempts against one violation, newest first.

        ``total_paid`` counts completed payments only; refunded amounts
        are summed over every attempt.

        Raises:
            NotFoundError: If the violation does not exist.
        """
        if await self._violations.get_by_id(violation_id) is None:
            raise NotFoundError("Violation", violation_id)

        payments = await self._payments.list_by_violation(violation_id)
        return ViolationPaymentHistory(
            violation_id=violation_id,
            payments=payments,
            total_paid=sum(
                (p.amount for p in payments if p.status == PaymentStatus.COMPLETED),
                _ZERO,
            ),
            total_refunded=sum((p.refunded_amount for p in payments), _ZERO),
        )

    async def receipt(self, payment_id: int) -> PaymentReceipt:
        """
        Receipt for a completed payment, covering its whole reference.

        Raises:
            NotFoundError: If the payment does not exist.
            InvalidInputError: If the payment has not completed.
        """
        payment = await self.get(payment_id)
        if payment.status != PaymentStatus.COMPLETED:
            raise InvalidInputError("Receipts are only available for completed payments")

        siblings = [
            p
            for p in await self._payments.list_by_reference(payment.payment_reference)
            if p.status == PaymentStatus.COMPLETED
        ]
        violations = {
            v.id: v for v in await self._violations.get_many([p.violation_id for p in siblings])
        }

        items = [
            ReceiptItem(
                violation_id=p.violation_id,
                ticket_number=violations[p.violation_id].ticket_number,
                plate_number=violations[p.violation_id].plate_number,
                amount=p.amount,
            )
            for p in siblings
            if p.violation_id in violations
        ]

        return PaymentReceipt(
            receipt_number=f"RCT-{payment.payment_reference}",
            payment_reference=payment.payment_reference,
            gateway=payment.gateway_provider,
            gateway_reference=payment.gateway_reference,
            payment_method=payment.payment_method,
            payment_date=payment.payment_date,
            payer_name=payment.payer_name,
            payer_email=payment.payer_email,
            payer_phone=payment.payer_phone,
            total_amount=sum((item.amount for item in items), _ZERO),
            items=items,
        )

    async def search(
        self,
        payment_reference: str | None = None,
        payer_email: str | None = None,
        status: PaymentStatus | None = None,
        gateway: GatewayProvider | None = None,
        violation_id: int | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> PaymentSearchResult:
        page = max(page, 1)
        limit = min(max(limit, 1), 100)
        payments, total_count = await self._payments.search(
            payment_reference=payment_reference,
            payer_email=payer_email.lower() if payer_email else None,
            status=status,
            gateway=gateway,
            violation_id=violation_id,
            limit=limit,
            offset=(page - 1) * limit,
        )
        return PaymentSearchResult(
            payments=payments,
            total_count=total_count,
            page=page,
            limit=limit,
            total_pages=(total_count + limit - 1) // limit,
        )

    async def statistics(self, query: PaymentStatisticsQuery) -> PaymentStatistics:
        """
        Aggregate payments in a window.

        Args:
            query: Date window and optional gateway/status filters.

        Returns:
            PaymentStatistics: Totals, per-gateway breakdown and daily
                trend ordered by day.
        """
        query.date_from = as_naive_utc(query.date_from)
        query.date_to = as_naive_utc(query.date_to)
        if query.date_from and query.date_to and query.date_from > query.date_to:
            raise InvalidInputError("date_from must not be after date_to")

        aggregates = await self._payments.aggregate(query)

        by_status = {row.key: row for row in aggregates["by_status"]}
        total_transactions = sum(row.count for row in by_status.values())
        total_amount = sum((row.amount for row in by_status.values()), _ZERO)

        def count(status: PaymentStatus) -> int:
            row = by_status.get(status.value)
            return row.count if row else 0

        completed = by_status.get(PaymentStatus.COMPLETED.value)
        average = (
            (total_amount / total_transactions).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
            if total_transactions
            else _ZERO
        )

        return PaymentStatistics(
            total_transactions=total_transactions,
            total_amount=total_amount,
            successful_transactions=completed.count if completed else 0,
            successful_amount=completed.amount if completed else _ZERO,
            failed_transactions=count(PaymentStatus.FAILED),
            pending_transactions=count(PaymentStatus.PENDING),
            refunded_transactions=count(PaymentStatus.REFUNDED),
            refunded_amount=aggregates["refunded"],
            average_transaction_amount=average,
            by_status={key: row.count for key, row in by_status.items()},
            gateway_breakdown={
                row.key: GatewayBreakdown(count=row.count, amount=row.amount)
                for row in aggregates["by_gateway"]
            },
            daily_trends=sorted(
                (
                    DailyTrend(day=_as_date(row.key), count=row.count, amount=row.amount)
                    for row in aggregates["by_day"]
                ),
                key=lambda trend: trend.day,
            ),
        )

    def _gateway(self, provider: GatewayProvider) -> PaymentGateway:
        gateway = self._gateways.get(provider)
        if gateway is None:
            raise InvalidInputError(f"Unsupported payment gateway: {provider.value}")
        return gateway

    async def _allocate_reference(self) -> str:
        for _ in range(MAX_REFERENCE_ATTEMPTS):
            reference = self._identifiers.payment_reference()
            if not await self._payments.reference_exists(reference):
                return reference
            logger.warning("payment_reference_collision", payment_reference=reference)
        raise ConflictError("Could not allocate a unique payment reference")


def _as_date(value: Any) -> date:
    # func.date() comes back as a string on SQLite and a date on MySQL
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])
