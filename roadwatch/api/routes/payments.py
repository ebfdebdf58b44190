"""
Payment API routes.

Provides checkout initiation and verification, provider webhooks,
refunds, receipts and payment reporting.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated

from fastapi import APIRouter, Path, Query, Request, status
from pydantic import BaseModel, ConfigDict, Field

from roadwatch.api.deps import ApiKeyAuth, CurrentActor, Payments, RateLimited
from roadwatch.api.routes.violations import ViolationResponse
from roadwatch.application.payment_orchestrator import PaymentRequest
from roadwatch.core.logging import get_logger
from roadwatch.domain.models import GatewayProvider, PaymentMethod, PaymentStatus
from roadwatch.domain.queries import PaymentStatisticsQuery

logger = get_logger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])

# Header each provider signs its webhooks with
WEBHOOK_SIGNATURE_HEADERS: dict[GatewayProvider, str] = {
    GatewayProvider.PAYSTACK: "x-paystack-signature",
    GatewayProvider.FLUTTERWAVE: "verif-hash",
}


class PaymentResponse(BaseModel):
    """Response model for one payment row."""

    model_config = ConfigDict(from_attributes=True)

    id: int = Field(description="Payment ID")
    violation_id: int
    amount: Decimal
    payment_method: PaymentMethod
    payment_reference: str = Field(description="Reference shared by one checkout")
    gateway_provider: GatewayProvider
    gateway_reference: str | None = None
    status: PaymentStatus
    payer_name: str | None = None
    payer_email: str | None = None
    payer_phone: str | None = None
    payment_url: str | None = None
    payment_date: datetime | None = None
    refunded_amount: Decimal
    refund_reason: str | None = None
    refund_date: datetime | None = None
    created_at: datetime
    updated_at: datetime


class PaymentInitiateRequest(BaseModel):
    """Request to pay one or more violations in a single checkout."""

    violation_ids: list[int] = Field(..., min_length=1, max_length=50)
    payer_email: str = Field(..., max_length=255, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    payer_name: str | None = Field(None, max_length=255)
    payer_phone: str | None = Field(None, max_length=20)
    payment_method: PaymentMethod = PaymentMethod.CARD
    gateway: GatewayProvider = GatewayProvider.PAYSTACK
    callback_url: str | None = Field(None, max_length=500)


class PaymentInitiateResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    payment_reference: str
    payment_url: str = Field(description="Checkout URL to redirect the payer to")
    total_amount: Decimal
    payments: list[PaymentResponse]
    violations: list[ViolationResponse]


class PaymentVerifyRequest(BaseModel):
    payment_reference: str = Field(..., min_length=1, max_length=64)
    gateway: GatewayProvider
    gateway_reference: str | None = Field(None, max_length=100)


class PaymentVerifyResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    payment_reference: str
    success: bool
    payments: list[PaymentResponse]
    total_amount: Decimal
    already_processed: bool = Field(description="Reference was settled before this call")


class RefundRequest(BaseModel):
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    reason: str = Field(..., min_length=1, max_length=1000)


class WebhookAck(BaseModel):
    status: str = "ok"
    processed: bool


class ReceiptItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    violation_id: int
    ticket_number: str
    plate_number: str
    amount: Decimal


class ReceiptResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

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
    items: list[ReceiptItemResponse]


class GatewayBreakdownResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    count: int
    amount: Decimal


class DailyTrendResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    day: date
    count: int
    amount: Decimal


class StatisticsResponse(BaseModel):
    """Payment aggregates for a window."""

    model_config = ConfigDict(from_attributes=True)

    total_transactions: int
    total_amount: Decimal
    successful_transactions: int
    successful_amount: Decimal
    failed_transactions: int
    pending_transactions: int
    refunded_transactions: int
    refunded_amount: Decimal
    average_transaction_amount: Decimal
    by_status: dict[str, int]
    gateway_breakdown: dict[str, GatewayBreakdownResponse]
    daily_trends: list[DailyTrendResponse]


class ViolationPaymentHistoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    violation_id: int
    payments: list[PaymentResponse]
    total_paid: Decimal = Field(description="Sum of completed payments")
    total_refunded: Decimal


class PaymentSearchResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    payments: list[PaymentResponse]
    total_count: int
    page: int
    limit: int
    total_pages: int


@router.post(
    "",
    response_model=PaymentInitiateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Initiate payment",
    description="Open one gateway checkout covering every listed violation.",
    responses={
        400: {"description": "Violation missing or not payable"},
        502: {"description": "Payment gateway error"},
    },
)
async def initiate_payment(
    request: PaymentInitiateRequest,
    payments: Payments,
    _: ApiKeyAuth,
    __: RateLimited,
) -> PaymentInitiateResponse:
    checkout = await payments.initiate(PaymentRequest(**request.model_dump()))
    return PaymentInitiateResponse.model_validate(checkout)


@router.post(
    "/verify",
    response_model=PaymentVerifyResponse,
    summary="Verify payment",
    description="Confirm a checkout with its gateway; repeat calls report the stored outcome.",
)
async def verify_payment(
    request: PaymentVerifyRequest,
    payments: Payments,
    _: ApiKeyAuth,
    __: RateLimited,
) -> PaymentVerifyResponse:
    result = await payments.verify(
        request.payment_reference,
        request.gateway,
        request.gateway_reference,
    )
    return PaymentVerifyResponse.model_validate(result)


@router.post(
    "/webhooks/{gateway}",
    response_model=WebhookAck,
    summary="Gateway webhook",
    description="Signed provider callback. Authenticated by signature, not API key.",
    responses={400: {"description": "Invalid signature"}},
)
async def payment_webhook(
    gateway: Annotated[GatewayProvider, Path(description="Provider sending the webhook")],
    request: Request,
    payments: Payments,
) -> WebhookAck:
    """
    Receive a provider webhook.

    The body is read raw so the signature is checked over exactly the
    bytes the provider signed.
    """
    raw_payload = await request.body()
    signature = request.headers.get(WEBHOOK_SIGNATURE_HEADERS[gateway])
    result = await payments.handle_webhook(gateway, signature, raw_payload)
    return WebhookAck(processed=result is not None)


@router.get(
    "",
    response_model=PaymentSearchResponse,
    summary="Search payments",
)
async def search_payments(
    payments: Payments,
    _: ApiKeyAuth,
    payment_reference: str | None = None,
    payer_email: str | None = None,
    payment_status: Annotated[PaymentStatus | None, Query(alias="status")] = None,
    gateway: GatewayProvider | None = None,
    violation_id: int | None = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
) -> PaymentSearchResponse:
    result = await payments.search(
        payment_reference=payment_reference,
        payer_email=payer_email,
        status=payment_status,
        gateway=gateway,
        violation_id=violation_id,
        page=page,
        limit=limit,
    )
    return PaymentSearchResponse.model_validate(result)


@router.get(
    "/statistics",
    response_model=StatisticsResponse,
    summary="Payment statistics",
)
async def payment_statistics(
    payments: Payments,
    actor: CurrentActor,
    _: ApiKeyAuth,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    gateway: GatewayProvider | None = None,
    payment_status: Annotated[PaymentStatus | None, Query(alias="status")] = None,
) -> StatisticsResponse:
    """Totals, per-gateway breakdown and daily trend. Requires a bearer token."""
    stats = await payments.statistics(
        PaymentStatisticsQuery(
            date_from=date_from,
            date_to=date_to,
            gateway=gateway,
            status=payment_status,
        )
    )
    logger.info("payment_statistics_requested", actor_id=actor.actor_id)
    return StatisticsResponse.model_validate(stats)


@router.get(
    "/reference/{payment_reference}",
    response_model=list[PaymentResponse],
    summary="Payments by reference",
    responses={404: {"description": "No payment carries the reference"}},
)
async def get_payments_by_reference(
    payment_reference: Annotated[str, Path(min_length=1, max_length=64)],
    payments: Payments,
    _: ApiKeyAuth,
    __: RateLimited,
) -> list[PaymentResponse]:
    """Every payment created by one checkout."""
    return [
        PaymentResponse.model_validate(p)
        for p in await payments.get_by_reference(payment_reference)
    ]


@router.get(
    "/violation/{violation_id}",
    response_model=ViolationPaymentHistoryResponse,
    summary="Payments for a violation",
)
async def get_violation_payments(
    violation_id: Annotated[int, Path(description="Violation ID")],
    payments: Payments,
    actor: CurrentActor,
    _: ApiKeyAuth,
) -> ViolationPaymentHistoryResponse:
    history = await payments.violation_payments(violation_id)
    return ViolationPaymentHistoryResponse.model_validate(history)


@router.get(
    "/{payment_id}",
    response_model=PaymentResponse,
    summary="Get payment",
)
async def get_payment(
    payment_id: Annotated[int, Path(description="Payment ID")],
    payments: Payments,
    _: ApiKeyAuth,
) -> PaymentResponse:
    return PaymentResponse.model_validate(await payments.get(payment_id))


@router.get(
    "/{payment_id}/receipt",
    response_model=ReceiptResponse,
    summary="Payment receipt",
)
async def get_receipt(
    payment_id: Annotated[int, Path(description="Payment ID")],
    payments: Payments,
    _: ApiKeyAuth,
) -> ReceiptResponse:
    return ReceiptResponse.model_validate(await payments.receipt(payment_id))


@router.post(
    "/{payment_id}/refund",
    response_model=PaymentResponse,
    summary="Refund payment",
    description="Refund all or part of a completed payment. Requires a bearer token.",
    responses={409: {"description": "Payment is not completed"}},
)
async def refund_payment(
    payment_id: Annotated[int, Path(description="Payment ID")],
    request: RefundRequest,
    payments: Payments,
    actor: CurrentActor,
    _: ApiKeyAuth,
) -> PaymentResponse:
    payment = await payments.refund(
        payment_id,
        request.amount,
        request.reason,
        actor_id=actor.actor_id,
    )
    return PaymentResponse.model_validate(payment)
