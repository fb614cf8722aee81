from typing import Optional, Union

from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from listing_payments.core.dependencies import (
    get_db,
    get_current_institution,
    get_order_service,
    get_poll_handler,
    get_webhook_handler,
)
from listing_payments.models.institution_model import Institution
from listing_payments.modules.payment.service import OrderService
from listing_payments.modules.payment.verification import PollVerificationHandler
from listing_payments.modules.payment.webhook import WebhookHandler
from listing_payments.schemas.payment_schema import (
    ApplyCouponRequest,
    CouponQuoteResponse,
    CreateOrderRequest,
    CreateOrderResponse,
    FreeListingResponse,
    PayableAmountResponse,
    PollStatusResponse,
    WebhookResponse,
)

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/create-order", response_model=Union[CreateOrderResponse, FreeListingResponse])
async def create_order(
    order_request: CreateOrderRequest,
    institution: Institution = Depends(get_current_institution),
    order_service: OrderService = Depends(get_order_service),
    db: AsyncSession = Depends(get_db),
):
    return await order_service.create_order(db, institution, order_request)


@router.post("/webhook", response_model=WebhookResponse)
async def payment_webhook(
    request: Request,
    x_razorpay_signature: Optional[str] = Header(default=None),
    webhook_handler: WebhookHandler = Depends(get_webhook_handler),
    db: AsyncSession = Depends(get_db),
):
    """
    Gateway notification endpoint. The signature is checked against the raw body bytes.
    """
    body = await request.body()
    return await webhook_handler.handle(db, body, x_razorpay_signature)


@router.get("/poll-status", response_model=PollStatusResponse)
async def poll_subscription_status(
    orderId: Optional[str] = None,
    paymentId: Optional[str] = None,
    signature: Optional[str] = None,
    institution: Institution = Depends(get_current_institution),
    poll_handler: PollVerificationHandler = Depends(get_poll_handler),
    db: AsyncSession = Depends(get_db),
):
    return await poll_handler.poll(
        db,
        institution_id=institution.id,
        order_id=orderId,
        payment_id=paymentId,
        signature=signature,
    )


@router.get("/payable-amount", response_model=PayableAmountResponse)
async def get_payable_amount(
    planType: str = "yearly",
    institution: Institution = Depends(get_current_institution),
    order_service: OrderService = Depends(get_order_service),
    db: AsyncSession = Depends(get_db),
):
    return await order_service.get_payable_amount(db, institution, plan_type=planType)


@router.post("/apply-coupon", response_model=CouponQuoteResponse)
async def apply_coupon(
    coupon_request: ApplyCouponRequest,
    institution: Institution = Depends(get_current_institution),
    order_service: OrderService = Depends(get_order_service),
    db: AsyncSession = Depends(get_db),
):
    """Previews a coupon against every inactive course. No usage is recorded."""
    return await order_service.apply_coupon(
        db, institution, code=coupon_request.code, plan_type=coupon_request.plan_type
    )
