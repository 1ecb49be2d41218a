"""HTTP routes for the Razorpay payment handshake."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse

from storefront.common import ServiceSettings

from ..dependencies import get_payment_gateway, get_settings
from ..payments import PaymentGatewayError, PaymentVerificationError, RazorpayGateway
from ..schemas import PaymentOrderCreate, PaymentOrderResponse, PaymentVerifyRequest, PaymentVerifyResponse

router = APIRouter(prefix="/payments/razorpay", tags=["payments"])


@router.post("/orders", response_model=PaymentOrderResponse)
async def create_payment_order(
    payload: PaymentOrderCreate,
    gateway: RazorpayGateway = Depends(get_payment_gateway),
    settings: ServiceSettings = Depends(get_settings),
) -> PaymentOrderResponse:
    try:
        order = await gateway.create_order(
            amount=payload.amount,
            currency=payload.currency or settings.currency,
            receipt=payload.receipt,
        )
    except PaymentGatewayError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    return PaymentOrderResponse(
        id=order.id,
        amount=order.amount,
        currency=order.currency,
        receipt=order.receipt,
        status=order.status,
        key=order.key,
    )


@router.put("/verify", response_model=PaymentVerifyResponse)
async def verify_payment(
    payload: PaymentVerifyRequest,
    gateway: RazorpayGateway = Depends(get_payment_gateway),
):
    try:
        verified = gateway.verify_payment(
            order_id=payload.razorpay_order_id,
            payment_id=payload.razorpay_payment_id,
            signature=payload.razorpay_signature,
        )
    except PaymentVerificationError as exc:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"verified": False, "error": str(exc)},
        )
    if not verified:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"verified": False, "error": "Invalid signature"},
        )
    return PaymentVerifyResponse(verified=True)
