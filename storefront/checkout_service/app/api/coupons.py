"""HTTP routes for coupon evaluation and administration."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from ..coupons import CouponValidator
from ..dependencies import get_coupon_repository
from ..money import from_cents, to_cents
from ..repository import CouponRepository
from ..schemas import (
    CouponApplyRequest,
    CouponApplyResponse,
    CouponCreate,
    CouponListResponse,
    CouponResponse,
    CouponUpdate,
)

router = APIRouter(prefix="/coupons", tags=["coupons"])


def _serialize_coupon(coupon) -> dict[str, object]:
    return {
        "id": coupon.id,
        "code": coupon.code,
        "description": coupon.description,
        "discountType": coupon.discount_type,
        "discountValue": from_cents(coupon.discount_value_cents),
        "minOrderAmount": from_cents(coupon.min_order_amount_cents),
        "expiryDate": coupon.expiry_date,
        "usageLimit": coupon.usage_limit,
        "usageCount": coupon.usage_count,
        "isActive": coupon.is_active,
        "createdAt": coupon.created_at,
        "updatedAt": coupon.updated_at,
    }


@router.post("/apply", response_model=CouponApplyResponse)
async def apply_coupon(
    payload: CouponApplyRequest,
    repository: CouponRepository = Depends(get_coupon_repository),
) -> CouponApplyResponse:
    result, _ = await CouponValidator(repository).apply_coupon(payload.order_total, payload.coupon_code)
    return CouponApplyResponse.model_validate(
        {
            "status": result.status,
            "message": result.message,
            "discountedTotal": result.discounted_total,
            "discountAmount": result.discount_amount,
            "couponId": result.coupon_id,
        }
    )


@router.post("", response_model=CouponResponse, status_code=status.HTTP_201_CREATED)
async def create_coupon(
    payload: CouponCreate,
    repository: CouponRepository = Depends(get_coupon_repository),
) -> CouponResponse:
    if await repository.get_by_code(payload.code):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Coupon code already exists")

    coupon = await repository.create_coupon(
        code=payload.code,
        description=payload.description,
        discount_type=payload.discount_type,
        discount_value_cents=to_cents(payload.discount_value),
        min_order_amount_cents=to_cents(payload.min_order_amount),
        expiry_date=payload.expiry_date,
        usage_limit=payload.usage_limit,
        is_active=payload.is_active,
    )
    return CouponResponse.model_validate(_serialize_coupon(coupon))


@router.get("", response_model=CouponListResponse)
async def list_coupons(
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    active: bool | None = Query(default=None),
    repository: CouponRepository = Depends(get_coupon_repository),
) -> CouponListResponse:
    coupons, total = await repository.list_coupons(active=active, limit=limit, offset=offset)
    items = [CouponResponse.model_validate(_serialize_coupon(coupon)) for coupon in coupons]
    return CouponListResponse(items=items, total=total)


@router.get("/{coupon_id}", response_model=CouponResponse)
async def get_coupon(
    coupon_id: str,
    repository: CouponRepository = Depends(get_coupon_repository),
) -> CouponResponse:
    coupon = await repository.get_coupon(coupon_id)
    if coupon is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Coupon not found")
    return CouponResponse.model_validate(_serialize_coupon(coupon))


@router.patch("/{coupon_id}", response_model=CouponResponse)
async def update_coupon(
    coupon_id: str,
    payload: CouponUpdate,
    repository: CouponRepository = Depends(get_coupon_repository),
) -> CouponResponse:
    coupon = await repository.get_coupon(coupon_id)
    if coupon is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Coupon not found")

    updates = payload.model_dump(exclude_unset=True)
    if "discount_value" in updates:
        updates["discount_value_cents"] = to_cents(updates.pop("discount_value"))
    if "min_order_amount" in updates:
        updates["min_order_amount_cents"] = to_cents(updates.pop("min_order_amount"))

    discount_type = updates.get("discount_type", coupon.discount_type)
    discount_value_cents = updates.get("discount_value_cents", coupon.discount_value_cents)
    if discount_type == "percentage" and discount_value_cents > 10000:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="percentage discounts cannot exceed 100",
        )

    updated = await repository.update_coupon(coupon, updates)
    return CouponResponse.model_validate(_serialize_coupon(updated))


@router.delete("/{coupon_id}")
async def delete_coupon(
    coupon_id: str,
    repository: CouponRepository = Depends(get_coupon_repository),
) -> Response:
    coupon = await repository.get_coupon(coupon_id)
    if coupon is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Coupon not found")
    await repository.delete_coupon(coupon)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
