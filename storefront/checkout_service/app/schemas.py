"""Pydantic schemas for the checkout service."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Literal, get_args

from pydantic import BaseModel, ConfigDict, Field, PositiveInt, field_validator, model_validator

OrderStatus = Literal["pending", "processing", "shipped", "delivered", "cancelled", "refunded"]
ORDER_STATUSES = get_args(OrderStatus)


def _strip_required(value: str) -> str:
    cleaned = value.strip()
    if not cleaned:
        msg = "value must be non-empty"
        raise ValueError(msg)
    return cleaned


# Categories -------------------------------------------------------------------------------


class CategoryCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    slug: str | None = Field(default=None, max_length=255)
    description: str | None = None

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        return _strip_required(value)


class CategoryUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    slug: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None


class CategoryResponse(BaseModel):
    id: str
    name: str
    slug: str
    description: str | None = None
    product_count: int = Field(default=0, alias="productCount")
    created_at: datetime = Field(alias="createdAt")

    model_config = ConfigDict(populate_by_name=True)


class CategoryListResponse(BaseModel):
    items: list[CategoryResponse]
    total: int


# Catalog ----------------------------------------------------------------------------------


class ProductCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    slug: str | None = Field(default=None, max_length=255)
    description: str = Field(default="")
    price: Decimal = Field(gt=Decimal("0"), max_digits=12, decimal_places=2)
    category_id: str | None = Field(default=None, max_length=36, alias="categoryId")
    image_url: str = Field(default="", max_length=1024, alias="imageUrl")
    inventory_count: int = Field(default=0, ge=0, alias="inventoryCount")
    featured: bool = False
    discount_percent: int | None = Field(default=None, ge=0, le=100, alias="discountPercent")
    is_on_sale: bool = Field(default=False, alias="isOnSale")
    sale_start_date: datetime | None = Field(default=None, alias="saleStartDate")
    sale_end_date: datetime | None = Field(default=None, alias="saleEndDate")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        return _strip_required(value)

    @model_validator(mode="after")
    def _check_sale_window(self) -> "ProductCreate":
        if self.sale_start_date and self.sale_end_date and self.sale_end_date <= self.sale_start_date:
            msg = "saleEndDate must be after saleStartDate"
            raise ValueError(msg)
        return self


class ProductUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    price: Decimal | None = Field(default=None, gt=Decimal("0"), max_digits=12, decimal_places=2)
    category_id: str | None = Field(default=None, max_length=36, alias="categoryId")
    image_url: str | None = Field(default=None, max_length=1024, alias="imageUrl")
    featured: bool | None = None
    discount_percent: int | None = Field(default=None, ge=0, le=100, alias="discountPercent")
    is_on_sale: bool | None = Field(default=None, alias="isOnSale")
    sale_start_date: datetime | None = Field(default=None, alias="saleStartDate")
    sale_end_date: datetime | None = Field(default=None, alias="saleEndDate")

    model_config = ConfigDict(populate_by_name=True)


class InventoryUpdate(BaseModel):
    inventory_count: int = Field(ge=0, alias="inventoryCount")

    model_config = ConfigDict(populate_by_name=True)


class ProductResponse(BaseModel):
    id: str
    name: str
    slug: str
    description: str
    category_id: str | None = Field(default=None, alias="categoryId")
    price: Decimal
    image_url: str = Field(alias="imageUrl")
    inventory_count: int = Field(alias="inventoryCount")
    featured: bool
    discount_percent: int | None = Field(default=None, alias="discountPercent")
    is_on_sale: bool = Field(alias="isOnSale")
    sale_start_date: datetime | None = Field(default=None, alias="saleStartDate")
    sale_end_date: datetime | None = Field(default=None, alias="saleEndDate")
    on_sale_now: bool = Field(alias="onSaleNow")
    sale_price: Decimal | None = Field(default=None, alias="salePrice")
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


class ProductListResponse(BaseModel):
    items: list[ProductResponse]
    total: int


class FlashSaleResponse(BaseModel):
    active: list[ProductResponse]
    upcoming: list[ProductResponse]


# Cart -------------------------------------------------------------------------------------


class CartLine(BaseModel):
    id: str = Field(min_length=1, max_length=64)
    name: str = Field(default="", max_length=255)
    price: Decimal = Field(default=Decimal("0"), ge=Decimal("0"), max_digits=12, decimal_places=2)
    image_url: str = Field(default="", alias="imageUrl")
    inventory_count: int = Field(default=0, ge=0, alias="inventoryCount")
    quantity: PositiveInt

    model_config = ConfigDict(populate_by_name=True)


class InventoryCheckRequest(BaseModel):
    items: list[CartLine]


class CartItemResponse(BaseModel):
    id: str
    name: str
    price: Decimal
    image_url: str = Field(alias="imageUrl")
    inventory_count: int = Field(alias="inventoryCount")
    quantity: int
    is_out_of_stock: bool = Field(alias="isOutOfStock")

    model_config = ConfigDict(populate_by_name=True)


class InventoryCheckResponse(BaseModel):
    items: list[CartItemResponse]
    has_out_of_stock_items: bool = Field(alias="hasOutOfStockItems")
    inventory_checked: bool = Field(alias="inventoryChecked")
    count: int
    total: Decimal

    model_config = ConfigDict(populate_by_name=True)


# Coupons ----------------------------------------------------------------------------------


class CouponCreate(BaseModel):
    code: str = Field(min_length=1, max_length=64)
    description: str | None = Field(default=None, max_length=255)
    discount_type: Literal["percentage", "fixed"] = Field(alias="discountType")
    discount_value: Decimal = Field(gt=Decimal("0"), max_digits=12, decimal_places=2, alias="discountValue")
    min_order_amount: Decimal = Field(
        default=Decimal("0"), ge=Decimal("0"), max_digits=12, decimal_places=2, alias="minOrderAmount"
    )
    expiry_date: datetime | None = Field(default=None, alias="expiryDate")
    usage_limit: PositiveInt | None = Field(default=None, alias="usageLimit")
    is_active: bool = Field(default=True, alias="isActive")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("code")
    @classmethod
    def _strip_code(cls, value: str) -> str:
        return _strip_required(value)

    @model_validator(mode="after")
    def _check_percentage(self) -> "CouponCreate":
        if self.discount_type == "percentage" and self.discount_value > Decimal("100"):
            msg = "percentage discounts cannot exceed 100"
            raise ValueError(msg)
        return self


class CouponUpdate(BaseModel):
    description: str | None = Field(default=None, max_length=255)
    discount_type: Literal["percentage", "fixed"] | None = Field(default=None, alias="discountType")
    discount_value: Decimal | None = Field(
        default=None, gt=Decimal("0"), max_digits=12, decimal_places=2, alias="discountValue"
    )
    min_order_amount: Decimal | None = Field(
        default=None, ge=Decimal("0"), max_digits=12, decimal_places=2, alias="minOrderAmount"
    )
    expiry_date: datetime | None = Field(default=None, alias="expiryDate")
    usage_limit: PositiveInt | None = Field(default=None, alias="usageLimit")
    is_active: bool | None = Field(default=None, alias="isActive")

    model_config = ConfigDict(populate_by_name=True)


class CouponResponse(BaseModel):
    id: str
    code: str
    description: str | None = None
    discount_type: str = Field(alias="discountType")
    discount_value: Decimal = Field(alias="discountValue")
    min_order_amount: Decimal = Field(alias="minOrderAmount")
    expiry_date: datetime | None = Field(default=None, alias="expiryDate")
    usage_limit: int | None = Field(default=None, alias="usageLimit")
    usage_count: int = Field(alias="usageCount")
    is_active: bool = Field(alias="isActive")
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


class CouponListResponse(BaseModel):
    items: list[CouponResponse]
    total: int


class CouponApplyRequest(BaseModel):
    order_total: Decimal = Field(ge=Decimal("0"), max_digits=12, decimal_places=2, alias="orderTotal")
    coupon_code: str = Field(min_length=1, max_length=64, alias="couponCode")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("coupon_code")
    @classmethod
    def _strip_code(cls, value: str) -> str:
        return _strip_required(value)


class CouponApplyResponse(BaseModel):
    status: Literal["success", "error"]
    message: str
    discounted_total: Decimal | None = Field(default=None, alias="discountedTotal")
    discount_amount: Decimal | None = Field(default=None, alias="discountAmount")
    coupon_id: str | None = Field(default=None, alias="couponId")

    model_config = ConfigDict(populate_by_name=True)


# Payments ---------------------------------------------------------------------------------


class PaymentOrderCreate(BaseModel):
    amount: PositiveInt
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    receipt: str | None = Field(default=None, max_length=40)

    @field_validator("currency")
    @classmethod
    def _normalize_currency(cls, value: str | None) -> str | None:
        return value.strip().upper() if value is not None else None


class PaymentOrderResponse(BaseModel):
    id: str
    amount: int
    currency: str
    receipt: str | None = None
    status: str
    key: str | None = None


class PaymentVerifyRequest(BaseModel):
    razorpay_order_id: str = Field(min_length=1)
    razorpay_payment_id: str = Field(min_length=1)
    razorpay_signature: str = Field(min_length=1)


class PaymentVerifyResponse(BaseModel):
    verified: bool
    error: str | None = None


# Orders -----------------------------------------------------------------------------------


class OrderLine(BaseModel):
    id: str = Field(min_length=1, max_length=64)
    name: str | None = Field(default=None, max_length=255)
    price: Decimal | None = Field(default=None, ge=Decimal("0"), max_digits=12, decimal_places=2)
    quantity: PositiveInt


class OrderCreate(BaseModel):
    user_id: str | None = Field(default=None, max_length=64, alias="userId")
    items: list[OrderLine] = Field(default_factory=list)
    total: Decimal | None = Field(default=None, ge=Decimal("0"), max_digits=12, decimal_places=2)
    address: str | None = Field(default=None, max_length=512)
    city: str | None = Field(default=None, max_length=128)
    state: str | None = Field(default=None, max_length=128)
    postal_code: str | None = Field(default=None, max_length=32, alias="postalCode")
    country: str | None = Field(default=None, max_length=128)
    payment_id: str | None = Field(default=None, max_length=128, alias="paymentId")
    order_id: str | None = Field(default=None, max_length=128, alias="orderId")
    coupon_code: str | None = Field(default=None, max_length=64, alias="couponCode")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("user_id", "payment_id", "order_id", "coupon_code")
    @classmethod
    def _blank_to_none(cls, value: str | None) -> str | None:
        if value is None:
            return None
        cleaned = value.strip()
        return cleaned or None


class OrderCreateResponse(BaseModel):
    success: bool
    order_id: str = Field(alias="orderId")
    replayed: bool = False

    model_config = ConfigDict(populate_by_name=True)


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class OrderItemResponse(BaseModel):
    id: PositiveInt
    product_id: str = Field(alias="productId")
    name: str
    quantity: int
    price: Decimal
    created_at: datetime = Field(alias="createdAt")

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


class OrderEventResponse(BaseModel):
    type: str
    payload: str
    created_at: datetime = Field(alias="createdAt")

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


class OrderResponse(BaseModel):
    id: str
    user_id: str = Field(alias="userId")
    status: str
    currency: str
    subtotal: Decimal
    discount_amount: Decimal = Field(alias="discountAmount")
    total: Decimal
    coupon_id: str | None = Field(default=None, alias="couponId")
    coupon_code: str | None = Field(default=None, alias="couponCode")
    address: str | None = None
    city: str | None = None
    state: str | None = None
    postal_code: str | None = Field(default=None, alias="postalCode")
    country: str | None = None
    payment_id: str = Field(alias="paymentId")
    gateway_order_id: str = Field(alias="gatewayOrderId")
    items: list[OrderItemResponse]
    events: list[OrderEventResponse] = Field(default_factory=list)
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


class OrderListResponse(BaseModel):
    items: list[OrderResponse]
    total: int


# Settings, addresses, wishlist ------------------------------------------------------------


class SettingUpdate(BaseModel):
    value: str
    description: str | None = Field(default=None, max_length=255)


class SettingResponse(BaseModel):
    key: str
    value: str
    description: str | None = None
    updated_at: datetime = Field(alias="updatedAt")

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


class FlashSaleSettings(BaseModel):
    show_flash_sale_section: bool = Field(default=True, alias="showFlashSaleSection")
    flash_sale_section_title: str = Field(default="Flash Sale", max_length=255, alias="flashSaleSectionTitle")
    flash_sale_section_subtitle: str = Field(
        default="Limited time offers on our best products", max_length=255, alias="flashSaleSectionSubtitle"
    )

    model_config = ConfigDict(populate_by_name=True)


class AddressPayload(BaseModel):
    address: str = Field(min_length=1, max_length=512)
    city: str = Field(min_length=1, max_length=128)
    state: str = Field(min_length=1, max_length=128)
    postal_code: str = Field(min_length=1, max_length=32, alias="postalCode")
    country: str = Field(min_length=1, max_length=128)

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("address", "city", "state", "postal_code", "country")
    @classmethod
    def _strip(cls, value: str) -> str:
        return _strip_required(value)


class AddressResponse(AddressPayload):
    user_id: str = Field(alias="userId")
    is_default: bool = Field(alias="isDefault")
    updated_at: datetime = Field(alias="updatedAt")

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


class WishlistItemResponse(BaseModel):
    product_id: str = Field(alias="productId")
    created_at: datetime = Field(alias="createdAt")
    product: ProductResponse

    model_config = ConfigDict(populate_by_name=True)


class WishlistResponse(BaseModel):
    items: list[WishlistItemResponse]
    total: int
