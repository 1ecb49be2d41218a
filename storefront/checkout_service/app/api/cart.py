"""HTTP routes for cart stock checks."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from ..cart import Cart, CartItem
from ..dependencies import get_product_repository
from ..inventory import InventoryChecker
from ..repository import ProductRepository
from ..schemas import CartItemResponse, InventoryCheckRequest, InventoryCheckResponse

router = APIRouter(prefix="/cart", tags=["cart"])


def _serialize_item(item: CartItem) -> dict[str, object]:
    return {
        "id": item.id,
        "name": item.name,
        "price": item.price,
        "imageUrl": item.image_url,
        "inventoryCount": item.inventory_count,
        "quantity": item.quantity,
        "isOutOfStock": item.is_out_of_stock,
    }


@router.post("/inventory-check", response_model=InventoryCheckResponse)
async def check_inventory(
    payload: InventoryCheckRequest,
    repository: ProductRepository = Depends(get_product_repository),
) -> InventoryCheckResponse:
    cart = Cart()
    for line in payload.items:
        cart.add(
            CartItem(
                id=line.id,
                name=line.name,
                price=line.price,
                image_url=line.image_url,
                inventory_count=line.inventory_count,
            ),
            quantity=line.quantity,
        )

    result = await InventoryChecker(repository).check(cart)
    return InventoryCheckResponse.model_validate(
        {
            "items": [CartItemResponse.model_validate(_serialize_item(item)) for item in cart.items],
            "hasOutOfStockItems": result.has_out_of_stock_items,
            "inventoryChecked": result.inventory_checked,
            "count": cart.count,
            "total": cart.total,
        }
    )
