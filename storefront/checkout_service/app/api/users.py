"""HTTP routes for per-user addresses and wishlists."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response, status

from ..dependencies import get_account_repository, get_product_repository
from ..repository import AccountRepository, ProductRepository
from ..schemas import AddressPayload, AddressResponse, ProductResponse, WishlistItemResponse, WishlistResponse
from .products import serialize_product

router = APIRouter(prefix="/users", tags=["users"])


def _serialize_address(address) -> dict[str, object]:
    return {
        "userId": address.user_id,
        "address": address.address,
        "city": address.city,
        "state": address.state,
        "postalCode": address.postal_code,
        "country": address.country,
        "isDefault": address.is_default,
        "updatedAt": address.updated_at,
    }


@router.get("/{user_id}/address", response_model=AddressResponse)
async def get_address(
    user_id: str,
    repository: AccountRepository = Depends(get_account_repository),
) -> AddressResponse:
    address = await repository.get_default_address(user_id)
    if address is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Address not found")
    return AddressResponse.model_validate(_serialize_address(address))


@router.put("/{user_id}/address", response_model=AddressResponse)
async def save_address(
    user_id: str,
    payload: AddressPayload,
    repository: AccountRepository = Depends(get_account_repository),
) -> AddressResponse:
    address = await repository.save_default_address(user_id, payload.model_dump())
    return AddressResponse.model_validate(_serialize_address(address))


@router.get("/{user_id}/wishlist", response_model=WishlistResponse)
async def get_wishlist(
    user_id: str,
    repository: AccountRepository = Depends(get_account_repository),
) -> WishlistResponse:
    entries = await repository.list_wishlist(user_id)
    items = [
        WishlistItemResponse(
            productId=entry.product_id,
            createdAt=entry.created_at,
            product=ProductResponse.model_validate(serialize_product(entry.product)),
        )
        for entry in entries
    ]
    return WishlistResponse(items=items, total=len(items))


@router.post("/{user_id}/wishlist/{product_id}", status_code=status.HTTP_201_CREATED)
async def add_to_wishlist(
    user_id: str,
    product_id: str,
    accounts: AccountRepository = Depends(get_account_repository),
    products: ProductRepository = Depends(get_product_repository),
) -> dict[str, object]:
    if await products.get_product(product_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
    existing = await accounts.get_wishlist_item(user_id, product_id)
    if existing is None:
        await accounts.add_to_wishlist(user_id, product_id)
    return {"userId": user_id, "productId": product_id, "inWishlist": True}


@router.delete("/{user_id}/wishlist/{product_id}")
async def remove_from_wishlist(
    user_id: str,
    product_id: str,
    repository: AccountRepository = Depends(get_account_repository),
) -> Response:
    await repository.remove_from_wishlist(user_id, product_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
