"""HTTP routes for catalog products and flash sales."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from ..catalog import is_on_sale_now, sale_price, slugify, split_flash_sale
from ..dependencies import get_category_repository, get_product_repository
from ..money import from_cents, to_cents
from ..repository import CategoryRepository, ProductRepository
from ..schemas import (
    FlashSaleResponse,
    InventoryUpdate,
    ProductCreate,
    ProductListResponse,
    ProductResponse,
    ProductUpdate,
)

router = APIRouter(prefix="/products", tags=["products"])


async def _check_category(categories: CategoryRepository, category_id: str | None) -> None:
    if category_id is not None and await categories.get_category(category_id) is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Unknown category")


def serialize_product(product) -> dict[str, object]:
    return {
        "id": product.id,
        "name": product.name,
        "slug": product.slug,
        "description": product.description,
        "categoryId": product.category_id,
        "price": from_cents(product.price_cents),
        "imageUrl": product.image_url,
        "inventoryCount": product.inventory_count,
        "featured": product.featured,
        "discountPercent": product.discount_percent,
        "isOnSale": product.is_on_sale,
        "saleStartDate": product.sale_start_date,
        "saleEndDate": product.sale_end_date,
        "onSaleNow": is_on_sale_now(product),
        "salePrice": sale_price(product),
        "createdAt": product.created_at,
        "updatedAt": product.updated_at,
    }


@router.post("", response_model=ProductResponse, status_code=status.HTTP_201_CREATED)
async def create_product(
    payload: ProductCreate,
    repository: ProductRepository = Depends(get_product_repository),
    categories: CategoryRepository = Depends(get_category_repository),
) -> ProductResponse:
    await _check_category(categories, payload.category_id)
    slug = payload.slug.strip() if payload.slug else slugify(payload.name)
    if await repository.get_by_slug(slug):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Slug already exists")

    product = await repository.create_product(
        name=payload.name,
        slug=slug,
        description=payload.description,
        category_id=payload.category_id,
        price_cents=to_cents(payload.price),
        image_url=payload.image_url,
        inventory_count=payload.inventory_count,
        featured=payload.featured,
        discount_percent=payload.discount_percent,
        is_on_sale=payload.is_on_sale,
        sale_start_date=payload.sale_start_date,
        sale_end_date=payload.sale_end_date,
    )
    return ProductResponse.model_validate(serialize_product(product))


@router.get("", response_model=ProductListResponse)
async def list_products(
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    search: str | None = Query(default=None),
    featured: bool | None = Query(default=None),
    on_sale: bool | None = Query(default=None, alias="onSale"),
    category_id: str | None = Query(default=None, alias="categoryId"),
    repository: ProductRepository = Depends(get_product_repository),
) -> ProductListResponse:
    products, total = await repository.list_products(
        search=search.strip() if search else None,
        featured=featured,
        on_sale=on_sale,
        limit=limit,
        offset=offset,
        category_id=category_id,
    )
    items = [ProductResponse.model_validate(serialize_product(product)) for product in products]
    return ProductListResponse(items=items, total=total)


@router.get("/flash-sale", response_model=FlashSaleResponse)
async def get_flash_sale(repository: ProductRepository = Depends(get_product_repository)) -> FlashSaleResponse:
    active, upcoming = split_flash_sale(await repository.list_sale_products())
    return FlashSaleResponse(
        active=[ProductResponse.model_validate(serialize_product(product)) for product in active],
        upcoming=[ProductResponse.model_validate(serialize_product(product)) for product in upcoming],
    )


@router.get("/{product_id}", response_model=ProductResponse)
async def get_product(
    product_id: str,
    repository: ProductRepository = Depends(get_product_repository),
) -> ProductResponse:
    product = await repository.get_product(product_id)
    if product is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
    return ProductResponse.model_validate(serialize_product(product))


@router.patch("/{product_id}", response_model=ProductResponse)
async def update_product(
    product_id: str,
    payload: ProductUpdate,
    repository: ProductRepository = Depends(get_product_repository),
    categories: CategoryRepository = Depends(get_category_repository),
) -> ProductResponse:
    product = await repository.get_product(product_id)
    if product is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")

    updates = payload.model_dump(exclude_unset=True)
    if "category_id" in updates:
        await _check_category(categories, updates["category_id"])
    if "price" in updates:
        updates["price_cents"] = to_cents(updates.pop("price"))
    updated = await repository.update_product(product, updates)
    return ProductResponse.model_validate(serialize_product(updated))


@router.post("/{product_id}/inventory", response_model=ProductResponse)
async def set_inventory(
    product_id: str,
    payload: InventoryUpdate,
    repository: ProductRepository = Depends(get_product_repository),
) -> ProductResponse:
    product = await repository.get_product(product_id)
    if product is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
    updated = await repository.set_inventory(product, inventory_count=payload.inventory_count)
    return ProductResponse.model_validate(serialize_product(updated))


@router.delete("/{product_id}")
async def delete_product(
    product_id: str,
    repository: ProductRepository = Depends(get_product_repository),
) -> Response:
    product = await repository.get_product(product_id)
    if product is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
    await repository.delete_product(product)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
