"""HTTP routes for product categories."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response, status

from ..catalog import slugify
from ..dependencies import get_category_repository
from ..models import Category
from ..repository import CategoryRepository
from ..schemas import CategoryCreate, CategoryListResponse, CategoryResponse, CategoryUpdate

router = APIRouter(prefix="/categories", tags=["categories"])


def _serialize_category(category: Category, product_count: int = 0) -> CategoryResponse:
    return CategoryResponse(
        id=category.id,
        name=category.name,
        slug=category.slug,
        description=category.description,
        productCount=product_count,
        createdAt=category.created_at,
    )


async def _require_category(repository: CategoryRepository, category_id: str) -> Category:
    category = await repository.get_category(category_id)
    if category is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Category not found")
    return category


@router.get("", response_model=CategoryListResponse)
async def list_categories(repository: CategoryRepository = Depends(get_category_repository)) -> CategoryListResponse:
    rows = await repository.list_categories()
    items = [_serialize_category(category, count) for category, count in rows]
    return CategoryListResponse(items=items, total=len(items))


@router.post("", response_model=CategoryResponse, status_code=status.HTTP_201_CREATED)
async def create_category(
    payload: CategoryCreate,
    repository: CategoryRepository = Depends(get_category_repository),
) -> CategoryResponse:
    slug = payload.slug.strip() if payload.slug and payload.slug.strip() else slugify(payload.name)
    if await repository.get_by_slug(slug):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Category slug already exists")
    category = await repository.create_category(name=payload.name, slug=slug, description=payload.description)
    return _serialize_category(category)


@router.get("/slug/{slug}", response_model=CategoryResponse)
async def get_category_by_slug(
    slug: str,
    repository: CategoryRepository = Depends(get_category_repository),
) -> CategoryResponse:
    category = await repository.get_by_slug(slug)
    if category is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Category not found")
    return _serialize_category(category, await repository.count_products(category.id))


@router.get("/{category_id}", response_model=CategoryResponse)
async def get_category(
    category_id: str,
    repository: CategoryRepository = Depends(get_category_repository),
) -> CategoryResponse:
    category = await _require_category(repository, category_id)
    return _serialize_category(category, await repository.count_products(category.id))


@router.patch("/{category_id}", response_model=CategoryResponse)
async def update_category(
    category_id: str,
    payload: CategoryUpdate,
    repository: CategoryRepository = Depends(get_category_repository),
) -> CategoryResponse:
    category = await _require_category(repository, category_id)
    updates = payload.model_dump(exclude_unset=True)
    if updates.get("name") is None:
        updates.pop("name", None)
    if updates.get("slug") is None:
        updates.pop("slug", None)
    elif updates["slug"] != category.slug:
        if await repository.get_by_slug(updates["slug"]):
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Category slug already exists")
    updated = await repository.update_category(category, updates)
    return _serialize_category(updated, await repository.count_products(updated.id))


@router.delete("/{category_id}")
async def delete_category(
    category_id: str,
    repository: CategoryRepository = Depends(get_category_repository),
) -> Response:
    category = await _require_category(repository, category_id)
    await repository.delete_category(category)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
