"""
Public catalog router: menu categories across all restaurants.
"""

from fastapi import APIRouter, Depends

from api.src.dependencies import get_catalog_service
from api.src.models.catalog import CategoriesResponse
from api.src.services.catalog_service import CatalogService

router = APIRouter(tags=["Catalog"])


@router.get("/categories", response_model=CategoriesResponse, summary="Menu Categories")
async def list_categories(
    catalog: CatalogService = Depends(get_catalog_service),
) -> CategoriesResponse:
    """Distinct menu categories, sorted by name, each with a URL slug."""
    return await catalog.list_categories()
