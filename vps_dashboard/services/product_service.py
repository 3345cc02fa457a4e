import logging

from vps_dashboard.core.exceptions import ProductNotFoundError
from vps_dashboard.repositories.catalog_repository import CatalogRepository, ProductRecord

logger = logging.getLogger(__name__)


class ProductService:
    def __init__(self, catalog: CatalogRepository) -> None:
        self._catalog = catalog

    async def get(self, product_id: str) -> ProductRecord:
        product = await self._catalog.get_product(product_id)
        if product is None:
            raise ProductNotFoundError(product_id)
        logger.debug("Product fetched", extra={"product_id": product_id})
        return product

    async def list(self, limit: int, offset: int) -> tuple[list[ProductRecord], int]:
        records, total = await self._catalog.list_products(limit=limit, offset=offset)
        logger.debug("Products listed", extra={"limit": limit, "offset": offset, "total": total})
        return records, total
