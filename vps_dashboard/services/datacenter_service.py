import logging

from vps_dashboard.repositories.catalog_repository import CatalogRepository, DatacenterRecord

logger = logging.getLogger(__name__)


class DatacenterService:
    def __init__(self, catalog: CatalogRepository) -> None:
        self._catalog = catalog

    async def list(self) -> list[DatacenterRecord]:
        records = await self._catalog.list_datacenters()
        logger.debug("Datacenters listed", extra={"count": len(records)})
        return records
