import logging

from vps_dashboard.core.exceptions import TemplateNotFoundError
from vps_dashboard.repositories.catalog_repository import CatalogRepository, TemplateRecord

logger = logging.getLogger(__name__)


class TemplateService:
    def __init__(self, catalog: CatalogRepository) -> None:
        self._catalog = catalog

    async def get(self, template_id: str) -> TemplateRecord:
        template = await self._catalog.get_template(template_id)
        if template is None:
            raise TemplateNotFoundError(template_id)
        logger.debug("Template fetched", extra={"template_id": template_id})
        return template

    async def list(self, limit: int, offset: int) -> tuple[list[TemplateRecord], int]:
        records, total = await self._catalog.list_templates(limit=limit, offset=offset)
        logger.debug("Templates listed", extra={"limit": limit, "offset": offset, "total": total})
        return records, total
