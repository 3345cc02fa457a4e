"""Read-only access to the product and template catalog and the datacenter list."""

from dataclasses import dataclass

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from vps_dashboard.models.ip_address import IpAddress
from vps_dashboard.models.product import Product
from vps_dashboard.models.template import Template


@dataclass
class ProductRecord:
    id: str
    name: str
    cpu_cores: int
    ram_gb: int
    disk_gb: int


@dataclass
class TemplateRecord:
    id: str
    name: str
    os_family: str
    vm_id: int
    node_name: str


@dataclass
class DatacenterRecord:
    name: str
    total_addresses: int
    free_addresses: int


def _product_to_record(product: Product) -> ProductRecord:
    return ProductRecord(
        id=product.id,
        name=product.name,
        cpu_cores=product.cpu_cores,
        ram_gb=product.ram_gb,
        disk_gb=product.disk_gb,
    )


def _template_to_record(template: Template) -> TemplateRecord:
    return TemplateRecord(
        id=template.id,
        name=template.name,
        os_family=template.os_family,
        vm_id=template.vm_id,
        node_name=template.node_name,
    )


class CatalogRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    # --- Product ---

    async def get_product(self, product_id: str) -> ProductRecord | None:
        result = await self._session.execute(select(Product).where(Product.id == product_id))
        product = result.scalar_one_or_none()
        return _product_to_record(product) if product else None

    async def list_products(self, limit: int, offset: int) -> tuple[list[ProductRecord], int]:
        count_result = await self._session.execute(select(func.count()).select_from(Product))
        total = count_result.scalar_one()

        result = await self._session.execute(
            select(Product).order_by(Product.cpu_cores, Product.name).limit(limit).offset(offset)
        )
        return [_product_to_record(p) for p in result.scalars().all()], total

    # --- Template ---

    async def get_template(self, template_id: str) -> TemplateRecord | None:
        result = await self._session.execute(select(Template).where(Template.id == template_id))
        template = result.scalar_one_or_none()
        return _template_to_record(template) if template else None

    async def list_templates(self, limit: int, offset: int) -> tuple[list[TemplateRecord], int]:
        count_result = await self._session.execute(select(func.count()).select_from(Template))
        total = count_result.scalar_one()

        result = await self._session.execute(
            select(Template).order_by(Template.name).limit(limit).offset(offset)
        )
        return [_template_to_record(t) for t in result.scalars().all()], total

    # --- Datacenter ---

    async def list_datacenters(self) -> list[DatacenterRecord]:
        """Every datacenter with an address pool, with its free address count."""
        result = await self._session.execute(
            select(
                IpAddress.datacenter,
                func.count(IpAddress.id),
                func.count(IpAddress.id).filter(IpAddress.server_id.is_(None)),
            )
            .group_by(IpAddress.datacenter)
            .order_by(IpAddress.datacenter)
        )
        return [
            DatacenterRecord(name=name, total_addresses=total, free_addresses=free)
            for name, total, free in result.all()
        ]
