"""Offered CPU and RAM sizes, and resolution of a create request's sizing."""

import logging
from dataclasses import dataclass

from vps_dashboard.config import settings
from vps_dashboard.core.exceptions import InvalidSizingError
from vps_dashboard.repositories.catalog_repository import ProductRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SizingOptions:
    cpu_cores: list[int]
    ram_gb: list[int]


def sizing_options() -> SizingOptions:
    return SizingOptions(
        cpu_cores=sorted(settings.cpu_core_options), ram_gb=sorted(settings.ram_gb_options)
    )


def resolve_sizing(
    product: ProductRecord, cpu_cores: int | None, ram_gb: int | None
) -> tuple[int, int]:
    """Cores and RAM to provision: the product's, unless an offered size overrides them.

    Raises:
        InvalidSizingError: an override is not one of the offered sizes.
    """
    options = sizing_options()
    if cpu_cores is not None and cpu_cores not in options.cpu_cores:
        logger.warning("Rejected CPU size", extra={"cpu_cores": cpu_cores})
        raise InvalidSizingError("cpu_cores", cpu_cores, options.cpu_cores)
    if ram_gb is not None and ram_gb not in options.ram_gb:
        logger.warning("Rejected RAM size", extra={"ram_gb": ram_gb})
        raise InvalidSizingError("ram_gb", ram_gb, options.ram_gb)
    return cpu_cores or product.cpu_cores, ram_gb or product.ram_gb
