from vps_dashboard.models.ip_address import IpAddress
from vps_dashboard.models.product import Product
from vps_dashboard.models.server import Server, ServerStatus
from vps_dashboard.models.service import Service, ServiceStatus
from vps_dashboard.models.template import Template

__all__ = [
    "IpAddress",
    "Product",
    "Server",
    "ServerStatus",
    "Service",
    "ServiceStatus",
    "Template",
]
