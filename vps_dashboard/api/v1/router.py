from fastapi import APIRouter

from vps_dashboard.api.v1.endpoints import datacenters, products, servers, templates

router = APIRouter()

router.include_router(servers.router)
router.include_router(products.router)
router.include_router(templates.router)
router.include_router(datacenters.router)
