"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from backoffice.app.api.v1.endpoints import (
    banners, locations, settlements, settlement_groups, custom_orders,
    admin_providers, admin_users, admin_orders, audit, cron
)

router = APIRouter()

# Banners (admin + partner submissions)
router.include_router(banners.router)
router.include_router(banners.provider_router)

# Locations and regional analytics
router.include_router(locations.router)

# Settlements
router.include_router(settlements.router)
router.include_router(settlements.provider_router)
router.include_router(settlement_groups.router)

# Custom orders (merchant workbench + customer side)
router.include_router(custom_orders.router)
router.include_router(custom_orders.customer_router)

# Admin helpers
router.include_router(admin_providers.router)
router.include_router(admin_users.router)
router.include_router(admin_orders.router)
router.include_router(audit.router)

# Scheduled jobs
router.include_router(cron.router)
