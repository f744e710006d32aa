"""API routes."""

from fastapi import APIRouter

from app.api.routes import (
    audit, auth, dashboard, deliveries, eps, invima, inventory, kardex, muv,
    organizations, patients, pending_items, products, quotes, receipts,
    reports, returns, rips, siigo, suppliers, transfers, warehouses,
)

api_router = APIRouter()

# Auth and tenancy
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(organizations.router, prefix="/organizations", tags=["organizations"])

# Catalog and stock
api_router.include_router(warehouses.router, prefix="/warehouses", tags=["warehouses"])
api_router.include_router(products.router, prefix="/products", tags=["products"])
api_router.include_router(invima.router, prefix="/invima", tags=["invima", "products"])
api_router.include_router(inventory.router, prefix="/inventory", tags=["inventory"])
api_router.include_router(receipts.router, prefix="/receipts", tags=["receipts", "stock"])
api_router.include_router(transfers.router, prefix="/transfers", tags=["transfers", "stock"])
api_router.include_router(returns.router, prefix="/returns", tags=["returns", "stock"])
api_router.include_router(kardex.router, prefix="/kardex", tags=["kardex"])

# Patients and dispensation
api_router.include_router(eps.router, prefix="/eps", tags=["eps"])
api_router.include_router(patients.router, prefix="/patients", tags=["patients"])
api_router.include_router(deliveries.router, prefix="/deliveries", tags=["deliveries"])
api_router.include_router(pending_items.router, prefix="/pending-items", tags=["pending-items"])

# Purchasing
api_router.include_router(suppliers.router, prefix="/suppliers", tags=["suppliers"])
api_router.include_router(quotes.router, prefix="/quotes", tags=["quotes", "suppliers"])

# Reporting and regulatory exports
api_router.include_router(dashboard.router, prefix="/dashboard", tags=["dashboard"])
api_router.include_router(reports.router, prefix="/reports", tags=["reports"])
api_router.include_router(rips.router, prefix="/rips", tags=["rips"])
api_router.include_router(muv.router, prefix="/muv", tags=["muv"])
api_router.include_router(siigo.router, prefix="/siigo", tags=["siigo"])
api_router.include_router(audit.router, prefix="/audit", tags=["audit"])
