"""API routes."""

from fastapi import APIRouter

from savebags.routes import admin, auth, favorites, listing, merchants, orders, verification

api_router = APIRouter()

# Consumer listing
api_router.include_router(listing.router, prefix="/v1/listing", tags=["listing"])

# Accounts
api_router.include_router(auth.router, prefix="/v1/auth", tags=["auth"])

# Business owner profile, stock and pickup confirmation
api_router.include_router(merchants.router, prefix="/v1/merchants", tags=["merchants"])

# Reservations
api_router.include_router(orders.router, prefix="/v1/orders", tags=["orders"])

# Merchant verification (owner side)
api_router.include_router(verification.router, prefix="/v1/verification", tags=["verification"])

# Consumer favorites
api_router.include_router(favorites.router, prefix="/v1/favorites", tags=["favorites"])

# Admin endpoints (verification review, reconciliation)
api_router.include_router(admin.router, prefix="/v1/admin", tags=["admin"])
