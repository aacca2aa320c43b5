"""API v1 router aggregation."""

from fastapi import APIRouter

from wallet_ledger_service.api.v1 import keys, wallets

router = APIRouter()

# Include all v1 routers
router.include_router(wallets.router, prefix="/wallet", tags=["wallet"])
router.include_router(keys.router, prefix="/keys", tags=["keys"])
