"""API endpoints for the Parlomo platform."""

from fastapi import APIRouter
from .auth import router as auth_router
from .users import router as users_router
from .categories import router as categories_router
from .public_events import router as public_events_router
from .ticketing import router as ticketing_router
from .checkout import router as checkout_router
from .scanner import router as scanner_router
from .financials import router as financials_router

# Create main API router
api_router = APIRouter(prefix="/api/v1")

api_router.include_router(auth_router)
api_router.include_router(users_router)
# Categories are mounted under /public-events/categories; register them first
api_router.include_router(categories_router)
api_router.include_router(public_events_router)
api_router.include_router(ticketing_router)
api_router.include_router(checkout_router)
api_router.include_router(scanner_router)
api_router.include_router(financials_router)

__all__ = ["api_router"]
