"""REST API module for the marketplace.

This module provides HTTP endpoints for:
- Authentication and session management
- Profiles, seller stores and role transitions
- Products, likes and comments
- Orders and checkout
- Carts and wishlists
- Messages
- Avatar storage
- System health monitoring

Every endpoint runs its statements as the authenticated caller, so the
database's row-level security policies apply. Marketplace errors are
rendered as `{"error": kind, "detail": ...}` with the error's status code.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import settings_conf
from errors import MarketplaceError

# Configure logging
logging.basicConfig(
    level=settings_conf['log_level'],
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Lifecycle management
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle startup and shutdown events."""
    logger.info("Initializing API...")
    # Database setup and teardown are handled in __main__.py
    yield
    logger.info("Shutting down API...")

# Create FastAPI app
app = FastAPI(
    title="Marketplace API",
    description="REST API for the marketplace: profiles, products, orders and messages",
    version="1.0.0",
    lifespan=lifespan
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, replace with specific origins
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.exception_handler(MarketplaceError)
async def marketplace_error_handler(request: Request, exc: MarketplaceError):
    """Render marketplace errors with their own status code."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Render request validation failures as constraint violations."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = [str(part) for part in first.get('loc', ()) if part not in ('body', 'query', 'path')]
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": "constraint_violation",
            "detail": first.get('msg', 'Invalid request'),
            "field": '.'.join(location) or None,
            "value": None,
            "constraint": first.get('type'),
            "errors": [
                {"loc": [str(part) for part in e.get('loc', ())], "msg": e.get('msg'), "type": e.get('type')}
                for e in errors
            ]
        }
    )

# Import and include all routers
from .auth import router as auth_router
from .profile import router as profile_router, sellers_router
from .products import router as products_router
from .orders import router as orders_router
from .cart import router as cart_router
from .wishlist import router as wishlist_router
from .messages import router as messages_router
from .storage import router as storage_router
from .system import router as system_router

# Include all routers
app.include_router(auth_router)
app.include_router(profile_router)
app.include_router(sellers_router)
app.include_router(products_router)
app.include_router(orders_router)
app.include_router(cart_router)
app.include_router(wishlist_router)
app.include_router(messages_router)
app.include_router(storage_router)
app.include_router(system_router)
