"""REST API module for the exchange.

This module provides HTTP endpoints for:
- Viewing and adjusting inventories
- Negotiating bilateral trades
- Listing, cancelling and buying marketplace listings
- Placing and cancelling buy orders

The acting user is taken from the ``X-User-Id`` header (see ``auth``).
Engine errors are returned as ``{"detail": {"kind": ..., "message": ...}}``.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

import database
from config import settings_conf

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
    await database.get_store()

    yield

    logger.info("Shutting down API...")
    await database.close()


# Create FastAPI app
app = FastAPI(
    title="Exchange API",
    description="REST API for trading virtual goods between users",
    version="1.0.0",
    lifespan=lifespan
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
async def root():
    """Liveness check."""
    return {"status": "ok", "store": settings_conf['store_backend']}


# Import and include all routers
from .inventory import router as inventory_router  # noqa: E402
from .listings import router as listings_router  # noqa: E402
from .orders import router as orders_router  # noqa: E402
from .trades import router as trades_router  # noqa: E402

app.include_router(inventory_router)
app.include_router(trades_router)
app.include_router(listings_router)
app.include_router(orders_router)
