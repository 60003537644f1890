"""
FastAPI application initialization
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from api.routes import health, products, runs
from core.config import settings
import logging
from api.middleware import RequestContextMiddleware

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown"""
    logger.info("Starting catalog mirror API")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    yield
    logger.info("Shutting down catalog mirror API")


# Create FastAPI app
app = FastAPI(
    title="Catalog Mirror API",
    description="Read access to the versioned catalog mirror and crawl status",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

app.add_middleware(RequestContextMiddleware)

# Include routers
app.include_router(health.router)
app.include_router(products.router)
app.include_router(runs.router)


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "Catalog Mirror API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "products": "/products/{warehouse}/{product_id}",
            "identities": "/identities",
            "runs": "/runs"
        }
    }


if __name__ == "__main__":
    import uvicorn
    from core.logging import setup_logging

    setup_logging()
    uvicorn.run(app, host=settings.API_HOST, port=settings.API_PORT)
