from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api import abi, assets, health, orders
from .config import settings
from .logging_config import setup_logging
from .middleware import RequestLoggingMiddleware

setup_logging()

# Create FastAPI app
app = FastAPI(
    title="Solvernet Order API",
    description="Cross-chain solver order construction backend",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(abi.router, tags=["ABI"])
app.include_router(assets.router, tags=["Assets"])
app.include_router(orders.router, tags=["Orders"])


@app.get("/")
async def root():
    """Root endpoint with basic info"""
    return {
        "name": "Solvernet Order API",
        "version": "0.1.0",
        "network": settings.network,
        "docs": "/docs",
        "health": "/healthz"
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "solvernet.main:app",
        host=settings.host,
        port=settings.port,
        reload=True,
        log_level=settings.log_level.lower()
    )
