from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from .api import bridge, health
from .config import settings
from .logging_config import setup_logging

setup_logging()

# Create FastAPI app
app = FastAPI(
    title="Bridgehop API",
    description="Multi-provider bridge pricing and quoting",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(bridge.router, tags=["Bridge"])


@app.get("/")
async def root():
    """Root endpoint with basic info"""
    return {
        "name": "Bridgehop API",
        "version": "0.1.0",
        "description": "Multi-provider bridge pricing and quoting",
        "docs": "/docs",
        "health": "/healthz"
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "bridgehop.main:app",
        host=settings.host,
        port=settings.port,
        reload=True,
        log_level=settings.log_level.lower()
    )
