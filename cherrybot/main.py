"""
FastAPI application entry point.
"""

from fastapi import FastAPI

from cherrybot import __version__
from cherrybot.api import webhooks
from cherrybot.config import get_settings
from cherrybot.middleware.logging import RequestLoggingMiddleware
from cherrybot.utils.logging import get_logger, setup_logging

settings = get_settings()

# Configure structured logging
setup_logging(settings.log_level)

logger = get_logger(__name__)

# Create FastAPI application
app = FastAPI(
    title="Cherry Bot",
    description="Propagates merged pull/merge requests to release branches by cherry-pick",
    version=__version__,
)

# Add request logging middleware
app.add_middleware(RequestLoggingMiddleware)


@app.get("/health")
async def health_check():
    """Health check endpoint for container orchestration."""
    return {"status": "healthy", "version": __version__}


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Cherry Bot API",
        "version": __version__,
        "docs": "/docs",
    }


# Include API routers
app.include_router(webhooks.router)


@app.on_event("startup")
async def startup_event():
    """Initialize services on application startup."""
    logger.info("Starting Cherry Bot API")
    webhooks.event_processor.start()
    logger.info("Event processor initialized")


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup services on application shutdown."""
    logger.info("Shutting down Cherry Bot API")
    webhooks.event_processor.stop()
    logger.info("Event processor stopped")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
