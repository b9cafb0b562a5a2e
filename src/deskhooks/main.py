"""DeskHooks - FastAPI application.

Delivers webhooks with retry and circuit breaking, and relays
application events to tenant automation webhooks.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .webhooks.router import router as webhooks_router

app = FastAPI(
    title="DeskHooks",
    description="Webhook delivery with retry, backoff and circuit breaking "
                "for the customer-service platform.",
    version=__version__,
)

# CORS middleware for frontend integration
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(webhooks_router)


@app.on_event("startup")
async def startup_event():
    """Initialize services on startup."""
    from .core.logging_config import setup_logging
    from .core.settings import get_settings

    settings = get_settings()
    setup_logging(settings.log_level, settings.log_file)


@app.get("/")
def root() -> dict[str, str]:
    """Root endpoint returning service information.

    Returns:
        dict: Status and welcome message.
    """
    return {
        "status": "ok",
        "message": "Welcome to DeskHooks",
        "version": __version__,
        "docs": "/docs",
    }


@app.get("/health")
def health() -> dict[str, str]:
    """Health check endpoint for monitoring and load balancers.

    Returns:
        dict: Health status indicator.
    """
    return {"status": "healthy"}
