"""FastAPI application entry point.

This module initialises the FastAPI app, configures logging, seeds the
persona registry and registers API routes.  The `uvicorn` ASGI server
can point to ``parley.main:app`` to serve the application.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from .config.gateway_config import get_gateway_config
from .controllers.admin_controller import router as admin_router
from .controllers.interaction_controller import router as interaction_router
from .memory.persona_registry import get_persona_registry
from .utils.error_handler import ChatError, http_exception_handler
from .utils.logger import setup_logging


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Configure logging, load personas and optionally register commands."""
    setup_logging()
    registry = get_persona_registry()
    logger.info("Persona registry ready with {} personas", len(registry))

    gateway_config = get_gateway_config()
    if gateway_config.can_register:
        from .services.gateway_service import GatewayError, get_gateway_service

        try:
            await get_gateway_service().register_commands(registry.names())
        except GatewayError as exc:
            logger.error("Command registration failed: {}", exc)
    yield
    logger.info("Shutting down")


def create_app() -> FastAPI:
    """Create and configure a FastAPI application."""
    app = FastAPI(title="parley", version="0.1.0", lifespan=lifespan)

    # Enable CORS for all origins; adjust in production as needed
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ChatError, http_exception_handler)

    app.include_router(interaction_router)
    app.include_router(admin_router)

    @app.get("/health", tags=["Health"])
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        logger.debug("Health check invoked")
        return {"status": "ok"}

    return app


# Create an application instance for ASGI servers
app = create_app()
