"""FastAPI application for the Loyalty Service."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from libs.common.arq_config import close_arq_pool
from libs.common.errors import register_error_handlers
from libs.common.middleware import add_observability_middleware
from services.loyalty_service.routers.loyalty import router as loyalty_router
from services.loyalty_service.services.tier_dispatch import drain_background_tasks


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # Let in-flight tier recomputes finish before the loop goes away
    await drain_background_tasks()
    await close_arq_pool()


def create_app() -> FastAPI:
    """Create and configure the Loyalty Service FastAPI app."""
    app = FastAPI(
        title="Loyalty Service",
        version="0.1.0",
        description="Loyalty point ledger, tiers and customer rewards.",
        lifespan=lifespan,
    )

    add_observability_middleware(app)
    register_error_handlers(app)

    @app.get("/health", tags=["system"])
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "service": "loyalty"}

    app.include_router(loyalty_router)

    return app


app = create_app()
