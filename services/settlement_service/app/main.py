"""FastAPI application for the Settlement Service."""

from fastapi import FastAPI
from libs.common.errors import register_error_handlers
from libs.common.middleware import add_observability_middleware
from services.settlement_service.routers.payments import router as payments_router


def create_app() -> FastAPI:
    """Create and configure the Settlement Service FastAPI app."""
    app = FastAPI(
        title="Settlement Service",
        version="0.1.0",
        description="Order payment settlement, split payments and refunds.",
    )

    add_observability_middleware(app)
    register_error_handlers(app)

    @app.get("/health", tags=["system"])
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "service": "settlement"}

    app.include_router(payments_router)

    return app


app = create_app()
