"""FastAPI application factory."""
from fastapi import FastAPI

from retailsync.api.routes import sync as sync_routes


def create_app() -> FastAPI:
    """Build and return the FastAPI app. Tables are created with the engine."""
    app = FastAPI(
        title="Retail Sync API",
        description="KiotViet reconciliation status and triggers",
        version="0.1.0",
    )

    app.include_router(sync_routes.router, prefix="/sync", tags=["sync"])

    @app.get("/health")
    def health():
        return {"status": "ok"}

    return app


# Module-level app instance for uvicorn
app = create_app()
