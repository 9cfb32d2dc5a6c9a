"""
Console API - FastAPI application over the scraping orchestrator.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from console.routers import campaigns, jobs
from harvester.config import settings
from harvester.logging_config import configure_logging
from harvester.services.container import Services, build_services


def create_app(services: Services = None) -> FastAPI:
    """Build the app; ``services`` defaults to the settings-driven wiring."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Open storage, rehydrate state, and shut everything down on exit."""
        configure_logging()
        await app.state.services.start()
        yield
        await app.state.services.stop()

    app = FastAPI(title="Promo Harvest Console", lifespan=lifespan)
    app.state.services = services or build_services()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(campaigns.router)
    app.include_router(jobs.router)

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "service": "promo-harvest-console"}

    return app


app = create_app()
