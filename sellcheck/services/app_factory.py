import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware

from .app_state import AppState
from .error_handler import setup_error_handlers

logger = logging.getLogger(__name__)


def create_app(state: AppState) -> FastAPI:
    """
    Create and configure the FastAPI application instance.

    State is injected so tests can run the app against fake sources.
    """
    from sellcheck.routes import search_router

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan handler for startup/shutdown."""
        logger.info("[STARTUP] SellCheck starting...")
        logger.info(f"[STARTUP] Debug mode: {state.debug_mode}")

        yield

        logger.info("[SHUTDOWN] SellCheck shutting down...")
        logger.info(f"[SHUTDOWN] Pipeline stats: {state.orchestrator.get_stats()}")
        close_cache = getattr(state.cache, "close", None)
        if close_cache is not None:
            close_cache()
        if state.http_client is not None:
            await state.http_client.aclose()

    app = FastAPI(
        title="SellCheck",
        description="Sell-through rate, price stats and BUY/PASS verdicts for resale sourcing",
        lifespan=lifespan,
    )
    # Available to routes before the lifespan runs (e.g. TestClient without context)
    app.state.app_state = state

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    setup_error_handlers(app, debug=state.debug_mode)

    @app.get("/favicon.ico", include_in_schema=False)
    async def favicon():
        return Response(status_code=204)

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            **state.get_stats(),
        }

    app.include_router(search_router)

    return app
