"""
main.py — FastAPI Application Factory
======================================
GPS Race Rooms backend.

Builds the FastAPI app around an injected room store. Tests pass their own
store/clock through `create_app()`; the module-level `app` uses the
in-memory store.

Usage:
    # Development mode (hot-reload)
    uvicorn src.main:app --reload

    # Or plain python
    python -m src.main

    # Production mode (single worker: the in-memory store is per process)
    uvicorn src.main:app --host 0.0.0.0 --port 8000
"""

import time
from collections.abc import Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from src.apps.rooms.models import now_ms
from src.core.config import Settings, get_settings
from src.core.database import RoomStore
from src.core.dependencies import build_room_service, build_sweeper
from src.core.errors import register_error_handlers


def create_app(
    settings: Settings | None = None,
    store: RoomStore | None = None,
    clock: Callable[[], int] = now_ms,
    run_sweeper: bool = True,
) -> FastAPI:
    """
    FastAPI application factory.

    Returns:
        FastAPI: configured instance with `app.state.room_service`
    """
    settings = settings or get_settings()
    room_service = build_room_service(settings, store, clock)
    sweeper = build_sweeper(room_service)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # ═══════════════════════════════════════════════════
        # STARTUP
        # ═══════════════════════════════════════════════════
        print(f"🚀 Starting {settings.APP_NAME} v{settings.VERSION}")
        print(f"📍 Environment: {settings.ENV}")
        print(f"🗄️  Room store: {type(room_service.store).__name__}")
        if run_sweeper:
            sweeper.start()

        yield

        # ═══════════════════════════════════════════════════
        # SHUTDOWN
        # ═══════════════════════════════════════════════════
        await sweeper.stop()
        print("👋 Shutting down gracefully...")

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.VERSION,
        description="Room coordination and live GPS telemetry for small group races",
        debug=settings.DEBUG,
        lifespan=lifespan,
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
    )
    app.state.room_service = room_service
    app.state.sweeper = sweeper

    # ═══════════════════════════════════════════════════
    # CORS Middleware (mobile web clients)
    # ═══════════════════════════════════════════════════
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=settings.CORS_CREDENTIALS,
        allow_methods=settings.CORS_METHODS,
        allow_headers=settings.CORS_HEADERS,
    )

    # ═══════════════════════════════════════════════════
    # Request Timing Middleware
    # ═══════════════════════════════════════════════════
    @app.middleware("http")
    async def add_process_time_header(request: Request, call_next):
        start_time = time.time()
        response = await call_next(request)
        response.headers["X-Process-Time"] = f"{time.time() - start_time:.4f}s"
        return response

    register_error_handlers(app)

    # ═══════════════════════════════════════════════════
    # System Endpoints
    # ═══════════════════════════════════════════════════
    @app.get("/health", tags=["system"])
    def health_check():
        return {
            "success": True,
            "status": "ok",
            "app": settings.APP_NAME,
            "version": settings.VERSION,
            "environment": settings.ENV,
        }

    @app.get("/", tags=["system"])
    def root():
        return {
            "success": True,
            "message": settings.APP_NAME,
            "version": settings.VERSION,
            "docs": "/docs" if settings.DEBUG else "disabled",
        }

    # ═══════════════════════════════════════════════════
    # Routers
    # ═══════════════════════════════════════════════════
    from src.apps.players.router import router as players_router
    from src.apps.rooms.router import router as rooms_router

    app.include_router(rooms_router)
    app.include_router(players_router)

    return app


# ═══════════════════════════════════════════════════
# Application Instance (for uvicorn)
# ═══════════════════════════════════════════════════
app = create_app()


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()

    print("=" * 60)
    print(f"🏃 {settings.APP_NAME}")
    print("=" * 60)
    print(f"📡 Starting server at http://{settings.HOST}:{settings.PORT}")
    print(f"📚 API Docs: http://{settings.HOST}:{settings.PORT}/docs")
    print("=" * 60)

    uvicorn.run(
        "src.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level="info" if settings.DEBUG else "warning",
    )
