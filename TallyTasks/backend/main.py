"""
TallyTasks FastAPI Backend
Eisenhower-matrix task API authenticated with per-user API keys
"""

from contextlib import asynccontextmanager
from typing import Optional
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from TallyTasks import __version__
from TallyTasks.backend.errors import register_error_handlers
from TallyTasks.backend.routes.tasks import build_router
from TallyTasks.shared.config import AppConfig, load_config
from TallyTasks.shared.models import QuadrantScheme
from TallyTasks.shared.store import TaskStore, create_store

logger = logging.getLogger(__name__)

ALLOWED_METHODS = ["GET", "POST", "PUT", "DELETE", "OPTIONS"]
ALLOWED_HEADERS = ["Content-Type", "Authorization"]


def configure_logging(config: AppConfig) -> None:
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Connect the store on startup and release it on shutdown"""
    store: TaskStore = app.state.store
    try:
        await store.connect()
    except Exception as e:
        logger.error(f"Failed to connect to the task store: {e}")
        raise
    logger.info("TallyTasks API started")

    yield

    await store.disconnect()
    logger.info("TallyTasks API shutdown complete")


def create_app(config: Optional[AppConfig] = None, store: Optional[TaskStore] = None) -> FastAPI:
    config = config or load_config()

    app = FastAPI(
        title="TallyTasks API",
        description="Eisenhower-matrix task API",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.store = store if store is not None else create_store(config)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_methods=ALLOWED_METHODS,
        allow_headers=ALLOWED_HEADERS,
    )
    register_error_handlers(app)

    # One router, mounted once per quadrant naming scheme
    app.include_router(build_router(QuadrantScheme.MATRIX), prefix="/api", tags=["tasks"])
    app.include_router(build_router(QuadrantScheme.CODES), prefix="/api/v1", tags=["tasks (v1)"])

    @app.get("/health")
    async def health(request: Request):
        """Health check endpoint"""
        connected = await request.app.state.store.ping()
        return {
            "status": "healthy",
            "service": "TallyTasks API",
            "version": __version__,
            "store": "connected" if connected else "disconnected",
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = load_config()
    configure_logging(settings)
    uvicorn.run(app, host=settings.host, port=settings.port)
