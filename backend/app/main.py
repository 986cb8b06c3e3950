"""FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings, settings as default_settings
from app.database import build_engine, build_session_factory
from app.dependencies import get_db
from app.models import Base
from app.services.errors import (
    DriveError,
    ExternalStoreError,
    InvalidShareDurationError,
    NotFoundError,
    ShareExpiredError,
)
from app.services.file_storage import build_blob_store
from app.services.identity import DatabaseIdentityProvider

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the collaborators, create tables, and tear everything down on exit."""
    settings: Settings = app.state.settings
    engine = build_engine(settings.DATABASE_URL)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    app.state.engine = engine
    app.state.session_factory = build_session_factory(engine)
    app.state.blob_store = build_blob_store(settings)
    app.state.identity = DatabaseIdentityProvider(app.state.session_factory)

    yield

    await engine.dispose()


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(NotFoundError)
    async def not_found(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(InvalidShareDurationError)
    async def invalid_duration(request: Request, exc: InvalidShareDurationError):
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(ShareExpiredError)
    async def share_expired(request: Request, exc: ShareExpiredError):
        return JSONResponse(status_code=403, content={"detail": str(exc)})

    @app.exception_handler(ExternalStoreError)
    async def store_failure(request: Request, exc: ExternalStoreError):
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
        return JSONResponse(status_code=502, content={"detail": str(exc)})

    @app.exception_handler(DriveError)
    async def drive_error(request: Request, exc: DriveError):
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or default_settings
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(
        title="Folder Share API",
        version="1.0.0",
        description="Personal folder trees with time-limited share links.",
        lifespan=lifespan,
    )
    app.state.settings = settings

    # CORS
    origins = [o.strip() for o in settings.CORS_ORIGINS.split(",")]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    _register_error_handlers(app)

    @app.get("/api/health")
    async def health_check(db: AsyncSession = Depends(get_db)):
        """Verify API and database connectivity."""
        try:
            await db.execute(text("SELECT 1"))
            return {"status": "ok", "database": "connected"}
        except Exception as e:
            return {"status": "error", "database": str(e)}

    # Register routers
    from app.routes.folders import router as folders_router
    from app.routes.files import router as files_router
    from app.routes.shared import router as shared_router
    from app.routes.user import router as user_router
    from app.routes.blobs import router as blobs_router
    app.include_router(folders_router)
    app.include_router(files_router)
    app.include_router(shared_router)
    app.include_router(user_router)
    app.include_router(blobs_router)

    return app


app = create_app()
