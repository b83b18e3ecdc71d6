import logging
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.classroom_routers import router as classroom_router
from api.crm_routers import router as crm_router
from api.routers import router as api_router
from api.student_routers import router as student_router
from core.config import AppSettings
from core.errors import AcademyError
from core.rate_limit import LoginRateLimitMiddleware
from core.sessions import SessionStore
from core.store import build_fallback_store, build_store

logger = logging.getLogger(__name__)


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    # drop the "body"/"query" prefix
    location = [str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path")]
    field_name = ".".join(location)
    return f"{field_name}: {first.get('msg')}" if field_name else str(first.get("msg"))


def register_exception_handlers(app: FastAPI, settings: AppSettings) -> None:
    @app.exception_handler(AcademyError)
    async def academy_error_handler(request: Request, exc: AcademyError):
        headers = None
        if exc.status_code == status.HTTP_401_UNAUTHORIZED:
            headers = {"WWW-Authenticate": "Bearer"}
        if exc.status_code >= 500:
            logger.error(f"❌ {request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse({"detail": exc.message}, status_code=exc.status_code, headers=headers)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse({"detail": _validation_message(exc)}, status_code=status.HTTP_400_BAD_REQUEST)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error(f"❌ Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
        detail = str(exc) if settings.debug else "Internal server error"
        return JSONResponse({"detail": detail}, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)


def create_app(settings: Optional[AppSettings] = None) -> FastAPI:
    """
    Build the application around an explicitly constructed store.
    The store, the optional legacy login store and the session store live on app.state.
    """
    settings = settings or AppSettings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    app = FastAPI(title="Academy API", version="0.1.0")

    store = build_store(settings)
    app.state.settings = settings
    app.state.store = store
    app.state.fallback_store = build_fallback_store(settings)
    app.state.sessions = SessionStore(store, session_days=settings.session_days)

    app.add_middleware(
        LoginRateLimitMiddleware,
        max_requests=settings.login_max_attempts,
        window_seconds=settings.login_window_seconds,
    )
    # added last so it wraps everything, 429s included
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app, settings)

    app.include_router(api_router)
    app.include_router(student_router)
    app.include_router(crm_router)
    app.include_router(classroom_router)

    @app.get("/")
    def root():
        return {
            "message": "Academy API",
            "version": "0.1.0",
            "docs": "/docs",
            "health": "/health",
        }

    @app.on_event("startup")
    def _startup() -> None:
        store.init()
        if app.state.fallback_store is not None:
            logger.info(f"📂 Legacy login store: {settings.legacy_data_dir}")
        app.state.sessions.clean_expired_sessions()
        logger.info(f"✅ Academy API ready (storage: {settings.storage_backend})")

    @app.on_event("shutdown")
    def _shutdown() -> None:
        store.close()

    return app


app = create_app()
