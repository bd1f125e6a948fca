"""FastAPI application setup."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..app import Application
from .routes import messaging, system


# Global application instance
_app: Application | None = None


def get_app() -> Application:
    """Get the global application instance."""
    global _app
    if not _app:
        _app = Application()
    return _app


async def _http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render errors in the {"message": ...} envelope clients expect."""
    return JSONResponse(status_code=exc.status_code, content={"message": exc.detail})


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    detail = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return JSONResponse(status_code=400, content={"message": detail})


def create_fastapi_app(application: Application | None = None) -> FastAPI:
    """Create and configure FastAPI application."""
    application = application or get_app()

    @asynccontextmanager
    async def lifespan(fastapi_app: FastAPI):
        """Manage application lifespan."""
        started_here = not application.is_started
        if started_here:
            await application.start()
        yield
        if started_here:
            await application.stop()

    fastapi_app = FastAPI(
        title="WorkiT Messaging API",
        description="Conversations and messages for the WorkiT marketplace",
        version="0.1.0",
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173", "http://localhost:5174"],  # Vite default
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    fastapi_app.add_exception_handler(StarletteHTTPException, _http_error_handler)
    fastapi_app.add_exception_handler(RequestValidationError, _validation_error_handler)

    fastapi_app.include_router(messaging.create_messaging_router(application))
    fastapi_app.include_router(system.create_system_router(application))

    application.uploads_dir.mkdir(parents=True, exist_ok=True)
    fastapi_app.mount(
        "/uploads",
        StaticFiles(directory=application.uploads_dir, check_dir=False),
        name="uploads",
    )

    return fastapi_app
