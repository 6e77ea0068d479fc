from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from .config import settings
from .db import init_db
from .errors import StaffShieldError
from .logging import RequestIdMiddleware, get_logger, setup_logging
from .auth.router import router as auth_router
from .routes.users import router as users_router
from .routes.jobs import router as jobs_router
from .routes.matching import router as matching_router
from .routes.fleet import router as fleet_router
from .routes.compliance import router as compliance_router
from .routes.messages import router as messages_router
from .routes.payments import router as payments_router
from .routes.realtime import router as realtime_router


log = get_logger(__name__)


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StaffShieldError)
    async def _domain_error(request: Request, exc: StaffShieldError):
        if exc.status_code >= 500:
            log.error("request_failed", error=exc.detail, error_type=type(exc).__name__)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def _invalid_request(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        first = errors[0] if errors else {}
        # Drop the "body"/"query" prefix so the field name is what the client sent
        loc = [str(p) for p in first.get("loc", ()) if p not in ("body", "query", "path")]
        body = {"detail": first.get("msg", "Invalid request")}
        if loc:
            body["field"] = ".".join(loc)
        return JSONResponse(status_code=400, content=body)

    @app.exception_handler(Exception)
    async def _unexpected(request: Request, exc: Exception):
        log.exception("unhandled_error", error_type=type(exc).__name__)
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def create_app() -> FastAPI:
    setup_logging()
    app = FastAPI(title=settings.app_name)

    # Middlewares
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit])
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    register_error_handlers(app)

    # Routers
    app.include_router(auth_router)
    app.include_router(users_router)
    app.include_router(jobs_router)
    app.include_router(matching_router)
    app.include_router(fleet_router)
    app.include_router(compliance_router)
    app.include_router(messages_router)
    app.include_router(payments_router)
    app.include_router(realtime_router)

    # Metrics
    Instrumentator().instrument(app).expose(app)

    @app.get("/health")
    def health():
        return {"status": "ok", "environment": settings.environment}

    @app.on_event("startup")
    def _startup():
        log.info("startup", app=settings.app_name, environment=settings.environment)
        if settings.auto_create_db:
            log.info("tables_verified", count=init_db())

    return app


app = create_app()
