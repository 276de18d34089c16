import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from app.core.clock import utcnow
from app.core.config import get_settings
from app.core.exceptions import (
    AppError,
    app_exception_handler,
    generic_exception_handler,
    validation_exception_handler,
)
from app.core.logging import bind_request_id, configure_logging, get_logger
from app.routers import (
    admin,
    applications,
    auth,
    credits,
    disputes,
    jobs,
    notifications,
    penalties,
    trust,
    users,
)
from app.services.notifications import get_notifier
from app.stores.base import create_stores

settings = get_settings()
configure_logging(debug=settings.debug)
log = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open stores and notifier on startup; close them on shutdown."""
    if settings.sentry_dsn:
        import sentry_sdk
        sentry_sdk.init(dsn=settings.sentry_dsn, environment=settings.env, traces_sample_rate=0.1)
        log.info("startup", msg="Sentry enabled")
    app.state.stores = await create_stores()
    app.state.notifier = get_notifier(app.state.stores, settings)
    app.state.clock = utcnow
    log.info("startup", msg="Stores ready", backend=settings.store_backend)
    try:
        yield
    finally:
        await app.state.notifier.close()
        await app.state.stores.close()
        log.info("shutdown", msg="Stores closed")


app = FastAPI(
    title="ClockWork API",
    version="1.0.0",
    default_response_class=ORJSONResponse,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_id_middleware(request, call_next):
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id
    bind_request_id(request_id)
    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - start) * 1000
    log.info(
        "request",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round(duration_ms, 2),
    )
    response.headers["X-Request-ID"] = request_id
    return response


app.add_exception_handler(AppError, app_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)

# Routers
app.include_router(auth.router, prefix="/v1/auth", tags=["auth"])
app.include_router(users.router, prefix="/v1/users", tags=["users"])
app.include_router(jobs.router, prefix="/v1/jobs", tags=["jobs"])
app.include_router(applications.router, prefix="/v1/applications", tags=["applications"])
app.include_router(credits.router, prefix="/v1/credits", tags=["credits"])
app.include_router(trust.router, prefix="/v1/trust", tags=["trust"])
app.include_router(penalties.router, prefix="/v1/penalties", tags=["penalties"])
app.include_router(disputes.router, prefix="/v1/disputes", tags=["disputes"])
app.include_router(notifications.router, prefix="/v1/notifications", tags=["notifications"])
app.include_router(admin.router, prefix="/v1/admin", tags=["admin"])


@app.get("/health")
async def health():
    """Health check for load balancers and monitoring."""
    return {"status": "ok"}
