import time
import uuid

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from storeops.container import ServiceContainer
from storeops.core.config import get_settings
from storeops.core.exceptions import (
    AppError,
    app_exception_handler,
    generic_exception_handler,
    validation_exception_handler,
)
from storeops.core.logging import bind_request_id, configure_logging, get_logger
from storeops.routers import admin, attendance, employees, loyalty, payroll
from fastapi.exceptions import RequestValidationError

settings = get_settings()
configure_logging(debug=settings.debug)
log = get_logger(__name__)

app = FastAPI(
    title="StoreOps API",
    version="1.0.0",
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
app.include_router(loyalty.router, prefix="/v1/loyalty", tags=["loyalty"])
app.include_router(admin.router, prefix="/v1/admin/loyalty", tags=["admin"])
app.include_router(employees.router, prefix="/v1/employees", tags=["employees"])
app.include_router(attendance.router, prefix="/v1/attendance", tags=["attendance"])
app.include_router(payroll.router, prefix="/v1/payroll", tags=["payroll"])


@app.on_event("startup")
async def startup():
    if settings.sentry_dsn:
        import sentry_sdk
        sentry_sdk.init(dsn=settings.sentry_dsn, environment=settings.env, traces_sample_rate=0.1)
        log.info("startup", msg="Sentry enabled")
    container = getattr(app.state, "container", None) or ServiceContainer(config=settings)
    await container.startup()
    app.state.container = container
    log.info("startup", msg="Backend connected")


@app.on_event("shutdown")
async def shutdown():
    container = getattr(app.state, "container", None)
    if container is not None:
        await container.shutdown()


@app.get("/health")
async def health():
    """Health check for load balancers and monitoring."""
    return {"status": "ok"}
