"""
FastAPI 主入口
"""
import logging
import time
import uuid
from contextlib import asynccontextmanager
from fastapi import FastAPI, Response, HTTPException, Request, status, Depends
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration

from offer_dispatch.config import get_settings
from offer_dispatch.database import init_db
from offer_dispatch.routers import admin, offer
from offer_dispatch.utils.request_context import request_id_ctx_var, RequestIdFilter, JsonFormatter
from offer_dispatch.utils.metrics import REQUEST_COUNT, REQUEST_LATENCY, IN_PROGRESS, get_route_name
from offer_dispatch.utils.security import verify_metrics_basic_auth

settings = get_settings()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    settings.validate_secrets()
    await init_db()
    yield


app = FastAPI(
    title="Offer Dispatch API",
    description="教育优惠码分发服务",
    version="1.0.0",
    lifespan=lifespan,
)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "status": "error",
            "message": exc.detail,
            "code": exc.status_code
        },
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "status": "error",
            "message": "Validation Error",
            "details": jsonable_errors(exc),
            "code": 422
        },
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in exc.errors()
    ]


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Global exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "status": "error",
            "message": "Internal Server Error",
            "code": 500
        },
    )


@app.middleware("http")
async def request_context_middleware(request, call_next):
    request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
    request.state.request_id = request_id
    token = request_id_ctx_var.set(request_id)
    response = None
    start = time.perf_counter()
    if settings.metrics_enabled:
        IN_PROGRESS.inc()

    try:
        response = await call_next(request)
        return response
    finally:
        duration = time.perf_counter() - start
        path = get_route_name(request.scope)
        status_code = response.status_code if response else 500
        if settings.metrics_enabled:
            REQUEST_COUNT.labels(request.method, path, str(status_code)).inc()
            REQUEST_LATENCY.labels(request.method, path).observe(duration)
            IN_PROGRESS.dec()
        request_id_ctx_var.reset(token)
        if response is not None:
            response.headers["X-Request-ID"] = request_id


# ============================================================================
# API 版本控制
# ============================================================================

API_V1_PREFIX = "/api/v1"

app.include_router(offer.router, prefix=f"{API_V1_PREFIX}/offer-codes", tags=["V1-优惠码"])
app.include_router(admin.router, prefix=f"{API_V1_PREFIX}/admin", tags=["V1-号池管理"])

# 兼容旧的 /api/ 路径
app.include_router(offer.router, prefix="/api/offer-codes", tags=["优惠码-Deprecated", "使用 /api/v1/offer-codes"])


@app.get("/")
async def root():
    """根路由"""
    return {"message": "Offer Dispatch API is running", "status": "ok", "docs_url": "/docs"}


@app.get("/api/health")
@app.get("/api/v1/health")
async def health_check():
    """健康检查端点"""
    return {
        "status": "ok",
        "service": "offer-dispatch",
        "version": "1.0.0",
        "api_version": "v1"
    }


@app.get("/metrics", dependencies=[Depends(verify_metrics_basic_auth)])
async def metrics():
    """Prometheus 指标端点（支持 Basic Auth 认证）"""
    if not settings.metrics_enabled:
        raise HTTPException(status_code=404, detail="Metrics disabled")
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


def configure_logging() -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    handler.addFilter(RequestIdFilter())

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(settings.log_level)

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logger = logging.getLogger(name)
        logger.handlers = [handler]
        logger.setLevel(settings.log_level)
        logger.propagate = False


def init_sentry() -> None:
    if settings.sentry_dsn:
        sentry_sdk.init(
            dsn=settings.sentry_dsn,
            environment=settings.environment,
            integrations=[FastApiIntegration()],
            traces_sample_rate=settings.sentry_traces_sample_rate,
            profiles_sample_rate=settings.sentry_profiles_sample_rate,
        )


configure_logging()
init_sentry()
