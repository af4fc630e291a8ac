import logging
import random
import time
import uuid
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import Settings, settings as default_settings
from .database import build_engine, build_sessionmaker, create_tables
from .realtime.registry import ConnectionRegistry
from .realtime.relay import EventRelay
from .routers.health import router as health_router
from .routers.users import router as users_router
from .routers.conversations import router as conversations_router
from .routers.messages import router as messages_router
from .routers.realtime import router as realtime_router

# Configure logging
logger = logging.getLogger(__name__)

# Prometheus metrics
REQUEST_COUNT = Counter("http_requests_total", "Total HTTP requests", [
                        "method", "route", "status"])
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2, 5)
)

ERROR_CODES = {
    400: "bad_request",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
    409: "conflict",
    422: "validation_error",
}


def _route_of(request: Request) -> str:
    return getattr(request.scope.get("route"), "path", request.url.path)


def _error_response(request: Request, status_code: int, code: str, message: str, details=None) -> JSONResponse:
    request_id = getattr(request.state, "request_id", None) or str(uuid.uuid4())
    error = {"code": code, "message": message}
    if details is not None:
        error["details"] = details
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "request_id": request_id},
        headers={"X-Request-ID": request_id},
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    await create_tables(app.state.engine)
    logger.info(f"{app.state.settings.app_name} ready")

    yield

    await app.state.engine.dispose()


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build an application with its own database engine and realtime registry."""
    settings = settings or default_settings

    app = FastAPI(
        title=settings.app_name,
        description="""
# Group Chat API

Users, conversations, messages and emoji reactions over HTTP, with live
updates pushed over a WebSocket.

## 📡 Realtime

Connect a WebSocket to `/` (or `/ws`), then send
`{"type": "join", "conversationId": "...", "userId": "..."}` to subscribe to a
conversation. Events arrive as `{"type": ..., "payload": ...}`:

- `message:new`, `message:updated`, `message:deleted`
- `reaction:added`, `reaction:removed`
- `typing`, `users:online`

## ⚠️ Errors

Errors share one shape: `{"error": {"code", "message"}, "request_id"}`.
""",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.engine = build_engine(settings.database_url, echo=settings.debug)
    app.state.sessionmaker = build_sessionmaker(app.state.engine)
    app.state.registry = ConnectionRegistry(
        send_timeout=float(settings.ws_send_timeout_seconds))
    app.state.relay = EventRelay(app.state.registry)

    # Include routers
    app.include_router(health_router)
    app.include_router(users_router)
    app.include_router(conversations_router)
    app.include_router(messages_router)
    app.include_router(realtime_router)

    # CORS for UI
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def add_request_id_and_errors(request: Request, call_next):
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id
        # Lightweight JSON log (sample all in debug)
        if settings.debug or random.random() < settings.log_sample_rate:
            logger.info({
                "event": "request",
                "method": request.method,
                "path": request.url.path,
                "rid": request_id,
            })
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            logger.exception(f"Unhandled error rid={request_id}")
            REQUEST_COUNT.labels(method=request.method,
                                 route=_route_of(request), status=500).inc()
            return _error_response(request, 500, "internal_server_error", "Internal Server Error")

        REQUEST_LATENCY.observe(time.perf_counter() - start)
        REQUEST_COUNT.labels(method=request.method,
                             route=_route_of(request), status=response.status_code).inc()
        response.headers["X-Request-ID"] = request_id
        return response

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        # Missing or malformed fields are reported as plain bad requests
        errors = exc.errors()
        fields = [".".join(str(p) for p in err.get("loc", ())[1:]) for err in errors]
        fields = [f for f in fields if f]
        message = "Invalid request"
        if fields:
            message = "Missing or invalid field(s): " + ", ".join(fields)
        return _error_response(request, 400, "bad_request", message,
                               details=[{"loc": list(err.get("loc", ())), "msg": err.get("msg")} for err in errors])

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        code = ERROR_CODES.get(exc.status_code, "error")
        message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
        return _error_response(request, exc.status_code, code, message)

    @app.get("/metrics", include_in_schema=False)
    async def metrics(request: Request):
        # In dev/debug mode, expose metrics without auth
        if not settings.debug:
            token = request.headers.get("X-Metrics-Token")
            if not settings.metrics_token or token != settings.metrics_token:
                return JSONResponse(status_code=403, content={"detail": "Forbidden"})
        data = generate_latest()
        return PlainTextResponse(content=data, media_type=CONTENT_TYPE_LATEST)

    return app


app = create_app()


def run() -> None:
    """Console entry point: serve the default app on the configured port."""
    import uvicorn

    logging.basicConfig(
        level=default_settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(app, host=default_settings.host, port=default_settings.port,
                log_level=default_settings.log_level.lower())


if __name__ == "__main__":
    run()
