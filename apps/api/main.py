from fastapi import FastAPI, Request, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import time
import uuid
import logging

from packages.config import CORS_ORIGINS, STORE_BACKEND
from packages.error_reporting import init_error_reporting, report_exception
from packages.errors import StoreUnavailable
from packages.logging_utils import setup_logging
from packages.metrics import inc, observe
from packages.request_context import request_id_var
from packages.store import get_store
from .routes import daily as daily_routes
from .routes import debug as debug_routes
from .routes import health as health_routes
from .routes import metrics as metrics_routes
from .routes import stats as stats_routes
from .routes import sync as sync_routes
from .routes import webhooks as webhook_routes
from .routes import workouts as workout_routes


setup_logging()
init_error_reporting("api", enable_fastapi=True)
logger = logging.getLogger("fitness.api")

app = FastAPI(title="Fitness Webhook API")

ROUTERS = (
    health_routes.router,
    workout_routes.router,
    daily_routes.router,
    stats_routes.router,
    webhook_routes.router,
    sync_routes.router,
    debug_routes.router,
    metrics_routes.router,
)
API_PREFIXES = ("/api", "/api/v1")


def error_body(code: str, message: str, details: dict | None = None) -> dict:
    error = {"code": code, "message": message, "request_id": request_id_var.get() or "-"}
    if details:
        error["details"] = details
    return {"error": error}


def route_label(request: Request) -> str:
    """Route template for metric labels, so per-id paths share one series.

    The matched route's template may or may not carry the router prefix, so
    the prefix is recovered from the concrete path: ``/api/v1/workouts/abc``
    matched by ``/workouts/{workout_id}`` labels as
    ``/api/v1/workouts/{workout_id}``.
    """
    route = request.scope.get("route")
    template = getattr(route, "path_format", None) or getattr(route, "path", None)
    if not template:
        return "unmatched"
    path = request.scope.get("path") or request.url.path
    try:
        rendered = template.format(**request.scope.get("path_params", {}))
    except (KeyError, IndexError, ValueError):
        return template
    if path.endswith(rendered):
        return path[: len(path) - len(rendered)] + template
    return template


@app.on_event("startup")
def open_store():
    try:
        store = get_store()
    except StoreUnavailable:
        logger.exception("store_unavailable_on_start backend=%s", STORE_BACKEND)
        return
    logger.info("api_ready backend=%s prefixes=%s", type(store).__name__, ",".join(API_PREFIXES))


app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_logging(request: Request, call_next):
    request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
    token = request_id_var.set(request_id)
    start = time.perf_counter()
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
        response.headers["x-request-id"] = request_id
        return response
    finally:
        elapsed = time.perf_counter() - start
        label = route_label(request)
        inc("http_requests_total")
        inc("http_requests_total", route=label, status=status_code)
        observe("http_request_duration_seconds", elapsed, route=label)
        logger.info("%s %s -> %s %.1fms", request.method, request.url.path, status_code, elapsed * 1000)
        request_id_var.reset(token)


@app.exception_handler(HTTPException)
async def http_error(request: Request, exc: HTTPException):
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    details = exc.detail if isinstance(exc.detail, dict) else None
    return JSONResponse(status_code=exc.status_code, content=error_body(f"http_{exc.status_code}", message, details))


@app.exception_handler(RequestValidationError)
async def validation_error(request: Request, exc: RequestValidationError):
    fields = {".".join(str(p) for p in err["loc"]): err["msg"] for err in exc.errors()}
    return JSONResponse(status_code=422, content=error_body("validation_error", "Invalid request", fields))


@app.exception_handler(StoreUnavailable)
async def store_error(request: Request, exc: StoreUnavailable):
    logger.error("store_unavailable %s %s: %s", request.method, request.url.path, exc)
    inc("store_errors_total", route=route_label(request))
    report_exception(exc, route=route_label(request))
    return JSONResponse(status_code=500, content=error_body("store_unavailable", str(exc)))


@app.exception_handler(Exception)
async def unhandled_error(request: Request, exc: Exception):
    logger.exception("unhandled_exception %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content=error_body("internal_error", "Internal server error"))


for prefix in API_PREFIXES:
    for router in ROUTERS:
        app.include_router(router, prefix=prefix)
