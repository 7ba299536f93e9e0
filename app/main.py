from fastapi import FastAPI
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from timing_asgi import TimingMiddleware, TimingClient  # type: ignore
from timing_asgi.integrations import StarletteScopeToName  # type: ignore

from app.core import config
from app.core.database.engine import AsyncSessionLocal, init_db, is_sqlite
from app.features.permissions.errors import (
    AccountDeactivated,
    AuthenticationRequired,
    PermissionDenied,
    StoreUnavailable,
    UnknownPermissionKey,
    UnknownTemplate,
)
from app.features.permissions.routes import router as permission_router
from app.features.permissions.service import build_permission_service
from app.features.users.dependencies import get_rate_limit_key
from app.utils import get_logger


log = get_logger(__name__)
log.info("Initializing server")
app = FastAPI(
    title="Fleet Permissions",
    description="Role and user permission engine for the fleet back office",
    version="0.1.0",
    docs_url="/docs" if config.ENABLE_DOCS else None,
    redoc_url="/redoc" if config.ENABLE_DOCS else None,
    openapi_url="/openapi.json" if config.ENABLE_DOCS else None
)
limiter = Limiter(key_func=get_rate_limit_key)
app.state.limiter = limiter


class PrintTimings(TimingClient):
    def timing(self, metric_name, timing, tags):
        log.debug(dict(route=metric_name.removeprefix("main.app.features."), timing=timing, tags=tags))


app.add_middleware(TimingMiddleware, client=PrintTimings(), metric_namer=StarletteScopeToName("main", app))

if config.ENABLE_DOCS:
    log.warning("Docs enabled")
if config.ALLOW_ORIGIN:
    log.warning("Setting allow origin to %s", config.ALLOW_ORIGIN)
    origins = [config.ALLOW_ORIGIN]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(_request: Request, exc: RequestValidationError):
    errors = dict()
    for error in exc.errors():
        if "loc" not in error or "msg" not in error:
            continue
        key = error["loc"][-1]
        if key == "__root__":
            key = "root"
        errors[key] = error["msg"]
    log.info("Request validation error %s", errors)
    return JSONResponse(status_code=400, content=jsonable_encoder(errors))


@app.exception_handler(RateLimitExceeded)
def rate_limit_exceeded_handler(_request: Request, _exc: RateLimitExceeded) -> Response:
    return JSONResponse({"error": "You are going too fast"}, status_code=429)


@app.exception_handler(AuthenticationRequired)
async def authentication_required_handler(_request: Request, _exc: AuthenticationRequired) -> Response:
    return JSONResponse({"error": "Authentication required"}, status_code=401)


@app.exception_handler(AccountDeactivated)
async def account_deactivated_handler(_request: Request, exc: AccountDeactivated) -> Response:
    return JSONResponse({"error": str(exc)}, status_code=403)


@app.exception_handler(PermissionDenied)
async def permission_denied_handler(request: Request, exc: PermissionDenied) -> Response:
    log.info("Permission denied on %s %s: %s:%s", request.method, request.url.path, exc.module, exc.action)
    return JSONResponse(
        {
            "error": "Permission denied",
            "message": exc.message,
            "module": exc.module,
            "action": exc.action,
        },
        status_code=403,
    )


@app.exception_handler(UnknownPermissionKey)
async def unknown_permission_handler(_request: Request, exc: UnknownPermissionKey) -> Response:
    log.warning("Unknown permission %s requested; catalog and client may be out of sync", exc.key)
    return JSONResponse({"error": str(exc), "key": exc.key}, status_code=404)


@app.exception_handler(UnknownTemplate)
async def unknown_template_handler(_request: Request, exc: UnknownTemplate) -> Response:
    return JSONResponse({"error": str(exc)}, status_code=404)


@app.exception_handler(StoreUnavailable)
async def store_unavailable_handler(_request: Request, exc: StoreUnavailable) -> Response:
    log.error("Permission store unavailable: %s", exc)
    return JSONResponse({"error": "Permission store unavailable, try again"}, status_code=503)


async def init_permissions(target: FastAPI = app, session_factory=AsyncSessionLocal) -> None:
    """Build the permission engine and attach it to app.state."""
    target.state.session_factory = session_factory
    target.state.permissions = await build_permission_service(
        session_factory,
        serialize_writes=is_sqlite(config.SQLALCHEMY_DATABASE_URL),
    )


@app.on_event("startup")
async def startup():
    """Initialize database and permission engine on application startup."""
    log.info("Initializing database...")
    await init_db()
    log.info("Database initialized successfully")
    await init_permissions()


@app.get("/")
async def root():
    """Root endpoint - API health check."""
    return {
        "message": "Fleet Permissions API",
        "version": "0.1.0",
        "status": "online",
        "docs": "/docs" if config.ENABLE_DOCS else None,
        "authentication": {
            "info": "Protected endpoints require the X-User-Id header of an authenticated user",
            "protected_endpoints": ["/permissions/*"],
        },
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


# Permission routes
app.include_router(permission_router, prefix="/permissions", tags=["permissions"])
