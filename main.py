from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from core.auth import router as auth_router
from core.errors import ProxyError
from core.logger import get_logger
from core.webhooks import router as webhooks_router
from db import init_db
from routers.admin import router as admin_router
from routers.api import router as api_router
from routers.campaigns import router as campaigns_router
from routers.ingest import router as ingest_router
from routers.proxy import router as proxy_router
from services.installation_logs import InstallationLogStore

logger = get_logger(__name__)

HTTP_ERROR_NAMES = {
    400: "Bad Request",
    401: "Unauthorized",
    403: "Forbidden",
    404: "Not Found",
    405: "Method not allowed",
    500: "Internal Server Error",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


def create_app() -> FastAPI:
    app = FastAPI(title="SmartSell admin proxy", lifespan=lifespan)

    # Process-wide, in-memory; see InstallationLogStore
    app.state.installation_logs = InstallationLogStore(max_entries=10)

    # ----------------------------
    # Error bodies: {"success": false, "error": ..., "message": ...}
    # ----------------------------

    @app.exception_handler(ProxyError)
    async def proxy_error_handler(_: Request, exc: ProxyError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_content())

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(_: Request, exc: StarletteHTTPException):
        if isinstance(exc.detail, dict):
            return JSONResponse(status_code=exc.status_code, content=exc.detail, headers=exc.headers)

        return JSONResponse(
            status_code=exc.status_code,
            content={
                "success": False,
                "error": HTTP_ERROR_NAMES.get(exc.status_code, "Error"),
                "message": str(exc.detail),
            },
            headers=exc.headers,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(_: Request, exc: RequestValidationError):
        errors = exc.errors()
        message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
        return JSONResponse(status_code=400, content={"success": False, "error": "Bad Request", "message": message})

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "Internal Server Error", "message": "An unexpected error occurred"},
        )

    # ----------------------------
    # Shopify iframe embedding headers
    # ----------------------------

    @app.middleware("http")
    async def add_shopify_headers(request: Request, call_next):
        response = await call_next(request)

        response.headers["Content-Security-Policy"] = (
            "frame-ancestors https://*.myshopify.com https://admin.shopify.com;"
        )

        return response

    # ----------------------------
    # Routers (catch-all proxy last)
    # ----------------------------

    app.include_router(auth_router)
    app.include_router(webhooks_router)
    app.include_router(api_router)
    app.include_router(campaigns_router)
    app.include_router(ingest_router)
    app.include_router(admin_router)
    app.include_router(proxy_router)

    # ----------------------------
    # Root health check
    # ----------------------------

    @app.get("/")
    def health():
        return {"status": "SmartSell proxy running"}

    return app


app = create_app()
