import datetime as dt
import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from finpin.api.v1.router import api_router
from finpin.core.config import Settings, get_settings

logger = logging.getLogger(__name__)

SIGNED_REQUEST_HEADERS = ["Content-Type", "Authorization", "x-device-id", "x-timestamp", "x-signature", "x-device-token"]


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response: Response = await call_next(request)
        response.headers.update(
            {
                "X-Content-Type-Options": "nosniff",
                "X-Frame-Options": "DENY",
                "Strict-Transport-Security": "max-age=63072000; includeSubDomains; preload",
            }
        )
        return response


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    body = {"success": False, "error": exc.detail}
    code = getattr(exc, "code", None)
    if code:
        body["code"] = code
    return JSONResponse(body, status_code=exc.status_code, headers=getattr(exc, "headers", None))


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        {"success": False, "error": "Invalid request data", "code": "VALIDATION_ERROR", "details": jsonable_encoder(exc.errors())},
        status_code=400,
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse({"success": False, "error": "Internal server error"}, status_code=500)


def get_application(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    logging.basicConfig(level=settings.log_level)
    app = FastAPI(title=settings.app_name, debug=settings.debug)

    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=[str(origin) for origin in settings.cors_origins],
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=SIGNED_REQUEST_HEADERS,
            max_age=86400,
        )

    app.add_middleware(SecurityHeadersMiddleware)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
    app.include_router(api_router)

    @app.get("/")
    async def index():
        return {
            "success": True,
            "message": f"{settings.app_name} Server",
            "version": settings.api_version,
            "environment": settings.environment,
            "timestamp": dt.datetime.now(dt.timezone.utc).isoformat(),
            "endpoints": {
                "health": "/api/v1/health",
                "register": "/api/v1/device/register",
                "parse": "/api/v1/parse/expense",
                "device": "/api/v1/device/{device_id}",
                "stats": "/api/v1/stats",
            },
        }

    return app


app = get_application()
