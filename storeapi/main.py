"""Application entrypoint."""

from __future__ import annotations

from http import HTTPStatus
from typing import List, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.utils import get_openapi
from fastapi.responses import JSONResponse
from fastapi.routing import APIRoute
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.routing import Match

from . import routers
from .config import Settings, get_settings
from .db import build_engine, init_db
from .errors import AuthenticationFailed, StoreError
from .log import bind_request_id, configure_logging, get_logger
from .schemas import ErrorResponse
from .version import APP_VERSION

log = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
GENERIC_ERROR_MESSAGE = "An unexpected error occurred"


class UTF8JSONResponse(JSONResponse):
    """JSON response that always declares UTF-8."""

    media_type = "application/json; charset=utf-8"


def error_response(
    request: Request,
    status_code: int,
    message: str,
    error_code: str,
    details: Optional[List[str]] = None,
    headers: Optional[dict[str, str]] = None,
) -> JSONResponse:
    body = ErrorResponse(
        status=status_code,
        error=HTTPStatus(status_code).phrase,
        message=message,
        path=str(request.url.path),
        error_code=error_code,
        details=details or [],
    )
    return UTF8JSONResponse(
        status_code=status_code,
        content=body.model_dump(mode="json", by_alias=True),
        headers=headers,
    )


async def handle_store_error(request: Request, exc: StoreError) -> JSONResponse:
    log.warning("request.rejected", path=request.url.path, error_code=exc.error_code, reason=exc.message)
    headers = None
    if isinstance(exc, AuthenticationFailed):
        headers = {"WWW-Authenticate": 'Bearer realm="store-api"'}
    return error_response(request, exc.status_code, exc.message, exc.error_code, exc.details, headers)


async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        f"{'.'.join(str(loc) for loc in error['loc'] if loc != 'body')}: {error['msg']}" for error in exc.errors()
    ]
    log.warning("request.invalid", path=request.url.path, details=details)
    return error_response(
        request,
        status.HTTP_400_BAD_REQUEST,
        "Validation failed",
        "VALIDATION_ERROR",
        details,
    )


async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == status.HTTP_401_UNAUTHORIZED:
        error_code = "AUTHENTICATION_FAILED"
    elif exc.status_code == status.HTTP_403_FORBIDDEN:
        error_code = "ACCESS_DENIED"
    elif exc.status_code >= 500:
        error_code = "INTERNAL_SERVER_ERROR"
    else:
        error_code = "BAD_REQUEST"
    message = exc.detail if isinstance(exc.detail, str) and exc.detail else HTTPStatus(exc.status_code).phrase
    return error_response(request, exc.status_code, message, error_code, headers=exc.headers)


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    log.error("request.failed", path=request.url.path, exc_info=exc)
    return error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        GENERIC_ERROR_MESSAGE,
        "INTERNAL_SERVER_ERROR",
    )


async def bind_request_context(request: Request, call_next):  # type: ignore[no-untyped-def]
    request_id = bind_request_id(request.headers.get(REQUEST_ID_HEADER))
    response = await call_next(request)
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


async def ensure_allow_header(request: Request, call_next):  # type: ignore[no-untyped-def]
    response = await call_next(request)
    if response.status_code == status.HTTP_405_METHOD_NOT_ALLOWED:
        allow = response.headers.get("Allow")
        if not allow:
            methods: set[str] = set()
            for route in request.app.routes:
                if isinstance(route, APIRoute):
                    match, _ = route.matches(request.scope)
                    if match in (Match.FULL, Match.PARTIAL):
                        methods.update(route.methods or [])
            if methods:
                response.headers["Allow"] = ", ".join(sorted(methods))
    return response


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Create a configured :class:`FastAPI` application."""

    settings = settings or get_settings()
    configure_logging(settings.log_level, settings.log_json)

    application = FastAPI(
        title="Store Management API",
        summary="API for managing products in a store",
        version=APP_VERSION,
        default_response_class=UTF8JSONResponse,
        docs_url="/docs",
        redoc_url="/redoc",
        servers=[{"url": "http://localhost:8000", "description": "Local"}],
    )
    application.state.settings = settings
    application.state.engine = build_engine(settings.database_url)

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    application.middleware("http")(ensure_allow_header)
    application.middleware("http")(bind_request_context)

    application.add_exception_handler(StoreError, handle_store_error)
    application.add_exception_handler(RequestValidationError, handle_validation_error)
    application.add_exception_handler(StarletteHTTPException, handle_http_exception)
    application.add_exception_handler(Exception, handle_unexpected_error)

    @application.on_event("startup")
    def startup() -> None:
        init_db(application.state.engine, settings)
        log.info("app.started", version=APP_VERSION, database=application.state.engine.url.render_as_string())

    @application.on_event("shutdown")
    def shutdown() -> None:
        application.state.engine.dispose()

    application.include_router(routers.auth.router)
    application.include_router(routers.products.router)

    def custom_openapi() -> dict:
        """Generate the schema once, requiring the bearer scheme by default."""

        if application.openapi_schema:
            return application.openapi_schema

        schema = get_openapi(
            title=application.title,
            version=application.version,
            summary=application.summary,
            routes=application.routes,
            servers=application.servers,
        )
        components = schema.setdefault("components", {})
        components.setdefault("securitySchemes", {})["bearer-jwt"] = {
            "type": "http",
            "scheme": "bearer",
            "bearerFormat": "JWT",
        }
        schema["security"] = [{"bearer-jwt": []}]
        application.openapi_schema = schema
        return schema

    application.openapi = custom_openapi  # type: ignore[method-assign]
    return application


app = create_app()


def run() -> None:
    """Console entry point: serve the API with uvicorn."""

    import uvicorn

    uvicorn.run("storeapi.main:app", host="0.0.0.0", port=8000)


if __name__ == "__main__":
    run()
