import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from metrics_gateway import __version__
from metrics_gateway.api.errors import error_response
from metrics_gateway.api.external import router as external_router
from metrics_gateway.api.health import router as health_router
from metrics_gateway.api.metrics import router as metrics_router
from metrics_gateway.monitoring.sentry_service import get_sentry
from metrics_gateway.resilience.errors import StoreUnavailableError

logger = logging.getLogger(__name__)

INVALID_PAYLOAD_MESSAGE = (
    "Invalid payload. Required: timestamp (string), value (number), type (string)"
)


async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed input as 400 instead of FastAPI's default 422."""
    logger.info("Rejected invalid request to %s: %d errors", request.url.path, len(exc.errors()))
    return error_response(400, "INVALID_PAYLOAD", INVALID_PAYLOAD_MESSAGE)


async def _store_unavailable(request: Request, exc: StoreUnavailableError) -> JSONResponse:
    logger.error("Shared store unavailable on %s: %s", request.url.path, exc)
    return error_response(500, "STORE_UNAVAILABLE", "Shared store unavailable.")


async def _unhandled(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s", request.url.path)
    sentry = get_sentry()
    if sentry:
        sentry.capture_error(exc, context={"method": request.method, "path": request.url.path})
    return error_response(500, "INTERNAL_ERROR", "Internal server error.")


def create_app() -> FastAPI:
    """Build the FastAPI application with routers and error handlers."""
    application = FastAPI(title="metrics-gateway", version=__version__)

    application.add_exception_handler(RequestValidationError, _validation_error)  # type: ignore[arg-type]
    application.add_exception_handler(StoreUnavailableError, _store_unavailable)  # type: ignore[arg-type]
    application.add_exception_handler(Exception, _unhandled)

    application.include_router(health_router)
    application.include_router(metrics_router)
    application.include_router(external_router)
    return application


app = create_app()
