"""Service wiring and error translation for the HTTP layer."""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from backoffice.config import Settings
from backoffice.errors import ConcurrentModification, FulfillmentError, NotFound, Unavailable
from backoffice.service import FulfillmentService

logger = structlog.get_logger(__name__)

_service: FulfillmentService | None = None


def get_service() -> FulfillmentService:
    global _service
    if _service is None:
        _service = FulfillmentService.from_settings(Settings.from_env())
    return _service


def set_service(service: FulfillmentService | None) -> None:
    global _service
    _service = service


def status_code_for(error: FulfillmentError) -> int:
    if isinstance(error, NotFound):
        return 404
    if isinstance(error, ConcurrentModification):
        return 409
    if isinstance(error, Unavailable):
        return 503
    return 422


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(FulfillmentError)
    async def fulfillment_error_handler(request: Request, exc: FulfillmentError) -> JSONResponse:
        status_code = status_code_for(exc)
        logger.info(
            "Request rejected",
            path=request.url.path,
            kind=exc.kind,
            status_code=status_code,
            aggregate_id=exc.aggregate_id,
        )
        headers = {"Retry-After": "1"} if exc.retryable else None
        return JSONResponse(status_code=status_code, content={"error": exc.to_dict()}, headers=headers)
