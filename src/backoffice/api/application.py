"""FastAPI application factory for the backoffice API."""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from protean.integrations.fastapi import register_exception_handlers

from backoffice.api.dependencies import register_error_handlers, set_service
from backoffice.api.routes import issue_router, order_router, return_router
from backoffice.domain import backoffice
from backoffice.service import FulfillmentService
from backoffice.utils.logging import add_context, clear_context


def create_app(service: FulfillmentService | None = None) -> FastAPI:
    """Build the API. A given ``service`` replaces the one built from the environment.

    The backoffice domain must already be initialized.
    """
    if service is not None:
        set_service(service)

    app = FastAPI(
        title="Backoffice API",
        description="Order fulfillment, returns and issue resolution",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def domain_context_middleware(request: Request, call_next):
        """Push the backoffice domain context and bind request details to the logs."""
        add_context(method=request.method, path=request.url.path)
        try:
            with backoffice.domain_context():
                response = await call_next(request)
        finally:
            clear_context()
        return response

    app.include_router(order_router)
    app.include_router(return_router)
    app.include_router(issue_router)

    register_exception_handlers(app)
    register_error_handlers(app)

    @app.get("/health")
    async def health():
        return JSONResponse(content={"status": "ok", "domain": backoffice.name})

    return app
