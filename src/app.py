"""Backoffice FastAPI application.

Web server for the back-office fulfillment core. Every request runs inside
the backoffice domain context.

Usage:
    uvicorn app:app --app-dir src --host 0.0.0.0 --port 8000 --reload

``BACKOFFICE_*`` environment variables pick the repository backend and
tuning (see ``backoffice.config``). PROTEAN_ENV selects the log renderer and
level.
"""

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# Initialized at module level so uvicorn workers share it.
from backoffice.api.application import create_app
from backoffice.domain import backoffice
from backoffice.utils.logging import configure_logging

configure_logging()
backoffice.init()

app = create_app()
