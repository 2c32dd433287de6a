"""Database setup helpers and provider-error wrapping."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path

from flask import Flask
from sqlalchemy.exc import SQLAlchemyError

from .errors import ProviderError
from .models import db

logger = logging.getLogger(__name__)


def init_app(app: Flask, database_url: str) -> None:
    if database_url.startswith("sqlite:///"):
        Path(database_url[len("sqlite:///"):]).parent.mkdir(parents=True, exist_ok=True)
    app.config["SQLALCHEMY_DATABASE_URI"] = database_url
    app.config.setdefault("SQLALCHEMY_TRACK_MODIFICATIONS", False)
    db.init_app(app)


def init_db() -> None:
    """Create all tables. Requires an application context."""
    db.create_all()


@contextmanager
def provider_call(session, action: str):
    """Run a database call, surfacing failures as ``ProviderError``.

    The session is rolled back so the next call starts clean.
    """
    try:
        yield
    except SQLAlchemyError as exc:
        session.rollback()
        message = str(getattr(exc, "orig", None) or exc)
        logger.error("database call failed during %s: %s", action, message)
        raise ProviderError(message) from exc
