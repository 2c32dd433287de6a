"""Session gating and account actions.

A request's session starts ``LOADING`` and settles on ``AUTHENTICATED`` or
``ANONYMOUS`` once the user id stored in the signed cookie has been looked
up. Views get the user through ``UserSession.current_user()`` instead of
reaching into global state.
"""

from __future__ import annotations

import enum
import logging
from functools import wraps
from typing import Dict, List, Optional

from flask import g, redirect, session, url_for
from werkzeug.security import check_password_hash, generate_password_hash

from .coerce import parse_amount
from .errors import NotAuthenticated, NotFound, ValidationError
from .models import User
from .store import Store

logger = logging.getLogger(__name__)

MAX_SEED_LOCATIONS = 5
MIN_PASSWORD_LENGTH = 6


class SessionState(enum.Enum):
    LOADING = "loading"
    AUTHENTICATED = "authenticated"
    ANONYMOUS = "anonymous"


class UserSession:
    def __init__(self):
        self.state = SessionState.LOADING
        self._user: Optional[User] = None

    def resolve(self, store: Store, user_id: Optional[str]) -> "UserSession":
        user = None
        if user_id:
            try:
                user = store.users.get_by_id(user_id)
            except NotFound:
                logger.info("session references missing user %s", user_id)
        self._user = user
        self.state = SessionState.AUTHENTICATED if user else SessionState.ANONYMOUS
        return self

    def current_user(self) -> Optional[User]:
        return self._user

    def require_user(self) -> User:
        if self._user is None:
            raise NotAuthenticated("Sign in to continue.")
        return self._user

    @property
    def is_authenticated(self) -> bool:
        return self.state is SessionState.AUTHENTICATED


def load_user_session() -> None:
    g.user_session = UserSession().resolve(Store(), session.get("user_id"))


def current_user() -> Optional[User]:
    user_session = g.get("user_session")
    return user_session.current_user() if user_session else None


def login_required(view):
    """Redirect anonymous visitors to the entry page."""

    @wraps(view)
    def wrapped_view(**kwargs):
        user_session = g.get("user_session")
        if user_session is None or not user_session.is_authenticated:
            return redirect(url_for("home"))
        return view(**kwargs)

    return wrapped_view


def _clean(form, key: str) -> str:
    return (form.get(key) or "").strip()


def parse_signup_form(form) -> tuple[Dict, List[Dict], List[str]]:
    """Validate signup input. Returns (user fields, seed locations, errors)."""
    errors: List[str] = []
    fields = {
        "first_name": _clean(form, "first_name"),
        "last_name": _clean(form, "last_name"),
        "email": _clean(form, "email"),
        "bank": _clean(form, "bank"),
        "address": _clean(form, "address"),
    }
    password = form.get("password") or ""
    for key, label in (("first_name", "First name"), ("last_name", "Last name"), ("email", "Email"), ("bank", "Bank")):
        if not fields[key]:
            errors.append(f"{label} is required.")
    if fields["email"] and "@" not in fields["email"]:
        errors.append("Email must be a valid address.")
    if len(password) < MIN_PASSWORD_LENGTH:
        errors.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
    balance_raw = _clean(form, "current_balance")
    try:
        fields["current_balance"] = parse_amount(balance_raw) if balance_raw else 0.0
    except ValueError:
        errors.append("Current balance must be a number.")

    seeds: List[Dict] = []
    for index in range(MAX_SEED_LOCATIONS):
        name = _clean(form, f"location_name_{index}")
        category = _clean(form, f"location_category_{index}")
        if name:
            seeds.append({"name": name, "category": category or "Other"})
        elif category:
            errors.append(f"Spending location {index + 1} needs a name.")

    fields["password_hash"] = generate_password_hash(password) if password else ""
    return fields, seeds, errors


def sign_up(store: Store, form) -> User:
    """Create an account plus its seed locations, all or nothing."""
    fields, seeds, errors = parse_signup_form(form)
    if errors:
        raise ValidationError(" ".join(errors))
    if store.users.get_by_email(fields["email"]) is not None:
        raise ValidationError("An account with that email already exists.")
    user = store.users.create_with_locations(fields, seeds)
    logger.info("created user %s with %d seed locations", user.id, len(seeds))
    _start_session(user)
    return user


def sign_in(store: Store, email: str, password: str) -> User:
    if not email or not password:
        raise ValidationError("Email and password are required.")
    user = store.users.get_by_email(email)
    if user is None or not check_password_hash(user.password_hash, password):
        raise ValidationError("Invalid credentials.")
    _start_session(user)
    return user


def sign_out() -> None:
    session.clear()


def _start_session(user: User) -> None:
    session.clear()
    session["user_id"] = user.id

