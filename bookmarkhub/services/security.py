"""Session gate for dashboard routes and bearer-token auth for the JSON API.

Nothing is cached between requests: every protected request re-validates its
cookies against the auth service and, when the access token is no longer
accepted, trades the refresh token for a new pair.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import wraps

from flask import Flask, current_app, g, jsonify, redirect, request, url_for

from bookmarkhub.extensions import login_manager
from bookmarkhub.models import SessionUser
from bookmarkhub.services.auth_client import AuthError, AuthSession, get_auth_client


logger = logging.getLogger(__name__)


@dataclass
class SessionResolution:
    user: SessionUser | None
    refreshed: AuthSession | None = None
    clear_cookies: bool = False


def resolve_session(access_token: str | None, refresh_token: str | None) -> SessionResolution:
    if not access_token and not refresh_token:
        return SessionResolution(user=None)

    client = get_auth_client()
    if access_token:
        try:
            user = client.get_user(access_token)
            return SessionResolution(user=SessionUser(user.id, user.email))
        except AuthError as exc:
            logger.debug("Access token rejected: %s", exc.message)

    if refresh_token:
        try:
            session = client.refresh_session(refresh_token)
            return SessionResolution(
                user=SessionUser(session.user.id, session.user.email),
                refreshed=session,
            )
        except AuthError as exc:
            logger.info("Session refresh failed: %s", exc.message)

    return SessionResolution(user=None, clear_cookies=True)


def load_request_session() -> SessionResolution:
    if "session_resolution" not in g:
        g.session_resolution = resolve_session(
            request.cookies.get(current_app.config["ACCESS_COOKIE_NAME"]),
            request.cookies.get(current_app.config["REFRESH_COOKIE_NAME"]),
        )
    return g.session_resolution


def current_access_token() -> str | None:
    resolution = g.get("session_resolution")
    if resolution is not None and resolution.refreshed is not None:
        return resolution.refreshed.access_token
    return request.cookies.get(current_app.config["ACCESS_COOKIE_NAME"])


def set_session_cookies(response, session: AuthSession):
    config = current_app.config
    options = {
        "max_age": config["AUTH_COOKIE_MAX_AGE"],
        "httponly": True,
        "secure": config["AUTH_COOKIE_SECURE"],
        "samesite": "Lax",
    }
    response.set_cookie(config["ACCESS_COOKIE_NAME"], session.access_token, **options)
    response.set_cookie(config["REFRESH_COOKIE_NAME"], session.refresh_token, **options)
    return response


def clear_session_cookies(response):
    config = current_app.config
    for name in (config["ACCESS_COOKIE_NAME"], config["REFRESH_COOKIE_NAME"]):
        response.delete_cookie(
            name, httponly=True, secure=config["AUTH_COOKIE_SECURE"], samesite="Lax"
        )
    return response


def is_protected_path(path: str, prefix: str) -> bool:
    prefix = prefix.rstrip("/")
    return path == prefix or path.startswith(prefix + "/")


def session_gate():
    if not is_protected_path(request.path, current_app.config["PROTECTED_PREFIX"]):
        return None
    resolution = load_request_session()
    if resolution.user is None:
        return redirect(url_for("auth.signin", next=request.path))
    return None


def write_session_cookies(response):
    resolution = g.get("session_resolution")
    if resolution is None:
        return response
    if resolution.refreshed is not None:
        set_session_cookies(response, resolution.refreshed)
    elif resolution.clear_cookies:
        clear_session_cookies(response)
    return response


@login_manager.request_loader
def load_user_from_request(_request):
    resolution = g.get("session_resolution")
    return resolution.user if resolution is not None else None


def init_session_gate(app: Flask) -> None:
    app.before_request(session_gate)
    app.after_request(write_session_cookies)


def _user_from_bearer_token() -> SessionUser | None:
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    token = auth_header.removeprefix("Bearer ").strip()
    if not token:
        return None
    try:
        user = get_auth_client().get_user(token)
    except AuthError as exc:
        logger.debug("Bearer token rejected: %s", exc.message)
        return None
    return SessionUser(user.id, user.email)


def api_auth_required():
    def decorator(func):
        @wraps(func)
        def wrapped(*args, **kwargs):
            user = _user_from_bearer_token()
            if not user:
                return jsonify({"error": "authentication required"}), 401
            g.api_user = user
            return func(*args, **kwargs)

        return wrapped

    return decorator
