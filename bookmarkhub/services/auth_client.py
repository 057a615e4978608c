"""Client for the hosted authentication service.

The service speaks the GoTrue REST dialect: every endpoint lives under
``<AUTH_URL>/auth/v1`` and expects the project key in an ``apikey`` header.
Each call returns a typed result or raises :class:`AuthError`; callers branch
on the exception instead of inspecting response payloads.
"""

from __future__ import annotations

import base64
import hashlib
import logging
import secrets
from dataclasses import dataclass
from urllib.parse import urlencode

import httpx
from flask import Flask, current_app


logger = logging.getLogger(__name__)

OAUTH_PROVIDERS = ("google", "github")


class AuthError(Exception):
    def __init__(self, message: str, status_code: int | None = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


@dataclass
class AuthUser:
    id: str
    email: str | None = None


@dataclass
class AuthSession:
    access_token: str
    refresh_token: str
    expires_in: int | None
    user: AuthUser


def generate_pkce_pair() -> tuple[str, str]:
    verifier = secrets.token_urlsafe(48)
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    challenge = base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")
    return verifier, challenge


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = {}
    if isinstance(payload, dict):
        for key in ("msg", "error_description", "message", "error"):
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return f"Authentication service returned HTTP {response.status_code}."


def _user_from_payload(payload) -> AuthUser:
    if not isinstance(payload, dict):
        raise AuthError("Authentication service returned no user.")
    user_id = payload.get("id")
    if not user_id:
        raise AuthError("Authentication service returned no user.")
    email = payload.get("email")
    return AuthUser(id=str(user_id), email=email if isinstance(email, str) else None)


def _session_from_payload(payload: dict) -> AuthSession:
    access_token = payload.get("access_token")
    refresh_token = payload.get("refresh_token")
    if not (isinstance(access_token, str) and access_token) or not (
        isinstance(refresh_token, str) and refresh_token
    ):
        raise AuthError("Authentication service returned no session.")
    return AuthSession(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_in=payload.get("expires_in"),
        user=_user_from_payload(payload.get("user") or {}),
    )


class AuthClient:
    def __init__(self, base_url: str = "", api_key: str = "", timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout

    def init_app(self, app: Flask) -> None:
        self.base_url = app.config["AUTH_URL"]
        self.api_key = app.config["AUTH_API_KEY"]
        self.timeout = float(app.config["AUTH_TIMEOUT"])
        app.extensions["auth_client"] = self

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/auth/v1"

    def _headers(self, access_token: str | None = None) -> dict[str, str]:
        headers = {"apikey": self.api_key, "Content-Type": "application/json"}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        return headers

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict | None = None,
        json: dict | None = None,
        access_token: str | None = None,
    ) -> dict:
        if not self.base_url:
            raise AuthError("Authentication service is not configured.")
        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.request(
                    method,
                    f"{self.endpoint}{path}",
                    params=params,
                    json=json,
                    headers=self._headers(access_token),
                )
        except (httpx.HTTPError, httpx.InvalidURL, UnicodeError) as exc:
            logger.warning("Auth service request %s %s failed: %s", method, path, exc)
            raise AuthError("Could not reach the authentication service.") from exc

        if response.status_code >= 400:
            raise AuthError(_error_message(response), response.status_code)
        if not response.content:
            return {}
        try:
            payload = response.json()
        except ValueError as exc:
            raise AuthError("Authentication service returned invalid JSON.") from exc
        return payload if isinstance(payload, dict) else {}

    def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        payload = self._request(
            "POST",
            "/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        return _session_from_payload(payload)

    def sign_up(
        self, email: str, password: str, redirect_to: str | None = None
    ) -> tuple[AuthUser, AuthSession | None]:
        """Register an account.

        Projects with email confirmation enabled answer with a bare user and
        no session; the user has to follow the emailed link first.
        """
        params = {"redirect_to": redirect_to} if redirect_to else None
        payload = self._request(
            "POST",
            "/signup",
            params=params,
            json={"email": email, "password": password},
        )
        if payload.get("access_token"):
            session = _session_from_payload(payload)
            return session.user, session
        return _user_from_payload(payload.get("user") or payload), None

    def oauth_authorize_url(
        self, provider: str, redirect_to: str, code_challenge: str
    ) -> str:
        if provider not in OAUTH_PROVIDERS:
            raise AuthError(f"Unsupported sign-in provider: {provider}.")
        if not self.base_url:
            raise AuthError("Authentication service is not configured.")
        query = urlencode(
            {
                "provider": provider,
                "redirect_to": redirect_to,
                "code_challenge": code_challenge,
                "code_challenge_method": "s256",
            }
        )
        return f"{self.endpoint}/authorize?{query}"

    def exchange_code_for_session(self, auth_code: str, code_verifier: str) -> AuthSession:
        payload = self._request(
            "POST",
            "/token",
            params={"grant_type": "pkce"},
            json={"auth_code": auth_code, "code_verifier": code_verifier},
        )
        return _session_from_payload(payload)

    def send_magic_link(self, email: str, redirect_to: str, code_challenge: str) -> None:
        self._request(
            "POST",
            "/otp",
            params={"redirect_to": redirect_to},
            json={
                "email": email,
                "create_user": True,
                "code_challenge": code_challenge,
                "code_challenge_method": "s256",
            },
        )

    def reset_password_for_email(
        self, email: str, redirect_to: str, code_challenge: str
    ) -> None:
        self._request(
            "POST",
            "/recover",
            params={"redirect_to": redirect_to},
            json={
                "email": email,
                "code_challenge": code_challenge,
                "code_challenge_method": "s256",
            },
        )

    def get_user(self, access_token: str) -> AuthUser:
        return _user_from_payload(
            self._request("GET", "/user", access_token=access_token)
        )

    def refresh_session(self, refresh_token: str) -> AuthSession:
        payload = self._request(
            "POST",
            "/token",
            params={"grant_type": "refresh_token"},
            json={"refresh_token": refresh_token},
        )
        return _session_from_payload(payload)

    def update_password(self, access_token: str, password: str) -> AuthUser:
        payload = self._request(
            "PUT", "/user", json={"password": password}, access_token=access_token
        )
        return _user_from_payload(payload)

    def sign_out(self, access_token: str) -> None:
        self._request("POST", "/logout", access_token=access_token)


def get_auth_client() -> AuthClient:
    return current_app.extensions["auth_client"]
