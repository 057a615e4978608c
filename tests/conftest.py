import httpx
import pytest

from bookmarkhub import create_app
from bookmarkhub.config import TestConfig
from bookmarkhub.extensions import db
from bookmarkhub.services import auth_client as auth_client_module
from bookmarkhub.services.auth_client import AuthClient, AuthError, AuthSession, AuthUser


class FakeAuthClient:
    """In-memory stand-in for the hosted auth service."""

    def __init__(self):
        self.passwords: dict[str, str] = {}
        self.users: dict[str, AuthUser] = {}
        self.access_tokens: dict[str, str] = {}
        self.refresh_tokens: dict[str, str] = {}
        self.require_confirmation = False
        self.calls: list[tuple] = []
        self._counter = 0

    def add_user(self, email: str, password: str = "secret") -> AuthUser:
        self._counter += 1
        user = AuthUser(id=f"00000000-0000-0000-0000-{self._counter:012d}", email=email)
        self.users[email] = user
        self.passwords[email] = password
        return user

    def issue(self, user: AuthUser) -> AuthSession:
        self._counter += 1
        access = f"access-{self._counter}"
        refresh = f"refresh-{self._counter}"
        self.access_tokens[access] = user.email
        self.refresh_tokens[refresh] = user.email
        return AuthSession(
            access_token=access, refresh_token=refresh, expires_in=3600, user=user
        )

    def expire(self, access_token: str) -> None:
        self.access_tokens.pop(access_token, None)

    def sign_in_with_password(self, email, password):
        self.calls.append(("sign_in_with_password", email))
        if self.passwords.get(email) != password:
            raise AuthError("Invalid login credentials", 400)
        return self.issue(self.users[email])

    def sign_up(self, email, password, redirect_to=None):
        self.calls.append(("sign_up", email, redirect_to))
        if email in self.users:
            raise AuthError("User already registered", 422)
        user = self.add_user(email, password)
        if self.require_confirmation:
            return user, None
        return user, self.issue(user)

    def oauth_authorize_url(self, provider, redirect_to, code_challenge):
        if provider not in ("google", "github"):
            raise AuthError(f"Unsupported sign-in provider: {provider}.")
        return f"https://auth.test/auth/v1/authorize?provider={provider}"

    def exchange_code_for_session(self, auth_code, code_verifier):
        self.calls.append(("exchange_code_for_session", auth_code, code_verifier))
        if auth_code != "good-code":
            raise AuthError("invalid flow state", 404)
        user = next(iter(self.users.values()))
        return self.issue(user)

    def send_magic_link(self, email, redirect_to, code_challenge):
        self.calls.append(("send_magic_link", email, redirect_to))

    def reset_password_for_email(self, email, redirect_to, code_challenge):
        self.calls.append(("reset_password_for_email", email, redirect_to))

    def get_user(self, access_token):
        self.calls.append(("get_user", access_token))
        email = self.access_tokens.get(access_token)
        if email is None:
            raise AuthError("invalid JWT: token is expired", 401)
        return self.users[email]

    def refresh_session(self, refresh_token):
        self.calls.append(("refresh_session", refresh_token))
        email = self.refresh_tokens.pop(refresh_token, None)
        if email is None:
            raise AuthError("Invalid Refresh Token: Refresh Token Not Found", 400)
        return self.issue(self.users[email])

    def update_password(self, access_token, password):
        self.calls.append(("update_password", access_token))
        user = self.get_user(access_token)
        self.passwords[user.email] = password
        return user

    def sign_out(self, access_token):
        self.calls.append(("sign_out", access_token))
        self.access_tokens.pop(access_token, None)


@pytest.fixture
def auth_service():
    return FakeAuthClient()


@pytest.fixture
def app(auth_service):
    app = create_app(TestConfig)
    app.extensions["auth_client"] = auth_service
    with app.app_context():
        db.drop_all()
        db.create_all()
    yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def sign_in(client, auth_service):
    """Register an account with the fake service and put its cookies on ``client``."""

    def _sign_in(email="user@example.com", password="secret"):
        user = auth_service.users.get(email) or auth_service.add_user(email, password)
        auth_session = auth_service.issue(user)
        config = client.application.config
        client.set_cookie(config["ACCESS_COOKIE_NAME"], auth_session.access_token)
        client.set_cookie(config["REFRESH_COOKIE_NAME"], auth_session.refresh_token)
        return user, auth_session

    return _sign_in


@pytest.fixture
def remote_auth_client(app, monkeypatch):
    """Install the real HTTP client, answering every request with a 401."""
    real_client = httpx.Client

    def handler(_request):
        return httpx.Response(401, json={"msg": "invalid JWT"})

    def factory(*args, **kwargs):
        kwargs["transport"] = httpx.MockTransport(handler)
        return real_client(*args, **kwargs)

    monkeypatch.setattr(auth_client_module.httpx, "Client", factory)
    client = AuthClient(app.config["AUTH_URL"], api_key="anon")
    app.extensions["auth_client"] = client
    return client
