import json
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from bookmarkhub.services import auth_client as auth_client_module
from bookmarkhub.services.auth_client import AuthClient, AuthError, generate_pkce_pair


@pytest.fixture
def transport(monkeypatch):
    """Route every httpx.Client built by the auth client through a handler."""
    state = {"requests": [], "handler": None}
    real_client = httpx.Client

    def handler(request):
        state["requests"].append(request)
        return state["handler"](request)

    def factory(*args, **kwargs):
        kwargs["transport"] = httpx.MockTransport(handler)
        return real_client(*args, **kwargs)

    monkeypatch.setattr(auth_client_module.httpx, "Client", factory)
    return state


def _session_json(access="a1", refresh="r1"):
    return {
        "access_token": access,
        "refresh_token": refresh,
        "expires_in": 3600,
        "user": {"id": "user-1", "email": "reader@example.com"},
    }


def test_sign_in_posts_password_grant(transport):
    transport["handler"] = lambda request: httpx.Response(200, json=_session_json())
    client = AuthClient("https://auth.test/", api_key="anon")

    session = client.sign_in_with_password("reader@example.com", "pw")

    assert session.access_token == "a1"
    assert session.user.email == "reader@example.com"
    request = transport["requests"][0]
    assert request.url.path == "/auth/v1/token"
    assert request.url.params["grant_type"] == "password"
    assert request.headers["apikey"] == "anon"
    assert json.loads(request.content) == {"email": "reader@example.com", "password": "pw"}


def test_error_payload_becomes_auth_error(transport):
    transport["handler"] = lambda request: httpx.Response(
        400, json={"error": "invalid_grant", "error_description": "Invalid login credentials"}
    )
    client = AuthClient("https://auth.test", api_key="anon")

    with pytest.raises(AuthError) as excinfo:
        client.sign_in_with_password("reader@example.com", "wrong")

    assert excinfo.value.message == "Invalid login credentials"
    assert excinfo.value.status_code == 400


def test_network_failure_becomes_auth_error(transport):
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    transport["handler"] = handler
    client = AuthClient("https://auth.test", api_key="anon")

    with pytest.raises(AuthError) as excinfo:
        client.get_user("token")
    assert excinfo.value.status_code is None


def test_unconfigured_client_refuses_requests():
    with pytest.raises(AuthError):
        AuthClient("").get_user("token")


def test_sign_up_without_session_when_confirmation_required(transport):
    transport["handler"] = lambda request: httpx.Response(
        200, json={"id": "user-2", "email": "new@example.com"}
    )
    client = AuthClient("https://auth.test", api_key="anon")

    user, session = client.sign_up("new@example.com", "secret1", redirect_to="http://app/cb")

    assert user.id == "user-2"
    assert session is None
    assert transport["requests"][0].url.params["redirect_to"] == "http://app/cb"


def test_get_user_sends_bearer_token(transport):
    transport["handler"] = lambda request: httpx.Response(
        200, json={"id": "user-1", "email": "reader@example.com"}
    )
    client = AuthClient("https://auth.test", api_key="anon")

    user = client.get_user("access-123")

    assert user.id == "user-1"
    request = transport["requests"][0]
    assert request.method == "GET"
    assert request.headers["Authorization"] == "Bearer access-123"


def test_sign_out_accepts_empty_response(transport):
    transport["handler"] = lambda request: httpx.Response(204)
    client = AuthClient("https://auth.test", api_key="anon")

    assert client.sign_out("access-123") is None
    assert transport["requests"][0].url.path == "/auth/v1/logout"


def test_oauth_authorize_url_carries_pkce_challenge():
    client = AuthClient("https://auth.test", api_key="anon")
    verifier, challenge = generate_pkce_pair()

    location = client.oauth_authorize_url("github", "http://app/cb", challenge)

    parsed = urlparse(location)
    query = parse_qs(parsed.query)
    assert parsed.path == "/auth/v1/authorize"
    assert query["provider"] == ["github"]
    assert query["code_challenge"] == [challenge]
    assert query["code_challenge_method"] == ["s256"]
    assert verifier != challenge

    with pytest.raises(AuthError):
        client.oauth_authorize_url("myspace", "http://app/cb", challenge)


def test_non_ascii_token_becomes_auth_error(transport):
    transport["handler"] = lambda request: httpx.Response(
        200, json={"id": "user-1", "email": "reader@example.com"}
    )
    client = AuthClient("https://auth.test", api_key="anon")

    with pytest.raises(AuthError):
        client.get_user("tokén")


def test_invalid_service_url_becomes_auth_error():
    with pytest.raises(AuthError):
        AuthClient("https://auth.test:notaport", api_key="anon").get_user("token")


def test_malformed_session_payload_becomes_auth_error(transport):
    transport["handler"] = lambda request: httpx.Response(
        200, json={"access_token": "a1", "refresh_token": "r1", "user": ["user-1"]}
    )
    client = AuthClient("https://auth.test", api_key="anon")

    with pytest.raises(AuthError):
        client.refresh_session("r0")

    transport["handler"] = lambda request: httpx.Response(200, json=[{"id": "user-1"}])
    with pytest.raises(AuthError):
        client.get_user("token")
