from urllib.parse import parse_qs, urlsplit

import pytest

from gateway.common.token import JWTService
from gateway.core.config import settings
from gateway.repositories.auth_code_repo import get_auth_code
from gateway.services.abilities.settings_services import allow_user
from oauth_helpers import (
    REDIRECT_URI,
    authorize_params,
    extract_handle,
    make_pkce_pair,
    query_of,
    register,
)

pytestmark = pytest.mark.anyio


@pytest.fixture
async def registered(client):
    return await register(client, [REDIRECT_URI])


@pytest.fixture
async def allowed_admin(db, admin, login_as):
    await allow_user(db, admin.id)
    login_as(admin)
    return admin


class TestAuthorizationRequest:
    async def test_anonymous_user_is_sent_to_login(self, client, registered):
        _, challenge = make_pkce_pair()
        resp = await client.get("/authorize", params=authorize_params(registered["client_id"], challenge))

        assert resp.status_code == 302
        location = urlsplit(resp.headers["location"])
        assert location.path == settings.HOST_LOGIN_URL
        redirect_to = parse_qs(location.query)["redirect_to"][0]
        assert "/authorize?" in redirect_to
        assert registered["client_id"] in redirect_to

    async def test_consent_page_shows_client_and_user(self, client, registered, allowed_admin):
        _, challenge = make_pkce_pair()
        resp = await client.get("/authorize", params=authorize_params(registered["client_id"], challenge))

        assert resp.status_code == 200
        assert "text/html" in resp.headers["content-type"]
        assert resp.headers["cache-control"] == "no-store"
        assert "Test Assistant" in resp.text
        assert "Ada Admin" in resp.text
        assert extract_handle(resp.text)

    async def test_client_name_is_escaped(self, client, allowed_admin):
        registered = await register(client, [REDIRECT_URI], name="<script>alert(1)</script>")
        _, challenge = make_pkce_pair()
        resp = await client.get("/authorize", params=authorize_params(registered["client_id"], challenge))

        assert "<script>alert(1)</script>" not in resp.text
        assert "&lt;script&gt;" in resp.text

    async def test_user_not_on_allow_list_gets_403_page(self, client, registered, subscriber, login_as):
        login_as(subscriber)
        _, challenge = make_pkce_pair()
        resp = await client.get("/authorize", params=authorize_params(registered["client_id"], challenge))

        assert resp.status_code == 403
        assert "Access Not Permitted" in resp.text
        assert 'name="handle"' not in resp.text

    async def test_unknown_client_renders_error_page(self, client, allowed_admin):
        _, challenge = make_pkce_pair()
        resp = await client.get("/authorize", params=authorize_params("gw_nope", challenge))

        assert resp.status_code == 400
        assert "Unknown Application" in resp.text
        assert "location" not in resp.headers

    @pytest.mark.parametrize(
        "redirect_uri",
        [
            "https://client.example/callback/",
            "http://client.example/callback",
            "https://CLIENT.example/callback",
            "https://client.example/callback?extra=1",
        ],
    )
    async def test_unregistered_redirect_uri_is_never_redirected_to(
        self, client, registered, allowed_admin, redirect_uri
    ):
        _, challenge = make_pkce_pair()
        params = authorize_params(registered["client_id"], challenge, redirect_uri=redirect_uri)
        resp = await client.get("/authorize", params=params)

        assert resp.status_code == 400
        assert "Invalid Redirect" in resp.text
        assert "location" not in resp.headers

    async def test_wildcard_client_accepts_any_redirect(self, client, allowed_admin):
        registered = await register(client)
        _, challenge = make_pkce_pair()
        params = authorize_params(registered["client_id"], challenge, redirect_uri="https://anything.example/cb")
        resp = await client.get("/authorize", params=params)

        assert resp.status_code == 200

    async def test_missing_code_challenge(self, client, registered, allowed_admin):
        params = authorize_params(registered["client_id"], "")
        resp = await client.get("/authorize", params=params)
        assert resp.status_code == 400
        assert "code_challenge" in resp.text

    async def test_plain_challenge_method_rejected(self, client, registered, allowed_admin):
        params = authorize_params(registered["client_id"], "abc")
        params["code_challenge_method"] = "plain"
        resp = await client.get("/authorize", params=params)
        assert resp.status_code == 400

    async def test_unknown_scope_rejected(self, client, registered, allowed_admin):
        _, challenge = make_pkce_pair()
        params = authorize_params(registered["client_id"], challenge)
        params["scope"] = "admin"
        resp = await client.get("/authorize", params=params)
        assert resp.status_code == 400
        assert "Invalid Scope" in resp.text

    async def test_wrong_response_type(self, client, registered, allowed_admin):
        _, challenge = make_pkce_pair()
        params = authorize_params(registered["client_id"], challenge)
        params["response_type"] = "token"
        resp = await client.get("/authorize", params=params)
        assert resp.status_code == 400


class TestConsentDecision:
    async def _handle(self, client, registered, state="state-123"):
        _, challenge = make_pkce_pair()
        resp = await client.get(
            "/authorize",
            params=authorize_params(registered["client_id"], challenge, state=state),
        )
        return extract_handle(resp.text), challenge

    async def test_approval_redirects_with_code_and_state(self, client, db, registered, allowed_admin):
        handle, challenge = await self._handle(client, registered)
        resp = await client.post("/authorize", data={"handle": handle, "approve": "yes"})

        assert resp.status_code == 302
        assert resp.headers["location"].startswith(REDIRECT_URI + "?")
        params = query_of(resp.headers["location"])
        assert params["state"] == "state-123"

        code = await get_auth_code(db, params["code"])
        assert code.client_id == registered["client_id"]
        assert code.user_id == allowed_admin.id
        assert code.redirect_uri == REDIRECT_URI
        assert code.code_challenge == challenge
        assert not code.revoked

    async def test_denial_redirects_with_access_denied(self, client, registered, allowed_admin):
        handle, _ = await self._handle(client, registered)
        resp = await client.post("/authorize", data={"handle": handle, "approve": "no"})

        assert resp.status_code == 302
        params = query_of(resp.headers["location"])
        assert params["error"] == "access_denied"
        assert params["error_description"]
        assert params["state"] == "state-123"
        assert "code" not in params

    async def test_expired_handle_renders_error(self, client, registered, allowed_admin):
        _, challenge = make_pkce_pair()
        expired = JWTService().encode(
            {
                "sub": str(allowed_admin.id),
                "client_id": registered["client_id"],
                "redirect_uri": REDIRECT_URI,
                "state": "",
                "scope": "default",
                "code_challenge": challenge,
                "code_challenge_method": "S256",
            },
            token_type=JWTService.CONSENT,
            ttl_seconds=-10,
        )
        resp = await client.post("/authorize", data={"handle": expired, "approve": "yes"})

        assert resp.status_code == 400
        assert "expired" in resp.text
        assert "location" not in resp.headers

    async def test_forged_handle_renders_error(self, client, registered, allowed_admin):
        forged = JWTService(secret="another-secret-entirely-for-forging").encode(
            {"sub": str(allowed_admin.id), "client_id": registered["client_id"]},
            token_type=JWTService.CONSENT,
            ttl_seconds=600,
        )
        resp = await client.post("/authorize", data={"handle": forged, "approve": "yes"})
        assert resp.status_code == 400
        assert "location" not in resp.headers

    async def test_handle_bound_to_the_approving_user(
        self, client, db, registered, allowed_admin, host, login_as
    ):
        handle, _ = await self._handle(client, registered)

        editor = host.get_user(2)
        await allow_user(db, editor.id)
        login_as(editor)

        resp = await client.post("/authorize", data={"handle": handle, "approve": "yes"})
        assert resp.status_code == 403
        assert "location" not in resp.headers

    async def test_user_removed_from_allow_list_before_deciding(self, client, db, registered, allowed_admin):
        from gateway.services.abilities.settings_services import disallow_user

        handle, _ = await self._handle(client, registered)
        await disallow_user(db, allowed_admin.id)

        resp = await client.post("/authorize", data={"handle": handle, "approve": "yes"})
        assert resp.status_code == 403
        assert "Access Not Permitted" in resp.text

    async def test_redirect_keeps_existing_query(self, client, allowed_admin):
        redirect_uri = "https://client.example/cb?tenant=42"
        registered = await register(client, [redirect_uri])
        _, challenge = make_pkce_pair()
        resp = await client.get(
            "/authorize",
            params=authorize_params(registered["client_id"], challenge, redirect_uri=redirect_uri),
        )
        resp = await client.post("/authorize", data={"handle": extract_handle(resp.text), "approve": "yes"})

        params = query_of(resp.headers["location"])
        assert params["tenant"] == "42"
        assert params["code"]
