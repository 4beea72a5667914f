import pytest

from gateway.core.config import settings

pytestmark = pytest.mark.anyio


@pytest.mark.parametrize("path", ["/.well-known/oauth-authorization-server", "/oauth/metadata"])
async def test_authorization_server_metadata(client, path):
    resp = await client.get(path)
    assert resp.status_code == 200
    assert resp.headers["cache-control"] == "public, max-age=3600"

    body = resp.json()
    assert body["issuer"] == settings.BASE_URL
    assert body["authorization_endpoint"] == f"{settings.BASE_URL}/authorize"
    assert body["token_endpoint"] == f"{settings.BASE_URL}/token"
    assert body["registration_endpoint"] == f"{settings.BASE_URL}/register"
    assert body["response_types_supported"] == ["code"]
    assert body["grant_types_supported"] == ["authorization_code", "refresh_token"]
    assert body["code_challenge_methods_supported"] == ["S256"]
    assert body["token_endpoint_auth_methods_supported"] == [
        "client_secret_post",
        "client_secret_basic",
        "none",
    ]
    assert body["scopes_supported"] == ["default"]


@pytest.mark.parametrize("path", ["/.well-known/oauth-protected-resource", "/oauth/resource"])
async def test_protected_resource_metadata(client, path):
    resp = await client.get(path)
    assert resp.status_code == 200
    body = resp.json()
    assert body["resource"] == f"{settings.BASE_URL}/mcp"
    assert body["authorization_servers"] == [settings.BASE_URL]
    assert body["bearer_methods_supported"] == ["header"]


async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"
