import pytest
from sqlalchemy import select

from gateway.models.persistance.auth import Client as ClientRow
from gateway.repositories.client_repo import get_client_by_id, validate_client

pytestmark = pytest.mark.anyio


class TestDynamicRegistration:
    async def test_registers_confidential_client(self, client, db):
        resp = await client.post(
            "/register",
            json={"client_name": "Claude", "redirect_uris": ["https://claude.ai/api/callback"]},
        )
        assert resp.status_code == 201
        body = resp.json()
        assert body["client_id"].startswith("gw_")
        assert body["client_secret"]
        assert body["client_name"] == "Claude"
        assert body["token_endpoint_auth_method"] == "client_secret_post"
        assert body["redirect_uris"] == ["https://claude.ai/api/callback"]
        assert isinstance(body["client_id_issued_at"], int)

        stored = await get_client_by_id(db, body["client_id"])
        assert stored.is_confidential
        assert stored.redirect_uris == ["https://claude.ai/api/callback"]

    async def test_secret_is_hashed_at_rest(self, client, db):
        resp = await client.post("/register", json={"redirect_uris": ["https://a.example/cb"]})
        body = resp.json()

        row = (await db.execute(
            select(ClientRow).where(ClientRow.client_id == body["client_id"])
        )).scalar_one()
        assert row.client_secret != body["client_secret"]
        assert body["client_secret"] not in row.client_secret
        assert await validate_client(db, body["client_id"], body["client_secret"]) is not None

    async def test_no_redirect_uris_makes_wildcard_client(self, client, db):
        resp = await client.post("/register", json={})
        assert resp.status_code == 201
        body = resp.json()
        assert "redirect_uris" not in body
        assert body["client_name"] == "MCP Client"

        stored = await get_client_by_id(db, body["client_id"])
        assert stored.is_wildcard

    @pytest.mark.parametrize(
        "uri",
        [
            "http://evil.example/callback",
            "https://app.example/cb#frag",
            "ftp://files.example/",
            "https:///no-host",
            "not a uri",
        ],
    )
    async def test_rejects_bad_redirect_uris(self, client, uri):
        resp = await client.post("/register", json={"redirect_uris": [uri]})
        assert resp.status_code == 400
        assert resp.json()["error"] == "invalid_redirect_uri"

    @pytest.mark.parametrize(
        "uri",
        [
            "http://localhost:3000/callback",
            "http://127.0.0.1/cb",
            "http://[::1]:8080/cb",
        ],
    )
    async def test_accepts_loopback_http(self, client, uri):
        resp = await client.post("/register", json={"redirect_uris": [uri]})
        assert resp.status_code == 201

    async def test_malformed_body_is_invalid_request(self, client):
        resp = await client.post("/register", json={"redirect_uris": "https://a.example/cb"})
        assert resp.status_code == 400
        assert resp.json()["error"] == "invalid_request"
