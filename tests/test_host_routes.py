import pytest

from gateway.core.config import settings
from gateway.services.abilities.settings_services import allow_user

pytestmark = pytest.mark.anyio


class TestLogin:
    async def test_form_renders(self, client):
        resp = await client.get("/login", params={"redirect_to": "/authorize?x=1"})
        assert resp.status_code == 200
        assert "Test Site" in resp.text
        assert 'value="/authorize?x=1"' in resp.text

    async def test_bad_password(self, client):
        resp = await client.post("/login", data={"login": "admin", "password": "wrong"})
        assert resp.status_code == 401
        assert "incorrect password" in resp.text
        assert settings.SESSION_COOKIE_NAME not in resp.cookies

    async def test_login_sets_session_and_redirects(self, client, db, admin):
        await allow_user(db, admin.id)
        resp = await client.post(
            "/login",
            data={"login": "admin", "password": "admin-pass", "redirect_to": "/admin/allowed-users"},
        )
        assert resp.status_code == 303
        assert resp.headers["location"] == "/admin/allowed-users"
        assert "httponly" in resp.headers["set-cookie"].lower()

        resp = await client.get("/admin/allowed-users")
        assert resp.status_code == 200

    @pytest.mark.parametrize(
        "target",
        [
            "https://evil.example/",
            "https:evil.example/x",
            "javascript:alert(1)",
            "//evil.example/x",
            "/\\evil.example/x",
            "authorize",
        ],
    )
    async def test_foreign_redirect_is_dropped(self, client, target):
        resp = await client.post(
            "/login",
            data={"login": "author", "password": "author-pass", "redirect_to": target},
        )
        assert resp.status_code == 303
        assert resp.headers["location"] == "/"

    async def test_absolute_redirect_to_this_site_is_kept(self, client):
        target = f"{settings.BASE_URL}/authorize?client_id=gw_x"
        resp = await client.post(
            "/login",
            data={"login": "author", "password": "author-pass", "redirect_to": target},
        )
        assert resp.status_code == 303
        assert resp.headers["location"] == target

    async def test_logout_clears_session(self, client, admin, login_as):
        login_as(admin)
        assert (await client.get("/admin/allowed-users")).status_code == 200

        resp = await client.post("/logout")
        assert resp.status_code == 303
        assert (await client.get("/admin/allowed-users")).status_code == 401

    async def test_tampered_cookie_is_ignored(self, client):
        client.cookies.set(settings.SESSION_COOKIE_NAME, "not-a-session")
        resp = await client.get("/admin/allowed-users")
        assert resp.status_code == 401
