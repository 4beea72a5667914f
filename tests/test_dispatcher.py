import asyncio
from datetime import timedelta

import pytest
from pydantic import BaseModel

from gateway.abilities.catalog import build_registry
from gateway.common.clock import utc_now
from gateway.common.exceptions import AbilityException
from gateway.models.entities import AccessToken, Client, Scope
from gateway.repositories.option_repo import DISABLED_ABILITIES, get_option
from gateway.services.abilities import annotations
from gateway.services.abilities.dispatcher import AbilityDispatcher
from gateway.services.abilities.registry import READ, WRITE, Ability, AbilityRegistry
from gateway.services.abilities.settings_services import (
    ability_states,
    get_disabled_abilities,
    set_enabled,
    set_group_enabled,
)
from gateway.services.auth.token_validator import TokenContext

pytestmark = pytest.mark.anyio


def caller_for(owner) -> TokenContext:
    client = Client(identifier="gw_test", name="Test")
    token = AccessToken(
        identifier="tok",
        client_id=client.identifier,
        user_id=owner.id,
        scopes=[Scope()],
        expires_at=utc_now() + timedelta(hours=1),
    )
    return TokenContext(owner=owner, client=client, token=token)


@pytest.fixture
def registry():
    return build_registry()


@pytest.fixture
def dispatcher(registry, db, host):
    return AbilityDispatcher(registry, db, host)


async def expect_error(code, coro):
    with pytest.raises(AbilityException) as exc:
        await coro
    assert exc.value.error == code
    return exc.value


class TestRegistry:
    def test_catalog_is_frozen(self, registry):
        assert registry.frozen
        with pytest.raises(RuntimeError):
            registry.register(registry.get("core/site-info"))

    def test_duplicate_names_rejected(self, registry):
        fresh = AbilityRegistry()
        ability = registry.get("core/site-info")
        fresh.register(ability)
        with pytest.raises(ValueError):
            fresh.register(ability)

    def test_names_must_be_namespaced(self):
        class Empty(BaseModel):
            pass

        async def handler(ctx, args):
            return {}

        with pytest.raises(ValueError):
            Ability(
                name="flat",
                label="Flat",
                description="",
                input_model=Empty,
                output_model=Empty,
                permission=lambda ctx, args: True,
                handler=handler,
            )

    def test_groups(self, registry):
        groups = registry.by_group()
        assert [a.name for a in groups["posts"][READ]] == ["core/posts-find", "core/posts-view"]
        assert len(groups["posts"][WRITE]) == 3
        assert WRITE not in groups["site"]


class TestDefaultPermissions:
    async def test_write_abilities_disabled_on_first_use(self, dispatcher, db, host, admin):
        post = host.add_post(admin.id, "Hello")

        await expect_error(
            "disabled",
            dispatcher.invoke("core/posts-delete", {"id": post["id"]}, caller_for(admin)),
        )
        result = await dispatcher.invoke("core/posts-find", {}, caller_for(admin))
        assert result["total"] == 1

        stored = await get_option(db, DISABLED_ABILITIES)
        assert set(stored) == {"core/posts-create", "core/posts-update", "core/posts-delete"}

    async def test_concurrent_first_reads_agree(self, session_factory, registry):
        async def first_read():
            async with session_factory() as session:
                return await get_disabled_abilities(session, registry)

        results = await asyncio.gather(*(first_read() for _ in range(4)))

        expected = {"core/posts-create", "core/posts-update", "core/posts-delete"}
        assert all(result == expected for result in results)

    async def test_listing_shows_enabled_only(self, dispatcher):
        names = [a["name"] for a in await dispatcher.list_enabled()]
        assert names == ["core/posts-find", "core/posts-view", "core/site-info"]

        listed = (await dispatcher.list_enabled())[0]
        assert set(listed) == {"name", "label", "description", "input_schema", "output_schema", "annotations"}
        assert listed["input_schema"]["type"] == "object"
        assert "per_page" in listed["input_schema"]["properties"]

    async def test_describe_hides_disabled(self, dispatcher):
        info = await dispatcher.describe("core/site-info")
        assert info["annotations"] == annotations.read()
        await expect_error("not_found", dispatcher.describe("core/posts-delete"))
        await expect_error("not_found", dispatcher.describe("core/nothing"))


class TestInvoke:
    async def test_unknown_ability(self, dispatcher, admin):
        exc = await expect_error("not_found", dispatcher.invoke("core/nope", {}, caller_for(admin)))
        assert exc.status_code == 404

    async def test_disabled_checked_before_permission(self, dispatcher, subscriber):
        # a subscriber would be forbidden, but the ability is off for everyone
        exc = await expect_error(
            "disabled",
            dispatcher.invoke("core/posts-create", {"title": "x"}, caller_for(subscriber)),
        )
        assert exc.status_code == 403

    async def test_invalid_arguments_name_the_field(self, dispatcher, admin):
        exc = await expect_error(
            "invalid_arguments",
            dispatcher.invoke("core/posts-view", {"id": "abc"}, caller_for(admin)),
        )
        assert exc.status_code == 400
        assert "'id'" in exc.message

        exc = await expect_error(
            "invalid_arguments",
            dispatcher.invoke("core/posts-view", {}, caller_for(admin)),
        )
        assert "missing field 'id'" in exc.message

    async def test_authority_ceiling(self, dispatcher, db, registry, host, author, admin):
        await set_enabled(db, registry, "core/posts-update", True)
        theirs = host.add_post(admin.id, "Admin's post")

        exc = await expect_error(
            "forbidden",
            dispatcher.invoke("core/posts-update", {"id": theirs["id"], "title": "Hijacked"}, caller_for(author)),
        )
        assert exc.status_code == 403
        assert host.get_post(theirs["id"])["title"] == "Admin's post"

    async def test_owner_can_update_own_post(self, dispatcher, db, registry, host, author):
        await set_enabled(db, registry, "core/posts-update", True)
        mine = host.add_post(author.id, "Draft title", status="draft")

        result = await dispatcher.invoke(
            "core/posts-update", {"id": mine["id"], "title": "Final title"}, caller_for(author)
        )
        assert result["title"] == "Final title"
        assert result["status"] == "draft"

    async def test_subscriber_cannot_read_drafts(self, dispatcher, host, admin, subscriber):
        draft = host.add_post(admin.id, "Unpublished", status="draft")
        await expect_error(
            "forbidden",
            dispatcher.invoke("core/posts-view", {"id": draft["id"]}, caller_for(subscriber)),
        )

    async def test_handler_error_code_surfaces(self, dispatcher, admin):
        exc = await expect_error(
            "post_not_found",
            dispatcher.invoke("core/posts-view", {"id": 999}, caller_for(admin)),
        )
        assert exc.status_code == 404

    async def test_create_then_view(self, dispatcher, db, registry, admin):
        await set_enabled(db, registry, "core/posts-create", True)
        created = await dispatcher.invoke(
            "core/posts-create", {"title": "New", "status": "publish"}, caller_for(admin)
        )
        viewed = await dispatcher.invoke("core/posts-view", {"id": created["id"]}, caller_for(admin))
        assert viewed["post"]["title"] == "New"
        assert viewed["post"]["author"] == admin.id


class _Nothing(BaseModel):
    pass


class _Count(BaseModel):
    count: int


def _custom_registry(handler):
    return AbilityRegistry([
        Ability(
            name="test/custom",
            label="Custom",
            description="",
            input_model=_Nothing,
            output_model=_Count,
            permission=lambda ctx, args: True,
            handler=handler,
            classification=READ,
            group="test",
        )
    ]).freeze()


class TestHandlerFailures:
    async def test_unexpected_exception_does_not_leak(self, db, host, admin, caplog):
        async def explode(ctx, args):
            raise RuntimeError("database password is hunter2")

        dispatcher = AbilityDispatcher(_custom_registry(explode), db, host)
        exc = await expect_error("execution_failed", dispatcher.invoke("test/custom", {}, caller_for(admin)))

        assert exc.status_code == 500
        assert "hunter2" not in exc.message
        assert "hunter2" in caplog.text

    async def test_output_validated(self, db, host, admin):
        async def wrong_shape(ctx, args):
            return {"count": "many"}

        dispatcher = AbilityDispatcher(_custom_registry(wrong_shape), db, host)
        exc = await expect_error("invalid_output", dispatcher.invoke("test/custom", {}, caller_for(admin)))
        assert exc.status_code == 500


class TestAdminToggles:
    async def test_set_enabled_unknown_name(self, db, registry):
        await expect_error("not_found", set_enabled(db, registry, "core/ghost", True))

    async def test_group_toggle(self, db, registry, dispatcher):
        names = await set_group_enabled(db, registry, "posts", WRITE, True)
        assert set(names) == {"core/posts-create", "core/posts-update", "core/posts-delete"}

        states = {s["name"]: s["enabled"] for s in await ability_states(db, registry)}
        assert all(states.values())

        await set_group_enabled(db, registry, "posts", READ, False)
        listed = [a["name"] for a in await AbilityDispatcher(registry, db, dispatcher.host).list_enabled()]
        assert "core/posts-find" not in listed

    async def test_stale_overrides_are_ignored(self, db, registry, dispatcher, admin):
        from gateway.repositories.option_repo import update_option

        await update_option(db, DISABLED_ABILITIES, ["core/removed-long-ago"])
        names = [a["name"] for a in await dispatcher.list_enabled()]
        assert len(names) == len(registry)
        await expect_error("not_found", dispatcher.invoke("core/removed-long-ago", {}, caller_for(admin)))
