"""
用户资料生命周期测试
Profile Lifecycle Tests
"""

from unittest.mock import AsyncMock

import pytest

from estatehub.core.error_handler import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    UnauthorizedError,
    UpstreamUnavailableError,
    ValidationError,
)
from estatehub.core.passwords import verify_password


class TestUserRepository:
    """用户仓储"""

    @pytest.mark.asyncio
    async def test_create_hashes_password(self, hub, make_user):
        user = await make_user()

        assert user.password_hash != "s3cret-pass"
        assert verify_password("s3cret-pass", user.password_hash)
        assert "password_hash" not in user.to_dict()
        assert "s3cret" not in repr(user)

    @pytest.mark.asyncio
    async def test_email_is_lowercased_and_unique(self, hub, make_user):
        user = await make_user(email="Alice@Example.COM")
        assert user.email == "alice@example.com"

        with pytest.raises(ValidationError) as exc:
            await make_user(username="alice2", email="ALICE@example.com")
        assert (exc.value.field, exc.value.rule) == ("email", "unique")

    @pytest.mark.asyncio
    async def test_username_is_unique(self, hub, make_user):
        await make_user()

        with pytest.raises(ValidationError) as exc:
            await make_user(email="other@example.com")
        assert (exc.value.field, exc.value.rule) == ("username", "unique")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "kwargs,field,rule",
        [
            ({"username": "  "}, "username", "not_empty"),
            ({"email": "not-an-email"}, "email", "format"),
            ({"password": "123"}, "password", "min_length"),
        ],
    )
    async def test_create_field_rules(self, hub, make_user, kwargs, field, rule):
        with pytest.raises(ValidationError) as exc:
            await make_user(**kwargs)
        assert (exc.value.field, exc.value.rule) == (field, rule)

    @pytest.mark.asyncio
    async def test_get_by_email_and_credentials(self, hub, make_user):
        user = await make_user()

        assert (await hub.user_repository.get_by_email("ALICE@example.com")).id == user.id
        assert await hub.user_repository.verify_credentials("alice@example.com", "s3cret-pass") is True
        assert await hub.user_repository.verify_credentials("alice@example.com", "wrong-pass") is False
        assert await hub.user_repository.verify_credentials("nobody@example.com", "s3cret-pass") is False


class TestUpdateUser:
    """账户更新"""

    @pytest.mark.asyncio
    async def test_partial_update_preserves_omitted_fields(self, hub, make_user, make_payloads):
        user = await make_user()
        user = await hub.profiles.replace_avatar(user.id, user.id, make_payloads(1, prefix="avatar")[0])

        updated = await hub.profiles.update_user(user.id, user.id, {"username": "alice_w"})

        assert updated.username == "alice_w"
        assert updated.email == user.email
        assert updated.avatar == user.avatar
        assert updated.password_hash == user.password_hash

    @pytest.mark.asyncio
    async def test_password_rehashed_only_when_supplied(self, hub, make_user):
        user = await make_user()

        same = await hub.profiles.update_user(user.id, user.id, {"email": "new@example.com", "password": ""})
        assert same.password_hash == user.password_hash

        changed = await hub.profiles.update_user(user.id, user.id, {"password": "another-pass"})
        assert changed.password_hash != user.password_hash
        assert verify_password("another-pass", changed.password_hash)

    @pytest.mark.asyncio
    async def test_outward_representation_never_has_hash(self, hub, make_user):
        user = await make_user()
        fetched = await hub.profiles.get_user(user.id)
        updated = await hub.profiles.update_user(user.id, user.id, {"password": "another-pass"})

        for representation in (user.to_dict(), fetched.to_dict(), updated.to_dict()):
            assert "password_hash" not in representation
            assert "password" not in representation

    @pytest.mark.asyncio
    async def test_not_found_before_forbidden(self, hub, make_user):
        user = await make_user()

        with pytest.raises(NotFoundError):
            await hub.profiles.update_user(user.id, "never-existed", {"username": "x"})
        with pytest.raises(NotFoundError):
            await hub.profiles.delete_user(user.id, "never-existed")

    @pytest.mark.asyncio
    async def test_cannot_modify_another_account(self, hub, make_user):
        alice = await make_user()
        bob = await make_user(username="bob", email="bob@example.com")

        with pytest.raises(ForbiddenError) as exc:
            await hub.profiles.update_user(bob.id, alice.id, {"username": "hacked"})
        assert exc.value.message == "You can only modify your own account!"
        with pytest.raises(ForbiddenError):
            await hub.profiles.delete_user(bob.id, alice.id)

        assert (await hub.profiles.get_user(alice.id)).username == "alice"

    @pytest.mark.asyncio
    async def test_requires_authentication(self, hub, make_user):
        user = await make_user()

        with pytest.raises(UnauthorizedError):
            await hub.profiles.update_user(None, user.id, {"username": "x"})

    @pytest.mark.asyncio
    async def test_avatar_cannot_be_set_directly(self, hub, make_user):
        user = await make_user()

        with pytest.raises(ValidationError) as exc:
            await hub.profiles.update_user(user.id, user.id, {"avatar": "https://elsewhere.test/me.png"})
        assert exc.value.rule == "attach_required"

    @pytest.mark.asyncio
    async def test_taken_username_rejected_on_update(self, hub, make_user):
        alice = await make_user()
        await make_user(username="bob", email="bob@example.com")

        with pytest.raises(ValidationError) as exc:
            await hub.profiles.update_user(alice.id, alice.id, {"username": "bob"})
        assert exc.value.rule == "unique"

    @pytest.mark.asyncio
    async def test_stale_version_rejected(self, hub, make_user):
        user = await make_user()
        await hub.profiles.update_user(user.id, user.id, {"username": "first"}, expected_version=1)

        with pytest.raises(ConflictError):
            await hub.profiles.update_user(user.id, user.id, {"username": "second"}, expected_version=1)


class TestAvatar:
    """头像替换"""

    @pytest.mark.asyncio
    async def test_replace_detaches_previous_after_persist(self, hub, make_user, make_payloads, fake_asset_server):
        user = await make_user()
        first = await hub.profiles.replace_avatar(user.id, user.id, make_payloads(1, prefix="first")[0])
        second = await hub.profiles.replace_avatar(user.id, user.id, make_payloads(1, prefix="second")[0])
        await hub.coordinator.wait_idle()

        assert second.avatar != first.avatar
        assert second.to_dict()["avatar"] == second.avatar.url
        assert fake_asset_server.deleted == [first.avatar.deletion_key]
        assert (await hub.profiles.get_user(user.id)).avatar == second.avatar

    @pytest.mark.asyncio
    async def test_failed_upload_keeps_previous_avatar(self, hub, make_user, make_payloads, fake_asset_server):
        user = await make_user()
        first = await hub.profiles.replace_avatar(user.id, user.id, make_payloads(1, prefix="first")[0])
        payload = make_payloads(1, prefix="broken")[0]
        fake_asset_server.unavailable_files.add(payload.filename)

        with pytest.raises(UpstreamUnavailableError):
            await hub.profiles.replace_avatar(user.id, user.id, payload)
        await hub.coordinator.wait_idle()

        assert (await hub.profiles.get_user(user.id)).avatar == first.avatar
        assert fake_asset_server.deleted == []

    @pytest.mark.asyncio
    async def test_failed_persist_detaches_new_avatar(self, hub, make_user, make_payloads, fake_asset_server):
        user = await make_user()
        first = await hub.profiles.replace_avatar(user.id, user.id, make_payloads(1, prefix="first")[0])
        hub.user_repository.update = AsyncMock(side_effect=NotFoundError("user", user.id))

        with pytest.raises(NotFoundError):
            await hub.profiles.replace_avatar(user.id, user.id, make_payloads(1, prefix="second")[0])
        await hub.coordinator.wait_idle()

        assert first.avatar.deletion_key in fake_asset_server.assets
        assert len(fake_asset_server.deleted) == 1
        assert fake_asset_server.deleted[0] != first.avatar.deletion_key

    @pytest.mark.asyncio
    async def test_stranger_cannot_replace_avatar(self, hub, make_user, make_payloads, fake_asset_server):
        alice = await make_user()

        with pytest.raises(ForbiddenError):
            await hub.profiles.replace_avatar("someone-else", alice.id, make_payloads(1)[0])
        assert fake_asset_server.upload_requests == 0

    @pytest.mark.asyncio
    async def test_remove_avatar(self, hub, make_user, make_payloads, fake_asset_server):
        user = await make_user()
        with_avatar = await hub.profiles.replace_avatar(user.id, user.id, make_payloads(1)[0])

        updated = await hub.profiles.remove_avatar(user.id, user.id)
        await hub.coordinator.wait_idle()

        assert updated.avatar is None
        assert fake_asset_server.deleted == [with_avatar.avatar.deletion_key]
        with pytest.raises(NotFoundError):
            await hub.profiles.remove_avatar(user.id, user.id)


class TestDeleteUser:
    """账户删除"""

    @pytest.mark.asyncio
    async def test_delete_releases_avatar(self, hub, make_user, make_payloads, fake_asset_server):
        user = await make_user()
        user = await hub.profiles.replace_avatar(user.id, user.id, make_payloads(1)[0])

        await hub.profiles.delete_user(user.id, user.id)
        await hub.coordinator.wait_idle()

        with pytest.raises(NotFoundError):
            await hub.profiles.get_user(user.id)
        assert fake_asset_server.deleted == [user.avatar.deletion_key]

    @pytest.mark.asyncio
    async def test_delete_completes_when_asset_store_fails(self, hub, make_user, make_payloads, fake_asset_server):
        user = await make_user()
        user = await hub.profiles.replace_avatar(user.id, user.id, make_payloads(1)[0])
        fake_asset_server.fail_deletes = True

        await hub.profiles.delete_user(user.id, user.id)
        await hub.coordinator.wait_idle()

        with pytest.raises(NotFoundError):
            await hub.profiles.get_user(user.id)
        orphans = await hub.orphans.entries()
        assert [o["source"] for o in orphans] == [f"user:{user.id}"]

    @pytest.mark.asyncio
    async def test_delete_does_not_cascade_to_listings(self, hub, make_user, make_listing):
        user = await make_user()
        listing = await make_listing(user.id)

        await hub.profiles.delete_user(user.id, user.id)

        assert (await hub.listings.get_listing(listing.id)).owner_id == user.id
