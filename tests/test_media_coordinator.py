"""
图片资源协调器测试
Media Asset Coordinator Tests
"""

from unittest.mock import AsyncMock

import pytest

from estatehub.core.error_handler import (
    CapacityExceededError,
    PartialFailureError,
    UpstreamUnavailableError,
    ValidationError,
)
from estatehub.modules.assets.models import AssetHandle, UploadPayload
from estatehub.modules.media.coordinator import MediaAssetCoordinator

from conftest import make_image_bytes


@pytest.fixture
def coordinator(hub):
    return hub.coordinator


class TestValidation:
    """上传前校验"""

    def test_empty_batch(self, coordinator):
        with pytest.raises(ValidationError) as exc:
            coordinator.validate_payloads([])
        assert exc.value.rule == "required"

    def test_unsupported_extension(self, coordinator):
        with pytest.raises(ValidationError) as exc:
            coordinator.validate_payloads([UploadPayload("scan.gif", make_image_bytes("GIF"), "image/gif")])
        assert exc.value.field == "images[0]"
        assert exc.value.rule == "format"

    def test_non_image_content_type(self, coordinator):
        with pytest.raises(ValidationError) as exc:
            coordinator.validate_payloads([UploadPayload("a.png", make_image_bytes(), "text/plain")])
        assert exc.value.rule == "content_type"

    def test_empty_file(self, coordinator):
        with pytest.raises(ValidationError) as exc:
            coordinator.validate_payloads([UploadPayload("a.png", b"", "image/png")])
        assert exc.value.rule == "not_empty"

    def test_oversized_file(self, coordinator):
        content = b"\x00" * (coordinator.max_image_size + 1)
        with pytest.raises(ValidationError) as exc:
            coordinator.validate_payloads([UploadPayload("a.png", content, "image/png")])
        assert exc.value.rule == "max_size"

    def test_undecodable_file(self, coordinator):
        with pytest.raises(ValidationError) as exc:
            coordinator.validate_payloads(
                [UploadPayload("a.png", make_image_bytes(), "image/png"), UploadPayload("b.jpg", b"not an image")]
            )
        assert exc.value.field == "images[1]"
        assert exc.value.rule == "decodable"

    def test_generic_content_type_is_accepted(self, coordinator):
        coordinator.validate_payloads([UploadPayload("a.jpg", make_image_bytes("JPEG"))])


class TestCapacity:
    """图集容量"""

    def test_within_capacity(self, coordinator):
        coordinator.check_capacity(5, 2)

    def test_exceeding_capacity_names_counts(self, coordinator):
        with pytest.raises(CapacityExceededError) as exc:
            coordinator.check_capacity(5, 3)
        assert exc.value.requested == 3
        assert exc.value.remaining == 2
        assert exc.value.limit == 7

    @pytest.mark.asyncio
    async def test_attach_over_capacity_uploads_nothing(self, coordinator, fake_asset_server, make_payloads):
        with pytest.raises(CapacityExceededError):
            await coordinator.attach(make_payloads(3), current_count=5)
        assert fake_asset_server.upload_requests == 0


class TestAttach:
    """并发上传"""

    @pytest.mark.asyncio
    async def test_attach_preserves_order(self, coordinator, make_payloads):
        handles = await coordinator.attach(make_payloads(3))
        assert len(handles) == 3
        assert len({h.deletion_key for h in handles}) == 3

    @pytest.mark.asyncio
    async def test_partial_failure_keeps_siblings(self, coordinator, fake_asset_server, make_payloads):
        payloads = make_payloads(3)
        fake_asset_server.rejected_files.add(payloads[1].filename)

        with pytest.raises(PartialFailureError) as exc:
            await coordinator.attach(payloads)

        error = exc.value
        assert len(error.uploaded) == 2
        assert error.failed_files == [payloads[1].filename]
        assert error.failures[0]["index"] == 1
        assert error.failures[0]["error"] == "AssetStoreError"
        assert fake_asset_server.upload_requests == 3

    @pytest.mark.asyncio
    async def test_upload_one_raises_underlying_error(self, coordinator, fake_asset_server, make_payloads):
        payload = make_payloads(1, prefix="avatar")[0]
        fake_asset_server.unavailable_files.add(payload.filename)

        with pytest.raises(UpstreamUnavailableError):
            await coordinator.upload_one(payload)

    @pytest.mark.asyncio
    async def test_upload_one_validates_as_avatar(self, coordinator):
        with pytest.raises(ValidationError) as exc:
            await coordinator.upload_one(UploadPayload("a.txt", b"x", "text/plain"))
        assert exc.value.field == "avatar[0]"


class TestDetach:
    """后台删除与孤儿台账"""

    @pytest.mark.asyncio
    async def test_detach_deletes_remote(self, coordinator, fake_asset_server, make_payloads):
        handles = await coordinator.attach(make_payloads(2))

        tasks = coordinator.detach(handles, source="listing:x")
        assert len(tasks) == 2
        await coordinator.wait_idle()

        assert sorted(fake_asset_server.deleted) == sorted(h.deletion_key for h in handles)
        assert coordinator.pending_count == 0
        assert await coordinator.orphans.entries() == []

    @pytest.mark.asyncio
    async def test_detach_failure_records_orphan(self, coordinator, fake_asset_server, make_payloads):
        handles = await coordinator.attach(make_payloads(1))
        fake_asset_server.fail_deletes = True

        coordinator.detach(handles, source="listing:x")
        await coordinator.wait_idle()

        entries = await coordinator.orphans.entries()
        assert len(entries) == 1
        assert entries[0]["deletion_key"] == handles[0].deletion_key
        assert entries[0]["source"] == "listing:x"
        assert entries[0]["attempts"] == 1

    @pytest.mark.asyncio
    async def test_repeated_failure_bumps_existing_orphan(self, coordinator, fake_asset_server, make_payloads):
        handles = await coordinator.attach(make_payloads(1))
        fake_asset_server.fail_deletes = True

        coordinator.detach(handles, source="listing:x")
        await coordinator.wait_idle()
        coordinator.detach(handles, source="listing:x")
        await coordinator.wait_idle()

        entries = await coordinator.orphans.entries()
        assert len(entries) == 1
        assert entries[0]["attempts"] == 2

    @pytest.mark.asyncio
    async def test_reconcile_orphans(self, coordinator, fake_asset_server, make_payloads):
        handles = await coordinator.attach(make_payloads(2))
        fake_asset_server.fail_deletes = True
        coordinator.detach(handles, source="listing:x")
        await coordinator.wait_idle()

        summary = await coordinator.reconcile_orphans()
        assert summary == {"checked": 2, "resolved": 0, "remaining": 2}

        fake_asset_server.fail_deletes = False
        summary = await coordinator.reconcile_orphans()
        assert summary == {"checked": 2, "resolved": 2, "remaining": 0}
        assert await coordinator.orphans.entries() == []
        assert fake_asset_server.assets == {}

    @pytest.mark.asyncio
    async def test_detach_with_mock_store(self, config):
        asset_store = AsyncMock()
        asset_store.delete.side_effect = TimeoutError("timed out")
        orphans = AsyncMock()
        coordinator = MediaAssetCoordinator(asset_store, orphans, config.media)

        coordinator.detach([AssetHandle("https://cdn.test/a.png", "a")], source="user:1")
        await coordinator.wait_idle()

        orphans.record.assert_awaited_once()
        assert orphans.record.await_args.kwargs["source"] == "user:1"
