"""Tests for signature records and image uploads."""

import pytest

from email_suite.core.events import SIGNATURE_IMAGES_CHANGED, UPLOADS_CHANGED
from email_suite.core.exceptions import GatewayError, UserInputError
from email_suite.schemas.attachment import LocalFile
from email_suite.schemas.signature import EmailSignature, SignatureDraft
from email_suite.services.attachment_pipeline import AttachmentPipeline
from email_suite.services.signature_manager import IMAGE_CACHE_CONTROL, SignatureManager


@pytest.fixture
def manager(signature_store, storage, events) -> SignatureManager:
    return SignatureManager(signature_store, "user-1", storage=storage, events=events)


@pytest.fixture
async def loaded(manager, signature_store) -> SignatureManager:
    signature_store.list_signatures.return_value = [
        EmailSignature(id="s1", name="Personal", is_default=True),
        EmailSignature(id="s2", name="Work"),
    ]
    await manager.load()
    return manager


class TestSignatureManager:
    """Tests for SignatureManager."""

    async def test_default_falls_back_to_first(self, manager, signature_store) -> None:
        signature_store.list_signatures.return_value = [
            EmailSignature(id="a", name="A"),
            EmailSignature(id="b", name="B"),
        ]
        await manager.load()
        assert manager.default_signature.id == "a"

    async def test_set_default_keeps_single_flag(self, loaded, signature_store) -> None:
        await loaded.set_default("s2")

        assert [s.id for s in loaded.signatures if s.is_default] == ["s2"]
        signature_store.set_default.assert_awaited_once_with("user-1", "s2")

    async def test_set_default_rolls_back(self, loaded, signature_store) -> None:
        signature_store.set_default.side_effect = GatewayError("nope")

        with pytest.raises(GatewayError):
            await loaded.set_default("s2")

        assert loaded.default_signature.id == "s1"

    async def test_create_default_clears_others(self, loaded, signature_store) -> None:
        signature_store.create_signature.return_value = EmailSignature(id="s3", name="New", is_default=True)

        saved = await loaded.save(SignatureDraft(name="New", is_default=True))

        assert saved.id == "s3"
        assert [s.id for s in loaded.signatures] == ["s1", "s2", "s3"]
        assert [s.id for s in loaded.signatures if s.is_default] == ["s3"]
        signature_store.set_default.assert_awaited_once_with("user-1", "s3")

    async def test_update_keeps_position(self, loaded, signature_store) -> None:
        signature_store.update_signature.return_value = EmailSignature(id="s1", name="Renamed", is_default=True)

        await loaded.save(SignatureDraft(id="s1", name="Renamed", is_default=True))

        assert [s.name for s in loaded.signatures] == ["Renamed", "Work"]
        signature_store.set_default.assert_not_awaited()

    async def test_name_required(self, loaded, signature_store) -> None:
        with pytest.raises(UserInputError):
            await loaded.save(SignatureDraft(name="  "))
        signature_store.create_signature.assert_not_awaited()

    async def test_delete(self, loaded, signature_store) -> None:
        await loaded.delete("s2")
        assert [s.id for s in loaded.signatures] == ["s1"]
        signature_store.delete_signature.assert_awaited_once_with("user-1", "s2")

    async def test_upload_image_returns_url(self, manager, storage) -> None:
        url = await manager.upload_image(LocalFile(name="logo", content=b"png", mime_type="image/png"))

        assert url.startswith("https://cdn.test/signatures/user-1/")
        assert url.endswith(".png")
        assert manager.images.attachments == []
        assert manager.images.cache_control == IMAGE_CACHE_CONTROL

    async def test_logo_upload_leaves_compose_uploads_alone(self, manager, storage, events, collector) -> None:
        compose_uploads = AttachmentPipeline(storage, "user-1", events=events)
        await compose_uploads.upload_many([LocalFile(name="report.pdf", content=b"pdf", mime_type="application/pdf")])
        seen = len(collector.payloads(UPLOADS_CHANGED))

        await manager.upload_image(LocalFile(name="logo.png", content=b"png", mime_type="image/png"))

        assert len(collector.payloads(UPLOADS_CHANGED)) == seen
        assert collector.payloads(UPLOADS_CHANGED)[-1]["attachments"] == compose_uploads.attachments
        assert len(compose_uploads.attachments) == 1
        assert collector.payloads(SIGNATURE_IMAGES_CHANGED)[-1]["attachments"] == []
