"""
Signature management: cached records, default flag and image uploads.
"""

import logging
from typing import Optional

from email_suite.config import get_settings
from email_suite.core.events import SIGNATURE_IMAGES_CHANGED, SIGNATURES_CHANGED, EventBus
from email_suite.core.exceptions import UserInputError
from email_suite.core.signature_store import SignatureStore
from email_suite.core.storage_gateway import SIGNATURES_PREFIX, StorageGateway
from email_suite.schemas.attachment import LocalFile
from email_suite.schemas.signature import EmailSignature, SignatureDraft
from email_suite.services.attachment_pipeline import AttachmentPipeline

logger = logging.getLogger(__name__)

settings = get_settings()

# Signature images are immutable once uploaded
IMAGE_CACHE_CONTROL = "31536000"


class SignatureManager:
    """
    Keeps the user's signatures in memory and writes changes through.

    At most one signature is flagged default; ``default_signature`` falls
    back to the first signature when none is flagged.
    """

    def __init__(
        self,
        store: SignatureStore,
        user_id: str,
        storage: Optional[StorageGateway] = None,
        events: Optional[EventBus] = None,
        images: Optional[AttachmentPipeline] = None,
    ):
        self.store = store
        self.user_id = user_id
        self.events = events or EventBus()
        if images is None and storage is not None:
            images = AttachmentPipeline(
                storage,
                user_id,
                events=self.events,
                max_bytes=settings.signature_logo_max_bytes,
                path_prefix=SIGNATURES_PREFIX,
                default_extension="png",
                cache_control=IMAGE_CACHE_CONTROL,
                event=SIGNATURE_IMAGES_CHANGED,
            )
        self.images = images

        self.signatures: list[EmailSignature] = []
        self.is_loading = False

    # ============== Lookups ==============

    def get(self, signature_id: Optional[str]) -> Optional[EmailSignature]:
        if signature_id is None:
            return None
        return next((s for s in self.signatures if s.id == signature_id), None)

    @property
    def default_signature(self) -> Optional[EmailSignature]:
        flagged = next((s for s in self.signatures if s.is_default), None)
        return flagged or (self.signatures[0] if self.signatures else None)

    def _publish(self) -> None:
        self.events.publish(SIGNATURES_CHANGED, list(self.signatures))

    # ============== CRUD ==============

    async def load(self) -> list[EmailSignature]:
        self.is_loading = True
        try:
            self.signatures = await self.store.list_signatures(self.user_id)
        finally:
            self.is_loading = False
        self._publish()
        return list(self.signatures)

    async def save(self, draft: SignatureDraft) -> EmailSignature:
        """Create or update a signature, keeping a single default."""
        if not draft.name.strip():
            raise UserInputError("Signature name is required", field="name")

        if draft.id:
            saved = await self.store.update_signature(self.user_id, draft)
        else:
            saved = await self.store.create_signature(self.user_id, draft)

        others_flagged = any(s.is_default and s.id != saved.id for s in self.signatures)
        if saved.is_default and others_flagged:
            await self.store.set_default(self.user_id, saved.id)

        signatures = [
            s.model_copy(update={"is_default": False}) if saved.is_default else s
            for s in self.signatures
            if s.id != saved.id
        ]
        position = next((i for i, s in enumerate(self.signatures) if s.id == saved.id), None)
        if position is None:
            signatures.append(saved)
        else:
            signatures.insert(position, saved)
        self.signatures = signatures
        self._publish()
        return saved

    async def delete(self, signature_id: str) -> None:
        if self.get(signature_id) is None:
            raise UserInputError(f"Unknown signature: {signature_id}", field="signature_id")
        await self.store.delete_signature(self.user_id, signature_id)
        self.signatures = [s for s in self.signatures if s.id != signature_id]
        logger.info(f"Deleted signature {signature_id}")
        self._publish()

    async def set_default(self, signature_id: str) -> None:
        """Optimistically flag ``signature_id``; rolled back if the store refuses."""
        if self.get(signature_id) is None:
            raise UserInputError(f"Unknown signature: {signature_id}", field="signature_id")

        previous = self.signatures
        self.signatures = [
            s.model_copy(update={"is_default": s.id == signature_id}) for s in previous
        ]
        self._publish()
        try:
            await self.store.set_default(self.user_id, signature_id)
        except Exception:
            logger.warning(f"Rolling back default signature change to {signature_id}")
            self.signatures = previous
            self._publish()
            raise

    # ============== Images ==============

    async def upload_image(self, file: LocalFile) -> str:
        """Upload a logo or inline image and return its public URL."""
        if self.images is None:
            raise RuntimeError("Signature image uploads need a storage gateway")
        attachment = await self.images.upload(file)
        self.images.remove(attachment.id)
        return attachment.url
