"""
Signature persistence client (``email_signatures`` table over PostgREST).
"""

import logging
from typing import Any

from email_suite.core.exceptions import GatewayError
from email_suite.core.http_client import BackendClient
from email_suite.schemas.signature import EmailSignature, SignatureDraft

logger = logging.getLogger(__name__)


class SignatureStore(BackendClient):
    """CRUD for a user's signature records."""

    TABLE_ENDPOINT = "/rest/v1/email_signatures"

    _RETURN_ROW = {"Prefer": "return=representation"}

    @staticmethod
    def _row(draft: SignatureDraft) -> dict[str, Any]:
        return draft.model_dump(mode="json", exclude={"id"})

    @staticmethod
    def _single(rows: Any, action: str) -> EmailSignature:
        if isinstance(rows, list):
            if not rows:
                raise GatewayError(f"Signature {action} returned no row")
            rows = rows[0]
        return EmailSignature.model_validate(rows)

    async def list_signatures(self, user_id: str) -> list[EmailSignature]:
        rows = await self._request(
            "GET",
            self.TABLE_ENDPOINT,
            params={
                "select": "*",
                "user_id": f"eq.{user_id}",
                "order": "created_at.asc",
            },
        )
        return [EmailSignature.model_validate(r) for r in rows or []]

    async def create_signature(self, user_id: str, draft: SignatureDraft) -> EmailSignature:
        rows = await self._request(
            "POST",
            self.TABLE_ENDPOINT,
            retry=False,
            headers=self._RETURN_ROW,
            json={"user_id": user_id, **self._row(draft)},
        )
        signature = self._single(rows, "create")
        logger.info(f"Created signature {signature.id} for user {user_id}")
        return signature

    async def update_signature(self, user_id: str, draft: SignatureDraft) -> EmailSignature:
        if not draft.id:
            raise ValueError("update_signature requires a draft with an id")
        rows = await self._request(
            "PATCH",
            self.TABLE_ENDPOINT,
            headers=self._RETURN_ROW,
            params={"id": f"eq.{draft.id}", "user_id": f"eq.{user_id}"},
            json=self._row(draft),
        )
        return self._single(rows, "update")

    async def delete_signature(self, user_id: str, signature_id: str) -> None:
        await self._request(
            "DELETE",
            self.TABLE_ENDPOINT,
            params={"id": f"eq.{signature_id}", "user_id": f"eq.{user_id}"},
        )

    async def set_default(self, user_id: str, signature_id: str) -> None:
        """Clear every default of the user, then flag ``signature_id``."""
        await self._request(
            "PATCH",
            self.TABLE_ENDPOINT,
            params={"user_id": f"eq.{user_id}"},
            json={"is_default": False},
        )
        await self._request(
            "PATCH",
            self.TABLE_ENDPOINT,
            params={"id": f"eq.{signature_id}", "user_id": f"eq.{user_id}"},
            json={"is_default": True},
        )
