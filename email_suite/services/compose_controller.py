"""
Compose window state machine and draft editing.
"""

import logging
from enum import Enum
from typing import Iterable, Optional

from email_suite.core import recipients as recipient_parser
from email_suite.core.events import COMPOSE_CHANGED, EventBus
from email_suite.core.exceptions import (
    ConfirmationRequired,
    InvalidTransition,
    UserInputError,
)
from email_suite.core.generation import RequestGeneration
from email_suite.core.provider_gateway import MailProviderGateway
from email_suite.core.sanitizer import quote_for_forward
from email_suite.schemas.attachment import EmailAttachment, LocalFile
from email_suite.schemas.compose import (
    RECIPIENT_FIELDS,
    ComposeDraft,
    OutgoingMessage,
    RecipientField,
)
from email_suite.schemas.message import EmailMessage, Importance, Recipient
from email_suite.services.account_manager import AccountManager
from email_suite.services.attachment_pipeline import AttachmentPipeline
from email_suite.services.signature_manager import SignatureManager
from email_suite.services.signature_resolver import SignatureResolver

logger = logging.getLogger(__name__)

FORWARD_HEADER = "<br/><br/>---------- Forwarded message ----------<br/>"


class ComposeState(str, Enum):
    CLOSED = "closed"
    OPEN_NORMAL = "open-normal"
    OPEN_MINIMIZED = "open-minimized"
    OPEN_MAXIMIZED = "open-maximized"
    SENDING = "sending"
    SENT = "sent"


OPEN_STATES = frozenset({
    ComposeState.OPEN_NORMAL,
    ComposeState.OPEN_MINIMIZED,
    ComposeState.OPEN_MAXIMIZED,
})

TRANSITIONS: dict[ComposeState, frozenset[ComposeState]] = {
    ComposeState.CLOSED: frozenset({ComposeState.OPEN_NORMAL}),
    ComposeState.OPEN_NORMAL: frozenset({
        ComposeState.OPEN_NORMAL,
        ComposeState.OPEN_MINIMIZED,
        ComposeState.OPEN_MAXIMIZED,
        ComposeState.SENDING,
        ComposeState.CLOSED,
    }),
    ComposeState.OPEN_MINIMIZED: frozenset({
        ComposeState.OPEN_NORMAL,
        ComposeState.OPEN_MAXIMIZED,
        ComposeState.SENDING,
        ComposeState.CLOSED,
    }),
    ComposeState.OPEN_MAXIMIZED: frozenset({
        ComposeState.OPEN_NORMAL,
        ComposeState.OPEN_MINIMIZED,
        ComposeState.SENDING,
        ComposeState.CLOSED,
    }),
    ComposeState.SENDING: frozenset({
        ComposeState.SENT,
        ComposeState.OPEN_NORMAL,
        ComposeState.CLOSED,
    }),
    ComposeState.SENT: frozenset({ComposeState.CLOSED}),
}


class ComposeController:
    """
    Owns the single active compose surface.

    Window states form an explicit machine (see ``TRANSITIONS``); the
    draft lives only in memory and is discarded on close or after a
    successful send. A failed send returns to ``OPEN_NORMAL`` with the
    draft untouched.
    """

    def __init__(
        self,
        gateway: MailProviderGateway,
        accounts: AccountManager,
        uploads: AttachmentPipeline,
        signatures: Optional[SignatureManager] = None,
        resolver: Optional[SignatureResolver] = None,
        events: Optional[EventBus] = None,
    ):
        self.gateway = gateway
        self.accounts = accounts
        self.uploads = uploads
        self.signatures = signatures
        self.resolver = resolver or SignatureResolver()
        self.events = events or EventBus()

        self.state = ComposeState.CLOSED
        self.draft: Optional[ComposeDraft] = None
        self.last_error: Optional[str] = None
        self._restore_state = ComposeState.OPEN_NORMAL
        self._send_generation = RequestGeneration()

    @property
    def is_open(self) -> bool:
        return self.state in OPEN_STATES

    # ============== State Machine ==============

    def _transition(self, target: ComposeState) -> None:
        if target not in TRANSITIONS[self.state]:
            raise InvalidTransition(f"Cannot go from {self.state.value} to {target.value}")
        self.state = target
        self.events.publish(COMPOSE_CHANGED, {"state": self.state, "draft": self.draft})

    def _require_open(self) -> ComposeDraft:
        if not self.is_open or self.draft is None:
            raise InvalidTransition(f"No editable draft in state {self.state.value}")
        return self.draft

    def minimize(self) -> None:
        """Collapse the window; the draft is kept as is."""
        if self.state in (ComposeState.OPEN_NORMAL, ComposeState.OPEN_MAXIMIZED):
            self._restore_state = self.state
        self._transition(ComposeState.OPEN_MINIMIZED)

    def maximize(self) -> None:
        self._transition(ComposeState.OPEN_MAXIMIZED)

    def restore(self) -> None:
        """Back to the state before minimizing, or from maximized to normal."""
        if self.state == ComposeState.OPEN_MINIMIZED:
            self._transition(self._restore_state)
        else:
            self._transition(ComposeState.OPEN_NORMAL)

    def close(self) -> None:
        """Discard the draft. Effective immediately, even mid-send."""
        if self.state == ComposeState.CLOSED:
            return
        self._send_generation.next()
        self._transition(ComposeState.CLOSED)
        self._discard()

    def _discard(self) -> None:
        self.draft = None
        self.last_error = None
        self._restore_state = ComposeState.OPEN_NORMAL
        self.uploads.reset()
        self.events.publish(COMPOSE_CHANGED, {"state": self.state, "draft": None})

    # ============== Opening Drafts ==============

    def _open(self, draft: ComposeDraft) -> ComposeDraft:
        # SENDING -> OPEN_NORMAL is only for a failed send
        sending = self.state == ComposeState.SENDING
        if sending or ComposeState.OPEN_NORMAL not in TRANSITIONS[self.state]:
            raise InvalidTransition(f"Cannot open a draft while {self.state.value}")

        if self.is_open:
            logger.info("Replacing the open draft")
        self._send_generation.next()
        self.uploads.reset(draft.attachments)
        if draft.signature_id is None and self.signatures:
            default = self.signatures.default_signature
            draft.signature_id = default.id if default else None
        self.draft = draft
        self.last_error = None
        self._restore_state = ComposeState.OPEN_NORMAL
        self._transition(ComposeState.OPEN_NORMAL)
        return draft

    def open_new(
        self,
        to: Optional[Iterable[Recipient]] = None,
        subject: str = "",
        body_html: str = "",
    ) -> ComposeDraft:
        return self._open(ComposeDraft(
            to=recipient_parser.merge_unique(list(to or [])),
            subject=subject,
            body_html=body_html,
        ))

    def open_reply(
        self,
        message: EmailMessage,
        reply_all: bool = False,
        subject: Optional[str] = None,
        exclude: Iterable[str] = (),
    ) -> ComposeDraft:
        """
        Reply to ``message``.

        reply: to = [sender]. reply-all: to = original to + sender, cc =
        original cc; addresses in ``exclude`` (the user's own) are dropped.
        """
        excluded = set(exclude)
        sender = [message.sender] if message.sender and message.sender.email else []
        if reply_all:
            to = recipient_parser.merge_unique(list(message.to), sender)
            cc = recipient_parser.merge_unique(list(message.cc))
        else:
            to, cc = list(sender), []
        to = [r for r in to if r.email not in excluded]
        cc = [r for r in cc if r.email not in excluded and not recipient_parser.contains(to, r.email)]

        return self._open(ComposeDraft(
            to=to,
            cc=cc,
            subject=message.subject if subject is None else subject,
            reply_to=message.id,
            reply_type="reply_all" if reply_all else "reply",
        ))

    def open_forward(self, message: EmailMessage, subject: Optional[str] = None) -> ComposeDraft:
        return self._open(ComposeDraft(
            subject=message.subject if subject is None else subject,
            body_html=FORWARD_HEADER + quote_for_forward(message),
            reply_to=message.id,
            reply_type="forward",
        ))

    # ============== Recipients ==============

    @staticmethod
    def _check_field(field: str) -> None:
        if field not in RECIPIENT_FIELDS:
            raise ValueError(f"Unknown recipient field: {field}")

    def add_recipient(self, field: RecipientField, recipient: Recipient) -> bool:
        """Add unless the address is already in that field. Returns True if added."""
        self._check_field(field)
        draft = self._require_open()
        added = recipient_parser.add_unique(draft.recipients(field), recipient)
        if added:
            self._changed()
        return added

    def remove_recipient(self, field: RecipientField, email: str) -> bool:
        self._check_field(field)
        draft = self._require_open()
        current = draft.recipients(field)
        kept = [r for r in current if r.email != email]
        if len(kept) == len(current):
            return False
        setattr(draft, field, kept)
        self._changed()
        return True

    def commit_recipient_text(self, field: RecipientField, text: str) -> bool:
        """
        Parse typed text into a recipient (commit key or blur).

        Returns True when the input should be cleared. Unparseable text and
        duplicates leave the input as typed.
        """
        recipient = recipient_parser.parse(text)
        if recipient is None:
            return False
        return self.add_recipient(field, recipient)

    def handle_key(self, field: RecipientField, key: str, text: str) -> str:
        """Apply a key press in a recipient input; returns the new input text."""
        if key in recipient_parser.COMMIT_KEYS:
            return "" if self.commit_recipient_text(field, text) else text
        if key == recipient_parser.BACKSPACE and not text:
            self._check_field(field)
            draft = self._require_open()
            current = draft.recipients(field)
            if current:
                current.pop()
                self._changed()
        return text

    # ============== Draft Fields ==============

    def _changed(self) -> None:
        self.events.publish(COMPOSE_CHANGED, {"state": self.state, "draft": self.draft})

    def set_subject(self, subject: str) -> None:
        self._require_open().subject = subject
        self._changed()

    def set_body(self, body_html: str) -> None:
        self._require_open().body_html = body_html
        self._changed()

    def set_importance(self, importance: Importance) -> None:
        if importance not in ("low", "normal", "high"):
            raise UserInputError(f"Invalid importance: {importance}", field="importance")
        self._require_open().importance = importance
        self._changed()

    def select_signature(self, signature_id: Optional[str]) -> None:
        draft = self._require_open()
        if signature_id is not None and self.signatures and self.signatures.get(signature_id) is None:
            raise UserInputError(f"Unknown signature: {signature_id}", field="signature_id")
        draft.signature_id = signature_id
        self._changed()

    # ============== Attachments ==============

    async def attach(self, files: Iterable[LocalFile]) -> list[EmailAttachment]:
        """Upload files into the open draft; rejections land in ``uploads.errors``."""
        draft = self._require_open()
        uploaded = await self.uploads.upload_many(files)
        if self.draft is draft:
            draft.attachments = list(self.uploads.attachments)
            self._changed()
        return uploaded

    def remove_attachment(self, attachment_id: str) -> bool:
        draft = self._require_open()
        removed = self.uploads.remove(attachment_id)
        if removed:
            draft.attachments = list(self.uploads.attachments)
            self._changed()
        return removed

    def cancel_upload(self, upload_id: str) -> bool:
        return self.uploads.cancel(upload_id)

    # ============== Send ==============

    def build_outgoing(self) -> OutgoingMessage:
        draft = self._require_open()
        signature = self.signatures.get(draft.signature_id) if self.signatures else None
        return OutgoingMessage(
            to=list(draft.to),
            cc=list(draft.cc),
            bcc=list(draft.bcc),
            subject=draft.subject,
            body_html=self.resolver.append_to(draft.body_html, signature),
            importance=draft.importance,
            attachments=list(self.uploads.attachments),
            reply_to=draft.reply_to,
            reply_type=draft.reply_type,
        )

    async def send(self, confirmed_empty_subject: bool = False) -> bool:
        """
        Validate and send the open draft.

        Raises UserInputError for a missing ``to`` recipient, uploads still
        in flight or no selected account, and ConfirmationRequired for a
        blank subject; none of these change the window state. Returns False
        if the window was closed before the gateway answered.
        """
        draft = self._require_open()
        if not draft.to:
            raise UserInputError("Please add at least one recipient", field="to")
        if not draft.subject.strip() and not confirmed_empty_subject:
            raise ConfirmationRequired(
                "Send this email without a subject?",
                reason=ConfirmationRequired.EMPTY_SUBJECT,
            )
        if self.uploads.is_uploading:
            raise UserInputError("Attachments are still uploading", field="attachments")
        account = self.accounts.selected_account
        if account is None:
            raise UserInputError("No account selected", field="account_id")

        outgoing = self.build_outgoing()
        token = self._send_generation.next()
        self.last_error = None
        self._transition(ComposeState.SENDING)

        try:
            await self.gateway.send_message(account.id, outgoing)
        except Exception as e:
            if not self._send_generation.is_current(token):
                logger.warning(f"Send failed after the draft was closed: {e}")
                return False
            self.last_error = str(e)
            logger.warning(f"Send failed, draft kept: {e}")
            self._transition(ComposeState.OPEN_NORMAL)
            raise

        if not self._send_generation.is_current(token):
            logger.info("Message sent after the draft was closed")
            return False

        self._transition(ComposeState.SENT)
        self._transition(ComposeState.CLOSED)
        self._discard()
        return True
