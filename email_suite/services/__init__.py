"""
Email client services.
"""

from email_suite.services.account_manager import AccountManager
from email_suite.services.attachment_pipeline import AttachmentPipeline
from email_suite.services.compose_controller import ComposeController, ComposeState
from email_suite.services.folder_sync import FolderSync
from email_suite.services.message_store import MessageStore
from email_suite.services.search_controller import SearchController
from email_suite.services.signature_manager import SignatureManager
from email_suite.services.signature_resolver import SignatureResolver
from email_suite.services.sync_poller import SyncPoller

__all__ = [
    "AccountManager",
    "AttachmentPipeline",
    "ComposeController",
    "ComposeState",
    "FolderSync",
    "MessageStore",
    "SearchController",
    "SignatureManager",
    "SignatureResolver",
    "SyncPoller",
]
