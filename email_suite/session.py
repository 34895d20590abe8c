"""
Session lifecycle for the email suite.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Mapping, Optional

import httpx

from email_suite.config import Settings, get_settings
from email_suite.core.cache import MailCache, create_cache_backend
from email_suite.core.events import EventBus
from email_suite.core.provider_gateway import MailProviderGateway
from email_suite.core.signature_store import SignatureStore
from email_suite.core.storage_gateway import StorageGateway
from email_suite.services.account_manager import AuthorizeCallback
from email_suite.suite import MailSuite

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(settings: Optional[Settings] = None) -> None:
    """Configure logging for an embedding application."""
    settings = settings or get_settings()
    level = "DEBUG" if settings.debug else settings.log_level.upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format=LOG_FORMAT,
    )


@asynccontextmanager
async def open_mail_session(
    user_id: str,
    access_token: str,
    settings: Optional[Settings] = None,
    profile: Optional[Mapping[str, Optional[str]]] = None,
    authorize: Optional[AuthorizeCallback] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    start: bool = True,
) -> AsyncIterator[MailSuite]:
    """
    Open a mail session for a signed-in user.

    Builds and connects the gateways and cache, starts the suite (accounts,
    signatures, default inbox, poller) and tears everything down on exit.

    Args:
        user_id: Signed-in user
        access_token: Session bearer token for the hosted backend
        settings: Overrides the environment settings
        profile: Sender fields used to fill signature placeholders
        authorize: Opens the OAuth consent screen for ``connect_account``
        transport: Custom httpx transport shared by every client
        start: Run ``MailSuite.start()`` before yielding
    """
    settings = settings or get_settings()
    client_options = dict(
        base_url=settings.gateway_base_url,
        api_key=settings.gateway_api_key,
        access_token=access_token,
        timeout=settings.gateway_timeout,
        max_retries=settings.gateway_max_retries,
        transport=transport,
    )
    gateway = MailProviderGateway(**client_options)
    storage = StorageGateway(bucket=settings.storage_bucket, **client_options)
    signature_store = SignatureStore(**client_options)
    backend = create_cache_backend(settings)

    suite = MailSuite(
        user_id,
        gateway,
        storage,
        signature_store,
        cache=MailCache(
            backend,
            user_id,
            folder_ttl=settings.folder_cache_ttl,
            message_ttl=settings.message_cache_ttl,
        ),
        events=EventBus(),
        profile=profile,
        authorize=authorize,
        settings=settings,
    )
    try:
        logger.info(f"Opening mail session for user {user_id}")
        await gateway.connect()
        await storage.connect()
        await signature_store.connect()
        await backend.connect()
        if start:
            await suite.start()
        yield suite
    finally:
        logger.info(f"Closing mail session for user {user_id}")
        await suite.stop()
        await backend.close()
        await signature_store.disconnect()
        await storage.disconnect()
        await gateway.disconnect()
        logger.info("Mail session closed")
