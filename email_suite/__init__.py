"""
Email client core: accounts, folders, messages, search and compose.
"""

from email_suite.session import configure_logging, open_mail_session
from email_suite.suite import MailSuite

__all__ = [
    "MailSuite",
    "configure_logging",
    "open_mail_session",
]
