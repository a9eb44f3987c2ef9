"""
Messaging Integration Module
============================

Outbound email and SMS used to deliver quotes to clients.
"""

from .emailSender import send_email
from .httpClient import MessagingError, post_with_retry
from .smsSender import send_sms

__all__ = [
    "MessagingError",
    "post_with_retry",
    "send_email",
    "send_sms",
]
