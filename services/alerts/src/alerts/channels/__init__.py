"""
Alert channel implementations package for JobWatch.

Contains the abstract AlertChannel base class and the email and chat
webhook delivery channels.
"""

from .base import AlertChannel
from .email_channel import EmailChannel, JinjaTemplateRenderer
from .webhook_channel import WebhookChannel

__all__ = [
    "AlertChannel",
    "EmailChannel",
    "JinjaTemplateRenderer",
    "WebhookChannel",
]
