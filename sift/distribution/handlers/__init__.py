"""
Delivery Handlers

Outbound channel adapters for rendered messages.
"""

from .base import BaseHandler, DeliveryResult, Message
from .slack import SlackHandler

__all__ = [
    "BaseHandler",
    "DeliveryResult",
    "Message",
    "SlackHandler",
]
