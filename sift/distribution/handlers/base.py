"""
Base Handler

Abstract base class for outbound delivery channels.
A handler takes a rendered Message and reports how delivery went.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


@dataclass
class Message:
    """
    A rendered outbound message.

    ``blocks`` is the structured payload (Slack Block Kit shape); ``text`` is
    the plain rendition of the same content and is what the compliance
    validator scans.
    """
    record_id: str
    owner_id: str
    option: str
    text: str
    blocks: List[Dict[str, Any]] = field(default_factory=list)
    channel: str = "team"
    violations: List[str] = field(default_factory=list)

    @property
    def is_compliant(self) -> bool:
        return not self.violations

    def to_payload(self) -> Dict[str, Any]:
        """Webhook body"""
        return {"text": self.text, "blocks": self.blocks}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "record_id": self.record_id,
            "owner_id": self.owner_id,
            "option": self.option,
            "channel": self.channel,
            "text": self.text,
            "blocks": self.blocks,
            "violations": self.violations,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        return cls(
            record_id=data["record_id"],
            owner_id=data.get("owner_id", ""),
            option=data.get("option", "summary_only"),
            text=data.get("text", ""),
            blocks=list(data.get("blocks") or []),
            channel=data.get("channel", "team"),
            violations=list(data.get("violations") or []),
        )


@dataclass
class DeliveryResult:
    """Outcome of one delivery attempt"""
    ok: bool
    channel: str
    record_id: str
    status_code: int = 0
    error: Optional[str] = None
    delivered_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "channel": self.channel,
            "record_id": self.record_id,
            "status_code": self.status_code,
            "error": self.error,
            "delivered_at": self.delivered_at.isoformat() if self.delivered_at else None,
        }


class BaseHandler(ABC):
    """
    Abstract base class for delivery channels.

    Each handler must implement:
    - is_configured: Whether the channel has what it needs to send
    - deliver: Send a Message, reporting failure instead of raising
    """

    def __init__(self, channel_name: str):
        """
        Initialize handler.

        Args:
            channel_name: Distribution channel this handler serves ("team", ...)
        """
        self.channel_name = channel_name

    @property
    @abstractmethod
    def is_configured(self) -> bool:
        pass

    @abstractmethod
    def deliver(self, message: Message) -> DeliveryResult:
        """
        Deliver a rendered message.

        Args:
            message: Rendered message

        Returns:
            DeliveryResult; ``ok`` is False on any failure
        """
        pass
