"""
Distribution - Team Message Rendering and Delivery

Key Components:
- TemplateRenderer: Deterministic record -> Message rendering
- ComplianceValidator: Post-hoc format checks (report, never block)
- SlackHandler: Incoming-webhook delivery
- InfographicGenerator: Quick / premium infographics for image options
- NewsletterDrafter: Newsletter sections from queued records
"""

from .handlers import DeliveryResult, Message, SlackHandler
from .infographic import InfographicGenerator, InfographicKind, InfographicResult
from .newsletter import NewsletterDraft, NewsletterDrafter
from .renderer import DistributionOption, TemplateRenderer, strip_forbidden
from .validator import ComplianceValidator, ValidationReport

__all__ = [
    "ComplianceValidator",
    "DeliveryResult",
    "DistributionOption",
    "InfographicGenerator",
    "InfographicKind",
    "InfographicResult",
    "Message",
    "NewsletterDraft",
    "NewsletterDrafter",
    "SlackHandler",
    "TemplateRenderer",
    "ValidationReport",
    "strip_forbidden",
]
