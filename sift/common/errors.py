"""
Error taxonomy for the Sift pipeline.

Validation problems (malformed model JSON, out-of-set enum values) are never
raised: they are corrected in place by the component that sees them.
"""


class SiftError(Exception):
    """Base class for all pipeline errors"""


class TransientExternalError(SiftError):
    """A network or external-service call failed; the caller may retry."""

    retryable = True

    def __init__(self, message: str, service: str = ""):
        super().__init__(message)
        self.service = service


class EmbeddingError(TransientExternalError):
    """Embedding service failed or returned a vector of the wrong size"""

    def __init__(self, message: str):
        super().__init__(message, service="embedding")


class SynthesisError(TransientExternalError):
    """Answer synthesis could not produce an answer"""

    def __init__(self, message: str):
        super().__init__(message, service="completion")


class DeliveryError(TransientExternalError):
    """Team messaging endpoint rejected or failed a delivery"""

    def __init__(self, message: str, status_code: int = 0):
        super().__init__(message, service="messaging")
        self.status_code = status_code


class OwnershipError(SiftError):
    """The requested item does not exist under the caller's scope."""

    def __init__(self, kind: str, item_id: str):
        super().__init__(f"{kind} not found: {item_id}")
        self.kind = kind
        self.item_id = item_id


class ConfigurationError(SiftError):
    """A required credential or setting is missing. Fatal at process start."""


class ImageGenerationError(TransientExternalError):
    """The image provider failed to render an infographic"""

    def __init__(self, message: str):
        super().__init__(message, service="image_generation")
