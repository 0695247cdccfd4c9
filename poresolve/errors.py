"""
Error taxonomy for the resolution cascade.

Provider errors are recovered inside the cascade. Store errors are not:
a store outage must never be reported as "no match".
"""

from typing import List, Optional


class ResolutionError(Exception):
    """Base class for resolution failures."""
    pass


class ProviderUnavailable(ResolutionError):
    """Embedding or LLM provider call failed or timed out."""

    def __init__(self, provider: str, message: str):
        super().__init__(f"{provider} unavailable: {message}")
        self.provider = provider


class MalformedProviderResponse(ResolutionError):
    """Provider answered, but the payload failed strict parsing."""

    def __init__(self, message: str, raw: Optional[str] = None):
        super().__init__(message)
        self.raw = raw


class StoreUnavailable(ResolutionError):
    """Reference store could not be queried."""
    pass


class ConfigError(ResolutionError):
    """Invalid configuration value."""
    pass


class InputValidationError(ResolutionError):
    """Query, order or reference input failed validation."""

    def __init__(self, errors: List[str]):
        super().__init__("; ".join(errors))
        self.errors = errors
