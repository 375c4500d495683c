"""Exception types shared across the classification pipeline."""

from __future__ import annotations


class PipelineError(RuntimeError):
    """Base class for all pipeline errors."""


class ConfigurationError(PipelineError):
    """Provider/model configuration could not be resolved. Fatal at startup."""


class ProviderInvocationError(PipelineError):
    """The vendor call failed (network, auth, rate limit, vendor-side error)."""


class ResponseFormatError(PipelineError):
    """The vendor reply did not contain the expected payload shape."""
