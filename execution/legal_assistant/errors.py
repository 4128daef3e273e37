"""
Error taxonomy for the Legal Assistant.

Only ConfigurationError is allowed to halt the owning process. Every other
error is caught at the boundary of the pipeline stage that owns it and turned
into a degraded-but-valid result.
"""


class AssistantError(Exception):
    """Base class for all assistant errors."""


class ConfigurationError(AssistantError):
    """Missing credentials, index name, or an invalid setting."""


class IngestionError(AssistantError):
    """Document load, split, embed, or index-write failure."""


class DimensionMismatchError(IngestionError):
    """Embedding dimension does not match the existing index."""

    def __init__(self, index_name: str, expected: int, actual: int):
        super().__init__(
            f"Index '{index_name}' has dimension {expected}, "
            f"but the embedding provider produces {actual}"
        )
        self.index_name = index_name
        self.expected = expected
        self.actual = actual


class RetrievalError(AssistantError):
    """Vector index query failure."""


class GenerationError(AssistantError):
    """Language model call failure."""


class ParseError(AssistantError):
    """Malformed structured output from the language model."""

    def __init__(self, message: str, raw_text: str = ""):
        super().__init__(message)
        self.raw_text = raw_text


class PipelineCancelled(AssistantError):
    """The caller abandoned the request between pipeline stages."""
