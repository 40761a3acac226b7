from .content import ContentPayload, ContentSource, FileSource
from .exceptions import SourceReadFailure
from .negotiation import NegotiationResult, Negotiator, NegotiatorConfig, negotiate

__all__ = [
    "ContentPayload",
    "ContentSource",
    "FileSource",
    "NegotiationResult",
    "Negotiator",
    "NegotiatorConfig",
    "SourceReadFailure",
    "negotiate",
]
