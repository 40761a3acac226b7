"""
Picks one content coding for a response and compresses the payload with it.
"""
import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, NamedTuple

from .compression import COMPRESSORS, DEFAULT_LEVELS, compress
from .content import ContentPayload
from .headers import (
    CODING_PRIORITIES,
    FALLBACK_ENCODING,
    MATCH_MODES,
    MatchMode,
    SupportedEncoding,
    get_preferred_encoding,
    rank,
)

logger = logging.getLogger(__name__)


class NegotiationResult(NamedTuple):
    body: bytes
    headers: dict[str, str]


@dataclass(frozen=True)
class NegotiatorConfig:
    """
    Immutable settings for a Negotiator.

    priorities: encoding name -> rank, lowest rank checked first.
    fallback: encoding used when the client names none of `priorities`.
    match: "substring" (raw containment, case-sensitive) or "token".
    levels: per-encoding compression level; missing entries use the defaults.
    """

    priorities: Mapping[str, int] = field(default_factory=lambda: CODING_PRIORITIES)
    fallback: str = FALLBACK_ENCODING
    match: MatchMode = "substring"
    levels: Mapping[str, int] = field(default_factory=dict)

    def __post_init__(self):
        unknown = sorted(set(self.priorities) - set(COMPRESSORS))
        if unknown:
            raise ValueError(f"no compressor for encoding(s): {', '.join(unknown)}")
        if self.fallback not in COMPRESSORS:
            raise ValueError(f"no compressor for fallback encoding: {self.fallback}")
        if self.match not in MATCH_MODES:
            raise ValueError(f"unknown match mode: {self.match!r}")
        unknown = sorted(set(self.levels) - set(COMPRESSORS))
        if unknown:
            raise ValueError(f"level given for unknown encoding(s): {', '.join(unknown)}")

        object.__setattr__(self, "priorities", MappingProxyType(dict(self.priorities)))
        object.__setattr__(
            self, "levels", MappingProxyType({**DEFAULT_LEVELS, **self.levels})
        )

    @property
    def ranked(self) -> tuple[str, ...]:
        return rank(self.priorities)


class Negotiator:
    """
    Stateless content negotiator. One instance can serve any number of
    concurrent requests.
    """

    def __init__(self, config: NegotiatorConfig | None = None) -> None:
        self.config = config or NegotiatorConfig()
        self._ranked = self.config.ranked

    def select(self, accept_encoding: str) -> SupportedEncoding:
        return get_preferred_encoding(
            accept_encoding or "",
            self._ranked,
            self.config.fallback,
            self.config.match,
        )

    def negotiate(
        self, content: ContentPayload, accept_encoding: str = ""
    ) -> NegotiationResult:
        encoding = self.select(accept_encoding)
        data = content.to_bytes()
        body = compress(encoding, data, self.config.levels[encoding])

        logger.debug(
            "negotiated %s for %s",
            encoding,
            content.media_type,
            extra={
                "encoding": encoding,
                "media_type": content.media_type,
                "original_size": len(data),
                "compressed_size": len(body),
            },
        )
        return NegotiationResult(
            body,
            {
                "Content-Encoding": encoding,
                "Content-Type": content.media_type,
            },
        )


default_negotiator = Negotiator()


def negotiate(content: ContentPayload, accept_encoding: str = "") -> NegotiationResult:
    """Negotiates with the default priority chain (zstd > br > gzip > deflate)."""
    return default_negotiator.negotiate(content, accept_encoding)
