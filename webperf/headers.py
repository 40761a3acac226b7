"""
HTTP Accept-Encoding matching and encoding selection utilities.
"""
import re
from functools import lru_cache
from types import MappingProxyType
from typing import Literal, Mapping

# Defines the server-side preference for encodings we can produce.
# Lower numbers are checked first; q-factors play no part.
# "zstd" > "br" > "gzip" > "deflate"
CODING_PRIORITIES: Mapping[str, int] = MappingProxyType({
    "zstd": 0,
    "br": 1,
    "gzip": 2,
    "deflate": 3,
})

# Sent when the client names none of the ranked encodings (even an empty header).
FALLBACK_ENCODING = "deflate"

SupportedEncoding = Literal["zstd", "br", "gzip", "deflate"]

# "substring" checks raw containment in the header value, case-sensitive.
# "token" compares whole codings after lowercasing and dropping parameters.
MatchMode = Literal["substring", "token"]

MATCH_MODES: tuple[str, ...] = ("substring", "token")

_SEPARATORS = re.compile(r"[,\s]+")


def rank(priorities: Mapping[str, int]) -> tuple[str, ...]:
    """
    Returns the encoding names ordered from most to least preferred.
    Ties are broken alphabetically so the order never depends on dict layout.
    """
    return tuple(sorted(priorities, key=lambda name: (priorities[name], name)))


def parse_part(part: str) -> str | None:
    """
    Extracts the coding name from a single element of the header
    (e.g., "GZip;q=0.8" -> "gzip"). Returns None for empty elements.
    """
    coding_name = part.split(";")[0].strip().lower()
    return coding_name or None


def parse_tokens(accept_encoding: str) -> frozenset[str]:
    """
    Splits the header on commas and whitespace into a set of lowercase codings.
    Parameters such as "q=0.5" that end up in their own element are kept but
    never collide with a coding name.
    """
    tokens = set()
    for part_str in _SEPARATORS.split(accept_encoding):
        coding_name = parse_part(part_str)
        if coding_name:
            tokens.add(coding_name)
    return frozenset(tokens)


@lru_cache(maxsize=128)
def get_preferred_encoding(
    accept_encoding: str,
    ranked: tuple[str, ...] = rank(CODING_PRIORITIES),
    fallback: str = FALLBACK_ENCODING,
    match: MatchMode = "substring",
) -> SupportedEncoding:
    """
    Walks the ranked encodings top to bottom and returns the first one the
    'Accept-Encoding' value mentions, or `fallback` when none is mentioned.

    In "substring" mode "Gzip" does not match "gzip" and "x-gzip-custom" does.

    Results are LRU-cached for performance.
    """
    if match == "token":
        offered = parse_tokens(accept_encoding)
        for name in ranked:
            if name in offered:
                return name
        return fallback

    for name in ranked:
        if name in accept_encoding:
            return name

    # Nothing recognised, which is not the same as "send it uncompressed".
    return fallback
