"""
Content sources and the payloads read from them.
"""
import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from .exceptions import SourceReadFailure

DEFAULT_MEDIA_TYPE = "application/octet-stream"

# mimetypes disagrees across platforms for these, so they are pinned
MEDIA_TYPE_OVERRIDES: dict[str, str] = {
    ".html": "text/html",
    ".css": "text/css",
    ".js": "text/javascript",
    ".ttf": "font/ttf",
    ".woff": "font/woff",
    ".woff2": "font/woff2",
}


def guess_media_type(path: str | Path) -> str:
    suffix = Path(path).suffix.lower()
    if suffix in MEDIA_TYPE_OVERRIDES:
        return MEDIA_TYPE_OVERRIDES[suffix]
    media_type, _ = mimetypes.guess_type(str(path))
    return media_type or DEFAULT_MEDIA_TYPE


def is_text_media_type(media_type: str) -> bool:
    return "text" in media_type


class ContentSource(Protocol):
    """Anything that declares a media type and can hand over its content."""

    media_type: str

    def read_text(self) -> str:
        ...

    def read_bytes(self) -> bytes:
        ...


@dataclass(frozen=True)
class FileSource:
    path: Path
    media_type: str | None = None

    def __post_init__(self):
        object.__setattr__(self, "path", Path(self.path))
        if not self.media_type:
            object.__setattr__(self, "media_type", guess_media_type(self.path))

    def read_text(self) -> str:
        # newlines are kept as-is and undecodable bytes become U+FFFD
        return self.path.read_bytes().decode("utf-8", errors="replace")

    def read_bytes(self) -> bytes:
        return self.path.read_bytes()


@dataclass(frozen=True)
class ContentPayload:
    """
    The body of one response before compression, tagged with its media type.

    `body` is a str when the media type is textual and bytes otherwise, but
    either form is accepted and compresses to the same result.
    """

    body: str | bytes
    media_type: str

    @property
    def is_text(self) -> bool:
        return is_text_media_type(self.media_type)

    def to_bytes(self) -> bytes:
        if isinstance(self.body, str):
            return self.body.encode("utf-8")
        return bytes(self.body)

    @classmethod
    def from_source(cls, source: ContentSource) -> "ContentPayload":
        """
        Reads `source` as text when its media type contains "text",
        otherwise as raw bytes.

        Raises SourceReadFailure if the source cannot be read.
        """
        try:
            if is_text_media_type(source.media_type):
                body: str | bytes = source.read_text()
            else:
                body = source.read_bytes()
        except OSError as exc:
            raise SourceReadFailure(getattr(source, "path", source)) from exc
        return cls(body, source.media_type)
