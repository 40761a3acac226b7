"""
Exceptions raised while preparing content for a response.
"""
import os


class SourceReadFailure(Exception):
    """The content source could not be read (e.g. the file is missing)."""

    def __init__(self, path: str | os.PathLike[str]):
        self.path = path
        super().__init__(f"cannot read content source: {path}")
