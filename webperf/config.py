"""
Settings for the demo server, read from the environment or a `.env` file.
"""
import os
from dataclasses import dataclass
from pathlib import Path

from starlette.config import Config

from .negotiation import NegotiatorConfig

ENV_FILE = ".env"

config = Config(ENV_FILE if os.path.isfile(ENV_FILE) else None)

SITE_DIR = config("WEBPERF_SITE_DIR", cast=Path, default=Path("src"))
HOST = config("WEBPERF_HOST", default="127.0.0.1")
PORT = config("WEBPERF_PORT", cast=int, default=3001)
MATCH = config("WEBPERF_MATCH", default="substring")
LOG_LEVEL = config("WEBPERF_LOG_LEVEL", default="INFO")


@dataclass(frozen=True)
class Settings:
    site_dir: Path = SITE_DIR
    host: str = HOST
    port: int = PORT
    match: str = MATCH
    log_level: str = LOG_LEVEL

    def negotiator_config(self) -> NegotiatorConfig:
        return NegotiatorConfig(match=self.match)
