"""
Run the demo site: python -m webperf [--port 3001] [--site-dir src]
"""
import argparse
import logging
from dataclasses import replace
from pathlib import Path

import uvicorn

from .app import create_app
from .config import Settings
from .headers import MATCH_MODES

logger = logging.getLogger("webperf")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="webperf",
        description="Serve the bad/good web performance demo site.",
    )
    parser.add_argument("--host")
    parser.add_argument("--port", type=int)
    parser.add_argument("--site-dir", type=Path)
    parser.add_argument("--match", choices=MATCH_MODES)
    parser.add_argument("--log-level")
    return parser.parse_args(argv)


def settings_from_args(args: argparse.Namespace, base: Settings | None = None) -> Settings:
    overrides = {
        key: value
        for key, value in vars(args).items()
        if value is not None
    }
    return replace(base or Settings(), **overrides)


def main(argv: list[str] | None = None) -> None:
    settings = settings_from_args(parse_args(argv))
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    base_url = f"http://{settings.host}:{settings.port}"
    logger.info("serving %s", settings.site_dir)
    logger.info("bad practices:  %s/bad", base_url)
    logger.info("good practices: %s/good", base_url)

    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
