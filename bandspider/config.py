from __future__ import annotations

import argparse
import os
from dataclasses import dataclass, replace
from typing import Mapping, Optional, Sequence

from .database import DEFAULT_DATABASE_URL
from .models import UrlType
from .proxy import DEFAULT_COMMAND

ENV_DB = "BANDSPIDER_DB"
ENV_PROXY_COMMAND = "BANDSPIDER_PROXY_COMMAND"
ENV_LOG_LEVEL = "BANDSPIDER_LOG_LEVEL"


@dataclass(frozen=True)
class SpiderConfig:
    """Runtime settings for one crawl."""

    url_type: UrlType = UrlType.ACCOUNT
    headless: bool = False
    seed_file: Optional[str] = None
    workers: int = 2
    database_url: str = DEFAULT_DATABASE_URL

    queue_capacity: int = 500
    refill_batch: int = 400
    max_failed_count: int = 3
    navigation_timeout_ms: int = 3_500

    browser_endpoint: Optional[str] = None
    qps: float = 0.0

    use_proxy: bool = True
    proxy_command: str = DEFAULT_COMMAND
    proxy_cooldown: float = 15.0
    proxy_retry_delay: float = 60.0
    proxy_command_timeout_ms: int = 30_000
    probe_url: Optional[str] = None

    log_every: int = 1000
    stats_window_secs: int = 60
    recycle_every: int = 200
    failure_ratio: float = 1.5
    min_samples: int = 20
    log_level: str = "INFO"

    super_tags: bool = False
    super_tag_file: Optional[str] = None

    @classmethod
    def from_args(
        cls, argv: Optional[Sequence[str]] = None, environ: Optional[Mapping[str, str]] = None
    ) -> "SpiderConfig":
        args = build_parser().parse_args(argv)
        env = os.environ if environ is None else environ

        config = cls(
            url_type=UrlType.ITEM if args.item else UrlType.ACCOUNT,
            headless=args.headless,
            seed_file=args.file,
            workers=max(1, args.workers),
            browser_endpoint=args.browser_endpoint,
            qps=max(0.0, args.qps),
            use_proxy=not args.no_proxy,
            probe_url=args.probe_url,
            super_tags=args.super_tags,
            super_tag_file=args.super_tag_file,
        )

        # Explicit flags win over the environment.
        database_url = args.db or env.get(ENV_DB) or config.database_url
        proxy_command = args.proxy_command or env.get(ENV_PROXY_COMMAND) or config.proxy_command
        log_level = args.log_level or env.get(ENV_LOG_LEVEL) or config.log_level
        return replace(
            config,
            database_url=_as_database_url(database_url),
            proxy_command=proxy_command,
            log_level=log_level.upper(),
        )


def _as_database_url(value: str) -> str:
    """Accept a bare SQLite file path as well as a SQLAlchemy URL."""
    if "://" in value:
        return value
    return f"sqlite:///{value}"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="bandspider", description="Crawl Bandcamp accounts and items")

    kind = parser.add_mutually_exclusive_group()
    kind.add_argument("--account", action="store_true", help="Crawl fan accounts (default)")
    kind.add_argument("--item", action="store_true", help="Crawl albums and tracks")

    parser.add_argument("--headless", action="store_true", help="Run Chromium without a window")
    parser.add_argument("--file", default=None, help="Seed file with one URL per line")
    parser.add_argument("--workers", type=int, default=2, help="Number of concurrent browser workers")
    parser.add_argument("--db", default=None, help=f"Database URL or SQLite path (env {ENV_DB})")

    parser.add_argument("--browser-endpoint", default=None, help="CDP endpoint of a remote Chromium")
    parser.add_argument("--qps", type=float, default=0.0, help="Global navigation rate limit, 0 to disable")

    parser.add_argument("--proxy-command", default=None, help=f"IP rotation command (env {ENV_PROXY_COMMAND})")
    parser.add_argument("--no-proxy", action="store_true", help="Never rotate the outbound IP")
    parser.add_argument("--probe-url", default=None, help="URL returning the public IP, to confirm rotations")

    parser.add_argument("--super-tags", action="store_true", help="Link stored tags to super tags and exit")
    parser.add_argument("--super-tag-file", default=None, help="Super tag names to store first, one per line")

    parser.add_argument("--log-level", default=None, help=f"Logging level (env {ENV_LOG_LEVEL})")
    return parser
