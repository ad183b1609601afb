from __future__ import annotations

import logging
import sys
from typing import List, Optional, Sequence

from bandspider.config import SpiderConfig
from bandspider.database import Database
from bandspider.factory import HandlerFactory
from bandspider.log import configure_logging
from bandspider.metrics import CrawlMetrics
from bandspider.proxy import IdentityProbe, ProxyClient
from bandspider.rate_limiter import RateLimiter
from bandspider.spider import BandSpider
from bandspider.super_tags import SuperTagUpdate

LOGGER = logging.getLogger("bandspider")


def _read_lines(path: str) -> List[str]:
    lines: List[str] = []
    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if line and not line.startswith("#"):
                lines.append(line)
    return lines


def _load_seeds(path: str) -> List[str]:
    seeds = _read_lines(path)
    if not seeds:
        raise ValueError(f"No URLs found in {path}")
    return seeds


def _build_proxy(config: SpiderConfig) -> Optional[ProxyClient]:
    if not config.use_proxy:
        return None
    probe = IdentityProbe(config.probe_url) if config.probe_url else None
    return ProxyClient(
        command=config.proxy_command,
        command_timeout_ms=config.proxy_command_timeout_ms,
        cooldown=config.proxy_cooldown,
        retry_delay=config.proxy_retry_delay,
        probe=probe,
    )


def run(config: SpiderConfig) -> int:
    database = Database(config.database_url)
    database.create_schema()

    proxy = _build_proxy(config)
    factory = HandlerFactory(
        database,
        proxy=proxy,
        rate_limiter=RateLimiter(qps=config.qps),
        navigation_timeout_ms=config.navigation_timeout_ms,
    )
    spider = BandSpider(config, database, proxy=proxy, factory=factory, metrics=CrawlMetrics())

    seeds = _load_seeds(config.seed_file) if config.seed_file else None
    try:
        totals = spider.run(config.url_type, seeds)
    finally:
        database.close()

    print(
        f"\nDONE: processed={totals.processed} failed={totals.failed} "
        f"total={totals.processed + totals.failed} throughput/min={totals.throughput_per_min}"
    )
    return 0


def run_super_tags(config: SpiderConfig) -> int:
    database = Database(config.database_url)
    database.create_schema()
    update = SuperTagUpdate(database)
    try:
        if config.super_tag_file:
            update.load(_read_lines(config.super_tag_file))
        summary = update.run()
    finally:
        database.close()

    print(f"\nDONE: tags={summary.tags} linked={summary.linked} unmatched={summary.unmatched}")
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    config = SpiderConfig.from_args(argv)
    configure_logging(config.log_level)
    if config.super_tags:
        LOGGER.info("Linking tags to super tags in %s", config.database_url)
        return run_super_tags(config)
    LOGGER.info("Crawling %s URLs into %s", config.url_type.value, config.database_url)
    return run(config)


if __name__ == "__main__":
    sys.exit(main())
