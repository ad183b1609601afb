"""Bandcamp account/item crawler package.

Crawls fan accounts and the albums/tracks they own, persisting the
relationships between them into a relational store. Built to run for
long unattended sessions against a rate-limiting server and to resume
from durable state after a crash.

Key modules:
    models          -- UrlType, QueueEvent, page data and statistic dataclasses
    urls            -- URL shape helpers (account vs item)
    entities        -- SQLAlchemy ORM tables
    database        -- Database engine/session owner
    repositories    -- Account/Item/Tag/SuperTag repositories (idempotent inserts, task state)
    super_tags      -- SuperTagUpdate, fuzzy grouping of tags under super tags
    queue           -- ProcessingQueue, the in-memory deduplicated frontier
    proxy           -- ProxyClient identity rotation gate and LocationPool
    handlers        -- BasePageHandler, AccountHandler, ItemHandler
    factory         -- HandlerFactory for picking a handler per URL type
    browser         -- BrowserSession, per-worker Playwright lifecycle
    controller      -- WorkerPool for running N worker loops
    spider          -- BandSpider orchestrator
    metrics         -- CrawlMetrics for throughput and circuit breaking
    rate_limiter    -- RateLimiter for navigation pacing
    backoff         -- BackoffStrategy for exponential retry delays
    config          -- SpiderConfig and CLI argument parsing
    log             -- logging setup and JSON statistic lines
    exceptions      -- SpiderError hierarchy
"""
