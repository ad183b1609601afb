from __future__ import annotations

import json
import logging
import time
from dataclasses import asdict
from typing import Any, Dict, Optional

from .models import StatisticSnapshot

LOG_FORMAT = "%(asctime)s %(levelname)-7s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Route every module logger to a single stream handler on the root logger."""
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    root.setLevel(getattr(logging, str(level).upper(), logging.INFO))


def stat_line(event: str, snapshot: StatisticSnapshot, extra: Optional[Dict[str, Any]] = None) -> str:
    """Single-line JSON record for periodic and terminal statistics."""
    log: Dict[str, Any] = {"timestamp": time.time(), "event": event, **asdict(snapshot)}
    if extra:
        log.update(extra)
    return json.dumps(log, ensure_ascii=False)
