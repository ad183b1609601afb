from __future__ import annotations

from typing import Dict, Optional, Union

from .database import Database
from .handlers import AccountHandler, BasePageHandler, ItemHandler
from .models import QueueEvent, UrlType
from .proxy import ProxyClient
from .rate_limiter import RateLimiter


class HandlerFactory:
    """Creates page handlers by URL type.

    Handlers keep no per-page state, so one instance per type is cached
    and shared by every worker thread.
    """

    def __init__(
        self,
        database: Database,
        proxy: Optional[ProxyClient] = None,
        rate_limiter: Optional[RateLimiter] = None,
        navigation_timeout_ms: int = 3_500,
    ) -> None:
        self._database = database
        self._proxy = proxy
        self._rate_limiter = rate_limiter
        self._timeout_ms = navigation_timeout_ms
        self._cache: Dict[UrlType, BasePageHandler] = {}

    def create_handler(self, target: Union[QueueEvent, UrlType]) -> BasePageHandler:
        kind = target.type if isinstance(target, QueueEvent) else target
        if kind in self._cache:
            return self._cache[kind]

        if kind == UrlType.ACCOUNT:
            handler: BasePageHandler = AccountHandler(
                self._database, self._proxy, self._rate_limiter, self._timeout_ms
            )
        elif kind == UrlType.ITEM:
            handler = ItemHandler(self._database, self._proxy, self._rate_limiter, self._timeout_ms)
        else:
            raise ValueError(f"Unknown url type: {kind}")

        self._cache[kind] = handler
        return handler
