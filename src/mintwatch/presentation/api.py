"""
Read-only HTTP surface over the aggregate store.

`GET /mintEvents` returns the current snapshot, rate-limited per client IP with a
fixed window. The ingestion engine, when given, runs as a background task for the
lifetime of the app.
"""

import asyncio
import math
import time
from contextlib import asynccontextmanager
from typing import Callable

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from ..application.ingestion import IngestionEngine
from ..config import Settings
from ..domain.state import AggregateStore
from ..logging import logger


class FixedWindowRateLimiter:
    """At most `max_requests` per key in each `window_s`-second window."""

    def __init__(self, max_requests: int, window_s: float, clock: Callable[[], float] = time.monotonic):
        self.max_requests = max_requests
        self.window_s = window_s
        self.clock = clock
        self._windows: dict[str, tuple[float, int]] = {}

    def hit(self, key: str) -> tuple[bool, float]:
        """Count one request. Returns (allowed, seconds until the window resets)."""
        now = self.clock()
        started, count = self._windows.get(key, (now, 0))
        if now - started >= self.window_s:
            started, count = now, 0
        count += 1
        self._windows[key] = (started, count)
        self._prune(now)
        return count <= self.max_requests, self.window_s - (now - started)

    def _prune(self, now: float) -> None:
        if len(self._windows) < 10_000:
            return
        self._windows = {k: v for k, v in self._windows.items() if now - v[0] < self.window_s}


def create_app(
    aggregates: AggregateStore,
    settings: Settings,
    engine: IngestionEngine | None = None,
    limiter: FixedWindowRateLimiter | None = None,
) -> FastAPI:
    limiter = limiter or FixedWindowRateLimiter(settings.rate_limit_max, settings.rate_limit_window_s)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if engine is None:
            yield
            return
        stop = asyncio.Event()
        task = asyncio.create_task(engine.run(settings.poll_interval_s, stop))
        logger.info("Polling for new MintExecuted events...")
        try:
            yield
        finally:
            stop.set()
            await task

    app = FastAPI(title="mintwatch", lifespan=lifespan)
    app.state.limiter = limiter

    @app.get("/mintEvents")
    async def mint_events(request: Request):
        client = request.client.host if request.client else "unknown"
        allowed, reset_in = limiter.hit(client)
        if not allowed:
            return PlainTextResponse(
                settings.rate_limit_message,
                status_code=429,
                headers={"Retry-After": str(max(1, math.ceil(reset_in)))},
            )
        return JSONResponse(aggregates.snapshot())

    @app.get("/health")
    async def health():
        return {
            "users": len(aggregates),
            "processed_events": len(engine.ledger) if engine else None,
            "cursor": engine.cursor if engine else None,
            "caught_up": engine.caught_up if engine else None,
        }

    return app
