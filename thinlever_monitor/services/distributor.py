"""Live update distribution — fetch on a timer, evaluate, fan out to subscribers."""
from __future__ import annotations

import asyncio
import logging
import math
from datetime import datetime, timezone
from typing import Any, Callable

from ..config import PolicyConfig
from ..evaluator import evaluate
from ..interfaces.account_source import AccountSource
from ..interfaces.subscriber import Subscriber
from ..models import Snapshot, format_timestamp

logger = logging.getLogger(__name__)

UPDATE_EVENT = "positionUpdate"

# A subscriber that cannot take a frame within this many seconds is dropped
SEND_TIMEOUT_SECONDS = 5.0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Distributor:
    """Owns the subscriber registry and the recurring fetch-evaluate-broadcast tick.

    Ticks are serialized: a tick runs to completion (success or failure)
    before the next one starts. A fetch failure skips that tick's broadcast
    and leaves the registry untouched. Each send is bounded by
    ``send_timeout`` so one stalled client cannot hold the tick lock.
    """

    def __init__(
        self,
        policy: PolicyConfig,
        source: AccountSource,
        clock: Callable[[], datetime] = _utcnow,
        send_timeout: float = SEND_TIMEOUT_SECONDS,
    ) -> None:
        interval = policy.poll_interval_seconds
        if not math.isfinite(interval) or interval <= 0:
            raise ValueError(f"poll interval must be positive and finite, got {interval!r}")
        self._policy = policy
        self._send_timeout = send_timeout
        self._source = source
        self._clock = clock
        self._subscribers: set[Subscriber] = set()
        self._tick_lock = asyncio.Lock()
        self._initial_sends: set[asyncio.Task] = set()
        self._last_update: datetime | None = None
        self._consecutive_failures = 0

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def is_subscribed(self, subscriber: Subscriber) -> bool:
        return subscriber in self._subscribers

    # ------------------------------------------------------------------
    # Subscriber registry
    # ------------------------------------------------------------------

    def subscribe(self, subscriber: Subscriber) -> asyncio.Task:
        """Register a subscriber and send it a fresh snapshot right away.

        The initial send runs as a background task, independent of the
        shared timer; the task is returned so callers may await it.
        """
        self._subscribers.add(subscriber)
        logger.info("Client connected (%d total)", len(self._subscribers))

        task = asyncio.create_task(self._send_initial(subscriber))
        self._initial_sends.add(task)
        task.add_done_callback(self._initial_sends.discard)
        return task

    def unsubscribe(self, subscriber: Subscriber) -> None:
        if subscriber in self._subscribers:
            self._subscribers.discard(subscriber)
            logger.info("Client disconnected (%d remaining)", len(self._subscribers))

    # ------------------------------------------------------------------
    # Fetch / evaluate / send
    # ------------------------------------------------------------------

    async def capture(self) -> Snapshot:
        """Fetch raw account state once and evaluate it. Raises on fetch failure."""
        fetch = self._source.read_account_state()
        timeout = self._policy.fetch_timeout_seconds
        if timeout is not None:
            raw = await asyncio.wait_for(fetch, timeout)
        else:
            raw = await fetch
        return evaluate(raw, self._policy, self._clock())

    async def _send_initial(self, subscriber: Subscriber) -> None:
        try:
            snapshot = await self.capture()
        except Exception as e:
            logger.error(
                "Error fetching position data for new client: %s: %s",
                type(e).__name__, e,
            )
            return

        if subscriber not in self._subscribers:
            return

        try:
            await self._send(subscriber, snapshot.to_dict())
        except Exception as e:
            logger.warning("Initial send failed, dropping client: %s", e)
            self.unsubscribe(subscriber)

    async def _send(self, subscriber: Subscriber, payload: dict[str, Any]) -> None:
        await asyncio.wait_for(subscriber.send(UPDATE_EVENT, payload), self._send_timeout)

    async def broadcast(self, snapshot: Snapshot) -> int:
        """Send a snapshot to every current subscriber. Returns deliveries.

        A subscriber whose send fails or times out is dropped; the others
        are unaffected.
        """
        targets = list(self._subscribers)
        if not targets:
            return 0

        payload = snapshot.to_dict()
        results = await asyncio.gather(
            *(self._send(subscriber, payload) for subscriber in targets),
            return_exceptions=True,
        )

        delivered = 0
        for subscriber, result in zip(targets, results):
            if isinstance(result, asyncio.TimeoutError):
                logger.warning(
                    "Send to %r timed out after %ss, dropping client",
                    subscriber, self._send_timeout,
                )
                self.unsubscribe(subscriber)
            elif isinstance(result, BaseException):
                logger.warning("Send failed, dropping client: %s", result)
                self.unsubscribe(subscriber)
            else:
                delivered += 1
        return delivered

    async def tick(self) -> Snapshot | None:
        """One fetch-evaluate-broadcast cycle. Returns None when the fetch failed."""
        async with self._tick_lock:
            try:
                snapshot = await self.capture()
            except Exception as e:
                self._consecutive_failures += 1
                logger.error(
                    "Error fetching position data: %s: %s", type(e).__name__, e
                )
                return None

            self._consecutive_failures = 0
            self._last_update = snapshot.timestamp

            delivered = await self.broadcast(snapshot)
            logger.info(
                "HF %.4f · %s · %s risk — sent to %d client(s)",
                snapshot.health_factor.current,
                snapshot.status.action.value,
                snapshot.status.risk_level.value,
                delivered,
            )
            return snapshot

    async def run(self) -> None:
        """Tick every poll interval until cancelled.

        A tick that overruns its slot delays the next one instead of
        overlapping it.
        """
        interval = self._policy.poll_interval_seconds
        loop = asyncio.get_running_loop()
        logger.info("Starting position updates (every %s seconds)", interval)

        next_at = loop.time() + interval
        while True:
            await asyncio.sleep(max(0.0, next_at - loop.time()))
            try:
                await self.tick()
            except Exception:
                logger.exception("Unexpected error in update loop")
            next_at = max(next_at + interval, loop.time())

    async def close(self) -> None:
        """Cancel in-flight initial sends and forget all subscribers."""
        pending = list(self._initial_sends)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        self._subscribers.clear()

    def health(self) -> dict[str, Any]:
        if self._consecutive_failures:
            status = "degraded"
        elif self._last_update is None:
            status = "starting"
        else:
            status = "healthy"
        return {
            "status": status,
            "subscribers": len(self._subscribers),
            "lastUpdate": (
                format_timestamp(self._last_update) if self._last_update else None
            ),
            "consecutiveFailures": self._consecutive_failures,
        }
