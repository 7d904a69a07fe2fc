"""
Scheduled digests for messaging subscribers.

Runs once per DIGEST_INTERVAL_SECONDS, sends the daily update to every
subscriber that opted in and, once a week, the weekly report. Sends are
spaced by DIGEST_SEND_DELAY_SECONDS; a failed recipient is logged and the
run moves on to the next one.
"""

import asyncio
import datetime
import logging
from typing import Callable

from financebuddy.config import DIGEST_INTERVAL_SECONDS, DIGEST_SEND_DELAY_SECONDS
from financebuddy.graph.state import UserContext
from financebuddy.services.messaging import daily_update_message, weekly_report_message
from financebuddy.services.profile import Subscriber, UserContextProvider
from financebuddy.services.transport import TransportSender

logger = logging.getLogger(__name__)

_WEEKLY_COOLDOWN = datetime.timedelta(days=7)


async def send_scheduled_updates(
    subscribers: list[Subscriber],
    sender: TransportSender,
    context_provider: UserContextProvider,
    build_message: Callable[[UserContext], str] = daily_update_message,
    opt_in: str = "daily_updates",
    delay: float = DIGEST_SEND_DELAY_SECONDS,
) -> dict:
    results = {"sent": 0, "failed": 0, "skipped": 0}
    first = True
    for subscriber in subscribers:
        if not subscriber.get(opt_in):
            results["skipped"] += 1
            continue
        if not first and delay > 0:
            await asyncio.sleep(delay)
        first = False
        try:
            text = build_message(context_provider.get_context(subscriber["user_id"]))
            ok = await sender.send(subscriber["number"], text)
        except Exception as exc:
            logger.error("Scheduled %s to %s failed: %s", opt_in, subscriber.get("number"), exc)
            ok = False
        results["sent" if ok else "failed"] += 1
    logger.info("Scheduled %s run: %s", opt_in, results)
    return results


class DigestScheduler:
    """Background task that sends daily updates and weekly reports."""

    def __init__(
        self,
        context_provider: UserContextProvider,
        sender: TransportSender,
        interval: float = DIGEST_INTERVAL_SECONDS,
        delay: float = DIGEST_SEND_DELAY_SECONDS,
    ) -> None:
        self._context_provider = context_provider
        self._sender = sender
        self._interval = interval
        self._delay = delay
        self._task: asyncio.Task | None = None
        self._last_weekly: datetime.datetime | None = None

    def start(self) -> None:
        self._task = asyncio.create_task(self._loop())
        logger.info("DigestScheduler started (every %ss).", self._interval)

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self.run_once()
            except Exception as exc:
                logger.error("DigestScheduler.run_once failed: %s", exc)

    async def run_once(self, now: datetime.datetime | None = None) -> dict:
        now = now or datetime.datetime.utcnow()
        subscribers = self._context_provider.subscribers()
        summary = {
            "daily": await send_scheduled_updates(
                subscribers, self._sender, self._context_provider, delay=self._delay
            )
        }
        if self._last_weekly is None or now - self._last_weekly >= _WEEKLY_COOLDOWN:
            summary["weekly"] = await send_scheduled_updates(
                subscribers,
                self._sender,
                self._context_provider,
                build_message=weekly_report_message,
                opt_in="weekly_reports",
                delay=self._delay,
            )
            self._last_weekly = now
        return summary
