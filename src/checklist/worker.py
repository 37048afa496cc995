"""Entrypoint for the long-running change-feed listener."""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from typing import Iterable, List, Optional

from checklist.cache import Subscription
from checklist.config import settings
from checklist.engine import ChecklistEngine
from checklist.models import ChecklistType
from checklist.sync import RESULTS_KEY

LOGGER = logging.getLogger(__name__)


def watched_keys() -> List[str]:
    return [kind.value for kind in ChecklistType] + [RESULTS_KEY]


def _log_change(key: str):
    def callback() -> None:
        LOGGER.info("Change received for %s", key)

    return callback


async def run_listener(
    engine: ChecklistEngine,
    stop: asyncio.Event,
    keys: Optional[Iterable[str]] = None,
) -> None:
    """Listen for remote changes until ``stop`` is set."""
    subscriptions: List[Subscription] = [
        engine.subscribe(key, _log_change(key)) for key in (keys or watched_keys())
    ]
    try:
        await engine.start()
        LOGGER.info("Listener running; watching %d keys", len(subscriptions))
        await stop.wait()
    finally:
        for subscription in subscriptions:
            subscription.close()
        await engine.stop()
        LOGGER.info("Listener stopped")


async def _serve() -> None:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(signum, stop.set)
        except NotImplementedError:  # pragma: no cover - platforms without signal support
            LOGGER.debug("Signal handler for %s unavailable", signum)
    await run_listener(ChecklistEngine.from_settings(settings), stop)


def _configure_logging() -> None:
    logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))


def main() -> None:
    _configure_logging()
    LOGGER.info("Starting change listener on %s", settings.redis_url)
    asyncio.run(_serve())


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:  # pragma: no cover - graceful shutdown
        sys.exit(0)
