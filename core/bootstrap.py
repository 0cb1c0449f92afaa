"""
Bootstrap — Builds a Dispatcher from settings and runs it until signalled.

Usage:
    notify-dispatch --config config/settings.yaml

    # or, embedded in another asyncio application:
    dispatcher = await create_dispatcher(get_settings())
    await dispatcher.start()
"""
from __future__ import annotations

import argparse
import asyncio
import signal
import structlog
from typing import Any, Callable, Mapping, Optional

from channels.factory import create_email_transport, create_sms_transport
from config.logging import configure_logging
from config.settings import Settings, get_settings, load_settings
from core.dispatcher import Dispatcher
from core.renderer import Renderer
from database.store_factory import create_repositories

logger = structlog.get_logger()


async def create_dispatcher(
    settings: Settings,
    helpers: Optional[Mapping[str, Callable[..., Any]]] = None,
) -> Dispatcher:
    """Wire repositories, transports and renderer from settings (not started)."""
    db = settings.database
    if db.store_backend == "sql":
        from database.session import init_db
        await init_db(db.url)

    job_repo, template_repo = create_repositories({
        "store_backend": db.store_backend,
        "store_file_dir": db.store_file_dir,
    })

    q = settings.queue
    return Dispatcher(
        job_repo=job_repo,
        template_repo=template_repo,
        email_transport=create_email_transport(settings.email),
        sms_transport=create_sms_transport(settings.sms),
        renderer=Renderer(static_params=settings.dispatch.static_params, helpers=helpers),
        fallback_locale=settings.dispatch.fallback_locale,
        capacity=q.capacity,
        worker_count=q.worker_count,
        enqueue_timeout=q.enqueue_timeout,
        max_pending_enqueues=q.max_pending_enqueues,
    )


async def run(settings: Settings) -> None:
    """Start the dispatcher and stop it on SIGINT / SIGTERM."""
    dispatcher = await create_dispatcher(settings)
    await dispatcher.start()

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:  # Windows
            pass

    logger.info("notify_dispatch_running", app=settings.app_name)
    await dispatcher.shutdown(stop)

    if settings.database.store_backend == "sql":
        from database.session import close_db
        await close_db()


def main() -> None:
    parser = argparse.ArgumentParser(description="Notification dispatcher")
    parser.add_argument("--config", default=None, help="Path to settings.yaml")
    args = parser.parse_args()

    settings = load_settings(args.config) if args.config else get_settings()
    configure_logging(settings)
    asyncio.run(run(settings))


if __name__ == "__main__":
    main()
