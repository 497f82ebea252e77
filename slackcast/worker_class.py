"""Custom RQ Worker with unified logging, and the worker-pool entry point.

Launch a single worker with:
    rq worker --worker-class slackcast.worker_class.SlackcastWorker slack-jobs --with-scheduler

or the full pool (``WORKER_CONCURRENCY`` workers) with:
    slackcast-worker
"""

from __future__ import annotations

import logging
import os

from rq import SimpleWorker
from rq.worker_pool import WorkerPool

from slackcast.config import settings
from slackcast.logging_config import setup_logging


class SlackcastWorker(SimpleWorker):
    def __init__(self, *args, **kwargs):
        setup_logging(f"Worker-{os.getpid()}")
        super().__init__(*args, **kwargs)

    def work(self, *args, **kwargs):
        kwargs.setdefault("with_scheduler", True)
        return super().work(*args, **kwargs)


def main() -> None:
    from slackcast.services.queue import get_connection

    setup_logging("Pool")
    logger = logging.getLogger(__name__)
    logger.info(
        "Starting %d workers on queue %s", settings.WORKER_CONCURRENCY, settings.QUEUE_NAME
    )
    pool = WorkerPool(
        [settings.QUEUE_NAME],
        connection=get_connection(),
        num_workers=settings.WORKER_CONCURRENCY,
        worker_class=SlackcastWorker,
    )
    pool.start(logging_level=settings.LOG_LEVEL)


if __name__ == "__main__":
    main()
