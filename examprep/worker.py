"""rq worker for scheduled jobs (attempt auto-submit).

Run alongside rqscheduler: `python -m examprep.worker`.
"""
from __future__ import annotations

from rq import Worker

from examprep.connections.mongo import init_mongo, close_mongo
from examprep.connections.redis import init_redis, close_redis
from examprep.services.scheduler import get_queue
from examprep.utils.logging_config import configure_logging


def main() -> None:
    logger = configure_logging()
    init_mongo()
    init_redis()
    try:
        queue = get_queue()
        logger.info("Worker listening on queue %s", queue.name)
        Worker([queue], connection=queue.connection).work(with_scheduler=False)
    finally:
        close_redis()
        close_mongo()


if __name__ == "__main__":
    main()
