from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable

from rq import Queue
from rq_scheduler import Scheduler
from redis import Redis

from examprep.utils.config import settings


QUEUE_NAME = "scheduler"


def _redis_conn() -> Redis:
    # rq pickles job payloads, so it cannot share the decode_responses client
    return Redis(
        db=settings.redis_db,
        port=settings.redis_port,
        host=settings.redis_host,
        password=settings.redis_password,
        socket_timeout=2.0,
    )


def get_scheduler() -> Scheduler:
    return Scheduler(queue_name=QUEUE_NAME, connection=_redis_conn())


def get_queue() -> Queue:
    return Queue(name=QUEUE_NAME, connection=_redis_conn())


def schedule_at(run_at: datetime, func: Callable, *args, **kwargs) -> None:
    sched = get_scheduler()
    if run_at.tzinfo is None:
        run_at = run_at.replace(tzinfo=timezone.utc)
    sched.enqueue_at(run_at, func, *args, **kwargs)
