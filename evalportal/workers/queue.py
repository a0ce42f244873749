# evalportal/workers/queue.py

from redis import Redis
from rq import Queue

from evalportal.core.config import settings

ASSIGNMENT_QUEUE_NAME = "assignments"

_redis_conn: Redis | None = None


def get_redis_connection() -> Redis:
    global _redis_conn
    if _redis_conn is None:
        _redis_conn = Redis.from_url(settings.REDIS_URL)
    return _redis_conn


def get_queue(name: str = ASSIGNMENT_QUEUE_NAME) -> Queue:
    return Queue(name, connection=get_redis_connection())


def enqueue_smart_assign_task() -> str:
    from evalportal.workers.tasks import smart_assign_task

    job = get_queue().enqueue(smart_assign_task)
    return job.id


def enqueue_redistribute_task(from_faculty_id: int) -> str:
    from evalportal.workers.tasks import redistribute_task

    job = get_queue().enqueue(redistribute_task, from_faculty_id)
    return job.id
