# evalportal/api/v1/endpoints/health.py
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.orm import Session

from evalportal.db.session import get_db
from evalportal.workers.queue import get_queue

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/live")
def live_health():
    return {"status": "ok"}


@router.get("/db")
def db_health(db: Session = Depends(get_db)):
    db.execute(text("SELECT 1"))
    return {"status": "ok"}


@router.get("/queue")
def queue_health():
    """
    Redis reachable + how many balancer jobs are waiting.
    """
    queue = get_queue()
    try:
        queue.connection.ping()
        pending = queue.count
    except RedisError as e:
        logger.warning(f"Assignment queue unreachable: {e}")
        return JSONResponse(status_code=503, content={"status": "unavailable", "queue": queue.name})
    return {"status": "ok", "queue": queue.name, "pending_jobs": pending}
