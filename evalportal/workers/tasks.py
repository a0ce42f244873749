"""
Assignment Tasks for Worker
These tasks are executed by RQ workers so balancer runs happen outside requests
"""

import logging
from typing import Callable

from sqlalchemy.orm import Session

from evalportal.core.exceptions import AssignmentError
from evalportal.db.session import SessionLocal
from evalportal.services import assignment_service

logger = logging.getLogger(__name__)


def smart_assign_task(session_factory: Callable[[], Session] = SessionLocal) -> dict:
    """
    Worker task: assign every unassigned pending submission.

    Returns a result summary dict; failures are reported in the dict
    rather than raised, so RQ does not retry a run that already rolled back.
    """
    db = session_factory()
    try:
        logger.info("Starting smart assign task")
        count = assignment_service.smart_assign(db)
        return {
            "status": "success",
            "assigned_count": count,
            "message": f"Assigned {count} submissions",
        }

    except Exception as e:
        logger.error(f"Smart assign task failed: {e}", exc_info=True)
        return {
            "status": "error",
            "error": str(e),
            "message": "Smart assign failed",
        }

    finally:
        db.close()


def redistribute_task(
    from_faculty_id: int,
    session_factory: Callable[[], Session] = SessionLocal,
) -> dict:
    db = session_factory()
    try:
        logger.info(f"Starting redistribute task for faculty {from_faculty_id}")
        count = assignment_service.redistribute(db, from_faculty_id=from_faculty_id)
        return {
            "status": "success",
            "from_faculty_id": from_faculty_id,
            "redistributed_count": count,
            "message": f"Moved {count} assignments from faculty {from_faculty_id}",
        }

    except AssignmentError as e:
        logger.warning(f"Redistribute rejected for faculty {from_faculty_id}: {e}")
        return {
            "status": "error",
            "from_faculty_id": from_faculty_id,
            "error": str(e),
            "message": f"Redistribute failed for faculty {from_faculty_id}",
        }

    except Exception as e:
        logger.error(
            f"Unexpected error during redistribute task for faculty {from_faculty_id}: {e}",
            exc_info=True,
        )
        return {
            "status": "error",
            "from_faculty_id": from_faculty_id,
            "error": str(e),
            "message": "Unexpected error during redistribute",
        }

    finally:
        db.close()
