# evalportal/services/guards.py
"""
Guard chains for assignment transitions.

A chain is an ordered list of Guard(name, check, error). Guards are evaluated
in order against a TransitionContext and the first failing guard's error is
returned (first_failure) or raised (enforce). Callers hold row locks on the
assignment and destination evaluator while the chain runs.
"""
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, List, NamedTuple, Optional

from evalportal.core.config import settings
from evalportal.core.exceptions import (
    AssignmentError,
    AuthorizationError,
    BusinessRuleError,
    ConflictError,
    RateLimitError,
)
from evalportal.core.timeutil import ensure_utc
from evalportal.models.assignment import EVALUATED, SubmissionAssignment
from evalportal.models.user import User
from evalportal.services.capacity_service import CAPACITY_RULE, has_room


@dataclass
class TransitionContext:
    actor: User
    now: datetime
    assignment: Optional[SubmissionAssignment] = None
    expected_version: Optional[int] = None
    destination: Optional[User] = None
    destination_load: int = 0
    weight: int = 1
    allow_admin: bool = False


class Guard(NamedTuple):
    name: str
    check: Callable[[TransitionContext], bool]
    error: Callable[[TransitionContext], AssignmentError]


def lock_is_stale(assignment: SubmissionAssignment, now: datetime) -> bool:
    locked_at = ensure_utc(assignment.locked_at)
    if locked_at is None:
        return True
    return now - locked_at >= timedelta(seconds=settings.LOCK_LEASE_SECONDS)


def cooldown_remaining(assignment: SubmissionAssignment, now: datetime) -> int:
    last = ensure_utc(assignment.last_reallocated_at)
    if last is None:
        return 0
    elapsed = (now - last).total_seconds()
    return max(0, math.ceil(settings.REALLOCATION_COOLDOWN_SECONDS - elapsed))


# -- checks -----------------------------------------------------------------

def _version_matches(ctx: TransitionContext) -> bool:
    return ctx.expected_version is None or ctx.assignment.version == ctx.expected_version


def _is_owner(ctx: TransitionContext) -> bool:
    if ctx.allow_admin and ctx.actor.role == "admin":
        return True
    return ctx.assignment.faculty_id == ctx.actor.id


def _not_terminal(ctx: TransitionContext) -> bool:
    return ctx.assignment is None or ctx.assignment.status != EVALUATED


def _lock_free(ctx: TransitionContext) -> bool:
    assignment = ctx.assignment
    if assignment is None or assignment.locked_by is None:
        return True
    if assignment.locked_by == ctx.actor.id:
        return True
    return lock_is_stale(assignment, ctx.now)


def _destination_available(ctx: TransitionContext) -> bool:
    return bool(ctx.destination.is_available)


def _destination_has_capacity(ctx: TransitionContext) -> bool:
    return has_room(ctx.destination_load, ctx.weight, ctx.destination.max_capacity)


def _below_reallocation_ceiling(ctx: TransitionContext) -> bool:
    return ctx.assignment.reallocation_count < settings.MAX_REALLOCATIONS


def _cooldown_elapsed(ctx: TransitionContext) -> bool:
    return cooldown_remaining(ctx.assignment, ctx.now) == 0


# -- guards -----------------------------------------------------------------

STALE_READ = Guard(
    "stale_read",
    _version_matches,
    lambda ctx: ConflictError(
        "Assignment changed since it was loaded",
        {
            "expected_version": ctx.expected_version,
            "current_version": ctx.assignment.version,
        },
    ),
)

OWNERSHIP = Guard(
    "ownership",
    _is_owner,
    lambda ctx: AuthorizationError("You are not assigned to this submission"),
)

NOT_TERMINAL = Guard(
    "not_terminal",
    _not_terminal,
    lambda ctx: BusinessRuleError("Submission has already been evaluated"),
)

LOCK_CHECK = Guard(
    "lock_check",
    _lock_free,
    lambda ctx: ConflictError(
        "Submission is locked by an active evaluation session",
        {"locked_by": ctx.assignment.locked_by},
    ),
)

DESTINATION_AVAILABLE = Guard(
    "destination_available",
    _destination_available,
    lambda ctx: BusinessRuleError(f"Faculty {ctx.destination.id} is not available"),
)

DESTINATION_CAPACITY = Guard(
    "destination_capacity",
    _destination_has_capacity,
    lambda ctx: BusinessRuleError(
        f"Faculty {ctx.destination.id} is at capacity",
        {
            "current_load": ctx.destination_load,
            "submission_weight": ctx.weight,
            "max_capacity": ctx.destination.max_capacity,
            "rule": CAPACITY_RULE,
        },
    ),
)

REALLOCATION_CEILING = Guard(
    "reallocation_ceiling",
    _below_reallocation_ceiling,
    lambda ctx: BusinessRuleError(
        f"Submission has reached the reallocation limit ({settings.MAX_REALLOCATIONS})"
    ),
)

COOLDOWN = Guard(
    "cooldown",
    _cooldown_elapsed,
    lambda ctx: RateLimitError(
        "Reallocation cooldown has not elapsed",
        cooldown_remaining(ctx.assignment, ctx.now),
    ),
)


REALLOCATION_GUARDS: List[Guard] = [
    STALE_READ,
    OWNERSHIP,
    NOT_TERMINAL,
    LOCK_CHECK,
    DESTINATION_AVAILABLE,
    DESTINATION_CAPACITY,
    REALLOCATION_CEILING,
    COOLDOWN,
]

# start / heartbeat-free transitions driven by the owning evaluator
EVALUATION_GUARDS: List[Guard] = [
    STALE_READ,
    OWNERSHIP,
    NOT_TERMINAL,
    LOCK_CHECK,
]

# admin bulk / manual placement; assignment may not exist yet
ASSIGNMENT_GUARDS: List[Guard] = [
    NOT_TERMINAL,
    DESTINATION_AVAILABLE,
    DESTINATION_CAPACITY,
]


def first_failure(guards: List[Guard], ctx: TransitionContext) -> Optional[AssignmentError]:
    for guard in guards:
        if not guard.check(ctx):
            return guard.error(ctx)
    return None


def enforce(guards: List[Guard], ctx: TransitionContext) -> None:
    error = first_failure(guards, ctx)
    if error is not None:
        raise error
