"""Who may do what to a job: one table keyed by operation."""

import enum
from dataclasses import dataclass

from app.core.exceptions import PermissionDeniedError
from app.models.job import Job
from app.models.user import Role, User


class Relationship(str, enum.Enum):
    ANY = "ANY"
    POSTER = "POSTER"
    NOT_POSTER = "NOT_POSTER"
    ASSIGNED_WORKER = "ASSIGNED_WORKER"
    PARTY = "PARTY"  # poster or assigned worker


@dataclass(frozen=True)
class Policy:
    role: Role | None
    relationship: Relationship


POLICIES: dict[str, Policy] = {
    "post": Policy(Role.USER, Relationship.ANY),
    "apply": Policy(Role.WORKER, Relationship.NOT_POSTER),
    "select_worker": Policy(None, Relationship.POSTER),
    "start_work": Policy(None, Relationship.ASSIGNED_WORKER),
    "submit_completion": Policy(None, Relationship.ASSIGNED_WORKER),
    "verify": Policy(None, Relationship.POSTER),
    "cancel": Policy(None, Relationship.POSTER),
    "list_applications": Policy(None, Relationship.POSTER),
    "report_penalty": Policy(None, Relationship.PARTY),
    "raise_dispute": Policy(None, Relationship.PARTY),
}

_DENIED = {
    Relationship.POSTER: "Only the job poster can do this",
    Relationship.NOT_POSTER: "Cannot do this on your own job",
    Relationship.ASSIGNED_WORKER: "Only the assigned worker can do this",
    Relationship.PARTY: "Not a party to this job",
}


def relationship_holds(relationship: Relationship, actor: User, job: Job | None) -> bool:
    if relationship == Relationship.ANY:
        return True
    if job is None:
        return False
    if relationship == Relationship.POSTER:
        return job.posted_by == actor.id
    if relationship == Relationship.NOT_POSTER:
        return job.posted_by != actor.id
    if relationship == Relationship.ASSIGNED_WORKER:
        return job.assigned_to is not None and job.assigned_to == actor.id
    return actor.id in (job.posted_by, job.assigned_to)


def authorize(operation: str, actor: User, job: Job | None = None) -> None:
    """Raise PermissionDeniedError unless ``actor`` may perform ``operation`` on ``job``."""
    policy = POLICIES.get(operation)
    if policy is None:
        raise PermissionDeniedError(f"Unknown operation: {operation}")
    if policy.role is not None and actor.role != policy.role:
        raise PermissionDeniedError(
            f"Only {policy.role.value} accounts can do this",
            details={"operation": operation, "role": actor.role.value},
        )
    if not relationship_holds(policy.relationship, actor, job):
        raise PermissionDeniedError(
            _DENIED[policy.relationship],
            details={"operation": operation, "job_id": job.id if job else None},
        )
