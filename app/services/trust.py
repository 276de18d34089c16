"""Worker trust scoring: violations, rewards, access levels, suspension and ban.

Every score change goes through ``TrustEngine``; the pure helpers (``classify``,
``evaluate_suspension``) hold the policy and touch no storage.
"""

import enum
from dataclasses import dataclass
from datetime import datetime, timedelta

from pydantic import BaseModel

from app.core.clock import Clock, utcnow
from app.core.exceptions import NotFoundError, UnknownViolationTypeError
from app.core.logging import get_logger
from app.models.trust_record import AccessLevel, RecoveryEntry, TrustRecord, ViolationEntry
from app.stores.base import Stores

log = get_logger(__name__)

MAX_SCORE = 100
MIN_SCORE = 0
TEMP_SUSPENSION_THRESHOLD = 20
STRIKE_LIMIT = 3
SUSPENSION_DAYS = 7
JOB_COMPLETION_BONUS = 2
PERIODIC_BONUS = 5
PERIODIC_BONUS_THRESHOLD = 95
BONUS_COOLDOWN_DAYS = 30
STRIKE_REDUCTION_MIN_SCORE = 50
RECENT_VIOLATIONS = 5


class ViolationType(str, enum.Enum):
    NO_SHOW = "NO_SHOW"
    LATE_CANCELLATION = "LATE_CANCELLATION"
    EARLY_CANCELLATION = "EARLY_CANCELLATION"
    MISCONDUCT = "MISCONDUCT"
    POOR_WORK = "POOR_WORK"
    FALSE_DISPUTE = "FALSE_DISPUTE"
    FALSE_REPORT = "FALSE_REPORT"
    LATE_ARRIVAL = "LATE_ARRIVAL"


@dataclass(frozen=True)
class Violation:
    points: int
    strikes: int
    description: str


VIOLATIONS: dict[ViolationType, Violation] = {
    ViolationType.NO_SHOW: Violation(25, 2, "Worker did not show up for the job"),
    ViolationType.LATE_CANCELLATION: Violation(15, 1, "Worker cancelled less than 2 hours before job"),
    ViolationType.EARLY_CANCELLATION: Violation(
        5, 0, "Worker cancelled more than 2 hours before job (reduced penalty)"
    ),
    ViolationType.MISCONDUCT: Violation(30, 3, "Worker misconduct or inappropriate behavior"),
    ViolationType.POOR_WORK: Violation(20, 2, "Work quality was unsatisfactory"),
    ViolationType.FALSE_DISPUTE: Violation(15, 1, "Worker raised false dispute"),
    ViolationType.FALSE_REPORT: Violation(10, 1, "False work completion report"),
    ViolationType.LATE_ARRIVAL: Violation(5, 0, "Worker arrived more than 15 minutes late"),
}


@dataclass(frozen=True)
class LevelInfo:
    level: AccessLevel
    min_score: int
    max_score: int
    label: str
    color: str


# Highest first; ranges partition 0..100 with no gaps.
ACCESS_LEVELS: tuple[LevelInfo, ...] = (
    LevelInfo(AccessLevel.PREMIUM, 90, 100, "Premium Worker", "#10B981"),
    LevelInfo(AccessLevel.TRUSTED, 70, 89, "Trusted Worker", "#3B82F6"),
    LevelInfo(AccessLevel.STANDARD, 50, 69, "Standard Worker", "#F59E0B"),
    LevelInfo(AccessLevel.RESTRICTED, 30, 49, "Restricted Worker", "#F97316"),
    LevelInfo(AccessLevel.SUSPENDED, 0, 29, "Suspended", "#EF4444"),
)

_ABOVE_SUSPENDED = frozenset(
    {AccessLevel.PREMIUM, AccessLevel.TRUSTED, AccessLevel.STANDARD, AccessLevel.RESTRICTED}
)

PERMISSIONS: dict[str, frozenset[AccessLevel]] = {
    "apply_for_jobs": _ABOVE_SUSPENDED,
    "create_dispute": _ABOVE_SUSPENDED,
    "view_ratings": _ABOVE_SUSPENDED,
    "priority_matching": frozenset({AccessLevel.PREMIUM, AccessLevel.TRUSTED}),
}


def level_info(level: AccessLevel) -> LevelInfo:
    for info in ACCESS_LEVELS:
        if info.level == level:
            return info
    raise ValueError(f"Unknown access level: {level}")


def classify(score: int) -> AccessLevel:
    """Access level for a score in 0..100."""
    if not MIN_SCORE <= score <= MAX_SCORE:
        raise ValueError(f"Score out of range: {score}")
    for info in ACCESS_LEVELS:
        if score >= info.min_score:
            return info.level
    raise ValueError(f"Score out of range: {score}")


class SuspensionDecision(str, enum.Enum):
    BAN = "BAN"
    SUSPEND = "SUSPEND"
    UNCHANGED = "UNCHANGED"


def evaluate_suspension(already_banned: bool, new_score: int, new_strikes: int) -> SuspensionDecision:
    """Ban beats suspension; a score that hits zero is a ban."""
    if already_banned or new_score <= MIN_SCORE:
        return SuspensionDecision.BAN
    if new_strikes >= STRIKE_LIMIT or new_score < TEMP_SUSPENSION_THRESHOLD:
        return SuspensionDecision.SUSPEND
    return SuspensionDecision.UNCHANGED


def format_expiry(expires_at: datetime | None) -> str:
    return expires_at.strftime("%a %b %d %Y") if expires_at else "unknown date"


class TrustStatus(BaseModel):
    worker_id: str
    score: int
    max_score: int = MAX_SCORE
    strikes: int
    access_level: AccessLevel
    access_level_label: str
    access_level_color: str
    is_temporarily_suspended: bool
    suspension_expires_at: datetime | None
    is_permanently_banned: bool
    can_apply_for_jobs: bool
    total_violations: int
    recent_violations: list[ViolationEntry]
    created: bool = False

    @classmethod
    def from_record(cls, record: TrustRecord, created: bool = False) -> "TrustStatus":
        info = level_info(record.access_level)
        return cls(
            worker_id=record.worker_id,
            score=record.score,
            strikes=record.strikes,
            access_level=record.access_level,
            access_level_label=info.label,
            access_level_color=info.color,
            is_temporarily_suspended=record.is_temporarily_suspended,
            suspension_expires_at=record.suspension_expires_at,
            is_permanently_banned=record.is_permanently_banned,
            can_apply_for_jobs=not (record.is_temporarily_suspended or record.is_permanently_banned),
            total_violations=record.total_violations,
            recent_violations=list(reversed(record.violation_history[-RECENT_VIOLATIONS:])),
            created=created,
        )


class PermissionResult(BaseModel):
    allowed: bool
    reason: str | None = None
    score: int
    access_level: AccessLevel


class TrustEngine:
    def __init__(self, stores: Stores, clock: Clock = utcnow) -> None:
        self.stores = stores
        self.clock = clock

    async def _mirror_user(self, record: TrustRecord) -> None:
        """Copy the score onto the user's legacy field; a ban deactivates the account."""
        fields = {"credit_score": record.score, "updated_at": self.clock()}
        if record.is_permanently_banned:
            fields["is_active"] = False
        await self.stores.users.update_fields(record.worker_id, fields)

    async def apply_violation(
        self,
        worker_id: str,
        violation_type: str,
        job_id: str | None = None,
        description: str | None = None,
    ) -> TrustRecord:
        try:
            violation_type = ViolationType(violation_type)
        except ValueError as e:
            raise UnknownViolationTypeError(str(violation_type)) from e
        violation = VIOLATIONS[violation_type]
        now = self.clock()
        async with self.stores.transaction():
            record, _ = await self.stores.trust.get_or_create(worker_id)
            new_score = max(MIN_SCORE, record.score - violation.points)
            new_strikes = record.strikes + violation.strikes
            decision = evaluate_suspension(record.is_permanently_banned, new_score, new_strikes)
            if decision == SuspensionDecision.BAN:
                record.is_permanently_banned = True
                record.is_temporarily_suspended = False
                record.suspension_expires_at = None
            elif decision == SuspensionDecision.SUSPEND:
                record.is_temporarily_suspended = True
                record.suspension_expires_at = now + timedelta(days=SUSPENSION_DAYS)
            record.score = new_score
            record.strikes = new_strikes
            record.access_level = classify(new_score)
            record.total_violations += 1
            record.violation_history.append(
                ViolationEntry(
                    type=violation_type.value,
                    points_deducted=violation.points,
                    strikes_added=violation.strikes,
                    job_id=job_id,
                    description=description or violation.description,
                    created_at=now,
                )
            )
            record.updated_at = now
            record = await self.stores.trust.save(record)
            await self._mirror_user(record)
        log.info(
            "trust_violation",
            worker_id=worker_id,
            violation_type=violation_type.value,
            score=record.score,
            strikes=record.strikes,
            decision=decision.value,
            job_id=job_id,
        )
        return record

    async def reward_completed_job(self, worker_id: str, job_id: str | None = None) -> TrustRecord:
        now = self.clock()
        async with self.stores.transaction():
            record, _ = await self.stores.trust.get_or_create(worker_id)
            if record.is_permanently_banned or record.score >= MAX_SCORE:
                return record
            new_score = min(MAX_SCORE, record.score + JOB_COMPLETION_BONUS)
            points = new_score - record.score
            record.score = new_score
            record.access_level = classify(new_score)
            if record.is_temporarily_suspended and new_score >= TEMP_SUSPENSION_THRESHOLD:
                record.is_temporarily_suspended = False
                record.suspension_expires_at = None
            record.recovery_history.append(
                RecoveryEntry(points_added=points, reason="Job completed successfully", job_id=job_id, created_at=now)
            )
            record.updated_at = now
            record = await self.stores.trust.save(record)
            await self._mirror_user(record)
        log.info("trust_reward", worker_id=worker_id, score=record.score, job_id=job_id)
        return record

    def bonus_eligible(self, record: TrustRecord, now: datetime) -> bool:
        if record.is_permanently_banned:
            return False
        if not PERIODIC_BONUS_THRESHOLD <= record.score < MAX_SCORE:
            return False
        last = record.last_bonus_at
        if last is not None:
            if (last.year, last.month) == (now.year, now.month):
                return False
            if now - last < timedelta(days=BONUS_COOLDOWN_DAYS):
                return False
        return True

    async def apply_periodic_bonus(self, worker_id: str) -> TrustRecord | None:
        """Returns None when the worker is not eligible; that is not an error."""
        now = self.clock()
        async with self.stores.transaction():
            record = await self.stores.trust.get(worker_id)
            if record is None or not self.bonus_eligible(record, now):
                return None
            new_score = min(MAX_SCORE, record.score + PERIODIC_BONUS)
            points = new_score - record.score
            record.score = new_score
            record.access_level = classify(new_score)
            record.last_bonus_at = now
            record.recovery_history.append(
                RecoveryEntry(points_added=points, reason="Monthly consistent behavior bonus", created_at=now)
            )
            record.updated_at = now
            record = await self.stores.trust.save(record)
            await self._mirror_user(record)
        log.info("trust_periodic_bonus", worker_id=worker_id, score=record.score)
        return record

    async def reduce_strike(self, worker_id: str) -> TrustRecord:
        """Forgive one strike once the score has recovered to STANDARD or better."""
        async with self.stores.transaction():
            record = await self.stores.trust.get(worker_id)
            if record is None:
                raise NotFoundError("Trust record not found")
            if record.strikes == 0 or record.score < STRIKE_REDUCTION_MIN_SCORE:
                return record
            record.strikes -= 1
            record.updated_at = self.clock()
            record = await self.stores.trust.save(record)
        log.info("trust_strike_reduced", worker_id=worker_id, strikes=record.strikes)
        return record

    async def get_trust_status(self, worker_id: str) -> TrustStatus:
        now = self.clock()
        async with self.stores.transaction():
            record, created = await self.stores.trust.get_or_create(worker_id)
            if (
                record.is_temporarily_suspended
                and record.suspension_expires_at is not None
                and now > record.suspension_expires_at
            ):
                record.is_temporarily_suspended = False
                record.suspension_expires_at = None
                record.updated_at = now
                record = await self.stores.trust.save(record)
                log.info("trust_suspension_expired", worker_id=worker_id)
        return TrustStatus.from_record(record, created=created)

    async def check_permission(self, worker_id: str, action: str) -> PermissionResult:
        status = await self.get_trust_status(worker_id)
        if status.is_permanently_banned:
            reason = "Account permanently banned due to repeated violations"
            allowed = False
        elif status.is_temporarily_suspended:
            reason = f"Temporarily suspended. Suspension expires on {format_expiry(status.suspension_expires_at)}"
            allowed = False
        else:
            allowed = status.access_level in PERMISSIONS.get(action, frozenset())
            reason = None if allowed else f"Action not available for {status.access_level_label} workers"
        return PermissionResult(
            allowed=allowed, reason=reason, score=status.score, access_level=status.access_level
        )

    async def leaderboard(self, limit: int = 10) -> list[TrustRecord]:
        return await self.stores.trust.list_records(ascending=False, limit=limit)

    async def workers_needing_attention(self, threshold: int = STRIKE_REDUCTION_MIN_SCORE) -> list[TrustRecord]:
        return await self.stores.trust.list_records(below_score=threshold, ascending=True)

    async def bonus_candidates(self) -> list[TrustRecord]:
        """Records inside the score band; month and cooldown gates are checked per worker."""
        return await self.stores.trust.list_records(min_score=PERIODIC_BONUS_THRESHOLD, below_score=MAX_SCORE)
